from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from allocator.api.deps import get_db, require_roles
from allocator.models.user import User, UserRole
from allocator.schemas.section import PromoteSection, PromotionOut, SectionRecordOut
from allocator.services import promotion

router = APIRouter()


@router.post("/{section_id}/promote", response_model=PromotionOut)
def promote_section(
    section_id: int,
    payload: PromoteSection,
    current_user: User = Depends(require_roles(UserRole.admin)),
    db: Session = Depends(get_db),
) -> PromotionOut:
    result = promotion.promote_section(
        db,
        section_id,
        new_semester=payload.new_semester,
        promote_courses=payload.promote_courses,
        actor=current_user,
    )
    return PromotionOut.model_validate(result)


@router.get("/{section_id}/record", response_model=SectionRecordOut)
def section_record(
    section_id: int,
    current_user: User = Depends(require_roles(UserRole.admin)),
    db: Session = Depends(get_db),
) -> SectionRecordOut:
    return SectionRecordOut.model_validate(promotion.section_record(db, section_id))

from datetime import date

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from allocator.api.deps import get_db, require_roles
from allocator.models.exam import ExamType
from allocator.models.user import User, UserRole
from allocator.schemas.exam import (
    ExamCreate,
    ExamGenerateOut,
    ExamGenerateRequest,
    ExamOut,
    ExamResetOut,
    ExamResetRequest,
    ExamState,
)
from allocator.services import exams

router = APIRouter()


@router.post("/generate-schedule", response_model=ExamGenerateOut)
def generate_schedule(
    payload: ExamGenerateRequest,
    current_user: User = Depends(require_roles(UserRole.admin)),
    db: Session = Depends(get_db),
) -> ExamGenerateOut:
    result = exams.generate_exam_schedule(
        db,
        exam_type=payload.exam_type,
        start_date=payload.start_date,
        end_date=payload.end_date,
        semester=payload.semester,
        shift=payload.shift,
        mode=payload.mode,
    )
    return ExamGenerateOut.model_validate(result)


@router.post("/create", response_model=ExamState, status_code=status.HTTP_201_CREATED)
def create_exam(
    payload: ExamCreate,
    current_user: User = Depends(require_roles(UserRole.admin)),
    db: Session = Depends(get_db),
) -> ExamState:
    exam = exams.create_exam(db, **payload.model_dump(), actor=current_user)
    return ExamState.model_validate(exam)


@router.get("", response_model=list[ExamOut])
def list_exams(
    exam_type: ExamType | None = Query(default=None),
    section_id: int | None = Query(default=None),
    invigilator_id: str | None = Query(default=None),
    start_date: date | None = Query(default=None),
    end_date: date | None = Query(default=None),
    current_user: User = Depends(require_roles(UserRole.admin, UserRole.instructor)),
    db: Session = Depends(get_db),
) -> list[ExamOut]:
    rows = exams.list_exams(
        db,
        exam_type=exam_type,
        section_id=section_id,
        invigilator_id=invigilator_id,
        start_date=start_date,
        end_date=end_date,
    )
    return [ExamOut(**row) for row in rows]


@router.post("/reset", response_model=ExamResetOut)
def reset_exams(
    payload: ExamResetRequest,
    current_user: User = Depends(require_roles(UserRole.admin)),
    db: Session = Depends(get_db),
) -> ExamResetOut:
    affected = exams.reset_exams(db, payload.type)
    return ExamResetOut(type=payload.type, affected=affected)

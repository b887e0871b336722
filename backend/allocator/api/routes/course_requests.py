from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from allocator.api.deps import get_db, require_roles
from allocator.models.course_request import RequestStatus
from allocator.models.user import User, UserRole
from allocator.schemas.course_request import (
    AcceptRequest,
    CourseRequestOut,
    GenerateRequests,
    GenerateRequestsOut,
    ReassignRequest,
    RequestAction,
    RequestStateOut,
    UndoOut,
)
from allocator.services import lifecycle

router = APIRouter()


@router.get("", response_model=list[CourseRequestOut])
def list_course_requests(
    status_filter: RequestStatus | None = Query(default=None, alias="status"),
    instructor_id: str | None = Query(default=None),
    current_user: User = Depends(require_roles(UserRole.admin)),
    db: Session = Depends(get_db),
) -> list[CourseRequestOut]:
    rows = lifecycle.list_requests(db, status=status_filter, instructor_id=instructor_id)
    return [CourseRequestOut.model_validate(row) for row in rows]


@router.get("/instructor", response_model=list[CourseRequestOut])
def list_instructor_requests(
    current_user: User = Depends(require_roles(UserRole.instructor)),
    db: Session = Depends(get_db),
) -> list[CourseRequestOut]:
    rows = lifecycle.list_open_requests(db, current_user.id)
    return [CourseRequestOut.model_validate(row) for row in rows]


@router.post("/generate", response_model=GenerateRequestsOut, status_code=status.HTTP_201_CREATED)
def generate_course_requests(
    payload: GenerateRequests,
    current_user: User = Depends(require_roles(UserRole.admin)),
    db: Session = Depends(get_db),
) -> GenerateRequestsOut:
    created = lifecycle.generate_requests(
        db,
        actor=current_user,
        section_id=payload.section_id,
        semester=payload.semester,
        shift=payload.shift,
    )
    return GenerateRequestsOut(created=created)


@router.post("/accept", response_model=RequestStateOut)
def accept_request(
    payload: AcceptRequest,
    current_user: User = Depends(require_roles(UserRole.instructor)),
    db: Session = Depends(get_db),
) -> RequestStateOut:
    request = lifecycle.accept(db, payload.request_id, actor=current_user, preferences=payload.preferences)
    return RequestStateOut.model_validate(request)


@router.post("/undo-accept", response_model=UndoOut)
def undo_accept(
    payload: RequestAction,
    current_user: User = Depends(require_roles(UserRole.instructor, UserRole.admin)),
    db: Session = Depends(get_db),
) -> UndoOut:
    result = lifecycle.undo_accept(db, payload.request_id, actor=current_user)
    return UndoOut(
        **RequestStateOut.model_validate(result.request).model_dump(),
        released_reservations=result.released_reservations,
        released_room_assignments=result.released_room_assignments,
    )


@router.post("/reassign", response_model=RequestStateOut)
def reassign_request(
    payload: ReassignRequest,
    current_user: User = Depends(require_roles(UserRole.admin)),
    db: Session = Depends(get_db),
) -> RequestStateOut:
    request = lifecycle.reassign(db, payload.request_id, instructor_id=payload.instructor_id, actor=current_user)
    return RequestStateOut.model_validate(request)


@router.post("/{request_id}/reject", response_model=RequestStateOut)
def reject_request(
    request_id: int,
    current_user: User = Depends(require_roles(UserRole.admin)),
    db: Session = Depends(get_db),
) -> RequestStateOut:
    return RequestStateOut.model_validate(lifecycle.reject(db, request_id, actor=current_user))

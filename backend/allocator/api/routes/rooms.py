from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from allocator.api.deps import get_db, require_roles
from allocator.models.user import User, UserRole
from allocator.schemas.room import (
    AssignmentDeleteOut,
    AutoAssignOut,
    RoomAssignmentOut,
    RoomAssignmentState,
    RoomAssignmentUpdate,
    UnassignedReservation,
)
from allocator.services import room_resolver

router = APIRouter()


@router.post("/auto-assign", response_model=AutoAssignOut)
def auto_assign(
    current_user: User = Depends(require_roles(UserRole.admin)),
    db: Session = Depends(get_db),
) -> AutoAssignOut:
    result = room_resolver.auto_assign_rooms(db, actor=current_user)
    return AutoAssignOut(
        assigned_count=result.assigned_count,
        unassigned=[UnassignedReservation(**item) for item in result.unassigned],
    )


@router.get("/assignments", response_model=list[RoomAssignmentOut])
def list_assignments(
    section_id: int | None = Query(default=None),
    semester: int | None = Query(default=None),
    room_id: int | None = Query(default=None),
    current_user: User = Depends(require_roles(UserRole.admin, UserRole.instructor)),
    db: Session = Depends(get_db),
) -> list[RoomAssignmentOut]:
    rows = room_resolver.list_assignments(db, section_id=section_id, semester=semester, room_id=room_id)
    return [RoomAssignmentOut(**row) for row in rows]


@router.put("/assignments/{assignment_id}", response_model=RoomAssignmentState)
def update_assignment(
    assignment_id: int,
    payload: RoomAssignmentUpdate,
    current_user: User = Depends(require_roles(UserRole.admin)),
    db: Session = Depends(get_db),
) -> RoomAssignmentState:
    assignment = room_resolver.update_assignment(
        db,
        assignment_id,
        room_id=payload.room_id,
        time_slot_id=payload.time_slot_id,
        actor=current_user,
    )
    return RoomAssignmentState.model_validate(assignment)


@router.delete("/assignments/{assignment_id}", response_model=AssignmentDeleteOut)
def delete_assignment(
    assignment_id: int,
    current_user: User = Depends(require_roles(UserRole.admin)),
    db: Session = Depends(get_db),
) -> AssignmentDeleteOut:
    unlinked = room_resolver.delete_assignment(db, assignment_id, actor=current_user)
    return AssignmentDeleteOut(unlinked_reservations=unlinked)

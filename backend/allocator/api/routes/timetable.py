from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from allocator.api.deps import get_db, require_roles
from allocator.models.user import User, UserRole
from allocator.schemas.course_request import RequestAction, RequestStateOut, UndoOut
from allocator.schemas.timetable import (
    AvailableSlotsOut,
    BlockedSlotOut,
    ReservationOut,
    SelectSlotsOut,
    SelectSlotsRequest,
    TimeSlotOut,
)
from allocator.services import lifecycle, slot_allocation

router = APIRouter()


@router.post("/select-slots", response_model=SelectSlotsOut)
def select_slots(
    payload: SelectSlotsRequest,
    current_user: User = Depends(require_roles(UserRole.instructor)),
    db: Session = Depends(get_db),
) -> SelectSlotsOut:
    selection = slot_allocation.select_slots(
        db,
        request_id=payload.request_id,
        time_slot_ids=payload.time_slots,
        actor=current_user,
    )
    return SelectSlotsOut(
        request_id=selection.request_id,
        reservations=[
            ReservationOut(
                time_slot_id=item.time_slot_id,
                room_id=item.room_id,
                room_name=item.room_name,
                room_assignment_id=item.room_assignment_id,
            )
            for item in selection.reservations
        ],
    )


@router.post("/undo-acceptance", response_model=UndoOut)
def undo_acceptance(
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


@router.get("/available-slots", response_model=AvailableSlotsOut)
def available_slots(
    request_id: int = Query(ge=1),
    current_user: User = Depends(require_roles(UserRole.instructor)),
    db: Session = Depends(get_db),
) -> AvailableSlotsOut:
    result = slot_allocation.available_slots(db, request_id=request_id, instructor_id=current_user.id)
    available = [TimeSlotOut.model_validate(slot) for slot in result["available"]]
    blocked = [
        BlockedSlotOut(
            **TimeSlotOut.model_validate(item["slot"]).model_dump(),
            blocked_by=item["blocked_by"],
            reason=item["reason"],
        )
        for item in result["blocked"]
    ]
    return AvailableSlotsOut(
        request_id=result["request_id"],
        instructor_id=result["instructor_id"],
        section_id=result["section_id"],
        available_slots=available,
        blocked_slots=blocked,
        total_available=len(available),
        total_blocked=len(blocked),
    )

from pydantic import BaseModel, Field

from allocator.schemas.course_request import RequestAction


class SelectSlotsRequest(RequestAction):
    time_slots: list[int] = Field(min_length=1, max_length=100)


class ReservationOut(BaseModel):
    time_slot_id: int
    room_id: int
    room_name: str
    room_assignment_id: int


class SelectSlotsOut(BaseModel):
    request_id: int
    reservations: list[ReservationOut]


class TimeSlotOut(BaseModel):
    id: int
    day_of_week: str
    start_time: str
    end_time: str
    label: str
    shift: str

    model_config = {"from_attributes": True}


class BlockedSlotOut(TimeSlotOut):
    blocked_by: str
    reason: str


class AvailableSlotsOut(BaseModel):
    request_id: int
    instructor_id: str
    section_id: int
    available_slots: list[TimeSlotOut]
    blocked_slots: list[BlockedSlotOut]
    total_available: int
    total_blocked: int

from pydantic import BaseModel, Field, model_validator

from allocator.models.room import RoomType


class RoomAssignmentUpdate(BaseModel):
    room_id: int | None = Field(default=None, ge=1)
    time_slot_id: int | None = Field(default=None, ge=1)

    @model_validator(mode="after")
    def validate_change(self) -> "RoomAssignmentUpdate":
        if self.room_id is None and self.time_slot_id is None:
            raise ValueError("Provide room_id and/or time_slot_id")
        return self


class RoomAssignmentOut(BaseModel):
    id: int
    room_id: int
    room_name: str
    capacity: int
    room_type: RoomType
    section_id: int
    section_name: str
    student_strength: int
    time_slot_id: int
    slot_label: str
    day_of_week: str
    start_time: str
    end_time: str
    semester: int
    offering_id: int | None = None


class RoomAssignmentState(BaseModel):
    id: int
    room_id: int
    section_id: int
    time_slot_id: int
    semester: int

    model_config = {"from_attributes": True}


class UnassignedReservation(BaseModel):
    reservation_id: int
    section_id: int
    time_slot_id: int
    reason: str


class AutoAssignOut(BaseModel):
    assigned_count: int
    unassigned: list[UnassignedReservation] = Field(default_factory=list)


class AssignmentDeleteOut(BaseModel):
    deleted: bool = True
    unlinked_reservations: int

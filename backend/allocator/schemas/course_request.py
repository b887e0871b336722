from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from allocator.models.course_request import RequestStatus
from allocator.schemas.common import DAY_VALUES


class RequestPreferences(BaseModel):
    """Typed view of the ``course_requests.preferences`` JSON column."""

    sent_by: str | None = Field(default=None, max_length=50)
    preferred_days: list[str] = Field(default_factory=list, max_length=7)
    notes: str | None = Field(default=None, max_length=1000)

    model_config = {"extra": "ignore"}

    @field_validator("preferred_days")
    @classmethod
    def validate_days(cls, value: list[str]) -> list[str]:
        cleaned = [day.strip() for day in value if day.strip()]
        invalid = [day for day in cleaned if day not in DAY_VALUES]
        if invalid:
            raise ValueError(f"Invalid day(s): {', '.join(invalid)}")
        return cleaned


class RequestAction(BaseModel):
    request_id: int = Field(ge=1)


class AcceptRequest(RequestAction):
    preferences: RequestPreferences | None = None


class ReassignRequest(RequestAction):
    instructor_id: str = Field(min_length=1, max_length=36)


class GenerateRequests(BaseModel):
    section_id: int | None = None
    semester: int | None = Field(default=None, ge=1)
    shift: str | None = Field(default=None, max_length=20)


class GenerateRequestsOut(BaseModel):
    created: int


class ReservedSlotOut(BaseModel):
    time_slot_id: int
    day_of_week: str
    start_time: str
    end_time: str
    label: str
    room_assignment_id: int | None = None


class CourseRequestOut(BaseModel):
    id: int
    offering_id: int
    course_id: int
    course_code: str
    course_name: str
    section_id: int
    section_name: str
    semester: int
    shift: str
    instructor_id: str | None = None
    instructor_name: str | None = None
    status: RequestStatus
    preferences: RequestPreferences = Field(default_factory=RequestPreferences)
    created_at: datetime | None = None
    accepted_at: datetime | None = None
    reserved_slots: list[ReservedSlotOut] = Field(default_factory=list)


class RequestStateOut(BaseModel):
    id: int
    status: RequestStatus
    instructor_id: str | None = None
    accepted_at: datetime | None = None
    preferences: RequestPreferences = Field(default_factory=RequestPreferences)

    model_config = {"from_attributes": True}


class UndoOut(RequestStateOut):
    released_reservations: int
    released_room_assignments: int

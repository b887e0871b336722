from datetime import date

from pydantic import BaseModel, Field, model_validator

from allocator.models.exam import ExamType, InvigilatorMode, ResetType


class ExamResetRequest(BaseModel):
    type: ResetType = ResetType.invigilators


class ExamResetOut(BaseModel):
    type: ResetType
    affected: int


class ExamGenerateRequest(BaseModel):
    exam_type: ExamType
    start_date: date
    end_date: date
    semester: int | None = Field(default=None, ge=1)
    shift: str | None = Field(default=None, max_length=20)
    mode: InvigilatorMode | None = None

    @model_validator(mode="after")
    def validate_range(self) -> "ExamGenerateRequest":
        if self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self


class UnscheduledOffering(BaseModel):
    offering_id: int
    section_id: int
    reason: str


class ExamGenerateOut(BaseModel):
    scheduled: int
    skipped: int
    unscheduled: list[UnscheduledOffering] = Field(default_factory=list)

    model_config = {"from_attributes": True}


class ExamCreate(BaseModel):
    offering_id: int = Field(ge=1)
    exam_type: ExamType
    exam_date: date
    time_slot_id: int = Field(ge=1)
    room_id: int = Field(ge=1)
    invigilator_id: str | None = Field(default=None, max_length=36)
    mode: InvigilatorMode = InvigilatorMode.match


class ExamState(BaseModel):
    id: int
    offering_id: int | None = None
    course_id: int
    section_id: int
    room_id: int
    time_slot_id: int
    exam_date: date
    exam_type: ExamType
    invigilator_id: str | None = None
    mode: InvigilatorMode

    model_config = {"from_attributes": True}


class ExamOut(ExamState):
    course_code: str
    course_name: str
    section_name: str
    room_name: str
    start_time: str
    end_time: str
    invigilator_name: str | None = None

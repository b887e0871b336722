from pydantic import BaseModel, Field

from allocator.models.section_record import SectionRecordStatus


class PromoteSection(BaseModel):
    new_semester: int = Field(ge=1, le=12)
    promote_courses: bool = True


class PromotionOut(BaseModel):
    section_id: int
    previous_semester: int
    new_semester: int
    offerings_created: int
    records_created: int

    model_config = {"from_attributes": True}


class RecordCourseOut(BaseModel):
    course_id: int
    course_code: str
    course_name: str
    offering_id: int | None = None
    instructor_id: str | None = None
    instructor_name: str | None = None
    status: SectionRecordStatus


class SemesterRecordOut(BaseModel):
    semester: int
    courses: list[RecordCourseOut]


class SectionRecordOut(BaseModel):
    section_id: int
    section_name: str
    current_semester: int
    semesters: list[SemesterRecordOut]

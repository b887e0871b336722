from datetime import date, datetime
from enum import Enum

from sqlalchemy import Date, DateTime, Enum as SAEnum, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from allocator.db.base import Base


class ExamType(str, Enum):
    midterm = "midterm"
    final = "final"


class InvigilatorMode(str, Enum):
    match = "match"
    shuffle = "shuffle"


class ResetType(str, Enum):
    invigilators = "invigilators"
    full = "full"


class Exam(Base):
    __tablename__ = "exams"
    __table_args__ = (
        UniqueConstraint("room_id", "exam_date", "time_slot_id", name="uq_exams_room_date_slot"),
        UniqueConstraint("section_id", "exam_date", "time_slot_id", name="uq_exams_section_date_slot"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    offering_id: Mapped[int | None] = mapped_column(Integer, index=True, nullable=True)
    course_id: Mapped[int] = mapped_column(Integer, nullable=False)
    section_id: Mapped[int] = mapped_column(Integer, index=True, nullable=False)
    room_id: Mapped[int] = mapped_column(Integer, nullable=False)
    time_slot_id: Mapped[int] = mapped_column(Integer, nullable=False)
    exam_date: Mapped[date] = mapped_column(Date, index=True, nullable=False)
    exam_type: Mapped[ExamType] = mapped_column(SAEnum(ExamType, name="exam_type"), nullable=False)
    # No store-level uniqueness here: bulk invigilator reshuffles pass through transient duplicates.
    invigilator_id: Mapped[str | None] = mapped_column(String(36), index=True, nullable=True)
    mode: Mapped[InvigilatorMode] = mapped_column(
        SAEnum(InvigilatorMode, name="invigilator_mode"),
        nullable=False,
        default=InvigilatorMode.match,
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

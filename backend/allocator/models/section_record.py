from datetime import datetime
from enum import Enum

from sqlalchemy import DateTime, Enum as SAEnum, Integer, String
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from allocator.db.base import Base


class SectionRecordStatus(str, Enum):
    completed = "completed"
    pending = "pending"


class SectionRecord(Base):
    __tablename__ = "section_records"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    section_id: Mapped[int] = mapped_column(Integer, index=True, nullable=False)
    course_id: Mapped[int] = mapped_column(Integer, nullable=False)
    offering_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    instructor_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    semester: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[SectionRecordStatus] = mapped_column(
        SAEnum(SectionRecordStatus, name="section_record_status"),
        nullable=False,
        default=SectionRecordStatus.completed,
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

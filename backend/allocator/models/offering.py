from datetime import datetime

from sqlalchemy import DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from allocator.db.base import Base


class CourseOffering(Base):
    __tablename__ = "course_offerings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    course_id: Mapped[int] = mapped_column(Integer, index=True, nullable=False)
    section_id: Mapped[int] = mapped_column(Integer, index=True, nullable=False)
    semester: Mapped[int] = mapped_column(Integer, nullable=False)
    intake: Mapped[str | None] = mapped_column(String(50), nullable=True)
    shift: Mapped[str] = mapped_column(String(20), nullable=False, default="morning")
    academic_year: Mapped[str | None] = mapped_column(String(20), nullable=True)
    # Preferred instructor carried over by promotion; the binding one lives on the request.
    instructor_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    created_by: Mapped[str | None] = mapped_column(String(36), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

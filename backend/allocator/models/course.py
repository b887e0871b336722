from datetime import datetime
from enum import Enum

from sqlalchemy import DateTime, Enum as SAEnum, Integer, String
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from allocator.db.base import Base
from allocator.models.room import RoomType


class CourseType(str, Enum):
    theory = "theory"
    lab = "lab"
    seminar = "seminar"


REQUIRED_ROOM_TYPE: dict[CourseType, RoomType] = {
    CourseType.theory: RoomType.lecture,
    CourseType.lab: RoomType.lab,
    CourseType.seminar: RoomType.seminar,
}


class Course(Base):
    __tablename__ = "courses"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    code: Mapped[str] = mapped_column(String(50), unique=True, index=True, nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    type: Mapped[CourseType] = mapped_column(SAEnum(CourseType, name="course_type"), nullable=False)
    credit_hours: Mapped[int] = mapped_column(Integer, nullable=False, default=3)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    @property
    def required_room_type(self) -> RoomType:
        return REQUIRED_ROOM_TYPE[self.type]

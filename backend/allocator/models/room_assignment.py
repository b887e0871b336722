from datetime import datetime

from sqlalchemy import DateTime, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from allocator.db.base import Base


class RoomAssignment(Base):
    __tablename__ = "room_assignments"
    __table_args__ = (
        UniqueConstraint("room_id", "time_slot_id", name="uq_room_assignments_room_slot"),
        UniqueConstraint("section_id", "time_slot_id", name="uq_room_assignments_section_slot"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    room_id: Mapped[int] = mapped_column(Integer, index=True, nullable=False)
    section_id: Mapped[int] = mapped_column(Integer, index=True, nullable=False)
    time_slot_id: Mapped[int] = mapped_column(Integer, index=True, nullable=False)
    semester: Mapped[int] = mapped_column(Integer, nullable=False)
    offering_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    assigned_by: Mapped[str | None] = mapped_column(String(36), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), onupdate=func.now())

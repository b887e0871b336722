from datetime import datetime

from sqlalchemy import DateTime, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from allocator.db.base import Base


class SlotReservation(Base):
    __tablename__ = "slot_reservations"
    __table_args__ = (
        UniqueConstraint("instructor_id", "time_slot_id", name="uq_slot_reservations_instructor_slot"),
        UniqueConstraint("section_id", "time_slot_id", name="uq_slot_reservations_section_slot"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    request_id: Mapped[int] = mapped_column(Integer, index=True, nullable=False)
    instructor_id: Mapped[str] = mapped_column(String(36), nullable=False)
    section_id: Mapped[int] = mapped_column(Integer, nullable=False)
    time_slot_id: Mapped[int] = mapped_column(Integer, index=True, nullable=False)
    # Null while the reservation waits for a room (after a manual room release).
    room_assignment_id: Mapped[int | None] = mapped_column(Integer, index=True, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

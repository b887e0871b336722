"""Availability index over instructors, sections and rooms.

Every answer comes straight from the live ``slot_reservations`` / ``room_assignments``
rows inside the caller's transaction; nothing is cached beyond a single operation.
The unique constraints on those tables back up every check made here, so a
concurrent writer that slips past a read still fails at insert time.
"""
from __future__ import annotations

from collections.abc import Collection, Iterable
from dataclasses import dataclass, field
from enum import Enum

from sqlalchemy import delete, insert, select, update
from sqlalchemy.orm import Session

from allocator.core.config import get_settings
from allocator.models.room_assignment import RoomAssignment
from allocator.models.slot_reservation import SlotReservation


class EntityKind(str, Enum):
    instructor = "instructor"
    section = "section"
    room = "room"


_KEY_COLUMNS = {
    EntityKind.instructor: (SlotReservation, SlotReservation.instructor_id, SlotReservation.time_slot_id),
    EntityKind.section: (SlotReservation, SlotReservation.section_id, SlotReservation.time_slot_id),
    EntityKind.room: (RoomAssignment, RoomAssignment.room_id, RoomAssignment.time_slot_id),
}


def is_free(
    db: Session,
    kind: EntityKind,
    entity_id: str | int,
    slot_id: int,
    *,
    exclude_ids: Collection[int] = (),
) -> bool:
    """Composite-key existence check for (entity, slot); ``exclude_ids`` skips the caller's own rows."""
    model, entity_column, slot_column = _KEY_COLUMNS[kind]
    stmt = select(model.id).where(entity_column == entity_id, slot_column == slot_id)
    if exclude_ids:
        stmt = stmt.where(model.id.not_in(list(exclude_ids)))
    return db.execute(stmt.limit(1)).first() is None


@dataclass
class OccupancySnapshot:
    """Occupied (entity, slot) keys for a fixed set of slots, loaded once per operation."""

    instructor_slots: set[tuple[str, int]] = field(default_factory=set)
    section_slots: set[tuple[int, int]] = field(default_factory=set)
    room_slots: set[tuple[int, int]] = field(default_factory=set)
    # (section_id, time_slot_id) -> room assignment id already holding that pair
    assigned_pairs: dict[tuple[int, int], int] = field(default_factory=dict)

    def _keys(self, kind: EntityKind) -> set:
        if kind is EntityKind.instructor:
            return self.instructor_slots
        if kind is EntityKind.section:
            return self.section_slots
        return self.room_slots

    def is_free(self, kind: EntityKind, entity_id: str | int, slot_id: int) -> bool:
        return (entity_id, slot_id) not in self._keys(kind)

    def claim(self, kind: EntityKind, entity_id: str | int, slot_id: int) -> None:
        self._keys(kind).add((entity_id, slot_id))


def load_snapshot(
    db: Session,
    slot_ids: Iterable[int],
    *,
    exclude_request_id: int | None = None,
) -> OccupancySnapshot:
    """Two reads regardless of how many slots are asked about."""
    slot_ids = sorted(set(slot_ids))
    snapshot = OccupancySnapshot()
    if not slot_ids:
        return snapshot

    reservation_stmt = select(
        SlotReservation.instructor_id,
        SlotReservation.section_id,
        SlotReservation.time_slot_id,
    ).where(SlotReservation.time_slot_id.in_(slot_ids))
    if exclude_request_id is not None:
        reservation_stmt = reservation_stmt.where(SlotReservation.request_id != exclude_request_id)
    for instructor_id, section_id, slot_id in db.execute(reservation_stmt):
        snapshot.instructor_slots.add((instructor_id, slot_id))
        snapshot.section_slots.add((section_id, slot_id))

    room_rows = db.execute(
        select(
            RoomAssignment.id,
            RoomAssignment.room_id,
            RoomAssignment.section_id,
            RoomAssignment.time_slot_id,
        ).where(RoomAssignment.time_slot_id.in_(slot_ids))
    )
    for assignment_id, room_id, section_id, slot_id in room_rows:
        snapshot.room_slots.add((room_id, slot_id))
        snapshot.assigned_pairs[(section_id, slot_id)] = assignment_id
    return snapshot


def _chunks(rows: list[dict]) -> Iterable[list[dict]]:
    size = get_settings().bulk_write_batch_size
    for start in range(0, len(rows), size):
        yield rows[start : start + size]


def reserve_rooms(db: Session, rows: list[dict]) -> dict[tuple[int, int], int]:
    """Bulk-insert room assignments and map each (section_id, time_slot_id) to its new id.

    One INSERT plus one read-back, since (section, slot) is unique per assignment.
    """
    if not rows:
        return {}
    for chunk in _chunks(rows):
        db.execute(insert(RoomAssignment), chunk)

    section_ids = sorted({row["section_id"] for row in rows})
    slot_ids = sorted({row["time_slot_id"] for row in rows})
    wanted = {(row["section_id"], row["time_slot_id"]) for row in rows}
    found = db.execute(
        select(RoomAssignment.id, RoomAssignment.section_id, RoomAssignment.time_slot_id).where(
            RoomAssignment.section_id.in_(section_ids),
            RoomAssignment.time_slot_id.in_(slot_ids),
        )
    )
    return {
        (section_id, slot_id): assignment_id
        for assignment_id, section_id, slot_id in found
        if (section_id, slot_id) in wanted
    }


def reserve_slots(db: Session, rows: list[dict]) -> None:
    for chunk in _chunks(rows):
        db.execute(insert(SlotReservation), chunk)


def link_rooms(db: Session, links: list[dict]) -> None:
    """Bulk UPDATE by primary key: ``[{"id": reservation_id, "room_assignment_id": ...}]``."""
    for chunk in _chunks(links):
        db.execute(update(SlotReservation), chunk)


@dataclass(frozen=True)
class ReleaseResult:
    reservations: int
    room_assignments: int


def release_request(db: Session, request_id: int) -> ReleaseResult:
    """Drop every reservation of a request together with the room assignments it orphans."""
    rows = db.execute(
        select(SlotReservation.id, SlotReservation.room_assignment_id).where(
            SlotReservation.request_id == request_id
        )
    ).all()
    if not rows:
        return ReleaseResult(reservations=0, room_assignments=0)

    reservation_ids = [row.id for row in rows]
    assignment_ids = sorted({row.room_assignment_id for row in rows if row.room_assignment_id is not None})
    db.execute(
        delete(SlotReservation)
        .where(SlotReservation.id.in_(reservation_ids))
        .execution_options(synchronize_session=False)
    )

    released_rooms = 0
    if assignment_ids:
        still_referenced = (
            select(SlotReservation.id)
            .where(SlotReservation.room_assignment_id == RoomAssignment.id)
            .exists()
        )
        result = db.execute(
            delete(RoomAssignment)
            .where(RoomAssignment.id.in_(assignment_ids), ~still_referenced)
            .execution_options(synchronize_session=False)
        )
        released_rooms = result.rowcount or 0
    return ReleaseResult(reservations=len(reservation_ids), room_assignments=released_rooms)

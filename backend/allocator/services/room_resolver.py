from __future__ import annotations

import logging
from dataclasses import dataclass, field

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from allocator.core.exceptions import ConflictError, NotFoundError, ValidationError
from allocator.db.session import atomic
from allocator.models.course import Course, REQUIRED_ROOM_TYPE
from allocator.models.course_request import CourseRequest
from allocator.models.offering import CourseOffering
from allocator.models.room import Room, RoomType
from allocator.models.room_assignment import RoomAssignment
from allocator.models.section import Section
from allocator.models.slot_reservation import SlotReservation
from allocator.models.time_slot import TimeSlot
from allocator.models.user import User
from allocator.services import availability
from allocator.services.audit import record_event
from allocator.services.availability import EntityKind, OccupancySnapshot

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RoomCandidate:
    id: int
    name: str
    capacity: int
    type: RoomType


def load_rooms(db: Session, *, room_type: RoomType | None = None, min_capacity: int = 0) -> list[RoomCandidate]:
    stmt = select(Room.id, Room.name, Room.capacity, Room.type).where(Room.capacity >= min_capacity)
    if room_type is not None:
        stmt = stmt.where(Room.type == room_type)
    stmt = stmt.order_by(Room.capacity, Room.id)
    return [RoomCandidate(*row) for row in db.execute(stmt)]


def check_room_fits(room: Room | RoomCandidate, *, capacity: int, room_type: RoomType | None) -> None:
    if room.capacity < capacity:
        raise ConflictError(
            f"Room {room.name} seats {room.capacity}, section needs {capacity}",
            details={"room_id": room.id, "reason": "capacity"},
        )
    if room_type is not None and room.type != room_type:
        raise ConflictError(
            f"Room {room.name} is a {room.type.value} room, class needs {room_type.value}",
            details={"room_id": room.id, "reason": "room_type"},
        )


class RoomResolver:
    """Picks the smallest free room that fits, ties broken by ascending room id.

    Works purely against an :class:`OccupancySnapshot`, claiming each room it hands out
    so later picks in the same operation see it as taken.
    """

    def __init__(self, rooms: list[RoomCandidate], snapshot: OccupancySnapshot) -> None:
        self._rooms = sorted(rooms, key=lambda room: (room.capacity, room.id))
        self._snapshot = snapshot

    def find(self, slot_id: int, *, capacity: int, room_type: RoomType | None) -> RoomCandidate | None:
        for room in self._rooms:
            if room.capacity < capacity:
                continue
            if room_type is not None and room.type != room_type:
                continue
            if self._snapshot.is_free(EntityKind.room, room.id, slot_id):
                return room
        return None

    def resolve(
        self,
        section_id: int,
        slot_id: int,
        *,
        capacity: int,
        room_type: RoomType | None,
    ) -> RoomCandidate:
        room = self.find(slot_id, capacity=capacity, room_type=room_type)
        if room is None:
            raise ConflictError(
                f"No free {room_type.value if room_type else 'any'} room for {capacity} students at time slot {slot_id}",
                details={"section_id": section_id, "time_slot_id": slot_id, "reason": "no_room"},
            )
        self._snapshot.claim(EntityKind.room, room.id, slot_id)
        return room


@dataclass
class AutoAssignResult:
    assigned_count: int = 0
    unassigned: list[dict] = field(default_factory=list)


def auto_assign_rooms(db: Session, *, actor: User | None = None) -> AutoAssignResult:
    """Give a room to every reservation that has none, in (section id, slot id) order.

    Costs a fixed number of round trips: one read of the pending pairs, one occupancy
    snapshot, one room read, then bulk writes.
    """
    result = AutoAssignResult()
    with atomic(db):
        pairs = db.execute(
            select(
                SlotReservation.id,
                SlotReservation.section_id,
                SlotReservation.time_slot_id,
                CourseOffering.id,
                CourseOffering.semester,
                Section.student_strength,
                Course.type,
            )
            .join(CourseRequest, CourseRequest.id == SlotReservation.request_id)
            .join(CourseOffering, CourseOffering.id == CourseRequest.offering_id)
            .join(Section, Section.id == SlotReservation.section_id)
            .join(Course, Course.id == CourseOffering.course_id)
            .where(SlotReservation.room_assignment_id.is_(None))
            .order_by(SlotReservation.section_id, SlotReservation.time_slot_id)
        ).all()
        if not pairs:
            return result

        snapshot = availability.load_snapshot(db, {pair[2] for pair in pairs})
        resolver = RoomResolver(load_rooms(db), snapshot)

        new_rows: list[dict] = []
        links: list[dict] = []
        pending_links: list[tuple[int, tuple[int, int]]] = []
        for reservation_id, section_id, slot_id, offering_id, semester, strength, course_type in pairs:
            existing = snapshot.assigned_pairs.get((section_id, slot_id))
            if existing is not None:
                links.append({"id": reservation_id, "room_assignment_id": existing})
                continue
            room_type = REQUIRED_ROOM_TYPE[course_type]
            room = resolver.find(slot_id, capacity=strength, room_type=room_type)
            if room is None:
                result.unassigned.append(
                    {
                        "reservation_id": reservation_id,
                        "section_id": section_id,
                        "time_slot_id": slot_id,
                        "reason": f"no free {room_type.value} room for {strength} students",
                    }
                )
                continue
            snapshot.claim(EntityKind.room, room.id, slot_id)
            new_rows.append(
                {
                    "room_id": room.id,
                    "section_id": section_id,
                    "time_slot_id": slot_id,
                    "semester": semester,
                    "offering_id": offering_id,
                    "assigned_by": actor.id if actor is not None else None,
                }
            )
            pending_links.append((reservation_id, (section_id, slot_id)))

        assignment_ids = availability.reserve_rooms(db, new_rows)
        for reservation_id, key in pending_links:
            links.append({"id": reservation_id, "room_assignment_id": assignment_ids[key]})
        availability.link_rooms(db, links)
        result.assigned_count = len(links)

    logger.info(
        "Auto-assigned rooms to %d reservation(s); %d left unassigned",
        result.assigned_count,
        len(result.unassigned),
    )
    return result


def list_assignments(
    db: Session,
    *,
    section_id: int | None = None,
    semester: int | None = None,
    room_id: int | None = None,
) -> list[dict]:
    stmt = (
        select(RoomAssignment, Room, Section, TimeSlot)
        .join(Room, Room.id == RoomAssignment.room_id)
        .join(Section, Section.id == RoomAssignment.section_id)
        .join(TimeSlot, TimeSlot.id == RoomAssignment.time_slot_id)
    )
    if section_id is not None:
        stmt = stmt.where(RoomAssignment.section_id == section_id)
    if semester is not None:
        stmt = stmt.where(RoomAssignment.semester == semester)
    if room_id is not None:
        stmt = stmt.where(RoomAssignment.room_id == room_id)
    stmt = stmt.order_by(RoomAssignment.semester, Section.name, TimeSlot.day_of_week, TimeSlot.start_time)
    return [
        {
            "id": assignment.id,
            "room_id": room.id,
            "room_name": room.name,
            "capacity": room.capacity,
            "room_type": room.type,
            "section_id": section.id,
            "section_name": section.name,
            "student_strength": section.student_strength,
            "time_slot_id": slot.id,
            "slot_label": slot.label,
            "day_of_week": slot.day_of_week,
            "start_time": slot.start_time,
            "end_time": slot.end_time,
            "semester": assignment.semester,
            "offering_id": assignment.offering_id,
        }
        for assignment, room, section, slot in db.execute(stmt)
    ]


def _required_room_type(db: Session, offering_id: int | None) -> RoomType | None:
    if offering_id is None:
        return None
    course_type = db.execute(
        select(Course.type)
        .join(CourseOffering, CourseOffering.course_id == Course.id)
        .where(CourseOffering.id == offering_id)
    ).scalar_one_or_none()
    return REQUIRED_ROOM_TYPE[course_type] if course_type is not None else None


def update_assignment(
    db: Session,
    assignment_id: int,
    *,
    room_id: int | None = None,
    time_slot_id: int | None = None,
    actor: User | None = None,
) -> RoomAssignment:
    """Move an assignment to another room and/or time slot after re-checking every invariant.

    A slot change drags the referencing reservations along, so the section and each
    instructor must also be free at the new slot.
    """
    if room_id is None and time_slot_id is None:
        raise ValidationError("Provide room_id and/or time_slot_id")

    with atomic(db):
        assignment = db.get(RoomAssignment, assignment_id, with_for_update=True)
        if assignment is None:
            raise NotFoundError("RoomAssignment", assignment_id)
        target_room_id = room_id if room_id is not None else assignment.room_id
        target_slot_id = time_slot_id if time_slot_id is not None else assignment.time_slot_id

        room = db.get(Room, target_room_id)
        if room is None:
            raise NotFoundError("Room", target_room_id)
        if target_slot_id != assignment.time_slot_id and db.get(TimeSlot, target_slot_id) is None:
            raise NotFoundError("TimeSlot", target_slot_id)
        section = db.get(Section, assignment.section_id)
        if section is None:
            raise NotFoundError("Section", assignment.section_id)

        check_room_fits(
            room,
            capacity=section.student_strength,
            room_type=_required_room_type(db, assignment.offering_id),
        )
        if not availability.is_free(db, EntityKind.room, room.id, target_slot_id, exclude_ids=[assignment.id]):
            raise ConflictError(
                f"Room {room.name} is already taken at time slot {target_slot_id}",
                details={"room_id": room.id, "time_slot_id": target_slot_id, "reason": "room_busy"},
            )

        if target_slot_id != assignment.time_slot_id:
            reservations = list(
                db.execute(
                    select(SlotReservation).where(SlotReservation.room_assignment_id == assignment.id)
                ).scalars()
            )
            own_ids = [reservation.id for reservation in reservations]
            if not availability.is_free(
                db, EntityKind.section, assignment.section_id, target_slot_id, exclude_ids=own_ids
            ):
                raise ConflictError(
                    f"Section {section.name} already has a class at time slot {target_slot_id}",
                    details={"section_id": section.id, "time_slot_id": target_slot_id, "reason": "section_busy"},
                )
            for reservation in reservations:
                if not availability.is_free(
                    db, EntityKind.instructor, reservation.instructor_id, target_slot_id, exclude_ids=own_ids
                ):
                    raise ConflictError(
                        f"Instructor is already teaching at time slot {target_slot_id}",
                        details={
                            "instructor_id": reservation.instructor_id,
                            "time_slot_id": target_slot_id,
                            "reason": "instructor_busy",
                        },
                    )
            if own_ids:
                db.execute(
                    update(SlotReservation),
                    [{"id": reservation_id, "time_slot_id": target_slot_id} for reservation_id in own_ids],
                )

        previous = {"room_id": assignment.room_id, "time_slot_id": assignment.time_slot_id}
        assignment.room_id = room.id
        assignment.time_slot_id = target_slot_id
        assignment.assigned_by = actor.id if actor is not None else assignment.assigned_by
        record_event(
            db,
            actor=actor,
            action="room_assignment.update",
            entity_type="room_assignment",
            entity_id=assignment.id,
            details={"from": previous, "to": {"room_id": room.id, "time_slot_id": target_slot_id}},
        )

    db.refresh(assignment)
    return assignment


def delete_assignment(db: Session, assignment_id: int, *, actor: User | None = None) -> int:
    """Release the room; the referencing reservations stay, now waiting for a room."""
    with atomic(db):
        assignment = db.get(RoomAssignment, assignment_id, with_for_update=True)
        if assignment is None:
            raise NotFoundError("RoomAssignment", assignment_id)
        unlinked = db.execute(
            update(SlotReservation)
            .where(SlotReservation.room_assignment_id == assignment.id)
            .values(room_assignment_id=None)
            .execution_options(synchronize_session=False)
        ).rowcount
        record_event(
            db,
            actor=actor,
            action="room_assignment.delete",
            entity_type="room_assignment",
            entity_id=assignment.id,
            details={"room_id": assignment.room_id, "time_slot_id": assignment.time_slot_id},
        )
        db.delete(assignment)
    logger.info("Released room assignment %s; %d reservation(s) now unassigned", assignment_id, unlinked or 0)
    return unlinked or 0

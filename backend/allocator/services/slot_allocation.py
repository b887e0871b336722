from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.orm import Session

from allocator.core.exceptions import AuthorizationError, ConflictError, NotFoundError, StateError, ValidationError
from allocator.db.session import atomic
from allocator.models.course import Course
from allocator.models.course_request import CourseRequest
from allocator.models.offering import CourseOffering
from allocator.models.section import Section
from allocator.models.slot_reservation import SlotReservation
from allocator.models.time_slot import TimeSlot
from allocator.models.user import User
from allocator.schemas.common import slot_sort_key
from allocator.services import availability
from allocator.services.availability import EntityKind
from allocator.services.lifecycle import Action, ensure_transition
from allocator.services.room_resolver import RoomResolver, load_rooms

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RequestContext:
    request: CourseRequest
    offering: CourseOffering
    section: Section
    course: Course
    has_reservations: bool


def load_request_context(db: Session, request_id: int, *, lock: bool = False) -> RequestContext:
    has_reservations = (
        select(SlotReservation.id).where(SlotReservation.request_id == CourseRequest.id).exists()
    )
    stmt = (
        select(CourseRequest, CourseOffering, Section, Course, has_reservations.label("has_reservations"))
        .join(CourseOffering, CourseOffering.id == CourseRequest.offering_id)
        .join(Section, Section.id == CourseOffering.section_id)
        .join(Course, Course.id == CourseOffering.course_id)
        .where(CourseRequest.id == request_id)
    )
    if lock:
        stmt = stmt.with_for_update(of=CourseRequest)
    row = db.execute(stmt.execution_options(populate_existing=True)).first()
    if row is None:
        raise NotFoundError("CourseRequest", request_id)
    return RequestContext(*row)


@dataclass(frozen=True)
class PlacedSlot:
    time_slot_id: int
    room_id: int
    room_name: str
    room_assignment_id: int


@dataclass(frozen=True)
class SlotSelection:
    request_id: int
    reservations: list[PlacedSlot]


def select_slots(
    db: Session,
    *,
    request_id: int,
    time_slot_ids: Sequence[int],
    actor: User,
) -> SlotSelection:
    """Reserve the requested slots for an accepted request, all or nothing.

    Slots are checked in the order given; the first one where the instructor or the
    section is busy, or where no fitting room is free, aborts the whole selection.
    Store cost does not depend on the number of slots.
    """
    slot_ids = list(time_slot_ids)
    if not slot_ids:
        raise ValidationError("At least one time slot is required")
    if len(set(slot_ids)) != len(slot_ids):
        raise ValidationError("Time slots must not repeat", details={"time_slots": slot_ids})

    actor_id = actor.id
    with atomic(db):
        context = load_request_context(db, request_id, lock=True)
        request, section, course = context.request, context.section, context.course
        section_id = section.id
        if request.instructor_id != actor_id:
            raise AuthorizationError("Only the instructor bound to this request can select its slots")
        ensure_transition(request.status, Action.select_slots)
        if context.has_reservations:
            raise StateError(
                "Slots are already selected for this request; undo the acceptance to choose again",
                details={"request_id": request.id},
            )

        known = set(db.execute(select(TimeSlot.id).where(TimeSlot.id.in_(slot_ids))).scalars())
        for slot_id in slot_ids:
            if slot_id not in known:
                raise NotFoundError("TimeSlot", slot_id)

        snapshot = availability.load_snapshot(db, slot_ids)
        for slot_id in slot_ids:
            if not snapshot.is_free(EntityKind.instructor, actor_id, slot_id):
                raise ConflictError(
                    f"Instructor already teaches at time slot {slot_id}",
                    details={"time_slot_id": slot_id, "blocked_by": "instructor"},
                )
            if (
                not snapshot.is_free(EntityKind.section, section.id, slot_id)
                or (section.id, slot_id) in snapshot.assigned_pairs
            ):
                raise ConflictError(
                    f"Section {section.name} already has a class at time slot {slot_id}",
                    details={"time_slot_id": slot_id, "blocked_by": "section"},
                )

        room_type = course.required_room_type
        resolver = RoomResolver(
            load_rooms(db, room_type=room_type, min_capacity=section.student_strength),
            snapshot,
        )
        picks = [
            (slot_id, resolver.resolve(section.id, slot_id, capacity=section.student_strength, room_type=room_type))
            for slot_id in slot_ids
        ]

        assignment_ids = availability.reserve_rooms(
            db,
            [
                {
                    "room_id": room.id,
                    "section_id": section.id,
                    "time_slot_id": slot_id,
                    "semester": context.offering.semester,
                    "offering_id": context.offering.id,
                    "assigned_by": actor_id,
                }
                for slot_id, room in picks
            ],
        )
        availability.reserve_slots(
            db,
            [
                {
                    "request_id": request.id,
                    "instructor_id": actor_id,
                    "section_id": section.id,
                    "time_slot_id": slot_id,
                    "room_assignment_id": assignment_ids[(section.id, slot_id)],
                }
                for slot_id, _ in picks
            ],
        )

    logger.info("Request %s reserved %d slot(s) for instructor %s", request_id, len(picks), actor_id)
    return SlotSelection(
        request_id=request_id,
        reservations=[
            PlacedSlot(
                time_slot_id=slot_id,
                room_id=room.id,
                room_name=room.name,
                room_assignment_id=assignment_ids[(section_id, slot_id)],
            )
            for slot_id, room in picks
        ],
    )


def available_slots(db: Session, *, request_id: int, instructor_id: str) -> dict:
    """Split the section's shift slots into free and blocked ones, with the reason for each block."""
    context = load_request_context(db, request_id)
    section = context.section
    candidates = sorted(
        db.execute(select(TimeSlot).where(TimeSlot.shift == section.shift)).scalars(),
        key=lambda slot: slot_sort_key(slot.day_of_week, slot.start_time),
    )

    section_blocked: dict[int, str] = {}
    section_rows = db.execute(
        select(SlotReservation.time_slot_id, User.name)
        .join(User, User.id == SlotReservation.instructor_id)
        .where(SlotReservation.section_id == section.id)
    )
    for slot_id, name in section_rows:
        section_blocked[slot_id] = f"Already assigned to {name} for this section"

    instructor_blocked: dict[int, str] = {}
    instructor_rows = db.execute(
        select(SlotReservation.time_slot_id, Course.code, Section.name)
        .join(CourseRequest, CourseRequest.id == SlotReservation.request_id)
        .join(CourseOffering, CourseOffering.id == CourseRequest.offering_id)
        .join(Course, Course.id == CourseOffering.course_id)
        .join(Section, Section.id == SlotReservation.section_id)
        .where(SlotReservation.instructor_id == instructor_id)
    )
    for slot_id, course_code, section_name in instructor_rows:
        instructor_blocked[slot_id] = f"You already have a class at this time: {course_code} - {section_name}"

    available: list[TimeSlot] = []
    blocked: list[dict] = []
    for slot in candidates:
        if slot.id in section_blocked:
            blocked.append({"slot": slot, "blocked_by": "section", "reason": section_blocked[slot.id]})
        elif slot.id in instructor_blocked:
            blocked.append({"slot": slot, "blocked_by": "instructor", "reason": instructor_blocked[slot.id]})
        else:
            available.append(slot)

    return {
        "request_id": request_id,
        "instructor_id": instructor_id,
        "section_id": section.id,
        "available": available,
        "blocked": blocked,
    }

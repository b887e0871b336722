"""Course request state machine: accept, undo, reassign, reject and request generation.

Status lives in an explicit enum; every mutation consults :data:`TRANSITIONS` before
touching the store. "Slots selected" is not a status of its own: an accepted request
has selected its slots exactly when it owns reservations.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import insert, or_, select, update
from sqlalchemy.orm import Session

from allocator.core.exceptions import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    StateError,
    ValidationError,
)
from allocator.db.session import atomic
from allocator.models.course import Course
from allocator.models.course_request import ACTIVE_REQUEST_STATUSES, CourseRequest, RequestStatus
from allocator.models.offering import CourseOffering
from allocator.models.section import Section
from allocator.models.slot_reservation import SlotReservation
from allocator.models.time_slot import TimeSlot
from allocator.models.user import User, UserRole
from allocator.schemas.common import slot_sort_key
from allocator.schemas.course_request import RequestPreferences
from allocator.services import availability
from allocator.services.audit import record_event

logger = logging.getLogger(__name__)


class Action(str, Enum):
    accept = "accept"
    reject = "reject"
    undo = "undo"
    reassign = "reassign"
    select_slots = "select_slots"


TRANSITIONS: dict[tuple[RequestStatus, Action], RequestStatus] = {
    (RequestStatus.pending, Action.accept): RequestStatus.accepted,
    (RequestStatus.pending, Action.reassign): RequestStatus.accepted,
    (RequestStatus.pending, Action.reject): RequestStatus.rejected,
    (RequestStatus.accepted, Action.undo): RequestStatus.pending,
    (RequestStatus.accepted, Action.reassign): RequestStatus.accepted,
    (RequestStatus.accepted, Action.select_slots): RequestStatus.accepted,
}


def ensure_transition(status: RequestStatus, action: Action) -> RequestStatus:
    try:
        return TRANSITIONS[(status, action)]
    except KeyError:
        raise StateError(
            f"Cannot {action.value.replace('_', ' ')} a request that is {status.value}",
            details={"status": status.value, "action": action.value},
        ) from None


def source_states(action: Action) -> list[RequestStatus]:
    return [status for (status, candidate) in TRANSITIONS if candidate is action]


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _get_request(db: Session, request_id: int) -> CourseRequest:
    request = db.get(CourseRequest, request_id, with_for_update=True, populate_existing=True)
    if request is None:
        raise NotFoundError("CourseRequest", request_id)
    return request


def accept(
    db: Session,
    request_id: int,
    *,
    actor: User,
    preferences: RequestPreferences | None = None,
) -> CourseRequest:
    """Bind the acting instructor to a pending request.

    The status check and the write are one conditional UPDATE, so of two racing
    instructors exactly one matches a row; the other gets a :class:`StateError`.
    """
    if actor.role != UserRole.instructor:
        raise AuthorizationError("Only instructors can accept course requests")
    actor_id = actor.id

    with atomic(db):
        won = db.execute(
            update(CourseRequest)
            .where(
                CourseRequest.id == request_id,
                CourseRequest.status.in_(source_states(Action.accept)),
            )
            .values(
                status=TRANSITIONS[(RequestStatus.pending, Action.accept)],
                instructor_id=actor_id,
                accepted_at=_now(),
            )
            .execution_options(synchronize_session=False)
        ).rowcount
        request = db.get(CourseRequest, request_id, populate_existing=True)
        if request is None:
            raise NotFoundError("CourseRequest", request_id)
        if won != 1:
            logger.warning("Accept of request %s by %s lost: status is %s", request_id, actor_id, request.status.value)
            raise StateError(
                f"Request is already {request.status.value}",
                details={"status": request.status.value, "instructor_id": request.instructor_id},
            )
        if preferences is not None:
            merged = RequestPreferences.model_validate(request.preferences or {}).model_dump(mode="json")
            merged.update(preferences.model_dump(mode="json", exclude_unset=True))
            request.preferences = merged
        record_event(db, actor=actor, action="request.accept", entity_type="course_request", entity_id=request_id)

    logger.info("Request %s accepted by instructor %s", request_id, actor_id)
    db.refresh(request)
    return request


@dataclass(frozen=True)
class UndoResult:
    request: CourseRequest
    released_reservations: int
    released_room_assignments: int


def undo_accept(db: Session, request_id: int, *, actor: User) -> UndoResult:
    """Exact inverse of accept plus slot selection: back to pending with nothing reserved."""
    with atomic(db):
        request = _get_request(db, request_id)
        if actor.role != UserRole.admin and request.instructor_id != actor.id:
            raise AuthorizationError("Not authorized to undo this request")
        request.status = ensure_transition(request.status, Action.undo)
        released = availability.release_request(db, request.id)
        previous_instructor = request.instructor_id
        request.instructor_id = None
        request.accepted_at = None
        record_event(
            db,
            actor=actor,
            action="request.undo",
            entity_type="course_request",
            entity_id=request.id,
            details={
                "instructor_id": previous_instructor,
                "released_reservations": released.reservations,
                "released_room_assignments": released.room_assignments,
            },
        )

    logger.info(
        "Request %s returned to pending; released %d reservation(s), %d room assignment(s)",
        request_id,
        released.reservations,
        released.room_assignments,
    )
    db.refresh(request)
    return UndoResult(
        request=request,
        released_reservations=released.reservations,
        released_room_assignments=released.room_assignments,
    )


def reassign(db: Session, request_id: int, *, instructor_id: str, actor: User) -> CourseRequest:
    """Hand a request to another instructor, keeping its slots and rooms.

    Every reserved slot is re-checked against the new instructor's timetable first;
    a single clash aborts without changing anything.
    """
    if actor.role != UserRole.admin:
        raise AuthorizationError("Only admins can reassign course requests")

    with atomic(db):
        request = _get_request(db, request_id)
        instructor = db.get(User, instructor_id)
        if instructor is None:
            raise NotFoundError("User", instructor_id)
        if instructor.role != UserRole.instructor or not instructor.is_active:
            raise ValidationError(
                "Requests can only be assigned to active instructors",
                details={"instructor_id": instructor_id},
            )
        target = ensure_transition(request.status, Action.reassign)
        previous_instructor = request.instructor_id
        if previous_instructor == instructor.id:
            return request

        reserved_slots = list(
            db.execute(select(SlotReservation.time_slot_id).where(SlotReservation.request_id == request.id)).scalars()
        )
        if reserved_slots:
            clashes = set(
                db.execute(
                    select(SlotReservation.time_slot_id).where(
                        SlotReservation.instructor_id == instructor.id,
                        SlotReservation.time_slot_id.in_(reserved_slots),
                        SlotReservation.request_id != request.id,
                    )
                ).scalars()
            )
            if clashes:
                first = min(clashes)
                logger.warning("Reassign of request %s to %s blocked at slot %s", request_id, instructor.id, first)
                raise ConflictError(
                    f"{instructor.name} already teaches at time slot {first}",
                    details={"time_slot_ids": sorted(clashes), "blocked_by": "instructor"},
                )
            db.execute(
                update(SlotReservation)
                .where(SlotReservation.request_id == request.id)
                .values(instructor_id=instructor.id)
                .execution_options(synchronize_session=False)
            )

        request.instructor_id = instructor.id
        request.status = target
        if request.accepted_at is None:
            request.accepted_at = _now()
        record_event(
            db,
            actor=actor,
            action="request.reassign",
            entity_type="course_request",
            entity_id=request.id,
            details={"from": previous_instructor, "to": instructor.id, "slots": len(reserved_slots)},
        )

    logger.info("Request %s reassigned from %s to %s", request_id, previous_instructor, instructor_id)
    db.refresh(request)
    return request


def reject(db: Session, request_id: int, *, actor: User) -> CourseRequest:
    with atomic(db):
        request = _get_request(db, request_id)
        request.status = ensure_transition(request.status, Action.reject)
        record_event(db, actor=actor, action="request.reject", entity_type="course_request", entity_id=request.id)
    db.refresh(request)
    return request


def generate_requests(
    db: Session,
    *,
    actor: User | None = None,
    section_id: int | None = None,
    semester: int | None = None,
    shift: str | None = None,
) -> int:
    """Open one pending request for every offering that has no active request yet."""
    with atomic(db):
        active = (
            select(CourseRequest.id)
            .where(
                CourseRequest.offering_id == CourseOffering.id,
                CourseRequest.status.in_(ACTIVE_REQUEST_STATUSES),
            )
            .exists()
        )
        stmt = select(CourseOffering.id).where(~active)
        if section_id is not None:
            stmt = stmt.where(CourseOffering.section_id == section_id)
        if semester is not None:
            stmt = stmt.where(CourseOffering.semester == semester)
        if shift is not None:
            stmt = stmt.where(CourseOffering.shift == shift)
        offering_ids = list(db.execute(stmt.order_by(CourseOffering.id)).scalars())
        if offering_ids:
            preferences = RequestPreferences(sent_by="admin_auto").model_dump(mode="json")
            db.execute(
                insert(CourseRequest),
                [
                    {
                        "offering_id": offering_id,
                        "status": RequestStatus.pending,
                        "preferences": preferences,
                        "requested_by": actor.id if actor is not None else None,
                    }
                    for offering_id in offering_ids
                ],
            )
    logger.info("Generated %d course request(s)", len(offering_ids))
    return len(offering_ids)


def list_requests(
    db: Session,
    *,
    status: RequestStatus | None = None,
    instructor_id: str | None = None,
    open_for: str | None = None,
) -> list[dict]:
    """Requests with course/section details and their reserved slots, in two reads.

    ``open_for`` narrows the listing to what one instructor can act on: every pending
    request plus the ones already bound to that instructor.
    """
    stmt = (
        select(CourseRequest, CourseOffering, Course, Section, User.name)
        .join(CourseOffering, CourseOffering.id == CourseRequest.offering_id)
        .join(Course, Course.id == CourseOffering.course_id)
        .join(Section, Section.id == CourseOffering.section_id)
        .outerjoin(User, User.id == CourseRequest.instructor_id)
    )
    if status is not None:
        stmt = stmt.where(CourseRequest.status == status)
    if instructor_id is not None:
        stmt = stmt.where(CourseRequest.instructor_id == instructor_id)
    if open_for is not None:
        stmt = stmt.where(
            or_(CourseRequest.status == RequestStatus.pending, CourseRequest.instructor_id == open_for)
        )
    rows = db.execute(stmt.order_by(CourseRequest.id)).all()

    slots_by_request: dict[int, list[dict]] = {}
    request_ids = [row[0].id for row in rows]
    if request_ids:
        slot_rows = db.execute(
            select(SlotReservation.request_id, SlotReservation.room_assignment_id, TimeSlot)
            .join(TimeSlot, TimeSlot.id == SlotReservation.time_slot_id)
            .where(SlotReservation.request_id.in_(request_ids))
        )
        for request_id, room_assignment_id, slot in slot_rows:
            slots_by_request.setdefault(request_id, []).append(
                {
                    "time_slot_id": slot.id,
                    "day_of_week": slot.day_of_week,
                    "start_time": slot.start_time,
                    "end_time": slot.end_time,
                    "label": slot.label,
                    "room_assignment_id": room_assignment_id,
                }
            )

    return [
        {
            "id": request.id,
            "offering_id": offering.id,
            "course_id": course.id,
            "course_code": course.code,
            "course_name": course.name,
            "section_id": section.id,
            "section_name": section.name,
            "semester": offering.semester,
            "shift": offering.shift,
            "instructor_id": request.instructor_id,
            "instructor_name": instructor_name,
            "status": request.status,
            "preferences": request.preferences or {},
            "created_at": request.created_at,
            "accepted_at": request.accepted_at,
            "reserved_slots": sorted(
                slots_by_request.get(request.id, []),
                key=lambda item: slot_sort_key(item["day_of_week"], item["start_time"]),
            ),
        }
        for request, offering, course, section, instructor_name in rows
    ]


def list_open_requests(db: Session, instructor_id: str) -> list[dict]:
    return list_requests(db, open_for=instructor_id)

"""Exam timetable and invigilator allocation.

Exams occupy (date, time slot) pairs rather than weekly slots. Rooms and sections
may hold one exam per pair; invigilators are kept non-overlapping in memory while a
batch is computed and re-checked on single writes.
"""
from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import date, timedelta

from sqlalchemy import and_, delete, insert, select, update
from sqlalchemy.orm import Session

from allocator.core.config import get_settings
from allocator.core.exceptions import ConflictError, NotFoundError, ValidationError
from allocator.db.session import atomic
from allocator.models.course import Course
from allocator.models.course_request import CourseRequest, RequestStatus
from allocator.models.exam import Exam, ExamType, InvigilatorMode, ResetType
from allocator.models.offering import CourseOffering
from allocator.models.room import Room
from allocator.models.section import Section
from allocator.models.slot_reservation import SlotReservation
from allocator.models.time_slot import TimeSlot
from allocator.models.user import User, UserRole
from allocator.schemas.common import WEEKDAYS
from allocator.services import availability
from allocator.services.audit import record_event
from allocator.services.availability import EntityKind
from allocator.services.room_resolver import check_room_fits, load_rooms

logger = logging.getLogger(__name__)

ExamKey = tuple[date, int]


def _weekday(value: date) -> str:
    return WEEKDAYS[value.weekday()]


def _load_instructors(db: Session) -> list[str]:
    return list(
        db.execute(
            select(User.id)
            .where(User.role == UserRole.instructor, User.is_active.is_(True))
            .order_by(User.id)
        ).scalars()
    )


def _class_busy_instructors(db: Session, slot_ids: set[int]) -> set[tuple[str, int]]:
    """(instructor, slot) pairs taken by weekly classes, used when exams share class slots."""
    if not slot_ids:
        return set()
    return set(
        db.execute(
            select(SlotReservation.instructor_id, SlotReservation.time_slot_id).where(
                SlotReservation.time_slot_id.in_(sorted(slot_ids))
            )
        ).all()
    )


@dataclass
class InvigilatorPool:
    """Least-loaded picker over a fixed instructor list; ties go to the lowest id."""

    instructor_ids: list[str]
    load: Counter = field(default_factory=Counter)
    busy: set[tuple[str, ExamKey]] = field(default_factory=set)
    class_busy: set[tuple[str, int]] = field(default_factory=set)

    def is_free(self, instructor_id: str, key: ExamKey) -> bool:
        return (instructor_id, key) not in self.busy and (instructor_id, key[1]) not in self.class_busy

    def pick(self, key: ExamKey, *, preferred: str | None = None) -> str | None:
        if preferred is not None and preferred in self.instructor_ids and self.is_free(preferred, key):
            return preferred
        free = [instructor_id for instructor_id in self.instructor_ids if self.is_free(instructor_id, key)]
        if not free:
            return None
        return min(free, key=lambda instructor_id: (self.load[instructor_id], instructor_id))

    def claim(self, instructor_id: str, key: ExamKey) -> None:
        self.busy.add((instructor_id, key))
        self.load[instructor_id] += 1


def reset_exams(db: Session, reset_type: ResetType) -> int:
    """Reassign every invigilator, or wipe the exam table for ``full``.

    The invigilator reset reads all exams once and all instructors once, balances the
    load in memory and writes everything back as one batched UPDATE.
    """
    if reset_type is ResetType.full:
        with atomic(db):
            removed = db.execute(delete(Exam).execution_options(synchronize_session=False)).rowcount or 0
        logger.info("Removed all %d exam(s)", removed)
        return removed

    with atomic(db):
        exams = db.execute(
            select(Exam.id, Exam.exam_date, Exam.time_slot_id).order_by(Exam.exam_date, Exam.time_slot_id, Exam.id)
        ).all()
        if not exams:
            return 0
        instructor_ids = _load_instructors(db)
        if not instructor_ids:
            raise ConflictError("No active instructors available to invigilate", details={"exams": len(exams)})

        class_busy: set[tuple[str, int]] = set()
        if get_settings().exam_shares_class_slots:
            class_busy = _class_busy_instructors(db, {slot_id for _, _, slot_id in exams})
        pool = InvigilatorPool(instructor_ids, class_busy=class_busy)

        updates: list[dict] = []
        for exam_id, exam_date, slot_id in exams:
            key = (exam_date, slot_id)
            instructor_id = pool.pick(key)
            if instructor_id is None:
                raise ConflictError(
                    f"Every instructor is already invigilating on {exam_date.isoformat()} at time slot {slot_id}",
                    details={"exam_id": exam_id, "exam_date": exam_date.isoformat(), "time_slot_id": slot_id},
                )
            pool.claim(instructor_id, key)
            updates.append({"id": exam_id, "invigilator_id": instructor_id})

        size = get_settings().bulk_write_batch_size
        for start in range(0, len(updates), size):
            db.execute(update(Exam), updates[start : start + size])

    logger.info("Reassigned invigilators for %d exam(s) across %d instructor(s)", len(updates), len(instructor_ids))
    return len(updates)


@dataclass
class ExamScheduleResult:
    scheduled: int = 0
    skipped: int = 0
    unscheduled: list[dict] = field(default_factory=list)


def generate_exam_schedule(
    db: Session,
    *,
    exam_type: ExamType,
    start_date: date,
    end_date: date,
    semester: int | None = None,
    shift: str | None = None,
    mode: InvigilatorMode | None = None,
) -> ExamScheduleResult:
    """Place one exam per offering inside ``[start_date, end_date]``.

    Each offering, in (section id, offering id) order, takes the earliest date and slot
    where its section is free and both a room and an invigilator can be found.
    """
    if end_date < start_date:
        raise ValidationError("end_date must not be before start_date")
    settings = get_settings()
    mode = mode or InvigilatorMode(settings.exam_default_mode)
    result = ExamScheduleResult()

    with atomic(db):
        already = (
            select(Exam.id)
            .where(Exam.offering_id == CourseOffering.id, Exam.exam_type == exam_type)
            .exists()
        )
        offering_stmt = (
            select(
                CourseOffering.id,
                CourseOffering.course_id,
                CourseOffering.section_id,
                CourseOffering.instructor_id,
                Section.student_strength,
                CourseRequest.instructor_id,
                already.label("has_exam"),
            )
            .join(Section, and_(Section.id == CourseOffering.section_id, Section.semester == CourseOffering.semester))
            .outerjoin(
                CourseRequest,
                and_(
                    CourseRequest.offering_id == CourseOffering.id,
                    CourseRequest.status == RequestStatus.accepted,
                ),
            )
            .order_by(CourseOffering.section_id, CourseOffering.id)
        )
        if semester is not None:
            offering_stmt = offering_stmt.where(CourseOffering.semester == semester)
        if shift is not None:
            offering_stmt = offering_stmt.where(CourseOffering.shift == shift)
        offerings = db.execute(offering_stmt).all()
        if not offerings:
            return result

        slot_stmt = select(TimeSlot.id, TimeSlot.day_of_week, TimeSlot.start_time)
        if shift is not None:
            slot_stmt = slot_stmt.where(TimeSlot.shift == shift)
        slots_by_day: dict[str, list[int]] = {}
        for slot_id, day, _ in sorted(db.execute(slot_stmt).all(), key=lambda row: (row[2], row[0])):
            slots_by_day.setdefault(day, []).append(slot_id)

        candidates: list[ExamKey] = []
        current = start_date
        while current <= end_date:
            candidates.extend((current, slot_id) for slot_id in slots_by_day.get(_weekday(current), []))
            current += timedelta(days=1)

        taken_rooms: set[tuple[int, ExamKey]] = set()
        taken_sections: set[tuple[int, ExamKey]] = set()
        pool = InvigilatorPool(_load_instructors(db))
        existing = db.execute(
            select(Exam.room_id, Exam.section_id, Exam.invigilator_id, Exam.exam_date, Exam.time_slot_id).where(
                Exam.exam_date >= start_date, Exam.exam_date <= end_date
            )
        )
        for room_id, section_id, invigilator_id, exam_date, slot_id in existing:
            key = (exam_date, slot_id)
            taken_rooms.add((room_id, key))
            taken_sections.add((section_id, key))
            if invigilator_id is not None:
                pool.claim(invigilator_id, key)
        rooms = load_rooms(db)

        class_snapshot = None
        if settings.exam_shares_class_slots:
            slot_ids = {slot_id for _, slot_id in candidates}
            class_snapshot = availability.load_snapshot(db, slot_ids)
            pool.class_busy = set(class_snapshot.instructor_slots)

        seen: set[int] = set()
        rows: list[dict] = []
        for offering_id, course_id, section_id, preferred_id, strength, bound_id, has_exam in offerings:
            if offering_id in seen:
                continue
            seen.add(offering_id)
            if has_exam:
                result.skipped += 1
                continue

            placed = False
            for key in candidates:
                if (section_id, key) in taken_sections:
                    continue
                if class_snapshot is not None and not class_snapshot.is_free(EntityKind.section, section_id, key[1]):
                    continue
                room = next(
                    (
                        candidate
                        for candidate in rooms
                        if candidate.capacity >= strength
                        and (candidate.id, key) not in taken_rooms
                        and (class_snapshot is None or class_snapshot.is_free(EntityKind.room, candidate.id, key[1]))
                    ),
                    None,
                )
                if room is None:
                    continue
                preferred = (bound_id or preferred_id) if mode is InvigilatorMode.match else None
                invigilator_id = pool.pick(key, preferred=preferred)
                if invigilator_id is None:
                    continue

                taken_rooms.add((room.id, key))
                taken_sections.add((section_id, key))
                pool.claim(invigilator_id, key)
                rows.append(
                    {
                        "offering_id": offering_id,
                        "course_id": course_id,
                        "section_id": section_id,
                        "room_id": room.id,
                        "time_slot_id": key[1],
                        "exam_date": key[0],
                        "exam_type": exam_type,
                        "invigilator_id": invigilator_id,
                        "mode": mode,
                    }
                )
                placed = True
                break

            if not placed:
                result.unscheduled.append(
                    {
                        "offering_id": offering_id,
                        "section_id": section_id,
                        "reason": "no free date, room and invigilator in range",
                    }
                )

        if rows:
            size = settings.bulk_write_batch_size
            for start in range(0, len(rows), size):
                db.execute(insert(Exam), rows[start : start + size])
        result.scheduled = len(rows)

    logger.info(
        "Scheduled %d %s exam(s) between %s and %s; %d skipped, %d unscheduled",
        result.scheduled,
        exam_type.value,
        start_date.isoformat(),
        end_date.isoformat(),
        result.skipped,
        len(result.unscheduled),
    )
    return result


def create_exam(
    db: Session,
    *,
    offering_id: int,
    exam_type: ExamType,
    exam_date: date,
    time_slot_id: int,
    room_id: int,
    invigilator_id: str | None = None,
    mode: InvigilatorMode = InvigilatorMode.match,
    actor: User | None = None,
) -> Exam:
    with atomic(db):
        row = db.execute(
            select(CourseOffering, Section)
            .join(Section, Section.id == CourseOffering.section_id)
            .where(CourseOffering.id == offering_id)
        ).first()
        if row is None:
            raise NotFoundError("CourseOffering", offering_id)
        offering, section = row

        slot = db.get(TimeSlot, time_slot_id)
        if slot is None:
            raise NotFoundError("TimeSlot", time_slot_id)
        if slot.day_of_week != _weekday(exam_date):
            raise ValidationError(
                f"Time slot {slot.label} is on {slot.day_of_week}, but {exam_date.isoformat()} is a {_weekday(exam_date)}",
                details={"time_slot_id": slot.id, "exam_date": exam_date.isoformat()},
            )
        room = db.get(Room, room_id)
        if room is None:
            raise NotFoundError("Room", room_id)
        check_room_fits(room, capacity=section.student_strength, room_type=None)

        if invigilator_id is not None:
            invigilator = db.get(User, invigilator_id)
            if invigilator is None:
                raise NotFoundError("User", invigilator_id)
            if invigilator.role != UserRole.instructor:
                raise ValidationError("Invigilators must be instructors", details={"invigilator_id": invigilator_id})

        clashes = db.execute(
            select(Exam.room_id, Exam.section_id, Exam.invigilator_id).where(
                Exam.exam_date == exam_date, Exam.time_slot_id == time_slot_id
            )
        ).all()
        for other_room, other_section, other_invigilator in clashes:
            if other_room == room.id:
                raise ConflictError(
                    f"Room {room.name} already hosts an exam then",
                    details={"room_id": room.id, "reason": "room_busy"},
                )
            if other_section == section.id:
                raise ConflictError(
                    f"Section {section.name} already sits an exam then",
                    details={"section_id": section.id, "reason": "section_busy"},
                )
            if invigilator_id is not None and other_invigilator == invigilator_id:
                raise ConflictError(
                    "Invigilator is already supervising another exam then",
                    details={"invigilator_id": invigilator_id, "reason": "invigilator_busy"},
                )

        if get_settings().exam_shares_class_slots:
            if not availability.is_free(db, EntityKind.room, room.id, time_slot_id):
                raise ConflictError(
                    f"Room {room.name} holds a class at that slot",
                    details={"room_id": room.id, "reason": "room_busy"},
                )
            if not availability.is_free(db, EntityKind.section, section.id, time_slot_id):
                raise ConflictError(
                    f"Section {section.name} has a class at that slot",
                    details={"section_id": section.id, "reason": "section_busy"},
                )
            if invigilator_id is not None and not availability.is_free(
                db, EntityKind.instructor, invigilator_id, time_slot_id
            ):
                raise ConflictError(
                    "Invigilator teaches a class at that slot",
                    details={"invigilator_id": invigilator_id, "reason": "invigilator_busy"},
                )

        exam = Exam(
            offering_id=offering.id,
            course_id=offering.course_id,
            section_id=section.id,
            room_id=room.id,
            time_slot_id=time_slot_id,
            exam_date=exam_date,
            exam_type=exam_type,
            invigilator_id=invigilator_id,
            mode=mode,
        )
        db.add(exam)
        db.flush()
        record_event(db, actor=actor, action="exam.create", entity_type="exam", entity_id=exam.id)

    db.refresh(exam)
    return exam


def list_exams(
    db: Session,
    *,
    exam_type: ExamType | None = None,
    section_id: int | None = None,
    invigilator_id: str | None = None,
    start_date: date | None = None,
    end_date: date | None = None,
) -> list[dict]:
    stmt = (
        select(Exam, Course.code, Course.name, Section.name, Room.name, TimeSlot, User.name)
        .join(Course, Course.id == Exam.course_id)
        .join(Section, Section.id == Exam.section_id)
        .join(Room, Room.id == Exam.room_id)
        .join(TimeSlot, TimeSlot.id == Exam.time_slot_id)
        .outerjoin(User, User.id == Exam.invigilator_id)
    )
    if exam_type is not None:
        stmt = stmt.where(Exam.exam_type == exam_type)
    if section_id is not None:
        stmt = stmt.where(Exam.section_id == section_id)
    if invigilator_id is not None:
        stmt = stmt.where(Exam.invigilator_id == invigilator_id)
    if start_date is not None:
        stmt = stmt.where(Exam.exam_date >= start_date)
    if end_date is not None:
        stmt = stmt.where(Exam.exam_date <= end_date)
    stmt = stmt.order_by(Exam.exam_date, TimeSlot.start_time, Exam.id)

    return [
        {
            "id": exam.id,
            "offering_id": exam.offering_id,
            "course_id": exam.course_id,
            "course_code": course_code,
            "course_name": course_name,
            "section_id": exam.section_id,
            "section_name": section_name,
            "room_id": exam.room_id,
            "room_name": room_name,
            "time_slot_id": slot.id,
            "start_time": slot.start_time,
            "end_time": slot.end_time,
            "exam_date": exam.exam_date,
            "exam_type": exam.exam_type,
            "invigilator_id": exam.invigilator_id,
            "invigilator_name": invigilator_name,
            "mode": exam.mode,
        }
        for exam, course_code, course_name, section_name, room_name, slot, invigilator_name in db.execute(stmt)
    ]

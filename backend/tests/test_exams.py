from collections import Counter
from datetime import date, timedelta

import pytest
from sqlalchemy import func, select

from allocator.core.config import get_settings
from allocator.core.exceptions import ConflictError, ValidationError
from allocator.models.course_request import RequestStatus
from allocator.models.exam import Exam, ExamType, InvigilatorMode, ResetType
from allocator.models.time_slot import TimeSlot
from allocator.models.user import UserRole
from allocator.services import exams
from allocator.services.slot_allocation import select_slots

MONDAY = date(2026, 11, 2)


def _seed_exams(db, seed, total_dates, slots_per_day):
    room = seed.room(capacity=100)
    section = seed.section()
    course = seed.course()
    slots = seed.slots(slots_per_day * 5)
    rows = []
    for day in range(total_dates):
        for slot in slots[:slots_per_day]:
            rows.append(
                Exam(
                    course_id=course.id,
                    section_id=section.id,
                    room_id=room.id,
                    time_slot_id=slot.id,
                    exam_date=MONDAY + timedelta(days=day),
                    exam_type=ExamType.final,
                )
            )
    db.add_all(rows)
    db.commit()
    return rows


def test_invigilator_reset_for_hundred_exams_takes_three_queries(db_session, seed, query_counter):
    instructors = [seed.user() for _ in range(5)]
    instructor_ids = {instructor.id for instructor in instructors}
    _seed_exams(db_session, seed, total_dates=10, slots_per_day=10)

    query_counter.reset()
    updated = exams.reset_exams(db_session, ResetType.invigilators)

    assert query_counter.count == 3
    assert updated == 100
    assigned = list(db_session.execute(select(Exam.invigilator_id)).scalars())
    assert len(assigned) == 100
    assert set(assigned) <= instructor_ids
    assert set(Counter(assigned).values()) == {20}


def test_invigilators_never_double_booked(db_session, seed):
    instructors = [seed.user() for _ in range(3)]
    room_a, room_b = seed.room(capacity=100), seed.room(capacity=100)
    section_a, section_b = seed.section(), seed.section()
    course = seed.course()
    (slot,) = seed.slots(1)
    db_session.add_all(
        [
            Exam(
                course_id=course.id,
                section_id=section.id,
                room_id=room.id,
                time_slot_id=slot.id,
                exam_date=MONDAY,
                exam_type=ExamType.midterm,
            )
            for section, room in ((section_a, room_a), (section_b, room_b))
        ]
    )
    db_session.commit()

    exams.reset_exams(db_session, ResetType.invigilators)

    assigned = list(db_session.execute(select(Exam.invigilator_id)).scalars())
    assert len(set(assigned)) == 2
    assert set(assigned) <= {instructor.id for instructor in instructors}


def test_invigilator_reset_without_enough_instructors_fails_cleanly(db_session, seed):
    _seed_exams(db_session, seed, total_dates=1, slots_per_day=1)
    with pytest.raises(ConflictError):
        exams.reset_exams(db_session, ResetType.invigilators)

    seed.user(UserRole.admin)
    with pytest.raises(ConflictError):
        exams.reset_exams(db_session, ResetType.invigilators)
    assert db_session.execute(select(Exam.invigilator_id)).scalars().all() == [None]


def test_full_reset_removes_every_exam(db_session, seed):
    _seed_exams(db_session, seed, total_dates=2, slots_per_day=2)
    assert exams.reset_exams(db_session, ResetType.full) == 4
    assert db_session.execute(select(func.count()).select_from(Exam)).scalar_one() == 0


def test_generate_schedule_places_each_offering_once(db_session, seed, query_counter):
    bound = seed.user()
    others = [seed.user() for _ in range(2)]
    seed.room(capacity=30)
    seed.room(capacity=80)
    seed.slots(10)
    section = seed.section(strength=40)
    taught = seed.offering(seed.course(), section)
    seed.request(taught, status=RequestStatus.accepted, instructor_id=bound.id)
    for _ in range(3):
        seed.offering(seed.course(), section)
    bound_id = bound.id
    instructor_ids = {bound_id, *(other.id for other in others)}

    query_counter.reset()
    result = exams.generate_exam_schedule(
        db_session,
        exam_type=ExamType.midterm,
        start_date=MONDAY,
        end_date=MONDAY + timedelta(days=4),
        mode=InvigilatorMode.match,
    )
    generate_queries = query_counter.count

    assert result.scheduled == 4
    assert result.unscheduled == []
    scheduled = list(db_session.execute(select(Exam).order_by(Exam.exam_date, Exam.time_slot_id)).scalars())
    keys = [(exam.exam_date, exam.time_slot_id) for exam in scheduled]
    assert len(set(keys)) == 4
    assert {exam.invigilator_id for exam in scheduled} <= instructor_ids
    assert next(exam for exam in scheduled if exam.offering_id == taught.id).invigilator_id == bound_id
    slot_days = dict(db_session.execute(select(TimeSlot.id, TimeSlot.day_of_week)).all())
    assert all(exam.exam_date.strftime("%A") == slot_days[exam.time_slot_id] for exam in scheduled)
    assert generate_queries <= 7

    again = exams.generate_exam_schedule(
        db_session, exam_type=ExamType.midterm, start_date=MONDAY, end_date=MONDAY + timedelta(days=4)
    )
    assert again.scheduled == 0
    assert again.skipped == 4


def test_generate_schedule_reports_offerings_that_do_not_fit(db_session, seed):
    seed.user()
    seed.room(capacity=10)
    seed.slots(5)
    section = seed.section(strength=40)
    offering = seed.offering(seed.course(), section)

    result = exams.generate_exam_schedule(
        db_session, exam_type=ExamType.final, start_date=MONDAY, end_date=MONDAY + timedelta(days=6)
    )

    assert result.scheduled == 0
    assert result.unscheduled[0]["offering_id"] == offering.id


def test_create_exam_checks_weekday_and_conflicts(db_session, seed):
    invigilator = seed.user()
    room = seed.room(capacity=60)
    (monday_slot, tuesday_slot) = seed.slots(2)
    first = seed.offering(seed.course(), seed.section())
    second = seed.offering(seed.course(), seed.section())

    exam = exams.create_exam(
        db_session,
        offering_id=first.id,
        exam_type=ExamType.midterm,
        exam_date=MONDAY,
        time_slot_id=monday_slot.id,
        room_id=room.id,
        invigilator_id=invigilator.id,
    )
    assert exam.id is not None

    with pytest.raises(ValidationError):
        exams.create_exam(
            db_session,
            offering_id=second.id,
            exam_type=ExamType.midterm,
            exam_date=MONDAY,
            time_slot_id=tuesday_slot.id,
            room_id=room.id,
        )
    with pytest.raises(ConflictError) as excinfo:
        exams.create_exam(
            db_session,
            offering_id=second.id,
            exam_type=ExamType.midterm,
            exam_date=MONDAY,
            time_slot_id=monday_slot.id,
            room_id=room.id,
        )
    assert excinfo.value.details["reason"] == "room_busy"

    listed = exams.list_exams(db_session, exam_type=ExamType.midterm)
    assert [row["id"] for row in listed] == [exam.id]
    assert listed[0]["invigilator_name"] == invigilator.name


@pytest.fixture()
def shared_class_slots(monkeypatch):
    monkeypatch.setattr(get_settings(), "exam_shares_class_slots", True)


def _weekly_class(db, seed, instructor, section, slot):
    request = seed.accepted_request(instructor, section=section)
    select_slots(db, request_id=request.id, time_slot_ids=[slot.id], actor=instructor)
    return request


def test_generation_avoids_slots_taken_by_weekly_classes(db_session, seed, shared_class_slots):
    instructor = seed.user()
    seed.room(capacity=60)
    slots = seed.slots(10)
    monday_first, monday_second = slots[0], slots[5]
    section = seed.section()
    _weekly_class(db_session, seed, instructor, section, monday_first)

    result = exams.generate_exam_schedule(
        db_session, exam_type=ExamType.final, start_date=MONDAY, end_date=MONDAY
    )

    assert result.scheduled == 1
    exam = db_session.execute(select(Exam)).scalar_one()
    assert exam.time_slot_id == monday_second.id
    assert exam.invigilator_id == instructor.id


def test_create_exam_respects_weekly_classes(db_session, seed, shared_class_slots):
    instructor = seed.user()
    class_room = seed.room(capacity=60)
    spare_room = seed.room(capacity=60)
    (slot,) = seed.slots(1)
    taught_section = seed.section()
    request = _weekly_class(db_session, seed, instructor, taught_section, slot)
    other = seed.offering(seed.course(), seed.section())

    attempts = {
        "room_busy": dict(offering_id=other.id, room_id=class_room.id),
        "section_busy": dict(offering_id=request.offering_id, room_id=spare_room.id),
        "invigilator_busy": dict(offering_id=other.id, room_id=spare_room.id, invigilator_id=instructor.id),
    }
    for reason, kwargs in attempts.items():
        with pytest.raises(ConflictError) as excinfo:
            exams.create_exam(
                db_session, exam_type=ExamType.midterm, exam_date=MONDAY, time_slot_id=slot.id, **kwargs
            )
        assert excinfo.value.details["reason"] == reason

    exam = exams.create_exam(
        db_session,
        offering_id=other.id,
        exam_type=ExamType.midterm,
        exam_date=MONDAY,
        time_slot_id=slot.id,
        room_id=spare_room.id,
    )
    assert exam.room_id == spare_room.id


def test_invigilator_reset_skips_instructors_teaching_then(db_session, seed, query_counter, shared_class_slots):
    teaching, free = seed.user(), seed.user()
    room = seed.room(capacity=100)
    (slot,) = seed.slots(1)
    section = seed.section()
    _weekly_class(db_session, seed, teaching, section, slot)
    course = seed.course()
    db_session.add_all(
        [
            Exam(
                course_id=course.id,
                section_id=section.id,
                room_id=room.id,
                time_slot_id=slot.id,
                exam_date=MONDAY + timedelta(weeks=week),
                exam_type=ExamType.final,
            )
            for week in range(12)
        ]
    )
    db_session.commit()
    free_id = free.id

    query_counter.reset()
    updated = exams.reset_exams(db_session, ResetType.invigilators)

    # One extra read for the class reservations at the exam slots.
    assert query_counter.count == 4
    assert updated == 12
    assert set(db_session.execute(select(Exam.invigilator_id)).scalars()) == {free_id}

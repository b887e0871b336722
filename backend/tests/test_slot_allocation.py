import pytest
from sqlalchemy import func, select

from allocator.core.exceptions import AuthorizationError, ConflictError, NotFoundError, StateError, ValidationError
from allocator.models.course import CourseType
from allocator.models.course_request import RequestStatus
from allocator.models.room import RoomType
from allocator.models.room_assignment import RoomAssignment
from allocator.models.slot_reservation import SlotReservation
from allocator.services.slot_allocation import available_slots, select_slots


def _count(db, model, **filters):
    stmt = select(func.count()).select_from(model)
    for name, value in filters.items():
        stmt = stmt.where(getattr(model, name) == value)
    return db.execute(stmt).scalar_one()


def test_select_five_slots_creates_five_reservations_and_rooms(db_session, seed):
    instructor = seed.user()
    seed.room(capacity=60)
    slots = seed.slots(5)
    request = seed.accepted_request(instructor)

    selection = select_slots(
        db_session, request_id=request.id, time_slot_ids=[slot.id for slot in slots], actor=instructor
    )

    assert [item.time_slot_id for item in selection.reservations] == [slot.id for slot in slots]
    assert _count(db_session, SlotReservation, request_id=request.id) == 5
    assert _count(db_session, RoomAssignment) == 5
    linked = db_session.execute(
        select(SlotReservation.room_assignment_id).where(SlotReservation.request_id == request.id)
    ).scalars()
    assert set(linked) == {item.room_assignment_id for item in selection.reservations}


def test_select_slots_query_count_does_not_depend_on_slot_count(db_session, seed, query_counter):
    small_instructor, large_instructor = seed.user(), seed.user()
    seed.room(capacity=60)
    seed.room(capacity=60)
    slots = seed.slots(6)
    small = seed.accepted_request(small_instructor)
    large = seed.accepted_request(large_instructor)
    small_id, large_id = small.id, large.id
    slot_ids = [slot.id for slot in slots]

    db_session.refresh(small_instructor)
    query_counter.reset()
    select_slots(db_session, request_id=small_id, time_slot_ids=slot_ids[:1], actor=small_instructor)
    single = query_counter.count

    db_session.refresh(large_instructor)
    query_counter.reset()
    select_slots(db_session, request_id=large_id, time_slot_ids=slot_ids[1:], actor=large_instructor)
    five = query_counter.count

    assert single == five
    assert _count(db_session, SlotReservation, request_id=large_id) == 5


def test_instructor_conflict_aborts_without_partial_writes(db_session, seed):
    instructor = seed.user()
    seed.room(capacity=60)
    seed.room(capacity=60)
    first, second, third = seed.slots(3)
    taken = seed.accepted_request(instructor)
    select_slots(db_session, request_id=taken.id, time_slot_ids=[third.id], actor=instructor)

    request = seed.accepted_request(instructor)
    with pytest.raises(ConflictError) as excinfo:
        select_slots(
            db_session,
            request_id=request.id,
            time_slot_ids=[first.id, second.id, third.id],
            actor=instructor,
        )

    assert excinfo.value.details["blocked_by"] == "instructor"
    assert excinfo.value.details["time_slot_id"] == third.id
    assert _count(db_session, SlotReservation, request_id=request.id) == 0
    assert _count(db_session, RoomAssignment) == 1


def test_section_conflict_is_reported_for_the_first_busy_slot(db_session, seed):
    first_instructor, second_instructor = seed.user(), seed.user()
    seed.room(capacity=60)
    seed.room(capacity=60)
    section = seed.section()
    slot, other = seed.slots(2)
    taken = seed.accepted_request(first_instructor, section=section)
    select_slots(db_session, request_id=taken.id, time_slot_ids=[slot.id], actor=first_instructor)

    request = seed.accepted_request(second_instructor, section=section)
    with pytest.raises(ConflictError) as excinfo:
        select_slots(db_session, request_id=request.id, time_slot_ids=[other.id, slot.id], actor=second_instructor)

    assert excinfo.value.details == {"time_slot_id": slot.id, "blocked_by": "section"}
    assert _count(db_session, SlotReservation, request_id=request.id) == 0


def test_no_fitting_room_rejects_the_selection(db_session, seed):
    instructor = seed.user()
    seed.room(capacity=20)
    seed.room(capacity=100, room_type=RoomType.lab)
    (slot,) = seed.slots(1)
    request = seed.accepted_request(instructor, course=seed.course(CourseType.theory), section=seed.section(strength=40))

    with pytest.raises(ConflictError) as excinfo:
        select_slots(db_session, request_id=request.id, time_slot_ids=[slot.id], actor=instructor)

    assert excinfo.value.details["reason"] == "no_room"
    assert _count(db_session, RoomAssignment) == 0


def test_lab_course_gets_smallest_fitting_lab(db_session, seed):
    instructor = seed.user()
    seed.room(capacity=80, room_type=RoomType.lab)
    small_lab = seed.room(capacity=45, room_type=RoomType.lab)
    seed.room(capacity=40, room_type=RoomType.lecture)
    (slot,) = seed.slots(1)
    request = seed.accepted_request(instructor, course=seed.course(CourseType.lab), section=seed.section(strength=40))

    selection = select_slots(db_session, request_id=request.id, time_slot_ids=[slot.id], actor=instructor)

    assert selection.reservations[0].room_id == small_lab.id


def test_only_the_bound_instructor_may_select(db_session, seed):
    owner, stranger = seed.user(), seed.user()
    seed.room()
    (slot,) = seed.slots(1)
    request = seed.accepted_request(owner)

    with pytest.raises(AuthorizationError):
        select_slots(db_session, request_id=request.id, time_slot_ids=[slot.id], actor=stranger)


def test_selection_requires_accepted_request_without_prior_slots(db_session, seed):
    instructor = seed.user()
    seed.room(capacity=60)
    seed.room(capacity=60)
    first, second = seed.slots(2)
    pending = seed.request(seed.offering(seed.course(), seed.section()), instructor_id=instructor.id)
    assert pending.status is RequestStatus.pending

    with pytest.raises(StateError):
        select_slots(db_session, request_id=pending.id, time_slot_ids=[first.id], actor=instructor)

    accepted = seed.accepted_request(instructor)
    select_slots(db_session, request_id=accepted.id, time_slot_ids=[first.id], actor=instructor)
    with pytest.raises(StateError):
        select_slots(db_session, request_id=accepted.id, time_slot_ids=[second.id], actor=instructor)


def test_invalid_input_is_rejected_before_touching_the_store(db_session, seed):
    instructor = seed.user()
    (slot,) = seed.slots(1)
    request = seed.accepted_request(instructor)

    with pytest.raises(ValidationError):
        select_slots(db_session, request_id=request.id, time_slot_ids=[], actor=instructor)
    with pytest.raises(ValidationError):
        select_slots(db_session, request_id=request.id, time_slot_ids=[slot.id, slot.id], actor=instructor)
    with pytest.raises(NotFoundError):
        select_slots(db_session, request_id=request.id, time_slot_ids=[slot.id + 99], actor=instructor)
    with pytest.raises(NotFoundError):
        select_slots(db_session, request_id=request.id + 99, time_slot_ids=[slot.id], actor=instructor)


def test_available_slots_explains_blocked_slots(db_session, seed):
    lecturer, colleague = seed.user(name="Ada Byron"), seed.user(name="Alan Turing")
    seed.room(capacity=60)
    seed.room(capacity=60)
    section = seed.section(name="BSCS-3A")
    other_section = seed.section(name="BSCS-5B")
    course = seed.course(code="CS301")
    first, second, third = seed.slots(3)

    colleague_request = seed.accepted_request(colleague, section=section)
    select_slots(db_session, request_id=colleague_request.id, time_slot_ids=[first.id], actor=colleague)
    own_request = seed.accepted_request(lecturer, course=course, section=other_section)
    select_slots(db_session, request_id=own_request.id, time_slot_ids=[second.id], actor=lecturer)

    open_request = seed.request(seed.offering(seed.course(), section))
    result = available_slots(db_session, request_id=open_request.id, instructor_id=lecturer.id)

    assert [slot.id for slot in result["available"]] == [third.id]
    blocked = {item["slot"].id: item for item in result["blocked"]}
    assert blocked[first.id]["blocked_by"] == "section"
    assert blocked[first.id]["reason"] == "Already assigned to Alan Turing for this section"
    assert blocked[second.id]["blocked_by"] == "instructor"
    assert blocked[second.id]["reason"] == "You already have a class at this time: CS301 - BSCS-5B"

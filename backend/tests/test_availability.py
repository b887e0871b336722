from allocator.models.room_assignment import RoomAssignment
from allocator.models.slot_reservation import SlotReservation
from allocator.services import availability
from allocator.services.availability import EntityKind


def _reserve(db, request, instructor, section, slot, room=None):
    assignment_id = None
    if room is not None:
        assignment = RoomAssignment(room_id=room.id, section_id=section.id, time_slot_id=slot.id, semester=1)
        db.add(assignment)
        db.flush()
        assignment_id = assignment.id
    db.add(
        SlotReservation(
            request_id=request.id,
            instructor_id=instructor.id,
            section_id=section.id,
            time_slot_id=slot.id,
            room_assignment_id=assignment_id,
        )
    )
    db.commit()


def test_is_free_reflects_reservations_and_rooms(db_session, seed):
    instructor = seed.user()
    section = seed.section()
    room = seed.room()
    first, second = seed.slots(2)
    request = seed.accepted_request(instructor, section=section)

    _reserve(db_session, request, instructor, section, first, room=room)

    assert not availability.is_free(db_session, EntityKind.instructor, instructor.id, first.id)
    assert not availability.is_free(db_session, EntityKind.section, section.id, first.id)
    assert not availability.is_free(db_session, EntityKind.room, room.id, first.id)
    assert availability.is_free(db_session, EntityKind.instructor, instructor.id, second.id)
    assert availability.is_free(db_session, EntityKind.room, room.id, second.id)

    own = db_session.query(SlotReservation).one()
    assert availability.is_free(db_session, EntityKind.section, section.id, first.id, exclude_ids=[own.id])


def test_snapshot_claims_are_local_to_the_operation(db_session, seed):
    instructor = seed.user()
    section = seed.section()
    room = seed.room()
    slot, other = seed.slots(2)
    request = seed.accepted_request(instructor, section=section)
    _reserve(db_session, request, instructor, section, slot, room=room)

    snapshot = availability.load_snapshot(db_session, [slot.id, other.id])
    assert not snapshot.is_free(EntityKind.instructor, instructor.id, slot.id)
    assert (section.id, slot.id) in snapshot.assigned_pairs

    snapshot.claim(EntityKind.room, room.id, other.id)
    assert not snapshot.is_free(EntityKind.room, room.id, other.id)
    assert availability.is_free(db_session, EntityKind.room, room.id, other.id)

    excluded = availability.load_snapshot(db_session, [slot.id], exclude_request_id=request.id)
    assert excluded.is_free(EntityKind.instructor, instructor.id, slot.id)


def test_release_request_removes_only_orphaned_assignments(db_session, seed):
    instructor = seed.user()
    section = seed.section()
    room = seed.room()
    first, second = seed.slots(2)
    request = seed.accepted_request(instructor, section=section)
    _reserve(db_session, request, instructor, section, first, room=room)
    _reserve(db_session, request, instructor, section, second)

    released = availability.release_request(db_session, request.id)
    db_session.commit()

    assert released.reservations == 2
    assert released.room_assignments == 1
    assert db_session.query(SlotReservation).count() == 0
    assert db_session.query(RoomAssignment).count() == 0


def test_release_request_without_reservations_is_a_no_op(db_session, seed):
    request = seed.accepted_request(seed.user())
    released = availability.release_request(db_session, request.id)
    assert released.reservations == 0
    assert released.room_assignments == 0

import pytest
from sqlalchemy import func, select

from allocator.core.exceptions import NotFoundError, ValidationError
from allocator.models.course_request import RequestStatus
from allocator.models.offering import CourseOffering
from allocator.models.section import Section
from allocator.models.section_record import SectionRecord, SectionRecordStatus
from allocator.services.promotion import promote_section, section_record


def _section_with_offerings(seed, total, semester=2):
    section = seed.section(semester=semester)
    offerings = [seed.offering(seed.course(), section) for _ in range(total)]
    return section, offerings


def test_promotion_of_ten_offerings_takes_four_queries(db_session, seed, query_counter):
    section, _ = _section_with_offerings(seed, 10)
    section_id = section.id

    query_counter.reset()
    result = promote_section(db_session, section_id, new_semester=3, promote_courses=True)

    assert query_counter.count == 4
    assert (result.offerings_created, result.records_created) == (10, 10)
    new_offerings = db_session.execute(
        select(func.count()).select_from(CourseOffering).where(
            CourseOffering.section_id == section_id, CourseOffering.semester == 3
        )
    ).scalar_one()
    assert new_offerings == 10
    assert db_session.get(Section, section_id).semester == 3


def test_promotion_cost_does_not_grow_with_offerings(db_session, seed, query_counter):
    small, _ = _section_with_offerings(seed, 1)
    large, _ = _section_with_offerings(seed, 25)
    small_id, large_id = small.id, large.id

    query_counter.reset()
    promote_section(db_session, small_id, new_semester=3)
    small_count = query_counter.count

    query_counter.reset()
    promote_section(db_session, large_id, new_semester=3)

    assert query_counter.count == small_count


def test_history_keeps_the_bound_instructor(db_session, seed):
    preferred, bound = seed.user(), seed.user()
    section = seed.section(semester=4)
    taught = seed.offering(seed.course(), section, instructor_id=preferred.id)
    seed.request(taught, status=RequestStatus.accepted, instructor_id=bound.id)
    untaught = seed.offering(seed.course(), section, instructor_id=preferred.id)

    promote_section(db_session, section.id, new_semester=5)

    history = {
        record.offering_id: record
        for record in db_session.execute(select(SectionRecord)).scalars()
    }
    assert history[taught.id].instructor_id == bound.id
    assert history[untaught.id].instructor_id == preferred.id
    assert all(record.semester == 4 for record in history.values())
    assert all(record.status is SectionRecordStatus.completed for record in history.values())

    carried = set(
        db_session.execute(
            select(CourseOffering.instructor_id).where(CourseOffering.semester == 5)
        ).scalars()
    )
    assert carried == {bound.id, preferred.id}


def test_promotion_without_courses_only_records_history(db_session, seed):
    section, _ = _section_with_offerings(seed, 3)
    result = promote_section(db_session, section.id, new_semester=3, promote_courses=False)
    assert result.offerings_created == 0
    assert result.records_created == 3


def test_promotion_errors_leave_everything_untouched(db_session, seed):
    section, _ = _section_with_offerings(seed, 2, semester=2)

    with pytest.raises(NotFoundError):
        promote_section(db_session, 9999, new_semester=3)
    with pytest.raises(ValidationError):
        promote_section(db_session, section.id, new_semester=2)

    assert db_session.execute(select(func.count()).select_from(SectionRecord)).scalar_one() == 0
    assert db_session.execute(select(func.count()).select_from(CourseOffering)).scalar_one() == 2


def test_section_record_groups_history_by_semester(db_session, seed):
    section, _ = _section_with_offerings(seed, 2, semester=1)
    promote_section(db_session, section.id, new_semester=2)
    promote_section(db_session, section.id, new_semester=3)

    record = section_record(db_session, section.id)

    assert record["current_semester"] == 3
    assert [entry["semester"] for entry in record["semesters"]] == [1, 2]
    assert all(len(entry["courses"]) == 2 for entry in record["semesters"])

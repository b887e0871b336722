from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import and_, insert, select, update
from sqlalchemy.orm import Session

from allocator.core.exceptions import NotFoundError, ValidationError
from allocator.db.session import atomic
from allocator.models.course import Course
from allocator.models.course_request import CourseRequest, RequestStatus
from allocator.models.offering import CourseOffering
from allocator.models.section import Section
from allocator.models.section_record import SectionRecord, SectionRecordStatus
from allocator.models.user import User

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PromotionResult:
    section_id: int
    previous_semester: int
    new_semester: int
    offerings_created: int
    records_created: int


def promote_section(
    db: Session,
    section_id: int,
    *,
    new_semester: int,
    promote_courses: bool = True,
    actor: User | None = None,
) -> PromotionResult:
    """Roll a section into ``new_semester``.

    One read of the section with its current offerings (and the instructor bound
    through each accepted request), then one bulk insert of new offerings, one bulk
    insert of history rows and one update of the section. The number of round trips
    does not depend on how many offerings the section has.
    """
    with atomic(db):
        rows = db.execute(
            select(Section.semester, CourseOffering, CourseRequest.instructor_id)
            .select_from(Section)
            .outerjoin(
                CourseOffering,
                and_(CourseOffering.section_id == Section.id, CourseOffering.semester == Section.semester),
            )
            .outerjoin(
                CourseRequest,
                and_(
                    CourseRequest.offering_id == CourseOffering.id,
                    CourseRequest.status == RequestStatus.accepted,
                ),
            )
            .where(Section.id == section_id)
            .order_by(CourseOffering.id)
        ).all()
        if not rows:
            raise NotFoundError("Section", section_id)

        previous_semester = rows[0][0]
        if new_semester == previous_semester:
            raise ValidationError(
                f"Section is already in semester {new_semester}",
                details={"section_id": section_id, "semester": new_semester},
            )

        # An offering can surface twice only if it carries more than one accepted request.
        current: dict[int, tuple[CourseOffering, str | None]] = {}
        for _, offering, bound_instructor in rows:
            if offering is None or offering.id in current:
                continue
            current[offering.id] = (offering, bound_instructor or offering.instructor_id)

        created_by = actor.id if actor is not None else None
        history_rows = [
            {
                "section_id": section_id,
                "course_id": offering.course_id,
                "offering_id": offering.id,
                "instructor_id": instructor_id,
                "semester": previous_semester,
                "status": SectionRecordStatus.completed,
            }
            for offering, instructor_id in current.values()
        ]
        offering_rows = [
            {
                "course_id": offering.course_id,
                "section_id": section_id,
                "semester": new_semester,
                "intake": offering.intake,
                "shift": offering.shift,
                "academic_year": offering.academic_year,
                "instructor_id": instructor_id,
                "created_by": created_by,
            }
            for offering, instructor_id in current.values()
        ]

        if promote_courses and offering_rows:
            db.execute(insert(CourseOffering), offering_rows)
        if history_rows:
            db.execute(insert(SectionRecord), history_rows)
        db.execute(
            update(Section)
            .where(Section.id == section_id)
            .values(semester=new_semester)
            .execution_options(synchronize_session=False)
        )

    logger.info(
        "Promoted section %s from semester %s to %s (%d offering(s) carried over)",
        section_id,
        previous_semester,
        new_semester,
        len(offering_rows) if promote_courses else 0,
    )
    return PromotionResult(
        section_id=section_id,
        previous_semester=previous_semester,
        new_semester=new_semester,
        offerings_created=len(offering_rows) if promote_courses else 0,
        records_created=len(history_rows),
    )


def section_record(db: Session, section_id: int) -> dict:
    section = db.get(Section, section_id)
    if section is None:
        raise NotFoundError("Section", section_id)

    rows = db.execute(
        select(SectionRecord, Course.code, Course.name, User.name)
        .join(Course, Course.id == SectionRecord.course_id)
        .outerjoin(User, User.id == SectionRecord.instructor_id)
        .where(SectionRecord.section_id == section_id)
        .order_by(SectionRecord.semester, Course.code)
    )
    semesters: dict[int, list[dict]] = {}
    for record, course_code, course_name, instructor_name in rows:
        semesters.setdefault(record.semester, []).append(
            {
                "course_id": record.course_id,
                "course_code": course_code,
                "course_name": course_name,
                "offering_id": record.offering_id,
                "instructor_id": record.instructor_id,
                "instructor_name": instructor_name,
                "status": record.status,
            }
        )

    return {
        "section_id": section.id,
        "section_name": section.name,
        "current_semester": section.semester,
        "semesters": [{"semester": semester, "courses": courses} for semester, courses in semesters.items()],
    }

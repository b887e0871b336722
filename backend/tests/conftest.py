import os
import tempfile
from itertools import count
from pathlib import Path

# The app-level engine is built at import time; point it at a throwaway file before anything imports it.
_RUNTIME_DIR = Path(tempfile.mkdtemp(prefix="allocator-tests-"))
os.environ["DATABASE_URL"] = f"sqlite+pysqlite:///{_RUNTIME_DIR / 'runtime.db'}"

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine, event  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from allocator.api.deps import get_db  # noqa: E402
from allocator.core.security import create_access_token  # noqa: E402
from allocator.db.base import Base  # noqa: E402
from allocator.main import app  # noqa: E402
from allocator.models.course import Course, CourseType  # noqa: E402
from allocator.models.course_request import CourseRequest, RequestStatus  # noqa: E402
from allocator.models.offering import CourseOffering  # noqa: E402
from allocator.models.room import Room, RoomType  # noqa: E402
from allocator.models.section import Section  # noqa: E402
from allocator.models.time_slot import TimeSlot  # noqa: E402
from allocator.models.user import User, UserRole  # noqa: E402
from allocator.schemas.common import WEEKDAYS  # noqa: E402


@pytest.fixture()
def engine():
    engine = create_engine(
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture()
def db_session(session_factory):
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture()
def client(session_factory):
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


class QueryCounter:
    """Collects every statement sent to the DBAPI cursor."""

    def __init__(self):
        self.statements: list[str] = []

    def __call__(self, conn, cursor, statement, parameters, context, executemany):
        self.statements.append(statement)

    @property
    def count(self) -> int:
        return len(self.statements)

    def reset(self) -> None:
        self.statements.clear()


@pytest.fixture()
def query_counter(engine):
    counter = QueryCounter()
    event.listen(engine, "before_cursor_execute", counter)
    yield counter
    event.remove(engine, "before_cursor_execute", counter)


class Seeder:
    """Small factory for catalog rows; every call commits so API sessions can see the data."""

    def __init__(self, db):
        self.db = db
        self._seq = count(1)

    def _save(self, obj):
        self.db.add(obj)
        self.db.commit()
        self.db.refresh(obj)
        return obj

    def user(self, role=UserRole.instructor, name=None, is_active=True):
        n = next(self._seq)
        return self._save(
            User(
                name=name or f"{role.value.title()} {n}",
                email=f"{role.value}{n}@example.edu",
                role=role,
                department="Computing",
                is_active=is_active,
            )
        )

    def course(self, course_type=CourseType.theory, code=None):
        n = next(self._seq)
        return self._save(Course(code=code or f"CS{100 + n}", name=f"Course {n}", type=course_type, credit_hours=3))

    def section(self, name=None, strength=40, semester=1, shift="morning"):
        n = next(self._seq)
        return self._save(
            Section(name=name or f"BSCS-{n}", semester=semester, shift=shift, student_strength=strength)
        )

    def room(self, name=None, capacity=50, room_type=RoomType.lecture):
        n = next(self._seq)
        return self._save(Room(name=name or f"R-{n}", capacity=capacity, type=room_type))

    def slots(self, total, shift="morning", days=WEEKDAYS[:5]):
        rows = []
        for index in range(total):
            hour = 8 + index // len(days)
            rows.append(
                TimeSlot(
                    day_of_week=days[index % len(days)],
                    start_time=f"{hour:02d}:00",
                    end_time=f"{hour:02d}:50",
                    label=f"{days[index % len(days)][:3]} {hour:02d}:00",
                    shift=shift,
                )
            )
        self.db.add_all(rows)
        self.db.commit()
        for row in rows:
            self.db.refresh(row)
        return rows

    def offering(self, course, section, instructor_id=None, semester=None):
        return self._save(
            CourseOffering(
                course_id=course.id,
                section_id=section.id,
                semester=semester or section.semester,
                shift=section.shift,
                instructor_id=instructor_id,
            )
        )

    def request(self, offering, status=RequestStatus.pending, instructor_id=None):
        return self._save(
            CourseRequest(offering_id=offering.id, status=status, instructor_id=instructor_id, preferences={})
        )

    def accepted_request(self, instructor, course=None, section=None):
        course = course or self.course()
        section = section or self.section()
        offering = self.offering(course, section)
        return self.request(offering, status=RequestStatus.accepted, instructor_id=instructor.id)


@pytest.fixture()
def seed(db_session):
    return Seeder(db_session)


def auth_headers(user) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user.id)}"}


@pytest.fixture()
def headers():
    return auth_headers

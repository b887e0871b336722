from __future__ import annotations

import logging

from sqlalchemy import inspect

import allocator.models  # noqa: F401
from allocator.db.base import Base
from allocator.db.session import engine

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS: dict[str, set[str]] = {
    "users": {"id", "role", "is_active"},
    "course_offerings": {"id", "course_id", "section_id", "semester", "instructor_id"},
    "course_requests": {"id", "offering_id", "instructor_id", "status", "preferences"},
    "time_slots": {"id", "day_of_week", "start_time", "end_time", "shift"},
    "slot_reservations": {"id", "request_id", "instructor_id", "section_id", "time_slot_id", "room_assignment_id"},
    "room_assignments": {"id", "room_id", "section_id", "time_slot_id", "semester"},
    "section_records": {"id", "section_id", "course_id", "semester"},
    "exams": {"id", "room_id", "time_slot_id", "exam_date", "invigilator_id"},
}


def missing_schema_items() -> tuple[list[str], dict[str, list[str]]]:
    with engine.connect() as connection:
        inspector = inspect(connection)
        table_names = set(inspector.get_table_names())
        missing_tables = sorted(name for name in REQUIRED_COLUMNS if name not in table_names)
        missing_columns: dict[str, list[str]] = {}
        for table_name, required in REQUIRED_COLUMNS.items():
            if table_name not in table_names:
                continue
            existing = {item["name"] for item in inspector.get_columns(table_name)}
            missing = sorted(required - existing)
            if missing:
                missing_columns[table_name] = missing
    return missing_tables, missing_columns


def _assert_required_columns() -> None:
    missing_tables, missing_columns = missing_schema_items()
    if missing_tables:
        raise RuntimeError(f"Missing required tables: {', '.join(missing_tables)}")
    if missing_columns:
        flattened = [f"{table}.{column}" for table, columns in missing_columns.items() for column in columns]
        raise RuntimeError(f"Missing required columns: {', '.join(flattened)}")


def ensure_runtime_schema() -> None:
    try:
        Base.metadata.create_all(bind=engine)
        _assert_required_columns()
    except Exception as exc:  # pragma: no cover - runtime environment dependent
        logger.exception("Runtime schema bootstrap failed")
        raise RuntimeError("Runtime schema bootstrap failed") from exc

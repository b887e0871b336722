"""create users, courses, sections, rooms, time slots, offerings and requests

Revision ID: 20261017_0001
Revises: None
Create Date: 2026-10-17 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

revision = "20261017_0001"
down_revision = None
branch_labels = None
depends_on = None


user_role_enum = sa.Enum("admin", "instructor", "student", name="user_role")
course_type_enum = sa.Enum("theory", "lab", "seminar", name="course_type")
room_type_enum = sa.Enum("lecture", "lab", "seminar", name="room_type")
request_status_enum = sa.Enum("pending", "accepted", "rejected", name="course_request_status")


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("role", user_role_enum, nullable=False),
        sa.Column("department", sa.String(length=200), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "courses",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("code", sa.String(length=50), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("type", course_type_enum, nullable=False),
        sa.Column("credit_hours", sa.Integer(), nullable=False, server_default="3"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_courses_code", "courses", ["code"], unique=True)

    op.create_table(
        "sections",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("semester", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("shift", sa.String(length=20), nullable=False, server_default="morning"),
        sa.Column("intake", sa.String(length=50), nullable=True),
        sa.Column("academic_year", sa.String(length=20), nullable=True),
        sa.Column("student_strength", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_sections_name", "sections", ["name"], unique=True)

    op.create_table(
        "rooms",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("building", sa.String(length=200), nullable=False, server_default="Main"),
        sa.Column("capacity", sa.Integer(), nullable=False, server_default="30"),
        sa.Column("type", room_type_enum, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_rooms_name", "rooms", ["name"], unique=True)

    op.create_table(
        "time_slots",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("day_of_week", sa.String(length=10), nullable=False),
        sa.Column("start_time", sa.String(length=5), nullable=False),
        sa.Column("end_time", sa.String(length=5), nullable=False),
        sa.Column("label", sa.String(length=100), nullable=False),
        sa.Column("shift", sa.String(length=20), nullable=False, server_default="morning"),
        sa.UniqueConstraint("day_of_week", "start_time", "shift", name="uq_time_slot_start"),
    )

    op.create_table(
        "course_offerings",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("course_id", sa.Integer(), nullable=False),
        sa.Column("section_id", sa.Integer(), nullable=False),
        sa.Column("semester", sa.Integer(), nullable=False),
        sa.Column("intake", sa.String(length=50), nullable=True),
        sa.Column("shift", sa.String(length=20), nullable=False, server_default="morning"),
        sa.Column("academic_year", sa.String(length=20), nullable=True),
        sa.Column("instructor_id", sa.String(length=36), nullable=True),
        sa.Column("created_by", sa.String(length=36), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_course_offerings_course_id", "course_offerings", ["course_id"])
    op.create_index("ix_course_offerings_section_id", "course_offerings", ["section_id"])

    op.create_table(
        "course_requests",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("offering_id", sa.Integer(), nullable=False),
        sa.Column("instructor_id", sa.String(length=36), nullable=True),
        sa.Column("status", request_status_enum, nullable=False, server_default="pending"),
        sa.Column("preferences", sa.JSON(), nullable=False),
        sa.Column("requested_by", sa.String(length=36), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("accepted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_course_requests_offering_id", "course_requests", ["offering_id"])
    op.create_index("ix_course_requests_instructor_id", "course_requests", ["instructor_id"])


def downgrade() -> None:
    op.drop_index("ix_course_requests_instructor_id", table_name="course_requests")
    op.drop_index("ix_course_requests_offering_id", table_name="course_requests")
    op.drop_table("course_requests")
    op.drop_index("ix_course_offerings_section_id", table_name="course_offerings")
    op.drop_index("ix_course_offerings_course_id", table_name="course_offerings")
    op.drop_table("course_offerings")
    op.drop_table("time_slots")
    op.drop_index("ix_rooms_name", table_name="rooms")
    op.drop_table("rooms")
    op.drop_index("ix_sections_name", table_name="sections")
    op.drop_table("sections")
    op.drop_index("ix_courses_code", table_name="courses")
    op.drop_table("courses")
    op.drop_index("ix_users_email", table_name="users")
    op.drop_table("users")
    bind = op.get_bind()
    request_status_enum.drop(bind, checkfirst=True)
    room_type_enum.drop(bind, checkfirst=True)
    course_type_enum.drop(bind, checkfirst=True)
    user_role_enum.drop(bind, checkfirst=True)

"""create section records and exams

Revision ID: 20261017_0003
Revises: 20261017_0002
Create Date: 2026-10-17 00:20:00.000000

"""
from alembic import op
import sqlalchemy as sa

revision = "20261017_0003"
down_revision = "20261017_0002"
branch_labels = None
depends_on = None


record_status_enum = sa.Enum("completed", "pending", name="section_record_status")
exam_type_enum = sa.Enum("midterm", "final", name="exam_type")
invigilator_mode_enum = sa.Enum("match", "shuffle", name="invigilator_mode")


def upgrade() -> None:
    op.create_table(
        "section_records",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("section_id", sa.Integer(), nullable=False),
        sa.Column("course_id", sa.Integer(), nullable=False),
        sa.Column("offering_id", sa.Integer(), nullable=True),
        sa.Column("instructor_id", sa.String(length=36), nullable=True),
        sa.Column("semester", sa.Integer(), nullable=False),
        sa.Column("status", record_status_enum, nullable=False, server_default="completed"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_section_records_section_id", "section_records", ["section_id"])

    op.create_table(
        "exams",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("offering_id", sa.Integer(), nullable=True),
        sa.Column("course_id", sa.Integer(), nullable=False),
        sa.Column("section_id", sa.Integer(), nullable=False),
        sa.Column("room_id", sa.Integer(), nullable=False),
        sa.Column("time_slot_id", sa.Integer(), nullable=False),
        sa.Column("exam_date", sa.Date(), nullable=False),
        sa.Column("exam_type", exam_type_enum, nullable=False),
        sa.Column("invigilator_id", sa.String(length=36), nullable=True),
        sa.Column("mode", invigilator_mode_enum, nullable=False, server_default="match"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("room_id", "exam_date", "time_slot_id", name="uq_exams_room_date_slot"),
        sa.UniqueConstraint("section_id", "exam_date", "time_slot_id", name="uq_exams_section_date_slot"),
    )
    op.create_index("ix_exams_offering_id", "exams", ["offering_id"])
    op.create_index("ix_exams_section_id", "exams", ["section_id"])
    op.create_index("ix_exams_exam_date", "exams", ["exam_date"])
    op.create_index("ix_exams_invigilator_id", "exams", ["invigilator_id"])


def downgrade() -> None:
    op.drop_index("ix_exams_invigilator_id", table_name="exams")
    op.drop_index("ix_exams_exam_date", table_name="exams")
    op.drop_index("ix_exams_section_id", table_name="exams")
    op.drop_index("ix_exams_offering_id", table_name="exams")
    op.drop_table("exams")
    op.drop_index("ix_section_records_section_id", table_name="section_records")
    op.drop_table("section_records")
    bind = op.get_bind()
    invigilator_mode_enum.drop(bind, checkfirst=True)
    exam_type_enum.drop(bind, checkfirst=True)
    record_status_enum.drop(bind, checkfirst=True)

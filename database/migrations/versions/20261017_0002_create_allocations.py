"""create slot reservations, room assignments and allocation events

Revision ID: 20261017_0002
Revises: 20261017_0001
Create Date: 2026-10-17 00:10:00.000000

"""
from alembic import op
import sqlalchemy as sa

revision = "20261017_0002"
down_revision = "20261017_0001"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "slot_reservations",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("request_id", sa.Integer(), nullable=False),
        sa.Column("instructor_id", sa.String(length=36), nullable=False),
        sa.Column("section_id", sa.Integer(), nullable=False),
        sa.Column("time_slot_id", sa.Integer(), nullable=False),
        sa.Column("room_assignment_id", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("instructor_id", "time_slot_id", name="uq_slot_reservations_instructor_slot"),
        sa.UniqueConstraint("section_id", "time_slot_id", name="uq_slot_reservations_section_slot"),
    )
    op.create_index("ix_slot_reservations_request_id", "slot_reservations", ["request_id"])
    op.create_index("ix_slot_reservations_time_slot_id", "slot_reservations", ["time_slot_id"])
    op.create_index("ix_slot_reservations_room_assignment_id", "slot_reservations", ["room_assignment_id"])

    op.create_table(
        "room_assignments",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("room_id", sa.Integer(), nullable=False),
        sa.Column("section_id", sa.Integer(), nullable=False),
        sa.Column("time_slot_id", sa.Integer(), nullable=False),
        sa.Column("semester", sa.Integer(), nullable=False),
        sa.Column("offering_id", sa.Integer(), nullable=True),
        sa.Column("assigned_by", sa.String(length=36), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("room_id", "time_slot_id", name="uq_room_assignments_room_slot"),
        sa.UniqueConstraint("section_id", "time_slot_id", name="uq_room_assignments_section_slot"),
    )
    op.create_index("ix_room_assignments_room_id", "room_assignments", ["room_id"])
    op.create_index("ix_room_assignments_section_id", "room_assignments", ["section_id"])
    op.create_index("ix_room_assignments_time_slot_id", "room_assignments", ["time_slot_id"])

    op.create_table(
        "allocation_events",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("actor_id", sa.String(length=36), nullable=True),
        sa.Column("action", sa.String(length=100), nullable=False),
        sa.Column("entity_type", sa.String(length=50), nullable=False),
        sa.Column("entity_id", sa.Integer(), nullable=False),
        sa.Column("details", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_allocation_events_entity_id", "allocation_events", ["entity_id"])


def downgrade() -> None:
    op.drop_index("ix_allocation_events_entity_id", table_name="allocation_events")
    op.drop_table("allocation_events")
    op.drop_index("ix_room_assignments_time_slot_id", table_name="room_assignments")
    op.drop_index("ix_room_assignments_section_id", table_name="room_assignments")
    op.drop_index("ix_room_assignments_room_id", table_name="room_assignments")
    op.drop_table("room_assignments")
    op.drop_index("ix_slot_reservations_room_assignment_id", table_name="slot_reservations")
    op.drop_index("ix_slot_reservations_time_slot_id", table_name="slot_reservations")
    op.drop_index("ix_slot_reservations_request_id", table_name="slot_reservations")
    op.drop_table("slot_reservations")

"""Initial schema: users, seats, reservations, violations with indexes and constraints.

Revision ID: 001
Revises: None
Create Date: 2026-10-17
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Users table
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("username", sa.String(100), nullable=False),
        sa.Column("name", sa.String(100), nullable=False, server_default=sa.text("''")),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("role", sa.String(20), nullable=False, server_default=sa.text("'student'")),
        sa.Column("violation_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("is_banned", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("violation_count >= 0", name="check_violation_count_non_negative"),
        sa.CheckConstraint("role IN ('admin', 'student', 'teacher')", name="check_user_role"),
    )
    op.create_index("ix_users_id", "users", ["id"])
    op.create_index("ix_users_username", "users", ["username"], unique=True)

    # Seats table
    op.create_table(
        "seats",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("number", sa.String(50), nullable=False),
        sa.Column("area", sa.String(50), nullable=False),
        sa.Column("floor", sa.Integer(), nullable=False),
        sa.Column("row", sa.Integer(), nullable=False),
        sa.Column("col", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(30), nullable=False, server_default=sa.text("'available'")),
        sa.Column("is_reservable", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("features", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("number", name="uq_seat_number"),
        sa.CheckConstraint(
            "status IN ('available', 'occupied', 'reserved', 'maintenance', 'temporarily_released')",
            name="check_seat_status",
        ),
    )
    op.create_index("ix_seats_id", "seats", ["id"])
    # Seat map listing filters by area and floor
    op.create_index("ix_seats_area_floor", "seats", ["area", "floor"])

    # Reservations table
    op.create_table(
        "reservations",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("seat_id", sa.Integer(), sa.ForeignKey("seats.id"), nullable=False),
        sa.Column("start_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("status", sa.String(30), nullable=False, server_default=sa.text("'pending'")),
        sa.Column("check_in_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("check_out_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("notes", sa.String(500), nullable=True),
        sa.Column("temp_release_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("temp_release_duration", sa.Integer(), nullable=True),
        sa.Column("temp_release_reason", sa.String(255), nullable=True),
        sa.Column("temp_release_expiry_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("end_time > start_time", name="check_reservation_time_range"),
        sa.CheckConstraint(
            "status IN ('pending', 'confirmed', 'cancelled', 'completed', 'temporarily_released', 'expired')",
            name="check_reservation_status",
        ),
        sa.CheckConstraint(
            "(temp_release_time IS NULL AND temp_release_duration IS NULL "
            "AND temp_release_reason IS NULL AND temp_release_expiry_time IS NULL) OR "
            "(temp_release_time IS NOT NULL AND temp_release_duration IS NOT NULL "
            "AND temp_release_reason IS NOT NULL AND temp_release_expiry_time IS NOT NULL)",
            name="check_temp_release_fields_together",
        ),
        sa.CheckConstraint(
            "temp_release_duration IS NULL OR temp_release_duration BETWEEN 5 AND 120",
            name="check_temp_release_duration",
        ),
    )
    op.create_index("ix_reservations_id", "reservations", ["id"])
    op.create_index("ix_reservations_user_id", "reservations", ["user_id"])
    op.create_index("ix_reservations_seat_id", "reservations", ["seat_id"])
    # Sweep snapshot: WHERE status IN (...) with a start_time band
    op.create_index("ix_reservations_status_start", "reservations", ["status", "start_time"])
    # Trailing-24h cancellation count per user
    op.create_index(
        "ix_reservations_user_status_updated", "reservations", ["user_id", "status", "updated_at"]
    )

    # Violations table
    op.create_table(
        "violations",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("reservation_id", sa.Integer(), sa.ForeignKey("reservations.id"), nullable=True),
        sa.Column("type", sa.String(30), nullable=False),
        sa.Column("rule_id", sa.String(50), nullable=True),
        sa.Column("severity", sa.String(10), nullable=True),
        sa.Column("details", sa.JSON(), nullable=False),
        sa.Column("description", sa.String(1000), nullable=True),
        sa.Column("penalty", sa.String(255), nullable=False),
        sa.Column("is_resolved", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("resolved_by", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.CheckConstraint(
            "type IN ('no_show', 'overstay', 'late_checkin', 'frequent_cancellation', "
            "'unauthorized_extension', 'unauthorized_use')",
            name="check_violation_type",
        ),
    )
    op.create_index("ix_violations_id", "violations", ["id"])
    op.create_index("ix_violations_user_id", "violations", ["user_id"])
    op.create_index("ix_violations_reservation_id", "violations", ["reservation_id"])
    # Sweep deduplication: same user, type, day
    op.create_index("ix_violations_user_type_created", "violations", ["user_id", "type", "created_at"])
    op.create_index("ix_violations_unresolved", "violations", ["is_resolved"])


def downgrade() -> None:
    op.drop_table("violations")
    op.drop_table("reservations")
    op.drop_table("seats")
    op.drop_table("users")

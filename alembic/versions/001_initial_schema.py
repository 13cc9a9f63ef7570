"""Initial schema: users, terms, bookings with indexes and constraints.

Revision ID: 001
Revises: None
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Users table (owned by the identity service, read here)
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("first_name", sa.String(100), nullable=False, server_default=""),
        sa.Column("last_name", sa.String(100), nullable=False, server_default=""),
        sa.Column("role", sa.String(20), nullable=False, server_default=sa.text("'member'")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("role IN ('member', 'subscriber', 'trainer', 'admin')", name="check_user_role"),
    )
    op.create_index("ix_users_id", "users", ["id"])
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    # Terms table
    op.create_table(
        "terms",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("capacity", sa.Integer(), nullable=False),
        sa.Column("starts_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("ends_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'scheduled'")),
        sa.Column("trainer_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("workout_description", sa.Text(), nullable=False, server_default=""),
        sa.Column("created_by", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("capacity > 0", name="check_term_capacity_positive"),
        sa.CheckConstraint("ends_at > starts_at", name="check_term_ends_after_start"),
        sa.CheckConstraint("status IN ('scheduled', 'cancelled', 'finished')", name="check_term_status"),
    )
    op.create_index("ix_terms_id", "terms", ["id"])
    op.create_index("ix_terms_trainer_id", "terms", ["trainer_id"])
    op.create_index("ix_terms_starts_at", "terms", ["starts_at"])
    # Retention scans finished terms by end time
    op.create_index("ix_terms_ends_at", "terms", ["ends_at"])
    # Overlap check: WHERE status = 'scheduled' AND starts_at < :end AND ends_at > :start
    # runs before every create, time edit and generated slot.
    op.create_index("ix_terms_status_window", "terms", ["status", "starts_at", "ends_at"])

    # Bookings table
    op.create_table(
        "bookings",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("term_id", sa.Integer(), sa.ForeignKey("terms.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'active'")),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        # One row per (term, member), reused across cancel/rejoin
        sa.UniqueConstraint("term_id", "user_id", name="uq_term_user_booking"),
        sa.CheckConstraint(
            "status IN ('active', 'cancelled', 'term_cancelled')", name="check_booking_status"
        ),
    )
    op.create_index("ix_bookings_id", "bookings", ["id"])
    op.create_index("ix_bookings_term_id", "bookings", ["term_id"])
    op.create_index("ix_bookings_user_id", "bookings", ["user_id"])
    # Capacity count: WHERE term_id = :id AND status = 'active'
    op.create_index("ix_bookings_term_status", "bookings", ["term_id", "status"])
    # Weekly quota count: WHERE user_id = :id AND status = 'active'
    op.create_index("ix_bookings_user_status", "bookings", ["user_id", "status"])


def downgrade() -> None:
    op.drop_table("bookings")
    op.drop_table("terms")
    op.drop_table("users")

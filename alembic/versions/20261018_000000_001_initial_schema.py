"""Initial schema: doctors, consultations, cascade, change feed, staff notices.

Revision ID: 001
Revises:
Create Date: 2026-10-18 00:00:00.000000

"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create initial database schema."""

    # Doctor roster
    op.create_table(
        "doctors",
        sa.Column("id", postgresql.UUID(as_uuid=False), nullable=False),
        sa.Column("full_name", sa.String(200), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("phone", sa.String(30), nullable=True),
        sa.Column("whatsapp", sa.String(30), nullable=True),
        sa.Column("crm", sa.String(30), nullable=False),
        sa.Column("specialty", sa.String(100), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("is_available", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("rating", sa.Float(), nullable=True),
        sa.Column("is_deleted", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_doctors"),
    )
    op.create_index("ix_doctors_email", "doctors", ["email"], unique=True)
    op.create_index("ix_doctors_specialty", "doctors", ["specialty"])
    op.create_index("ix_doctors_status", "doctors", ["status"])
    op.create_index("ix_doctors_is_deleted", "doctors", ["is_deleted"])

    # Consultation requests
    op.create_table(
        "consultation_requests",
        sa.Column("id", postgresql.UUID(as_uuid=False), nullable=False),
        sa.Column("patient_name", sa.String(200), nullable=False),
        sa.Column("patient_phone", sa.String(30), nullable=True),
        sa.Column("patient_email", sa.String(255), nullable=True),
        sa.Column("patient_cpf", sa.String(14), nullable=True),
        sa.Column("specialty", sa.String(100), nullable=False),
        sa.Column("urgency", sa.String(20), nullable=False, server_default="normal"),
        sa.Column(
            "consultation_type", sa.String(30), nullable=False, server_default="teleconsulta"
        ),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("cascade_round", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("cascade_started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("assigned_doctor_id", postgresql.UUID(as_uuid=False), nullable=True),
        sa.Column("assigned_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancellation_reason", sa.Text(), nullable=True),
        sa.Column("event_sequence", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(
            ["assigned_doctor_id"],
            ["doctors.id"],
            name="fk_consultation_requests_assigned_doctor_id_doctors",
            ondelete="RESTRICT",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_consultation_requests"),
    )
    op.create_index("ix_consultation_requests_specialty", "consultation_requests", ["specialty"])
    op.create_index("ix_consultation_requests_status", "consultation_requests", ["status"])
    op.create_index(
        "ix_consultation_requests_assigned_doctor_id",
        "consultation_requests",
        ["assigned_doctor_id"],
    )

    # Change feed
    op.create_table(
        "consultation_events",
        sa.Column("id", postgresql.UUID(as_uuid=False), nullable=False),
        sa.Column("consultation_id", postgresql.UUID(as_uuid=False), nullable=False),
        sa.Column("sequence", sa.Integer(), nullable=False),
        sa.Column("event_type", sa.String(50), nullable=False),
        sa.Column("payload", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(
            ["consultation_id"],
            ["consultation_requests.id"],
            name="fk_consultation_events_consultation_id_consultation_requests",
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_consultation_events"),
        sa.UniqueConstraint(
            "consultation_id", "sequence", name="uq_consultation_events_sequence"
        ),
    )
    op.create_index(
        "ix_consultation_events_consultation_id", "consultation_events", ["consultation_id"]
    )

    # Per-round offers
    op.create_table(
        "cascade_notifications",
        sa.Column("id", postgresql.UUID(as_uuid=False), nullable=False),
        sa.Column("consultation_id", postgresql.UUID(as_uuid=False), nullable=False),
        sa.Column("doctor_id", postgresql.UUID(as_uuid=False), nullable=False),
        sa.Column("round_number", sa.Integer(), nullable=False),
        sa.Column("channel", sa.String(20), nullable=False, server_default="push"),
        sa.Column("notified_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("response_deadline", sa.DateTime(timezone=True), nullable=False),
        sa.Column("response", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("responded_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("response_time_seconds", sa.Integer(), nullable=True),
        sa.Column("rejection_reason", sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(
            ["consultation_id"],
            ["consultation_requests.id"],
            name="fk_cascade_notifications_consultation_id_consultation_requests",
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["doctor_id"],
            ["doctors.id"],
            name="fk_cascade_notifications_doctor_id_doctors",
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_cascade_notifications"),
        sa.UniqueConstraint(
            "consultation_id",
            "doctor_id",
            "round_number",
            name="uq_cascade_notifications_offer",
        ),
    )
    op.create_index(
        "ix_cascade_notifications_consultation_id", "cascade_notifications", ["consultation_id"]
    )
    op.create_index("ix_cascade_notifications_doctor_id", "cascade_notifications", ["doctor_id"])
    op.create_index(
        "ix_cascade_notifications_response_deadline",
        "cascade_notifications",
        ["response_deadline"],
    )
    op.create_index("ix_cascade_notifications_response", "cascade_notifications", ["response"])

    # Settings (single row)
    op.create_table(
        "cascade_settings",
        sa.Column("id", postgresql.UUID(as_uuid=False), nullable=False),
        sa.Column("timeout_per_round_minutes", sa.Integer(), nullable=False, server_default="5"),
        sa.Column("max_rounds", sa.Integer(), nullable=False, server_default="3"),
        sa.Column("doctors_per_round", sa.Integer(), nullable=False, server_default="3"),
        sa.Column(
            "prioritize_by", sa.String(30), nullable=False, server_default="availability"
        ),
        sa.Column("enable_whatsapp", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("enable_email", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("enable_push", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("whatsapp_template", sa.Text(), nullable=False),
        sa.Column("renotify_cooldown_rounds", sa.Integer(), nullable=True),
        sa.Column("auto_start_on_create", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_cascade_settings"),
    )

    # Operations dashboard notices
    op.create_table(
        "staff_notifications",
        sa.Column("id", postgresql.UUID(as_uuid=False), nullable=False),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("notification_type", sa.String(50), nullable=False),
        sa.Column("consultation_id", postgresql.UUID(as_uuid=False), nullable=True),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(
            ["consultation_id"],
            ["consultation_requests.id"],
            name="fk_staff_notifications_consultation_id_consultation_requests",
            ondelete="SET NULL",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_staff_notifications"),
    )
    op.create_index(
        "ix_staff_notifications_consultation_id", "staff_notifications", ["consultation_id"]
    )
    op.create_index("ix_staff_notifications_is_read", "staff_notifications", ["is_read"])


def downgrade() -> None:
    """Drop all tables."""
    op.drop_table("staff_notifications")
    op.drop_table("cascade_settings")
    op.drop_table("cascade_notifications")
    op.drop_table("consultation_events")
    op.drop_table("consultation_requests")
    op.drop_table("doctors")

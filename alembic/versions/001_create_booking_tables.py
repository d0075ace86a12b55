"""Create booking tables - appointments, slot claims and schedules.

Revision ID: 001
Revises:
Create Date: 2026-10-18 00:00:00.000000

"""

from typing import Sequence, Union

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade database schema."""
    # Create appointments table
    op.create_table(
        "appointments",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("hospital_id", sa.String(length=64), nullable=False),
        sa.Column("branch_id", sa.String(length=64), nullable=True),
        sa.Column("patient_id", sa.String(length=64), nullable=False),
        sa.Column("doctor_id", sa.String(length=64), nullable=False),
        sa.Column("patient_name", sa.Text(), nullable=True),
        sa.Column("patient_phone", sa.String(length=20), nullable=True),
        sa.Column("appointment_date", sa.String(length=10), nullable=False),
        sa.Column("appointment_time", sa.String(length=5), nullable=False),
        sa.Column("requested_time", sa.String(length=20), nullable=True),
        sa.Column("chief_complaint", sa.Text(), nullable=True),
        sa.Column("medical_history", sa.Text(), nullable=True),
        sa.Column("status", sa.String(length=20), server_default="confirmed", nullable=False),
        sa.Column("source", sa.String(length=30), server_default="patient_app", nullable=False),
        sa.Column("idempotency_key", sa.String(length=100), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancellation_reason", sa.Text(), nullable=True),
        sa.CheckConstraint(
            "status IN ('confirmed', 'completed', 'cancelled', 'not_attended')",
            name="appointments_status_check",
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("patient_id", "idempotency_key", name="uq_appointments_idempotency"),
    )
    op.create_index(
        "idx_appointments_doctor_date",
        "appointments",
        ["doctor_id", "appointment_date"],
        unique=False,
    )
    op.create_index("idx_appointments_patient", "appointments", ["patient_id"], unique=False)

    # Create slot claim ledger
    op.create_table(
        "slot_claims",
        sa.Column("slot_key", sa.String(length=120), nullable=False),
        sa.Column("appointment_id", sa.Uuid(), nullable=False),
        sa.Column("doctor_id", sa.String(length=64), nullable=False),
        sa.Column("slot_date", sa.String(length=10), nullable=False),
        sa.Column("slot_time", sa.String(length=5), nullable=False),
        sa.Column("hospital_id", sa.String(length=64), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("slot_key"),
        sa.UniqueConstraint(
            "doctor_id", "slot_date", "slot_time", name="uq_slot_claims_doctor_slot"
        ),
    )
    op.create_index(
        op.f("ix_slot_claims_appointment_id"), "slot_claims", ["appointment_id"], unique=False
    )

    # Create schedule tables
    op.create_table(
        "doctor_schedules",
        sa.Column("doctor_id", sa.String(length=64), nullable=False),
        sa.Column("hospital_id", sa.String(length=64), nullable=True),
        sa.Column("visiting_hours", sa.JSON(), nullable=True),
        sa.Column("blocked_dates", sa.JSON(), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("doctor_id"),
    )
    op.create_table(
        "doctor_branch_schedules",
        sa.Column("doctor_id", sa.String(length=64), nullable=False),
        sa.Column("branch_id", sa.String(length=64), nullable=False),
        sa.Column("visiting_hours", sa.JSON(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("doctor_id", "branch_id", name="pk_doctor_branch_schedules"),
    )
    op.create_table(
        "branch_timings",
        sa.Column("branch_id", sa.String(length=64), nullable=False),
        sa.Column("hospital_id", sa.String(length=64), nullable=True),
        sa.Column("timings", sa.JSON(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("branch_id"),
    )


def downgrade() -> None:
    """Downgrade database schema."""
    op.drop_table("branch_timings")
    op.drop_table("doctor_branch_schedules")
    op.drop_table("doctor_schedules")
    op.drop_index(op.f("ix_slot_claims_appointment_id"), table_name="slot_claims")
    op.drop_table("slot_claims")
    op.drop_index("idx_appointments_patient", table_name="appointments")
    op.drop_index("idx_appointments_doctor_date", table_name="appointments")
    op.drop_table("appointments")

"""Appointments table model using SQLAlchemy Core."""

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    Index,
    String,
    Table,
    Text,
    UniqueConstraint,
    Uuid,
)

from carebook.models.base import metadata

# Appointments table
appointments = Table(
    "appointments",
    metadata,
    Column("id", Uuid, primary_key=True),
    # Tenant / ownership
    Column("hospital_id", String(64), nullable=False),
    Column("branch_id", String(64), nullable=True),
    Column("patient_id", String(64), nullable=False),
    Column("doctor_id", String(64), nullable=False),
    # Snapshot fields (denormalized for history)
    Column("patient_name", Text, nullable=True),
    Column("patient_phone", String(20), nullable=True),
    # Slot, always normalized: YYYY-MM-DD and HH:MM
    Column("appointment_date", String(10), nullable=False),
    Column("appointment_time", String(5), nullable=False),
    # Time exactly as the caller sent it
    Column("requested_time", String(20), nullable=True),
    # Clinical intake (opaque to booking)
    Column("chief_complaint", Text, nullable=True),
    Column("medical_history", Text, nullable=True),
    # Status management
    Column("status", String(20), nullable=False, server_default="confirmed"),
    Column("source", String(30), nullable=False, server_default="patient_app"),
    Column("idempotency_key", String(100), nullable=True),
    # Audit fields
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("updated_at", DateTime(timezone=True), nullable=False),
    Column("cancelled_at", DateTime(timezone=True), nullable=True),
    Column("cancellation_reason", Text, nullable=True),
    # Constraints
    CheckConstraint(
        "status IN ('confirmed', 'completed', 'cancelled', 'not_attended')",
        name="appointments_status_check",
    ),
    UniqueConstraint("patient_id", "idempotency_key", name="uq_appointments_idempotency"),
)

Index(
    "idx_appointments_doctor_date",
    appointments.c.doctor_id,
    appointments.c.appointment_date,
)
Index("idx_appointments_patient", appointments.c.patient_id)

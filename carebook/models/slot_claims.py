"""Slot claim ledger table.

One row per claimed (doctor, date, time). The primary key is the composite
slot id, so the database itself refuses a second claim on the same slot.
"""

from sqlalchemy import Column, DateTime, String, Table, UniqueConstraint, Uuid

from carebook.models.base import metadata

slot_claims = Table(
    "slot_claims",
    metadata,
    Column("slot_key", String(120), primary_key=True),
    Column("appointment_id", Uuid, nullable=False, index=True),
    Column("doctor_id", String(64), nullable=False),
    Column("slot_date", String(10), nullable=False),
    Column("slot_time", String(5), nullable=False),
    Column("hospital_id", String(64), nullable=True),
    Column("created_at", DateTime(timezone=True), nullable=False),
    UniqueConstraint("doctor_id", "slot_date", "slot_time", name="uq_slot_claims_doctor_slot"),
)

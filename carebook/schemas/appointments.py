"""Appointment schemas for request/response validation."""

from datetime import date, datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from carebook.core.timegrid import normalize_time


class AppointmentStatus(str, Enum):
    """Appointment status enumeration."""

    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NOT_ATTENDED = "not_attended"


# Statuses whose appointment owns its slot claim
SLOT_HOLDING_STATUSES = frozenset({AppointmentStatus.CONFIRMED})


class AppointmentSource(str, Enum):
    """Appointment source enumeration."""

    PATIENT_APP = "patient_app"
    DOCTOR_PORTAL = "doctor_portal"
    RECEPTIONIST_PORTAL = "receptionist_portal"
    WHATSAPP_FLOW = "whatsapp_flow"


def _validate_slot_time(v: str) -> str:
    if normalize_time(v) is None:
        raise ValueError("Time must look like HH:MM or h:MM AM/PM")
    return v.strip()


class BookingRequest(BaseModel):
    """Schema for booking a new appointment."""

    hospital_id: str = Field(..., min_length=1, max_length=64)
    branch_id: str | None = Field(None, max_length=64)
    doctor_id: str = Field(..., min_length=1, max_length=64)
    patient_id: str = Field(..., min_length=1, max_length=64)
    patient_name: str | None = Field(None, max_length=200)
    patient_phone: str | None = Field(None, min_length=7, max_length=20)
    appointment_date: date
    appointment_time: str = Field(..., min_length=1, max_length=20)
    chief_complaint: str | None = Field(None, max_length=2000)
    medical_history: str | None = Field(None, max_length=5000)
    source: AppointmentSource = AppointmentSource.PATIENT_APP
    idempotency_key: str | None = Field(None, min_length=8, max_length=100)

    @field_validator("appointment_time")
    @classmethod
    def validate_time(cls, v: str) -> str:
        """Reject times that cannot be normalized."""
        return _validate_slot_time(v)

    @field_validator("patient_phone")
    @classmethod
    def validate_phone(cls, v: str | None) -> str | None:
        """Validate phone number format."""
        if v is None:
            return v
        cleaned = (
            v.replace("-", "").replace(" ", "").replace("(", "").replace(")", "").replace("+", "")
        )
        if not cleaned.isdigit():
            raise ValueError("Phone number must contain only digits and separators")
        if len(cleaned) < 7:
            raise ValueError("Phone number must have at least 7 digits")
        return v


class RescheduleRequest(BaseModel):
    """Schema for moving an appointment to a new slot."""

    appointment_date: date
    appointment_time: str = Field(..., min_length=1, max_length=20)

    @field_validator("appointment_time")
    @classmethod
    def validate_time(cls, v: str) -> str:
        """Reject times that cannot be normalized."""
        return _validate_slot_time(v)


class CancelRequest(BaseModel):
    """Schema for cancelling an appointment."""

    reason: str | None = Field(None, max_length=500)


class AppointmentResponse(BaseModel):
    """Schema for appointment response."""

    id: UUID
    hospital_id: str
    branch_id: str | None = None
    patient_id: str
    doctor_id: str
    patient_name: str | None = None
    patient_phone: str | None = None
    appointment_date: date
    appointment_time: str
    requested_time: str | None = None
    chief_complaint: str | None = None
    medical_history: str | None = None
    status: AppointmentStatus
    source: str
    created_at: datetime
    updated_at: datetime
    cancelled_at: datetime | None = None
    cancellation_reason: str | None = None

    model_config = {"from_attributes": True}


class BookingResult(BaseModel):
    """Outcome of a successful booking call."""

    appointment: AppointmentResponse
    replayed: bool = Field(
        False,
        description="True when an idempotent retry returned an earlier booking",
    )

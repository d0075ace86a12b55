"""Database models."""

from carebook.models.appointments import appointments
from carebook.models.base import metadata
from carebook.models.schedules import branch_timings, doctor_branch_schedules, doctor_schedules
from carebook.models.slot_claims import slot_claims

__all__ = [
    "appointments",
    "branch_timings",
    "doctor_branch_schedules",
    "doctor_schedules",
    "metadata",
    "slot_claims",
]

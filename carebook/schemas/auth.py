"""Requester identity schemas."""

from enum import Enum

from pydantic import BaseModel


class UserRole(str, Enum):
    """Role carried in the access token."""

    PATIENT = "patient"
    DOCTOR = "doctor"
    RECEPTIONIST = "receptionist"
    ADMIN = "admin"


STAFF_ROLES = frozenset({UserRole.DOCTOR, UserRole.RECEPTIONIST, UserRole.ADMIN})


class RequesterContext(BaseModel):
    """Who is calling, as established by the authentication layer."""

    user_id: str
    hospital_id: str | None = None
    role: UserRole = UserRole.PATIENT

    @property
    def is_staff(self) -> bool:
        """Doctors, receptionists and admins act on behalf of patients."""
        return self.role in STAFF_ROLES

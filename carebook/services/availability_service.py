"""Slot availability: which generated slots are still free."""

from collections.abc import Iterable, Mapping
from datetime import date, datetime, tzinfo
from typing import Any

from sqlalchemy import and_, select
from sqlalchemy.ext.asyncio import AsyncSession

from carebook.core.blocked_dates import find_blocked_date
from carebook.core.timegrid import SLOT_DURATION_MINUTES, slots_for_date, time_to_minutes
from carebook.models.appointments import appointments
from carebook.schemas.appointments import SLOT_HOLDING_STATUSES, AppointmentStatus
from carebook.schemas.schedules import BlockedDate
from carebook.services.schedule_service import ScheduleResolver
from carebook.services.slot_ledger import SlotKey, SlotLedger

_HOLDING_VALUES = frozenset(status.value for status in SLOT_HOLDING_STATUSES)


def is_time_slot_available(
    slot_time: str,
    occupied_times: Iterable[str],
    slot_minutes: int = SLOT_DURATION_MINUTES,
) -> bool:
    """
    Check a slot against occupied appointment times.

    An appointment at ``T`` occupies ``[T, T + slot_minutes)``; the slot is
    taken if its start falls inside any such window.
    """
    slot = time_to_minutes(slot_time)
    for occupied in occupied_times:
        try:
            start = time_to_minutes(occupied)
        except ValueError:
            continue
        if start <= slot < start + slot_minutes:
            return False
    return True


def filter_available_slots(
    candidates: list[str],
    existing_appointments: Iterable[Mapping[str, Any]],
    *,
    doctor_id: str,
    day: date,
    blocked_dates: list[BlockedDate],
    now: datetime,
    branch_id: str | None = None,
    slot_minutes: int = SLOT_DURATION_MINUTES,
) -> list[str]:
    """
    Narrow candidate slots down to the free ones.

    Args:
        candidates: Generated slots for the date, sorted
        existing_appointments: Appointment rows (doctor_id, appointment_date,
            appointment_time, status, branch_id)
        doctor_id: Doctor being booked
        day: Target date
        blocked_dates: Doctor's canonical blocked dates
        now: Current wall-clock time in the clinic timezone
        branch_id: Only count appointments at this branch when given
        slot_minutes: Occupancy window of one appointment

    Returns:
        Free slots, in candidate order
    """
    if find_blocked_date(blocked_dates, day):
        return []

    day_str = day.isoformat()
    occupied = [
        apt["appointment_time"]
        for apt in existing_appointments
        if apt.get("doctor_id") == doctor_id
        and str(apt.get("appointment_date")) == day_str
        and (branch_id is None or apt.get("branch_id") == branch_id)
        and _status_value(apt.get("status")) in _HOLDING_VALUES
    ]

    available = [slot for slot in candidates if is_time_slot_available(slot, occupied, slot_minutes)]

    if day == now.date():
        current = now.hour * 60 + now.minute
        available = [slot for slot in available if time_to_minutes(slot) >= current]
    elif day < now.date():
        return []

    return available


def _status_value(status: Any) -> Any:
    return status.value if isinstance(status, AppointmentStatus) else status


class AvailabilityService:
    """Compose schedule resolution, slot generation and filtering."""

    def __init__(
        self,
        resolver: ScheduleResolver,
        tz: tzinfo,
        ledger: SlotLedger | None = None,
        slot_minutes: int = SLOT_DURATION_MINUTES,
    ):
        """Initialize with the schedule resolver and clinic timezone."""
        self.resolver = resolver
        self.tz = tz
        self.ledger = ledger or SlotLedger()
        self.slot_minutes = slot_minutes

    def now(self) -> datetime:
        """Current time in the clinic timezone."""
        return datetime.now(self.tz)

    async def candidate_slots(
        self,
        db: AsyncSession,
        doctor_id: str,
        day: date,
        branch_id: str | None = None,
    ) -> list[str]:
        """All slots the doctor's effective template generates for a date."""
        resolved = await self.resolver.get_effective_schedule(db, doctor_id, branch_id)
        return slots_for_date(resolved.visiting_hours, day, self.slot_minutes)

    async def list_available_slots(
        self,
        db: AsyncSession,
        doctor_id: str,
        day: date,
        branch_id: str | None = None,
    ) -> list[str]:
        """
        List free slots for a doctor on a date.

        This is a display read; the ledger, not this list, decides whether a
        booking succeeds.

        Args:
            db: Database session
            doctor_id: Doctor ID
            day: Target date
            branch_id: Restrict to one branch's template and appointments

        Returns:
            Sorted ``HH:MM`` slot times
        """
        blocked = await self.resolver.get_blocked_dates(db, doctor_id)
        if find_blocked_date(blocked, day):
            return []

        candidates = await self.candidate_slots(db, doctor_id, day, branch_id)
        if not candidates:
            return []

        conditions = [
            appointments.c.doctor_id == doctor_id,
            appointments.c.appointment_date == day.isoformat(),
            appointments.c.status.in_(_HOLDING_VALUES),
        ]
        if branch_id:
            conditions.append(appointments.c.branch_id == branch_id)

        result = await db.execute(
            select(
                appointments.c.doctor_id,
                appointments.c.appointment_date,
                appointments.c.appointment_time,
                appointments.c.branch_id,
                appointments.c.status,
            ).where(and_(*conditions))
        )

        return filter_available_slots(
            candidates,
            result.mappings().all(),
            doctor_id=doctor_id,
            day=day,
            blocked_dates=blocked,
            now=self.now(),
            branch_id=branch_id,
            slot_minutes=self.slot_minutes,
        )

    async def check_slot(self, db: AsyncSession, key: SlotKey) -> bool:
        """True if no appointment currently holds the slot."""
        return await self.ledger.get_claim(db, key) is None

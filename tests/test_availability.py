"""Tests for availability filtering."""

from datetime import UTC, date, datetime, timedelta
from uuid import uuid4

import pytest
from conftest import DOCTOR_ID, HOSPITAL_ID, upcoming
from sqlalchemy import insert

from carebook.models.appointments import appointments
from carebook.schemas.appointments import AppointmentStatus
from carebook.schemas.schedules import BlockedDate
from carebook.services.availability_service import (
    AvailabilityService,
    filter_available_slots,
    is_time_slot_available,
)
from carebook.services.slot_ledger import SlotKey, SlotLedger

DAY = date(2026, 10, 19)
CANDIDATES = ["09:00", "09:15", "09:30", "09:45", "10:00", "10:15"]
EARLIER = datetime(2026, 10, 1, 8, 0, tzinfo=UTC)


def _appointment(time: str, status: str = "confirmed", **overrides) -> dict:
    row = {
        "doctor_id": DOCTOR_ID,
        "appointment_date": DAY.isoformat(),
        "appointment_time": time,
        "status": status,
        "branch_id": None,
    }
    row.update(overrides)
    return row


def _filter(existing, **kwargs) -> list[str]:
    params = {
        "doctor_id": DOCTOR_ID,
        "day": DAY,
        "blocked_dates": [],
        "now": EARLIER,
    }
    params.update(kwargs)
    return filter_available_slots(CANDIDATES, existing, **params)


def test_is_time_slot_available_uses_fifteen_minute_window():
    """An appointment at T occupies [T, T+15)."""
    assert is_time_slot_available("09:00", ["09:00"]) is False
    assert is_time_slot_available("09:15", ["09:00"]) is True
    assert is_time_slot_available("09:15", ["09:10"]) is False
    assert is_time_slot_available("09:00", ["09:10"]) is True
    assert is_time_slot_available("09:00", ["bad", "10:00"]) is True


def test_confirmed_appointment_removes_its_slot():
    """Only the booked slot disappears."""
    assert _filter([_appointment("09:30")]) == ["09:00", "09:15", "09:45", "10:00", "10:15"]


def test_off_grid_appointment_blocks_overlapping_slot():
    """A legacy 09:10 booking blocks 09:15 but not 09:00."""
    assert _filter([_appointment("09:10")]) == ["09:00", "09:30", "09:45", "10:00", "10:15"]


@pytest.mark.parametrize("status", ["cancelled", "completed", "not_attended"])
def test_non_confirmed_statuses_do_not_hold_slots(status):
    """Cancelled and finished appointments free their slot."""
    assert _filter([_appointment("09:00", status=status)]) == CANDIDATES


def test_status_enum_values_are_understood():
    """Rows carrying enum members behave like raw strings."""
    assert "09:00" not in _filter([_appointment("09:00", status=AppointmentStatus.CONFIRMED)])


def test_other_doctors_and_dates_are_ignored():
    """Appointments of other doctors or days never collide."""
    existing = [
        _appointment("09:00", doctor_id="doc-2"),
        _appointment("09:15", appointment_date="2026-10-20"),
    ]
    assert _filter(existing) == CANDIDATES


def test_branch_filter():
    """With a branch, only that branch's appointments count."""
    existing = [_appointment("09:00", branch_id="branch-2")]

    assert _filter(existing, branch_id="branch-1") == CANDIDATES
    assert "09:00" not in _filter(existing)


def test_blocked_date_has_no_slots():
    """A blocked day returns nothing."""
    blocked = [BlockedDate(date=DAY, reason="Conference")]
    assert _filter([], blocked_dates=blocked) == []


def test_past_day_has_no_slots():
    """Days before today are never bookable."""
    assert _filter([], now=datetime(2026, 10, 20, 8, 0, tzinfo=UTC)) == []


def test_today_drops_slots_before_current_minute():
    """Slots earlier than now are gone; the current minute is kept."""
    assert _filter([], now=datetime(2026, 10, 19, 9, 37, tzinfo=UTC)) == ["09:45", "10:00", "10:15"]
    assert _filter([], now=datetime(2026, 10, 19, 9, 45, 30, tzinfo=UTC)) == [
        "09:45",
        "10:00",
        "10:15",
    ]


@pytest.mark.asyncio
async def test_list_available_slots_from_database(session_factory, resolver):
    """Service reads appointments and the template from the database."""
    day = upcoming(0)
    now = datetime.now(UTC)

    async with session_factory() as session:
        await session.execute(
            insert(appointments).values(
                id=uuid4(),
                hospital_id=HOSPITAL_ID,
                patient_id="patient-9",
                doctor_id=DOCTOR_ID,
                appointment_date=day.isoformat(),
                appointment_time="09:15",
                status="confirmed",
                source="patient_app",
                created_at=now,
                updated_at=now,
            )
        )
        await session.execute(
            insert(appointments).values(
                id=uuid4(),
                hospital_id=HOSPITAL_ID,
                patient_id="patient-8",
                doctor_id=DOCTOR_ID,
                appointment_date=day.isoformat(),
                appointment_time="09:30",
                status="cancelled",
                source="patient_app",
                created_at=now,
                updated_at=now,
            )
        )
        await session.commit()

    service = AvailabilityService(resolver=resolver, tz=UTC)
    async with session_factory() as session:
        slots = await service.list_available_slots(session, DOCTOR_ID, day)

    assert len(slots) == 27
    assert slots[:3] == ["09:00", "09:30", "09:45"]


@pytest.mark.asyncio
async def test_list_available_slots_on_closed_day(session_factory, resolver):
    """The default template has no Sunday hours."""
    service = AvailabilityService(resolver=resolver, tz=UTC)
    async with session_factory() as session:
        assert await service.list_available_slots(session, DOCTOR_ID, upcoming(6)) == []


@pytest.mark.asyncio
async def test_check_slot_reads_the_ledger(session_factory, resolver):
    """A slot is free exactly when no claim exists."""
    day = upcoming(0) + timedelta(days=7)
    key = SlotKey(DOCTOR_ID, day, "10:00")
    ledger = SlotLedger()

    async with session_factory() as session:
        await ledger.try_claim(session, key, uuid4(), HOSPITAL_ID)
        await session.commit()

    service = AvailabilityService(resolver=resolver, tz=UTC, ledger=ledger)
    async with session_factory() as session:
        assert await service.check_slot(session, key) is False
        assert await service.check_slot(session, SlotKey(DOCTOR_ID, day, "10:15")) is True

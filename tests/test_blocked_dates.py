"""Tests for blocked date normalization."""

from datetime import UTC, date, datetime, timedelta, timezone

import pytest

from carebook.core.blocked_dates import (
    find_blocked_date,
    normalize_blocked_date,
    normalize_blocked_dates,
)

JAN_15_MIDNIGHT_UTC = 1705276800


@pytest.mark.parametrize(
    "value",
    [
        "2024-01-15",
        "2024-01-15T10:30:00Z",
        {"date": "2024-01-15", "reason": "Conference"},
        {"seconds": JAN_15_MIDNIGHT_UTC},
        {"_seconds": JAN_15_MIDNIGHT_UTC, "_nanoseconds": 0},
        date(2024, 1, 15),
        datetime(2024, 1, 15, 10, 30),
    ],
)
def test_every_stored_shape_normalizes(value):
    """All known storage shapes map to the same calendar date."""
    assert normalize_blocked_date(value) == date(2024, 1, 15)


def test_epoch_seconds_use_clinic_timezone():
    """Epoch records are read as a calendar date in the clinic timezone."""
    new_york = timezone(timedelta(hours=-5))
    assert normalize_blocked_date({"seconds": JAN_15_MIDNIGHT_UTC}, new_york) == date(2024, 1, 14)


def test_aware_datetime_converted_to_clinic_timezone():
    """Aware datetimes are converted before taking the date."""
    late_utc = datetime(2024, 1, 15, 23, 0, tzinfo=UTC)
    kolkata = timezone(timedelta(hours=5, minutes=30))
    assert normalize_blocked_date(late_utc, kolkata) == date(2024, 1, 16)


@pytest.mark.parametrize(
    "value",
    [None, "", "not-a-date", "15/01/2024", {"foo": 1}, {"seconds": True}, {"seconds": 0}, 42],
)
def test_unreadable_values_return_none(value):
    """Values that cannot be interpreted are dropped."""
    assert normalize_blocked_date(value) is None


def test_list_is_sorted_deduplicated_and_first_reason_wins():
    """Duplicates collapse onto the first entry and garbage is skipped."""
    stored = [
        {"date": "2024-03-01", "reason": "Holiday"},
        "garbage",
        {"seconds": JAN_15_MIDNIGHT_UTC},
        {"date": "2024-03-01", "reason": "Later duplicate"},
        "2024-02-10",
    ]

    blocked = normalize_blocked_dates(stored)

    assert [item.date for item in blocked] == [
        date(2024, 1, 15),
        date(2024, 2, 10),
        date(2024, 3, 1),
    ]
    assert blocked[2].reason == "Holiday"
    assert blocked[0].reason is None


@pytest.mark.parametrize("stored", [None, {}, "2024-01-15"])
def test_non_list_storage_is_empty(stored):
    """Anything but a list means no blocked dates."""
    assert normalize_blocked_dates(stored) == []


def test_find_blocked_date():
    """Lookup returns the matching entry or None."""
    blocked = normalize_blocked_dates([{"date": "2024-01-15", "reason": "Leave"}])

    assert find_blocked_date(blocked, date(2024, 1, 15)).reason == "Leave"
    assert find_blocked_date(blocked, date(2024, 1, 16)) is None

"""Blocked date normalization.

Doctors' blocked dates have been stored in several shapes over time:

* plain strings: ``"2024-01-15"`` or ``"2024-01-15T10:30:00Z"``
* objects with a date field: ``{"date": "2024-01-15", "reason": "Conference"}``
* epoch records: ``{"seconds": 1705276800}`` (optionally ``{"_seconds": ...}``)
* native ``date`` / ``datetime`` values

Everything is normalized here, at the storage boundary, into canonical
``BlockedDate`` values. The rest of the service only sees ``datetime.date``.
"""

from datetime import UTC, date, datetime, tzinfo
from typing import Any

import structlog

from carebook.schemas.schedules import BlockedDate

logger = structlog.get_logger()


def _parse_date_string(value: str) -> date | None:
    try:
        return date.fromisoformat(value.strip()[:10])
    except ValueError:
        return None


def normalize_blocked_date(value: Any, tz: tzinfo = UTC) -> date | None:
    """
    Normalize a single stored blocked date.

    Args:
        value: Stored value in any supported shape
        tz: Timezone used to turn epoch seconds into a calendar date

    Returns:
        The calendar date, or None if the value cannot be interpreted
    """
    if not value:
        return None

    if isinstance(value, datetime):
        if value.tzinfo is not None:
            return value.astimezone(tz).date()
        return value.date()

    if isinstance(value, date):
        return value

    if isinstance(value, str):
        return _parse_date_string(value)

    if isinstance(value, dict):
        if isinstance(value.get("date"), str):
            return _parse_date_string(value["date"])

        seconds = value.get("seconds", value.get("_seconds"))
        if isinstance(seconds, int | float) and not isinstance(seconds, bool) and seconds:
            return datetime.fromtimestamp(seconds, tz=tz).date()

    return None


def _reason_of(value: Any) -> str | None:
    if isinstance(value, dict):
        reason = value.get("reason")
        return str(reason) if reason else None
    return None


def normalize_blocked_dates(values: Any, tz: tzinfo = UTC) -> list[BlockedDate]:
    """
    Normalize a stored blocked-date list.

    Unreadable entries are dropped. When the same date appears twice the
    first reason wins.

    Args:
        values: Stored list (anything else yields an empty list)
        tz: Timezone used for epoch records

    Returns:
        Canonical blocked dates sorted by date
    """
    if not isinstance(values, list):
        return []

    normalized: dict[date, BlockedDate] = {}
    for value in values:
        day = normalize_blocked_date(value, tz)
        if day is None:
            logger.debug("blocked_date_unreadable", value=str(value))
            continue
        if day not in normalized:
            normalized[day] = BlockedDate(date=day, reason=_reason_of(value))

    return [normalized[day] for day in sorted(normalized)]


def find_blocked_date(blocked_dates: list[BlockedDate], day: date) -> BlockedDate | None:
    """Return the blocked entry for ``day`` if there is one."""
    for blocked in blocked_dates:
        if blocked.date == day:
            return blocked
    return None

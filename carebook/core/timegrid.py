"""Time grid utilities: time normalization and slot generation."""

import re
from datetime import date
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from carebook.schemas.schedules import DaySchedule, VisitingHours

SLOT_DURATION_MINUTES = 15

WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")

_TWELVE_HOUR = re.compile(r"^(\d{1,2})(?:[:\-.]?(\d{2}))?(AM|PM)$")
_TWENTY_FOUR_HOUR = re.compile(r"^(\d{1,2}):(\d{2})(?::\d{2})?$")


def normalize_time(value: str | None) -> str | None:
    """
    Normalize a user-supplied time to 24-hour ``HH:MM``.

    Accepts ``9:00``, ``09-00``, ``9.00``, ``9:00 AM``, ``09:00PM`` and
    ``9PM``. Seconds are dropped.

    Args:
        value: Raw time string

    Returns:
        Normalized time, or None if the value is not a valid time of day
    """
    if not value or not isinstance(value, str):
        return None

    cleaned = re.sub(r"\s+", "", value).upper()

    if cleaned.endswith(("AM", "PM")):
        match = _TWELVE_HOUR.match(cleaned)
        if not match:
            return None
        hours = int(match.group(1))
        minutes = int(match.group(2) or 0)
        period = match.group(3)
        if not 1 <= hours <= 12:
            return None
        if period == "PM" and hours != 12:
            hours += 12
        elif period == "AM" and hours == 12:
            hours = 0
    else:
        match = _TWENTY_FOUR_HOUR.match(cleaned.replace("-", ":").replace(".", ":"))
        if not match:
            return None
        hours = int(match.group(1))
        minutes = int(match.group(2))
        if hours > 23:
            return None

    if minutes > 59:
        return None

    return f"{hours:02d}:{minutes:02d}"


def time_to_minutes(value: str) -> int:
    """Convert a time string to minutes since midnight."""
    normalized = normalize_time(value)
    if normalized is None:
        raise ValueError(f"Invalid time: {value!r}")
    hours, minutes = normalized.split(":")
    return int(hours) * 60 + int(minutes)


def minutes_to_time(minutes: int) -> str:
    """Convert minutes since midnight to ``HH:MM``."""
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def day_name(day: date) -> str:
    """Lowercase weekday name of a date."""
    return WEEKDAYS[day.weekday()]


def generate_time_slots(
    day_schedule: "DaySchedule",
    slot_minutes: int = SLOT_DURATION_MINUTES,
) -> list[str]:
    """
    Generate every slot start time for one day's visiting hours.

    A slot is emitted for each ``m`` with ``start <= m < end`` stepping by
    ``slot_minutes``, so a slot is included whenever its start lies inside
    an interval. Overlapping or unsorted intervals are merged through a set.

    Args:
        day_schedule: Availability for the day
        slot_minutes: Slot granularity

    Returns:
        Sorted, de-duplicated ``HH:MM`` start times
    """
    if not day_schedule.is_available or not day_schedule.slots:
        return []

    slot_set: set[int] = set()
    for interval in day_schedule.slots:
        try:
            start = time_to_minutes(interval.start)
            end = time_to_minutes(interval.end)
        except ValueError:
            continue

        slot_set.update(range(start, end, slot_minutes))

    return [minutes_to_time(m) for m in sorted(slot_set)]


def slots_for_date(
    visiting_hours: "VisitingHours",
    day: date,
    slot_minutes: int = SLOT_DURATION_MINUTES,
) -> list[str]:
    """Generate candidate slots of a weekly template for a calendar date."""
    return generate_time_slots(visiting_hours.for_day(day_name(day)), slot_minutes)


def format_time_display(value: str) -> str:
    """Render ``HH:MM`` as ``h:MM AM/PM``."""
    hours, minutes = (int(part) for part in value.split(":"))
    period = "PM" if hours >= 12 else "AM"
    display_hours = hours % 12 or 12
    return f"{display_hours}:{minutes:02d} {period}"


def availability_days(visiting_hours: "VisitingHours") -> list[str]:
    """Short names of the weekdays a template is open, e.g. ``["Mon", "Tue"]``."""
    return [
        day[:3].capitalize()
        for day in WEEKDAYS
        if visiting_hours.for_day(day).is_available and visiting_hours.for_day(day).slots
    ]

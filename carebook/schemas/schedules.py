"""Schedule schemas: weekly templates, branch timings and blocked dates."""

from datetime import date

from pydantic import BaseModel, Field, field_validator

from carebook.core.timegrid import WEEKDAYS, normalize_time


class TimeRange(BaseModel):
    """Half-open ``[start, end)`` interval in 24-hour HH:MM."""

    start: str
    end: str

    @field_validator("start", "end", mode="before")
    @classmethod
    def validate_time(cls, v: str) -> str:
        """Normalize 12-hour and loosely formatted times."""
        normalized = normalize_time(v)
        if normalized is None:
            raise ValueError(f"Invalid time: {v!r}")
        return normalized


class DaySchedule(BaseModel):
    """Open intervals for one weekday. Several intervals model lunch breaks."""

    is_available: bool = False
    slots: list[TimeRange] = Field(default_factory=list)


class VisitingHours(BaseModel):
    """Weekly availability template, one day schedule per weekday."""

    monday: DaySchedule = Field(default_factory=DaySchedule)
    tuesday: DaySchedule = Field(default_factory=DaySchedule)
    wednesday: DaySchedule = Field(default_factory=DaySchedule)
    thursday: DaySchedule = Field(default_factory=DaySchedule)
    friday: DaySchedule = Field(default_factory=DaySchedule)
    saturday: DaySchedule = Field(default_factory=DaySchedule)
    sunday: DaySchedule = Field(default_factory=DaySchedule)

    def for_day(self, day: str) -> DaySchedule:
        """Return the schedule for a lowercase weekday name."""
        return getattr(self, day)


class BranchTimings(BaseModel):
    """Branch opening hours: a single interval per weekday, ``None`` when closed."""

    monday: TimeRange | None = None
    tuesday: TimeRange | None = None
    wednesday: TimeRange | None = None
    thursday: TimeRange | None = None
    friday: TimeRange | None = None
    saturday: TimeRange | None = None
    sunday: TimeRange | None = None

    def to_visiting_hours(self) -> VisitingHours:
        """Convert to a weekly template."""
        days = {}
        for day in WEEKDAYS:
            timing = getattr(self, day)
            if timing:
                days[day] = DaySchedule(is_available=True, slots=[timing])
            else:
                days[day] = DaySchedule(is_available=False, slots=[])
        return VisitingHours(**days)


class BlockedDate(BaseModel):
    """A canonical blocked date with an optional reason."""

    date: date
    reason: str | None = None


class BlockedDateCreate(BaseModel):
    """Schema for blocking a date on a doctor's calendar."""

    date: date
    reason: str | None = Field(None, max_length=300)


class EffectiveScheduleResponse(BaseModel):
    """Schema for the resolved weekly template of a doctor."""

    doctor_id: str
    source: str = Field(..., pattern="^(doctor_branch|branch|doctor|default)$")
    branch_id: str | None = None
    visiting_hours: VisitingHours
    available_days: list[str]
    blocked_dates: list[BlockedDate]


class DoctorScheduleUpdate(BaseModel):
    """Schema for replacing a doctor's default weekly template."""

    visiting_hours: VisitingHours


class BranchTimingsUpdate(BaseModel):
    """Schema for replacing a branch's opening hours."""

    timings: BranchTimings


class AvailableSlotsResponse(BaseModel):
    """Schema for the free slots of a doctor on one date."""

    doctor_id: str
    date: date
    branch_id: str | None = None
    slots: list[str]


class SlotCheckResponse(BaseModel):
    """Schema for a single-slot availability check."""

    doctor_id: str
    date: date
    time: str
    available: bool

"""Schedule tables: doctor templates, per-branch overrides and branch hours."""

from sqlalchemy import JSON, Column, DateTime, PrimaryKeyConstraint, String, Table

from carebook.models.base import metadata

# Doctor's default weekly template and blocked dates
doctor_schedules = Table(
    "doctor_schedules",
    metadata,
    Column("doctor_id", String(64), primary_key=True),
    Column("hospital_id", String(64), nullable=True),
    Column("visiting_hours", JSON, nullable=True),
    # Example: {"monday": {"is_available": true, "slots": [{"start": "09:00", "end": "13:00"}]}}
    Column("blocked_dates", JSON, nullable=True),
    # Heterogeneous: ["2024-01-15", {"date": "2024-01-20", "reason": "..."}, {"seconds": ...}]
    Column("updated_at", DateTime(timezone=True), nullable=False),
)

# Doctor's template at a specific branch, supersedes the default
doctor_branch_schedules = Table(
    "doctor_branch_schedules",
    metadata,
    Column("doctor_id", String(64), nullable=False),
    Column("branch_id", String(64), nullable=False),
    Column("visiting_hours", JSON, nullable=False),
    Column("updated_at", DateTime(timezone=True), nullable=False),
    PrimaryKeyConstraint("doctor_id", "branch_id", name="pk_doctor_branch_schedules"),
)

# Branch opening hours, one interval per weekday
branch_timings = Table(
    "branch_timings",
    metadata,
    Column("branch_id", String(64), primary_key=True),
    Column("hospital_id", String(64), nullable=True),
    Column("timings", JSON, nullable=False),
    # Example: {"monday": {"start": "08:00", "end": "20:00"}, "sunday": null}
    Column("updated_at", DateTime(timezone=True), nullable=False),
)

"""Schedule resolution: effective weekly templates and blocked dates."""

from dataclasses import dataclass
from datetime import UTC, date, datetime, tzinfo
from typing import Any

import structlog
from pydantic import ValidationError
from sqlalchemy import and_, insert, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from carebook.core.blocked_dates import normalize_blocked_date, normalize_blocked_dates
from carebook.core.exceptions import ForbiddenException
from carebook.core.redis_client import CacheManager
from carebook.models.appointments import appointments
from carebook.models.schedules import branch_timings, doctor_branch_schedules, doctor_schedules
from carebook.schemas.schedules import (
    BlockedDate,
    BlockedDateCreate,
    BranchTimings,
    VisitingHours,
)

logger = structlog.get_logger()


@dataclass(frozen=True)
class ResolvedSchedule:
    """An effective weekly template and where it came from."""

    visiting_hours: VisitingHours
    source: str  # doctor_branch | branch | doctor | default


class ScheduleResolver:
    """
    Resolve the weekly template that applies to a doctor.

    Priority: the doctor's template for the branch, then the branch's opening
    hours, then the doctor's own default, then the configured default. Missing
    or unreadable data never raises; it falls through to the next level.
    """

    # Cache TTL in seconds
    SCHEDULE_CACHE_TTL = 300

    def __init__(
        self,
        default_template: VisitingHours | dict[str, Any],
        cache_manager: CacheManager | None = None,
        tz: tzinfo = UTC,
        cache_ttl: int | None = None,
    ):
        """
        Initialize the resolver.

        Args:
            default_template: Template used when nothing more specific exists
            cache_manager: Optional Redis cache
            tz: Clinic timezone, used to read epoch-second blocked dates
            cache_ttl: Override for the cache TTL in seconds
        """
        if isinstance(default_template, VisitingHours):
            self.default_template = default_template
        else:
            self.default_template = VisitingHours.model_validate(default_template)
        self.cache = cache_manager
        self.tz = tz
        self.cache_ttl = cache_ttl or self.SCHEDULE_CACHE_TTL

    @staticmethod
    def _schedule_cache_key(doctor_id: str, branch_id: str | None) -> str:
        return f"schedule:{doctor_id}:{branch_id or 'default'}"

    @staticmethod
    def _blocked_cache_key(doctor_id: str) -> str:
        return f"blocked:{doctor_id}"

    async def get_effective_schedule(
        self,
        db: AsyncSession,
        doctor_id: str,
        branch_id: str | None = None,
    ) -> ResolvedSchedule:
        """
        Get the template that applies to a doctor, optionally at a branch.

        Args:
            db: Database session
            doctor_id: Doctor ID
            branch_id: Branch ID, when booking at a specific branch

        Returns:
            Resolved template (the configured default if nothing is stored)
        """
        cache_key = self._schedule_cache_key(doctor_id, branch_id)
        if self.cache:
            cached = self.cache.get_json(cache_key)
            if cached:
                try:
                    return ResolvedSchedule(
                        visiting_hours=VisitingHours.model_validate(cached["visiting_hours"]),
                        source=cached["source"],
                    )
                except (KeyError, TypeError, ValidationError):
                    self.cache.delete(cache_key)

        try:
            resolved = await self._resolve(db, doctor_id, branch_id)
        except SQLAlchemyError as e:
            logger.warning("schedule_lookup_failed", doctor_id=doctor_id, error=str(e))
            return ResolvedSchedule(self.default_template, "default")

        if self.cache:
            self.cache.set_json(
                cache_key,
                {
                    "visiting_hours": resolved.visiting_hours.model_dump(),
                    "source": resolved.source,
                },
                ttl=self.cache_ttl,
            )

        return resolved

    async def _resolve(
        self,
        db: AsyncSession,
        doctor_id: str,
        branch_id: str | None,
    ) -> ResolvedSchedule:
        if branch_id:
            result = await db.execute(
                select(doctor_branch_schedules.c.visiting_hours).where(
                    and_(
                        doctor_branch_schedules.c.doctor_id == doctor_id,
                        doctor_branch_schedules.c.branch_id == branch_id,
                    )
                )
            )
            template = self._parse_template(result.scalar_one_or_none(), doctor_id)
            if template:
                return ResolvedSchedule(template, "doctor_branch")

            result = await db.execute(
                select(branch_timings.c.timings).where(branch_timings.c.branch_id == branch_id)
            )
            timings = result.scalar_one_or_none()
            if timings:
                try:
                    return ResolvedSchedule(
                        BranchTimings.model_validate(timings).to_visiting_hours(), "branch"
                    )
                except ValidationError:
                    logger.warning("branch_timings_unreadable", branch_id=branch_id)

        result = await db.execute(
            select(doctor_schedules.c.visiting_hours).where(
                doctor_schedules.c.doctor_id == doctor_id
            )
        )
        template = self._parse_template(result.scalar_one_or_none(), doctor_id)
        if template:
            return ResolvedSchedule(template, "doctor")

        return ResolvedSchedule(self.default_template, "default")

    @staticmethod
    def _parse_template(raw: Any, doctor_id: str) -> VisitingHours | None:
        if not raw:
            return None
        try:
            return VisitingHours.model_validate(raw)
        except ValidationError:
            logger.warning("visiting_hours_unreadable", doctor_id=doctor_id)
            return None

    async def get_blocked_dates(self, db: AsyncSession, doctor_id: str) -> list[BlockedDate]:
        """
        Get a doctor's blocked dates in canonical form.

        Args:
            db: Database session
            doctor_id: Doctor ID

        Returns:
            Blocked dates sorted by date (empty if the store cannot be read)
        """
        cache_key = self._blocked_cache_key(doctor_id)
        if self.cache:
            cached = self.cache.get_json(cache_key)
            if cached is not None:
                try:
                    return [BlockedDate.model_validate(item) for item in cached]
                except (TypeError, ValidationError):
                    self.cache.delete(cache_key)

        try:
            result = await db.execute(
                select(doctor_schedules.c.blocked_dates).where(
                    doctor_schedules.c.doctor_id == doctor_id
                )
            )
        except SQLAlchemyError as e:
            logger.warning("blocked_dates_lookup_failed", doctor_id=doctor_id, error=str(e))
            return []

        blocked = normalize_blocked_dates(result.scalar_one_or_none(), self.tz)

        if self.cache:
            self.cache.set_json(
                cache_key,
                [item.model_dump(mode="json") for item in blocked],
                ttl=self.cache_ttl,
            )

        return blocked

    async def set_doctor_schedule(
        self,
        db: AsyncSession,
        doctor_id: str,
        visiting_hours: VisitingHours,
        hospital_id: str | None = None,
    ) -> None:
        """
        Replace a doctor's default template.

        Args:
            db: Database session
            doctor_id: Doctor ID
            visiting_hours: New weekly template
            hospital_id: Caller's hospital; None for trusted internal callers

        Raises:
            ForbiddenException: The doctor belongs to another hospital
        """
        await self._ensure_doctor_owner(db, doctor_id, hospital_id)

        values: dict[str, Any] = {
            "visiting_hours": visiting_hours.model_dump(),
            "updated_at": datetime.now(UTC),
        }
        if hospital_id:
            values["hospital_id"] = hospital_id

        await self._upsert_doctor_schedule(db, doctor_id, values)
        await db.commit()
        self._invalidate_schedule(doctor_id)
        logger.info("doctor_schedule_updated", doctor_id=doctor_id)

    async def set_doctor_branch_schedule(
        self,
        db: AsyncSession,
        doctor_id: str,
        branch_id: str,
        visiting_hours: VisitingHours,
        hospital_id: str | None = None,
    ) -> None:
        """Replace a doctor's template at one branch of the caller's hospital."""
        await self._ensure_doctor_owner(db, doctor_id, hospital_id)
        await self._ensure_branch_owner(db, branch_id, hospital_id)

        now = datetime.now(UTC)
        existing = await db.execute(
            select(doctor_branch_schedules.c.doctor_id).where(
                and_(
                    doctor_branch_schedules.c.doctor_id == doctor_id,
                    doctor_branch_schedules.c.branch_id == branch_id,
                )
            )
        )

        if existing.first():
            stmt = (
                update(doctor_branch_schedules)
                .where(
                    and_(
                        doctor_branch_schedules.c.doctor_id == doctor_id,
                        doctor_branch_schedules.c.branch_id == branch_id,
                    )
                )
                .values(visiting_hours=visiting_hours.model_dump(), updated_at=now)
            )
        else:
            stmt = insert(doctor_branch_schedules).values(  # type: ignore[assignment]
                doctor_id=doctor_id,
                branch_id=branch_id,
                visiting_hours=visiting_hours.model_dump(),
                updated_at=now,
            )

        await db.execute(stmt)
        await db.commit()
        self._invalidate_schedule(doctor_id)
        logger.info("doctor_branch_schedule_updated", doctor_id=doctor_id, branch_id=branch_id)

    async def set_branch_timings(
        self,
        db: AsyncSession,
        branch_id: str,
        timings: BranchTimings,
        hospital_id: str | None = None,
    ) -> None:
        """Replace a branch's opening hours."""
        await self._ensure_branch_owner(db, branch_id, hospital_id)

        now = datetime.now(UTC)
        existing = await db.execute(
            select(branch_timings.c.branch_id).where(branch_timings.c.branch_id == branch_id)
        )

        values: dict[str, Any] = {"timings": timings.model_dump(), "updated_at": now}
        if hospital_id:
            values["hospital_id"] = hospital_id

        if existing.first():
            stmt = (
                update(branch_timings)
                .where(branch_timings.c.branch_id == branch_id)
                .values(**values)
            )
        else:
            stmt = insert(branch_timings).values(branch_id=branch_id, **values)  # type: ignore[assignment]

        await db.execute(stmt)
        await db.commit()

        if self.cache:
            self.cache.delete_pattern(f"schedule:*:{branch_id}")
        logger.info("branch_timings_updated", branch_id=branch_id)

    async def add_blocked_date(
        self,
        db: AsyncSession,
        doctor_id: str,
        data: BlockedDateCreate,
        hospital_id: str | None = None,
    ) -> list[BlockedDate]:
        """
        Block a date on a doctor's calendar.

        Existing appointments on that date are left untouched; only new
        bookings are refused.

        Returns:
            The doctor's blocked dates after the change

        Raises:
            ForbiddenException: The doctor belongs to another hospital
        """
        await self._ensure_doctor_owner(db, doctor_id, hospital_id)

        stored = await self._stored_blocked_dates(db, doctor_id)
        stored = [
            item for item in stored if normalize_blocked_date(item, self.tz) != data.date
        ]
        stored.append({"date": data.date.isoformat(), "reason": data.reason})

        values: dict[str, Any] = {"blocked_dates": stored, "updated_at": datetime.now(UTC)}
        if hospital_id:
            values["hospital_id"] = hospital_id

        await self._upsert_doctor_schedule(db, doctor_id, values)
        await db.commit()
        self._invalidate_blocked(doctor_id)
        logger.info("blocked_date_added", doctor_id=doctor_id, date=data.date.isoformat())

        return normalize_blocked_dates(stored, self.tz)

    async def remove_blocked_date(
        self,
        db: AsyncSession,
        doctor_id: str,
        day: date,
        hospital_id: str | None = None,
    ) -> list[BlockedDate]:
        """
        Unblock a date, whatever shape it was stored in.

        Returns:
            The doctor's blocked dates after the change

        Raises:
            ForbiddenException: The doctor belongs to another hospital
        """
        await self._ensure_doctor_owner(db, doctor_id, hospital_id)

        stored = await self._stored_blocked_dates(db, doctor_id)
        remaining = [item for item in stored if normalize_blocked_date(item, self.tz) != day]

        if len(remaining) != len(stored):
            await self._upsert_doctor_schedule(
                db, doctor_id, {"blocked_dates": remaining, "updated_at": datetime.now(UTC)}
            )
            await db.commit()
            self._invalidate_blocked(doctor_id)
            logger.info("blocked_date_removed", doctor_id=doctor_id, date=day.isoformat())

        return normalize_blocked_dates(remaining, self.tz)

    async def _ensure_doctor_owner(
        self,
        db: AsyncSession,
        doctor_id: str,
        hospital_id: str | None,
    ) -> None:
        if hospital_id is None:
            return
        result = await db.execute(
            select(doctor_schedules.c.hospital_id).where(doctor_schedules.c.doctor_id == doctor_id)
        )
        owner = result.scalar_one_or_none()
        if not owner:
            # no schedule yet: the doctor belongs wherever they already see patients
            result = await db.execute(
                select(appointments.c.hospital_id)
                .where(appointments.c.doctor_id == doctor_id)
                .limit(1)
            )
            owner = result.scalar_one_or_none()
        if owner and owner != hospital_id:
            await db.rollback()
            logger.warning(
                "schedule_write_forbidden", doctor_id=doctor_id, hospital_id=hospital_id
            )
            raise ForbiddenException("This doctor belongs to another hospital")

    async def _ensure_branch_owner(
        self,
        db: AsyncSession,
        branch_id: str,
        hospital_id: str | None,
    ) -> None:
        if hospital_id is None:
            return
        result = await db.execute(
            select(branch_timings.c.hospital_id).where(branch_timings.c.branch_id == branch_id)
        )
        owner = result.scalar_one_or_none()
        if owner and owner != hospital_id:
            await db.rollback()
            logger.warning(
                "schedule_write_forbidden", branch_id=branch_id, hospital_id=hospital_id
            )
            raise ForbiddenException("This branch belongs to another hospital")

    async def _stored_blocked_dates(self, db: AsyncSession, doctor_id: str) -> list[Any]:
        result = await db.execute(
            select(doctor_schedules.c.blocked_dates).where(
                doctor_schedules.c.doctor_id == doctor_id
            )
        )
        stored = result.scalar_one_or_none()
        return list(stored) if isinstance(stored, list) else []

    async def _upsert_doctor_schedule(
        self,
        db: AsyncSession,
        doctor_id: str,
        values: dict[str, Any],
    ) -> None:
        existing = await db.execute(
            select(doctor_schedules.c.doctor_id).where(doctor_schedules.c.doctor_id == doctor_id)
        )
        if existing.first():
            await db.execute(
                update(doctor_schedules)
                .where(doctor_schedules.c.doctor_id == doctor_id)
                .values(**values)
            )
        else:
            await db.execute(insert(doctor_schedules).values(doctor_id=doctor_id, **values))

    def _invalidate_schedule(self, doctor_id: str) -> None:
        if self.cache:
            self.cache.delete_pattern(f"schedule:{doctor_id}:*")

    def _invalidate_blocked(self, doctor_id: str) -> None:
        if self.cache:
            self.cache.delete(self._blocked_cache_key(doctor_id))

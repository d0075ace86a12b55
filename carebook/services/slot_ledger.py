"""Slot claim ledger.

The ledger is the single source of truth for "is this slot taken". Each claim
is a row keyed by the slot id, so the database's primary key refuses a second
claim on the same (doctor, date, time) no matter how many requests race.

Every operation runs inside the caller's transaction and wraps its writes in a
SAVEPOINT. A losing insert rolls back only the savepoint, leaving the caller's
transaction usable, and the caller decides whether to commit or abort the
surrounding appointment write.
"""

from dataclasses import dataclass
from datetime import UTC, date, datetime
from enum import Enum
from uuid import UUID

import structlog
from sqlalchemy import and_, delete, insert, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from carebook.core.timegrid import normalize_time
from carebook.models.slot_claims import slot_claims

logger = structlog.get_logger()


@dataclass(frozen=True)
class SlotKey:
    """Exclusivity unit: one doctor, one date, one normalized time."""

    doctor_id: str
    date: date
    time: str

    @classmethod
    def build(cls, doctor_id: str, day: date, time: str) -> "SlotKey":
        """
        Build a key, normalizing the time.

        Raises:
            ValueError: If the time cannot be normalized
        """
        normalized = normalize_time(time)
        if not doctor_id or normalized is None:
            raise ValueError(f"Invalid slot: doctor={doctor_id!r} time={time!r}")
        return cls(doctor_id=doctor_id, date=day, time=normalized)

    @property
    def id(self) -> str:
        """Storage id, e.g. ``doc-1_2026-10-19_09-00``."""
        raw = f"{self.doctor_id}_{self.date.isoformat()}_{self.time}"
        return raw.replace(":", "-").replace(" ", "-")


class ClaimOutcome(str, Enum):
    """Result of a claim attempt."""

    CLAIMED = "claimed"
    CONFLICT = "conflict"


@dataclass(frozen=True)
class ClaimResult:
    """Outcome of ``try_claim``/``move_claim``; ``holder`` is set on conflict."""

    outcome: ClaimOutcome
    holder: UUID | None = None

    @property
    def ok(self) -> bool:
        """True when the caller now owns the slot."""
        return self.outcome == ClaimOutcome.CLAIMED


class SlotLedger:
    """Atomic claim, move and release of slot keys."""

    async def get_claim(self, db: AsyncSession, key: SlotKey) -> dict | None:
        """
        Read the claim for a slot.

        Args:
            db: Database session
            key: Slot key

        Returns:
            Claim row as a dict, or None if the slot is free
        """
        result = await db.execute(select(slot_claims).where(slot_claims.c.slot_key == key.id))
        row = result.mappings().first()
        return dict(row) if row else None

    async def holder_of(self, db: AsyncSession, key: SlotKey) -> UUID | None:
        """Appointment currently holding a slot, if any."""
        result = await db.execute(
            select(slot_claims.c.appointment_id).where(slot_claims.c.slot_key == key.id)
        )
        return result.scalar_one_or_none()

    async def try_claim(
        self,
        db: AsyncSession,
        key: SlotKey,
        appointment_id: UUID,
        hospital_id: str | None = None,
    ) -> ClaimResult:
        """
        Claim a free slot for an appointment.

        Args:
            db: Session with an open transaction
            key: Slot to claim
            appointment_id: Appointment that will own the claim
            hospital_id: Owning tenant

        Returns:
            CLAIMED, or CONFLICT with the current holder (nothing written)
        """
        try:
            async with db.begin_nested():
                await db.execute(
                    insert(slot_claims).values(**self._claim_values(key, appointment_id, hospital_id))
                )
        except IntegrityError:
            holder = await self.holder_of(db, key)
            logger.info("slot_claim_conflict", slot_key=key.id, holder=str(holder))
            return ClaimResult(ClaimOutcome.CONFLICT, holder=holder)

        return ClaimResult(ClaimOutcome.CLAIMED)

    async def move_claim(
        self,
        db: AsyncSession,
        old_key: SlotKey,
        new_key: SlotKey,
        appointment_id: UUID,
        hospital_id: str | None = None,
    ) -> ClaimResult:
        """
        Move an appointment's claim to another slot.

        The new claim is created and the old one removed inside one savepoint:
        either both happen or neither does.

        Args:
            db: Session with an open transaction
            old_key: Slot currently held by the appointment
            new_key: Target slot
            appointment_id: Appointment that owns the claim
            hospital_id: Owning tenant

        Returns:
            CLAIMED, or CONFLICT with the holder of the new slot
        """
        if old_key == new_key:
            holder = await self.holder_of(db, new_key)
            if holder == appointment_id:
                return ClaimResult(ClaimOutcome.CLAIMED)
            if holder is not None:
                return ClaimResult(ClaimOutcome.CONFLICT, holder=holder)

        try:
            async with db.begin_nested():
                if old_key != new_key:
                    await db.execute(self._delete_owned(old_key, appointment_id))
                await db.execute(
                    insert(slot_claims).values(
                        **self._claim_values(new_key, appointment_id, hospital_id)
                    )
                )
        except IntegrityError:
            holder = await self.holder_of(db, new_key)
            logger.info(
                "slot_move_conflict",
                old_slot_key=old_key.id,
                new_slot_key=new_key.id,
                holder=str(holder),
            )
            return ClaimResult(ClaimOutcome.CONFLICT, holder=holder)

        return ClaimResult(ClaimOutcome.CLAIMED)

    async def release(self, db: AsyncSession, key: SlotKey, appointment_id: UUID) -> bool:
        """
        Release a claim if the appointment owns it.

        Args:
            db: Session with an open transaction
            key: Slot to release
            appointment_id: Appointment expected to own the claim

        Returns:
            True if a claim was removed, False if it was absent or foreign
        """
        result = await db.execute(self._delete_owned(key, appointment_id))
        return bool(result.rowcount)

    @staticmethod
    def _delete_owned(key: SlotKey, appointment_id: UUID):
        return delete(slot_claims).where(
            and_(
                slot_claims.c.slot_key == key.id,
                slot_claims.c.appointment_id == appointment_id,
            )
        )

    @staticmethod
    def _claim_values(key: SlotKey, appointment_id: UUID, hospital_id: str | None) -> dict:
        return {
            "slot_key": key.id,
            "appointment_id": appointment_id,
            "doctor_id": key.doctor_id,
            "slot_date": key.date.isoformat(),
            "slot_time": key.time,
            "hospital_id": hospital_id,
            "created_at": datetime.now(UTC),
        }

"""Booking orchestration: create, reschedule and cancel appointments.

Every write path pairs the appointment row with its slot claim inside a single
database transaction. Any exit other than full success rolls the transaction
back, so the appointment table and the ledger never disagree.
"""

from datetime import UTC, date, datetime
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

import structlog
from sqlalchemy import and_, insert, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from carebook.core.blocked_dates import find_blocked_date
from carebook.core.exceptions import (
    AppException,
    BookingRejectedException,
    ForbiddenException,
    NotFoundException,
    SlotConflictException,
    ValidationException,
)
from carebook.core.timegrid import SLOT_DURATION_MINUTES, slots_for_date
from carebook.models.appointments import appointments
from carebook.schemas.appointments import (
    SLOT_HOLDING_STATUSES,
    AppointmentResponse,
    AppointmentStatus,
    BookingRequest,
    BookingResult,
    RescheduleRequest,
)
from carebook.schemas.auth import RequesterContext, UserRole
from carebook.services.notification_service import AppointmentNotifier, LoggingNotifier
from carebook.services.schedule_service import ScheduleResolver
from carebook.services.slot_ledger import SlotKey, SlotLedger

logger = structlog.get_logger()


class BookingState(str, Enum):
    """Steps a booking request moves through."""

    VALIDATING = "validating"
    CLAIMING = "claiming"
    CLAIMING_MOVE = "claiming_move"
    PERSISTING = "persisting"
    DONE = "done"
    REJECTED = "rejected"
    SLOT_CONFLICT = "slot_conflict"
    NOT_FOUND = "not_found"


class BookingService:
    """Service for booking, rescheduling and cancelling appointments."""

    def __init__(
        self,
        db: AsyncSession,
        resolver: ScheduleResolver,
        ledger: SlotLedger | None = None,
        notifier: AppointmentNotifier | None = None,
        slot_minutes: int = SLOT_DURATION_MINUTES,
    ):
        """Initialize service with database session and collaborators."""
        self.db = db
        self.resolver = resolver
        self.ledger = ledger or SlotLedger()
        self.notifier = notifier or LoggingNotifier()
        self.slot_minutes = slot_minutes

    async def book_appointment(
        self,
        data: BookingRequest,
        requester: RequesterContext | None = None,
    ) -> BookingResult:
        """
        Book a new appointment.

        Args:
            data: Booking request
            requester: Caller identity; None for trusted internal callers

        Returns:
            The created appointment, or the original one for an idempotent retry

        Raises:
            ValidationException: Unusable time
            ForbiddenException: Patient booking for someone else or another tenant
            BookingRejectedException: Blocked date, closed hours or past slot
            SlotConflictException: Slot already claimed
        """
        log = logger.bind(
            doctor_id=data.doctor_id,
            appointment_date=data.appointment_date.isoformat(),
            requested_time=data.appointment_time,
            source=data.source.value,
        )
        state = BookingState.VALIDATING

        try:
            if requester is not None:
                self._authorize_booking(data, requester)

            try:
                key = SlotKey.build(data.doctor_id, data.appointment_date, data.appointment_time)
            except ValueError:
                raise ValidationException("Invalid appointment time") from None

            if data.idempotency_key:
                previous = await self._find_by_idempotency_key(
                    data.patient_id, data.idempotency_key
                )
                if previous is not None:
                    await self.db.rollback()
                    log.info("booking_replayed", appointment_id=str(previous.id))
                    return BookingResult(appointment=previous, replayed=True)

            await self._ensure_bookable(data.doctor_id, data.branch_id, key)

            appointment_id = uuid4()
            state = BookingState.CLAIMING
            claim = await self.ledger.try_claim(self.db, key, appointment_id, data.hospital_id)
            if not claim.ok:
                await self.db.rollback()
                replay = await self._replay_for(data, claim.holder)
                if replay is not None:
                    await self.db.rollback()
                    log.info("booking_replayed", appointment_id=str(replay.id))
                    return BookingResult(appointment=replay, replayed=True)
                state = BookingState.SLOT_CONFLICT
                raise SlotConflictException()

            state = BookingState.PERSISTING
            now = datetime.now(UTC)
            values = {
                "id": appointment_id,
                "hospital_id": data.hospital_id,
                "branch_id": data.branch_id,
                "patient_id": data.patient_id,
                "doctor_id": data.doctor_id,
                "patient_name": data.patient_name,
                "patient_phone": data.patient_phone,
                "appointment_date": key.date.isoformat(),
                "appointment_time": key.time,
                "requested_time": data.appointment_time,
                "chief_complaint": data.chief_complaint,
                "medical_history": data.medical_history,
                "status": AppointmentStatus.CONFIRMED.value,
                "source": data.source.value,
                "idempotency_key": data.idempotency_key,
                "created_at": now,
                "updated_at": now,
            }
            result = await self.db.execute(
                insert(appointments).values(**values).returning(appointments)
            )
            row = result.mappings().one()
            await self.db.commit()
        except IntegrityError:
            # Same idempotency key, different slot: the earlier booking stands.
            await self.db.rollback()
            if data.idempotency_key:
                previous = await self._find_by_idempotency_key(
                    data.patient_id, data.idempotency_key
                )
                await self.db.rollback()
                if previous is not None:
                    log.info("booking_replayed", appointment_id=str(previous.id))
                    return BookingResult(appointment=previous, replayed=True)
            log.error("booking_backend_error", state=state.value, exc_info=True)
            raise
        except AppException as e:
            await self.db.rollback()
            self._log_refusal(log, state, e)
            raise
        except SQLAlchemyError:
            await self.db.rollback()
            log.error("booking_backend_error", state=state.value, exc_info=True)
            raise

        appointment = AppointmentResponse.model_validate(dict(row))
        log.info(
            "appointment_booked",
            state=BookingState.DONE.value,
            appointment_id=str(appointment.id),
            slot_key=key.id,
        )

        await self._notify("appointment_booked", appointment)

        return BookingResult(appointment=appointment)

    async def reschedule_appointment(
        self,
        appointment_id: UUID,
        data: RescheduleRequest,
        requester: RequesterContext | None = None,
    ) -> AppointmentResponse:
        """
        Move an appointment to a new date and time.

        The old claim is released and the new one taken in the same
        transaction that updates the appointment row.

        Args:
            appointment_id: Appointment ID
            data: New date and time
            requester: Caller identity; None for trusted internal callers

        Returns:
            Updated appointment

        Raises:
            NotFoundException: Appointment does not exist
            ForbiddenException: Caller may not modify it
            BookingRejectedException: Not confirmed, blocked date or closed hours
            SlotConflictException: New slot already claimed
        """
        log = logger.bind(
            appointment_id=str(appointment_id),
            new_date=data.appointment_date.isoformat(),
            requested_time=data.appointment_time,
        )
        state = BookingState.VALIDATING

        try:
            row = await self._load_for_update(appointment_id)
            if row is None:
                state = BookingState.NOT_FOUND
                raise NotFoundException("Appointment not found")

            if requester is not None:
                self._authorize_change(row, requester)

            if row["status"] not in {s.value for s in SLOT_HOLDING_STATUSES}:
                raise BookingRejectedException(
                    f"A {row['status']} appointment cannot be rescheduled"
                )

            old_key = SlotKey(
                row["doctor_id"],
                date.fromisoformat(row["appointment_date"]),
                row["appointment_time"],
            )
            try:
                new_key = SlotKey.build(
                    row["doctor_id"], data.appointment_date, data.appointment_time
                )
            except ValueError:
                raise ValidationException("Invalid appointment time") from None

            if new_key != old_key:
                await self._ensure_bookable(row["doctor_id"], row["branch_id"], new_key)

            state = BookingState.CLAIMING_MOVE
            claim = await self.ledger.move_claim(
                self.db, old_key, new_key, appointment_id, row["hospital_id"]
            )
            if not claim.ok:
                state = BookingState.SLOT_CONFLICT
                raise SlotConflictException()

            state = BookingState.PERSISTING
            result = await self.db.execute(
                update(appointments)
                .where(appointments.c.id == appointment_id)
                .values(
                    appointment_date=new_key.date.isoformat(),
                    appointment_time=new_key.time,
                    requested_time=data.appointment_time,
                    updated_at=datetime.now(UTC),
                )
                .returning(appointments)
            )
            updated = result.mappings().first()
            if updated is None:
                state = BookingState.NOT_FOUND
                raise NotFoundException("Appointment not found")

            await self.db.commit()
        except AppException as e:
            await self.db.rollback()
            self._log_refusal(log, state, e)
            raise
        except SQLAlchemyError:
            await self.db.rollback()
            log.error("booking_backend_error", state=state.value, exc_info=True)
            raise

        appointment = AppointmentResponse.model_validate(dict(updated))
        log.info(
            "appointment_rescheduled",
            state=BookingState.DONE.value,
            old_slot_key=old_key.id,
            new_slot_key=new_key.id,
        )

        if new_key != old_key:
            await self._notify(
                "appointment_rescheduled",
                appointment,
                row["appointment_date"],
                row["appointment_time"],
            )

        return appointment

    async def cancel_appointment(
        self,
        appointment_id: UUID,
        requester: RequesterContext | None = None,
        reason: str | None = None,
    ) -> AppointmentResponse:
        """
        Cancel an appointment and release its slot.

        Cancelling an already cancelled appointment returns it unchanged.

        Raises:
            NotFoundException: Appointment does not exist
            ForbiddenException: Caller may not modify it
            BookingRejectedException: Appointment already completed
        """
        log = logger.bind(appointment_id=str(appointment_id))
        state = BookingState.VALIDATING

        try:
            row = await self._load_for_update(appointment_id)
            if row is None:
                state = BookingState.NOT_FOUND
                raise NotFoundException("Appointment not found")

            if requester is not None:
                self._authorize_change(row, requester)

            if row["status"] == AppointmentStatus.CANCELLED.value:
                await self.db.rollback()
                return AppointmentResponse.model_validate(dict(row))

            if row["status"] not in {s.value for s in SLOT_HOLDING_STATUSES}:
                raise BookingRejectedException(f"A {row['status']} appointment cannot be cancelled")

            key = SlotKey(
                row["doctor_id"],
                date.fromisoformat(row["appointment_date"]),
                row["appointment_time"],
            )
            state = BookingState.PERSISTING
            released = await self.ledger.release(self.db, key, appointment_id)
            if not released:
                log.warning("slot_claim_missing_on_cancel", slot_key=key.id)

            now = datetime.now(UTC)
            result = await self.db.execute(
                update(appointments)
                .where(appointments.c.id == appointment_id)
                .values(
                    status=AppointmentStatus.CANCELLED.value,
                    cancelled_at=now,
                    cancellation_reason=reason,
                    updated_at=now,
                )
                .returning(appointments)
            )
            updated = result.mappings().one()
            await self.db.commit()
        except AppException as e:
            await self.db.rollback()
            self._log_refusal(log, state, e)
            raise
        except SQLAlchemyError:
            await self.db.rollback()
            log.error("booking_backend_error", state=state.value, exc_info=True)
            raise

        appointment = AppointmentResponse.model_validate(dict(updated))
        log.info("appointment_cancelled", state=BookingState.DONE.value, slot_key=key.id)

        await self._notify("appointment_cancelled", appointment)

        return appointment

    async def get_appointment(
        self,
        appointment_id: UUID,
        requester: RequesterContext | None = None,
    ) -> AppointmentResponse:
        """
        Get appointment by ID.

        Raises:
            NotFoundException: If appointment not found
            ForbiddenException: If user doesn't have access
        """
        result = await self.db.execute(
            select(appointments).where(appointments.c.id == appointment_id)
        )
        row = result.mappings().first()

        if not row:
            raise NotFoundException("Appointment not found")

        if requester is not None:
            self._authorize_change(row, requester)

        return AppointmentResponse.model_validate(dict(row))

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _ensure_bookable(self, doctor_id: str, branch_id: str | None, key: SlotKey) -> None:
        """Refuse blocked dates, slots outside visiting hours and past slots."""
        blocked = find_blocked_date(
            await self.resolver.get_blocked_dates(self.db, doctor_id), key.date
        )
        if blocked:
            reason = blocked.reason or "Doctor not available"
            raise BookingRejectedException(
                f"Doctor is not available on {key.date.isoformat()}: {reason}"
            )

        resolved = await self.resolver.get_effective_schedule(self.db, doctor_id, branch_id)
        if key.time not in slots_for_date(resolved.visiting_hours, key.date, self.slot_minutes):
            raise BookingRejectedException(
                f"Doctor is not available at {key.time} on {key.date.isoformat()}"
            )

        now = datetime.now(self.resolver.tz)
        if (key.date, key.time) < (now.date(), now.strftime("%H:%M")):
            raise BookingRejectedException("Cannot book a slot in the past")

    async def _load_for_update(self, appointment_id: UUID) -> dict[str, Any] | None:
        result = await self.db.execute(
            select(appointments).where(appointments.c.id == appointment_id).with_for_update()
        )
        row = result.mappings().first()
        return dict(row) if row else None

    async def _find_by_idempotency_key(
        self,
        patient_id: str,
        idempotency_key: str,
    ) -> AppointmentResponse | None:
        result = await self.db.execute(
            select(appointments).where(
                and_(
                    appointments.c.patient_id == patient_id,
                    appointments.c.idempotency_key == idempotency_key,
                )
            )
        )
        row = result.mappings().first()
        return AppointmentResponse.model_validate(dict(row)) if row else None

    async def _replay_for(
        self,
        data: BookingRequest,
        holder: UUID | None,
    ) -> AppointmentResponse | None:
        """Detect that the conflicting claim is this caller's own earlier attempt."""
        if not data.idempotency_key or holder is None:
            return None
        previous = await self._find_by_idempotency_key(data.patient_id, data.idempotency_key)
        if previous is not None and previous.id == holder:
            return previous
        return None

    @staticmethod
    def _in_tenant(requester: RequesterContext, hospital_id: str) -> bool:
        """Staff act only inside their own hospital; patients may carry no tenant."""
        if requester.is_staff or requester.hospital_id:
            return requester.hospital_id == hospital_id
        return True

    @classmethod
    def _authorize_booking(cls, data: BookingRequest, requester: RequesterContext) -> None:
        if not cls._in_tenant(requester, data.hospital_id):
            raise ForbiddenException("You cannot book appointments for another hospital")
        if requester.role == UserRole.PATIENT and requester.user_id != data.patient_id:
            raise ForbiddenException("Patients can only book appointments for themselves")

    @classmethod
    def _authorize_change(cls, row: Any, requester: RequesterContext) -> None:
        if not cls._in_tenant(requester, row["hospital_id"]):
            raise ForbiddenException("You cannot modify this appointment")
        if requester.role == UserRole.PATIENT and requester.user_id != row["patient_id"]:
            raise ForbiddenException("You cannot modify this appointment")

    @staticmethod
    def _log_refusal(log: Any, state: BookingState, exc: AppException) -> None:
        if isinstance(exc, SlotConflictException):
            log.info("slot_conflict", state=BookingState.SLOT_CONFLICT.value)
        elif isinstance(exc, NotFoundException):
            log.info("appointment_not_found", state=BookingState.NOT_FOUND.value)
        else:
            log.info(
                "booking_rejected",
                state=BookingState.REJECTED.value,
                failed_in=state.value,
                reason=exc.message,
            )

    async def _notify(self, event: str, appointment: AppointmentResponse, *args: Any) -> None:
        """Hand off a notification; failures never affect the booking."""
        try:
            await getattr(self.notifier, event)(appointment, *args)
        except Exception as e:
            logger.warning(
                "notification_failed",
                kind=event,
                appointment_id=str(appointment.id),
                error=str(e),
            )

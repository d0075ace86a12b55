"""Appointment notifications.

Delivery (WhatsApp, SMS, email) lives in another service; booking only hands
over a message after commit. ``LoggingNotifier`` is the default hand-off and
records what would be sent.
"""

from typing import Protocol

import structlog

from carebook.core.timegrid import format_time_display
from carebook.schemas.appointments import AppointmentResponse

logger = structlog.get_logger()


class AppointmentNotifier(Protocol):
    """Outbound notification collaborator."""

    async def appointment_booked(self, appointment: AppointmentResponse) -> None:
        """Notify the patient of a new booking."""
        ...

    async def appointment_rescheduled(
        self,
        appointment: AppointmentResponse,
        previous_date: str,
        previous_time: str,
    ) -> None:
        """Notify the patient that their slot moved."""
        ...

    async def appointment_cancelled(self, appointment: AppointmentResponse) -> None:
        """Notify the patient of a cancellation."""
        ...


def booking_message(appointment: AppointmentResponse) -> str:
    """Patient-facing confirmation text."""
    return (
        f"Your appointment is confirmed for {appointment.appointment_date.strftime('%d %b %Y')} "
        f"at {format_time_display(appointment.appointment_time)}."
    )


def reschedule_message(appointment: AppointmentResponse) -> str:
    """Patient-facing reschedule text."""
    return (
        f"Your appointment has been moved to {appointment.appointment_date.strftime('%d %b %Y')} "
        f"at {format_time_display(appointment.appointment_time)}."
    )


def cancellation_message(appointment: AppointmentResponse) -> str:
    """Patient-facing cancellation text."""
    return (
        f"Your appointment on {appointment.appointment_date.strftime('%d %b %Y')} "
        f"at {format_time_display(appointment.appointment_time)} has been cancelled."
    )


class LoggingNotifier:
    """Notifier that only logs the outgoing message."""

    async def appointment_booked(self, appointment: AppointmentResponse) -> None:
        """Log the booking confirmation."""
        logger.info(
            "notification_queued",
            kind="appointment_booked",
            appointment_id=str(appointment.id),
            phone=appointment.patient_phone,
            message=booking_message(appointment),
        )

    async def appointment_rescheduled(
        self,
        appointment: AppointmentResponse,
        previous_date: str,
        previous_time: str,
    ) -> None:
        """Log the reschedule notice."""
        logger.info(
            "notification_queued",
            kind="appointment_rescheduled",
            appointment_id=str(appointment.id),
            phone=appointment.patient_phone,
            previous_date=previous_date,
            previous_time=previous_time,
            message=reschedule_message(appointment),
        )

    async def appointment_cancelled(self, appointment: AppointmentResponse) -> None:
        """Log the cancellation notice."""
        logger.info(
            "notification_queued",
            kind="appointment_cancelled",
            appointment_id=str(appointment.id),
            phone=appointment.patient_phone,
            message=cancellation_message(appointment),
        )

"""Appointment endpoints."""

from datetime import date
from uuid import UUID

from fastapi import APIRouter, Query, Response, status

from carebook.core.exceptions import SlotConflictException, ValidationException
from carebook.dependencies import Availability, Booking, DatabaseSession, Requester
from carebook.schemas.appointments import (
    AppointmentResponse,
    BookingRequest,
    CancelRequest,
    RescheduleRequest,
)
from carebook.schemas.schedules import SlotCheckResponse
from carebook.services.slot_ledger import SlotKey

router = APIRouter()


@router.get(
    "/check-slot",
    response_model=SlotCheckResponse,
    status_code=status.HTTP_200_OK,
    summary="Check whether a slot is free",
)
async def check_slot(
    db: DatabaseSession,
    availability: Availability,
    doctor_id: str = Query(..., min_length=1),
    slot_date: date = Query(..., alias="date"),
    slot_time: str = Query(..., alias="time"),
) -> SlotCheckResponse:
    """
    Check a single slot before booking.

    The answer can be stale by the time a booking arrives; only booking itself
    is authoritative.

    Raises:
        ValidationException: The time cannot be read
        SlotConflictException: The slot is already held
    """
    try:
        key = SlotKey.build(doctor_id, slot_date, slot_time)
    except ValueError:
        raise ValidationException("Invalid time") from None

    if not await availability.check_slot(db, key):
        raise SlotConflictException("This slot is already booked. Please choose another time.")

    return SlotCheckResponse(doctor_id=doctor_id, date=slot_date, time=key.time, available=True)


@router.post(
    "/",
    response_model=AppointmentResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Book an appointment",
)
async def book_appointment(
    data: BookingRequest,
    requester: Requester,
    booking: Booking,
    response: Response,
) -> AppointmentResponse:
    """
    Book an appointment in a free slot.

    A retry carrying the same idempotency key returns the original booking
    with status 200 instead of 201.

    Args:
        data: Booking request
        requester: Authenticated caller
        booking: Booking service
        response: Outgoing response

    Returns:
        Booked appointment
    """
    result = await booking.book_appointment(data, requester)
    if result.replayed:
        response.status_code = status.HTTP_200_OK
    return result.appointment


@router.get(
    "/{appointment_id}",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    summary="Get appointment by ID",
)
async def get_appointment(
    appointment_id: UUID,
    requester: Requester,
    booking: Booking,
) -> AppointmentResponse:
    """Get a specific appointment by ID."""
    return await booking.get_appointment(appointment_id, requester)


@router.post(
    "/{appointment_id}/reschedule",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    summary="Move an appointment to another slot",
)
async def reschedule_appointment(
    appointment_id: UUID,
    data: RescheduleRequest,
    requester: Requester,
    booking: Booking,
) -> AppointmentResponse:
    """
    Move an appointment to a new date and time.

    Args:
        appointment_id: Appointment ID
        data: New date and time
        requester: Authenticated caller
        booking: Booking service

    Returns:
        Updated appointment
    """
    return await booking.reschedule_appointment(appointment_id, data, requester)


@router.post(
    "/{appointment_id}/cancel",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    summary="Cancel an appointment",
)
async def cancel_appointment(
    appointment_id: UUID,
    requester: Requester,
    booking: Booking,
    data: CancelRequest | None = None,
) -> AppointmentResponse:
    """Cancel an appointment and free its slot."""
    return await booking.cancel_appointment(
        appointment_id, requester, reason=data.reason if data else None
    )

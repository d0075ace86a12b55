"""Doctor schedule and availability endpoints."""

from datetime import date

from fastapi import APIRouter, Query, status

from carebook.core.timegrid import availability_days
from carebook.dependencies import Availability, DatabaseSession, Resolver, StaffRequester
from carebook.schemas.schedules import (
    AvailableSlotsResponse,
    BlockedDate,
    BlockedDateCreate,
    DoctorScheduleUpdate,
    EffectiveScheduleResponse,
    VisitingHours,
)

router = APIRouter()


@router.get(
    "/{doctor_id}/available-slots",
    response_model=AvailableSlotsResponse,
    status_code=status.HTTP_200_OK,
    summary="List free slots for a date",
)
async def list_available_slots(
    doctor_id: str,
    db: DatabaseSession,
    availability: Availability,
    slot_date: date = Query(..., alias="date"),
    branch_id: str | None = Query(None),
) -> AvailableSlotsResponse:
    """
    List the free 15-minute slots of a doctor on a date.

    Args:
        doctor_id: Doctor ID
        db: Database session
        availability: Availability service
        slot_date: Target date (YYYY-MM-DD)
        branch_id: Use the branch's template and appointments only

    Returns:
        Sorted free slot times
    """
    slots = await availability.list_available_slots(db, doctor_id, slot_date, branch_id)
    return AvailableSlotsResponse(
        doctor_id=doctor_id,
        date=slot_date,
        branch_id=branch_id,
        slots=slots,
    )


@router.get(
    "/{doctor_id}/schedule",
    response_model=EffectiveScheduleResponse,
    status_code=status.HTTP_200_OK,
    summary="Get effective weekly schedule",
)
async def get_schedule(
    doctor_id: str,
    db: DatabaseSession,
    resolver: Resolver,
    branch_id: str | None = Query(None),
) -> EffectiveScheduleResponse:
    """
    Get the weekly template that applies to a doctor, and their blocked dates.

    Args:
        doctor_id: Doctor ID
        db: Database session
        resolver: Schedule resolver
        branch_id: Resolve branch-specific hours

    Returns:
        Effective template and its source
    """
    resolved = await resolver.get_effective_schedule(db, doctor_id, branch_id)
    blocked = await resolver.get_blocked_dates(db, doctor_id)

    return EffectiveScheduleResponse(
        doctor_id=doctor_id,
        source=resolved.source,
        branch_id=branch_id,
        visiting_hours=resolved.visiting_hours,
        available_days=availability_days(resolved.visiting_hours),
        blocked_dates=blocked,
    )


@router.put(
    "/{doctor_id}/schedule",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Replace default weekly schedule",
)
async def update_schedule(
    doctor_id: str,
    data: DoctorScheduleUpdate,
    db: DatabaseSession,
    resolver: Resolver,
    requester: StaffRequester,
) -> None:
    """
    Replace a doctor's default visiting hours.

    Existing appointments keep their slots even if they fall outside the
    new hours.
    """
    await resolver.set_doctor_schedule(
        db,
        doctor_id,
        data.visiting_hours,
        hospital_id=requester.hospital_id,
    )


@router.put(
    "/{doctor_id}/branches/{branch_id}/schedule",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Replace weekly schedule at a branch",
)
async def update_branch_schedule(
    doctor_id: str,
    branch_id: str,
    data: VisitingHours,
    db: DatabaseSession,
    resolver: Resolver,
    requester: StaffRequester,
) -> None:
    """Replace a doctor's visiting hours at one branch."""
    await resolver.set_doctor_branch_schedule(
        db, doctor_id, branch_id, data, hospital_id=requester.hospital_id
    )


@router.post(
    "/{doctor_id}/blocked-dates",
    response_model=list[BlockedDate],
    status_code=status.HTTP_201_CREATED,
    summary="Block a date",
)
async def add_blocked_date(
    doctor_id: str,
    data: BlockedDateCreate,
    db: DatabaseSession,
    resolver: Resolver,
    requester: StaffRequester,
) -> list[BlockedDate]:
    """
    Block a date on a doctor's calendar.

    Returns:
        All blocked dates after the change
    """
    return await resolver.add_blocked_date(
        db, doctor_id, data, hospital_id=requester.hospital_id
    )


@router.delete(
    "/{doctor_id}/blocked-dates/{blocked_date}",
    response_model=list[BlockedDate],
    status_code=status.HTTP_200_OK,
    summary="Unblock a date",
)
async def remove_blocked_date(
    doctor_id: str,
    blocked_date: date,
    db: DatabaseSession,
    resolver: Resolver,
    requester: StaffRequester,
) -> list[BlockedDate]:
    """
    Remove a blocked date.

    Returns:
        All blocked dates after the change
    """
    return await resolver.remove_blocked_date(
        db, doctor_id, blocked_date, hospital_id=requester.hospital_id
    )

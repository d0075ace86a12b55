"""FastAPI dependencies."""

from typing import Annotated
from zoneinfo import ZoneInfo

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from carebook.config import settings
from carebook.core.redis_client import CacheManager, get_redis_client
from carebook.core.security import decode_access_token
from carebook.database import get_db
from carebook.schemas.auth import RequesterContext
from carebook.services.availability_service import AvailabilityService
from carebook.services.booking_service import BookingService
from carebook.services.notification_service import AppointmentNotifier, LoggingNotifier
from carebook.services.schedule_service import ScheduleResolver

# Security
security = HTTPBearer()


async def get_requester(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(security)],
) -> RequesterContext:
    """
    Build the requester context from a bearer token.

    Args:
        credentials: Bearer token credentials

    Returns:
        Requester identity, tenant and role

    Raises:
        HTTPException: If token is invalid or expired
    """
    payload = decode_access_token(credentials.credentials)

    if payload is None or not isinstance(payload.get("sub"), str):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        return RequesterContext(
            user_id=payload["sub"],
            hospital_id=payload.get("hospital_id"),
            role=payload.get("role", "patient"),
        )
    except ValidationError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token claims",
            headers={"WWW-Authenticate": "Bearer"},
        )


async def get_staff_requester(
    requester: Annotated[RequesterContext, Depends(get_requester)],
) -> RequesterContext:
    """Require a doctor, receptionist or admin bound to a hospital."""
    if not requester.is_staff:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="This action requires a staff role",
        )
    if not requester.hospital_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Staff tokens must carry a hospital",
        )
    return requester


def get_cache_manager() -> CacheManager:
    """Get the Redis-backed cache manager."""
    return CacheManager(redis_client=get_redis_client())


def get_schedule_resolver(
    cache_manager: Annotated[CacheManager | None, Depends(get_cache_manager)],
) -> ScheduleResolver:
    """Get a schedule resolver using the deployment's default template."""
    return ScheduleResolver(
        default_template=settings.default_visiting_hours,
        cache_manager=cache_manager,
        tz=ZoneInfo(settings.clinic_timezone),
        cache_ttl=settings.schedule_cache_ttl,
    )


def get_notifier() -> AppointmentNotifier:
    """Get the outbound notification hand-off."""
    return LoggingNotifier()


def get_availability_service(
    resolver: Annotated[ScheduleResolver, Depends(get_schedule_resolver)],
) -> AvailabilityService:
    """Get availability service instance."""
    return AvailabilityService(
        resolver=resolver,
        tz=resolver.tz,
        slot_minutes=settings.slot_duration_minutes,
    )


def get_booking_service(
    db: Annotated[AsyncSession, Depends(get_db)],
    resolver: Annotated[ScheduleResolver, Depends(get_schedule_resolver)],
    notifier: Annotated[AppointmentNotifier, Depends(get_notifier)],
) -> BookingService:
    """Get booking service instance."""
    return BookingService(
        db=db,
        resolver=resolver,
        notifier=notifier,
        slot_minutes=settings.slot_duration_minutes,
    )


# Type aliases for dependency injection
DatabaseSession = Annotated[AsyncSession, Depends(get_db)]
Requester = Annotated[RequesterContext, Depends(get_requester)]
StaffRequester = Annotated[RequesterContext, Depends(get_staff_requester)]
Resolver = Annotated[ScheduleResolver, Depends(get_schedule_resolver)]
Availability = Annotated[AvailabilityService, Depends(get_availability_service)]
Booking = Annotated[BookingService, Depends(get_booking_service)]

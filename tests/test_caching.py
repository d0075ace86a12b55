"""Tests for Redis caching of schedules."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from conftest import DOCTOR_ID, upcoming
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from carebook.config import DEFAULT_VISITING_HOURS
from carebook.core.redis_client import CacheManager
from carebook.schemas.schedules import BlockedDateCreate, DaySchedule, TimeRange, VisitingHours
from carebook.services.schedule_service import ScheduleResolver


def test_cache_manager_get_json():
    """Test CacheManager get_json method."""
    mock_redis = MagicMock()
    cache_manager = CacheManager(redis_client=mock_redis)

    # Test cache miss
    mock_redis.get.return_value = None
    assert cache_manager.get_json("schedule:doc-1:default") is None
    mock_redis.get.assert_called_once_with("schedule:doc-1:default")

    # Test cache hit
    mock_redis.reset_mock()
    mock_redis.get.return_value = '{"source": "doctor"}'
    assert cache_manager.get_json("schedule:doc-1:default") == {"source": "doctor"}


def test_cache_manager_set_json_with_ttl():
    """Values with a TTL go through SETEX."""
    mock_redis = MagicMock()
    cache_manager = CacheManager(redis_client=mock_redis)

    assert cache_manager.set_json("blocked:doc-1", [], ttl=300) is True
    mock_redis.setex.assert_called_once_with("blocked:doc-1", 300, "[]")

    mock_redis.reset_mock()
    assert cache_manager.set_json("blocked:doc-1", []) is True
    mock_redis.set.assert_called_once()


def test_cache_manager_delete_pattern():
    """Test CacheManager delete_pattern method."""
    mock_redis = MagicMock()
    cache_manager = CacheManager(redis_client=mock_redis)

    mock_redis.keys.return_value = ["schedule:doc-1:default", "schedule:doc-1:branch-1"]
    mock_redis.delete.return_value = 2

    assert cache_manager.delete_pattern("schedule:doc-1:*") == 2
    mock_redis.keys.assert_called_once_with("schedule:doc-1:*")


def test_cache_manager_fails_open():
    """Redis errors degrade to misses instead of raising."""
    mock_redis = MagicMock()
    mock_redis.get.side_effect = ConnectionError("redis down")
    mock_redis.setex.side_effect = ConnectionError("redis down")
    mock_redis.keys.side_effect = ConnectionError("redis down")
    mock_redis.delete.side_effect = ConnectionError("redis down")
    cache_manager = CacheManager(redis_client=mock_redis)

    assert cache_manager.get_json("k") is None
    assert cache_manager.set_json("k", {"a": 1}, ttl=10) is False
    assert cache_manager.delete("k") is False
    assert cache_manager.delete_pattern("k*") == 0


@pytest.mark.asyncio
async def test_schedule_served_from_cache(db_session):
    """A cached template is used without touching the database."""
    cached_template = VisitingHours(
        monday=DaySchedule(is_available=True, slots=[TimeRange(start="07:00", end="08:00")])
    )
    mock_cache = MagicMock(spec=CacheManager)
    mock_cache.get_json.return_value = {
        "visiting_hours": cached_template.model_dump(),
        "source": "doctor",
    }
    resolver = ScheduleResolver(DEFAULT_VISITING_HOURS, cache_manager=mock_cache)

    resolved = await resolver.get_effective_schedule(db_session, DOCTOR_ID)

    assert resolved.source == "doctor"
    assert resolved.visiting_hours == cached_template
    mock_cache.get_json.assert_called_once_with(f"schedule:{DOCTOR_ID}:default")
    mock_cache.set_json.assert_not_called()


@pytest.mark.asyncio
async def test_schedule_cached_after_miss(db_session):
    """A miss resolves from the database and stores the result."""
    mock_cache = MagicMock(spec=CacheManager)
    mock_cache.get_json.return_value = None
    resolver = ScheduleResolver(DEFAULT_VISITING_HOURS, cache_manager=mock_cache, cache_ttl=60)

    resolved = await resolver.get_effective_schedule(db_session, DOCTOR_ID, "branch-1")

    assert resolved.source == "default"
    key, value = mock_cache.set_json.call_args.args
    assert key == f"schedule:{DOCTOR_ID}:branch-1"
    assert value["source"] == "default"
    assert mock_cache.set_json.call_args.kwargs["ttl"] == 60


@pytest.mark.asyncio
async def test_corrupt_cache_entry_is_discarded(db_session):
    """Unreadable cache entries are deleted and the database is used."""
    mock_cache = MagicMock(spec=CacheManager)
    mock_cache.get_json.return_value = {"unexpected": True}
    resolver = ScheduleResolver(DEFAULT_VISITING_HOURS, cache_manager=mock_cache)

    resolved = await resolver.get_effective_schedule(db_session, DOCTOR_ID)

    assert resolved.source == "default"
    mock_cache.delete.assert_called_once_with(f"schedule:{DOCTOR_ID}:default")


@pytest.mark.asyncio
async def test_writes_invalidate_cache(db_session):
    """Schedule and blocked-date writes drop the affected keys."""
    mock_cache = MagicMock(spec=CacheManager)
    mock_cache.get_json.return_value = None
    resolver = ScheduleResolver(DEFAULT_VISITING_HOURS, cache_manager=mock_cache)

    await resolver.set_doctor_schedule(db_session, DOCTOR_ID, VisitingHours())
    mock_cache.delete_pattern.assert_called_with(f"schedule:{DOCTOR_ID}:*")

    await resolver.add_blocked_date(db_session, DOCTOR_ID, BlockedDateCreate(date=upcoming(0)))
    mock_cache.delete.assert_called_with(f"blocked:{DOCTOR_ID}")


@pytest.mark.asyncio
async def test_blocked_dates_unreadable_store_means_none(resolver):
    """A failing blocked-date lookup degrades to no blocked dates."""
    mock_db = MagicMock(spec=AsyncSession)
    mock_db.execute = AsyncMock(side_effect=OperationalError("SELECT", {}, Exception("down")))

    assert await resolver.get_blocked_dates(mock_db, DOCTOR_ID) == []
    mock_db.execute.assert_awaited_once()

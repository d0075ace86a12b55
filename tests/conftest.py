import os
import tempfile
from collections.abc import AsyncGenerator, Callable
from datetime import UTC, date, datetime, timedelta
from pathlib import Path

# Settings are read at import time, so the environment must be ready first
_TEST_DB_DIR = tempfile.mkdtemp(prefix="carebook-")
os.environ.setdefault("DATABASE_URL", f"sqlite:///{Path(_TEST_DB_DIR) / 'app.db'}")
os.environ.setdefault("REDIS_HOST", "localhost")
os.environ.setdefault("REDIS_PORT", "6379")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key-not-for-production")
os.environ.setdefault("LOG_FORMAT", "console")

import pytest
import pytest_asyncio
from dotenv import load_dotenv
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

# Load remaining variables from .env without overriding the ones above
load_dotenv()

from carebook.config import DEFAULT_VISITING_HOURS
from carebook.core.security import create_access_token
from carebook.database import build_engine, get_db
from carebook.dependencies import get_cache_manager
from carebook.main import app
from carebook.models import metadata
from carebook.services.schedule_service import ScheduleResolver

HOSPITAL_ID = "hosp-1"
DOCTOR_ID = "doc-1"
PATIENT_ID = "patient-1"


def upcoming(weekday: int, weeks_ahead: int = 1) -> date:
    """A date on the given weekday (0 = Monday) at least a week from today."""
    today = datetime.now(UTC).date()
    days = (weekday - today.weekday()) % 7 or 7
    return today + timedelta(days=days + 7 * (weeks_ahead - 1))


def make_auth_headers(
    user_id: str,
    role: str = "patient",
    hospital_id: str | None = HOSPITAL_ID,
) -> dict:
    """Bearer headers for a user with the given role."""
    token_data = {"sub": user_id, "role": role}
    if hospital_id:
        token_data["hospital_id"] = hospital_id
    token = create_access_token(data=token_data, expires_delta=timedelta(minutes=30))
    return {"Authorization": f"Bearer {token}"}


@pytest_asyncio.fixture
async def test_engine(tmp_path: Path) -> AsyncGenerator[AsyncEngine, None]:
    """A fresh SQLite database per test."""
    engine = build_engine(f"sqlite:///{tmp_path / 'carebook_test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to the test database."""
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """A single test database session."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def resolver() -> ScheduleResolver:
    """Schedule resolver with the default template and no cache."""
    return ScheduleResolver(default_template=DEFAULT_VISITING_HOURS, cache_manager=None)


@pytest_asyncio.fixture
async def client(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncClient, None]:
    """Create a test HTTP client. Every request gets its own session."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_cache_manager] = lambda: None

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture
def patient_headers() -> dict:
    """Authentication headers for the test patient."""
    return make_auth_headers(PATIENT_ID)


@pytest.fixture
def staff_headers() -> dict:
    """Authentication headers for a receptionist."""
    return make_auth_headers("reception-1", role="receptionist")


@pytest.fixture
def next_monday() -> date:
    """A Monday safely in the future."""
    return upcoming(0)


@pytest.fixture
def booking_payload(next_monday: date) -> Callable[..., dict]:
    """Build a booking request body."""

    def build(**overrides) -> dict:
        payload = {
            "hospital_id": HOSPITAL_ID,
            "doctor_id": DOCTOR_ID,
            "patient_id": PATIENT_ID,
            "patient_name": "Asha Rao",
            "patient_phone": "+91 98765 43210",
            "appointment_date": next_monday.isoformat(),
            "appointment_time": "09:00",
            "chief_complaint": "Fever for three days",
        }
        payload.update(overrides)
        return payload

    return build

"""Shared test fixtures.

Tests run against an in-memory SQLite database (aiosqlite) with the schema
created from the ORM metadata, so no Postgres or Redis is needed. Redis is
never initialized here: rate limiting and the leaderboard cache are skipped
unless a test patches a client in.
"""

from __future__ import annotations

import os
import uuid
from collections.abc import AsyncGenerator
from datetime import date, datetime, timedelta, timezone

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"
OPERATOR_KEY = "test-operator-key"

os.environ["GN_DATABASE_URL"] = TEST_DATABASE_URL
os.environ["GN_OPERATOR_API_KEY"] = OPERATOR_KEY
os.environ["GN_LOG_FORMAT"] = "console"

from gardennet.auth.session import create_session_token  # noqa: E402
from gardennet.config import get_settings  # noqa: E402
from gardennet.database import close_db, get_engine, get_session, init_db  # noqa: E402
from gardennet.db.base import Base  # noqa: E402
from gardennet.db.enums import ChallengeType, Visibility  # noqa: E402
from gardennet.db.models import (  # noqa: E402
    Classroom,
    ClassroomProfile,
    Harvest,
    NetworkChallenge,
    Tower,
)
from gardennet.main import create_app  # noqa: E402

get_settings.cache_clear()


@pytest_asyncio.fixture
async def db() -> AsyncGenerator[AsyncSession, None]:
    """Fresh in-memory database per test, with a session for seeding and assertions."""
    await init_db(TEST_DATABASE_URL)
    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    sessions = get_session()
    session = await anext(sessions)
    yield session
    await sessions.aclose()
    await close_db()


@pytest_asyncio.fixture
async def client(db: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client bound to the app, sharing the test database."""
    app = create_app()
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def auth_headers():
    """Build session-token headers for a classroom."""

    def _headers(classroom: Classroom) -> dict[str, str]:
        token = create_session_token(classroom.teacher_id, classroom.id)
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest.fixture
def operator_headers() -> dict[str, str]:
    return {"X-Operator-Key": OPERATOR_KEY}


@pytest.fixture
def make_classroom(db: AsyncSession):
    """Create a classroom row (owned by a fresh teacher unless one is given)."""

    async def _make(name: str = "Room 101", teacher_id: str | None = None) -> Classroom:
        classroom = Classroom(name=name, teacher_id=teacher_id or str(uuid.uuid4()))
        db.add(classroom)
        await db.commit()
        return classroom

    return _make


@pytest.fixture
def make_member(db: AsyncSession, make_classroom):
    """Create a classroom with a network profile. Enabled and public by default."""

    async def _make(
        display_name: str,
        *,
        teacher_id: str | None = None,
        enabled: bool = True,
        visibility: Visibility = Visibility.PUBLIC,
        bio: str | None = None,
        region: str | None = None,
        grade_level: str | None = None,
        school_type=None,
        share_harvest_data: bool = True,
    ) -> Classroom:
        classroom = await make_classroom(f"{display_name} classroom", teacher_id)
        db.add(ClassroomProfile(
            classroom_id=classroom.id,
            is_network_enabled=enabled,
            visibility=visibility,
            display_name=display_name,
            bio=bio,
            region=region,
            grade_level=grade_level,
            school_type=school_type,
            share_harvest_data=share_harvest_data,
        ))
        await db.commit()
        return classroom

    return _make


@pytest.fixture
def add_harvest(db: AsyncSession):
    """Log a harvest for a teacher on a new tower."""

    async def _add(
        teacher_id: str,
        weight_grams: float,
        plant_quantity: int = 1,
        harvested_at: datetime | None = None,
    ) -> Harvest:
        tower = Tower(name="Tower", teacher_id=teacher_id)
        db.add(tower)
        await db.flush()
        harvest = Harvest(
            tower_id=tower.id,
            teacher_id=teacher_id,
            plant_name="Lettuce",
            weight_grams=weight_grams,
            plant_quantity=plant_quantity,
            harvested_at=harvested_at or datetime.now(timezone.utc),
        )
        db.add(harvest)
        await db.commit()
        return harvest

    return _add


@pytest.fixture
def make_challenge(db: AsyncSession):
    """Create a challenge running from last week to next week unless dates are given."""

    async def _make(
        title: str = "Spring Harvest",
        challenge_type: ChallengeType = ChallengeType.HARVEST,
        start_date: date | None = None,
        end_date: date | None = None,
        is_active: bool = True,
    ) -> NetworkChallenge:
        today = datetime.now(timezone.utc).date()
        challenge = NetworkChallenge(
            title=title,
            description="Grow the most",
            challenge_type=challenge_type,
            start_date=start_date or today - timedelta(days=7),
            end_date=end_date or today + timedelta(days=7),
            rewards=["Certificate"],
            is_active=is_active,
        )
        db.add(challenge)
        await db.commit()
        return challenge

    return _make

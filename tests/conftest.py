"""Shared fixtures and utilities for tests."""

import os

# Settings are read at import time, so the environment is set before any
# application module is imported.
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("APP_ENV", "development")
os.environ.setdefault("JSON_LOGS", "false")
os.environ.setdefault("LOG_LEVEL", "INFO")

from datetime import timedelta
from typing import Optional

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from core.utils.datetime import now
from database.engine import Base
from database.models.subscriptions import Plan, PlanStatus
from api.services.postings import PostingService


@pytest_asyncio.fixture
async def engine(tmp_path):
    """File-backed SQLite engine; each session gets its own connection."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'postings.db'}",
        connect_args={"timeout": 30},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
def service(session_factory) -> PostingService:
    """Posting service running against the test database."""
    return PostingService(session_factory=session_factory)


@pytest.fixture
def make_plan(session_factory):
    """Factory inserting a plan and returning it."""

    async def _make_plan(
        owner_id: int = 1,
        highlight_quota: Optional[int] = 2,
        status: PlanStatus = PlanStatus.ACTIVE,
        starts_at=None,
        ends_at=None,
        name: str = "Business",
        posting_quota: Optional[int] = None,
    ) -> Plan:
        plan = Plan(
            owner_id=owner_id,
            name=name,
            status=status,
            highlight_quota=highlight_quota,
            posting_quota=posting_quota,
            starts_at=starts_at or now() - timedelta(days=1),
            ends_at=ends_at,
        )
        async with session_factory() as session:
            async with session.begin():
                session.add(plan)
        return plan

    return _make_plan


@pytest.fixture
def posting_payload():
    """Builder for a valid create payload with optional overrides."""

    def _posting_payload(owner_id: int = 1, **overrides) -> dict:
        payload = {
            "owner_id": owner_id,
            "title": "Backend Developer",
            "description": "Python and PostgreSQL",
            "status": "published",
            "highlight_requested": False,
        }
        payload.update(overrides)
        return payload

    return _posting_payload

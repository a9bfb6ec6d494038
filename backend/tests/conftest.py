"""
Test configuration and fixtures for the Quota Ledger.

Provides shared fixtures for unit tests. Engine-level tests run the real
repository against a file-backed SQLite database through aiosqlite, with
the store clock pinned so refresh boundaries are deterministic.
"""

import pytest
from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator, List
from unittest.mock import AsyncMock

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlmodel import SQLModel

from app.domain.quota import as_utc
from app.domain.subscription import PlanLimits, SubscriptionQuota
from app.infrastructure.db.models import SubscriptionLimitCreate
from app.infrastructure.db.repositories import SubscriptionLimitRepository
from app.infrastructure.services.annual_quota_service import (
    AnnualQuotaService,
    RetryPolicy,
)
from app.infrastructure.services.plan_catalog import StaticPlanCatalog
from app.infrastructure.services.quota_events import NullQuotaEventLogger


NOW = datetime(2026, 3, 15, 12, 0, tzinfo=timezone.utc)


class StoreClock:
    """Mutable stand-in for the database clock."""

    def __init__(self, now: datetime):
        self.now = now


class FixedClockRepository(SubscriptionLimitRepository):
    """
    Repository reading the clock from a StoreClock.

    Hooks queued in ``race_hooks`` run right after the eligible-row read,
    which is where a competing instance would sneak in its own write.
    """

    def __init__(self, session: AsyncSession, clock: StoreClock, race_hooks: List):
        super().__init__(session)
        self._clock = clock
        self._race_hooks = race_hooks

    async def get_db_now(self) -> datetime:
        return as_utc(self._clock.now)

    async def find_eligible_annual(self, organization_id, now):
        quota = await super().find_eligible_annual(organization_id, now)
        if self._race_hooks:
            hook = self._race_hooks.pop(0)
            await hook()
        return quota


# =============================================================================
# Database Fixtures
# =============================================================================

@pytest.fixture
async def engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """SQLite engine with the quota schema."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'quota.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, expire_on_commit=False, autoflush=False)


@pytest.fixture
def clock() -> StoreClock:
    return StoreClock(NOW)


@pytest.fixture
def race_hooks() -> List:
    return []


# =============================================================================
# Service Fixtures
# =============================================================================

@pytest.fixture
def plan_catalog() -> StaticPlanCatalog:
    """Catalog with a plan defining only aiNums and a fully specified one."""
    return StaticPlanCatalog({
        "pro": PlanLimits(ai_nums=100, seats=1),
        "team": PlanLimits(
            ai_nums=500,
            enhance_nums=1000,
            upload_limit=200,
            deploy_limit=1500,
            project_nums=50,
            seats=20,
        ),
    })


@pytest.fixture
def sleep_mock() -> AsyncMock:
    return AsyncMock()


@pytest.fixture
def build_quota_service(session_factory, plan_catalog, clock, race_hooks, sleep_mock):
    """Factory for services wired to SQLite, the fixed clock, and zero-delay retries."""

    def _build(**overrides) -> AnnualQuotaService:
        options = {
            "session_factory": session_factory,
            "plan_catalog": plan_catalog,
            "events": NullQuotaEventLogger(),
            "retry_policy": RetryPolicy(max_retries=3, base_delay=0.0),
            "repository_factory": lambda session: FixedClockRepository(session, clock, race_hooks),
            "sleep": sleep_mock,
            "jitter": lambda: 0.0,
            "free_plan_name": "free",
        }
        options.update(overrides)
        return AnnualQuotaService(**options)

    return _build


@pytest.fixture
def quota_service(build_quota_service) -> AnnualQuotaService:
    return build_quota_service()


# =============================================================================
# Sample Data Fixtures
# =============================================================================

@pytest.fixture
def seed_quota(session_factory):
    """Insert a subscription_limit row; defaults describe a fresh annual pro plan."""

    async def _seed(**overrides) -> SubscriptionQuota:
        values = {
            "organization_id": "org-123",
            "plan_name": "pro",
            "billing_interval": "year",
            "is_active": True,
            "period_start": NOW - timedelta(days=60),
            "period_end": NOW + timedelta(days=300),
            "last_quota_refresh": None,
            "ai_nums": 0,
            "enhance_nums": 0,
            "upload_limit": 0,
            "deploy_limit": 0,
            "project_nums": 0,
            "seats": 1,
        }
        values.update(overrides)
        async with session_factory() as session:
            async with session.begin():
                repo = SubscriptionLimitRepository(session)
                return await repo.create_quota(SubscriptionLimitCreate(**values))

    return _seed


@pytest.fixture
def fetch_quota(session_factory):
    """Read a row back in a fresh session."""

    async def _fetch(quota_id: str) -> SubscriptionQuota:
        async with session_factory() as session:
            repo = SubscriptionLimitRepository(session)
            return await repo.get_quota(quota_id)

    return _fetch

"""
Dependency Injection Providers for the Quota Ledger

Provides FastAPI dependencies for database sessions and repositories.
Follows Dependency Inversion Principle - high-level modules depend on abstractions.
"""

from typing import Annotated, AsyncGenerator

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.config.settings import get_settings
from app.infrastructure.db.database import get_session
from app.infrastructure.db.repositories import SubscriptionLimitRepository


# Type alias for session dependency
SessionDep = Annotated[AsyncSession, Depends(get_session)]


async def get_subscription_limit_repository(
    session: SessionDep,
) -> AsyncGenerator[SubscriptionLimitRepository, None]:
    """
    Dependency provider for SubscriptionLimitRepository.

    Usage:
        @router.get("/quota/{organization_id}")
        async def get_quota(
            repo: SubscriptionLimitRepository = Depends(get_subscription_limit_repository)
        ):
            ...
    """
    yield SubscriptionLimitRepository(session, free_plan_name=get_settings().free_plan_name)


# Type alias for repository dependency
SubscriptionLimitRepoDep = Annotated[
    SubscriptionLimitRepository,
    Depends(get_subscription_limit_repository)
]

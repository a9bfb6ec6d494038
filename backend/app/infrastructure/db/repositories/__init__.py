"""
Repository Layer for the Quota Ledger

Exports all repository classes for dependency injection.
"""

from app.infrastructure.db.repositories.base_repository import BaseRepository
from app.infrastructure.db.repositories.subscription_limit_repository import (
    SubscriptionLimitRepository,
)


__all__ = [
    # Base
    "BaseRepository",
    # Repositories
    "SubscriptionLimitRepository",
]

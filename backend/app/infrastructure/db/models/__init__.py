"""
SQLModel ORM Models for the Quota Ledger

Exports all database models for Alembic autogenerate and application use.
Import models here to register them with SQLModel.metadata.
"""

from app.infrastructure.db.models.base import (
    BaseModel,
    TimestampMixin,
    UUIDMixin,
)
from app.infrastructure.db.models.subscription_limit import (
    SubscriptionLimit,
    SubscriptionLimitBase,
    SubscriptionLimitCreate,
)


__all__ = [
    # Base
    "BaseModel",
    "TimestampMixin",
    "UUIDMixin",
    # SubscriptionLimit
    "SubscriptionLimit",
    "SubscriptionLimitBase",
    "SubscriptionLimitCreate",
]

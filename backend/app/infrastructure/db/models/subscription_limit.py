"""
Subscription Limit Database Model

SQLModel table holding the remaining quota counters of each subscription.
Rows are provisioned by the billing integration; the quota service only
refreshes and deducts.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import CheckConstraint, DateTime, Index
from sqlmodel import Field, SQLModel

from app.infrastructure.db.models.base import BaseModel


COUNTER_COLUMNS = ("ai_nums", "enhance_nums", "upload_limit", "deploy_limit", "project_nums")


class SubscriptionLimitBase(SQLModel):
    """Shared subscription limit fields."""

    organization_id: str = Field(max_length=255, index=True, nullable=False)
    plan_name: str = Field(max_length=64, nullable=False)
    billing_interval: str = Field(default="month", max_length=16, nullable=False)
    is_active: bool = Field(default=True, nullable=False)

    # Billing period dates
    period_start: Optional[datetime] = Field(default=None, sa_type=DateTime(timezone=True))
    period_end: datetime = Field(sa_type=DateTime(timezone=True), nullable=False)
    last_quota_refresh: Optional[datetime] = Field(
        default=None,
        sa_type=DateTime(timezone=True),
        description="Optimistic-lock token; NULL until the first refresh",
    )

    # Remaining allowances
    ai_nums: int = Field(default=0, ge=0)
    enhance_nums: int = Field(default=0, ge=0)
    upload_limit: int = Field(default=0, ge=0)
    deploy_limit: int = Field(default=0, ge=0)
    project_nums: int = Field(default=0, ge=0)
    seats: int = Field(default=1, ge=0)


class SubscriptionLimit(BaseModel, SubscriptionLimitBase, table=True):
    """
    Subscription limit table.

    Maps to the 'subscription_limit' table in PostgreSQL.
    """

    __tablename__ = "subscription_limit"
    __table_args__ = (
        Index(
            "ix_subscription_limit_org_active_interval",
            "organization_id",
            "is_active",
            "billing_interval",
        ),
        *(
            CheckConstraint(f"{column} >= 0", name=f"ck_subscription_limit_{column}_nonnegative")
            for column in COUNTER_COLUMNS
        ),
    )


class SubscriptionLimitCreate(SubscriptionLimitBase):
    """Schema for provisioning a subscription limit row."""
    pass

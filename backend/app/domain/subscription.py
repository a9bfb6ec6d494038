"""
Subscription Quota Domain Models

Domain models for the annual quota ledger following Clean Architecture.
Enums, DTOs, and domain entities for the subscription quota bounded context.
"""

from datetime import datetime
from enum import Enum
from typing import Dict, Optional
from pydantic import BaseModel, ConfigDict, Field


class QuotaKind(str, Enum):
    """The five consumable allowances tracked per subscription."""
    AI_NUMS = "aiNums"
    ENHANCE_NUMS = "enhanceNums"
    UPLOAD_LIMIT = "uploadLimit"
    DEPLOY_LIMIT = "deployLimit"
    PROJECT_NUMS = "projectNums"


class BillingInterval(str, Enum):
    """Billing interval of a subscription row."""
    MONTH = "month"
    YEAR = "year"


class DeductReason(str, Enum):
    """Why a deduction was not applied."""
    INSUFFICIENT = "insufficient"
    CONCURRENCY = "concurrency"
    NOT_FOUND = "not_found"
    EXPIRED = "expired"
    INVALID = "invalid"


class QuotaSource(str, Enum):
    """Which quota pool served a unified deduction."""
    ANNUAL = "annual"
    FALLBACK = "fallback"


# Entity attribute holding each counter. Exhaustive over QuotaKind.
QUOTA_FIELDS: Dict[QuotaKind, str] = {
    QuotaKind.AI_NUMS: "ai_nums",
    QuotaKind.ENHANCE_NUMS: "enhance_nums",
    QuotaKind.UPLOAD_LIMIT: "upload_limit",
    QuotaKind.DEPLOY_LIMIT: "deploy_limit",
    QuotaKind.PROJECT_NUMS: "project_nums",
}


# =============================================================================
# Domain Entities
# =============================================================================

class PlanLimits(BaseModel):
    """Numeric limits of a plan as served by the plan catalog."""
    model_config = ConfigDict(frozen=True)

    ai_nums: Optional[int] = Field(default=None, ge=0)
    enhance_nums: Optional[int] = Field(default=None, ge=0)
    upload_limit: Optional[int] = Field(default=None, ge=0)
    deploy_limit: Optional[int] = Field(default=None, ge=0)
    project_nums: Optional[int] = Field(default=None, ge=0)
    seats: int = Field(default=1, ge=0)


class SubscriptionQuota(BaseModel):
    """Core subscription quota entity (one row of subscription_limit)."""
    model_config = ConfigDict(from_attributes=True)

    id: str
    organization_id: str
    plan_name: str
    billing_interval: BillingInterval = BillingInterval.MONTH
    is_active: bool = True
    period_start: Optional[datetime] = None
    period_end: datetime
    last_quota_refresh: Optional[datetime] = None
    ai_nums: int = 0
    enhance_nums: int = 0
    upload_limit: int = 0
    deploy_limit: int = 0
    project_nums: int = 0
    seats: int = 1
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def counter(self, kind: QuotaKind) -> int:
        """Remaining allowance for a quota kind."""
        return getattr(self, QUOTA_FIELDS[kind]) or 0


# =============================================================================
# Request/Response DTOs
# =============================================================================

class DeductResult(BaseModel):
    """Outcome of an annual refresh-and-deduct operation."""
    success: bool
    remaining: Optional[int] = None
    reason: Optional[DeductReason] = None


class UnifiedDeductResult(BaseModel):
    """Outcome of the unified deduction entry point."""
    success: bool
    remaining: Optional[int] = None
    source: Optional[QuotaSource] = None


class DeductQuotaRequest(BaseModel):
    """Request DTO for a quota deduction."""
    quota_type: QuotaKind = Field(..., description="Quota counter to deduct from")
    amount: int = Field(default=1, description="Units to deduct (positive integer)")


class RefreshQuotaResponse(BaseModel):
    """Response DTO for a plain refresh."""
    organization_id: str
    refreshed: bool


# =============================================================================
# Plan Configuration (Business Logic)
# =============================================================================

FREE_PLAN_NAME = "free"

PLAN_LIMITS: Dict[str, PlanLimits] = {
    FREE_PLAN_NAME: PlanLimits(ai_nums=10, project_nums=1, seats=1),
    "pro": PlanLimits(ai_nums=100, project_nums=6, seats=1),
    "max": PlanLimits(ai_nums=250, deploy_limit=400, project_nums=20, seats=5),
    "team": PlanLimits(
        ai_nums=500,
        enhance_nums=1000,
        upload_limit=200,
        deploy_limit=1500,
        project_nums=50,
        seats=20,
    ),
}

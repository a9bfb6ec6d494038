"""
Quota API Routes

Internal endpoints exposing the annual quota ledger to other services.
Callers are trusted services; authentication happens upstream.
"""

import logging

from fastapi import APIRouter, Depends

from app.domain.subscription import (
    DeductQuotaRequest,
    DeductResult,
    RefreshQuotaResponse,
    SubscriptionQuota,
    UnifiedDeductResult,
)
from app.infrastructure.db.dependencies import SubscriptionLimitRepoDep
from app.infrastructure.exceptions import NotFoundError
from app.infrastructure.services.annual_quota_service import (
    AnnualQuotaService,
    get_annual_quota_service,
)


logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/quota/{organization_id}", response_model=SubscriptionQuota)
async def get_annual_quota(organization_id: str, repo: SubscriptionLimitRepoDep):
    """Current annual subscription quota of an organization."""
    now = await repo.get_db_now()
    quota = await repo.find_eligible_annual(organization_id, now)
    if quota is None:
        raise NotFoundError(
            f"No active annual subscription for organization {organization_id}",
            operation="get_annual_quota",
            table="subscription_limit",
        )
    return quota


@router.post("/quota/{organization_id}/refresh", response_model=RefreshQuotaResponse)
async def refresh_annual_quota(
    organization_id: str,
    service: AnnualQuotaService = Depends(get_annual_quota_service),
):
    """Refresh the organization's annual quota if a new month has started."""
    refreshed = await service.check_and_refresh_annual_quota(organization_id)
    return RefreshQuotaResponse(organization_id=organization_id, refreshed=refreshed)


@router.post("/quota/{organization_id}/deduct", response_model=DeductResult)
async def deduct_annual_quota(
    organization_id: str,
    request: DeductQuotaRequest,
    service: AnnualQuotaService = Depends(get_annual_quota_service),
):
    """
    Deduct from the annual subscription quota.

    Business failures are reported in the body, not as HTTP errors.
    """
    return await service.check_refresh_and_deduct_quota(
        organization_id, request.quota_type, request.amount
    )


@router.post("/quota/{organization_id}/deduct/unified", response_model=UnifiedDeductResult)
async def deduct_quota_unified(
    organization_id: str,
    request: DeductQuotaRequest,
    service: AnnualQuotaService = Depends(get_annual_quota_service),
):
    """Deduct quota, telling the caller when to use its fallback pool."""
    result = await service.deduct_quota_unified(
        organization_id, request.quota_type, request.amount
    )
    if not result.success:
        logger.info(f"Organization {organization_id} routed to fallback quota pool")
    return result

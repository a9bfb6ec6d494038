"""
Refresh Annual Quotas Script

Scheduled sweep that rolls annual subscriptions into their new billing
month. Safe to run from several hosts at once: each refresh is guarded by
the row's last_quota_refresh token, so a row is refreshed at most once.

Usage:
    cd backend
    python scripts/refresh_annual_quotas.py
"""

import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from app.config.settings import settings
from app.infrastructure.db.database import close_db, get_session_context
from app.infrastructure.db.repositories.subscription_limit_repository import (
    SubscriptionLimitRepository,
)
from app.infrastructure.services.annual_quota_service import (
    AnnualQuotaService,
    get_annual_quota_service,
)

logging.basicConfig(level=getattr(logging, settings.log_level.upper()))
logger = logging.getLogger(__name__)


async def refresh_annual_quotas(service: Optional[AnnualQuotaService] = None) -> dict:
    """Refresh every annual subscription whose month has rolled over."""
    service = service or get_annual_quota_service()

    async with get_session_context() as session:
        repo = SubscriptionLimitRepository(session, free_plan_name=settings.free_plan_name)
        now = await repo.get_db_now()
        organization_ids = await repo.list_annual_organization_ids(now)

    logger.info(f"Found {len(organization_ids)} organizations with annual subscriptions")

    refreshed = 0
    skipped = 0

    for organization_id in organization_ids:
        if await service.check_and_refresh_annual_quota(organization_id):
            refreshed += 1
            logger.info(f"  ✓ Refreshed: {organization_id}")
        else:
            skipped += 1

    logger.info(f"\n{'='*50}")
    logger.info("Annual quota sweep complete!")
    logger.info(f"  Refreshed: {refreshed}")
    logger.info(f"  Skipped:   {skipped}")
    logger.info(f"{'='*50}")

    return {"refreshed": refreshed, "skipped": skipped}


async def main() -> None:
    try:
        await refresh_annual_quotas()
    finally:
        await close_db()


if __name__ == "__main__":
    asyncio.run(main())

"""
Plan Catalog

Maps a plan name to its numeric quota limits. The quota service only
depends on the PlanCatalog protocol; StaticPlanCatalog serves the
built-in PLAN_LIMITS table.
"""

import logging
from functools import lru_cache
from typing import Mapping, Optional, Protocol, runtime_checkable

from app.domain.subscription import PLAN_LIMITS, PlanLimits
from app.infrastructure.exceptions import PlanLimitsUnavailableError


logger = logging.getLogger(__name__)


@runtime_checkable
class PlanCatalog(Protocol):
    """Read-only lookup of plan limits."""

    async def get_plan_limits(self, plan_name: str) -> PlanLimits:
        """
        Resolve the limits of a plan.

        Raises PlanLimitsUnavailableError when the plan is unknown.
        """
        ...


class StaticPlanCatalog:
    """In-memory plan catalog backed by a fixed mapping."""

    def __init__(self, plans: Optional[Mapping[str, PlanLimits]] = None):
        self._plans = dict(PLAN_LIMITS if plans is None else plans)

    async def get_plan_limits(self, plan_name: str) -> PlanLimits:
        limits = self._plans.get(plan_name)
        if limits is None:
            logger.warning(f"Unknown plan requested from catalog: {plan_name}")
            raise PlanLimitsUnavailableError(plan_name)
        return limits


@lru_cache
def get_plan_catalog() -> StaticPlanCatalog:
    """Get cached default plan catalog."""
    return StaticPlanCatalog()

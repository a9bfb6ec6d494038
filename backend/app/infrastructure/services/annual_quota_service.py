"""
Annual Quota Service

Monthly quota refresh and atomic deduction for annual subscriptions.

Annual plans are billed once a year but their allowances roll over every
calendar month. A deduction evaluates the refresh and applies it together
with the deduction in one guarded UPDATE, using last_quota_refresh as an
optimistic-lock token. Two instances racing on the same billing-month
boundary cannot both refresh: the loser sees zero rows, re-reads the row,
notices the token moved, and retries against the refreshed state.

Production features:
- Store clock only (SELECT now()), never the local clock
- Bounded retry with exponential backoff and jitter
- Unified entry point that falls back to the non-annual quota pool
"""

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import AsyncContextManager, Awaitable, Callable, Optional, Union

from sqlalchemy.ext.asyncio import AsyncSession

from app.config.settings import Settings, get_settings
from app.domain.quota import as_utc, fresh_quota_values, is_refresh_due
from app.domain.subscription import (
    BillingInterval,
    DeductReason,
    DeductResult,
    QuotaKind,
    QuotaSource,
    SubscriptionQuota,
    UnifiedDeductResult,
)
from app.infrastructure.db.database import get_db_manager
from app.infrastructure.db.repositories.subscription_limit_repository import (
    SubscriptionLimitRepository,
)
from app.infrastructure.services.plan_catalog import PlanCatalog, get_plan_catalog
from app.infrastructure.services.quota_events import QuotaEventLogger


logger = logging.getLogger(__name__)

OPERATION_REFRESH = "annual_quota_refresh"
OPERATION_DEDUCT = "annual_quota_refresh_deduct"
OPERATION_UNIFIED = "unified_quota_deduction"

# Counters are 32-bit integer columns
MAX_DEDUCT_AMOUNT = 2**31 - 1

SessionFactory = Callable[[], AsyncContextManager[AsyncSession]]
RepositoryFactory = Callable[[AsyncSession], SubscriptionLimitRepository]


@dataclass(frozen=True)
class RetryPolicy:
    """Retry budget and backoff for optimistic-lock conflicts."""
    max_retries: int = 3
    base_delay: float = 0.05  # seconds

    def backoff_delay(self, attempt: int, jitter: float) -> float:
        """
        Delay before the attempt after ``attempt``.

        Args:
            attempt: Zero-based index of the attempt that just failed
            jitter: Random fraction in [0, 1)
        """
        return self.base_delay * (2 ** attempt) + jitter * self.base_delay

    @classmethod
    def from_settings(cls, settings: Settings) -> "RetryPolicy":
        return cls(
            max_retries=settings.quota_max_retries,
            base_delay=settings.quota_retry_base_delay_ms / 1000,
        )


# =============================================================================
# Attempt Outcomes
# =============================================================================

@dataclass(frozen=True)
class Committed:
    """The attempt finished; its result is final."""
    result: DeductResult


@dataclass(frozen=True)
class Retry:
    """The optimistic-lock token moved or the store failed; try again."""
    cause: str


@dataclass(frozen=True)
class Fatal:
    """The attempt failed for a reason retrying cannot fix."""
    reason: DeductReason


AttemptOutcome = Union[Committed, Retry, Fatal]


def _same_token(left, right) -> bool:
    if left is None or right is None:
        return left is None and right is None
    return as_utc(left) == as_utc(right)


class AnnualQuotaService:
    """
    Refresh-and-deduct engine for annual subscription quotas.

    Stateless: every call reads the shared store, so any number of
    instances can serve the same organization concurrently.
    """

    def __init__(
        self,
        session_factory: Optional[SessionFactory] = None,
        plan_catalog: Optional[PlanCatalog] = None,
        events: Optional[QuotaEventLogger] = None,
        retry_policy: Optional[RetryPolicy] = None,
        repository_factory: Optional[RepositoryFactory] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        jitter: Callable[[], float] = random.random,
        free_plan_name: Optional[str] = None,
    ):
        settings = get_settings()
        self._session_factory = session_factory
        self._plan_catalog = plan_catalog or get_plan_catalog()
        self._events = events or QuotaEventLogger()
        self._retry_policy = retry_policy or RetryPolicy.from_settings(settings)
        self._free_plan_name = free_plan_name or settings.free_plan_name
        self._repository_factory = repository_factory or self._default_repository
        self._sleep = sleep
        self._jitter = jitter

    @property
    def session_factory(self) -> SessionFactory:
        if self._session_factory is None:
            self._session_factory = get_db_manager().session_factory
        return self._session_factory

    @property
    def retry_policy(self) -> RetryPolicy:
        return self._retry_policy

    def _default_repository(self, session: AsyncSession) -> SubscriptionLimitRepository:
        return SubscriptionLimitRepository(session, free_plan_name=self._free_plan_name)

    # =========================================================================
    # Plain Refresh
    # =========================================================================

    async def check_and_refresh_annual_quota(self, organization_id: str) -> bool:
        """
        Refresh an annual subscription's quota if a new month has started.

        Typically driven by the scheduled sweep. Never raises.

        Args:
            organization_id: Tenant key

        Returns:
            True if a refresh was performed
        """
        if not self._is_valid_organization_id(organization_id):
            return False

        try:
            async with self.session_factory() as session:
                async with session.begin():
                    repo = self._repository_factory(session)
                    now = await repo.get_db_now()

                    quota = await repo.find_eligible_annual(organization_id, now)
                    if quota is None:
                        return False

                    if not is_refresh_due(quota.last_quota_refresh, now):
                        return False

                    self._events.info(
                        "Annual subscription quota refresh needed",
                        OPERATION_REFRESH,
                        organization_id=organization_id,
                        plan_name=quota.plan_name,
                        last_quota_refresh=quota.last_quota_refresh,
                    )

                    limits = await self._plan_catalog.get_plan_limits(quota.plan_name)
                    fresh = fresh_quota_values(limits)
                    refreshed = await repo.apply_refresh(quota, now, fresh, limits.seats)

            if refreshed:
                self._events.info(
                    "Annual subscription quota refreshed",
                    OPERATION_REFRESH,
                    organization_id=organization_id,
                    plan_name=quota.plan_name,
                    refreshed_quota={kind.value: value for kind, value in fresh.items()},
                    seats=limits.seats,
                    last_quota_refresh=now.isoformat(),
                )
            else:
                self._events.warning(
                    "Annual subscription quota refresh skipped: row changed concurrently",
                    OPERATION_REFRESH,
                    organization_id=organization_id,
                    plan_name=quota.plan_name,
                )
            return refreshed

        except Exception as e:
            self._events.error(
                "Failed to check/refresh annual quota",
                OPERATION_REFRESH,
                organization_id=organization_id,
                error=str(e),
            )
            return False

    # =========================================================================
    # Refresh and Deduct
    # =========================================================================

    async def check_refresh_and_deduct_quota(
        self,
        organization_id: str,
        quota_type: Union[QuotaKind, str],
        amount: int = 1,
        max_retries: Optional[int] = None,
    ) -> DeductResult:
        """
        Apply any due monthly refresh and deduct from one quota counter.

        Args:
            organization_id: Tenant key
            quota_type: Counter to deduct from
            amount: Units to deduct (positive integer)
            max_retries: Attempt budget; defaults to the retry policy

        Returns:
            DeductResult with the remaining balance on success, or the
            failure reason
        """
        kind = self._coerce_kind(quota_type)
        retries = self._retry_policy.max_retries if max_retries is None else max_retries

        if (
            not self._is_valid_organization_id(organization_id)
            or kind is None
            or not self._is_valid_amount(amount)
            or not isinstance(retries, int)
            or retries < 1
        ):
            self._events.warning(
                "Invalid annual quota deduction request",
                OPERATION_DEDUCT,
                organization_id=organization_id,
                quota_type=quota_type,
                amount=amount,
                max_retries=retries,
            )
            return DeductResult(success=False, reason=DeductReason.INVALID)

        for attempt in range(retries):
            try:
                outcome = await self._attempt_deduct(organization_id, kind, amount, attempt)
            except Exception as e:
                outcome = Retry(cause=str(e))
                self._events.warning(
                    "Error during annual quota deduction attempt",
                    OPERATION_DEDUCT,
                    organization_id=organization_id,
                    quota_type=kind.value,
                    attempt=attempt + 1,
                    error=str(e),
                )

            if isinstance(outcome, Committed):
                return outcome.result

            if isinstance(outcome, Fatal):
                self._events.info(
                    "Annual quota deduction rejected",
                    OPERATION_DEDUCT,
                    organization_id=organization_id,
                    quota_type=kind.value,
                    amount=amount,
                    attempts=attempt + 1,
                    reason=outcome.reason.value,
                )
                return DeductResult(success=False, reason=outcome.reason)

            if attempt < retries - 1:
                await self._sleep(self._retry_policy.backoff_delay(attempt, self._jitter()))

        self._events.error(
            "Failed to refresh and deduct annual quota after retries",
            OPERATION_DEDUCT,
            organization_id=organization_id,
            quota_type=kind.value,
            amount=amount,
            attempts=retries,
            reason=DeductReason.CONCURRENCY.value,
        )
        return DeductResult(success=False, reason=DeductReason.CONCURRENCY)

    async def _attempt_deduct(
        self,
        organization_id: str,
        kind: QuotaKind,
        amount: int,
        attempt: int,
    ) -> AttemptOutcome:
        """One read-evaluate-write round inside a single transaction."""
        async with self.session_factory() as session:
            async with session.begin():
                repo = self._repository_factory(session)
                now = await repo.get_db_now()

                quota = await repo.find_eligible_annual(organization_id, now)
                if quota is None:
                    return Fatal(await self._classify_missing(repo, organization_id, now))

                needs_refresh = is_refresh_due(quota.last_quota_refresh, now)

                if needs_refresh:
                    try:
                        limits = await self._plan_catalog.get_plan_limits(quota.plan_name)
                    except Exception as e:
                        self._events.error(
                            "Plan limits unavailable for annual quota refresh",
                            OPERATION_DEDUCT,
                            organization_id=organization_id,
                            plan_name=quota.plan_name,
                            quota_type=kind.value,
                            error=str(e),
                        )
                        return Fatal(DeductReason.NOT_FOUND)

                    fresh = fresh_quota_values(limits)
                    if kind is not QuotaKind.PROJECT_NUMS and fresh[kind] < amount:
                        return Fatal(DeductReason.INSUFFICIENT)

                    updated = await repo.apply_refresh_and_deduct(
                        quota, now, fresh, limits.seats, kind, amount
                    )
                else:
                    updated = await repo.apply_deduct(quota, now, kind, amount)

                if updated is None:
                    current = await repo.get_quota(quota.id)
                    return self._classify_rejection(
                        organization_id, quota, current, kind, amount, now, attempt
                    )

        remaining = updated.counter(kind)
        self._events.info(
            "Annual quota processed with race condition protection",
            OPERATION_DEDUCT,
            organization_id=organization_id,
            plan_name=quota.plan_name,
            quota_type=kind.value,
            amount=amount,
            remaining=remaining,
            was_refreshed=needs_refresh,
            attempt=attempt + 1,
        )
        return Committed(DeductResult(success=True, remaining=remaining))

    async def _classify_missing(
        self,
        repo: SubscriptionLimitRepository,
        organization_id: str,
        now,
    ) -> DeductReason:
        latest = await repo.find_latest_annual(organization_id)
        if latest is None:
            return DeductReason.NOT_FOUND
        if not latest.is_active or as_utc(latest.period_end) < now:
            return DeductReason.EXPIRED
        return DeductReason.NOT_FOUND

    def _classify_rejection(
        self,
        organization_id: str,
        snapshot: SubscriptionQuota,
        current: Optional[SubscriptionQuota],
        kind: QuotaKind,
        amount: int,
        now,
        attempt: int,
    ) -> AttemptOutcome:
        """Explain why the guarded UPDATE matched zero rows."""
        if current is None:
            return Fatal(DeductReason.NOT_FOUND)

        if not _same_token(current.last_quota_refresh, snapshot.last_quota_refresh):
            self._events.warning(
                "Annual quota optimistic lock failed, retrying",
                OPERATION_DEDUCT,
                organization_id=organization_id,
                quota_type=kind.value,
                attempt=attempt + 1,
            )
            return Retry(cause="last_quota_refresh changed")

        if kind is QuotaKind.PROJECT_NUMS and current.project_nums < amount:
            return Fatal(DeductReason.INSUFFICIENT)

        if not current.is_active:
            return Fatal(DeductReason.EXPIRED)
        if current.plan_name != snapshot.plan_name:
            return Fatal(DeductReason.NOT_FOUND)
        if current.billing_interval is not BillingInterval.YEAR:
            return Fatal(DeductReason.NOT_FOUND)
        if as_utc(current.period_end) < now:
            return Fatal(DeductReason.EXPIRED)

        return Fatal(DeductReason.INSUFFICIENT)

    # =========================================================================
    # Unified Entry Point
    # =========================================================================

    async def deduct_quota_unified(
        self,
        organization_id: str,
        quota_type: Union[QuotaKind, str],
        amount: int = 1,
    ) -> UnifiedDeductResult:
        """
        Deduct quota for any service, preferring the annual subscription.

        A failed annual deduction reports source=fallback so the caller can
        charge its non-annual quota pool instead. Never raises.
        """
        try:
            result = await self.check_refresh_and_deduct_quota(organization_id, quota_type, amount)
            if result.success:
                self._events.info(
                    "Quota deducted from annual subscription via unified entry",
                    OPERATION_UNIFIED,
                    organization_id=organization_id,
                    quota_type=quota_type,
                    amount=amount,
                    remaining=result.remaining,
                )
                return UnifiedDeductResult(
                    success=True,
                    remaining=result.remaining,
                    source=QuotaSource.ANNUAL,
                )
        except Exception as e:
            self._events.warning(
                "Annual quota deduction failed in unified entry, will use fallback",
                OPERATION_UNIFIED,
                organization_id=organization_id,
                quota_type=quota_type,
                amount=amount,
                error=str(e),
            )

        return UnifiedDeductResult(success=False, source=QuotaSource.FALLBACK)

    # =========================================================================
    # Validation Helpers
    # =========================================================================

    @staticmethod
    def _coerce_kind(quota_type: Union[QuotaKind, str]) -> Optional[QuotaKind]:
        if isinstance(quota_type, QuotaKind):
            return quota_type
        try:
            return QuotaKind(quota_type)
        except ValueError:
            return None

    @staticmethod
    def _is_valid_organization_id(organization_id: str) -> bool:
        return isinstance(organization_id, str) and bool(organization_id.strip())

    @staticmethod
    def _is_valid_amount(amount: int) -> bool:
        return (
            isinstance(amount, int)
            and not isinstance(amount, bool)
            and 0 < amount <= MAX_DEDUCT_AMOUNT
        )


# =============================================================================
# Singleton Instance
# =============================================================================

_annual_quota_service_instance: Optional[AnnualQuotaService] = None


def get_annual_quota_service() -> AnnualQuotaService:
    """Get or create annual quota service singleton."""
    global _annual_quota_service_instance

    if _annual_quota_service_instance is None:
        _annual_quota_service_instance = AnnualQuotaService()

    return _annual_quota_service_instance


async def check_and_refresh_annual_quota(organization_id: str) -> bool:
    return await get_annual_quota_service().check_and_refresh_annual_quota(organization_id)


async def check_refresh_and_deduct_quota(
    organization_id: str,
    quota_type: Union[QuotaKind, str],
    amount: int = 1,
    max_retries: Optional[int] = None,
) -> DeductResult:
    return await get_annual_quota_service().check_refresh_and_deduct_quota(
        organization_id, quota_type, amount, max_retries
    )


async def deduct_quota_unified(
    organization_id: str,
    quota_type: Union[QuotaKind, str],
    amount: int = 1,
) -> UnifiedDeductResult:
    return await get_annual_quota_service().deduct_quota_unified(
        organization_id, quota_type, amount
    )

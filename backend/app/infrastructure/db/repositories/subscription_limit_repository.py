"""
Subscription Limit Repository

Data access layer for the annual quota ledger.

Every mutation is a single guarded UPDATE ... RETURNING. The WHERE clause
carries the eligibility predicates plus the last_quota_refresh token read
by the caller, so concurrent writers on one row serialize in the database
and at most one of them wins a given refresh.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional
from uuid import UUID

from sqlalchemy import and_, case, func, literal, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.domain.quota import as_utc
from app.domain.subscription import (
    BillingInterval,
    FREE_PLAN_NAME,
    QUOTA_FIELDS,
    QuotaKind,
    SubscriptionQuota,
)
from app.infrastructure.db.models.subscription_limit import (
    SubscriptionLimit,
    SubscriptionLimitCreate,
)
from app.infrastructure.db.repositories.base_repository import BaseRepository


logger = logging.getLogger(__name__)

subscription_limit_table = SubscriptionLimit.__table__


class SubscriptionLimitRepository(
    BaseRepository[SubscriptionLimit, SubscriptionLimitCreate]
):
    """
    Repository for subscription quota rows.

    Reads return SubscriptionQuota snapshots, never live ORM objects, so
    a snapshot cannot be silently refreshed by a later statement in the
    same session.
    """

    def __init__(self, session: AsyncSession, free_plan_name: str = FREE_PLAN_NAME):
        super().__init__(SubscriptionLimit, session)
        self._free_plan_name = free_plan_name

    # =========================================================================
    # Query Methods
    # =========================================================================

    async def get_db_now(self) -> datetime:
        """
        Read the reference clock from the database.

        All instances compare against the same clock this way.
        """
        result = await self.session.execute(select(func.now()))
        value = result.scalar_one()
        if isinstance(value, str):
            value = datetime.fromisoformat(value)
        return as_utc(value)

    async def find_eligible_annual(
        self,
        organization_id: str,
        now: datetime,
    ) -> Optional[SubscriptionQuota]:
        """
        Get the active, unexpired annual paid subscription of an organization.

        Args:
            organization_id: Tenant key
            now: Reference clock from get_db_now()

        Returns:
            SubscriptionQuota snapshot or None
        """
        statement = (
            select(SubscriptionLimit)
            .where(
                SubscriptionLimit.organization_id == organization_id,
                SubscriptionLimit.is_active.is_(True),
                SubscriptionLimit.billing_interval == BillingInterval.YEAR.value,
                SubscriptionLimit.plan_name != self._free_plan_name,
                SubscriptionLimit.period_end >= now,
            )
            .order_by(SubscriptionLimit.period_end.desc(), SubscriptionLimit.id.asc())
            .limit(1)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(statement)
        model = result.scalars().first()
        return self._to_domain(model) if model else None

    async def find_latest_annual(self, organization_id: str) -> Optional[SubscriptionQuota]:
        """
        Get the most recent annual paid subscription regardless of state.

        Used to tell an expired or deactivated subscription apart from a
        missing one.
        """
        statement = (
            select(SubscriptionLimit)
            .where(
                SubscriptionLimit.organization_id == organization_id,
                SubscriptionLimit.billing_interval == BillingInterval.YEAR.value,
                SubscriptionLimit.plan_name != self._free_plan_name,
            )
            .order_by(SubscriptionLimit.period_end.desc(), SubscriptionLimit.id.asc())
            .limit(1)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(statement)
        model = result.scalars().first()
        return self._to_domain(model) if model else None

    async def get_quota(self, quota_id: str) -> Optional[SubscriptionQuota]:
        """Re-read a row by id inside the current transaction."""
        model = await self.get_by_id(UUID(quota_id))
        return self._to_domain(model) if model else None

    async def list_annual_organization_ids(self, now: datetime) -> List[str]:
        """
        Organizations owning an eligible annual subscription.

        Feeds the scheduled refresh sweep.
        """
        statement = (
            select(SubscriptionLimit.organization_id)
            .where(
                SubscriptionLimit.is_active.is_(True),
                SubscriptionLimit.billing_interval == BillingInterval.YEAR.value,
                SubscriptionLimit.plan_name != self._free_plan_name,
                SubscriptionLimit.period_end >= now,
            )
            .distinct()
            .order_by(SubscriptionLimit.organization_id)
        )
        result = await self.session.execute(statement)
        return list(result.scalars().all())

    # =========================================================================
    # Command Methods
    # =========================================================================

    async def apply_refresh(
        self,
        quota: SubscriptionQuota,
        now: datetime,
        fresh_values: Mapping[QuotaKind, int],
        seats: int,
    ) -> bool:
        """
        Reset rate-limited counters to a fresh allowance.

        project_nums is left as is.

        Returns:
            True if the row was refreshed, False if the guard rejected it
        """
        values = self._refresh_values(now, fresh_values, seats)
        statement = (
            update(subscription_limit_table)
            .where(*self._eligibility_guard(quota, now))
            .values(**values)
            .returning(subscription_limit_table.c.id)
        )
        result = await self.session.execute(statement)
        return result.first() is not None

    async def apply_refresh_and_deduct(
        self,
        quota: SubscriptionQuota,
        now: datetime,
        fresh_values: Mapping[QuotaKind, int],
        seats: int,
        kind: QuotaKind,
        amount: int,
    ) -> Optional[SubscriptionQuota]:
        """
        Refresh the row and deduct from one counter in one statement.

        Returns:
            The updated row, or None when zero rows matched
        """
        values = self._refresh_values(now, fresh_values, seats)
        guard = self._eligibility_guard(quota, now)

        if kind is QuotaKind.PROJECT_NUMS:
            project_column = subscription_limit_table.c.project_nums
            values["project_nums"] = self._floored_decrement(project_column, amount)
            guard.append(func.coalesce(project_column, 0) >= amount)
        else:
            values[QUOTA_FIELDS[kind]] = max(0, fresh_values[kind] - amount)

        return await self._update_returning(guard, values)

    async def apply_deduct(
        self,
        quota: SubscriptionQuota,
        now: datetime,
        kind: QuotaKind,
        amount: int,
    ) -> Optional[SubscriptionQuota]:
        """
        Deduct from one counter without refreshing.

        The WHERE clause requires the counter to cover the amount.

        Returns:
            The updated row, or None when zero rows matched
        """
        column = subscription_limit_table.c[QUOTA_FIELDS[kind]]
        guard = self._eligibility_guard(quota, now)
        guard.append(func.coalesce(column, 0) >= amount)
        values = {
            QUOTA_FIELDS[kind]: self._floored_decrement(column, amount),
            "updated_at": now,
        }
        return await self._update_returning(guard, values)

    async def create_quota(self, data: SubscriptionLimitCreate) -> SubscriptionQuota:
        """
        Provision a subscription limit row.

        Helper for seeding tools and tests; production rows come from the
        billing collaborator, which writes the table directly.
        """
        model = await self.create(data)
        logger.info(f"Created subscription limit {model.id} for organization {model.organization_id}")
        return self._to_domain(model)

    # =========================================================================
    # Statement Helpers
    # =========================================================================

    def _eligibility_guard(self, quota: SubscriptionQuota, now: datetime) -> List[Any]:
        table = subscription_limit_table
        if quota.last_quota_refresh is None:
            token_guard = table.c.last_quota_refresh.is_(None)
        else:
            token_guard = table.c.last_quota_refresh == quota.last_quota_refresh
        return [
            table.c.id == UUID(quota.id),
            table.c.is_active.is_(True),
            table.c.plan_name == quota.plan_name,
            table.c.billing_interval == BillingInterval.YEAR.value,
            table.c.period_end >= now,
            token_guard,
        ]

    @staticmethod
    def _refresh_values(
        now: datetime,
        fresh_values: Mapping[QuotaKind, int],
        seats: int,
    ) -> Dict[str, Any]:
        values: Dict[str, Any] = {
            QUOTA_FIELDS[kind]: value
            for kind, value in fresh_values.items()
            if kind is not QuotaKind.PROJECT_NUMS
        }
        values["seats"] = seats
        values["last_quota_refresh"] = now
        values["updated_at"] = now
        return values

    @staticmethod
    def _floored_decrement(column: Any, amount: int) -> Any:
        """GREATEST(0, COALESCE(column, 0) - amount) as a portable CASE."""
        remaining = func.coalesce(column, 0) - amount
        return case((remaining < 0, literal(0)), else_=remaining)

    async def _update_returning(
        self,
        guard: List[Any],
        values: Dict[str, Any],
    ) -> Optional[SubscriptionQuota]:
        statement = (
            update(subscription_limit_table)
            .where(and_(*guard))
            .values(**values)
            .returning(*subscription_limit_table.c)
        )
        result = await self.session.execute(statement)
        row = result.mappings().first()
        return self._mapping_to_domain(row) if row is not None else None

    # =========================================================================
    # Mapping Methods
    # =========================================================================

    def _to_domain(self, model: SubscriptionLimit) -> SubscriptionQuota:
        """Convert database model to domain entity."""
        return SubscriptionQuota(
            id=str(model.id),
            organization_id=model.organization_id,
            plan_name=model.plan_name,
            billing_interval=BillingInterval(model.billing_interval),
            is_active=model.is_active,
            period_start=model.period_start,
            period_end=model.period_end,
            last_quota_refresh=model.last_quota_refresh,
            ai_nums=model.ai_nums or 0,
            enhance_nums=model.enhance_nums or 0,
            upload_limit=model.upload_limit or 0,
            deploy_limit=model.deploy_limit or 0,
            project_nums=model.project_nums or 0,
            seats=model.seats or 0,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    def _mapping_to_domain(self, row: Mapping[str, Any]) -> SubscriptionQuota:
        """Convert a RETURNING row to a domain entity."""
        data = dict(row)
        data["id"] = str(data["id"])
        data["billing_interval"] = BillingInterval(data["billing_interval"])
        for field in QUOTA_FIELDS.values():
            data[field] = data.get(field) or 0
        return SubscriptionQuota.model_validate(data)

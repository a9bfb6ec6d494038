"""
Unit tests for the quota refresh rules.

Covers calendar month arithmetic, refresh evaluation and the limit
resolver's fallback chain. Pure functions, no database.
"""

import pytest
from datetime import datetime, timedelta, timezone

from app.domain.quota import (
    add_months,
    as_utc,
    fresh_quota_values,
    is_refresh_due,
    next_refresh_time,
    resolve_limit,
)
from app.domain.subscription import PLAN_LIMITS, PlanLimits, QuotaKind


UTC = timezone.utc


# ============================================================================
# Month Arithmetic
# ============================================================================

class TestAddMonths:
    """Calendar-aware month addition."""

    def test_plain_month(self):
        assert add_months(datetime(2026, 3, 15, tzinfo=UTC), 1) == datetime(2026, 4, 15, tzinfo=UTC)

    def test_clamps_to_end_of_february(self):
        assert add_months(datetime(2026, 1, 31, tzinfo=UTC), 1) == datetime(2026, 2, 28, tzinfo=UTC)

    def test_clamps_to_leap_day(self):
        assert add_months(datetime(2028, 1, 31, tzinfo=UTC), 1) == datetime(2028, 2, 29, tzinfo=UTC)

    def test_rolls_into_next_year(self):
        assert add_months(datetime(2026, 12, 10, 8, 30, tzinfo=UTC), 1) == datetime(2027, 1, 10, 8, 30, tzinfo=UTC)

    def test_keeps_time_of_day(self):
        result = add_months(datetime(2026, 5, 31, 23, 59, 59, tzinfo=UTC), 1)
        assert result == datetime(2026, 6, 30, 23, 59, 59, tzinfo=UTC)


class TestAsUtc:

    def test_naive_is_treated_as_utc(self):
        assert as_utc(datetime(2026, 1, 1, 12)) == datetime(2026, 1, 1, 12, tzinfo=UTC)

    def test_offset_is_converted(self):
        plus_two = timezone(timedelta(hours=2))
        assert as_utc(datetime(2026, 1, 1, 14, tzinfo=plus_two)) == datetime(2026, 1, 1, 12, tzinfo=UTC)


# ============================================================================
# Refresh Evaluation
# ============================================================================

class TestIsRefreshDue:
    """A refresh is due once a calendar month has elapsed."""

    def test_never_refreshed_is_due(self):
        assert is_refresh_due(None, datetime(2026, 3, 1, tzinfo=UTC)) is True

    def test_within_month_is_not_due(self):
        last = datetime(2026, 3, 15, tzinfo=UTC)
        assert is_refresh_due(last, datetime(2026, 4, 14, 23, 59, tzinfo=UTC)) is False

    def test_exact_boundary_is_due(self):
        last = datetime(2026, 3, 15, 12, tzinfo=UTC)
        assert is_refresh_due(last, datetime(2026, 4, 15, 12, tzinfo=UTC)) is True

    def test_short_month_boundary(self):
        """Jan 31 rolls over on Feb 28, not Mar 3."""
        last = datetime(2026, 1, 31, tzinfo=UTC)
        assert is_refresh_due(last, datetime(2026, 2, 27, tzinfo=UTC)) is False
        assert is_refresh_due(last, datetime(2026, 2, 28, tzinfo=UTC)) is True

    def test_naive_and_aware_are_comparable(self):
        last = datetime(2026, 3, 15, 12)
        assert is_refresh_due(last, datetime(2026, 4, 15, 12, tzinfo=UTC)) is True

    def test_many_months_elapsed(self):
        last = datetime(2025, 1, 1, tzinfo=UTC)
        assert is_refresh_due(last, datetime(2026, 6, 1, tzinfo=UTC)) is True

    def test_next_refresh_time(self):
        assert next_refresh_time(datetime(2026, 8, 31)) == datetime(2026, 9, 30, tzinfo=UTC)


# ============================================================================
# Limit Resolution
# ============================================================================

class TestResolveLimit:
    """Fallback chain from the plan's aiNums."""

    @pytest.fixture
    def ai_only(self):
        return PlanLimits(ai_nums=100)

    @pytest.mark.parametrize("kind,expected", [
        (QuotaKind.AI_NUMS, 100),
        (QuotaKind.ENHANCE_NUMS, 100),
        (QuotaKind.UPLOAD_LIMIT, 100),
        (QuotaKind.DEPLOY_LIMIT, 200),
        (QuotaKind.PROJECT_NUMS, 0),
    ])
    def test_ai_only_plan(self, ai_only, kind, expected):
        assert resolve_limit(ai_only, kind) == expected

    def test_explicit_values_win(self):
        limits = PLAN_LIMITS["team"]
        assert resolve_limit(limits, QuotaKind.ENHANCE_NUMS) == 1000
        assert resolve_limit(limits, QuotaKind.UPLOAD_LIMIT) == 200
        assert resolve_limit(limits, QuotaKind.DEPLOY_LIMIT) == 1500
        assert resolve_limit(limits, QuotaKind.PROJECT_NUMS) == 50

    def test_explicit_zero_is_not_replaced(self):
        limits = PlanLimits(ai_nums=100, enhance_nums=0, deploy_limit=0)
        assert resolve_limit(limits, QuotaKind.ENHANCE_NUMS) == 0
        assert resolve_limit(limits, QuotaKind.DEPLOY_LIMIT) == 0

    def test_empty_plan_resolves_to_zero(self):
        limits = PlanLimits()
        for kind in QuotaKind:
            assert resolve_limit(limits, kind) == 0

    def test_project_fallback(self, ai_only):
        assert resolve_limit(ai_only, QuotaKind.PROJECT_NUMS, fallback=3) == 3
        assert resolve_limit(PlanLimits(project_nums=6), QuotaKind.PROJECT_NUMS, fallback=3) == 6


class TestFreshQuotaValues:

    def test_excludes_project_nums(self):
        fresh = fresh_quota_values(PLAN_LIMITS["pro"])
        assert QuotaKind.PROJECT_NUMS not in fresh
        assert fresh == {
            QuotaKind.AI_NUMS: 100,
            QuotaKind.ENHANCE_NUMS: 100,
            QuotaKind.UPLOAD_LIMIT: 100,
            QuotaKind.DEPLOY_LIMIT: 200,
        }

    def test_max_plan_deploy_override(self):
        fresh = fresh_quota_values(PLAN_LIMITS["max"])
        assert fresh[QuotaKind.DEPLOY_LIMIT] == 400
        assert fresh[QuotaKind.ENHANCE_NUMS] == 250

"""
Quota Refresh Rules

Pure functions deciding when an annual subscription rolls into a new
billing month and what its counters look like afterwards.
No I/O here: callers pass the store clock in.
"""

import calendar
from datetime import datetime, timezone
from typing import Dict, Optional

from app.domain.subscription import PlanLimits, QuotaKind, QUOTA_FIELDS


def as_utc(value: datetime) -> datetime:
    """Naive timestamps are treated as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def add_months(value: datetime, months: int) -> datetime:
    """
    Calendar-aware month addition.

    The day is clamped to the last valid day of the target month,
    so Jan 31 + 1 month is Feb 28 (or 29).
    """
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def next_refresh_time(last_quota_refresh: datetime) -> datetime:
    return add_months(as_utc(last_quota_refresh), 1)


def is_refresh_due(last_quota_refresh: Optional[datetime], now: datetime) -> bool:
    """
    Check whether a new billing month has started since the last refresh.

    Args:
        last_quota_refresh: Timestamp of the previous refresh, None if never
        now: Reference clock read from the shared store

    Returns:
        True when never refreshed or one calendar month has elapsed
    """
    if last_quota_refresh is None:
        return True
    return as_utc(now) >= next_refresh_time(last_quota_refresh)


def resolve_limit(
    limits: PlanLimits,
    kind: QuotaKind,
    fallback: Optional[int] = None,
) -> int:
    """
    Fresh allowance for one quota kind.

    enhanceNums and uploadLimit fall back to aiNums, deployLimit to
    twice aiNums. projectNums falls back to the caller's value.
    """
    if kind is QuotaKind.AI_NUMS:
        return limits.ai_nums or 0
    if kind is QuotaKind.ENHANCE_NUMS:
        if limits.enhance_nums is not None:
            return limits.enhance_nums
        return limits.ai_nums or 0
    if kind is QuotaKind.UPLOAD_LIMIT:
        if limits.upload_limit is not None:
            return limits.upload_limit
        return limits.ai_nums or 0
    if kind is QuotaKind.DEPLOY_LIMIT:
        if limits.deploy_limit is not None:
            return limits.deploy_limit
        return (limits.ai_nums or 0) * 2
    if kind is QuotaKind.PROJECT_NUMS:
        if limits.project_nums is not None:
            return limits.project_nums
        return fallback if fallback is not None else 0
    return 0


def fresh_quota_values(limits: PlanLimits) -> Dict[QuotaKind, int]:
    """
    Counter values written by a refresh, keyed by kind.

    projectNums is absent: it tracks live projects and survives refreshes.
    """
    return {
        kind: resolve_limit(limits, kind)
        for kind in QUOTA_FIELDS
        if kind is not QuotaKind.PROJECT_NUMS
    }

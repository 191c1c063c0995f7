"""Week- and month-keyed buckets of subscription activity, trend rows and pacing."""

from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from studio_analytics.analytics.categories import TRACKED_CATEGORIES, Category
from studio_analytics.analytics.dates import (
    add_months,
    days_in_month,
    month_key,
    month_start,
    week_key,
    week_start,
)
from studio_analytics.analytics.records import SubscriptionRecord
from studio_analytics.analytics.rounding import pct_or_none, round2, round_half_up
from studio_analytics.schemas.dashboard import PacingData, PeriodType, TrendRow, TrendsData


@dataclass
class PeriodBucket:
    """New and churn counts per category plus revenue deltas for one period."""

    new: dict[Category, int] = field(default_factory=lambda: dict.fromkeys(TRACKED_CATEGORIES, 0))
    churn: dict[Category, int] = field(default_factory=lambda: dict.fromkeys(TRACKED_CATEGORIES, 0))
    revenue_added: float = 0.0
    revenue_lost: float = 0.0

    def add_new(self, sub: SubscriptionRecord) -> None:
        if sub.category in self.new:
            self.new[sub.category] += 1
        self.revenue_added += sub.monthly_rate

    def add_churn(self, sub: SubscriptionRecord) -> None:
        if sub.category in self.churn:
            self.churn[sub.category] += 1
        self.revenue_lost += sub.monthly_rate


def build_buckets(
    subscriptions: Sequence[SubscriptionRecord],
    start: datetime,
    end: datetime,
    key_fn: Callable[[datetime], str],
) -> dict[str, PeriodBucket]:
    """Bucket creations and cancellations falling within ``[start, end)``."""
    buckets: dict[str, PeriodBucket] = {}
    for sub in subscriptions:
        if start <= sub.created_at < end:
            buckets.setdefault(key_fn(sub.created_at), PeriodBucket()).add_new(sub)
        if sub.canceled_within(start, end):
            buckets.setdefault(key_fn(sub.canceled_at), PeriodBucket()).add_churn(sub)  # type: ignore[arg-type]
    return buckets


def _delta(current: int | float, previous: int | float | None) -> int | float | None:
    if previous is None:
        return None
    return current - previous


def _delta_pct(current: float, previous: float | None) -> float | None:
    if previous is None:
        return None
    return pct_or_none(current - previous, previous)


def to_trend_row(
    period: str, period_type: PeriodType, bucket: PeriodBucket, previous: PeriodBucket | None
) -> TrendRow:
    new, churn = bucket.new, bucket.churn
    prev_new = previous.new if previous else None
    prev_revenue = round2(previous.revenue_added) if previous else None
    revenue = round2(bucket.revenue_added)
    delta_revenue = _delta(revenue, prev_revenue)

    return TrendRow(
        period=period,
        type=period_type,
        new_members=new[Category.MEMBER],
        new_sky3=new[Category.SKY3],
        new_tv_equivalent=new[Category.TV_EQUIVALENT],
        member_churn=churn[Category.MEMBER],
        sky3_churn=churn[Category.SKY3],
        tv_equivalent_churn=churn[Category.TV_EQUIVALENT],
        net_member_growth=new[Category.MEMBER] - churn[Category.MEMBER],
        net_sky3_growth=new[Category.SKY3] - churn[Category.SKY3],
        net_tv_equivalent_growth=new[Category.TV_EQUIVALENT] - churn[Category.TV_EQUIVALENT],
        revenue_added=revenue,
        revenue_lost=round2(bucket.revenue_lost),
        delta_new_members=_delta(new[Category.MEMBER], prev_new[Category.MEMBER] if prev_new else None),
        delta_new_sky3=_delta(new[Category.SKY3], prev_new[Category.SKY3] if prev_new else None),
        delta_revenue=round2(delta_revenue) if delta_revenue is not None else None,
        delta_pct_new_members=_delta_pct(
            new[Category.MEMBER], prev_new[Category.MEMBER] if prev_new else None
        ),
        delta_pct_new_sky3=_delta_pct(new[Category.SKY3], prev_new[Category.SKY3] if prev_new else None),
        delta_pct_revenue=_delta_pct(revenue, prev_revenue),
    )


def _rows(
    keys: list[str], buckets: dict[str, PeriodBucket], period_type: PeriodType
) -> list[TrendRow]:
    # keys[0] only provides the delta base for the first reported row
    rows = []
    for previous_key, key in zip(keys, keys[1:]):
        rows.append(
            to_trend_row(
                key,
                period_type,
                buckets.get(key, PeriodBucket()),
                buckets.get(previous_key, PeriodBucket()),
            )
        )
    return rows


def compute_trends(
    subscriptions: Sequence[SubscriptionRecord],
    now: datetime,
    *,
    lookback_months: int = 6,
    weeks: int = 8,
    months: int = 6,
) -> TrendsData | None:
    """Trailing weekly and monthly trend rows with period-over-period deltas."""
    if not subscriptions:
        return None

    start = add_months(month_start(now), -lookback_months)
    end = now + timedelta(microseconds=1)
    weekly_buckets = build_buckets(subscriptions, start, end, week_key)
    monthly_buckets = build_buckets(subscriptions, start, end, month_key)

    this_week = week_start(now)
    week_keys = [(this_week - timedelta(weeks=offset)).isoformat() for offset in range(weeks, -1, -1)]
    month_keys = [month_key(add_months(month_start(now), -offset)) for offset in range(months, -1, -1)]

    return TrendsData(
        weekly=_rows(week_keys, weekly_buckets, PeriodType.WEEKLY),
        monthly=_rows(month_keys, monthly_buckets, PeriodType.MONTHLY),
    )


def pacing_multiplier(now: datetime) -> float:
    return days_in_month(now) / now.day


def _paced(value: int, multiplier: float) -> int:
    return int(round_half_up(value * multiplier, 0))


def compute_pacing(subscriptions: Sequence[SubscriptionRecord], now: datetime) -> PacingData:
    """Current month actuals extrapolated by ``daysInMonth / daysElapsed``."""
    start = month_start(now)
    bucket = build_buckets(subscriptions, start, add_months(start, 1), month_key).get(
        month_key(now), PeriodBucket()
    )
    multiplier = pacing_multiplier(now)

    return PacingData(
        month=month_key(now),
        days_elapsed=now.day,
        days_in_month=days_in_month(now),
        new_members_actual=bucket.new[Category.MEMBER],
        new_members_paced=_paced(bucket.new[Category.MEMBER], multiplier),
        new_sky3_actual=bucket.new[Category.SKY3],
        new_sky3_paced=_paced(bucket.new[Category.SKY3], multiplier),
        revenue_actual=round2(bucket.revenue_added),
        revenue_paced=round2(bucket.revenue_added * multiplier),
        member_cancellations_actual=bucket.churn[Category.MEMBER],
        member_cancellations_paced=_paced(bucket.churn[Category.MEMBER], multiplier),
        sky3_cancellations_actual=bucket.churn[Category.SKY3],
        sky3_cancellations_paced=_paced(bucket.churn[Category.SKY3], multiplier),
    )

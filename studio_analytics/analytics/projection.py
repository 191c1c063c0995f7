"""Annual revenue projection.

Historical MRR is backtracked from the current snapshot, growth is the mean
month-over-month change of the recent series, and the subscription-only
projection is scaled by how much total revenue exceeded MRR last year.
Both guardrails (multiplier cap, sanity clamp) are configurable and logged
whenever they fire.
"""

from collections.abc import Sequence
from datetime import date, datetime

import structlog

from studio_analytics.analytics.dates import add_months, month_key, month_start
from studio_analytics.analytics.records import RevenuePeriod, SubscriptionRecord
from studio_analytics.analytics.rounding import round1, round2
from studio_analytics.analytics.snapshot import current_mrr
from studio_analytics.schemas.dashboard import ProjectionData

logger = structlog.get_logger()

FULL_YEAR_MIN_MONTHS = 11


def mrr_movements(
    subscriptions: Sequence[SubscriptionRecord],
) -> tuple[dict[str, float], dict[str, float]]:
    """MRR gained (by creation month) and lost (by cancellation month)."""
    gained: dict[str, float] = {}
    lost: dict[str, float] = {}
    for sub in subscriptions:
        key = month_key(sub.created_at)
        gained[key] = gained.get(key, 0.0) + sub.monthly_rate
        if sub.canceled_at is not None:
            key = month_key(sub.canceled_at)
            lost[key] = lost.get(key, 0.0) + sub.monthly_rate
    return gained, lost


def completed_month_keys(now: datetime) -> list[str]:
    """January of the prior year through the last completed month."""
    cursor = datetime(now.year - 1, 1, 1)
    current = month_start(now)
    keys = []
    while cursor < current:
        keys.append(month_key(cursor))
        cursor = add_months(cursor, 1)
    return keys


def backtrack_mrr(
    latest_mrr: float,
    keys: Sequence[str],
    gained: dict[str, float],
    lost: dict[str, float],
) -> list[tuple[str, float]]:
    """Reconstruct MRR per month walking backward from the latest value.

    The last key is assigned ``latest_mrr``; each step back removes that
    month's gains and restores its losses.
    """
    series: list[tuple[str, float]] = []
    mrr = latest_mrr
    for key in reversed(keys):
        series.append((key, mrr))
        mrr = mrr - gained.get(key, 0.0) + lost.get(key, 0.0)
    series.reverse()
    return series


def growth_rate(series: Sequence[tuple[str, float]], window: int = 6) -> float:
    """Mean fractional month-over-month change over the trailing ``window`` entries."""
    recent = [mrr for _, mrr in series[-window:]]
    rates = [
        (current - previous) / previous
        for previous, current in zip(recent, recent[1:])
        if previous > 0
    ]
    return sum(rates) / len(rates) if rates else 0.0


def _months_covered(period: RevenuePeriod, year: int) -> set[str]:
    months = set()
    cursor = datetime(period.start.year, period.start.month, 1)
    last = datetime(period.end.year, period.end.month, 1)
    while cursor <= last:
        if cursor.year == year:
            months.add(month_key(cursor))
        cursor = add_months(cursor, 1)
    return months


def _preference(period: RevenuePeriod) -> tuple[bool, int, date]:
    # Locked rows win, then the longest span, then the later end date
    return period.locked, period.span_months, period.end


def reconcile_prior_year_revenue(periods: Sequence[RevenuePeriod], year: int) -> float | None:
    """Prior-year actual net revenue without double-counting.

    A single period spanning at least eleven months is used exclusively.
    Otherwise periods are taken in preference order, skipping any that
    overlaps a month already counted, and the sum is annualized over the
    months covered.
    """
    candidates = [p for p in periods if p.start.year == year and p.net > 0]
    if not candidates:
        return None

    full_year = [p for p in candidates if p.span_months >= FULL_YEAR_MIN_MONTHS]
    if full_year:
        return max(full_year, key=_preference).net

    chosen: list[RevenuePeriod] = []
    covered: set[str] = set()
    for period in sorted(candidates, key=_preference, reverse=True):
        months = _months_covered(period, year)
        if months & covered:
            continue
        chosen.append(period)
        covered |= months
    if not covered:
        return None

    return sum(p.net for p in chosen) / len(covered) * 12


def prior_year_mrr_estimate(series: Sequence[tuple[str, float]], year: int) -> float:
    values = [mrr for key, mrr in series if key.startswith(f"{year}-")]
    if not values:
        return 0.0
    if len(values) < 12:
        return sum(values) / len(values) * 12
    return sum(values)


def non_mrr_multiplier(actual: float | None, estimate: float, cap: float = 2.0) -> float:
    """Ratio of actual revenue to subscription-only revenue, within ``[1.0, cap]``."""
    if not actual or estimate <= 0:
        return 1.0
    ratio = actual / estimate
    if ratio > cap:
        logger.warning(
            "projection_multiplier_capped",
            raw_ratio=round2(ratio),
            cap=cap,
            prior_year_actual=round2(actual),
            prior_year_estimate=round2(estimate),
        )
        return cap
    return max(ratio, 1.0)


def apply_sanity_cap(
    projected: float,
    prior_year_revenue: float,
    ratio: float = 3.0,
    fallback_growth: float = 1.3,
) -> tuple[float, bool]:
    """Clamp a projection exceeding ``ratio`` times last year to ``fallback_growth`` times it."""
    if prior_year_revenue <= 0 or projected <= prior_year_revenue * ratio:
        return projected, False

    clamped = prior_year_revenue * fallback_growth
    logger.warning(
        "projection_sanity_capped",
        projected=round2(projected),
        prior_year_revenue=round2(prior_year_revenue),
        clamped=round2(clamped),
    )
    return clamped, True


def compute_projection(
    subscriptions: Sequence[SubscriptionRecord],
    prior_year_periods: Sequence[RevenuePeriod],
    now: datetime,
    current_month_paced_revenue: float,
    *,
    growth_window: int = 6,
    multiplier_cap: float = 2.0,
    sanity_ratio: float = 3.0,
    fallback_growth: float = 1.3,
) -> ProjectionData | None:
    year = now.year
    prior_year = year - 1
    actual = reconcile_prior_year_revenue(prior_year_periods, prior_year)

    if not subscriptions:
        if actual is None:
            return None
        return ProjectionData(
            year=year,
            projected_annual_revenue=0.0,
            current_mrr=0.0,
            projected_year_end_mrr=0.0,
            monthly_growth_rate=0.0,
            prior_year_revenue=round2(actual),
            prior_year_actual_revenue=round2(actual),
            degraded=True,
        )

    mrr_now = current_mrr(subscriptions)
    gained, lost = mrr_movements(subscriptions)
    series = backtrack_mrr(mrr_now, completed_month_keys(now), gained, lost)
    rate = growth_rate(series, growth_window)

    estimate = prior_year_mrr_estimate(series, prior_year)
    multiplier = non_mrr_multiplier(actual, estimate, multiplier_cap)
    prior_year_revenue = max(estimate, actual or 0.0)

    mrr_revenue = sum(mrr for key, mrr in series if key.startswith(f"{year}-"))
    mrr_revenue += current_month_paced_revenue if current_month_paced_revenue > 0 else mrr_now

    projected_mrr = mrr_now
    for _ in range(12 - now.month):
        projected_mrr *= 1 + rate
        mrr_revenue += projected_mrr

    projected, capped = apply_sanity_cap(
        mrr_revenue * multiplier, prior_year_revenue, sanity_ratio, fallback_growth
    )

    return ProjectionData(
        year=year,
        projected_annual_revenue=round2(projected),
        current_mrr=round2(mrr_now),
        projected_year_end_mrr=round2(projected_mrr),
        monthly_growth_rate=round1(rate * 100),
        prior_year_revenue=round2(prior_year_revenue),
        prior_year_actual_revenue=round2(actual) if actual is not None else None,
        prior_year_mrr_estimate=round2(estimate),
        non_mrr_multiplier=round2(multiplier),
        capped=capped,
    )

"""Monthly churn tables reconstructed from subscription lifecycle history.

Active-at-start of a month is rebuilt from ``created_at``, state and
``canceled_at`` instead of stored snapshots:

    active(M)   = created_at < M.start and (active-like or canceled_at >= M.start)
    canceled(M) = M.start <= canceled_at < M.end

Headcounts count each person once per category. MRR figures sum every
subscription. Rates divide every cancellation in the month by the
active-at-start population and are clamped to 100%.
"""

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime

from studio_analytics.analytics.categories import TRACKED_CATEGORIES, BillingCadence, Category
from studio_analytics.analytics.dates import month_bounds, month_key, trailing_month_keys
from studio_analytics.analytics.records import SubscriptionRecord
from studio_analytics.analytics.rounding import pct, round1, round2
from studio_analytics.schemas.dashboard import (
    CadenceChurn,
    CategoryChurn,
    ChurnData,
    ChurnMonthEntry,
)


@dataclass(frozen=True)
class MonthSlice:
    """Active-at-start and cancellations of one subscription population in one month."""

    active: tuple[SubscriptionRecord, ...]
    canceled: tuple[SubscriptionRecord, ...]

    @property
    def active_count(self) -> int:
        return _people(self.active)

    @property
    def canceled_count(self) -> int:
        return _people(self.canceled)

    @property
    def active_mrr(self) -> float:
        return sum(sub.monthly_rate for sub in self.active)

    @property
    def canceled_mrr(self) -> float:
        return sum(sub.monthly_rate for sub in self.canceled)

    @property
    def user_churn_rate(self) -> float:
        return min(pct(self.canceled_count, self.active_count), 100.0)

    @property
    def mrr_churn_rate(self) -> float:
        return min(pct(self.canceled_mrr, self.active_mrr), 100.0)


def _people(subscriptions: Sequence[SubscriptionRecord]) -> int:
    return len({sub.email or f"#{sub.id}" for sub in subscriptions})


def month_slice(subscriptions: Sequence[SubscriptionRecord], start: datetime, end: datetime) -> MonthSlice:
    active = tuple(sub for sub in subscriptions if sub.was_active_at(start))
    canceled = tuple(sub for sub in subscriptions if sub.canceled_within(start, end))
    return MonthSlice(active=active, canceled=canceled)


def _entry(key: str, subscriptions: Sequence[SubscriptionRecord], split_cadence: bool) -> ChurnMonthEntry:
    start, end = month_bounds(key)
    overall = month_slice(subscriptions, start, end)
    entry = ChurnMonthEntry(
        month=key,
        user_churn_rate=overall.user_churn_rate,
        mrr_churn_rate=overall.mrr_churn_rate,
        active_at_start=overall.active_count,
        active_mrr_at_start=round2(overall.active_mrr),
        canceled_count=overall.canceled_count,
        canceled_mrr=round2(overall.canceled_mrr),
    )
    if not split_cadence:
        return entry

    annual = month_slice([sub for sub in subscriptions if sub.is_annual], start, end)
    periodic = month_slice([sub for sub in subscriptions if not sub.is_annual], start, end)
    return entry.model_copy(
        update={
            "annual_active_at_start": annual.active_count,
            "annual_canceled_count": annual.canceled_count,
            "monthly_active_at_start": periodic.active_count,
            "monthly_canceled_count": periodic.canceled_count,
            # Annual plans cannot lapse mid-term, so only periodic plans are eligible
            "eligible_churn_rate": periodic.user_churn_rate,
        }
    )


def _average(values: Sequence[float]) -> float:
    return round1(sum(values) / len(values)) if values else 0.0


def _cadence_averages(
    subscriptions: Sequence[SubscriptionRecord], keys: Sequence[str]
) -> list[CadenceChurn]:
    rows = []
    for cadence in BillingCadence:
        population = [sub for sub in subscriptions if sub.cadence is cadence]
        slices = [month_slice(population, *month_bounds(key)) for key in keys]
        rows.append(
            CadenceChurn(
                cadence=cadence,
                avg_user_churn_rate=_average([s.user_churn_rate for s in slices]),
                avg_mrr_churn_rate=_average([s.mrr_churn_rate for s in slices]),
            )
        )
    return rows


def at_risk_count(subscriptions: Sequence[SubscriptionRecord], category: Category) -> int:
    """People in an at-risk state right now, regardless of the month window."""
    return _people([sub for sub in subscriptions if sub.category is category and sub.state.is_at_risk])


def category_churn(
    subscriptions: Sequence[SubscriptionRecord],
    category: Category,
    now: datetime,
    trailing_months: int = 6,
) -> CategoryChurn:
    in_category = [sub for sub in subscriptions if sub.category is category]
    split_cadence = category is Category.MEMBER
    keys = trailing_month_keys(now, trailing_months)
    entries = [_entry(key, in_category, split_cadence) for key in keys]

    current = month_key(now)
    completed = [entry for entry in entries if entry.month != current]
    completed_keys = [key for key in keys if key != current]

    avg_eligible = None
    if split_cadence:
        avg_eligible = _average([entry.eligible_churn_rate or 0.0 for entry in completed])

    return CategoryChurn(
        category=category,
        monthly=entries,
        avg_user_churn_rate=_average([entry.user_churn_rate for entry in completed]),
        avg_mrr_churn_rate=_average([entry.mrr_churn_rate for entry in completed]),
        avg_eligible_churn_rate=avg_eligible,
        by_cadence=_cadence_averages(in_category, completed_keys) if split_cadence else [],
        at_risk_count=at_risk_count(subscriptions, category),
    )


def compute_churn(
    subscriptions: Sequence[SubscriptionRecord],
    now: datetime,
    trailing_months: int = 6,
) -> ChurnData | None:
    """Churn tables for every tracked category; None without subscription history."""
    if not subscriptions:
        return None

    categories = [
        category_churn(subscriptions, category, now, trailing_months)
        for category in TRACKED_CATEGORIES
    ]
    return ChurnData(
        categories=categories,
        total_at_risk=sum(row.at_risk_count for row in categories),
    )

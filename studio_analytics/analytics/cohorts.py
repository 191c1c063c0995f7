"""Weekly acquisition cohorts and their three-week conversion funnel."""

from collections.abc import Sequence
from datetime import date, datetime, timedelta

from studio_analytics.analytics.categories import IN_STUDIO_CATEGORIES
from studio_analytics.analytics.dates import day_offset, week_start
from studio_analytics.analytics.records import (
    SubscriptionRecord,
    VisitRecord,
    first_visit_per_person,
)
from studio_analytics.analytics.rounding import pct
from studio_analytics.schemas.dashboard import (
    CohortData,
    CohortRow,
    NewCustomerVolumeData,
    VolumeWeek,
)

# Day offsets from acquisition counted as week 1, 2 and 3
CONVERSION_WINDOWS = ((0, 6), (7, 13), (14, 20))
COMPLETE_AFTER_DAYS = 20
MIN_COMPLETE_COHORTS = 3


def acquisition_dates(visits: Sequence[VisitRecord]) -> dict[str, datetime]:
    """Earliest in-studio visit per person.

    Accepts either a raw visit history or the first-visit rows already
    reduced by the record store.
    """
    first = first_visit_per_person(visit for visit in visits if visit.is_in_studio)
    return {email: visit.attended_at for email, visit in first.items()}


def first_in_studio_subscriptions(subscriptions: Sequence[SubscriptionRecord]) -> dict[str, datetime]:
    """Earliest in-studio subscription start per person."""
    first: dict[str, datetime] = {}
    for sub in subscriptions:
        if not sub.email or sub.category not in IN_STUDIO_CATEGORIES:
            continue
        current = first.get(sub.email)
        if current is None or sub.created_at < current:
            first[sub.email] = sub.created_at
    return first


def new_customers(
    visits: Sequence[VisitRecord], subscriptions: Sequence[SubscriptionRecord]
) -> dict[str, datetime]:
    """Acquisition date of everyone who was not already an in-studio subscriber."""
    first_subs = first_in_studio_subscriptions(subscriptions)
    return {
        email: acquired
        for email, acquired in acquisition_dates(visits).items()
        if email not in first_subs or first_subs[email].date() >= acquired.date()
    }


def _window_index(days: int) -> int | None:
    for index, (low, high) in enumerate(CONVERSION_WINDOWS):
        if low <= days <= high:
            return index
    return None


def cohort_row(
    cohort_start: date,
    members: dict[str, datetime],
    first_subs: dict[str, datetime],
    now: datetime,
) -> CohortRow:
    counts = [0, 0, 0]
    for email, acquired in members.items():
        started = first_subs.get(email)
        if started is None:
            continue
        index = _window_index(day_offset(acquired, started))
        if index is not None:
            counts[index] += 1

    return CohortRow(
        cohort_start=cohort_start,
        cohort_end=cohort_start + timedelta(days=6),
        new_customers=len(members),
        week1=counts[0],
        week2=counts[1],
        week3=counts[2],
        total_3_week=sum(counts),
        complete=day_offset(cohort_start, now) >= COMPLETE_AFTER_DAYS,
    )


def _recent_week_starts(now: datetime, weeks: int) -> list[date]:
    current = week_start(now)
    return [current - timedelta(weeks=offset) for offset in range(weeks - 1, -1, -1)]


def compute_cohorts(
    visits: Sequence[VisitRecord],
    subscriptions: Sequence[SubscriptionRecord],
    now: datetime,
    weeks: int = 8,
) -> CohortData | None:
    """Cohorts for the trailing ``weeks`` acquisition weeks, current week included."""
    acquired = new_customers(visits, subscriptions)
    if not acquired:
        return None

    first_subs = first_in_studio_subscriptions(subscriptions)
    by_week: dict[date, dict[str, datetime]] = {}
    for email, when in acquired.items():
        by_week.setdefault(week_start(when), {})[email] = when

    rows = [
        cohort_row(start, by_week.get(start, {}), first_subs, now)
        for start in _recent_week_starts(now, weeks)
    ]

    complete = [row for row in rows if row.complete]
    avg_rate = None
    if len(complete) >= MIN_COMPLETE_COHORTS:
        avg_rate = pct(
            sum(row.total_3_week for row in complete),
            sum(row.new_customers for row in complete),
        )

    return CohortData(cohorts=rows, avg_conversion_rate=avg_rate)


def compute_new_customer_volume(
    visits: Sequence[VisitRecord],
    subscriptions: Sequence[SubscriptionRecord],
    now: datetime,
    weeks: int = 8,
) -> NewCustomerVolumeData | None:
    """Newly acquired people this week and over the previous completed weeks."""
    acquired = new_customers(visits, subscriptions)
    if not acquired:
        return None

    counts: dict[date, int] = {}
    for when in acquired.values():
        key = week_start(when)
        counts[key] = counts.get(key, 0) + 1

    current = week_start(now)
    completed = [current - timedelta(weeks=offset) for offset in range(weeks, 0, -1)]
    return NewCustomerVolumeData(
        current_week_count=counts.get(current, 0),
        completed_weeks=[
            VolumeWeek(week_start=start, week_end=start + timedelta(days=6), count=counts.get(start, 0))
            for start in completed
        ],
    )

"""Rolling pool of non-subscribers and their conversion into subscriptions.

A week's pool is everyone with a qualifying non-subscriber visit that week.
A pool member converts that week when their first in-studio subscription
starts within it and they had a qualifying visit strictly before the start.
"""

import statistics
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date, datetime, timedelta

from studio_analytics.analytics.categories import VisitType
from studio_analytics.analytics.dates import day_offset, week_start
from studio_analytics.analytics.records import visits_within_days
from studio_analytics.analytics.rounding import pct, round1
from studio_analytics.schemas.dashboard import (
    LagBucket,
    LagStats,
    PoolSlice,
    PoolSliceData,
    PoolWeekRow,
)

# Visit types feeding each slice; None means every non-subscriber in-studio visit
SLICE_VISIT_TYPES: dict[PoolSlice, frozenset[VisitType] | None] = {
    PoolSlice.ALL: None,
    PoolSlice.DROP_IN: frozenset({VisitType.DROP_IN}),
    PoolSlice.INTRO_WEEK: frozenset({VisitType.INTRO_WEEK}),
    PoolSlice.CLASS_PACK: frozenset({VisitType.CLASS_PACK}),
    PoolSlice.HIGH_INTENT: None,
}

HIGH_INTENT_MIN_VISITS = 2
HIGH_INTENT_WINDOW_DAYS = 30

DAY_BUCKETS = (("0-7", 0, 7), ("8-14", 8, 14), ("15-30", 15, 30), ("31-60", 31, 60), ("61+", 61, None))
VISIT_BUCKETS = (("1", 1, 1), ("2", 2, 2), ("3-5", 3, 5), ("6+", 6, None))


@dataclass(frozen=True)
class PoolVisit:
    """A non-subscriber in-studio visit as staged for pool queries."""

    email: str
    attended_at: datetime
    visit_type: VisitType


@dataclass(frozen=True)
class Conversion:
    email: str
    started_at: datetime
    days_to_convert: int
    visits_before: int


def _in_window(visits: Sequence[PoolVisit], start: datetime, end: datetime) -> list[PoolVisit]:
    return [visit for visit in visits if start <= visit.attended_at < end]


def pool_members(
    pool_slice: PoolSlice, visits: Sequence[PoolVisit], start: datetime, end: datetime
) -> set[str]:
    """Distinct people in the slice's pool for ``[start, end)``."""
    members = {visit.email for visit in _in_window(visits, start, end)}
    if pool_slice is not PoolSlice.HIGH_INTENT:
        return members

    trailing = visits_within_days(visits, end, HIGH_INTENT_WINDOW_DAYS)
    counts: dict[str, int] = {}
    for visit in trailing:
        counts[visit.email] = counts.get(visit.email, 0) + 1
    return {email for email in members if counts.get(email, 0) >= HIGH_INTENT_MIN_VISITS}


def conversions(
    members: set[str],
    visits: Sequence[PoolVisit],
    first_subs: dict[str, datetime],
    start: datetime,
    end: datetime,
) -> list[Conversion]:
    """Pool members whose first in-studio subscription began in ``[start, end)``."""
    result = []
    for email in sorted(members):
        started = first_subs.get(email)
        if started is None or not start <= started < end:
            continue
        before = [visit for visit in visits if visit.email == email and visit.attended_at < started]
        if not before:
            continue
        first_visit = min(visit.attended_at for visit in before)
        result.append(
            Conversion(
                email=email,
                started_at=started,
                days_to_convert=day_offset(first_visit, started),
                visits_before=len(before),
            )
        )
    return result


def _bucketize(values: Sequence[int], buckets: tuple[tuple[str, int, int | None], ...]) -> list[LagBucket]:
    rows = []
    for label, low, high in buckets:
        count = sum(1 for value in values if value >= low and (high is None or value <= high))
        rows.append(LagBucket(label=label, count=count))
    return rows


def lag_stats(converted: Sequence[Conversion]) -> LagStats:
    days = [conversion.days_to_convert for conversion in converted]
    visits = [conversion.visits_before for conversion in converted]
    return LagStats(
        sample_size=len(converted),
        median_days_to_convert=round1(statistics.median(days)) if days else None,
        avg_visits_before_convert=round1(sum(visits) / len(visits)) if visits else None,
        days_buckets=_bucketize(days, DAY_BUCKETS),
        visits_buckets=_bucketize(visits, VISIT_BUCKETS),
    )


def _as_datetime(day: date) -> datetime:
    return datetime(day.year, day.month, day.day)


def compute_pool_slice(
    pool_slice: PoolSlice,
    visits: Sequence[PoolVisit],
    first_subs: dict[str, datetime],
    now: datetime,
    weeks: int = 12,
    lag_weeks: int = 12,
) -> PoolSliceData:
    """Weekly pool rows for completed weeks, week-to-date figures and lag statistics."""
    current = _as_datetime(week_start(now))
    rows: list[PoolWeekRow] = []
    lag_sample: list[Conversion] = []

    for offset in range(max(weeks, lag_weeks), 0, -1):
        start = current - timedelta(weeks=offset)
        end = start + timedelta(weeks=1)
        members = pool_members(pool_slice, visits, start, end)
        converted = conversions(members, visits, first_subs, start, end)
        if offset <= weeks:
            rows.append(
                PoolWeekRow(
                    week_start=start.date(),
                    week_end=(end - timedelta(days=1)).date(),
                    pool_size=len(members),
                    converts=len(converted),
                    conversion_rate=pct(len(converted), len(members)),
                )
            )
        if offset <= lag_weeks:
            lag_sample.extend(converted)

    until = now + timedelta(microseconds=1)
    week_members = pool_members(pool_slice, visits, current, until)
    week_converts = conversions(week_members, visits, first_subs, current, until)

    return PoolSliceData(
        slice=pool_slice,
        weeks=rows,
        week_to_date_pool=len(week_members),
        week_to_date_converts=len(week_converts),
        pool_last_7_days=len(pool_members(pool_slice, visits, until - timedelta(days=7), until)),
        pool_last_30_days=len(pool_members(pool_slice, visits, until - timedelta(days=30), until)),
        lag=lag_stats(lag_sample),
    )

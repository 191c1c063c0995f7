"""Non-subscriber drop-in attendance."""

from collections.abc import Sequence
from datetime import date, datetime, timedelta

from studio_analytics.analytics.categories import VisitType
from studio_analytics.analytics.dates import add_months, days_in_month, month_start, week_start
from studio_analytics.analytics.records import VisitRecord
from studio_analytics.analytics.rounding import round1, round_half_up
from studio_analytics.schemas.dashboard import DropInData, WeeklyCount

AVERAGE_WEEKS = 6
BREAKDOWN_WEEKS = 8


def drop_in_visits(visits: Sequence[VisitRecord]) -> list[VisitRecord]:
    return [
        visit
        for visit in visits
        if visit.visit_type is VisitType.DROP_IN and not visit.is_subscriber_visit
    ]


def compute_drop_ins(visits: Sequence[VisitRecord], now: datetime) -> DropInData | None:
    drop_ins = drop_in_visits(visits)
    if not drop_ins:
        return None

    this_month = month_start(now)
    previous_month = add_months(this_month, -1)
    current_total = sum(1 for visit in drop_ins if this_month <= visit.attended_at <= now)
    previous_total = sum(1 for visit in drop_ins if previous_month <= visit.attended_at < this_month)

    weekly: dict[date, int] = {}
    for visit in drop_ins:
        if visit.attended_at <= now:
            key = week_start(visit.attended_at)
            weekly[key] = weekly.get(key, 0) + 1

    current_week = week_start(now)
    completed = [current_week - timedelta(weeks=offset) for offset in range(AVERAGE_WEEKS, 0, -1)]
    breakdown = [current_week - timedelta(weeks=offset) for offset in range(BREAKDOWN_WEEKS - 1, -1, -1)]

    return DropInData(
        current_month_total=current_total,
        current_month_days_elapsed=now.day,
        current_month_days_in_month=days_in_month(now),
        current_month_paced=int(round_half_up(current_total * days_in_month(now) / now.day, 0)),
        previous_month_total=previous_total,
        weekly_average=round1(sum(weekly.get(week, 0) for week in completed) / AVERAGE_WEEKS),
        weekly_breakdown=[WeeklyCount(week=week, count=weekly.get(week, 0)) for week in breakdown],
    )

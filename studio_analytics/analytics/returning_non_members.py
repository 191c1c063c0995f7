"""Returning non-members: non-subscribers who came back after their first visit week."""

from collections.abc import Sequence
from datetime import date, datetime

from studio_analytics.analytics.categories import VisitType
from studio_analytics.analytics.dates import week_start
from studio_analytics.analytics.first_visits import (
    DISPLAY_WEEKS,
    display_start,
    first_visit_segment,
    visitor_weeks,
)
from studio_analytics.analytics.records import VisitRecord, first_visit_per_person
from studio_analytics.schemas.dashboard import ReturningNonMemberData, VisitSegment


def returning_segment(visit_type: VisitType) -> VisitSegment:
    # Intro passes are single-use, a returner holding one is unusual
    if visit_type is VisitType.INTRO_WEEK:
        return VisitSegment.OTHER
    return first_visit_segment(visit_type)


def compute_returning_non_members(
    visits: Sequence[VisitRecord],
    first_visits: Sequence[VisitRecord],
    now: datetime,
    weeks: int = DISPLAY_WEEKS,
) -> ReturningNonMemberData | None:
    """Unique returning non-subscribers per week; None when there are none in the window.

    A visit counts when it is a non-subscriber in-studio visit and the person's
    first in-studio visit falls in an earlier week.
    """
    start = display_start(now, weeks)
    acquired = {
        email: week_start(visit.attended_at)
        for email, visit in first_visit_per_person(v for v in first_visits if v.is_in_studio).items()
    }

    weekly: dict[date, dict[str, VisitRecord]] = {}
    latest: dict[str, VisitRecord] = {}
    for visit in sorted(visits, key=lambda v: (v.attended_at, v.email)):
        if not visit.email or visit.is_subscriber_visit or not visit.is_in_studio:
            continue
        if not start <= visit.attended_at <= now:
            continue
        week = week_start(visit.attended_at)
        first_week = acquired.get(visit.email)
        if first_week is None or first_week >= week:
            continue
        weekly.setdefault(week, {}).setdefault(visit.email, visit)
        latest[visit.email] = visit

    if not latest:
        return None

    return ReturningNonMemberData(**visitor_weeks(weekly, latest, now, returning_segment, weeks))

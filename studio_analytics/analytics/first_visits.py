"""Unique first-time visitors per week with a source breakdown.

A person counts in the week of their earliest in-studio visit. The display
window is the current week plus the completed weeks before it.
"""

from collections import Counter
from collections.abc import Callable, Iterable, Sequence
from datetime import date, datetime, timedelta
from typing import Any

from studio_analytics.analytics.categories import VisitType
from studio_analytics.analytics.dates import week_start
from studio_analytics.analytics.records import VisitRecord, first_visit_per_person
from studio_analytics.schemas.dashboard import (
    FirstVisitData,
    PassCount,
    SegmentCounts,
    VisitorWeek,
    VisitSegment,
)

DISPLAY_WEEKS = 4
TOP_OTHER_PASSES = 5

SegmentRule = Callable[[VisitType], VisitSegment]


def first_visit_segment(visit_type: VisitType) -> VisitSegment:
    if visit_type is VisitType.INTRO_WEEK:
        return VisitSegment.INTRO_WEEK
    if visit_type in (VisitType.DROP_IN, VisitType.CLASS_PACK):
        return VisitSegment.DROP_IN
    if visit_type is VisitType.GUEST:
        return VisitSegment.GUEST
    return VisitSegment.OTHER


def display_start(now: datetime, weeks: int = DISPLAY_WEEKS) -> datetime:
    first = week_start(now) - timedelta(weeks=weeks)
    return datetime(first.year, first.month, first.day)


def segment_counts(segments: Iterable[VisitSegment]) -> SegmentCounts:
    counts = Counter(segments)
    return SegmentCounts(**{segment.value: counts.get(segment, 0) for segment in VisitSegment})


def visitor_weeks(
    weekly: dict[date, dict[str, VisitRecord]],
    latest: dict[str, VisitRecord],
    now: datetime,
    segment_of: SegmentRule,
    weeks: int = DISPLAY_WEEKS,
) -> dict[str, Any]:
    """Shared payload of the visitor sections.

    ``weekly`` maps a week to the visit representing each person that week;
    ``latest`` holds each person's most recent visit in the window, which
    attributes them in the aggregate breakdown.
    """
    current = week_start(now)
    completed = [current - timedelta(weeks=offset) for offset in range(weeks, 0, -1)]

    def segments_of(week: date) -> SegmentCounts:
        return segment_counts(segment_of(visit.visit_type) for visit in weekly.get(week, {}).values())

    shown = {email for week in [*completed, current] for email in weekly.get(week, {})}
    other_passes = Counter(
        visit.pass_label.strip() or "(empty)"
        for week in [*completed, current]
        for visit in weekly.get(week, {}).values()
        if segment_of(visit.visit_type) is VisitSegment.OTHER
    )
    top_other = sorted(other_passes.items(), key=lambda item: (-item[1], item[0]))[:TOP_OTHER_PASSES]

    return {
        "current_week_total": len(weekly.get(current, {})),
        "current_week_segments": segments_of(current),
        "completed_weeks": [
            VisitorWeek(week=week, unique_visitors=len(weekly.get(week, {})), segments=segments_of(week))
            for week in completed
        ],
        "aggregate_segments": segment_counts(segment_of(latest[email].visit_type) for email in sorted(shown)),
        "other_breakdown_top5": [PassCount(pass_label=label, count=count) for label, count in top_other],
    }


def compute_first_visits(
    visits: Sequence[VisitRecord],
    now: datetime,
    weeks: int = DISPLAY_WEEKS,
) -> FirstVisitData | None:
    """First-time visitors per week; None when nobody visited for the first time in the window."""
    start = display_start(now, weeks)
    first = first_visit_per_person(visit for visit in visits if visit.is_in_studio)
    recent = {email: visit for email, visit in first.items() if start <= visit.attended_at <= now}
    if not recent:
        return None

    weekly: dict[date, dict[str, VisitRecord]] = {}
    for email, visit in recent.items():
        weekly.setdefault(week_start(visit.attended_at), {})[email] = visit

    return FirstVisitData(**visitor_weeks(weekly, recent, now, first_visit_segment, weeks))

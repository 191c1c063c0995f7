"""Upcoming annual renewals and member tenure milestones."""

from collections.abc import Sequence
from datetime import date, datetime

from dateutil.relativedelta import relativedelta

from studio_analytics.analytics.categories import Category
from studio_analytics.analytics.records import SubscriptionRecord
from studio_analytics.schemas.dashboard import AlertItem, AlertKind, AlertsData

MILESTONES = ((3, AlertKind.TENURE_3_MONTH), (7, AlertKind.TENURE_7_MONTH))


def next_anniversary(started: date, today: date) -> date:
    """First yearly anniversary of ``started`` on or after ``today``."""
    years = max(today.year - started.year, 1)
    candidate = started + relativedelta(years=years)
    while candidate < today:
        years += 1
        candidate = started + relativedelta(years=years)
    return candidate


def _item(sub: SubscriptionRecord, kind: AlertKind, due: date, today: date) -> AlertItem:
    return AlertItem(
        email=sub.email,
        name=sub.name,
        plan_name=sub.plan_name,
        category=sub.category,
        kind=kind,
        due_date=due,
        days_until=(due - today).days,
    )


def compute_alerts(
    subscriptions: Sequence[SubscriptionRecord],
    now: datetime,
    window_days: int = 7,
) -> AlertsData:
    """Active subscriptions with a renewal or milestone due within ``window_days``."""
    today = now.date()
    items: list[AlertItem] = []

    for sub in subscriptions:
        if not sub.is_active_like:
            continue
        started = sub.created_at.date()

        if sub.is_annual:
            due = next_anniversary(started, today)
            if (due - today).days <= window_days:
                items.append(_item(sub, AlertKind.RENEWAL, due, today))
            continue

        if sub.category is not Category.MEMBER:
            continue
        for months, kind in MILESTONES:
            due = started + relativedelta(months=months)
            if 0 <= (due - today).days <= window_days:
                items.append(_item(sub, kind, due, today))

    items.sort(key=lambda item: (item.due_date, item.email, item.kind.value))
    renewals = sum(1 for item in items if item.kind is AlertKind.RENEWAL)
    return AlertsData(items=items, renewal_count=renewals, milestone_count=len(items) - renewals)

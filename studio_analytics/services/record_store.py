"""Read-only queries over the record store.

Subscription and visit dates are stored as raw export strings, so every
date predicate is applied after normalization rather than in SQL. Rows whose
dates fail to normalize are dropped and counted in ``LoadResult.skipped``.
"""

from collections.abc import Collection
from datetime import date, datetime, timedelta

import structlog
from dateutil import tz
from sqlalchemy import case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from studio_analytics.analytics.categories import (
    SubscriptionState,
    VisitType,
    classify,
    classify_visit,
    monthly_rate,
)
from studio_analytics.analytics.dates import normalize_date
from studio_analytics.analytics.records import (
    LoadResult,
    RevenuePeriod,
    SubscriptionRecord,
    VisitRecord,
    first_visit_per_person,
)
from studio_analytics.core.config import settings
from studio_analytics.models import RevenuePeriodSummary, SubscriptionEvent, VisitEvent

logger = structlog.get_logger()

STUDIO_TZ = tz.gettz(settings.STUDIO_TIMEZONE)


def normalize_email(raw: str | None) -> str:
    return (raw or "").strip().lower()


def to_subscription_record(row: SubscriptionEvent) -> SubscriptionRecord | None:
    """Normalize one stored row; None when a date cannot be parsed."""
    created_at = normalize_date(row.created_at, STUDIO_TZ)
    if created_at is None:
        return None

    canceled_at = None
    if row.canceled_at and row.canceled_at.strip():
        canceled_at = normalize_date(row.canceled_at, STUDIO_TZ)
        if canceled_at is None or canceled_at < created_at:
            return None

    category, is_annual = classify(row.plan_name)
    price = float(row.price or 0)
    return SubscriptionRecord(
        id=row.id,
        plan_name=row.plan_name,
        category=category,
        is_annual=is_annual,
        price=price,
        monthly_rate=monthly_rate(price, is_annual),
        state=SubscriptionState.from_raw(row.state),
        email=normalize_email(row.person_email),
        name=(row.person_name or "").strip(),
        created_at=created_at,
        canceled_at=canceled_at,
    )


def to_visit_record(row: VisitEvent) -> VisitRecord | None:
    attended_at = normalize_date(row.attended_at, STUDIO_TZ)
    if attended_at is None:
        return None
    return VisitRecord(
        email=normalize_email(row.person_email),
        name=(row.person_name or "").strip(),
        pass_label=row.pass_label or "",
        visit_type=classify_visit(row.pass_label),
        attended_at=attended_at,
        is_subscriber_visit=bool(row.is_subscriber_visit),
    )


def _log_skipped(stream: str, skipped: int, total: int) -> None:
    if skipped:
        logger.warning("records_skipped", stream=stream, skipped=skipped, total=total)


# Subscriptions


async def fetch_subscriptions(
    session: AsyncSession, *, require_email: bool = False
) -> LoadResult[SubscriptionRecord]:
    """All subscriptions, optionally only those with a non-empty identity key."""
    query = select(SubscriptionEvent).order_by(SubscriptionEvent.id)
    if require_email:
        query = query.where(func.trim(SubscriptionEvent.person_email) != "")

    result = await session.execute(query)
    rows = result.scalars().all()

    records: list[SubscriptionRecord] = []
    skipped = 0
    for row in rows:
        record = to_subscription_record(row)
        if record is None:
            skipped += 1
            continue
        records.append(record)

    _log_skipped("subscriptions", skipped, len(rows))
    return LoadResult(records=records, skipped=skipped)


async def fetch_subscriptions_created_between(
    session: AsyncSession, start: datetime, end: datetime
) -> LoadResult[SubscriptionRecord]:
    """Subscriptions created within ``[start, end)``, oldest first."""
    loaded = await fetch_subscriptions(session)
    records = sorted(
        (sub for sub in loaded.records if start <= sub.created_at < end),
        key=lambda sub: (sub.created_at, sub.id),
    )
    return LoadResult(records=records, skipped=loaded.skipped)


async def fetch_subscriptions_canceled_between(
    session: AsyncSession, start: datetime, end: datetime
) -> LoadResult[SubscriptionRecord]:
    """Subscriptions canceled within ``[start, end)``."""
    loaded = await fetch_subscriptions(session)
    records = [sub for sub in loaded.records if sub.canceled_within(start, end)]
    return LoadResult(records=records, skipped=loaded.skipped)


# Revenue periods


async def fetch_revenue_periods(
    session: AsyncSession,
    *,
    year: int | None = None,
    locked: bool | None = None,
) -> list[RevenuePeriod]:
    """Revenue periods summed across categories, keyed by (start, end).

    ``year`` keeps periods starting in that calendar year. ``locked`` keeps
    only rows whose manual pin matches.
    """
    query = select(
        RevenuePeriodSummary.period_start,
        RevenuePeriodSummary.period_end,
        func.sum(RevenuePeriodSummary.gross_revenue).label("gross"),
        func.sum(RevenuePeriodSummary.net_revenue).label("net"),
        func.max(case((RevenuePeriodSummary.locked.is_(True), 1), else_=0)).label("locked"),
    )
    if year is not None:
        query = query.where(
            RevenuePeriodSummary.period_start >= date(year, 1, 1),
            RevenuePeriodSummary.period_start <= date(year, 12, 31),
        )
    if locked is not None:
        query = query.where(RevenuePeriodSummary.locked.is_(locked))

    query = query.group_by(
        RevenuePeriodSummary.period_start, RevenuePeriodSummary.period_end
    ).order_by(RevenuePeriodSummary.period_start, RevenuePeriodSummary.period_end)

    result = await session.execute(query)
    return [
        RevenuePeriod(
            start=row.period_start,
            end=row.period_end,
            gross=float(row.gross or 0),
            net=float(row.net or 0),
            locked=bool(row.locked),
        )
        for row in result.all()
    ]


# Visits


async def fetch_visits(
    session: AsyncSession,
    *,
    start: datetime | None = None,
    end: datetime | None = None,
    visit_types: Collection[VisitType] | None = None,
    subscriber: bool | None = None,
) -> LoadResult[VisitRecord]:
    """Visits within ``[start, end)``, filtered by type and subscriber flag, oldest first."""
    query = select(VisitEvent).order_by(VisitEvent.id)
    if subscriber is not None:
        query = query.where(VisitEvent.is_subscriber_visit.is_(subscriber))

    result = await session.execute(query)
    rows = result.scalars().all()

    records: list[VisitRecord] = []
    skipped = 0
    for row in rows:
        record = to_visit_record(row)
        if record is None:
            skipped += 1
            continue
        if start is not None and record.attended_at < start:
            continue
        if end is not None and record.attended_at >= end:
            continue
        if visit_types is not None and record.visit_type not in visit_types:
            continue
        records.append(record)

    _log_skipped("visits", skipped, len(rows))
    records.sort(key=lambda visit: visit.attended_at)
    return LoadResult(records=records, skipped=skipped)


async def fetch_first_visits(session: AsyncSession) -> LoadResult[VisitRecord]:
    """Earliest in-studio visit per identity, oldest first."""
    loaded = await fetch_visits(session)
    first = first_visit_per_person(visit for visit in loaded.records if visit.is_in_studio)
    records = sorted(first.values(), key=lambda visit: (visit.attended_at, visit.email))
    return LoadResult(records=records, skipped=loaded.skipped)


async def fetch_visits_within_days(
    session: AsyncSession,
    reference: datetime,
    days: int,
    *,
    visit_types: Collection[VisitType] | None = None,
    subscriber: bool | None = None,
) -> LoadResult[VisitRecord]:
    """Visits in the ``days`` days leading up to ``reference`` (exclusive)."""
    return await fetch_visits(
        session,
        start=reference - timedelta(days=days),
        end=reference,
        visit_types=visit_types,
        subscriber=subscriber,
    )


async def count_rows(session: AsyncSession) -> dict[str, int]:
    """Row count per stream."""
    counts: dict[str, int] = {}
    for name, model in (
        ("subscription_events", SubscriptionEvent),
        ("visit_events", VisitEvent),
        ("revenue_period_summaries", RevenuePeriodSummary),
    ):
        result = await session.execute(select(func.count(model.id)))
        counts[name] = result.scalar() or 0
    return counts

"""Aggregation service composing the dashboard response.

Every section reads the record store through its own session and runs
concurrently with the others. A section that raises is logged and reported
as ``failed`` with a null payload; one that finds no data reports
``no_data``. Nothing raised inside a section escapes ``build_dashboard``.
"""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, TypeVar
from uuid import uuid4

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from studio_analytics.analytics.alerts import compute_alerts
from studio_analytics.analytics.buckets import compute_pacing, compute_trends
from studio_analytics.analytics.categories import VisitType
from studio_analytics.analytics.churn import compute_churn
from studio_analytics.analytics.cohorts import (
    compute_cohorts,
    compute_new_customer_volume,
    first_in_studio_subscriptions,
)
from studio_analytics.analytics.dates import add_months, month_start
from studio_analytics.analytics.first_visits import compute_first_visits
from studio_analytics.analytics.pool import SLICE_VISIT_TYPES, PoolVisit, compute_pool_slice
from studio_analytics.analytics.projection import compute_projection
from studio_analytics.analytics.records import LoadResult
from studio_analytics.analytics.returning_non_members import compute_returning_non_members
from studio_analytics.analytics.snapshot import compute_snapshot
from studio_analytics.analytics.survival import compute_survival
from studio_analytics.analytics.usage import compute_drop_ins
from studio_analytics.core.config import Settings, settings as default_settings
from studio_analytics.schemas.dashboard import (
    AlertsData,
    ChurnData,
    CohortData,
    ConversionPoolData,
    DashboardResponse,
    Diagnostics,
    DropInData,
    FirstVisitData,
    NewCustomerVolumeData,
    PacingData,
    PoolSlice,
    ProjectionData,
    ReturningNonMemberData,
    SectionStatus,
    SnapshotData,
    SurvivalData,
    TrendsData,
)
from studio_analytics.services import record_store
from studio_analytics.services.scratch import read_staged_visits, staged_pool_visits

logger = structlog.get_logger()

T = TypeVar("T")

SUBSCRIPTIONS = "subscriptions"
VISITS = "visits"


@dataclass
class SectionContext:
    """Inputs of one section; each section gets its own instance."""

    session_factory: async_sessionmaker[AsyncSession]
    now: datetime
    settings: Settings
    skipped: dict[str, int] = field(default_factory=dict)

    def records(self, stream: str, loaded: LoadResult[T]) -> list[T]:
        """Unwrap a load, remembering how many rows of the stream were skipped."""
        self.skipped[stream] = max(self.skipped.get(stream, 0), loaded.skipped)
        return loaded.records


@dataclass
class SectionOutcome:
    name: str
    payload: Any
    status: SectionStatus
    skipped: dict[str, int]


# Sections


async def snapshot_section(ctx: SectionContext) -> SnapshotData | None:
    async with ctx.session_factory() as session:
        subs = ctx.records(SUBSCRIPTIONS, await record_store.fetch_subscriptions(session))
    return compute_snapshot(subs)


async def trends_section(ctx: SectionContext) -> TrendsData | None:
    start = add_months(month_start(ctx.now), -ctx.settings.TREND_LOOKBACK_MONTHS)
    end = ctx.now + timedelta(microseconds=1)
    async with ctx.session_factory() as session:
        created = ctx.records(
            SUBSCRIPTIONS, await record_store.fetch_subscriptions_created_between(session, start, end)
        )
        canceled = ctx.records(
            SUBSCRIPTIONS, await record_store.fetch_subscriptions_canceled_between(session, start, end)
        )

    by_id = {sub.id: sub for sub in created}
    by_id.update((sub.id, sub) for sub in canceled)
    return compute_trends(
        list(by_id.values()),
        ctx.now,
        lookback_months=ctx.settings.TREND_LOOKBACK_MONTHS,
        weeks=ctx.settings.TREND_WEEKS,
        months=ctx.settings.TREND_MONTHS,
    )


async def pacing_section(ctx: SectionContext) -> PacingData | None:
    async with ctx.session_factory() as session:
        subs = ctx.records(SUBSCRIPTIONS, await record_store.fetch_subscriptions(session))
    if not subs:
        return None
    return compute_pacing(subs, ctx.now)


async def projection_section(ctx: SectionContext) -> ProjectionData | None:
    async with ctx.session_factory() as session:
        subs = ctx.records(SUBSCRIPTIONS, await record_store.fetch_subscriptions(session))
        periods = await record_store.fetch_revenue_periods(session, year=ctx.now.year - 1)

    paced_revenue = compute_pacing(subs, ctx.now).revenue_paced if subs else 0.0
    return compute_projection(
        subs,
        periods,
        ctx.now,
        paced_revenue,
        growth_window=ctx.settings.GROWTH_WINDOW_MONTHS,
        multiplier_cap=ctx.settings.NON_MRR_MULTIPLIER_CAP,
        sanity_ratio=ctx.settings.PROJECTION_SANITY_RATIO,
        fallback_growth=ctx.settings.PROJECTION_FALLBACK_GROWTH,
    )


async def churn_section(ctx: SectionContext) -> ChurnData | None:
    async with ctx.session_factory() as session:
        subs = ctx.records(
            SUBSCRIPTIONS, await record_store.fetch_subscriptions(session, require_email=True)
        )
    return compute_churn(subs, ctx.now, ctx.settings.CHURN_TRAILING_MONTHS)


async def survival_section(ctx: SectionContext) -> SurvivalData | None:
    async with ctx.session_factory() as session:
        subs = ctx.records(
            SUBSCRIPTIONS, await record_store.fetch_subscriptions(session, require_email=True)
        )
    return compute_survival(
        subs,
        ctx.now,
        horizon=ctx.settings.SURVIVAL_HORIZON_MONTHS,
        cliff_months=ctx.settings.COMMITMENT_CLIFF_MONTHS,
    )


async def cohorts_section(ctx: SectionContext) -> CohortData | None:
    async with ctx.session_factory() as session:
        first_visits = ctx.records(VISITS, await record_store.fetch_first_visits(session))
        subs = ctx.records(SUBSCRIPTIONS, await record_store.fetch_subscriptions(session))
    return compute_cohorts(first_visits, subs, ctx.now, ctx.settings.COHORT_WEEKS)


async def new_customer_volume_section(ctx: SectionContext) -> NewCustomerVolumeData | None:
    async with ctx.session_factory() as session:
        first_visits = ctx.records(VISITS, await record_store.fetch_first_visits(session))
        subs = ctx.records(SUBSCRIPTIONS, await record_store.fetch_subscriptions(session))
    return compute_new_customer_volume(first_visits, subs, ctx.now, ctx.settings.COHORT_WEEKS)


async def conversion_pool_section(ctx: SectionContext) -> ConversionPoolData | None:
    async with ctx.session_factory() as session:
        visits = ctx.records(VISITS, await record_store.fetch_visits(session, subscriber=False))
        subs = ctx.records(SUBSCRIPTIONS, await record_store.fetch_subscriptions(session))

        pool_visits = [
            PoolVisit(email=visit.email, attended_at=visit.attended_at, visit_type=visit.visit_type)
            for visit in visits
            if visit.email and visit.is_in_studio
        ]
        if not pool_visits:
            return None

        first_subs = first_in_studio_subscriptions(subs)
        slices = []
        async with staged_pool_visits(session, pool_visits) as table:
            for pool_slice in PoolSlice:
                staged = await read_staged_visits(session, table, SLICE_VISIT_TYPES[pool_slice])
                slices.append(
                    compute_pool_slice(
                        pool_slice,
                        staged,
                        first_subs,
                        ctx.now,
                        weeks=ctx.settings.POOL_WEEKS,
                        lag_weeks=ctx.settings.LAG_WINDOW_WEEKS,
                    )
                )

    return ConversionPoolData(slices=slices)


async def drop_ins_section(ctx: SectionContext) -> DropInData | None:
    async with ctx.session_factory() as session:
        visits = ctx.records(
            VISITS,
            await record_store.fetch_visits(
                session, visit_types={VisitType.DROP_IN}, subscriber=False
            ),
        )
    return compute_drop_ins(visits, ctx.now)


async def first_visits_section(ctx: SectionContext) -> FirstVisitData | None:
    async with ctx.session_factory() as session:
        first_visits = ctx.records(VISITS, await record_store.fetch_first_visits(session))
    return compute_first_visits(first_visits, ctx.now, ctx.settings.VISITOR_WEEKS)


async def returning_non_members_section(ctx: SectionContext) -> ReturningNonMemberData | None:
    # Current partial week plus the completed weeks on display
    window_days = (ctx.settings.VISITOR_WEEKS + 1) * 7
    async with ctx.session_factory() as session:
        first_visits = ctx.records(VISITS, await record_store.fetch_first_visits(session))
        recent = ctx.records(
            VISITS,
            await record_store.fetch_visits_within_days(
                session, ctx.now + timedelta(microseconds=1), window_days, subscriber=False
            ),
        )
    return compute_returning_non_members(recent, first_visits, ctx.now, ctx.settings.VISITOR_WEEKS)


async def alerts_section(ctx: SectionContext) -> AlertsData | None:
    async with ctx.session_factory() as session:
        subs = ctx.records(SUBSCRIPTIONS, await record_store.fetch_subscriptions(session))
    if not subs:
        return None
    return compute_alerts(subs, ctx.now, ctx.settings.ALERT_WINDOW_DAYS)


SECTIONS: dict[str, Callable[[SectionContext], Awaitable[Any]]] = {
    "snapshot": snapshot_section,
    "trends": trends_section,
    "pacing": pacing_section,
    "projection": projection_section,
    "churn": churn_section,
    "survival": survival_section,
    "cohorts": cohorts_section,
    "new_customer_volume": new_customer_volume_section,
    "conversion_pool": conversion_pool_section,
    "drop_ins": drop_ins_section,
    "first_visits": first_visits_section,
    "returning_non_members": returning_non_members_section,
    "alerts": alerts_section,
}


async def _run_section(
    name: str,
    section: Callable[[SectionContext], Awaitable[Any]],
    session_factory: async_sessionmaker[AsyncSession],
    now: datetime,
    config: Settings,
) -> SectionOutcome:
    ctx = SectionContext(session_factory=session_factory, now=now, settings=config)
    try:
        payload = await section(ctx)
    except Exception:
        logger.exception("section_failed", section=name)
        return SectionOutcome(name, None, SectionStatus.FAILED, ctx.skipped)

    status = SectionStatus.OK if payload is not None else SectionStatus.NO_DATA
    return SectionOutcome(name, payload, status, ctx.skipped)


async def build_dashboard(
    session_factory: async_sessionmaker[AsyncSession],
    now: datetime | None = None,
    config: Settings | None = None,
) -> DashboardResponse:
    """Compute every dashboard section as of ``now``.

    Output depends only on the store contents and ``now``, so two runs over
    an unchanged store produce identical responses.
    """
    now = now or datetime.now().replace(microsecond=0)
    config = config or default_settings

    structlog.contextvars.bind_contextvars(aggregation_id=uuid4().hex[:12])
    try:
        outcomes = await asyncio.gather(
            *(
                _run_section(name, section, session_factory, now, config)
                for name, section in SECTIONS.items()
            )
        )
    finally:
        structlog.contextvars.unbind_contextvars("aggregation_id")

    skipped: dict[str, int] = {}
    for outcome in outcomes:
        for stream, count in outcome.skipped.items():
            skipped[stream] = max(skipped.get(stream, 0), count)

    statuses = {outcome.name: outcome.status for outcome in outcomes}
    logger.info(
        "aggregation_completed",
        as_of=now.isoformat(),
        failed=[name for name, status in statuses.items() if status is SectionStatus.FAILED],
        no_data=[name for name, status in statuses.items() if status is SectionStatus.NO_DATA],
    )

    return DashboardResponse(
        as_of=now,
        sections=statuses,
        diagnostics=Diagnostics(
            skipped_subscriptions=skipped.get(SUBSCRIPTIONS, 0),
            skipped_visits=skipped.get(VISITS, 0),
        ),
        **{outcome.name: outcome.payload for outcome in outcomes},
    )

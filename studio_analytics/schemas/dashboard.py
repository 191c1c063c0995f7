"""Response models for the aggregate dashboard payload.

Field names are snake_case in Python and serialized as camelCase. Numeric
fields are already rounded by the engine when the models are built.
"""

from datetime import date, datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from studio_analytics.analytics.categories import BillingCadence, Category


class CamelModel(BaseModel):
    """Base model serializing field names as camelCase."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SectionStatus(str, Enum):
    """Outcome of one aggregation section."""

    OK = "ok"
    NO_DATA = "no_data"
    FAILED = "failed"


class PeriodType(str, Enum):
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class PoolSlice(str, Enum):
    """Named subsets of the non-subscriber conversion pool."""

    ALL = "all"
    DROP_IN = "drop_in"
    INTRO_WEEK = "intro_week"
    CLASS_PACK = "class_pack"
    HIGH_INTENT = "high_intent"


class VisitSegment(str, Enum):
    """Source of a visit as shown in visitor breakdowns."""

    INTRO_WEEK = "intro_week"
    DROP_IN = "drop_in"
    GUEST = "guest"
    OTHER = "other"


class AlertKind(str, Enum):
    RENEWAL = "renewal"
    TENURE_3_MONTH = "tenure_3_month"
    TENURE_7_MONTH = "tenure_7_month"


# Snapshot


class CategorySnapshot(CamelModel):
    category: Category
    active_count: int
    mrr: float
    arpu: float


class SnapshotData(CamelModel):
    """Current headcount and recurring revenue per category."""

    categories: list[CategorySnapshot]
    total_active: int
    total_mrr: float
    overall_arpu: float


# Trends & pacing


class TrendRow(CamelModel):
    """New/churn counts and revenue deltas for one week or month."""

    period: str
    type: PeriodType
    new_members: int
    new_sky3: int
    new_tv_equivalent: int
    member_churn: int
    sky3_churn: int
    tv_equivalent_churn: int
    net_member_growth: int
    net_sky3_growth: int
    net_tv_equivalent_growth: int
    revenue_added: float
    revenue_lost: float
    delta_new_members: int | None = None
    delta_new_sky3: int | None = None
    delta_revenue: float | None = None
    delta_pct_new_members: float | None = None
    delta_pct_new_sky3: float | None = None
    delta_pct_revenue: float | None = None


class TrendsData(CamelModel):
    weekly: list[TrendRow]
    monthly: list[TrendRow]


class PacingData(CamelModel):
    """Current month actuals next to a days-elapsed extrapolation."""

    month: str
    days_elapsed: int
    days_in_month: int
    new_members_actual: int
    new_members_paced: int
    new_sky3_actual: int
    new_sky3_paced: int
    revenue_actual: float
    revenue_paced: float
    member_cancellations_actual: int
    member_cancellations_paced: int
    sky3_cancellations_actual: int
    sky3_cancellations_paced: int


# Projection


class ProjectionData(CamelModel):
    """Annual revenue projection reconciled against prior-year actuals."""

    year: int
    projected_annual_revenue: float
    current_mrr: float
    projected_year_end_mrr: float
    monthly_growth_rate: float
    prior_year_revenue: float
    prior_year_actual_revenue: float | None = None
    prior_year_mrr_estimate: float = 0.0
    non_mrr_multiplier: float = 1.0
    capped: bool = False
    degraded: bool = False


# Churn & retention


class ChurnMonthEntry(CamelModel):
    """Churn figures for one category and month."""

    month: str
    user_churn_rate: float
    mrr_churn_rate: float
    active_at_start: int
    active_mrr_at_start: float
    canceled_count: int
    canceled_mrr: float
    annual_active_at_start: int | None = None
    annual_canceled_count: int | None = None
    monthly_active_at_start: int | None = None
    monthly_canceled_count: int | None = None
    eligible_churn_rate: float | None = None


class CadenceChurn(CamelModel):
    """Trailing churn averages for one billing cadence of a category."""

    cadence: BillingCadence
    avg_user_churn_rate: float
    avg_mrr_churn_rate: float


class CategoryChurn(CamelModel):
    category: Category
    monthly: list[ChurnMonthEntry]
    avg_user_churn_rate: float
    avg_mrr_churn_rate: float
    avg_eligible_churn_rate: float | None = None
    by_cadence: list[CadenceChurn] = Field(default_factory=list)
    at_risk_count: int


class SurvivalPoint(CamelModel):
    month: int
    retained_pct: float


class SurvivalData(CamelModel):
    """Per-person tenure survival for members."""

    points: list[SurvivalPoint]
    median_tenure_months: float
    month4_renewal_rate: float
    avg_post_cliff_tenure_months: float
    sample_size: int
    censored_count: int
    milestones: list[SurvivalPoint]


class ChurnData(CamelModel):
    categories: list[CategoryChurn]
    total_at_risk: int


# Cohorts & new customers


class CohortRow(CamelModel):
    """Conversions of one weekly acquisition cohort."""

    cohort_start: date
    cohort_end: date
    new_customers: int
    week1: int
    week2: int
    week3: int
    total_3_week: int
    complete: bool


class CohortData(CamelModel):
    cohorts: list[CohortRow]
    avg_conversion_rate: float | None = None


class VolumeWeek(CamelModel):
    week_start: date
    week_end: date
    count: int


class NewCustomerVolumeData(CamelModel):
    current_week_count: int
    completed_weeks: list[VolumeWeek]


# Conversion pool


class PoolWeekRow(CamelModel):
    week_start: date
    week_end: date
    pool_size: int
    converts: int
    conversion_rate: float


class LagBucket(CamelModel):
    label: str
    count: int


class LagStats(CamelModel):
    """Days-to-convert and visits-before-convert over completed weeks."""

    sample_size: int
    median_days_to_convert: float | None = None
    avg_visits_before_convert: float | None = None
    days_buckets: list[LagBucket]
    visits_buckets: list[LagBucket]


class PoolSliceData(CamelModel):
    slice: PoolSlice
    weeks: list[PoolWeekRow]
    week_to_date_pool: int
    week_to_date_converts: int
    pool_last_7_days: int
    pool_last_30_days: int
    lag: LagStats


class ConversionPoolData(CamelModel):
    slices: list[PoolSliceData]


# Usage


class WeeklyCount(CamelModel):
    week: date
    count: int


class DropInData(CamelModel):
    """Non-subscriber drop-in attendance."""

    current_month_total: int
    current_month_days_elapsed: int
    current_month_days_in_month: int
    current_month_paced: int
    previous_month_total: int
    weekly_average: float
    weekly_breakdown: list[WeeklyCount]


# Visitors


class SegmentCounts(CamelModel):
    """People per visit source; field names match ``VisitSegment`` values."""

    intro_week: int = 0
    drop_in: int = 0
    guest: int = 0
    other: int = 0


class VisitorWeek(CamelModel):
    week: date
    unique_visitors: int
    segments: SegmentCounts


class PassCount(CamelModel):
    pass_label: str
    count: int


class VisitorWeeksData(CamelModel):
    """Unique visitors for the current week and the completed weeks before it."""

    current_week_total: int
    current_week_segments: SegmentCounts
    completed_weeks: list[VisitorWeek]
    aggregate_segments: SegmentCounts
    other_breakdown_top5: list[PassCount]


class FirstVisitData(VisitorWeeksData):
    """People whose first in-studio visit fell in each week."""


class ReturningNonMemberData(VisitorWeeksData):
    """Non-subscribers visiting again in a week after their first visit week."""


# Alerts


class AlertItem(CamelModel):
    email: str
    name: str
    plan_name: str
    category: Category
    kind: AlertKind
    due_date: date
    days_until: int


class AlertsData(CamelModel):
    """Upcoming renewals and tenure milestones."""

    items: list[AlertItem]
    renewal_count: int
    milestone_count: int


# Aggregate


class Diagnostics(CamelModel):
    """Rows skipped because a date failed to normalize, per stream."""

    skipped_subscriptions: int = 0
    skipped_visits: int = 0


class DashboardResponse(CamelModel):
    """Aggregate response; any section may be null, see ``sections``."""

    as_of: datetime
    snapshot: SnapshotData | None = None
    trends: TrendsData | None = None
    pacing: PacingData | None = None
    projection: ProjectionData | None = None
    churn: ChurnData | None = None
    survival: SurvivalData | None = None
    cohorts: CohortData | None = None
    new_customer_volume: NewCustomerVolumeData | None = None
    conversion_pool: ConversionPoolData | None = None
    drop_ins: DropInData | None = None
    first_visits: FirstVisitData | None = None
    returning_non_members: ReturningNonMemberData | None = None
    alerts: AlertsData | None = None
    sections: dict[str, SectionStatus]
    diagnostics: Diagnostics

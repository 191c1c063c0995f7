"""Tests for trend buckets, trend rows and pacing."""

from collections.abc import Callable
from datetime import datetime

import pytest

from studio_analytics.analytics.buckets import (
    PeriodBucket,
    build_buckets,
    compute_pacing,
    compute_trends,
)
from studio_analytics.analytics.categories import Category
from studio_analytics.analytics.dates import month_key
from studio_analytics.analytics.records import SubscriptionRecord
from studio_analytics.schemas.dashboard import PeriodType


@pytest.fixture
def activity(sub_record: Callable[..., SubscriptionRecord]) -> list[SubscriptionRecord]:
    """Mixed activity in January and February 2026."""
    return [
        sub_record(email="a@example.com", created_at=datetime(2026, 2, 3), price=200.0),
        sub_record(email="b@example.com", created_at=datetime(2026, 2, 17), price=200.0),
        sub_record(
            email="c@example.com",
            plan_name="SKY3",
            created_at=datetime(2026, 1, 20),
            canceled_at=datetime(2026, 2, 10),
            price=100.0,
        ),
        sub_record(email="d@example.com", plan_name="SKY TING TV", created_at=datetime(2026, 2, 5), price=20.0),
    ]


class TestBuildBuckets:
    """Test bucketing of creations and cancellations."""

    def test_monthly_buckets(self, activity: list[SubscriptionRecord]) -> None:
        """Test new and churn counts land in their months."""
        buckets = build_buckets(activity, datetime(2026, 1, 1), datetime(2026, 3, 1), month_key)

        february = buckets["2026-02"]
        assert february.new[Category.MEMBER] == 2
        assert february.new[Category.TV_EQUIVALENT] == 1
        assert february.churn[Category.SKY3] == 1
        assert february.revenue_added == 420.0
        assert february.revenue_lost == 100.0
        assert buckets["2026-01"].new[Category.SKY3] == 1

    def test_outside_window_ignored(self, activity: list[SubscriptionRecord]) -> None:
        """Test events outside the window are not bucketed."""
        buckets = build_buckets(activity, datetime(2026, 2, 1), datetime(2026, 2, 4), month_key)
        assert list(buckets) == ["2026-02"]
        assert buckets["2026-02"].new[Category.MEMBER] == 1
        assert buckets["2026-02"].churn[Category.SKY3] == 0

    def test_unknown_category_only_moves_revenue(
        self, sub_record: Callable[..., SubscriptionRecord]
    ) -> None:
        """Test unknown plans count toward revenue but no category."""
        bucket = PeriodBucket()
        bucket.add_new(sub_record(plan_name="Gift Card", price=50.0))
        assert sum(bucket.new.values()) == 0
        assert bucket.revenue_added == 50.0


class TestComputeTrends:
    """Test weekly and monthly trend rows."""

    def test_row_counts_and_order(self, activity: list[SubscriptionRecord], now: datetime) -> None:
        """Test 8 weekly and 6 monthly rows, oldest first."""
        trends = compute_trends(activity, now)

        assert trends is not None
        assert len(trends.weekly) == 8
        assert len(trends.monthly) == 6
        assert trends.weekly[-1].period == "2026-02-16"
        assert trends.weekly[0].period == "2025-12-29"
        assert trends.monthly[-1].period == "2026-02"
        assert trends.monthly[0].period == "2025-09"
        assert all(row.type is PeriodType.WEEKLY for row in trends.weekly)

    def test_monthly_row_values_and_deltas(self, activity: list[SubscriptionRecord], now: datetime) -> None:
        """Test counts, net growth and deltas against the previous month."""
        trends = compute_trends(activity, now)
        assert trends is not None
        february = trends.monthly[-1]

        assert february.new_members == 2
        assert february.new_tv_equivalent == 1
        assert february.sky3_churn == 1
        assert february.net_sky3_growth == -1
        assert february.revenue_added == 420.0
        assert february.revenue_lost == 100.0
        assert february.delta_new_sky3 == -1
        assert february.delta_pct_new_sky3 == -100.0
        assert february.delta_revenue == 320.0
        assert february.delta_pct_revenue == 320.0

    def test_percentage_delta_null_without_base(self, activity: list[SubscriptionRecord], now: datetime) -> None:
        """Test percentage deltas are null when the previous value is zero."""
        trends = compute_trends(activity, now)
        assert trends is not None
        current_week = trends.weekly[-1]

        assert current_week.new_members == 1
        assert current_week.delta_new_members == 1
        assert current_week.delta_pct_new_members is None

    def test_empty_history(self, now: datetime) -> None:
        """Test no subscriptions yields no trends."""
        assert compute_trends([], now) is None


class TestComputePacing:
    """Test current month pacing."""

    def test_pacing_extrapolates_by_days_elapsed(self, activity: list[SubscriptionRecord], now: datetime) -> None:
        """Test actuals are scaled by days in month over days elapsed."""
        pacing = compute_pacing(activity, now)

        assert pacing.month == "2026-02"
        assert pacing.days_elapsed == 18
        assert pacing.days_in_month == 28
        assert pacing.new_members_actual == 2
        assert pacing.new_members_paced == 3
        assert pacing.revenue_actual == 420.0
        assert pacing.revenue_paced == 653.33
        assert pacing.sky3_cancellations_actual == 1
        assert pacing.sky3_cancellations_paced == 2

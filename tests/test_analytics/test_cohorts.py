"""Tests for acquisition cohorts and new customer volume."""

from collections.abc import Callable
from datetime import date, datetime

import pytest

from studio_analytics.analytics.cohorts import (
    acquisition_dates,
    compute_cohorts,
    compute_new_customer_volume,
    new_customers,
)
from studio_analytics.analytics.records import SubscriptionRecord, VisitRecord

SubFactory = Callable[..., SubscriptionRecord]
VisitFactory = Callable[..., VisitRecord]


@pytest.fixture
def cohort_visits(visit_record: VisitFactory) -> list[VisitRecord]:
    """Ten people whose first visit falls in the week of 2026-01-19."""
    visits = [visit_record(email=f"p{i}@example.com", attended_at=datetime(2026, 1, 20, 10)) for i in range(10)]
    # Repeat visits do not move the acquisition date
    visits.append(visit_record(email="p0@example.com", attended_at=datetime(2026, 1, 27, 10)))
    # Already a member before walking in
    visits.append(visit_record(email="existing@example.com", attended_at=datetime(2026, 1, 20, 10)))
    return visits


@pytest.fixture
def cohort_subs(sub_record: SubFactory) -> list[SubscriptionRecord]:
    """Three conversions in the first week and one in the third."""
    subs = [sub_record(email=f"p{i}@example.com", created_at=datetime(2026, 1, 24)) for i in range(3)]
    subs.append(sub_record(email="p3@example.com", created_at=datetime(2026, 2, 4)))
    # TV plans are not in-studio conversions
    subs.append(sub_record(email="p4@example.com", plan_name="SKY TING TV", created_at=datetime(2026, 1, 22)))
    subs.append(sub_record(email="existing@example.com", created_at=datetime(2025, 12, 1)))
    return subs


class TestAcquisition:
    """Test acquisition dates and new customer filtering."""

    def test_remote_visits_do_not_acquire(self, visit_record: VisitFactory) -> None:
        """Test the earliest in-studio visit is the acquisition date."""
        visits = [
            visit_record(attended_at=datetime(2026, 1, 2), pass_label="Livestream"),
            visit_record(attended_at=datetime(2026, 1, 9)),
            visit_record(attended_at=datetime(2026, 1, 5), pass_label="5 Class Pack"),
        ]

        assert acquisition_dates(visits) == {"jane@example.com": datetime(2026, 1, 5)}

    def test_existing_subscribers_excluded(
        self, cohort_visits: list[VisitRecord], cohort_subs: list[SubscriptionRecord]
    ) -> None:
        """Test people subscribed before their first visit are not new customers."""
        acquired = new_customers(cohort_visits, cohort_subs)

        assert "existing@example.com" not in acquired
        assert len(acquired) == 10


class TestComputeCohorts:
    """Test weekly cohort rows."""

    def test_conversion_windows(
        self, cohort_visits: list[VisitRecord], cohort_subs: list[SubscriptionRecord], now: datetime
    ) -> None:
        """Test conversions land in week 1, 2 or 3 by day offset."""
        cohorts = compute_cohorts(cohort_visits, cohort_subs, now)

        assert cohorts is not None
        assert len(cohorts.cohorts) == 8
        assert cohorts.cohorts[-1].cohort_start == date(2026, 2, 16)
        row = next(row for row in cohorts.cohorts if row.cohort_start == date(2026, 1, 19))
        assert row.cohort_end == date(2026, 1, 25)
        assert row.new_customers == 10
        assert row.week1 == 3
        assert row.week2 == 0
        assert row.week3 == 1
        assert row.total_3_week == 4
        assert row.complete

    def test_average_pools_complete_cohorts(
        self, cohort_visits: list[VisitRecord], cohort_subs: list[SubscriptionRecord], now: datetime
    ) -> None:
        """Test the average divides total conversions by total new customers."""
        cohorts = compute_cohorts(cohort_visits, cohort_subs, now)

        assert cohorts is not None
        assert cohorts.avg_conversion_rate == 40.0

    def test_average_null_with_too_few_complete_cohorts(
        self, cohort_visits: list[VisitRecord], cohort_subs: list[SubscriptionRecord], now: datetime
    ) -> None:
        """Test recent cohorts still inside their window leave the average null."""
        cohorts = compute_cohorts(cohort_visits, cohort_subs, now, weeks=3)

        assert cohorts is not None
        assert not any(row.complete for row in cohorts.cohorts)
        assert cohorts.avg_conversion_rate is None

    def test_no_visits(self, now: datetime) -> None:
        """Test no visit history yields no cohorts."""
        assert compute_cohorts([], [], now) is None
        assert compute_new_customer_volume([], [], now) is None


class TestNewCustomerVolume:
    """Test weekly new customer counts."""

    def test_current_and_completed_weeks(
        self,
        cohort_visits: list[VisitRecord],
        cohort_subs: list[SubscriptionRecord],
        visit_record: VisitFactory,
        now: datetime,
    ) -> None:
        """Test the current week is reported apart from eight completed weeks."""
        visits = [*cohort_visits, visit_record(email="new@example.com", attended_at=datetime(2026, 2, 17, 9))]

        volume = compute_new_customer_volume(visits, cohort_subs, now)

        assert volume is not None
        assert volume.current_week_count == 1
        assert len(volume.completed_weeks) == 8
        assert volume.completed_weeks[0].week_start == date(2025, 12, 22)
        assert volume.completed_weeks[-1].week_start == date(2026, 2, 9)
        counts = {week.week_start: week.count for week in volume.completed_weeks}
        assert counts[date(2026, 1, 19)] == 10

"""Tests for record store queries and row normalization."""

from collections.abc import Awaitable, Callable
from datetime import date, datetime
from typing import Any

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from studio_analytics.analytics.categories import Category, SubscriptionState, VisitType
from studio_analytics.analytics.records import first_visit_per_person, visits_within_days
from studio_analytics.models import SubscriptionEvent
from studio_analytics.services import record_store

AddRows = Callable[..., Awaitable[None]]


class TestNormalization:
    """Test row to record conversion."""

    def test_subscription_row(self, make_subscription_event: Callable[..., SubscriptionEvent]) -> None:
        """Test dates, category, rate and identity key are derived."""
        row = make_subscription_event(
            email="  Jane@Example.COM ",
            plan_name="SKY UNLIMITED ANNUAL",
            price="2400.00",
            created_at="2025-02-01 10:00:00 -0500",
            canceled_at="   ",
        )
        row.id = 7

        record = record_store.to_subscription_record(row)

        assert record is not None
        assert record.id == 7
        assert record.email == "jane@example.com"
        assert record.category is Category.MEMBER
        assert record.is_annual
        assert record.monthly_rate == 200.0
        assert record.state is SubscriptionState.VALID_NOW
        assert record.created_at == datetime(2025, 2, 1, 10)
        assert record.canceled_at is None

    @pytest.mark.parametrize(
        ("created_at", "canceled_at"),
        [
            ("not a date", None),
            ("2025-02-01 10:00:00 -0500", "garbage"),
            ("2025-02-01 10:00:00 -0500", "2025-01-01 10:00:00 -0500"),
        ],
    )
    def test_unusable_dates_skip_row(
        self,
        make_subscription_event: Callable[..., SubscriptionEvent],
        created_at: str,
        canceled_at: str | None,
    ) -> None:
        """Test unparseable or inverted dates drop the row."""
        row = make_subscription_event(created_at=created_at, canceled_at=canceled_at)
        assert record_store.to_subscription_record(row) is None


class TestSubscriptionQueries:
    """Test subscription fetches."""

    @pytest.mark.asyncio
    async def test_fetch_counts_skipped_rows(
        self,
        test_session: AsyncSession,
        add_rows: AddRows,
        make_subscription_event: Callable[..., SubscriptionEvent],
    ) -> None:
        """Test bad rows are skipped and counted, good rows returned."""
        await add_rows(
            make_subscription_event(email="a@example.com"),
            make_subscription_event(email="b@example.com", created_at="tomorrow-ish"),
            make_subscription_event(email="", plan_name="SKY3"),
        )

        loaded = await record_store.fetch_subscriptions(test_session)

        assert loaded.skipped == 1
        assert [record.email for record in loaded.records] == ["a@example.com", ""]

    @pytest.mark.asyncio
    async def test_require_email(
        self,
        test_session: AsyncSession,
        add_rows: AddRows,
        make_subscription_event: Callable[..., SubscriptionEvent],
    ) -> None:
        """Test rows without an identity key are excluded on request."""
        await add_rows(
            make_subscription_event(email="a@example.com"),
            make_subscription_event(email="  ", plan_name="SKY3"),
        )

        loaded = await record_store.fetch_subscriptions(test_session, require_email=True)

        assert [record.email for record in loaded.records] == ["a@example.com"]

    @pytest.mark.asyncio
    async def test_created_and_canceled_between(
        self,
        test_session: AsyncSession,
        add_rows: AddRows,
        make_subscription_event: Callable[..., SubscriptionEvent],
    ) -> None:
        """Test date range filters are half-open and applied after normalization."""
        await add_rows(
            make_subscription_event(email="a@example.com", created_at="2/1/26 9:00 AM"),
            make_subscription_event(email="b@example.com", created_at="2026-01-15 09:00:00 -0500"),
            make_subscription_event(
                email="c@example.com",
                created_at="2025-10-01 09:00:00 -0400",
                canceled_at="2026-02-10 09:00:00 -0500",
                state="Canceled",
            ),
            make_subscription_event(email="d@example.com", created_at="2026-03-01 00:00:00 -0500"),
        )
        start, end = datetime(2026, 1, 1), datetime(2026, 3, 1)

        created = await record_store.fetch_subscriptions_created_between(test_session, start, end)
        canceled = await record_store.fetch_subscriptions_canceled_between(test_session, start, end)

        assert [record.email for record in created.records] == ["b@example.com", "a@example.com"]
        assert [record.email for record in canceled.records] == ["c@example.com"]


class TestRevenuePeriodQueries:
    """Test revenue period aggregation."""

    @pytest.mark.asyncio
    async def test_sums_categories_per_period(
        self,
        test_session: AsyncSession,
        add_rows: AddRows,
        make_revenue_period: Callable[..., Any],
    ) -> None:
        """Test categories are summed and a locked row marks the period locked."""
        await add_rows(
            make_revenue_period(date(2025, 1, 1), date(2025, 1, 31), "1000.00", category="Memberships"),
            make_revenue_period(date(2025, 1, 1), date(2025, 1, 31), "250.50", category="Drop-ins", locked=True),
            make_revenue_period(date(2025, 2, 1), date(2025, 2, 28), "900.00"),
            make_revenue_period(date(2024, 12, 1), date(2024, 12, 31), "800.00"),
        )

        periods = await record_store.fetch_revenue_periods(test_session, year=2025)

        assert [(period.start, period.net, period.locked) for period in periods] == [
            (date(2025, 1, 1), 1250.5, True),
            (date(2025, 2, 1), 900.0, False),
        ]

    @pytest.mark.asyncio
    async def test_locked_filter(
        self,
        test_session: AsyncSession,
        add_rows: AddRows,
        make_revenue_period: Callable[..., Any],
    ) -> None:
        """Test only pinned rows are returned when requested."""
        await add_rows(
            make_revenue_period(date(2025, 1, 1), date(2025, 12, 31), "500000.00", locked=True),
            make_revenue_period(date(2025, 2, 1), date(2025, 2, 28), "900.00"),
        )

        periods = await record_store.fetch_revenue_periods(test_session, locked=True)

        assert len(periods) == 1
        assert periods[0].net == 500000.0


class TestVisitQueries:
    """Test visit fetches and helpers."""

    @pytest.mark.asyncio
    async def test_fetch_visits_filters(
        self,
        test_session: AsyncSession,
        add_rows: AddRows,
        make_visit_event: Callable[..., Any],
    ) -> None:
        """Test range, type and subscriber filters."""
        await add_rows(
            make_visit_event(email="a@example.com", attended_at="2026-02-10 09:00:00 -0500"),
            make_visit_event(email="b@example.com", attended_at="2026-02-03 09:00:00 -0500", pass_label="5 Class Pack"),
            make_visit_event(
                email="c@example.com",
                attended_at="2026-02-04 09:00:00 -0500",
                pass_label="SKY UNLIMITED",
                is_subscriber_visit=True,
            ),
            make_visit_event(email="d@example.com", attended_at="2026-01-04 09:00:00 -0500"),
            make_visit_event(email="e@example.com", attended_at="???"),
        )

        everything = await record_store.fetch_visits(test_session)
        february_drop_ins = await record_store.fetch_visits(
            test_session,
            start=datetime(2026, 2, 1),
            end=datetime(2026, 3, 1),
            visit_types={VisitType.DROP_IN},
            subscriber=False,
        )

        assert everything.skipped == 1
        assert [visit.email for visit in everything.records] == [
            "d@example.com",
            "b@example.com",
            "c@example.com",
            "a@example.com",
        ]
        assert [visit.email for visit in february_drop_ins.records] == ["a@example.com"]

    def test_first_visit_and_window(self, visit_record: Callable[..., Any]) -> None:
        """Test earliest visit per person and trailing day windows."""
        visits = [
            visit_record(email="a@example.com", attended_at=datetime(2026, 2, 10)),
            visit_record(email="a@example.com", attended_at=datetime(2026, 1, 10)),
            visit_record(email="", attended_at=datetime(2026, 1, 1)),
        ]

        first = first_visit_per_person(visits)
        recent = visits_within_days(visits, datetime(2026, 2, 11), 7)

        assert list(first) == ["a@example.com"]
        assert first["a@example.com"].attended_at == datetime(2026, 1, 10)
        assert [visit.attended_at for visit in recent] == [datetime(2026, 2, 10)]

    @pytest.mark.asyncio
    async def test_fetch_first_visits(
        self,
        test_session: AsyncSession,
        add_rows: AddRows,
        make_visit_event: Callable[..., Any],
    ) -> None:
        """Test one earliest in-studio visit per person, remote visits ignored."""
        await add_rows(
            make_visit_event(email="a@example.com", attended_at="2026-02-10 09:00:00 -0500"),
            make_visit_event(email="a@example.com", attended_at="2026-01-20 09:00:00 -0500"),
            make_visit_event(email="a@example.com", attended_at="2026-01-05 09:00:00 -0500", pass_label="Livestream"),
            make_visit_event(email="b@example.com", attended_at="2026-01-12 09:00:00 -0500", pass_label="Intro Week"),
            make_visit_event(email="c@example.com", attended_at="2026-01-02 09:00:00 -0500", pass_label="Livestream"),
            make_visit_event(email="d@example.com", attended_at="???"),
        )

        loaded = await record_store.fetch_first_visits(test_session)

        assert loaded.skipped == 1
        assert [(visit.email, visit.attended_at) for visit in loaded.records] == [
            ("b@example.com", datetime(2026, 1, 12, 9)),
            ("a@example.com", datetime(2026, 1, 20, 9)),
        ]

    @pytest.mark.asyncio
    async def test_fetch_visits_within_days(
        self,
        test_session: AsyncSession,
        add_rows: AddRows,
        make_visit_event: Callable[..., Any],
    ) -> None:
        """Test the trailing window excludes the reference instant and older visits."""
        await add_rows(
            make_visit_event(email="a@example.com", attended_at="2026-02-04 08:59:00 -0500"),
            make_visit_event(email="b@example.com", attended_at="2026-02-10 09:00:00 -0500"),
            make_visit_event(email="c@example.com", attended_at="2026-02-11 09:00:00 -0500"),
            make_visit_event(
                email="d@example.com",
                attended_at="2026-02-09 09:00:00 -0500",
                pass_label="SKY UNLIMITED",
                is_subscriber_visit=True,
            ),
        )

        recent = await record_store.fetch_visits_within_days(
            test_session, datetime(2026, 2, 11, 9), 7, subscriber=False
        )

        assert [visit.email for visit in recent.records] == ["b@example.com"]

    @pytest.mark.asyncio
    async def test_count_rows(
        self,
        test_session: AsyncSession,
        add_rows: AddRows,
        make_visit_event: Callable[..., Any],
    ) -> None:
        """Test per-stream row counts."""
        await add_rows(make_visit_event())

        counts = await record_store.count_rows(test_session)

        assert counts == {"subscription_events": 0, "visit_events": 1, "revenue_period_summaries": 0}

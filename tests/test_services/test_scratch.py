"""Tests for per-aggregation scratch tables."""

from datetime import datetime

import pytest
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from studio_analytics.analytics.categories import VisitType
from studio_analytics.analytics.pool import PoolVisit
from studio_analytics.services.scratch import read_staged_visits, staged_pool_visits

VISITS = [
    PoolVisit("b@example.com", datetime(2026, 2, 10, 9), VisitType.CLASS_PACK),
    PoolVisit("a@example.com", datetime(2026, 2, 9, 18), VisitType.DROP_IN),
    PoolVisit("c@example.com", datetime(2026, 2, 11, 7), VisitType.INTRO_WEEK),
]


async def _temp_tables(session: AsyncSession) -> list[str]:
    result = await session.execute(text("SELECT name FROM sqlite_temp_master WHERE type = 'table'"))
    return [row[0] for row in result.all()]


class TestStagedPoolVisits:
    """Test scratch table lifecycle."""

    @pytest.mark.asyncio
    async def test_stage_and_read(self, test_session: AsyncSession) -> None:
        """Test staged visits read back in order and filter by type."""
        async with staged_pool_visits(test_session, VISITS) as table:
            assert table.name in await _temp_tables(test_session)

            staged = await read_staged_visits(test_session, table)
            drop_ins = await read_staged_visits(test_session, table, {VisitType.DROP_IN})

        assert [visit.email for visit in staged] == ["a@example.com", "b@example.com", "c@example.com"]
        assert staged[1] == VISITS[0]
        assert drop_ins == [VISITS[1]]

    @pytest.mark.asyncio
    async def test_dropped_on_exit(self, test_session: AsyncSession) -> None:
        """Test the table no longer exists after the block."""
        async with staged_pool_visits(test_session, VISITS) as table:
            name = table.name

        assert name not in await _temp_tables(test_session)

    @pytest.mark.asyncio
    async def test_dropped_when_body_raises(self, test_session: AsyncSession) -> None:
        """Test teardown runs on error and the error propagates."""
        name = None
        with pytest.raises(RuntimeError, match="boom"):
            async with staged_pool_visits(test_session, VISITS) as table:
                name = table.name
                raise RuntimeError("boom")

        assert name is not None
        assert name not in await _temp_tables(test_session)

    @pytest.mark.asyncio
    async def test_each_call_gets_its_own_table(self, test_session: AsyncSession) -> None:
        """Test nested stagings do not collide."""
        async with staged_pool_visits(test_session, VISITS[:1]) as first:
            async with staged_pool_visits(test_session, []) as second:
                assert first.name != second.name
                assert await read_staged_visits(test_session, second) == []
            assert len(await read_staged_visits(test_session, first)) == 1

"""Per-aggregation scratch tables.

The conversion pool reads the same non-subscriber visit subset once per
slice. That subset is materialized into a temporary table that lives only for
one aggregation call. Each call gets its own uniquely named table and it is
dropped on exit, including when the body raises.
"""

import logging
from collections.abc import AsyncIterator, Collection, Iterable
from contextlib import asynccontextmanager
from uuid import uuid4

from sqlalchemy import Column, DateTime, MetaData, String, Table, insert, select
from sqlalchemy.ext.asyncio import AsyncSession

from studio_analytics.analytics.categories import VisitType
from studio_analytics.analytics.pool import PoolVisit

logger = logging.getLogger(__name__)


def _pool_stage_table() -> Table:
    return Table(
        f"pool_stage_{uuid4().hex[:12]}",
        MetaData(),
        Column("email", String(255), nullable=False),
        Column("attended_at", DateTime, nullable=False),
        Column("visit_type", String(32), nullable=False),
        prefixes=["TEMPORARY"],
    )


@asynccontextmanager
async def staged_pool_visits(
    session: AsyncSession, visits: Iterable[PoolVisit]
) -> AsyncIterator[Table]:
    """Stage pool visits into a temporary table for the duration of the block."""
    table = _pool_stage_table()
    conn = await session.connection()
    await conn.run_sync(table.create)
    logger.debug("Scratch table created: %s", table.name)

    try:
        rows = [
            {"email": visit.email, "attended_at": visit.attended_at, "visit_type": visit.visit_type.value}
            for visit in visits
        ]
        if rows:
            await session.execute(insert(table), rows)
        yield table
    finally:
        try:
            await conn.run_sync(table.drop)
            logger.debug("Scratch table dropped: %s", table.name)
        except Exception:
            logger.exception("Failed to drop scratch table %s", table.name)
            raise


async def read_staged_visits(
    session: AsyncSession,
    table: Table,
    visit_types: Collection[VisitType] | None = None,
) -> list[PoolVisit]:
    """Staged visits, optionally restricted to some visit types, oldest first."""
    query = select(table.c.email, table.c.attended_at, table.c.visit_type).order_by(
        table.c.attended_at, table.c.email
    )
    if visit_types is not None:
        query = query.where(table.c.visit_type.in_([vt.value for vt in visit_types]))

    result = await session.execute(query)
    return [
        PoolVisit(email=row.email, attended_at=row.attended_at, visit_type=VisitType(row.visit_type))
        for row in result.all()
    ]

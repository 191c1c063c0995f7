"""Aggregate dashboard statistics endpoints."""

from datetime import datetime
from typing import Annotated, Any

import structlog
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from studio_analytics.core.cache import cache_get, cache_set, invalidate_stats_cache, stats_cache_key
from studio_analytics.core.config import settings
from studio_analytics.db.session import get_session_factory
from studio_analytics.services.aggregator import build_dashboard

router = APIRouter(prefix="/stats", tags=["stats"])
logger = structlog.get_logger()

SessionFactory = Annotated[async_sessionmaker[AsyncSession], Depends(get_session_factory)]


@router.get("")
async def get_stats(
    session_factory: SessionFactory,
    as_of: datetime | None = Query(None, description="Compute as of this moment (defaults to now)"),
    refresh: bool = Query(False, description="Bypass the cached response"),
) -> dict[str, Any]:
    """Get the aggregate dashboard payload.

    Responses are cached per ``as_of`` value until the TTL expires or the
    cache is invalidated after an ingestion run.
    """
    now = (as_of.replace(tzinfo=None) if as_of else datetime.now()).replace(microsecond=0)
    key = stats_cache_key(now.isoformat())

    if not refresh:
        cached = await cache_get(key)
        if cached is not None:
            return cached

    dashboard = await build_dashboard(session_factory, now)
    payload = dashboard.model_dump(mode="json", by_alias=True)
    await cache_set(key, payload, ttl=settings.STATS_CACHE_TTL_SECONDS)
    return payload


@router.post("/invalidate")
async def invalidate_stats() -> dict[str, int]:
    """Drop every cached dashboard payload."""
    deleted = await invalidate_stats_cache()
    logger.info("stats_cache_invalidated", deleted=deleted)
    return {"deleted": deleted}

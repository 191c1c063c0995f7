"""Record store access and dashboard aggregation services."""

from studio_analytics.services.aggregator import build_dashboard

__all__ = ["build_dashboard"]

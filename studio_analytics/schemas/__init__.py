"""Response schemas."""

from studio_analytics.schemas.dashboard import DashboardResponse, SectionStatus

__all__ = ["DashboardResponse", "SectionStatus"]

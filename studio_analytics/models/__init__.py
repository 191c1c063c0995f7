"""SQLAlchemy models."""

from studio_analytics.models.revenue_period import RevenuePeriodSummary
from studio_analytics.models.subscription_event import SubscriptionEvent
from studio_analytics.models.visit_event import VisitEvent

__all__ = [
    "RevenuePeriodSummary",
    "SubscriptionEvent",
    "VisitEvent",
]

"""Point-in-time headcount, MRR and ARPU per category."""

from collections.abc import Sequence

from studio_analytics.analytics.categories import Category, SubscriptionState
from studio_analytics.analytics.records import SubscriptionRecord
from studio_analytics.analytics.rounding import round2
from studio_analytics.schemas.dashboard import CategorySnapshot, SnapshotData

SNAPSHOT_CATEGORIES = (Category.MEMBER, Category.SKY3, Category.TV_EQUIVALENT, Category.UNKNOWN)


def current_subscriptions(subscriptions: Sequence[SubscriptionRecord]) -> list[SubscriptionRecord]:
    """Subscriptions counted in the current snapshot ("Valid Now")."""
    return [sub for sub in subscriptions if sub.state is SubscriptionState.VALID_NOW]


def current_mrr(subscriptions: Sequence[SubscriptionRecord]) -> float:
    return sum(sub.monthly_rate for sub in current_subscriptions(subscriptions))


def compute_snapshot(subscriptions: Sequence[SubscriptionRecord]) -> SnapshotData | None:
    """Headcount counts each person once per category; MRR counts every subscription."""
    current = current_subscriptions(subscriptions)
    if not current:
        return None

    rows: list[CategorySnapshot] = []
    total_active = 0
    total_mrr = 0.0
    for category in SNAPSHOT_CATEGORIES:
        in_category = [sub for sub in current if sub.category is category]
        people = {sub.email or f"#{sub.id}" for sub in in_category}
        mrr = sum(sub.monthly_rate for sub in in_category)
        rows.append(
            CategorySnapshot(
                category=category,
                active_count=len(people),
                mrr=round2(mrr),
                arpu=round2(mrr / len(people)) if people else 0.0,
            )
        )
        total_active += len(people)
        total_mrr += mrr

    return SnapshotData(
        categories=rows,
        total_active=total_active,
        total_mrr=round2(total_mrr),
        overall_arpu=round2(total_mrr / total_active) if total_active else 0.0,
    )

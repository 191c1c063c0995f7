"""Kaplan-Meier style tenure survival for members.

One observation per person: tenure runs from their first member subscription
to their last cancellation, or to ``now`` (censored) while any member
subscription is still active-like.
"""

import statistics
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime

from studio_analytics.analytics.categories import Category
from studio_analytics.analytics.dates import months_between
from studio_analytics.analytics.records import SubscriptionRecord
from studio_analytics.analytics.rounding import round1
from studio_analytics.schemas.dashboard import SurvivalData, SurvivalPoint

MILESTONE_MONTHS = (3, 7, 12)


@dataclass(frozen=True)
class TenureObservation:
    email: str
    tenure_months: float
    censored: bool


def tenure_observations(
    subscriptions: Sequence[SubscriptionRecord],
    now: datetime,
    category: Category = Category.MEMBER,
) -> list[TenureObservation]:
    """Per-person tenure, sorted ascending."""
    by_person: dict[str, list[SubscriptionRecord]] = {}
    for sub in subscriptions:
        if sub.category is category and sub.email:
            by_person.setdefault(sub.email, []).append(sub)

    observations = []
    for email, subs in by_person.items():
        start = min(sub.created_at for sub in subs)
        censored = any(sub.is_active_like for sub in subs)
        cancellations = [sub.canceled_at for sub in subs if sub.canceled_at is not None]
        if censored or not cancellations:
            end, censored = now, True
        else:
            end = min(max(cancellations), now)
        observations.append(
            TenureObservation(
                email=email,
                tenure_months=max(months_between(start, end), 0.0),
                censored=censored,
            )
        )

    observations.sort(key=lambda obs: obs.tenure_months)
    return observations


def survival_curve(observations: Sequence[TenureObservation], horizon: int = 24) -> list[float]:
    """Survival fraction at each month mark ``1..horizon``.

    Every observation with tenure below the mark leaves the risk set; only
    uncensored ones reduce survival.
    """
    ordered = sorted(observations, key=lambda obs: obs.tenure_months)
    at_risk = len(ordered)
    survival = 1.0
    cursor = 0
    curve = []
    for mark in range(1, horizon + 1):
        while cursor < len(ordered) and ordered[cursor].tenure_months < mark:
            if not ordered[cursor].censored and at_risk > 0:
                survival *= (at_risk - 1) / at_risk
            at_risk -= 1
            cursor += 1
        curve.append(survival)
    return curve


def compute_survival(
    subscriptions: Sequence[SubscriptionRecord],
    now: datetime,
    horizon: int = 24,
    cliff_months: int = 3,
) -> SurvivalData | None:
    observations = tenure_observations(subscriptions, now)
    if not observations:
        return None

    curve = survival_curve(observations, horizon)
    points = [SurvivalPoint(month=mark, retained_pct=round1(value * 100)) for mark, value in enumerate(curve, start=1)]

    median = next((mark for mark, value in enumerate(curve, start=1) if value < 0.5), None)
    if median is None:
        median = statistics.median(obs.tenure_months for obs in observations)

    reached_cliff = [obs for obs in observations if obs.tenure_months >= cliff_months]
    past_cliff = [obs for obs in observations if obs.tenure_months >= cliff_months + 1]
    renewal_rate = round1(len(past_cliff) / len(reached_cliff) * 100) if reached_cliff else 0.0
    avg_post_cliff = (
        round1(sum(obs.tenure_months for obs in past_cliff) / len(past_cliff)) if past_cliff else 0.0
    )

    return SurvivalData(
        points=points,
        median_tenure_months=round1(median),
        month4_renewal_rate=renewal_rate,
        avg_post_cliff_tenure_months=avg_post_cliff,
        sample_size=len(observations),
        censored_count=sum(1 for obs in observations if obs.censored),
        milestones=[point for point in points if point.month in MILESTONE_MONTHS],
    )

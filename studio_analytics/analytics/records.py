"""Normalized, immutable views of record store rows.

The store keeps raw export text; these records carry parsed dates, derived
categories and lower-cased identity keys so the engine never re-parses.
"""

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Generic, Protocol, TypeVar

from studio_analytics.analytics.categories import (
    BillingCadence,
    Category,
    SubscriptionState,
    VisitType,
)

T = TypeVar("T")


class Attended(Protocol):
    """Anything recording who attended and when."""

    @property
    def email(self) -> str: ...

    @property
    def attended_at(self) -> datetime: ...


A = TypeVar("A", bound=Attended)


@dataclass(frozen=True)
class SubscriptionRecord:
    """One subscription instance with parsed dates and derived category."""

    id: int
    plan_name: str
    category: Category
    is_annual: bool
    price: float
    monthly_rate: float
    state: SubscriptionState
    email: str
    name: str
    created_at: datetime
    canceled_at: datetime | None = None

    @property
    def cadence(self) -> BillingCadence:
        return BillingCadence.ANNUAL if self.is_annual else BillingCadence.PERIODIC

    @property
    def is_active_like(self) -> bool:
        return self.state.is_active_like

    def was_active_at(self, moment: datetime) -> bool:
        """Active at ``moment`` as reconstructed from lifecycle history."""
        if self.created_at >= moment:
            return False
        return self.is_active_like or (self.canceled_at is not None and self.canceled_at >= moment)

    def canceled_within(self, start: datetime, end: datetime) -> bool:
        return self.canceled_at is not None and start <= self.canceled_at < end


@dataclass(frozen=True)
class VisitRecord:
    """One attended class."""

    email: str
    name: str
    pass_label: str
    visit_type: VisitType
    attended_at: datetime
    is_subscriber_visit: bool

    @property
    def is_in_studio(self) -> bool:
        return self.visit_type is not VisitType.REMOTE


@dataclass(frozen=True)
class RevenuePeriod:
    """Revenue of one (start, end) window summed across categories."""

    start: date
    end: date
    gross: float
    net: float
    locked: bool = False

    @property
    def span_months(self) -> int:
        """Calendar months touched, counting both the start and end month."""
        return (self.end.year - self.start.year) * 12 + self.end.month - self.start.month + 1


@dataclass
class LoadResult(Generic[T]):
    """Records read from one stream plus how many rows failed to normalize."""

    records: list[T]
    skipped: int = 0


def first_visit_per_person(visits: Iterable[A]) -> dict[str, A]:
    """Earliest visit per identity key; visits without one are ignored."""
    first: dict[str, A] = {}
    for visit in visits:
        if not visit.email:
            continue
        current = first.get(visit.email)
        if current is None or visit.attended_at < current.attended_at:
            first[visit.email] = visit
    return first


def visits_within_days(visits: Iterable[A], reference: datetime, days: int) -> list[A]:
    """Visits in the ``days`` days leading up to ``reference`` (exclusive)."""
    window_start = reference - timedelta(days=days)
    return [visit for visit in visits if window_start <= visit.attended_at < reference]

"""Subscription event model - one row per subscription instance."""

from decimal import Decimal

from sqlalchemy import Integer, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from studio_analytics.db.base import Base, TimestampMixin


class SubscriptionEvent(Base, TimestampMixin):
    """Subscription lifecycle record as exported by the booking platform.

    Rows are upserted by the ingestion pipeline when new snapshots arrive;
    only ``state`` and ``canceled_at`` change after the first insert.
    Category and billing cadence are derived from ``plan_name`` at read time.
    """

    __tablename__ = "subscription_events"
    __table_args__ = (
        UniqueConstraint(
            "person_email", "plan_name", "created_at", name="uq_subscription_event_identity"
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    snapshot_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    plan_name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    state: Mapped[str] = mapped_column(
        String(50), nullable=False, index=True
    )  # Valid Now, Pending Cancel, Paused, Past Due, In Trial, Canceled, Invalid
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=Decimal("0"))

    person_email: Mapped[str] = mapped_column(String(255), nullable=False, default="", index=True)
    person_name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Raw export strings, normalized by the analytics engine
    created_at: Mapped[str] = mapped_column(String(64), nullable=False)
    canceled_at: Mapped[str | None] = mapped_column(String(64), nullable=True)

    def __repr__(self) -> str:
        """String representation."""
        return f"<SubscriptionEvent {self.id} - {self.plan_name} ({self.state})>"

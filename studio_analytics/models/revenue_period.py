"""Externally computed revenue summary per period and category."""

from datetime import date
from decimal import Decimal

from sqlalchemy import Boolean, Date, Integer, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from studio_analytics.db.base import Base, TimestampMixin


class RevenuePeriodSummary(Base, TimestampMixin):
    """Gross/fee/net revenue for one revenue category over one period.

    Periods are usually calendar months but may span a full year. Locked
    rows were pinned manually and must not be recomputed by ingestion.
    """

    __tablename__ = "revenue_period_summaries"
    __table_args__ = (
        UniqueConstraint(
            "period_start", "period_end", "category", name="uq_revenue_period_category"
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    period_start: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    period_end: Mapped[date] = mapped_column(Date, nullable=False)
    category: Mapped[str] = mapped_column(String(255), nullable=False)

    gross_revenue: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    fees: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    refunded: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    net_revenue: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0"))

    locked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    def __repr__(self) -> str:
        """String representation."""
        return f"<RevenuePeriodSummary {self.period_start}..{self.period_end} {self.category}>"

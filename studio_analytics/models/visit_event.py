"""Visit event model - one row per attended class."""

from sqlalchemy import Boolean, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from studio_analytics.db.base import Base, TimestampMixin


class VisitEvent(Base, TimestampMixin):
    """Attendance record from the class roster export."""

    __tablename__ = "visit_events"
    __table_args__ = (
        UniqueConstraint(
            "person_email", "attended_at", "event_name", name="uq_visit_event_identity"
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)

    person_email: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    person_name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    event_name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    pass_label: Mapped[str] = mapped_column(String(255), nullable=False, default="")

    # Raw export string, normalized by the analytics engine
    attended_at: Mapped[str] = mapped_column(String(64), nullable=False)

    # True when the visit was covered by an active subscription
    is_subscriber_visit: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, index=True
    )

    def __repr__(self) -> str:
        """String representation."""
        return f"<VisitEvent {self.id} - {self.person_email} @ {self.attended_at}>"

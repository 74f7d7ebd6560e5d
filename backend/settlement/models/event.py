"""
Event model: the scope of tiers, seating charts and staff.

Key design decisions:
- `event_type` distinguishes free registrations (no fees, zero commission)
- `payment_model` decides whether tier capacity consumes organizer credits
"""

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Index, CheckConstraint

from settlement.db.base import Base, TimestampMixin
from settlement.models.enums import EventType, PaymentModel, sql_in


class Event(Base, TimestampMixin):
    __tablename__ = "events"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(255), nullable=False)
    organizer_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    starts_at = Column(DateTime(timezone=True), nullable=True)
    event_type = Column(String(20), nullable=False, default=EventType.TICKETED_EVENT.value)
    payment_model = Column(String(20), nullable=False, default=PaymentModel.PRE_PURCHASE.value)

    __table_args__ = (
        CheckConstraint(f"event_type IN {sql_in(EventType)}", name="check_event_type"),
        CheckConstraint(f"payment_model IN {sql_in(PaymentModel)}", name="check_event_payment_model"),
        # First-event lookup for the credit ledger
        Index("ix_events_organizer_id", "organizer_id", "id"),
    )

    @property
    def is_free(self) -> bool:
        return self.event_type == EventType.FREE_EVENT.value

    @property
    def uses_credits(self) -> bool:
        return self.payment_model == PaymentModel.PRE_PURCHASE.value

    def __repr__(self) -> str:
        return f"<Event(id={self.id}, title={self.title}, organizer={self.organizer_id})>"

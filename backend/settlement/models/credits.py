"""
Organizer credit balance and credit purchases (pre-purchase payment model).

Key design decisions:
- One balance row per organizer; `version` makes check-and-deduct a single
  compare-and-swap
- `credits_remaining` includes `free_credits_remaining`, the unspent part of
  the first-event grant, which only the first event may draw on
- credits_remaining >= 0 is a CHECK constraint, the last line of defence
  against two tier edits both passing the balance check
- Purchases are PENDING until the payment collaborator confirms them
"""

from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, Index, CheckConstraint

from settlement.db.base import Base, TimestampMixin, utcnow
from settlement.models.enums import CreditTransactionStatus, sql_in


class OrganizerCredits(Base, TimestampMixin):
    __tablename__ = "organizer_credits"

    id = Column(Integer, primary_key=True, index=True)
    organizer_id = Column(Integer, ForeignKey("users.id"), nullable=False, unique=True)
    credits_total = Column(Integer, nullable=False, default=0)
    credits_used = Column(Integer, nullable=False, default=0)
    credits_remaining = Column(Integer, nullable=False, default=0)
    free_credits_remaining = Column(Integer, nullable=False, default=0)
    first_event_free_used = Column(Boolean, nullable=False, default=False)
    version = Column(Integer, nullable=False, default=1)

    __table_args__ = (
        CheckConstraint("credits_remaining >= 0", name="check_credits_remaining_non_negative"),
        CheckConstraint("credits_used >= 0", name="check_credits_used_non_negative"),
        CheckConstraint(
            "free_credits_remaining >= 0 AND free_credits_remaining <= credits_remaining",
            name="check_free_credits_within_remaining",
        ),
    )

    @property
    def purchased_credits_remaining(self) -> int:
        return (self.credits_remaining or 0) - (self.free_credits_remaining or 0)

    def __repr__(self) -> str:
        return f"<OrganizerCredits(organizer={self.organizer_id}, remaining={self.credits_remaining})>"


class CreditTransaction(Base):
    __tablename__ = "credit_transactions"

    id = Column(Integer, primary_key=True, index=True)
    organizer_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    event_id = Column(Integer, ForeignKey("events.id"), nullable=True)
    tickets_purchased = Column(Integer, nullable=False)
    price_per_ticket_cents = Column(Integer, nullable=False)
    amount_paid_cents = Column(Integer, nullable=False)
    payment_intent_id = Column(String(255), nullable=False)
    status = Column(String(20), nullable=False, default=CreditTransactionStatus.PENDING.value)
    purchased_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        CheckConstraint(f"status IN {sql_in(CreditTransactionStatus)}", name="check_credit_tx_status"),
        CheckConstraint("tickets_purchased > 0", name="check_credit_tx_quantity_positive"),
        Index("uq_credit_transactions_payment_intent", "payment_intent_id", unique=True),
        Index("ix_credit_transactions_organizer_id", "organizer_id"),
    )

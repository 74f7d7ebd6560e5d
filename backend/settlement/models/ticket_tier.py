"""
Ticket tier: the unit of sellable inventory for one event.

Key design decisions:
- `sold` is a denormalized counter, mutated only by order completion and
  ticket cancellation/refund
- `version` enables compare-and-swap updates on `sold` and `quantity`
- CHECK constraints keep 0 <= sold <= quantity even if a writer skips the
  service layer
"""

from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, Index, CheckConstraint

from settlement.db.base import Base, TimestampMixin


class TicketTier(Base, TimestampMixin):
    __tablename__ = "ticket_tiers"

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(Integer, ForeignKey("events.id"), nullable=False)
    name = Column(String(255), nullable=False)
    description = Column(String(1000), nullable=True)
    price_cents = Column(Integer, nullable=False)
    quantity = Column(Integer, nullable=False)
    sold = Column(Integer, nullable=False, default=0)
    sale_start = Column(DateTime(timezone=True), nullable=True)
    sale_end = Column(DateTime(timezone=True), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)

    # Optimistic locking version counter
    version = Column(Integer, nullable=False, default=1)

    __table_args__ = (
        CheckConstraint("sold >= 0", name="check_tier_sold_non_negative"),
        CheckConstraint("sold <= quantity", name="check_tier_sold_lte_quantity"),
        CheckConstraint("quantity >= 0", name="check_tier_quantity_non_negative"),
        CheckConstraint("price_cents >= 0", name="check_tier_price_non_negative"),
        Index("ix_ticket_tiers_event_id", "event_id"),
    )

    @property
    def available(self) -> int:
        return self.quantity - self.sold

    def __repr__(self) -> str:
        return f"<TicketTier(id={self.id}, name={self.name}, sold={self.sold}/{self.quantity})>"

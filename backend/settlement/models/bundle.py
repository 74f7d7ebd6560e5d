"""
Ticket bundles.

A bundle is a browsing-time grouping of tiers. At settlement it expands
into ordinary tier OrderItems, so it never holds inventory of its own
beyond the `sold` counter bounded by `total_quantity`.
"""

from sqlalchemy import (
    Column, Integer, String, Boolean, DateTime, ForeignKey, Index, CheckConstraint, JSON,
)
from sqlalchemy.orm import relationship

from settlement.db.base import Base, TimestampMixin
from settlement.models.enums import BundleType, sql_in


class TicketBundle(Base, TimestampMixin):
    __tablename__ = "ticket_bundles"

    id = Column(Integer, primary_key=True, index=True)
    bundle_type = Column(String(20), nullable=False, default=BundleType.SINGLE_EVENT.value)
    event_id = Column(Integer, ForeignKey("events.id"), nullable=True)
    event_ids = Column(JSON, nullable=True)
    name = Column(String(255), nullable=False)
    description = Column(String(1000), nullable=True)
    price_cents = Column(Integer, nullable=False)
    regular_price_cents = Column(Integer, nullable=False, default=0)
    total_quantity = Column(Integer, nullable=False)
    sold = Column(Integer, nullable=False, default=0)
    sale_start = Column(DateTime(timezone=True), nullable=True)
    sale_end = Column(DateTime(timezone=True), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    version = Column(Integer, nullable=False, default=1)

    included_tiers = relationship(
        "BundleTier",
        back_populates="bundle",
        order_by="BundleTier.id",
        lazy="selectin",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        CheckConstraint(f"bundle_type IN {sql_in(BundleType)}", name="check_bundle_type"),
        CheckConstraint("sold >= 0", name="check_bundle_sold_non_negative"),
        CheckConstraint("sold <= total_quantity", name="check_bundle_sold_lte_total"),
        Index("ix_ticket_bundles_event_id", "event_id"),
    )

    @property
    def primary_event_id(self):
        if self.event_id is not None:
            return self.event_id
        return (self.event_ids or [None])[0]

    @property
    def savings_cents(self) -> int:
        return self.regular_price_cents - self.price_cents

    def __repr__(self) -> str:
        return f"<TicketBundle(id={self.id}, name={self.name}, sold={self.sold}/{self.total_quantity})>"


class BundleTier(Base):
    __tablename__ = "bundle_tiers"

    id = Column(Integer, primary_key=True, index=True)
    bundle_id = Column(Integer, ForeignKey("ticket_bundles.id"), nullable=False)
    tier_id = Column(Integer, ForeignKey("ticket_tiers.id"), nullable=False)
    tier_name = Column(String(255), nullable=False)
    quantity = Column(Integer, nullable=False, default=1)

    bundle = relationship("TicketBundle", back_populates="included_tiers")

    __table_args__ = (
        CheckConstraint("quantity > 0", name="check_bundle_tier_quantity_positive"),
        Index("ix_bundle_tiers_bundle_id", "bundle_id"),
    )

"""
Order and order items.

Key design decisions:
- Orders are created PENDING and reserve nothing; inventory is consumed only
  when the payment collaborator completes the order
- OrderItem.price_cents is captured at creation so later tier price edits
  never touch an in-flight order
- `position` fixes the pairing of items with `selected_seats`
"""

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Index, CheckConstraint, JSON
from sqlalchemy.orm import relationship

from settlement.db.base import Base, TimestampMixin
from settlement.models.enums import OrderStatus, sql_in


class Order(Base, TimestampMixin):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(Integer, ForeignKey("events.id"), nullable=False)
    buyer_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    buyer_email = Column(String(255), nullable=False)
    buyer_name = Column(String(255), nullable=False)
    status = Column(String(20), nullable=False, default=OrderStatus.PENDING.value)

    subtotal_cents = Column(Integer, nullable=False, default=0)
    platform_fee_cents = Column(Integer, nullable=False, default=0)
    processing_fee_cents = Column(Integer, nullable=False, default=0)
    total_cents = Column(Integer, nullable=False, default=0)

    selected_seats = Column(JSON, nullable=True)
    sold_by_staff_id = Column(Integer, ForeignKey("event_staff.id"), nullable=True)
    referral_code = Column(String(50), nullable=True)
    bundle_id = Column(Integer, ForeignKey("ticket_bundles.id"), nullable=True)
    bundle_quantity = Column(Integer, nullable=True)

    payment_id = Column(String(255), nullable=True)
    payment_method = Column(String(50), nullable=True)
    paid_at = Column(DateTime(timezone=True), nullable=True)
    failure_reason = Column(String(500), nullable=True)

    items = relationship(
        "OrderItem",
        back_populates="order",
        order_by="OrderItem.position",
        lazy="selectin",
    )

    __table_args__ = (
        CheckConstraint(f"status IN {sql_in(OrderStatus)}", name="check_order_status"),
        CheckConstraint("subtotal_cents >= 0", name="check_order_subtotal_non_negative"),
        Index("ix_orders_buyer_id", "buyer_id"),
        Index("ix_orders_event_status", "event_id", "status"),
    )

    @property
    def ticket_count(self) -> int:
        return len(self.items)

    def __repr__(self) -> str:
        return f"<Order(id={self.id}, event={self.event_id}, status={self.status})>"


class OrderItem(Base):
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False)
    ticket_tier_id = Column(Integer, ForeignKey("ticket_tiers.id"), nullable=False)
    bundle_id = Column(Integer, ForeignKey("ticket_bundles.id"), nullable=True)
    position = Column(Integer, nullable=False, default=0)
    price_cents = Column(Integer, nullable=False)

    order = relationship("Order", back_populates="items")

    __table_args__ = (
        CheckConstraint("price_cents >= 0", name="check_order_item_price_non_negative"),
        Index("ix_order_items_order_id", "order_id", "position"),
    )

    def __repr__(self) -> str:
        return f"<OrderItem(id={self.id}, order={self.order_id}, tier={self.ticket_tier_id})>"

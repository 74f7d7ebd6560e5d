"""
Event staff and their sales.

Key design decisions:
- `referral_code` is unique and indexed; it is how an order is attributed
- `tickets_sold`/`commission_earned` are running totals that must always
  equal the sum of the member's StaffSale rows
- StaffSale rows are append-only (audit trail)
- Staff are deactivated, never deleted, so the sales history survives
"""

from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, Index, CheckConstraint

from settlement.db.base import Base, TimestampMixin, utcnow
from settlement.models.enums import CommissionType, StaffRole, sql_in


class EventStaff(Base, TimestampMixin):
    __tablename__ = "event_staff"

    id = Column(Integer, primary_key=True, index=True)
    organizer_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    event_id = Column(Integer, ForeignKey("events.id"), nullable=True)  # NULL = organizer-wide
    staff_user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False)
    role = Column(String(20), nullable=False, default=StaffRole.SELLER.value)
    commission_type = Column(String(20), nullable=True)
    commission_value = Column(Integer, nullable=True)
    referral_code = Column(String(50), nullable=False)
    tickets_sold = Column(Integer, nullable=False, default=0)
    commission_earned = Column(Integer, nullable=False, default=0)
    cash_collected_cents = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)
    version = Column(Integer, nullable=False, default=1)

    __table_args__ = (
        CheckConstraint(f"role IN {sql_in(StaffRole)}", name="check_staff_role"),
        CheckConstraint(
            f"commission_type IS NULL OR commission_type IN {sql_in(CommissionType)}",
            name="check_staff_commission_type",
        ),
        Index("uq_event_staff_referral_code", "referral_code", unique=True),
        Index("ix_event_staff_organizer_id", "organizer_id"),
    )

    def __repr__(self) -> str:
        return f"<EventStaff(id={self.id}, code={self.referral_code}, active={self.is_active})>"


class StaffSale(Base):
    __tablename__ = "staff_sales"

    id = Column(Integer, primary_key=True, index=True)
    staff_id = Column(Integer, ForeignKey("event_staff.id"), nullable=False)
    event_id = Column(Integer, ForeignKey("events.id"), nullable=False)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False)
    ticket_count = Column(Integer, nullable=False)
    sale_amount_cents = Column(Integer, nullable=False)
    commission_cents = Column(Integer, nullable=False)
    payment_method = Column(String(50), nullable=True)
    cash_collected_cents = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        Index("ix_staff_sales_staff_id", "staff_id"),
        Index("uq_staff_sales_order_id", "order_id", unique=True),
    )

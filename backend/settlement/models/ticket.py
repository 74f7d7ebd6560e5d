"""
Ticket: minted 1:1 from an OrderItem when its order completes.

Key design decisions:
- `ticket_code` uniqueness is enforced by a unique index, not assumed
- `order_item_id` is unique so a retried completion can never mint twice
- `event_id` is the tier's event: a multi-event bundle order mints tickets
  for several events
"""

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Index, CheckConstraint

from settlement.db.base import Base, TimestampMixin
from settlement.models.enums import TicketStatus, sql_in


class Ticket(Base, TimestampMixin):
    __tablename__ = "tickets"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False)
    order_item_id = Column(Integer, ForeignKey("order_items.id"), nullable=False, unique=True)
    event_id = Column(Integer, ForeignKey("events.id"), nullable=False)
    ticket_tier_id = Column(Integer, ForeignKey("ticket_tiers.id"), nullable=False)
    attendee_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    attendee_email = Column(String(255), nullable=False)
    attendee_name = Column(String(255), nullable=False)
    ticket_code = Column(String(64), nullable=False)
    status = Column(String(20), nullable=False, default=TicketStatus.VALID.value)
    sold_by_staff_id = Column(Integer, ForeignKey("event_staff.id"), nullable=True)
    scanned_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        CheckConstraint(f"status IN {sql_in(TicketStatus)}", name="check_ticket_status"),
        Index("uq_tickets_ticket_code", "ticket_code", unique=True),
        Index("ix_tickets_order_id", "order_id"),
        Index("ix_tickets_attendee_id", "attendee_id"),
    )

    def __repr__(self) -> str:
        return f"<Ticket(id={self.id}, code={self.ticket_code}, status={self.status})>"

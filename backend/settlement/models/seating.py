"""
Seating chart and seat reservations.

Key design decisions:
- The chart stores the Section -> Row/Table -> Seat tree as JSON. A seat's
  `status` inside that tree is a cached display value only.
- SeatReservation rows are the source of truth for availability. The partial
  unique index on (chart_id, slot_key) WHERE status = 'RESERVED' makes the
  database reject a second holder of the same seat slot.
- `slot_key` canonicalises row-based and table-based seats into one key,
  since NULL row/table columns would never collide in a composite index.
"""

from sqlalchemy import (
    Column, Integer, String, Boolean, DateTime, ForeignKey, Index, CheckConstraint, JSON, text,
)

from settlement.db.base import Base, TimestampMixin, utcnow
from settlement.models.enums import ReservationStatus, SeatingStyle, sql_in


class SeatingChart(Base, TimestampMixin):
    __tablename__ = "seating_charts"

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(Integer, ForeignKey("events.id"), nullable=False)
    name = Column(String(255), nullable=False)
    seating_style = Column(String(20), nullable=False, default=SeatingStyle.ROW_BASED.value)
    sections = Column(JSON, nullable=False, default=list)
    total_seats = Column(Integer, nullable=False, default=0)
    reserved_seats = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)

    __table_args__ = (
        CheckConstraint("reserved_seats >= 0", name="check_chart_reserved_non_negative"),
        CheckConstraint(f"seating_style IN {sql_in(SeatingStyle)}", name="check_chart_seating_style"),
        Index("ix_seating_charts_event_id", "event_id"),
    )

    def __repr__(self) -> str:
        return f"<SeatingChart(id={self.id}, event={self.event_id}, reserved={self.reserved_seats}/{self.total_seats})>"


class SeatReservation(Base):
    __tablename__ = "seat_reservations"

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(Integer, ForeignKey("events.id"), nullable=False)
    chart_id = Column(Integer, ForeignKey("seating_charts.id"), nullable=False)
    ticket_id = Column(Integer, ForeignKey("tickets.id"), nullable=False)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False)
    section_id = Column(String(100), nullable=False)
    row_id = Column(String(100), nullable=True)
    row_label = Column(String(50), nullable=True)
    table_id = Column(String(100), nullable=True)
    table_number = Column(String(50), nullable=True)
    seat_id = Column(String(100), nullable=False)
    seat_number = Column(String(50), nullable=False)
    slot_key = Column(String(320), nullable=False)
    status = Column(String(20), nullable=False, default=ReservationStatus.RESERVED.value)
    reserved_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    released_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        CheckConstraint(f"status IN {sql_in(ReservationStatus)}", name="check_reservation_status"),
        # At most one holder per seat slot
        Index(
            "uq_seat_reservations_active_slot",
            "chart_id",
            "slot_key",
            unique=True,
            postgresql_where=text("status = 'RESERVED'"),
            sqlite_where=text("status = 'RESERVED'"),
        ),
        Index("ix_seat_reservations_ticket_id", "ticket_id"),
        Index("ix_seat_reservations_chart_status", "chart_id", "status"),
    )

    def __repr__(self) -> str:
        return f"<SeatReservation(id={self.id}, chart={self.chart_id}, slot={self.slot_key}, status={self.status})>"

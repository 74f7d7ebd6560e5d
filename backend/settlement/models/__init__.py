from settlement.models.user import User
from settlement.models.event import Event
from settlement.models.ticket_tier import TicketTier
from settlement.models.seating import SeatingChart, SeatReservation
from settlement.models.order import Order, OrderItem
from settlement.models.ticket import Ticket
from settlement.models.bundle import TicketBundle, BundleTier
from settlement.models.staff import EventStaff, StaffSale
from settlement.models.credits import OrganizerCredits, CreditTransaction

__all__ = [
    "User", "Event", "TicketTier",
    "SeatingChart", "SeatReservation",
    "Order", "OrderItem", "Ticket",
    "TicketBundle", "BundleTier",
    "EventStaff", "StaffSale",
    "OrganizerCredits", "CreditTransaction",
]

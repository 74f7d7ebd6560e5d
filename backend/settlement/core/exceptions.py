"""
Categorical domain errors for the settlement engine.

Every error carries a stable ``code`` (what happened) and belongs to one
category (how the caller should react):

  CapacityExceeded   retry with a smaller quantity or later
  Conflict           re-query availability, then re-attempt
  AuthorizationError fatal to the request
  StateError         caller logic error, surfaced as-is
  ReferralError      hard failure of explicit commission recording
  CreditError        allocation blocked, nothing applied
  NotFound           referenced entity does not exist

``detail`` holds the structured data a UI needs to render an actionable
message (blocking tier/seat, remaining quantity). Storage exceptions are
never exposed through this hierarchy.
"""

from typing import Any


class SettlementError(Exception):
    """Base class for all domain errors."""

    category = "SettlementError"
    status_code = 400
    code = "SettlementError"

    def __init__(self, message: str, **detail: Any) -> None:
        super().__init__(message)
        self.message = message
        self.detail = detail

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"

    def to_dict(self) -> dict:
        return {
            "error": self.category,
            "code": self.code,
            "message": self.message,
            "detail": self.detail,
        }


# --- Categories ---


class CapacityExceeded(SettlementError):
    category = "CapacityExceeded"
    status_code = 409


class Conflict(SettlementError):
    category = "Conflict"
    status_code = 409


class AuthorizationError(SettlementError):
    category = "AuthorizationError"
    status_code = 403


class StateError(SettlementError):
    category = "StateError"
    status_code = 400


class ReferralError(SettlementError):
    category = "ReferralError"
    status_code = 422


class CreditError(SettlementError):
    category = "CreditError"
    status_code = 402


class NotFound(SettlementError):
    category = "NotFound"
    status_code = 404

    def __init__(self, entity: str, entity_id: Any) -> None:
        super().__init__(f"{entity} {entity_id} not found", entity=entity, id=entity_id)
        self.code = f"{entity}NotFound"


# --- CapacityExceeded ---


class TierSoldOutOfBounds(CapacityExceeded):
    code = "TierSoldOutOfBounds"

    def __init__(self, tier_id: int, requested: int, available: int) -> None:
        super().__init__(
            f"Only {available} tickets left in tier {tier_id}, requested {requested}",
            tier_id=tier_id,
            requested=requested,
            available=available,
        )


class InsufficientTierQuantity(CapacityExceeded):
    code = "InsufficientTierQuantity"

    def __init__(self, tier_name: str, needed: int, available: int) -> None:
        super().__init__(
            f"Not enough {tier_name} tickets available",
            tier_name=tier_name,
            needed=needed,
            available=available,
        )


class InsufficientBundleQuantity(CapacityExceeded):
    code = "InsufficientBundleQuantity"

    def __init__(self, bundle_id: int, requested: int, remaining: int) -> None:
        plural = "" if remaining == 1 else "s"
        super().__init__(
            f"Only {remaining} bundle{plural} remaining",
            bundle_id=bundle_id,
            requested=requested,
            remaining=remaining,
        )


# --- Conflict ---


class SeatAlreadyReserved(Conflict):
    code = "SeatAlreadyReserved"

    def __init__(self, seat_number: str, section_id: str, seat_id: str) -> None:
        super().__init__(
            f"Seat {seat_number} is already reserved",
            seat_number=seat_number,
            section_id=section_id,
            seat_id=seat_id,
        )


class SeatConflict(Conflict):
    """A seat chosen at checkout was taken before the order completed."""

    code = "SeatConflict"

    def __init__(self, order_id: int, seat_number: str, section_id: str, seat_id: str) -> None:
        super().__init__(
            f"Seat {seat_number} was taken before order {order_id} completed",
            order_id=order_id,
            seat_number=seat_number,
            section_id=section_id,
            seat_id=seat_id,
        )


class SeatNotSelectable(Conflict):
    code = "SeatNotSelectable"

    def __init__(self, seat_number: str, seat_type: str) -> None:
        super().__init__(
            f"Seat {seat_number} cannot be sold",
            seat_number=seat_number,
            seat_type=seat_type,
        )


class ConcurrentModification(Conflict):
    code = "ConcurrentModification"

    def __init__(self, entity: str, entity_id: Any = None) -> None:
        super().__init__(
            f"{entity} was modified concurrently, please try again",
            entity=entity,
            id=entity_id,
        )


# --- AuthorizationError ---


class NotAuthorized(AuthorizationError):
    code = "NotAuthorized"

    def __init__(self, action: str) -> None:
        super().__init__(f"Not authorized to {action}", action=action)


# --- StateError ---


class TierHasSales(StateError):
    code = "TierHasSales"

    def __init__(self, tier_id: int, sold: int) -> None:
        super().__init__(
            "Cannot delete ticket tier with sold tickets",
            tier_id=tier_id,
            sold=sold,
        )


class TierQuantityBelowSold(StateError):
    code = "TierQuantityBelowSold"

    def __init__(self, tier_id: int, quantity: int, sold: int) -> None:
        super().__init__(
            f"Tier quantity cannot drop below the {sold} tickets already sold",
            tier_id=tier_id,
            quantity=quantity,
            sold=sold,
        )


class TierInUse(StateError):
    code = "TierInUse"

    def __init__(self, tier_id: int, pending_orders: int) -> None:
        super().__init__(
            "Cannot delete ticket tier referenced by pending orders",
            tier_id=tier_id,
            pending_orders=pending_orders,
        )


class TierInBundle(StateError):
    code = "TierInBundle"

    def __init__(self, tier_id: int, bundle_ids: list[int]) -> None:
        super().__init__(
            "Cannot delete ticket tier included in active bundles",
            tier_id=tier_id,
            bundle_ids=bundle_ids,
        )


class TierNotOnSale(StateError):
    code = "TierNotOnSale"

    def __init__(self, tier_name: str) -> None:
        super().__init__(f"{tier_name} tickets are not on sale", tier_name=tier_name)


class BundleNotOnSale(StateError):
    code = "BundleNotOnSale"

    def __init__(self, bundle_id: int, reason: str, message: str) -> None:
        super().__init__(message, bundle_id=bundle_id, reason=reason)


class InvalidBundle(StateError):
    code = "InvalidBundle"

    def __init__(self, message: str, **detail: Any) -> None:
        super().__init__(message, **detail)


class TicketAlreadyScanned(StateError):
    code = "TicketAlreadyScanned"

    def __init__(self, ticket_id: int) -> None:
        super().__init__("Scanned tickets cannot be cancelled or refunded", ticket_id=ticket_id)


class TicketNotActive(StateError):
    code = "TicketNotActive"

    def __init__(self, ticket_id: int, status: str) -> None:
        super().__init__(f"Ticket is {status}", ticket_id=ticket_id, status=status)


class OrderNotPending(StateError):
    code = "OrderNotPending"

    def __init__(self, order_id: int, status: str, action: str) -> None:
        super().__init__(
            f"Cannot {action} an order that is {status}",
            order_id=order_id,
            status=status,
            action=action,
        )


class ChartHasReservations(StateError):
    code = "ChartHasReservations"

    def __init__(self, chart_id: int) -> None:
        super().__init__("Cannot delete seating chart with active reservations", chart_id=chart_id)


class InvalidSeatSelection(StateError):
    code = "InvalidSeatSelection"

    def __init__(self, message: str, **detail: Any) -> None:
        super().__init__(message, **detail)


class InvalidStaffUpdate(StateError):
    code = "InvalidStaffUpdate"

    def __init__(self, message: str, **detail: Any) -> None:
        super().__init__(message, **detail)


# --- ReferralError ---


class InvalidReferralCode(ReferralError):
    code = "InvalidReferralCode"

    def __init__(self, referral_code: str) -> None:
        super().__init__("Invalid referral code", referral_code=referral_code)


class StaffInactive(ReferralError):
    code = "StaffInactive"

    def __init__(self, staff_id: int) -> None:
        super().__init__("Staff member is not active", staff_id=staff_id)


class OrderAttributedElsewhere(ReferralError):
    code = "OrderAttributedElsewhere"

    def __init__(self, order_id: int, sold_by_staff_id: int, staff_id: int) -> None:
        super().__init__(
            "Order is already attributed to another staff member",
            order_id=order_id,
            sold_by_staff_id=sold_by_staff_id,
            staff_id=staff_id,
        )


class ReferralEventMismatch(ReferralError):
    code = "ReferralEventMismatch"

    def __init__(self, staff_id: int, staff_event_id: Any, order_event_id: int) -> None:
        super().__init__(
            "Referral code not valid for this event",
            staff_id=staff_id,
            staff_event_id=staff_event_id,
            order_event_id=order_event_id,
        )


# --- CreditError ---


class InsufficientCredits(CreditError):
    code = "InsufficientCredits"

    def __init__(self, organizer_id: int, available: int, needed: int) -> None:
        super().__init__(
            f"Insufficient credits. Available: {available}, Needed: {needed}",
            organizer_id=organizer_id,
            available=available,
            needed=needed,
        )

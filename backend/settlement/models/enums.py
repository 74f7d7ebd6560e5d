"""
String enums for status and type columns.

Stored as plain strings and guarded by CHECK constraints, so the values
read the same in SQL, logs and API payloads.
"""

import enum


class EventType(str, enum.Enum):
    TICKETED_EVENT = "TICKETED_EVENT"
    FREE_EVENT = "FREE_EVENT"


class PaymentModel(str, enum.Enum):
    PRE_PURCHASE = "PRE_PURCHASE"
    PAY_AS_SELL = "PAY_AS_SELL"


class OrderStatus(str, enum.Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"


class TicketStatus(str, enum.Enum):
    VALID = "VALID"
    SCANNED = "SCANNED"
    CANCELLED = "CANCELLED"
    REFUNDED = "REFUNDED"


class ReservationStatus(str, enum.Enum):
    RESERVED = "RESERVED"
    RELEASED = "RELEASED"
    CANCELLED = "CANCELLED"


class SeatType(str, enum.Enum):
    STANDARD = "STANDARD"
    WHEELCHAIR = "WHEELCHAIR"
    COMPANION = "COMPANION"
    VIP = "VIP"
    BLOCKED = "BLOCKED"
    STANDING = "STANDING"
    PARKING = "PARKING"
    TENT = "TENT"


class SeatingStyle(str, enum.Enum):
    ROW_BASED = "ROW_BASED"
    TABLE_BASED = "TABLE_BASED"
    MIXED = "MIXED"


class BundleType(str, enum.Enum):
    SINGLE_EVENT = "SINGLE_EVENT"
    MULTI_EVENT = "MULTI_EVENT"


class CommissionType(str, enum.Enum):
    PERCENTAGE = "PERCENTAGE"
    FIXED = "FIXED"


class StaffRole(str, enum.Enum):
    SELLER = "SELLER"
    SCANNER = "SCANNER"


class CashPaymentMethod(str, enum.Enum):
    CASH = "CASH"
    CASH_APP = "CASH_APP"


class CreditTransactionStatus(str, enum.Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"


def sql_in(enum_cls: type[enum.Enum]) -> str:
    """Render the members of an enum as a SQL IN list for CHECK constraints."""
    return "(" + ", ".join(f"'{member.value}'" for member in enum_cls) + ")"

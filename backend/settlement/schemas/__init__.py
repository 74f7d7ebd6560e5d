from settlement.schemas.event import EventCreate, EventResponse, EventListResponse
from settlement.schemas.tier import TierCreate, TierResize, TierResponse
from settlement.schemas.seating import (
    SeatingChartCreate, SeatingChartResponse, SeatSelection, ChartAvailabilityResponse,
)
from settlement.schemas.bundle import BundleCreate, BundleDetails, BundleAvailabilityResponse
from settlement.schemas.order import (
    OrderCreate, BundleOrderCreate, OrderComplete, OrderFail, OrderResponse,
    TicketResponse, CompletionResponse, TicketScan,
)
from settlement.schemas.staff import StaffCreate, StaffResponse, RecordSaleRequest, StaffSaleResponse
from settlement.schemas.credits import (
    CreditPurchaseCreate, CreditPurchaseConfirm, CreditBalanceResponse, CreditTransactionResponse,
)

__all__ = [
    "EventCreate", "EventResponse", "EventListResponse",
    "TierCreate", "TierResize", "TierResponse",
    "SeatingChartCreate", "SeatingChartResponse", "SeatSelection", "ChartAvailabilityResponse",
    "BundleCreate", "BundleDetails", "BundleAvailabilityResponse",
    "OrderCreate", "BundleOrderCreate", "OrderComplete", "OrderFail", "OrderResponse",
    "TicketResponse", "CompletionResponse", "TicketScan",
    "StaffCreate", "StaffResponse", "RecordSaleRequest", "StaffSaleResponse",
    "CreditPurchaseCreate", "CreditPurchaseConfirm", "CreditBalanceResponse", "CreditTransactionResponse",
]

"""
Pydantic schemas for seating charts and seat selections.

A chart is a Section -> Row|Table -> Seat tree. A seat selection names one
slot of that tree, by row or by table.
"""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field, model_validator

from settlement.models.enums import SeatType, SeatingStyle


class SeatIn(BaseModel):
    id: str = Field(..., min_length=1, max_length=100)
    number: str = Field(..., min_length=1, max_length=50)
    type: SeatType = SeatType.STANDARD
    status: str = "AVAILABLE"


class RowIn(BaseModel):
    id: str = Field(..., min_length=1, max_length=100)
    label: str = Field(..., min_length=1, max_length=50)
    seats: list[SeatIn] = []


class TableIn(BaseModel):
    id: str = Field(..., min_length=1, max_length=100)
    number: str = Field(..., min_length=1, max_length=50)
    seats: list[SeatIn] = []


class SectionIn(BaseModel):
    id: str = Field(..., min_length=1, max_length=100)
    name: str = Field(..., min_length=1, max_length=255)
    rows: list[RowIn] = []
    tables: list[TableIn] = []


class SeatingChartCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    seating_style: SeatingStyle = SeatingStyle.ROW_BASED
    sections: list[SectionIn] = Field(..., min_length=1)


class SeatSelection(BaseModel):
    section_id: str
    row_id: Optional[str] = None
    row_label: Optional[str] = None
    table_id: Optional[str] = None
    table_number: Optional[str] = None
    seat_id: str
    seat_number: str

    @model_validator(mode="after")
    def check_row_or_table(self):
        if (self.row_id is None) == (self.table_id is None):
            raise ValueError("A seat is selected by exactly one of row_id or table_id")
        return self

    @property
    def slot_key(self) -> str:
        container = f"row:{self.row_id}" if self.row_id is not None else f"table:{self.table_id}"
        return f"{self.section_id}/{container}/{self.seat_id}"


class SeatingChartResponse(BaseModel):
    id: int
    event_id: int
    name: str
    seating_style: SeatingStyle
    sections: list[SectionIn]
    total_seats: int
    reserved_seats: int
    is_active: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class SeatAvailability(BaseModel):
    section_id: str
    row_id: Optional[str] = None
    row_label: Optional[str] = None
    table_id: Optional[str] = None
    table_number: Optional[str] = None
    seat_id: str
    seat_number: str
    seat_type: SeatType
    available: bool


class ChartAvailabilityResponse(BaseModel):
    chart_id: int
    total_seats: int
    reserved_seats: int
    seats: list[SeatAvailability]

"""
Seat ledger: reservations of individual seats on a seating chart.

Per seat slot: AVAILABLE -> RESERVED -> RELEASED | CANCELLED, and a
RELEASED slot is AVAILABLE again.

Availability is decided by SeatReservation rows only. The `status` stored
on each seat inside the chart JSON is kept in step for display, but nothing
here ever reads it to decide whether a seat is free.

Two layers stop a double sale of one seat:
  1. reserve() runs inside the chart's critical section ("chart:<id>")
     and checks for an existing RESERVED row first
  2. the partial unique index on (chart_id, slot_key) WHERE status =
     'RESERVED' rejects the insert of any writer that got past the lock
"""

import copy
from typing import Iterable, Iterator, Optional, Union

from sqlalchemy import select, update, delete, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from settlement.core.exceptions import (
    ChartHasReservations,
    InvalidSeatSelection,
    NotFound,
    SeatAlreadyReserved,
    SeatNotSelectable,
)
from settlement.core.logging import get_logger
from settlement.core.metrics import record_seat_conflict, seats_released
from settlement.core.security import Caller, require_owner
from settlement.db.base import utcnow
from settlement.models.enums import ReservationStatus, SeatType
from settlement.models.seating import SeatingChart, SeatReservation
from settlement.schemas.seating import SeatSelection, SeatingChartCreate
from settlement.services.event_service import get_event
from settlement.services.unit_of_work import chart_key, load_fresh, unit_of_work

logger = get_logger(__name__)

SeatLike = Union[SeatSelection, dict]


def slot_key_for(section_id: str, seat_id: str, row_id: Optional[str] = None, table_id: Optional[str] = None) -> str:
    container = f"row:{row_id}" if row_id is not None else f"table:{table_id}"
    return f"{section_id}/{container}/{seat_id}"


def iter_seats(sections: list[dict]) -> Iterator[dict]:
    """Flatten the Section -> Row|Table -> Seat tree."""
    for section in sections:
        for row in section.get("rows") or []:
            for seat in row.get("seats") or []:
                yield {
                    "section_id": section["id"],
                    "row_id": row["id"],
                    "row_label": row.get("label"),
                    "table_id": None,
                    "table_number": None,
                    "seat_id": seat["id"],
                    "seat_number": seat["number"],
                    "seat_type": seat.get("type", SeatType.STANDARD.value),
                }
        for table in section.get("tables") or []:
            for seat in table.get("seats") or []:
                yield {
                    "section_id": section["id"],
                    "row_id": None,
                    "row_label": None,
                    "table_id": table["id"],
                    "table_number": table.get("number"),
                    "seat_id": seat["id"],
                    "seat_number": seat["number"],
                    "seat_type": seat.get("type", SeatType.STANDARD.value),
                }


def count_seats(sections: list[dict]) -> int:
    return sum(1 for _ in iter_seats(sections))


def _as_selection(seat: SeatLike) -> SeatSelection:
    if isinstance(seat, SeatSelection):
        return seat
    return SeatSelection.model_validate(seat)


def find_seat(chart: SeatingChart, seat: SeatLike) -> dict:
    """
    Locate a selected seat in the chart tree.

    Raises:
        NotFound (SeatNotFound) if the chart has no such seat
        SeatNotSelectable if the seat is BLOCKED
    """
    selection = _as_selection(seat)
    wanted = selection.slot_key
    for candidate in iter_seats(chart.sections or []):
        key = slot_key_for(
            candidate["section_id"], candidate["seat_id"], candidate["row_id"], candidate["table_id"]
        )
        if key != wanted:
            continue
        if candidate["seat_type"] == SeatType.BLOCKED.value:
            raise SeatNotSelectable(candidate["seat_number"], candidate["seat_type"])
        return candidate
    raise NotFound("Seat", selection.seat_id)


def _mark_seats(chart: SeatingChart, slot_keys: set[str], status: str) -> None:
    """Mirror reservation state into the chart's display status."""
    sections = copy.deepcopy(chart.sections or [])
    for section in sections:
        for container_name, prefix in (("rows", "row"), ("tables", "table")):
            for container in section.get(container_name) or []:
                for seat in container.get("seats") or []:
                    key = f"{section['id']}/{prefix}:{container['id']}/{seat['id']}"
                    if key in slot_keys:
                        seat["status"] = status
    # Reassign so the JSON column is flagged dirty
    chart.sections = sections


async def create_seating_chart(
    db: AsyncSession,
    caller: Caller,
    event_id: int,
    chart_data: SeatingChartCreate,
) -> SeatingChart:
    event = await get_event(db, event_id)
    require_owner(caller, event.organizer_id, "manage seating for this event")

    sections = [section.model_dump(mode="json") for section in chart_data.sections]
    keys = [
        slot_key_for(s["section_id"], s["seat_id"], s["row_id"], s["table_id"]) for s in iter_seats(sections)
    ]
    if len(keys) != len(set(keys)):
        raise InvalidSeatSelection("Seat ids must be unique within their row or table")

    async with unit_of_work(db):
        chart = SeatingChart(
            event_id=event.id,
            name=chart_data.name,
            seating_style=chart_data.seating_style.value,
            sections=sections,
            total_seats=len(keys),
            reserved_seats=0,
            is_active=True,
        )
        db.add(chart)
        await db.flush()

    logger.info("seating_chart_created", chart_id=chart.id, event_id=event.id, total_seats=chart.total_seats)
    return chart


async def get_chart(db: AsyncSession, chart_id: int) -> SeatingChart:
    return await load_fresh(db, SeatingChart, chart_id, "SeatingChart")


async def get_event_chart(db: AsyncSession, event_id: int) -> SeatingChart:
    """The event's active seating chart (the oldest one if there are several)."""
    result = await db.execute(
        select(SeatingChart)
        .where(SeatingChart.event_id == event_id, SeatingChart.is_active.is_(True))
        .order_by(SeatingChart.id)
        .limit(1)
        .execution_options(populate_existing=True)
    )
    chart = result.scalar_one_or_none()
    if chart is None:
        raise NotFound("SeatingChart", f"for event {event_id}")
    return chart


async def find_reserved_slots(db: AsyncSession, chart_id: int, seats: Iterable[SeatLike]) -> set[str]:
    """Slot keys among `seats` that currently hold a RESERVED row."""
    keys = {_as_selection(seat).slot_key for seat in seats}
    if not keys:
        return set()
    result = await db.execute(
        select(SeatReservation.slot_key).where(
            SeatReservation.chart_id == chart_id,
            SeatReservation.status == ReservationStatus.RESERVED.value,
            SeatReservation.slot_key.in_(keys),
        )
    )
    return set(result.scalars().all())


async def reserve(
    db: AsyncSession,
    chart_id: int,
    ticket_id: int,
    order_id: int,
    seats: list[SeatLike],
) -> list[SeatReservation]:
    """
    Reserve `seats` for one ticket. Caller holds the chart lock and owns
    the transaction.

    Raises:
        SeatAlreadyReserved naming the first seat that is taken
    """
    chart = await get_chart(db, chart_id)
    selections = [_as_selection(seat) for seat in seats]

    taken = await find_reserved_slots(db, chart_id, selections)
    seen: set[str] = set()
    for selection in selections:
        if selection.slot_key in taken or selection.slot_key in seen:
            record_seat_conflict("reserve")
            logger.warning(
                "seat_conflict",
                chart_id=chart_id,
                seat_id=selection.seat_id,
                section_id=selection.section_id,
                ticket_id=ticket_id,
            )
            raise SeatAlreadyReserved(selection.seat_number, selection.section_id, selection.seat_id)
        seen.add(selection.slot_key)

    reservations = []
    for selection in selections:
        seat = find_seat(chart, selection)
        reservation = SeatReservation(
            event_id=chart.event_id,
            chart_id=chart_id,
            ticket_id=ticket_id,
            order_id=order_id,
            section_id=selection.section_id,
            row_id=selection.row_id,
            row_label=seat["row_label"],
            table_id=selection.table_id,
            table_number=seat["table_number"],
            seat_id=selection.seat_id,
            seat_number=seat["seat_number"],
            slot_key=selection.slot_key,
            status=ReservationStatus.RESERVED.value,
        )
        db.add(reservation)
        reservations.append(reservation)

    try:
        await db.flush()
    except IntegrityError as e:
        # A writer outside the chart lock got there first
        record_seat_conflict("reserve")
        first = selections[0]
        logger.warning("seat_conflict_at_flush", chart_id=chart_id, error=str(e.orig))
        raise SeatAlreadyReserved(first.seat_number, first.section_id, first.seat_id) from e

    await db.execute(
        update(SeatingChart)
        .where(SeatingChart.id == chart_id)
        .values(reserved_seats=SeatingChart.reserved_seats + len(reservations))
        .execution_options(synchronize_session=False)
    )
    chart = await get_chart(db, chart_id)
    _mark_seats(chart, seen, ReservationStatus.RESERVED.value)
    await db.flush()

    logger.info("seats_reserved", chart_id=chart_id, ticket_id=ticket_id, order_id=order_id, count=len(reservations))
    return reservations


async def reserve_seats(
    db: AsyncSession,
    chart_id: int,
    ticket_id: int,
    order_id: int,
    seats: list[SeatLike],
) -> list[SeatReservation]:
    """Reserve seats as one atomic operation."""
    async with unit_of_work(db, [chart_key(chart_id)]):
        return await reserve(db, chart_id, ticket_id, order_id, seats)


async def charts_for_ticket(db: AsyncSession, ticket_id: int) -> set[int]:
    result = await db.execute(
        select(SeatReservation.chart_id).where(
            SeatReservation.ticket_id == ticket_id,
            SeatReservation.status == ReservationStatus.RESERVED.value,
        )
    )
    return set(result.scalars().all())


async def release(db: AsyncSession, ticket_id: int) -> int:
    """
    Flip the ticket's RESERVED rows to RELEASED. Caller holds the chart
    locks. Returns how many seats were released; a second call returns 0.
    """
    result = await db.execute(
        select(SeatReservation)
        .where(
            SeatReservation.ticket_id == ticket_id,
            SeatReservation.status == ReservationStatus.RESERVED.value,
        )
        .execution_options(populate_existing=True)
    )
    reservations = list(result.scalars().all())
    if not reservations:
        return 0

    now = utcnow()
    per_chart: dict[int, set[str]] = {}
    for reservation in reservations:
        reservation.status = ReservationStatus.RELEASED.value
        reservation.released_at = now
        per_chart.setdefault(reservation.chart_id, set()).add(reservation.slot_key)
    await db.flush()

    for chart_id, slot_keys in per_chart.items():
        chart = await get_chart(db, chart_id)
        chart.reserved_seats = max(0, chart.reserved_seats - len(slot_keys))
        _mark_seats(chart, slot_keys, "AVAILABLE")
    await db.flush()

    seats_released.inc(len(reservations))
    logger.info("seats_released", ticket_id=ticket_id, count=len(reservations))
    return len(reservations)


async def release_seats(db: AsyncSession, ticket_id: int) -> int:
    """Release a ticket's seats as one atomic operation. Idempotent."""
    chart_ids = await charts_for_ticket(db, ticket_id)
    if not chart_ids:
        return 0
    async with unit_of_work(db, [chart_key(chart_id) for chart_id in chart_ids]):
        return await release(db, ticket_id)


async def delete_seating_chart(db: AsyncSession, caller: Caller, chart_id: int) -> None:
    """Delete a chart; refused while any seat on it is RESERVED."""
    chart = await get_chart(db, chart_id)
    event = await get_event(db, chart.event_id)
    require_owner(caller, event.organizer_id, "manage seating for this event")

    async with unit_of_work(db, [chart_key(chart_id)]):
        active = await db.execute(
            select(func.count(SeatReservation.id)).where(
                SeatReservation.chart_id == chart_id,
                SeatReservation.status == ReservationStatus.RESERVED.value,
            )
        )
        if active.scalar() > 0:
            raise ChartHasReservations(chart_id)

        await db.execute(delete(SeatReservation).where(SeatReservation.chart_id == chart_id))
        await db.execute(delete(SeatingChart).where(SeatingChart.id == chart_id))

    logger.info("seating_chart_deleted", chart_id=chart_id, event_id=event.id)


async def get_chart_availability(db: AsyncSession, chart_id: int) -> dict:
    """Per-seat availability derived from reservations, not the chart's display status."""
    chart = await get_chart(db, chart_id)
    result = await db.execute(
        select(SeatReservation.slot_key).where(
            SeatReservation.chart_id == chart_id,
            SeatReservation.status == ReservationStatus.RESERVED.value,
        )
    )
    reserved = set(result.scalars().all())

    seats = []
    for seat in iter_seats(chart.sections or []):
        key = slot_key_for(seat["section_id"], seat["seat_id"], seat["row_id"], seat["table_id"])
        seats.append({
            **seat,
            "available": key not in reserved and seat["seat_type"] != SeatType.BLOCKED.value,
        })

    return {
        "chart_id": chart.id,
        "total_seats": chart.total_seats,
        "reserved_seats": len(reserved),
        "seats": seats,
    }

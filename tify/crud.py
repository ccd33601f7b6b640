"""CRUD helpers for events, layouts, and tickets."""

from __future__ import annotations

import logging
import secrets
from datetime import datetime
from decimal import Decimal
from typing import Any, Sequence

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session, selectinload

from .errors import Conflict, InvalidRequest, NotFound
from .models import (
    EVENT_STATUSES,
    TICKET_CANCELLED,
    TICKET_REFUNDED,
    TICKET_USED,
    Event,
    Seat,
    Ticket,
    TicketPurchase,
    TicketTransfer,
    Zone,
)
from .utils import to_money, to_naive_utc, utcnow

logger = logging.getLogger("uvicorn.error")

EVENT_UPDATABLE_FIELDS = {
    "title",
    "description",
    "location",
    "start_date",
    "end_date",
    "status",
}
UNUSABLE_TICKET_STATUSES = {TICKET_USED, TICKET_REFUNDED, TICKET_CANCELLED}
RECENT_SALES_LIMIT = 10


def _now() -> datetime:
    return utcnow()


def _normalize_status(status: str | None) -> str:
    normalized = (status or "DRAFT").strip().upper()
    if normalized not in EVENT_STATUSES:
        raise InvalidRequest(f"Invalid event status {status!r}")
    return normalized


def get_event(session: Session, event_id: str) -> Event:
    event = session.get(Event, event_id)
    if event is None:
        raise NotFound("Event not found")
    return event


def list_events(session: Session) -> list[tuple[Event, int, int]]:
    """Return events newest first with their zone and seat counts."""
    zone_count = (
        select(func.count(Zone.id))
        .where(Zone.event_id == Event.id)
        .correlate(Event)
        .scalar_subquery()
    )
    seat_count = (
        select(func.count(Seat.id))
        .where(Seat.event_id == Event.id)
        .correlate(Event)
        .scalar_subquery()
    )
    stmt = select(Event, zone_count, seat_count).order_by(Event.created_at.desc())
    return [tuple(row) for row in session.execute(stmt)]


def create_event(
    session: Session,
    *,
    title: str,
    start_date: datetime,
    end_date: datetime | None = None,
    description: str | None = None,
    location: str | None = None,
    status: str | None = None,
) -> Event:
    """Create and persist a new event."""
    if not (title or "").strip():
        raise InvalidRequest("Title is required")
    event = Event(
        admin_token=secrets.token_urlsafe(32),
        title=title.strip(),
        description=description,
        location=location,
        start_date=to_naive_utc(start_date),
        end_date=to_naive_utc(end_date),
        status=_normalize_status(status),
        created_at=_now(),
        updated_at=_now(),
    )
    session.add(event)
    session.flush()
    return event


def update_event(session: Session, event: Event, **fields: Any) -> Event:
    """Apply a partial update; unknown keys are ignored."""
    for key, value in fields.items():
        if key not in EVENT_UPDATABLE_FIELDS:
            continue
        if key == "status":
            value = _normalize_status(value)
        elif key in {"start_date", "end_date"}:
            if key == "start_date" and value is None:
                continue
            value = to_naive_utc(value)
        elif key == "title" and not (value or "").strip():
            raise InvalidRequest("Title is required")
        setattr(event, key, value)
    event.updated_at = _now()
    session.add(event)
    session.flush()
    return event


def delete_event(session: Session, event: Event) -> None:
    """Delete an event together with its layout, sales, and transfers."""
    ticket_ids = select(Ticket.id).where(Ticket.event_id == event.id)
    session.execute(
        delete(TicketTransfer)
        .where(TicketTransfer.ticket_id.in_(ticket_ids))
        .execution_options(synchronize_session=False)
    )
    # Children first; foreign keys point from tickets to seats, zones, purchases.
    for model in (Ticket, TicketPurchase, Seat, Zone):
        session.execute(
            delete(model)
            .where(model.event_id == event.id)
            .execution_options(synchronize_session=False)
        )
    session.execute(
        delete(Event)
        .where(Event.id == event.id)
        .execution_options(synchronize_session=False)
    )
    session.expunge(event)


def count_active_tickets(session: Session, event_id: str) -> int:
    stmt = select(func.count(Ticket.id)).where(
        Ticket.event_id == event_id, Ticket.status != TICKET_CANCELLED
    )
    return session.scalar(stmt) or 0


def _int_or_default(raw: Any, default: int) -> int:
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except (TypeError, ValueError) as exc:
        raise InvalidRequest(f"Invalid number {raw!r}") from exc


def _optional_capacity(raw: Any) -> int | None:
    if raw is None or raw == "":
        return None
    value = _int_or_default(raw, 0)
    if value < 0:
        raise InvalidRequest("Capacity cannot be negative")
    return value


def _price(raw: Any, default: Decimal | None) -> Decimal | None:
    if raw is None or raw == "":
        return default
    try:
        return to_money(raw)
    except ValueError as exc:
        raise InvalidRequest(str(exc)) from exc


def replace_layout(
    session: Session,
    event: Event,
    *,
    zones: Sequence[dict],
    seats: Sequence[dict],
) -> Event:
    """Replace an event's zones and seats.

    Seats refer to zones by the client-side zone ``id``; those ids are mapped
    to the newly created zones and seats with an unknown zone are skipped.
    """
    if count_active_tickets(session, event.id):
        raise Conflict("Cannot rebuild the layout of an event with sold tickets")

    session.execute(delete(Seat).where(Seat.event_id == event.id))
    session.execute(delete(Zone).where(Zone.event_id == event.id))
    session.expire(event, ["zones", "seats"])

    zone_map: dict[str, str] = {}
    for raw_zone in zones:
        zone = Zone(
            event_id=event.id,
            name=raw_zone.get("name") or "Zone",
            color=raw_zone.get("color"),
            price=_price(raw_zone.get("price"), Decimal("0.00")),
            rows=_int_or_default(raw_zone.get("rows"), 0),
            cols=_int_or_default(raw_zone.get("cols"), 0),
            capacity=_optional_capacity(raw_zone.get("capacity")),
            type=raw_zone.get("type") or "SALE",
            created_at=_now(),
        )
        session.add(zone)
        session.flush()
        if raw_zone.get("id") is not None:
            zone_map[str(raw_zone["id"])] = zone.id

    created_seats = 0
    for raw_seat in seats:
        zone_id = zone_map.get(str(raw_seat.get("zone_id")))
        if zone_id is None:
            continue
        session.add(
            Seat(
                event_id=event.id,
                zone_id=zone_id,
                row_label=str(raw_seat.get("row_label") or ""),
                col_label=str(raw_seat.get("col_label") or ""),
                status=raw_seat.get("status") or "AVAILABLE",
                type=raw_seat.get("type") or "REGULAR",
                price=_price(raw_seat.get("price"), None),
            )
        )
        created_seats += 1
    event.updated_at = _now()
    session.flush()
    logger.info(
        "Layout for event %s rebuilt: %d zones, %d seats",
        event.id,
        len(zones),
        created_seats,
    )
    return event


def zone_ticket_counts(session: Session, event_id: str) -> dict[str, int]:
    stmt = (
        select(Ticket.zone_id, func.count(Ticket.id))
        .where(Ticket.event_id == event_id, Ticket.status != TICKET_CANCELLED)
        .group_by(Ticket.zone_id)
    )
    return {zone_id: count for zone_id, count in session.execute(stmt)}


def list_event_tickets(session: Session, event_id: str) -> Sequence[Ticket]:
    stmt = (
        select(Ticket)
        .where(Ticket.event_id == event_id)
        .options(selectinload(Ticket.zone), selectinload(Ticket.seat))
        .order_by(Ticket.purchase_date.desc())
    )
    return session.scalars(stmt).all()


def list_tickets_by_email(session: Session, email: str) -> Sequence[Ticket]:
    """Return the non-cancelled tickets currently owned by ``email``."""
    stmt = (
        select(Ticket)
        .where(Ticket.owner_email == email, Ticket.status != TICKET_CANCELLED)
        .options(
            selectinload(Ticket.event),
            selectinload(Ticket.zone),
            selectinload(Ticket.seat),
        )
        .order_by(Ticket.purchase_date.desc())
    )
    return session.scalars(stmt).all()


def check_in_ticket(session: Session, event_id: str, code: str) -> Ticket:
    """Mark a ticket as used, looking it up by id or QR code."""
    if not code:
        raise InvalidRequest("Ticket code is required")
    stmt = select(Ticket).where(
        Ticket.event_id == event_id,
        (Ticket.id == code) | (Ticket.qr_code == code),
    )
    ticket = session.scalars(stmt).first()
    if ticket is None:
        raise NotFound("Ticket not found")
    if ticket.status in UNUSABLE_TICKET_STATUSES:
        raise InvalidRequest(f"Invalid ticket (status: {ticket.status})")
    ticket.status = TICKET_USED
    ticket.check_in_time = _now()
    session.add(ticket)
    session.flush()
    logger.info("Ticket %s checked in for event %s", ticket.id, event_id)
    return ticket


def event_stats(session: Session, event_id: str) -> dict[str, Any]:
    """Revenue and sales figures over the event's non-cancelled tickets."""
    tickets = session.scalars(
        select(Ticket)
        .where(Ticket.event_id == event_id, Ticket.status != TICKET_CANCELLED)
        .order_by(Ticket.purchase_date.desc())
    ).all()
    zones = session.scalars(
        select(Zone).where(Zone.event_id == event_id).order_by(Zone.created_at)
    ).all()

    revenue_by_zone = []
    for zone in zones:
        zone_tickets = [t for t in tickets if t.zone_id == zone.id]
        revenue_by_zone.append(
            {
                "id": zone.id,
                "name": zone.name,
                "count": len(zone_tickets),
                "revenue": sum((t.price for t in zone_tickets), Decimal("0.00")),
                "capacity": zone.capacity or (zone.rows * zone.cols) or 0,
            }
        )
    return {
        "total_revenue": sum((t.price for t in tickets), Decimal("0.00")),
        "tickets_sold": len(tickets),
        "revenue_by_zone": revenue_by_zone,
        "recent_sales": list(tickets[:RECENT_SALES_LIMIT]),
    }

"""Ticket sale engine and ticket transfers.

A purchase turns a cart of seat and general-admission items into tickets in a
single transaction. Zone capacity and seat availability are the only shared
mutable state between concurrent buyers, and both are guarded by the store:

* the transaction takes the write lock up front on SQLite (``BEGIN
  IMMEDIATE``) and reads zone and seat rows ``FOR UPDATE`` elsewhere;
* zone capacity is recounted from committed tickets inside the transaction,
  never cached;
* seats flip to SOLD through a conditional ``UPDATE ... WHERE status =
  'AVAILABLE'`` whose row count must be 1.

Any failure rolls back the purchase record, seat changes, and tickets
together.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass
from decimal import Decimal
from typing import Sequence, Union

from sqlalchemy import func, select, update

from . import database
from .errors import (
    CapacityExceeded,
    Conflict,
    InvalidRequest,
    NotFound,
    Unauthorized,
)
from .models import (
    SEAT_AVAILABLE,
    SEAT_SOLD,
    TICKET_CANCELLED,
    TICKET_VALID,
    Event,
    Seat,
    Ticket,
    TicketPurchase,
    TicketTransfer,
    Zone,
)
from .utils import generate_ticket_code, money_sum, to_money, utcnow

logger = logging.getLogger("uvicorn.error")


@dataclass(frozen=True)
class SeatItem:
    """A cart entry for one specific seat."""

    seat_id: str
    zone_id: str
    price: Decimal


@dataclass(frozen=True)
class GeneralItem:
    """A cart entry consuming one unit of a zone's capacity."""

    zone_id: str
    price: Decimal


CartItem = Union[SeatItem, GeneralItem]


@dataclass(frozen=True)
class Customer:
    full_name: str
    email: str
    phone: str | None = None
    doc_id: str | None = None


@dataclass(frozen=True)
class NewOwner:
    name: str
    email: str
    phone: str | None = None
    doc_id: str | None = None


@dataclass(frozen=True)
class PurchaseResult:
    purchase: TicketPurchase
    tickets: list[Ticket]

    @property
    def summary(self) -> dict:
        return {
            "id": self.purchase.id,
            "billing_name": self.purchase.billing_name,
            "total_amount": self.purchase.total_amount,
            "ticket_count": len(self.tickets),
        }


@dataclass(frozen=True)
class TransferResult:
    ticket: Ticket
    previous_owner_name: str
    previous_owner_email: str


def _check_zone_capacity(session, general_items: Sequence[GeneralItem]) -> None:
    """Refuse the whole batch if any zone would exceed its capacity."""
    requested = Counter(item.zone_id for item in general_items)
    if not requested:
        return
    zone_ids = list(requested)
    zones = {
        zone.id: zone
        for zone in session.scalars(
            select(Zone).where(Zone.id.in_(zone_ids)).with_for_update()
        )
    }
    for zone_id in zone_ids:
        if zone_id not in zones:
            raise NotFound(f"Zone not found (ID: {zone_id})")

    # Counted in its own statement once the zone rows are locked, so sales
    # committed while this buyer waited for the lock are included.
    sold = dict(
        session.execute(
            select(Ticket.zone_id, func.count(Ticket.id))
            .where(Ticket.zone_id.in_(zone_ids), Ticket.status != TICKET_CANCELLED)
            .group_by(Ticket.zone_id)
        ).all()
    )
    for zone_id, count in requested.items():
        zone = zones[zone_id]
        sold_count = sold.get(zone_id, 0)
        if zone.capacity is not None and sold_count + count > zone.capacity:
            raise CapacityExceeded(
                zone.name,
                remaining=max(0, zone.capacity - sold_count),
                requested=count,
            )


def _lock_seats(session, seat_items: Sequence[SeatItem]) -> dict[str, Seat]:
    if not seat_items:
        return {}
    seat_ids = [item.seat_id for item in seat_items]
    stmt = select(Seat).where(Seat.id.in_(seat_ids)).with_for_update()
    seats = {seat.id: seat for seat in session.scalars(stmt)}
    for seat_id in seat_ids:
        if seat_id not in seats:
            raise NotFound(f"Seat {seat_id} not found")
    for seat_id in seat_ids:
        seat = seats[seat_id]
        if seat.status != SEAT_AVAILABLE:
            raise Conflict(f"Seat {seat.label} is no longer available")
    return seats


def _mark_seat_sold(session, seat: Seat, *, holder_name: str, code: str) -> None:
    result = session.execute(
        update(Seat)
        .where(Seat.id == seat.id, Seat.status == SEAT_AVAILABLE)
        .values(status=SEAT_SOLD, holder_name=holder_name, ticket_code=code)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise Conflict(f"Seat {seat.label} is no longer available")


def purchase_tickets(
    event_id: str,
    items: Sequence[CartItem],
    customer: Customer,
    *,
    deadline: database.Deadline | None = None,
) -> PurchaseResult:
    """Sell every item in the cart or nothing at all.

    Tickets come back with seat items first, then general items, each group
    in cart order.
    """
    if not items:
        raise InvalidRequest("No items in cart")
    deadline = deadline or database.Deadline()
    seat_items = [item for item in items if isinstance(item, SeatItem)]
    general_items = [item for item in items if isinstance(item, GeneralItem)]

    with database.transaction(lock=True, deadline=deadline) as session:
        if session.get(Event, event_id) is None:
            raise NotFound("Event not found")

        _check_zone_capacity(session, general_items)
        deadline.check("checking zone capacity")

        purchase = TicketPurchase(
            event_id=event_id,
            billing_name=customer.full_name,
            billing_email=customer.email,
            billing_phone=customer.phone or "",
            billing_doc_id=customer.doc_id or "",
            total_amount=money_sum(item.price for item in items),
        )
        session.add(purchase)
        session.flush()

        seats = _lock_seats(session, seat_items)
        deadline.check("locking seats")

        staged: list[tuple[Seat | None, Ticket]] = []
        for item in [*seat_items, *general_items]:
            code = generate_ticket_code(event_id, item.zone_id)
            seat = seats[item.seat_id] if isinstance(item, SeatItem) else None
            ticket = Ticket(
                event_id=event_id,
                zone_id=item.zone_id,
                seat_id=seat.id if seat is not None else None,
                purchase_id=purchase.id,
                customer_name=customer.full_name,
                customer_email=customer.email,
                owner_name=customer.full_name,
                owner_email=customer.email,
                owner_phone=customer.phone or None,
                owner_doc_id=customer.doc_id or None,
                price=to_money(item.price),
                status=TICKET_VALID,
                qr_code=code,
            )
            staged.append((seat, ticket))

        for seat, ticket in staged:
            if seat is not None:
                _mark_seat_sold(
                    session, seat, holder_name=customer.full_name, code=ticket.qr_code
                )
        tickets = [ticket for _, ticket in staged]
        session.add_all(tickets)
        session.flush()
        deadline.check("creating tickets")

    logger.info(
        "Purchase %s for event %s: %d tickets, total %s",
        purchase.id,
        event_id,
        len(tickets),
        purchase.total_amount,
    )
    return PurchaseResult(purchase=purchase, tickets=tickets)


def transfer_ticket(
    ticket_id: str,
    new_owner: NewOwner,
    current_owner_email: str | None = None,
) -> TransferResult:
    """Move a ticket to a new owner and append the audit record."""
    with database.transaction(lock=True) as session:
        ticket = session.scalars(
            select(Ticket).where(Ticket.id == ticket_id).with_for_update()
        ).first()
        if ticket is None:
            raise NotFound("Ticket not found")
        if current_owner_email and ticket.owner_email != current_owner_email:
            raise Unauthorized("Unauthorized transfer")

        previous_name = ticket.owner_name
        previous_email = ticket.owner_email
        session.add(
            TicketTransfer(
                ticket_id=ticket.id,
                previous_owner_name=previous_name,
                previous_owner_email=previous_email,
                new_owner_name=new_owner.name,
                new_owner_email=new_owner.email,
                transferred_at=utcnow(),
            )
        )
        ticket.owner_name = new_owner.name
        ticket.owner_email = new_owner.email
        ticket.owner_phone = new_owner.phone or None
        ticket.owner_doc_id = new_owner.doc_id or None
        session.flush()

    logger.info(
        "Ticket %s transferred from %s to %s", ticket_id, previous_email, new_owner.email
    )
    return TransferResult(
        ticket=ticket,
        previous_owner_name=previous_name,
        previous_owner_email=previous_email,
    )

"""FastAPI application for Tify Events."""

from __future__ import annotations

import logging
import tomllib
from contextlib import asynccontextmanager
from decimal import Decimal
from importlib.metadata import PackageNotFoundError, version as pkg_version
from pathlib import Path
from typing import Annotated, Literal, Union

from fastapi import BackgroundTasks, Depends, FastAPI, HTTPException, Query, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import AliasChoices, BaseModel, Field
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import crud
from .config import settings
from .database import SessionLocal
from .errors import InvalidRequest, TicketingError
from .models import Event, Meta, Seat, Ticket, TicketPurchase, Zone
from .notifications import dispatch, notify_purchase, notify_transfer
from .sales import (
    Customer,
    GeneralItem,
    NewOwner,
    SeatItem,
    purchase_tickets,
    transfer_ticket,
)
from .scheduler import start_scheduler, stop_scheduler
from .storage import init_db
from .utils import parse_iso_datetime

# Use uvicorn's error logger so messages get the level prefix in the default log
# format.
logger = logging.getLogger("uvicorn.error")


def _load_app_version() -> str:
    """Return the current package version, falling back to pyproject for dev runs."""
    try:
        return pkg_version("tify-events")
    except PackageNotFoundError:
        pyproject_path = Path(__file__).resolve().parent.parent / "pyproject.toml"
        if pyproject_path.exists():
            data = tomllib.loads(pyproject_path.read_text())
            project = data.get("project") or {}
            return str(project.get("version") or "dev")
    return "dev"


APP_VERSION = _load_app_version()


@asynccontextmanager
async def lifespan(_: FastAPI):
    init_db()
    start_scheduler()
    try:
        yield
    finally:
        stop_scheduler()


app = FastAPI(title="Tify Events", version=APP_VERSION, lifespan=lifespan)


def get_db():
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


# -------- Error handling --------


@app.exception_handler(TicketingError)
async def ticketing_error_handler(request: Request, exc: TicketingError):
    return JSONResponse({"error": str(exc)}, status_code=exc.status_code)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse({"error": exc.detail}, status_code=exc.status_code)


@app.exception_handler(OperationalError)
async def operational_error_handler(request: Request, exc: OperationalError):
    raw = str(exc.orig) if getattr(exc, "orig", None) else str(exc)
    if "database is locked" in raw.lower():
        logger.error(
            "Database is locked while handling %s %s",
            request.method,
            request.url.path,
        )
        detail = "The database is busy at the moment. Please try again."
    else:
        logger.error(
            "Operational database error on %s %s: %s",
            request.method,
            request.url.path,
            raw,
        )
        detail = "We hit a database issue. Please try again."
    return JSONResponse({"error": detail}, status_code=500)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        {"error": "Missing required fields", "details": jsonable_encoder(exc.errors())},
        status_code=400,
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception):
    """Gracefully handle unexpected errors."""
    logger.exception(
        "Unhandled error while processing %s %s", request.method, request.url.path
    )
    return JSONResponse({"error": "Internal server error"}, status_code=500)


# -------- Auth --------


def _get_bearer_token(request: Request) -> str | None:
    auth_header = request.headers.get("authorization") or ""
    if not auth_header.lower().startswith("bearer "):
        return None
    token = auth_header.split(" ", 1)[1].strip()
    return token or None


def _require_admin_header(event: Event, request: Request, db: Session) -> str:
    token = _get_bearer_token(request)
    if not token:
        raise HTTPException(status_code=401, detail="Missing bearer token")
    if token == event.admin_token:
        return token
    root = db.get(Meta, settings.root_token_key)
    if not root or token != root.value:
        raise HTTPException(status_code=403, detail="Invalid admin token")
    return token


# -------- Payloads --------


class SeatItemPayload(BaseModel):
    type: Literal["seat"]
    id: str = Field(validation_alias=AliasChoices("id", "seatId"))
    zone_id: str = Field(validation_alias=AliasChoices("zoneId", "zone_id"))
    price: Decimal = Field(ge=0, decimal_places=2)

    def to_item(self) -> SeatItem:
        return SeatItem(seat_id=self.id, zone_id=self.zone_id, price=self.price)


class GeneralItemPayload(BaseModel):
    type: Literal["general"]
    zone_id: str = Field(validation_alias=AliasChoices("zoneId", "zone_id"))
    price: Decimal = Field(ge=0, decimal_places=2)

    def to_item(self) -> GeneralItem:
        return GeneralItem(zone_id=self.zone_id, price=self.price)


CartItemPayload = Annotated[
    Union[SeatItemPayload, GeneralItemPayload], Field(discriminator="type")
]


class CustomerPayload(BaseModel):
    full_name: str = Field(
        min_length=1, validation_alias=AliasChoices("fullName", "full_name")
    )
    email: str = Field(min_length=3)
    phone: str | None = None
    doc_id: str | None = Field(None, validation_alias=AliasChoices("docId", "doc_id"))

    def to_customer(self) -> Customer:
        return Customer(
            full_name=self.full_name,
            email=self.email,
            phone=self.phone,
            doc_id=self.doc_id,
        )


class PurchasePayload(BaseModel):
    items: list[CartItemPayload] = Field(default_factory=list)
    customer: CustomerPayload


class NewOwnerPayload(BaseModel):
    name: str = Field(min_length=1)
    email: str = Field(min_length=3)
    phone: str | None = None
    doc_id: str | None = Field(None, validation_alias=AliasChoices("docId", "doc_id"))


class TransferPayload(BaseModel):
    ticket_id: str = Field(
        min_length=1, validation_alias=AliasChoices("ticketId", "ticket_id")
    )
    new_owner: NewOwnerPayload = Field(
        validation_alias=AliasChoices("newOwner", "new_owner")
    )
    current_owner_email: str | None = Field(
        None, validation_alias=AliasChoices("currentOwnerEmail", "current_owner_email")
    )


class EventCreatePayload(BaseModel):
    title: str
    description: str | None = None
    location: str | None = None
    start_date: str = Field(
        validation_alias=AliasChoices("startDate", "start_date"),
        description="ISO datetime string",
    )
    end_date: str | None = Field(
        None, validation_alias=AliasChoices("endDate", "end_date")
    )
    status: str | None = None


class EventUpdatePayload(BaseModel):
    title: str | None = None
    description: str | None = None
    location: str | None = None
    start_date: str | None = Field(
        None, validation_alias=AliasChoices("startDate", "start_date")
    )
    end_date: str | None = Field(
        None, validation_alias=AliasChoices("endDate", "end_date")
    )
    status: str | None = None


class ZoneLayoutPayload(BaseModel):
    id: str | int | None = None
    name: str = "Zone"
    color: str | None = None
    price: Decimal | None = None
    rows: int = 0
    cols: int = 0
    capacity: int | None = None
    type: str = "SALE"


class SeatLayoutPayload(BaseModel):
    zone_id: str | int = Field(validation_alias=AliasChoices("zoneId", "zone_id"))
    row_label: str = Field(validation_alias=AliasChoices("rowLabel", "row_label"))
    col_label: str | int = Field(validation_alias=AliasChoices("colLabel", "col_label"))
    status: str = "AVAILABLE"
    type: str = "REGULAR"
    price: Decimal | None = None


class LayoutPayload(BaseModel):
    zones: list[ZoneLayoutPayload] = Field(default_factory=list)
    seats: list[SeatLayoutPayload] = Field(default_factory=list)


class CheckInPayload(BaseModel):
    code: str = ""


# -------- Serializers --------


def _money(value) -> float | None:
    return float(value) if value is not None else None


def _iso(value) -> str | None:
    return value.isoformat() if value else None


def _parse_date_field(name: str, raw: str | None):
    try:
        return parse_iso_datetime(raw)
    except ValueError as exc:
        raise InvalidRequest(f"Invalid {name}; use ISO8601 format") from exc


def _serialize_seat(seat: Seat):
    return {
        "id": seat.id,
        "eventId": seat.event_id,
        "zoneId": seat.zone_id,
        "rowLabel": seat.row_label,
        "colLabel": seat.col_label,
        "status": seat.status,
        "type": seat.type,
        "price": _money(seat.price),
        "holderName": seat.holder_name,
        "ticketCode": seat.ticket_code,
    }


def _serialize_zone(zone: Zone, *, ticket_count: int | None = None):
    payload = {
        "id": zone.id,
        "eventId": zone.event_id,
        "name": zone.name,
        "color": zone.color,
        "price": _money(zone.price),
        "rows": zone.rows,
        "cols": zone.cols,
        "capacity": zone.capacity,
        "type": zone.type,
        "createdAt": _iso(zone.created_at),
    }
    if ticket_count is not None:
        payload["seats"] = [_serialize_seat(seat) for seat in zone.seats]
        payload["ticketCount"] = ticket_count
    return payload


def _serialize_event(
    event: Event,
    *,
    include_layout: bool = False,
    zone_counts: dict[str, int] | None = None,
    counts: tuple[int, int] | None = None,
):
    payload = {
        "id": event.id,
        "title": event.title,
        "description": event.description,
        "location": event.location,
        "startDate": _iso(event.start_date),
        "endDate": _iso(event.end_date),
        "status": event.status,
        "createdAt": _iso(event.created_at),
        "updatedAt": _iso(event.updated_at),
    }
    if counts is not None:
        payload["zoneCount"], payload["seatCount"] = counts
    if include_layout:
        zone_counts = zone_counts or {}
        payload["zones"] = [
            _serialize_zone(zone, ticket_count=zone_counts.get(zone.id, 0))
            for zone in event.zones
        ]
        payload["seats"] = [_serialize_seat(seat) for seat in event.seats]
    return payload


def _serialize_ticket(ticket: Ticket, *, include_relations: bool = False):
    payload = {
        "id": ticket.id,
        "eventId": ticket.event_id,
        "zoneId": ticket.zone_id,
        "seatId": ticket.seat_id,
        "purchaseId": ticket.purchase_id,
        "customerName": ticket.customer_name,
        "customerEmail": ticket.customer_email,
        "ownerName": ticket.owner_name,
        "ownerEmail": ticket.owner_email,
        "ownerPhone": ticket.owner_phone,
        "ownerDocId": ticket.owner_doc_id,
        "price": _money(ticket.price),
        "status": ticket.status,
        "qrCode": ticket.qr_code,
        "purchaseDate": _iso(ticket.purchase_date),
        "checkInTime": _iso(ticket.check_in_time),
    }
    if include_relations:
        payload["zone"] = (
            {"name": ticket.zone.name, "color": ticket.zone.color}
            if ticket.zone
            else None
        )
        payload["seat"] = (
            {"rowLabel": ticket.seat.row_label, "colLabel": ticket.seat.col_label}
            if ticket.seat
            else None
        )
    return payload


def _serialize_purchase(purchase: TicketPurchase):
    return {
        "id": purchase.id,
        "eventId": purchase.event_id,
        "billingName": purchase.billing_name,
        "billingEmail": purchase.billing_email,
        "totalAmount": _money(purchase.total_amount),
        "createdAt": _iso(purchase.created_at),
    }


# -------- Health --------


@app.get("/healthz", include_in_schema=False)
def healthz():
    return {"status": "ok", "version": APP_VERSION}


# -------- Events --------


@app.get("/api/events")
def api_list_events(db: Session = Depends(get_db)):
    return [
        _serialize_event(event, counts=(zone_count, seat_count))
        for event, zone_count, seat_count in crud.list_events(db)
    ]


@app.post("/api/events", status_code=201)
def api_create_event(payload: EventCreatePayload, db: Session = Depends(get_db)):
    start_date = _parse_date_field("startDate", payload.start_date)
    if start_date is None:
        raise InvalidRequest("startDate is required")
    event = crud.create_event(
        db,
        title=payload.title,
        description=payload.description,
        location=payload.location,
        start_date=start_date,
        end_date=_parse_date_field("endDate", payload.end_date),
        status=payload.status,
    )
    return {
        "event": _serialize_event(event, include_layout=True),
        "adminToken": event.admin_token,
    }


@app.get("/api/events/{event_id}")
def api_get_event(event_id: str, db: Session = Depends(get_db)):
    event = crud.get_event(db, event_id)
    return _serialize_event(
        event,
        include_layout=True,
        zone_counts=crud.zone_ticket_counts(db, event.id),
    )


@app.put("/api/events/{event_id}")
def api_update_event(
    event_id: str,
    payload: EventUpdatePayload,
    request: Request,
    db: Session = Depends(get_db),
):
    event = crud.get_event(db, event_id)
    _require_admin_header(event, request, db)
    data = payload.model_dump(exclude_unset=True)
    for key, label in (("start_date", "startDate"), ("end_date", "endDate")):
        if key in data:
            data[key] = _parse_date_field(label, data[key])
    crud.update_event(db, event, **data)
    return _serialize_event(
        event,
        include_layout=True,
        zone_counts=crud.zone_ticket_counts(db, event.id),
    )


@app.delete("/api/events/{event_id}")
def api_delete_event(event_id: str, request: Request, db: Session = Depends(get_db)):
    event = crud.get_event(db, event_id)
    _require_admin_header(event, request, db)
    crud.delete_event(db, event)
    logger.info("Event %s deleted", event_id)
    return {"success": True, "message": "Event deleted successfully"}


@app.put("/api/events/{event_id}/layout")
def api_update_layout(
    event_id: str,
    payload: LayoutPayload,
    request: Request,
    db: Session = Depends(get_db),
):
    event = crud.get_event(db, event_id)
    _require_admin_header(event, request, db)
    crud.replace_layout(
        db,
        event,
        zones=[zone.model_dump() for zone in payload.zones],
        seats=[seat.model_dump() for seat in payload.seats],
    )
    return _serialize_event(event, include_layout=True, zone_counts={})


@app.get("/api/events/{event_id}/tickets")
def api_event_tickets(event_id: str, request: Request, db: Session = Depends(get_db)):
    event = crud.get_event(db, event_id)
    _require_admin_header(event, request, db)
    return [
        _serialize_ticket(ticket, include_relations=True)
        for ticket in crud.list_event_tickets(db, event.id)
    ]


@app.post("/api/events/{event_id}/check-in")
def api_check_in(
    event_id: str,
    payload: CheckInPayload,
    request: Request,
    db: Session = Depends(get_db),
):
    event = crud.get_event(db, event_id)
    _require_admin_header(event, request, db)
    ticket = crud.check_in_ticket(db, event.id, payload.code.strip())
    return {
        "success": True,
        "message": "Access granted",
        "ticket": _serialize_ticket(ticket),
    }


@app.get("/api/events/{event_id}/stats")
def api_event_stats(event_id: str, request: Request, db: Session = Depends(get_db)):
    event = crud.get_event(db, event_id)
    _require_admin_header(event, request, db)
    stats = crud.event_stats(db, event.id)
    return {
        "totalRevenue": _money(stats["total_revenue"]),
        "ticketsSold": stats["tickets_sold"],
        "revenueByZone": [
            {**zone, "revenue": _money(zone["revenue"])}
            for zone in stats["revenue_by_zone"]
        ],
        "recentSales": [_serialize_ticket(t) for t in stats["recent_sales"]],
    }


@app.post("/api/events/{event_id}/purchase", status_code=201)
def api_purchase(
    event_id: str, payload: PurchasePayload, background_tasks: BackgroundTasks
):
    customer = payload.customer.to_customer()
    try:
        result = purchase_tickets(
            event_id, [item.to_item() for item in payload.items], customer
        )
    except TicketingError as exc:
        logger.warning("Purchase for event %s rejected: %s", event_id, exc)
        raise
    background_tasks.add_task(
        dispatch, notify_purchase, customer.email, result.summary, result.tickets
    )
    return {
        "success": True,
        "purchase": _serialize_purchase(result.purchase),
        "tickets": [_serialize_ticket(ticket) for ticket in result.tickets],
    }


# -------- Tickets --------


@app.post("/api/tickets/transfer")
def api_transfer_ticket(payload: TransferPayload, background_tasks: BackgroundTasks):
    new_owner = NewOwner(
        name=payload.new_owner.name,
        email=payload.new_owner.email,
        phone=payload.new_owner.phone,
        doc_id=payload.new_owner.doc_id,
    )
    result = transfer_ticket(payload.ticket_id, new_owner, payload.current_owner_email)
    background_tasks.add_task(
        dispatch,
        notify_transfer,
        new_owner.email,
        result.ticket,
        result.previous_owner_name,
    )
    return {"success": True, "ticket": _serialize_ticket(result.ticket)}


@app.get("/api/tickets/by-email")
def api_tickets_by_email(
    email: str | None = Query(None), db: Session = Depends(get_db)
):
    if not email:
        raise InvalidRequest("Email required")
    payload = []
    for ticket in crud.list_tickets_by_email(db, email):
        item = _serialize_ticket(ticket, include_relations=True)
        item["event"] = {
            "title": ticket.event.title,
            "startDate": _iso(ticket.event.start_date),
            "location": ticket.event.location,
        }
        payload.append(item)
    return payload

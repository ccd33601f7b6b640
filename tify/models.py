"""SQLAlchemy models for Tify Events."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import (
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import declarative_base, relationship

from .utils import utcnow

Base = declarative_base()

EVENT_STATUSES = {"DRAFT", "PUBLISHED", "CANCELLED", "FINISHED"}
SEAT_AVAILABLE = "AVAILABLE"
SEAT_SOLD = "SOLD"
TICKET_VALID = "VALID"
TICKET_USED = "USED"
TICKET_REFUNDED = "REFUNDED"
TICKET_CANCELLED = "CANCELLED"


def _uuid() -> str:
    return str(uuid.uuid4())


def _now() -> datetime:
    return utcnow()


class Meta(Base):
    __tablename__ = "meta"

    key = Column(String(128), primary_key=True)
    value = Column(Text, nullable=False)
    updated_at = Column(DateTime, default=_now, onupdate=_now, nullable=False)


class Event(Base):
    __tablename__ = "events"

    id = Column(String(36), primary_key=True, default=_uuid)
    admin_token = Column(String(128), nullable=False, unique=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    location = Column(String(255), nullable=True)
    start_date = Column(DateTime, nullable=False)
    end_date = Column(DateTime, nullable=True)
    status = Column(String(16), nullable=False, default="DRAFT")
    created_at = Column(DateTime, default=_now, nullable=False)
    updated_at = Column(DateTime, default=_now, onupdate=_now, nullable=False)

    zones = relationship(
        "Zone",
        back_populates="event",
        cascade="all, delete-orphan",
        order_by="Zone.created_at",
    )
    seats = relationship("Seat", back_populates="event", cascade="all, delete-orphan")
    purchases = relationship(
        "TicketPurchase", back_populates="event", cascade="all, delete-orphan"
    )
    tickets = relationship("Ticket", back_populates="event", cascade="all, delete-orphan")


class Zone(Base):
    __tablename__ = "event_zones"

    id = Column(String(36), primary_key=True, default=_uuid)
    event_id = Column(String(36), ForeignKey("events.id"), nullable=False, index=True)
    name = Column(String(120), nullable=False)
    color = Column(String(32), nullable=True)
    price = Column(Numeric(10, 2), nullable=False, default=0)
    rows = Column(Integer, nullable=False, default=0)
    cols = Column(Integer, nullable=False, default=0)
    capacity = Column(Integer, nullable=True)
    type = Column(String(16), nullable=False, default="SALE")
    created_at = Column(DateTime, default=_now, nullable=False)

    event = relationship("Event", back_populates="zones")
    seats = relationship("Seat", back_populates="zone", cascade="all, delete-orphan")
    tickets = relationship("Ticket", back_populates="zone")


class Seat(Base):
    __tablename__ = "event_seats"

    id = Column(String(36), primary_key=True, default=_uuid)
    event_id = Column(String(36), ForeignKey("events.id"), nullable=False, index=True)
    zone_id = Column(String(36), ForeignKey("event_zones.id"), nullable=False)
    row_label = Column(String(16), nullable=False)
    col_label = Column(String(16), nullable=False)
    status = Column(String(16), nullable=False, default=SEAT_AVAILABLE)
    type = Column(String(16), nullable=False, default="REGULAR")
    price = Column(Numeric(10, 2), nullable=True)
    holder_name = Column(String(255), nullable=True)
    ticket_code = Column(String(255), nullable=True)

    event = relationship("Event", back_populates="seats")
    zone = relationship("Zone", back_populates="seats")
    tickets = relationship("Ticket", back_populates="seat")

    @property
    def label(self) -> str:
        return f"{self.row_label}{self.col_label}"


class TicketPurchase(Base):
    __tablename__ = "ticket_purchases"

    id = Column(String(36), primary_key=True, default=_uuid)
    event_id = Column(String(36), ForeignKey("events.id"), nullable=False, index=True)
    billing_name = Column(String(255), nullable=False)
    billing_email = Column(String(255), nullable=False)
    billing_phone = Column(String(64), nullable=False, default="")
    billing_doc_id = Column(String(64), nullable=False, default="")
    total_amount = Column(Numeric(12, 2), nullable=False)
    created_at = Column(DateTime, default=_now, nullable=False)

    event = relationship("Event", back_populates="purchases")
    tickets = relationship("Ticket", back_populates="purchase")


class Ticket(Base):
    __tablename__ = "tickets"
    __table_args__ = (
        Index("ix_tickets_zone_status", "zone_id", "status"),
        Index("ix_tickets_owner_email", "owner_email"),
    )

    id = Column(String(36), primary_key=True, default=_uuid)
    event_id = Column(String(36), ForeignKey("events.id"), nullable=False, index=True)
    zone_id = Column(String(36), ForeignKey("event_zones.id"), nullable=False)
    seat_id = Column(String(36), ForeignKey("event_seats.id"), nullable=True)
    purchase_id = Column(
        String(36), ForeignKey("ticket_purchases.id"), nullable=False
    )
    customer_name = Column(String(255), nullable=False)
    customer_email = Column(String(255), nullable=False)
    owner_name = Column(String(255), nullable=False)
    owner_email = Column(String(255), nullable=False)
    owner_phone = Column(String(64), nullable=True)
    owner_doc_id = Column(String(64), nullable=True)
    price = Column(Numeric(10, 2), nullable=False)
    status = Column(String(16), nullable=False, default=TICKET_VALID)
    qr_code = Column(String(255), nullable=False, unique=True)
    purchase_date = Column(DateTime, default=_now, nullable=False)
    check_in_time = Column(DateTime, nullable=True)

    event = relationship("Event", back_populates="tickets")
    zone = relationship("Zone", back_populates="tickets")
    seat = relationship("Seat", back_populates="tickets")
    purchase = relationship("TicketPurchase", back_populates="tickets")
    transfers = relationship(
        "TicketTransfer",
        back_populates="ticket",
        cascade="all, delete-orphan",
        order_by="TicketTransfer.transferred_at",
    )


class TicketTransfer(Base):
    __tablename__ = "ticket_transfers"

    id = Column(String(36), primary_key=True, default=_uuid)
    ticket_id = Column(String(36), ForeignKey("tickets.id"), nullable=False, index=True)
    previous_owner_name = Column(String(255), nullable=False)
    previous_owner_email = Column(String(255), nullable=False)
    new_owner_name = Column(String(255), nullable=False)
    new_owner_email = Column(String(255), nullable=False)
    transferred_at = Column(DateTime, default=_now, nullable=False)

    ticket = relationship("Ticket", back_populates="transfers")

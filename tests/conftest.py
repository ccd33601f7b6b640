"""Shared pytest fixtures for Tify Events."""

from __future__ import annotations

import sys
from decimal import Decimal
from pathlib import Path

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import scoped_session, sessionmaker
from sqlalchemy.pool import StaticPool

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from tify import api, database, notifications, storage
from tify.crud import create_event, replace_layout
from tify.models import Base
from tify.utils import utcnow


def _session_factory(engine):
    return scoped_session(
        sessionmaker(
            bind=engine,
            autoflush=False,
            autocommit=False,
            future=True,
            expire_on_commit=False,
        )
    )


@pytest.fixture(scope="session", autouse=True)
def configure_in_memory_db():
    """Reuse a single in-memory SQLite database for fast, isolated tests."""

    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    session_factory = _session_factory(engine)
    database.engine = engine
    database.SessionLocal = session_factory
    storage.engine = engine
    storage.get_session = database.get_session
    api.SessionLocal = session_factory
    Base.metadata.create_all(bind=engine)
    yield
    session_factory.remove()


@pytest.fixture(autouse=True)
def clean_database():
    """Reset all tables and the mock outbox between tests."""

    database.SessionLocal.remove()
    Base.metadata.drop_all(bind=database.engine)
    Base.metadata.create_all(bind=database.engine)
    notifications.OUTBOX.clear()
    yield


@pytest.fixture()
def file_db(monkeypatch, tmp_path):
    """Point the sale engine at a file-backed SQLite database with real locking."""

    engine = database.configure_engine(
        create_engine(
            f"sqlite:///{tmp_path / 'sales.sqlite'}",
            connect_args={"check_same_thread": False, "timeout": 5},
            future=True,
        )
    )
    Base.metadata.create_all(bind=engine)
    session_factory = _session_factory(engine)
    monkeypatch.setattr(database, "engine", engine)
    monkeypatch.setattr(database, "SessionLocal", session_factory)
    yield engine
    session_factory.remove()
    engine.dispose()


def build_event(
    *,
    seat_labels: tuple[str, ...] = ("A1", "A2", "A3"),
    general_capacity: int | None = 10,
    seat_price: str = "50.00",
    general_price: str = "20.00",
):
    """Create an event with one seated zone and one general admission zone.

    Returns ``(event, seated_zone, general_zone, seats)``; ``general_zone`` is
    None when ``general_capacity`` is None.
    """
    zones = [{"id": "seated", "name": "Platea", "price": Decimal(seat_price)}]
    if general_capacity is not None:
        zones.append(
            {
                "id": "general",
                "name": "General",
                "price": Decimal(general_price),
                "capacity": general_capacity,
            }
        )
    seats = [
        {"zone_id": "seated", "row_label": label[0], "col_label": label[1:]}
        for label in seat_labels
    ]
    with database.get_session() as session:
        event = create_event(
            session,
            title="Sold Out Show",
            description="",
            location="Main Hall",
            start_date=utcnow().replace(microsecond=0),
            status="PUBLISHED",
        )
        replace_layout(session, event, zones=zones, seats=seats)
        by_name = {zone.name: zone for zone in event.zones}
        ordered_seats = sorted(event.seats, key=lambda seat: seat.label)
    return (
        event,
        by_name["Platea"],
        by_name.get("General"),
        ordered_seats,
    )


@pytest.fixture()
def make_event():
    return build_event

"""Development helpers for populating fake events with seating layouts."""

from __future__ import annotations

import random
import string
from datetime import datetime, timedelta
from decimal import Decimal

from faker import Faker
from sqlalchemy.orm import Session

from .crud import create_event, replace_layout
from .database import get_session
from .storage import init_db

_event_types = [
    "Concert",
    "Festival",
    "Stand-up Night",
    "Theater Premiere",
    "Jazz Session",
    "Championship Final",
    "Opera Gala",
]
_zone_names = ["VIP", "Platinum", "Gold", "Silver", "Balcony", "Orchestra"]
_zone_colors = ["#7c3aed", "#2563eb", "#059669", "#d97706", "#dc2626", "#db2777"]
_price_steps = [Decimal("120.00"), Decimal("90.00"), Decimal("60.00"), Decimal("45.00")]


def seed_fake_data(
    *,
    event_count: int = 1,
    zones_per_event: int = 2,
    rows: int = 5,
    cols: int = 8,
    general_capacity: int = 100,
) -> dict[str, int]:
    """Populate the database with synthetic published events."""
    if event_count < 0:
        raise ValueError("event_count must be >= 0")
    if zones_per_event < 0:
        raise ValueError("zones_per_event must be >= 0")
    if rows < 1 or cols < 1:
        raise ValueError("rows and cols must be >= 1")
    if rows > len(string.ascii_uppercase):
        raise ValueError(f"rows must be <= {len(string.ascii_uppercase)}")
    if general_capacity < 0:
        raise ValueError("general_capacity must be >= 0")

    init_db()
    fake = Faker()
    stats = {"events": 0, "zones": 0, "seats": 0}

    with get_session() as session:
        for _ in range(event_count):
            zones, seats = _create_event(
                session,
                fake,
                zones_per_event=zones_per_event,
                rows=rows,
                cols=cols,
                general_capacity=general_capacity,
            )
            stats["events"] += 1
            stats["zones"] += zones
            stats["seats"] += seats

    return stats


def _create_event(
    session: Session,
    fake: Faker,
    *,
    zones_per_event: int,
    rows: int,
    cols: int,
    general_capacity: int,
) -> tuple[int, int]:
    start_date = _random_start_date()
    event = create_event(
        session,
        title=f"{fake.city()} {random.choice(_event_types)}",
        description="\n\n".join(fake.paragraphs(nb=2)),
        location=fake.address().replace("\n", ", "),
        start_date=start_date,
        end_date=start_date + timedelta(hours=random.randint(2, 5)),
        status="PUBLISHED",
    )

    zones: list[dict] = []
    seats: list[dict] = []
    for index in range(zones_per_event):
        key = f"zone-{index}"
        zones.append(
            {
                "id": key,
                "name": _zone_names[index % len(_zone_names)],
                "color": _zone_colors[index % len(_zone_colors)],
                "price": _price_steps[min(index, len(_price_steps) - 1)],
                "rows": rows,
                "cols": cols,
            }
        )
        for row_label in string.ascii_uppercase[:rows]:
            for col in range(1, cols + 1):
                seats.append(
                    {"zone_id": key, "row_label": row_label, "col_label": str(col)}
                )

    if general_capacity:
        zones.append(
            {
                "id": "general",
                "name": "General Admission",
                "color": "#6b7280",
                "price": Decimal("30.00"),
                "capacity": general_capacity,
            }
        )

    replace_layout(session, event, zones=zones, seats=seats)
    return len(zones), len(seats)


def _random_start_date() -> datetime:
    now = datetime.utcnow()
    day_offset = random.randint(7, 90)
    hour = random.choice([18, 19, 20, 21])
    return (now + timedelta(days=day_offset)).replace(
        hour=hour, minute=0, second=0, microsecond=0
    )

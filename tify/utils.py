"""Utility helpers for Tify Events."""

from __future__ import annotations

import secrets
import string
import time
from datetime import UTC, datetime
from decimal import Decimal, InvalidOperation

_CODE_ALPHABET = string.ascii_lowercase + string.digits
_CENTS = Decimal("0.01")


def utcnow() -> datetime:
    """Return a naive UTC datetime."""

    return datetime.now(UTC).replace(tzinfo=None)


def to_naive_utc(value: datetime | None) -> datetime | None:
    """Convert aware datetimes to naive UTC; naive values are assumed UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value
    return value.astimezone(UTC).replace(tzinfo=None)


def parse_iso_datetime(raw: str | None) -> datetime | None:
    """Parse an ISO8601 string (``Z`` suffix allowed) into naive UTC."""
    if not raw:
        return None
    cleaned = raw.strip()
    if cleaned.endswith("Z"):
        cleaned = cleaned[:-1] + "+00:00"
    return to_naive_utc(datetime.fromisoformat(cleaned))


def to_money(value: object) -> Decimal:
    """Return ``value`` as a two-place Decimal, raising ValueError if unusable."""
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, TypeError) as exc:
        raise ValueError(f"Invalid amount {value!r}") from exc
    if not amount.is_finite():
        raise ValueError(f"Invalid amount {value!r}")
    return amount.quantize(_CENTS)


def money_sum(amounts) -> Decimal:
    """Sum amounts exactly; floats are never involved."""
    return sum((to_money(amount) for amount in amounts), Decimal("0.00"))


def random_suffix(length: int = 9) -> str:
    return "".join(secrets.choice(_CODE_ALPHABET) for _ in range(length))


def generate_ticket_code(event_id: str, zone_id: str, *, now_ms: int | None = None) -> str:
    """Return an opaque QR code value: event, zone, epoch millis, random suffix."""
    stamp = now_ms if now_ms is not None else int(time.time() * 1000)
    return f"{event_id}-{zone_id}-{stamp}-{random_suffix()}"

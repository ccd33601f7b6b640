from __future__ import annotations

from datetime import datetime
from decimal import Decimal

import pytest

from tify.utils import (
    generate_ticket_code,
    money_sum,
    parse_iso_datetime,
    random_suffix,
    to_money,
)


def test_parse_iso_datetime_normalizes_to_naive_utc():
    assert parse_iso_datetime("2025-03-01T20:00:00Z") == datetime(2025, 3, 1, 20, 0)
    assert parse_iso_datetime("2025-03-01T20:00:00-05:00") == datetime(2025, 3, 2, 1, 0)
    assert parse_iso_datetime("2025-03-01T20:00") == datetime(2025, 3, 1, 20, 0)
    assert parse_iso_datetime("") is None
    with pytest.raises(ValueError):
        parse_iso_datetime("tomorrow night")


def test_money_helpers_are_exact():
    assert to_money("12.5") == Decimal("12.50")
    assert to_money(0.1) == Decimal("0.10")
    assert money_sum([0.1, 0.2, "0.30"]) == Decimal("0.60")
    assert money_sum([]) == Decimal("0.00")
    with pytest.raises(ValueError):
        to_money("free")
    with pytest.raises(ValueError):
        to_money("NaN")


def test_ticket_code_layout():
    code = generate_ticket_code("evt", "zone", now_ms=1700000000000)
    event_id, zone_id, stamp, suffix = code.split("-")
    assert (event_id, zone_id, stamp) == ("evt", "zone", "1700000000000")
    assert len(suffix) == 9
    assert suffix.isalnum() and suffix == suffix.lower()


def test_random_suffix_varies():
    assert len({random_suffix() for _ in range(50)}) == 50

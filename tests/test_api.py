from __future__ import annotations

from datetime import timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import select

from tify import api, database, notifications
from tify.models import Seat, Ticket, TicketTransfer
from tify.storage import fetch_root_token
from tify.utils import utcnow


@pytest.fixture()
def client(monkeypatch):
    """FastAPI test client with the scheduler disabled."""

    monkeypatch.setattr(api, "start_scheduler", lambda: None)
    monkeypatch.setattr(api, "stop_scheduler", lambda: None)
    with TestClient(api.app) as test_client:
        yield test_client


def _auth(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def _purchase_payload(items, *, email="ana@example.com"):
    return {
        "items": items,
        "customer": {"fullName": "Ana Buyer", "email": email, "phone": "555-0100"},
    }


def test_create_event_returns_admin_token_and_lists_it(client):
    start = utcnow().replace(microsecond=0) + timedelta(days=3)
    response = client.post(
        "/api/events",
        json={
            "title": "Rooftop Concert",
            "location": "Downtown",
            "startDate": start.isoformat() + "Z",
            "status": "published",
        },
    )
    assert response.status_code == 201
    body = response.json()
    assert body["adminToken"]
    assert body["event"]["status"] == "PUBLISHED"
    assert body["event"]["startDate"] == start.isoformat()
    assert body["event"]["zones"] == []

    listing = client.get("/api/events").json()
    assert [item["title"] for item in listing] == ["Rooftop Concert"]
    assert listing[0]["zoneCount"] == 0
    assert "adminToken" not in listing[0]


def test_create_event_validation_errors(client):
    missing = client.post("/api/events", json={"title": "No date"})
    assert missing.status_code == 400
    assert missing.json()["error"] == "Missing required fields"

    bad_date = client.post(
        "/api/events", json={"title": "Bad", "startDate": "next tuesday"}
    )
    assert bad_date.status_code == 400
    assert "startDate" in bad_date.json()["error"]


def test_get_event_includes_layout(client, make_event):
    event, seated, general, seats = make_event()
    response = client.get(f"/api/events/{event.id}")
    assert response.status_code == 200
    body = response.json()
    assert {zone["name"] for zone in body["zones"]} == {"Platea", "General"}
    assert len(body["seats"]) == len(seats)
    platea = next(zone for zone in body["zones"] if zone["id"] == seated.id)
    assert platea["price"] == 50.0
    assert platea["ticketCount"] == 0
    assert len(platea["seats"]) == 3

    assert client.get("/api/events/missing").status_code == 404


def test_admin_routes_require_bearer_token(client, make_event):
    event, *_ = make_event()
    assert client.get(f"/api/events/{event.id}/tickets").status_code == 401
    forbidden = client.get(
        f"/api/events/{event.id}/tickets", headers=_auth("not-the-token")
    )
    assert forbidden.status_code == 403
    assert forbidden.json() == {"error": "Invalid admin token"}

    ok = client.get(f"/api/events/{event.id}/tickets", headers=_auth(event.admin_token))
    assert ok.status_code == 200
    assert ok.json() == []


def test_root_token_can_manage_any_event(client, make_event):
    event, *_ = make_event()
    root = fetch_root_token()
    response = client.put(
        f"/api/events/{event.id}",
        json={"title": "Renamed", "status": "CANCELLED"},
        headers=_auth(root),
    )
    assert response.status_code == 200
    assert response.json()["title"] == "Renamed"
    assert response.json()["status"] == "CANCELLED"


def test_purchase_endpoint_sells_and_sends_confirmation(client, make_event):
    event, seated, general, seats = make_event()
    response = client.post(
        f"/api/events/{event.id}/purchase",
        json=_purchase_payload(
            [
                {"type": "general", "zoneId": general.id, "price": 20},
                {"type": "seat", "id": seats[0].id, "zoneId": seated.id, "price": 50},
                {"type": "seat", "seatId": seats[1].id, "zoneId": seated.id, "price": 50},
            ]
        ),
    )
    assert response.status_code == 201
    body = response.json()
    assert body["success"] is True
    assert body["purchase"]["totalAmount"] == 120.0
    tickets = body["tickets"]
    assert [t["seatId"] for t in tickets] == [seats[0].id, seats[1].id, None]
    assert all(t["ownerEmail"] == "ana@example.com" for t in tickets)

    assert len(notifications.OUTBOX) == 1
    sent = notifications.OUTBOX[0]
    assert sent.to == "ana@example.com"
    assert sent.subject == "Purchase confirmation - Tify Events"
    for ticket in tickets:
        assert ticket["qrCode"] in sent.html

    session = database.SessionLocal()
    assert session.get(Seat, seats[0].id).status == "SOLD"
    session.close()


def test_purchase_endpoint_reports_business_errors(client, make_event):
    event, seated, general, seats = make_event(general_capacity=1)

    empty = client.post(f"/api/events/{event.id}/purchase", json=_purchase_payload([]))
    assert empty.status_code == 400
    assert empty.json() == {"error": "No items in cart"}

    over = client.post(
        f"/api/events/{event.id}/purchase",
        json=_purchase_payload([{"type": "general", "zoneId": general.id, "price": 20}] * 2),
    )
    assert over.status_code == 400
    assert over.json() == {"error": "Zone General: only 1 tickets left (requested: 2)"}

    seat_item = {"type": "seat", "id": seats[2].id, "zoneId": seated.id, "price": 50}
    assert (
        client.post(
            f"/api/events/{event.id}/purchase", json=_purchase_payload([seat_item])
        ).status_code
        == 201
    )
    taken = client.post(
        f"/api/events/{event.id}/purchase", json=_purchase_payload([seat_item])
    )
    assert taken.status_code == 400
    assert taken.json() == {"error": "Seat A3 is no longer available"}

    unknown = client.post(
        "/api/events/missing/purchase",
        json=_purchase_payload([{"type": "general", "zoneId": general.id, "price": 1}]),
    )
    assert unknown.status_code == 404
    assert len(notifications.OUTBOX) == 1


def test_purchase_endpoint_validates_payload(client, make_event):
    event, _, general, _ = make_event()
    response = client.post(
        f"/api/events/{event.id}/purchase",
        json={"items": [{"type": "general", "zoneId": general.id, "price": 20}]},
    )
    assert response.status_code == 400
    assert response.json()["error"] == "Missing required fields"

    unknown_type = client.post(
        f"/api/events/{event.id}/purchase",
        json=_purchase_payload([{"type": "vip", "zoneId": general.id, "price": 20}]),
    )
    assert unknown_type.status_code == 400


def test_transfer_endpoint_and_by_email_lookup(client, make_event):
    event, _, general, _ = make_event()
    bought = client.post(
        f"/api/events/{event.id}/purchase",
        json=_purchase_payload([{"type": "general", "zoneId": general.id, "price": 20}]),
    ).json()
    ticket_id = bought["tickets"][0]["id"]

    denied = client.post(
        "/api/tickets/transfer",
        json={
            "ticketId": ticket_id,
            "newOwner": {"name": "Eve", "email": "eve@example.com"},
            "currentOwnerEmail": "eve@example.com",
        },
    )
    assert denied.status_code == 403
    assert denied.json() == {"error": "Unauthorized transfer"}

    response = client.post(
        "/api/tickets/transfer",
        json={
            "ticketId": ticket_id,
            "newOwner": {"name": "Carla", "email": "carla@example.com", "docId": "D-9"},
            "currentOwnerEmail": "ana@example.com",
        },
    )
    assert response.status_code == 200
    assert response.json()["ticket"]["ownerEmail"] == "carla@example.com"
    assert notifications.OUTBOX[-1].to == "carla@example.com"
    assert "Ana Buyer" in notifications.OUTBOX[-1].html

    session = database.SessionLocal()
    transfers = session.scalars(select(TicketTransfer)).all()
    assert len(transfers) == 1
    session.close()

    assert client.get("/api/tickets/by-email", params={"email": "ana@example.com"}).json() == []
    owned = client.get("/api/tickets/by-email", params={"email": "carla@example.com"})
    assert owned.status_code == 200
    assert owned.json()[0]["event"]["title"] == "Sold Out Show"
    assert owned.json()[0]["zone"]["name"] == "General"

    missing = client.get("/api/tickets/by-email")
    assert missing.status_code == 400
    assert missing.json() == {"error": "Email required"}

    unknown = client.post(
        "/api/tickets/transfer",
        json={"ticketId": "nope", "newOwner": {"name": "X", "email": "x@example.com"}},
    )
    assert unknown.status_code == 404


def test_check_in_and_stats(client, make_event):
    event, seated, general, seats = make_event()
    bought = client.post(
        f"/api/events/{event.id}/purchase",
        json=_purchase_payload(
            [
                {"type": "general", "zoneId": general.id, "price": 20},
                {"type": "seat", "id": seats[0].id, "zoneId": seated.id, "price": 50},
            ]
        ),
    ).json()
    code = bought["tickets"][0]["qrCode"]
    headers = _auth(event.admin_token)

    first = client.post(
        f"/api/events/{event.id}/check-in", json={"code": code}, headers=headers
    )
    assert first.status_code == 200
    assert first.json()["ticket"]["status"] == "USED"
    assert first.json()["ticket"]["checkInTime"]

    again = client.post(
        f"/api/events/{event.id}/check-in", json={"code": code}, headers=headers
    )
    assert again.status_code == 400
    assert again.json() == {"error": "Invalid ticket (status: USED)"}

    stats = client.get(f"/api/events/{event.id}/stats", headers=headers).json()
    assert stats["totalRevenue"] == 70.0
    assert stats["ticketsSold"] == 2
    by_zone = {zone["name"]: zone for zone in stats["revenueByZone"]}
    assert by_zone["Platea"]["revenue"] == 50.0
    assert by_zone["General"]["capacity"] == 10
    assert len(stats["recentSales"]) == 2


def test_layout_update_and_delete_event(client, make_event):
    event, *_ = make_event()
    headers = _auth(event.admin_token)
    layout = {
        "zones": [
            {"id": "z1", "name": "Balcony", "price": 35, "rows": 1, "cols": 2},
            {"id": "z2", "name": "Floor", "price": 15, "capacity": 50},
        ],
        "seats": [
            {"zoneId": "z1", "rowLabel": "B", "colLabel": "1"},
            {"zoneId": "z1", "rowLabel": "B", "colLabel": "2"},
            {"zoneId": "ghost", "rowLabel": "C", "colLabel": "1"},
        ],
    }
    response = client.put(f"/api/events/{event.id}/layout", json=layout, headers=headers)
    assert response.status_code == 200
    body = response.json()
    assert {zone["name"] for zone in body["zones"]} == {"Balcony", "Floor"}
    assert sorted(seat["rowLabel"] + seat["colLabel"] for seat in body["seats"]) == [
        "B1",
        "B2",
    ]

    floor = next(zone for zone in body["zones"] if zone["name"] == "Floor")
    client.post(
        f"/api/events/{event.id}/purchase",
        json=_purchase_payload([{"type": "general", "zoneId": floor["id"], "price": 15}]),
    )
    locked = client.put(f"/api/events/{event.id}/layout", json=layout, headers=headers)
    assert locked.status_code == 400

    deleted = client.delete(f"/api/events/{event.id}", headers=headers)
    assert deleted.status_code == 200
    assert client.get(f"/api/events/{event.id}").status_code == 404

    session = database.SessionLocal()
    assert session.scalars(select(Ticket)).all() == []
    session.close()


def test_healthz(client):
    response = client.get("/healthz")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_notification_failure_does_not_change_purchase_response(
    client, make_event, monkeypatch
):
    def broken(*_):
        raise RuntimeError("smtp down")

    monkeypatch.setattr(api, "notify_purchase", broken)
    event, _, general, _ = make_event()
    response = client.post(
        f"/api/events/{event.id}/purchase",
        json=_purchase_payload([{"type": "general", "zoneId": general.id, "price": 20}]),
    )
    assert response.status_code == 201
    assert response.json()["success"] is True
    assert notifications.OUTBOX == []


def test_purchase_rejects_prices_below_a_cent(client, make_event):
    event, _, general, _ = make_event()
    response = client.post(
        f"/api/events/{event.id}/purchase",
        json=_purchase_payload([{"type": "general", "zoneId": general.id, "price": 10.005}]),
    )
    assert response.status_code == 400
    assert response.json()["error"] == "Missing required fields"

    session = database.SessionLocal()
    assert session.scalars(select(Ticket)).all() == []
    session.close()

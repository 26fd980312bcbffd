"""
Tests for the HTTP and WebSocket API (`api/`).

Covers contract rules:
- Every route is scoped by the X-Shop-Id header.
- Domain errors map to 400 / 404 / 409 with a consistent error body.
- Writes return derived amounts and statuses.
- WebSocket subscribers receive change events for their shop and are released on disconnect.
"""

from __future__ import annotations

import threading
import time
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from conftest import OTHER_SHOP_ID, SHOP_ID
from api.dependencies import get_container
from api.main import app
from domain.errors import ConflictError

HEADERS = {"X-Shop-Id": SHOP_ID}


@pytest.fixture
def client(container):
    app.dependency_overrides[get_container] = lambda: container
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def _create_customer(client, email="meena.rao@example.com") -> dict:
    response = client.post(
        "/api/v1/customers",
        json={"name": "Meena Rao", "email": email, "phone": "+91 98450 12345"},
        headers=HEADERS,
    )
    assert response.status_code == 201
    return response.json()


def _create_purchase(client, customer_id: str, **overrides) -> dict:
    body = {
        "customer_id": customer_id,
        "items": [
            {"product_name": "Rice 5kg", "quantity": 2, "unit_price": "320.00"},
            {"product_name": "Cooking oil 1L", "quantity": 1, "unit_price": "180.00"},
        ],
        "paid_amount": "300.00",
    }
    body.update(overrides)
    response = client.post("/api/v1/purchases", json=body, headers=HEADERS)
    assert response.status_code == 201, response.text
    return response.json()


def test_health(client) -> None:
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_missing_shop_header_is_rejected(client) -> None:
    """Verify shop-scoped routes require X-Shop-Id."""

    assert client.get("/api/v1/customers").status_code == 401
    assert client.get("/api/v1/purchases", headers={"X-Shop-Id": "  "}).status_code == 401


def test_create_purchase_derives_amounts(client) -> None:
    """Verify item totals, remaining amount and customer statistics in responses."""

    customer = _create_customer(client)
    purchase = _create_purchase(client, customer["id"])

    assert Decimal(purchase["total_amount"]) == Decimal("820.00")
    assert Decimal(purchase["remaining_amount"]) == Decimal("520.00")
    assert purchase["payment_status"] == "pending"
    assert [Decimal(i["total_price"]) for i in purchase["items"]] == [Decimal("640.00"), Decimal("180.00")]

    detail = client.get(f"/api/v1/customers/{customer['id']}", headers=HEADERS).json()
    assert detail["customer"]["total_purchases"] == 1
    assert Decimal(detail["customer"]["total_spent"]) == Decimal("820.00")
    assert [p["id"] for p in detail["purchases"]] == [purchase["id"]]


def test_payment_completes_purchase(client) -> None:
    """Verify paying the remaining balance marks the purchase completed."""

    customer = _create_customer(client)
    purchase = _create_purchase(client, customer["id"], due_date="2025-03-20T00:00:00Z")

    response = client.put(
        f"/api/v1/purchases/{purchase['id']}/payment",
        json={"paid_amount": "820.00", "payment_method": "upi"},
        headers=HEADERS,
    )

    assert response.status_code == 200
    body = response.json()
    assert body["payment_status"] == "completed"
    assert Decimal(body["remaining_amount"]) == Decimal("0")
    assert body["payment_method"] == "upi"
    assert client.get("/api/v1/purchases/pending", headers=HEADERS).json()["count"] == 0


def test_validation_error_maps_to_400(client) -> None:
    """Verify domain validation failures return 400 with the offending field."""

    customer = _create_customer(client)

    response = client.post(
        "/api/v1/purchases",
        json={"customer_id": customer["id"], "items": []},
        headers=HEADERS,
    )

    assert response.status_code == 400
    assert response.json()["error"] == "ValidationError"
    assert response.json()["field"] == "items"

    bad_item = client.post(
        "/api/v1/purchases",
        json={"customer_id": customer["id"], "items": [{"product_name": "Salt", "quantity": 0, "unit_price": "20"}]},
        headers=HEADERS,
    )
    assert bad_item.status_code == 400


def test_duplicate_email_maps_to_400(client) -> None:
    _create_customer(client)

    response = client.post(
        "/api/v1/customers",
        json={"name": "Other Meena", "email": "MEENA.RAO@example.com", "phone": "+91 98450 54321"},
        headers=HEADERS,
    )

    assert response.status_code == 400
    assert response.json()["field"] == "email"


def test_other_shop_gets_404(client) -> None:
    """Verify a purchase is invisible to another shop."""

    customer = _create_customer(client)
    purchase = _create_purchase(client, customer["id"])

    response = client.get(f"/api/v1/purchases/{purchase['id']}", headers={"X-Shop-Id": OTHER_SHOP_ID})

    assert response.status_code == 404
    assert response.json()["error"] == "NotFoundError"


def test_unknown_customer_on_create_is_404(client) -> None:
    response = client.post(
        "/api/v1/purchases",
        json={"customer_id": "123e4567-e89b-12d3-a456-426614174999", "total_amount": "10"},
        headers=HEADERS,
    )

    assert response.status_code == 404


def test_conflict_maps_to_409(client, container, monkeypatch) -> None:
    """Verify an exhausted optimistic retry surfaces as 409."""

    customer = _create_customer(client)

    def always_conflicts(customer_id, shop_id):
        raise ConflictError("customer", customer_id, 3)

    monkeypatch.setattr(container.purchases, "reconcile_customer", always_conflicts)

    response = client.post(f"/api/v1/customers/{customer['id']}/reconcile", headers=HEADERS)

    assert response.status_code == 409
    assert response.json()["error"] == "ConflictError"


def test_delete_purchase_then_customer(client) -> None:
    """Verify deleting the only purchase resets stats and allows a hard delete."""

    customer = _create_customer(client)
    purchase = _create_purchase(client, customer["id"])

    assert client.delete(f"/api/v1/purchases/{purchase['id']}", headers=HEADERS).status_code == 204
    assert client.get(f"/api/v1/purchases/{purchase['id']}", headers=HEADERS).status_code == 404

    reconciled = client.post(f"/api/v1/customers/{customer['id']}/reconcile", headers=HEADERS).json()
    assert reconciled["total_purchases"] == 0
    assert reconciled["last_purchase_date"] is None

    deleted = client.delete(f"/api/v1/customers/{customer['id']}", headers=HEADERS).json()
    assert deleted["result"] == "deleted"


def test_list_purchases_filters_by_status(client, clock) -> None:
    """Verify the status filter sees statuses as of the request."""

    customer = _create_customer(client)
    late = _create_purchase(client, customer["id"], due_date="2025-03-16T00:00:00Z")
    _create_purchase(client, customer["id"])
    clock.advance(days=2)

    response = client.get("/api/v1/purchases", params={"payment_status": "overdue"}, headers=HEADERS)

    assert response.status_code == 200
    assert [p["id"] for p in response.json()["items"]] == [late["id"]]
    assert response.json()["total_count"] == 1


def test_refresh_overdue_endpoint(client, clock) -> None:
    customer = _create_customer(client)
    late = _create_purchase(client, customer["id"], due_date="2025-03-16T00:00:00Z")
    clock.advance(days=2)

    response = client.post("/api/v1/purchases/refresh-overdue", headers=HEADERS)

    assert response.json() == {"refreshed_count": 1, "purchase_ids": [late["id"]]}


def test_dashboard_routes(client) -> None:
    """Verify the dashboard routes respond with their documented shapes."""

    customer = _create_customer(client)
    _create_purchase(client, customer["id"])

    overview = client.get("/api/v1/dashboard/overview", headers=HEADERS).json()
    assert overview["customers"] == {"total": 1, "active": 1, "inactive": 0}
    assert overview["purchases"]["today"] == 1

    statuses = client.get("/api/v1/dashboard/purchase-status", headers=HEADERS).json()["distribution"]
    assert [bucket["status"] for bucket in statuses] == ["pending", "completed", "overdue", "cancelled"]

    comparison = client.get("/api/v1/dashboard/monthly-comparison", headers=HEADERS).json()
    assert Decimal(comparison["growth"]["revenue"]) == Decimal("0")

    top = client.get("/api/v1/dashboard/top-customers", params={"limit": 5}, headers=HEADERS).json()
    assert [c["id"] for c in top["customers"]] == [customer["id"]]

    summary = client.get("/api/v1/purchases/daily-summary", params={"date": "2025-03-15"}, headers=HEADERS).json()
    assert summary["transaction_count"] == 1
    assert summary["pending_payments"] == 1


def test_websocket_receives_purchase_events(client) -> None:
    """Verify a connected client gets the greeting and then live events for its shop."""

    customer = _create_customer(client)

    with client.websocket_connect(f"/api/v1/shops/{SHOP_ID}/events") as websocket:
        assert websocket.receive_json() == {"event": "connected", "shop_id": SHOP_ID}

        purchase = _create_purchase(client, customer["id"])

        message = websocket.receive_json()
        assert message["event"] == "purchase_created"
        assert message["data"]["id"] == purchase["id"]

        assert websocket.receive_json()["event"] == "customer_updated"


def test_websocket_disconnect_releases_subscription(client, container) -> None:
    """Verify a closed WebSocket leaves no subscriber or dispatcher thread behind."""

    before = set(threading.enumerate())
    with client.websocket_connect(f"/api/v1/shops/{SHOP_ID}/events") as websocket:
        assert websocket.receive_json() == {"event": "connected", "shop_id": SHOP_ID}
        assert container.notifier.subscriber_count(SHOP_ID) == 1
        dispatchers = [t for t in threading.enumerate() if t not in before and t.name == f"notifier-{SHOP_ID}"]

    deadline = time.monotonic() + 5
    while container.notifier.subscriber_count(SHOP_ID) and time.monotonic() < deadline:
        time.sleep(0.01)
    assert container.notifier.subscriber_count(SHOP_ID) == 0

    assert len(dispatchers) == 1
    dispatchers[0].join(timeout=5)
    assert not dispatchers[0].is_alive()

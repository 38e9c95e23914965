"""Integration tests for the checkout API via TestClient."""

from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from checkout_service import main

from conftest import ADMIN, ALICE, BOB, CAROL, IBUPROFEN, PARACETAMOL


def user_headers(user_id):
    return {"X-User-Id": str(user_id)}


ADMIN_HEADERS = {"X-User-Id": str(ADMIN), "X-User-Role": "admin"}


def _payload(total="30.00", payment_method="wallet", items=None):
    return {
        "items": items if items is not None else [
            {"medicine_id": PARACETAMOL, "quantity": 2, "price": "4.50"},
            {"medicine_id": IBUPROFEN, "quantity": 3, "price": "6.00"},
        ],
        "subtotal": "27.00",
        "service_fee": str(Decimal(total) - Decimal("27.00")),
        "total_amount": total,
        "payment_method": payment_method,
    }


def _place(client, user_id=ALICE, **kwargs):
    response = client.post("/v1/orders", json=_payload(**kwargs), headers=user_headers(user_id))
    assert response.status_code == 201, response.text
    return response.json()


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_place_wallet_order(client):
    order = _place(client)

    assert order["status"] == "Pending"
    assert order["payment_method"] == "wallet"
    assert Decimal(order["total_amount"]) == Decimal("30.00")
    assert [item["medicine_name"] for item in order["items"]] == ["Paracetamol 500mg", "Ibuprofen 400mg"]
    wallet = client.get("/v1/wallet", headers=user_headers(ALICE)).json()
    assert Decimal(wallet["wallet_balance"]) == Decimal("20.00")


def test_insufficient_funds(client):
    response = client.post("/v1/orders", json=_payload(), headers=user_headers(BOB))

    assert response.status_code == 409
    assert response.json()["code"] == "insufficient_funds"
    wallet = client.get("/v1/wallet", headers=user_headers(BOB)).json()
    assert Decimal(wallet["wallet_balance"]) == Decimal("10.00")


def test_empty_cart(client):
    response = client.post("/v1/orders", json=_payload(items=[]), headers=user_headers(ALICE))

    assert response.status_code == 400
    assert response.json() == {"error": "No items in the order.", "code": "empty_cart"}


def test_total_must_add_up(client):
    payload = _payload()
    payload["total_amount"] = "35.00"

    response = client.post("/v1/orders", json=payload, headers=user_headers(ALICE))

    assert response.status_code == 400
    assert response.json()["code"] == "validation_error"


def test_non_positive_quantity_is_rejected_by_schema(client):
    items = [{"medicine_id": PARACETAMOL, "quantity": 0, "price": "4.50"}]

    response = client.post("/v1/orders", json=_payload(items=items), headers=user_headers(ALICE))

    assert response.status_code == 422


def test_identity_header_is_required(client):
    assert client.post("/v1/orders", json=_payload()).status_code == 401


def test_unknown_user(client):
    response = client.post("/v1/orders", json=_payload(), headers=user_headers(4242))

    assert response.status_code == 404
    assert response.json()["code"] == "not_found"


def test_idempotency_key_header_replays_order(client):
    headers = {**user_headers(CAROL), "Idempotency-Key": "cart-42"}

    first = client.post("/v1/orders", json=_payload(), headers=headers)
    second = client.post("/v1/orders", json=_payload(), headers=headers)

    assert first.json()["id"] == second.json()["id"]
    wallet = client.get("/v1/wallet", headers=user_headers(CAROL)).json()
    assert Decimal(wallet["wallet_balance"]) == Decimal("70.00")


def test_get_order_visibility(client):
    order = _place(client)

    assert client.get(f"/v1/orders/{order['id']}", headers=user_headers(ALICE)).json() == order
    assert client.get(f"/v1/orders/{order['id']}", headers=ADMIN_HEADERS).json() == order
    assert client.get(f"/v1/orders/{order['id']}", headers=user_headers(BOB)).status_code == 403
    assert client.get("/v1/orders/12345", headers=ADMIN_HEADERS).status_code == 404


def test_admin_status_lifecycle(client):
    order_id = _place(client)["id"]
    url = f"/v1/admin/orders/{order_id}/status"

    response = client.put(url, json={"status": "Packed"}, headers=ADMIN_HEADERS)
    assert response.json() == {"message": "Order status updated", "status": "Packed"}
    assert client.put(url, json={"status": "Delivered"}, headers=ADMIN_HEADERS).status_code == 200

    response = client.put(url, json={"status": "Packed"}, headers=ADMIN_HEADERS)
    assert response.status_code == 409
    assert response.json()["code"] == "invalid_transition"


def test_status_update_requires_admin(client):
    order_id = _place(client)["id"]

    response = client.put(f"/v1/admin/orders/{order_id}/status", json={"status": "Packed"}, headers=user_headers(ALICE))

    assert response.status_code == 403
    assert client.get(f"/v1/orders/{order_id}", headers=user_headers(ALICE)).json()["status"] == "Pending"


@pytest.mark.parametrize("body", [{"status": "Shipped"}, {}])
def test_status_update_validates_payload(client, body):
    order_id = _place(client)["id"]

    response = client.put(f"/v1/admin/orders/{order_id}/status", json=body, headers=ADMIN_HEADERS)

    assert response.status_code == 422


def test_admin_order_list(client):
    first = _place(client)
    second = _place(client, user_id=CAROL, payment_method="other")
    client.put(f"/v1/admin/orders/{first['id']}/status", json={"status": "Cancelled"}, headers=ADMIN_HEADERS)

    orders = client.get("/v1/admin/orders", headers=ADMIN_HEADERS).json()
    cancelled = client.get("/v1/admin/orders", params={"status": "Cancelled"}, headers=ADMIN_HEADERS).json()

    assert [o["id"] for o in orders] == [second["id"], first["id"]]
    assert orders[0]["user_fullname"] == "Carol Nwosu"
    assert orders[0]["product_names"] == ["Paracetamol 500mg", "Ibuprofen 400mg"]
    assert [o["id"] for o in cancelled] == [first["id"]]
    assert client.get("/v1/admin/orders", headers=user_headers(ALICE)).status_code == 403


def test_admin_wallet_credit(client):
    response = client.post(
        f"/v1/admin/users/{BOB}/wallet/credit",
        json={"amount": "25.00", "reason": "refund"},
        headers=ADMIN_HEADERS,
    )

    assert response.status_code == 200
    assert Decimal(response.json()["wallet_balance"]) == Decimal("35.00")
    _place(client, user_id=BOB)


def test_wallet_credit_requires_admin(client):
    response = client.post(f"/v1/admin/users/{BOB}/wallet/credit", json={"amount": "25.00"}, headers=user_headers(BOB))

    assert response.status_code == 403


def test_shutdown_closes_the_remote_catalog_client(session_factory, monkeypatch):
    closed = []

    class RecordingCatalogClient:
        def __init__(self, base_url):
            self.base_url = base_url

        def close(self):
            closed.append(self.base_url)

    monkeypatch.setattr(main, "CATALOG_SERVICE_URL", "http://catalog.test")
    monkeypatch.setattr(main, "CatalogClient", RecordingCatalogClient)

    with TestClient(main.create_app(session_factory=session_factory)):
        assert closed == []

    assert closed == ["http://catalog.test"]

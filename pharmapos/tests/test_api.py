import sqlite3
from decimal import Decimal

from sqlalchemy.exc import IntegrityError


def _create_medicine(client, sku="AMOX-250", stock=10, unit_price="100.00"):
    r = client.post(
        "/v1/medicines",
        json={"sku": sku, "name": f"Medicine {sku}", "unit_price": unit_price, "opening_stock": stock},
        headers={"X-Actor": "store"},
    )
    assert r.status_code == 201, r.text
    return r.json()


def test_health(client):
    r = client.get("/v1/health")
    assert r.status_code == 200
    assert r.json() == {"status": "ok"}


def test_create_medicine_with_opening_stock_goes_through_ledger(client):
    med = _create_medicine(client, stock=12)
    assert med["stock_quantity"] == 12

    r = client.get("/v1/stock-movements", params={"medicine_id": med["id"]})
    assert r.status_code == 200
    [mv] = r.json()
    assert mv["movement_type"] == "RECEIPT"
    assert (mv["previous_stock"], mv["new_stock"]) == (0, 12)

    dup = client.post("/v1/medicines", json={"sku": "AMOX-250", "name": "Again", "unit_price": "1.00"})
    assert dup.status_code == 409


def test_sale_lifecycle(client):
    med = _create_medicine(client, stock=10)

    r = client.post(
        "/v1/sales",
        json={
            "payment_method": "cash",
            "discount": {"type": "percentage", "value": "5"},
            "tax_rate": "5",
            "items": [{"medicine_id": med["id"], "quantity": 2, "discount_percentage": "10"}],
        },
        headers={"X-Actor": "cashier-1"},
    )
    assert r.status_code == 201, r.text
    sale = r.json()
    assert sale["status"] == "completed"
    assert Decimal(sale["grand_total"]) == Decimal("180")
    assert sale["created_by"] == "cashier-1"

    assert client.get(f"/v1/medicines/{med['id']}").json()["stock_quantity"] == 8
    assert client.get(f"/v1/sales/by-number/{sale['sale_id']}").json()["id"] == sale["id"]

    r = client.post(f"/v1/sales/{sale['id']}/void", json={"reason": "Wrong item"}, headers={"X-Actor": "manager"})
    assert r.status_code == 200, r.text
    assert r.json()["status"] == "cancelled"
    assert client.get(f"/v1/medicines/{med['id']}").json()["stock_quantity"] == 10

    again = client.post(f"/v1/sales/{sale['id']}/void", json={"reason": "Wrong item"})
    assert again.status_code == 409
    assert again.json()["error"]["code"] == "invalid_transition"

    timeline = client.get(f"/v1/sales/{sale['id']}/timeline").json()
    assert [e["action"] for e in timeline] == ["created", "completed", "voided"]


def test_insufficient_stock_maps_to_409(client):
    med = _create_medicine(client, stock=1)

    r = client.post(
        "/v1/sales",
        json={"payment_method": "card", "items": [{"medicine_id": med["id"], "quantity": 3}]},
    )

    assert r.status_code == 409
    error = r.json()["error"]
    assert error["code"] == "insufficient_stock"
    assert error["field"] == "items.0.quantity"
    assert error["available"] == 1
    assert client.get("/v1/sales").json() == []


def test_validation_errors(client):
    empty = client.post("/v1/sales", json={"payment_method": "cash", "items": []})
    assert empty.status_code == 422
    assert empty.json()["error"]["field"] == "items"

    bad_method = client.post("/v1/sales", json={"payment_method": "bitcoin", "items": []})
    assert bad_method.status_code == 422

    blank_reason = client.post("/v1/sales/1/void", json={"reason": ""})
    assert blank_reason.status_code == 422


def test_unknown_sale_is_404(client):
    r = client.get("/v1/sales/999")
    assert r.status_code == 404
    assert r.json() == {"status": False, "error": {"code": "not_found", "msg": "Sale 999 not found"}}


def test_stock_endpoints_require_idempotency_key(client):
    med = _create_medicine(client, stock=0)

    missing = client.post("/v1/stock-movements/receive", json={"medicine_id": med["id"], "quantity": 5})
    assert missing.status_code == 400

    headers = {"Idempotency-Key": "rcv-42"}
    first = client.post("/v1/stock-movements/receive", json={"medicine_id": med["id"], "quantity": 5}, headers=headers)
    second = client.post("/v1/stock-movements/receive", json={"medicine_id": med["id"], "quantity": 5}, headers=headers)
    assert first.status_code == second.status_code == 200
    assert first.json()["id"] == second.json()["id"]
    assert client.get(f"/v1/medicines/{med['id']}").json()["stock_quantity"] == 5

    adj = client.post(
        "/v1/stock-movements/adjust",
        json={"medicine_id": med["id"], "new_quantity": 0, "reason": "Breakage"},
        headers={"Idempotency-Key": "adj-1"},
    )
    assert adj.status_code == 200
    assert adj.json()["direction"] == "OUT"
    assert client.get("/v1/medicines/low-stock").json()[0]["id"] == med["id"]


def test_idempotency_key_reused_for_other_medicine_is_409(client):
    a = _create_medicine(client, sku="AMOX-250", stock=0)
    b = _create_medicine(client, sku="IBU-400", stock=0)

    headers = {"Idempotency-Key": "k1"}
    first = client.post("/v1/stock-movements/receive", json={"medicine_id": a["id"], "quantity": 5}, headers=headers)
    assert first.status_code == 200

    reused = client.post("/v1/stock-movements/receive", json={"medicine_id": b["id"], "quantity": 5}, headers=headers)
    assert reused.status_code == 409
    assert reused.json()["error"]["code"] == "idempotency_conflict"
    assert client.get(f"/v1/medicines/{b['id']}").json()["stock_quantity"] == 0


def test_database_error_is_returned_in_error_envelope(client, monkeypatch):
    med = _create_medicine(client, stock=5)

    def broken_numbering(db, **kwargs):
        raise IntegrityError("INSERT INTO sale_number_series", {}, sqlite3.IntegrityError("UNIQUE constraint failed"))

    monkeypatch.setattr("pharmapos.services.sales.next_sale_number", broken_numbering)

    r = client.post("/v1/sales", json={"payment_method": "cash", "items": [{"medicine_id": med["id"], "quantity": 1}]})

    assert r.status_code == 500
    body = r.json()
    assert body["status"] is False
    assert body["error"]["code"] == "data_integrity"
    assert client.get(f"/v1/medicines/{med['id']}").json()["stock_quantity"] == 5

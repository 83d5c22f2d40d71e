import random
import re
from datetime import datetime

import mongomock
import pytest
from bson import ObjectId

import order_routes
from order_routes import compute_pricing, generate_order_number

TRACKING = {"carrier": "India Post", "tracking_number": "EE123456789IN", "estimated_delivery": "2026-11-02T00:00:00Z"}


@pytest.fixture
def catalog(artisan, other_artisan, add_product):
    vase = add_product(artisan, price=40.0, stock=5)
    shawl = add_product(
        other_artisan, title="Pashmina Shawl", category="Textiles", price=150.0, stock=2,
        shipping={"free_shipping": True, "shipping_cost": 12.0},
    )
    return vase, shawl


def place_order(c, shipping_address, *lines):
    items = [{"product_id": str(product["_id"]), "quantity": quantity} for product, quantity in lines]
    return c.post("/api/orders", json={"items": items, "shipping_address": shipping_address})


@pytest.fixture
def order(customer, catalog, login, shipping_address):
    vase, _ = catalog
    r = place_order(login(customer), shipping_address, (vase, 1))
    assert r.status_code == 201, r.text
    return r.json()["order"]


def test_compute_pricing_total_invariant():
    lines = [
        {"price": 19.99, "quantity": 3, "shipping_cost": 4.5},
        {"price": 5.0, "quantity": 1, "shipping_cost": 0},
    ]
    pricing = compute_pricing(lines, tax_rate=0.1, discount=2.0)
    assert pricing["subtotal"] == 64.97
    assert pricing["shipping"] == 4.5
    assert pricing["tax"] == 6.5
    assert pricing["total"] == round(pricing["subtotal"] + pricing["shipping"] + pricing["tax"] - pricing["discount"], 2)


def test_generate_order_number():
    number = generate_order_number(datetime(2025, 3, 9), random.Random(1))
    assert re.fullmatch(r"KAR2503\d{4}", number)


def test_create_order(customer, artisan, other_artisan, catalog, login, shipping_address, db):
    vase, shawl = catalog
    r = place_order(login(customer), shipping_address, (vase, 2), (shawl, 1))
    assert r.status_code == 201, r.text
    order = r.json()["order"]

    assert re.fullmatch(r"KAR\d{8}", order["order_number"])
    assert order["status"] == "pending"
    assert order["customer"] == str(customer["_id"])
    assert [item["artisan"] for item in order["items"]] == [str(artisan["_id"]), str(other_artisan["_id"])]
    assert order["items"][0]["price"] == 40.0

    pricing = order["pricing"]
    assert pricing["subtotal"] == 230.0
    assert pricing["shipping"] == 5.0
    assert pricing["total"] == pricing["subtotal"] + pricing["shipping"] + pricing["tax"] - pricing["discount"]

    assert [entry["status"] for entry in order["timeline"]] == ["pending"]
    assert db["product"].find_one({"_id": vase["_id"]})["stock"] == 3
    assert db["product"].find_one({"_id": shawl["_id"]})["stock"] == 1
    assert db["user"].find_one({"_id": customer["_id"]})["stats"]["total_orders"] == 1
    assert db["user"].find_one({"_id": artisan["_id"]})["stats"]["total_sales"] == 2


def test_insufficient_stock_restores_earlier_items(customer, catalog, login, shipping_address, db):
    vase, shawl = catalog
    r = place_order(login(customer), shipping_address, (vase, 2), (shawl, 3))
    assert r.status_code == 400
    assert r.json()["detail"] == "Insufficient stock for Pashmina Shawl"
    assert db["product"].find_one({"_id": vase["_id"]})["stock"] == 5
    assert db["product"].find_one({"_id": shawl["_id"]})["stock"] == 2
    assert db["order"].count_documents({}) == 0


def test_unavailable_product(customer, artisan, add_product, login, shipping_address):
    draft = add_product(artisan, status="draft")
    c = login(customer)
    assert place_order(c, shipping_address, (draft, 1)).status_code == 400
    assert place_order(c, shipping_address, ({"_id": ObjectId()}, 1)).status_code == 400


def test_order_validation(customer, catalog, login, shipping_address):
    vase, _ = catalog
    c = login(customer)
    assert place_order(c, shipping_address).status_code == 400
    assert place_order(c, shipping_address, (vase, 0)).status_code == 400


def test_only_customers_order(artisan, catalog, login, shipping_address):
    vase, _ = catalog
    assert place_order(login(artisan), shipping_address, (vase, 1)).status_code == 403


def test_artisan_walks_order_to_delivered(order, artisan, login, db):
    c = login(artisan)
    url = f"/api/orders/{order['_id']}/status/artisan"
    for step in ("confirmed", "processing"):
        r = c.put(url, json={"status": step})
        assert r.status_code == 200, r.text
        assert r.json()["order"]["status"] == step

    r = c.put(url, json={"status": "shipped", "tracking": TRACKING})
    assert r.status_code == 200
    tracking = r.json()["order"]["tracking"]
    assert tracking["carrier"] == "India Post"
    assert tracking["tracking_number"] == "EE123456789IN"
    assert tracking["shipped_date"]

    r = c.put(url, json={"status": "delivered"})
    assert r.status_code == 200
    assert r.json()["order"]["tracking"]["delivered_date"]

    stored = db["order"].find_one({"_id": ObjectId(order["_id"])})
    assert [e["status"] for e in stored["timeline"]] == ["pending", "confirmed", "processing", "shipped", "delivered"]
    assert all(e["updated_by"] == artisan["_id"] for e in stored["timeline"][1:])

    r = c.put(url, json={"status": "confirmed"})
    assert r.status_code == 400
    assert r.json()["detail"] == "Cannot transition from delivered to confirmed"


def test_artisan_cannot_skip_steps(order, artisan, login, db):
    r = login(artisan).put(f"/api/orders/{order['_id']}/status/artisan", json={"status": "shipped", "tracking": TRACKING})
    assert r.status_code == 400
    assert r.json()["detail"] == "Cannot transition from pending to shipped"
    stored = db["order"].find_one({"_id": ObjectId(order["_id"])})
    assert stored["status"] == "pending"
    assert len(stored["timeline"]) == 1


def test_artisan_cannot_cancel(order, artisan, login):
    r = login(artisan).put(f"/api/orders/{order['_id']}/status/artisan", json={"status": "cancelled"})
    assert r.status_code == 400


def test_shipping_requires_tracking(order, artisan, login, db):
    c = login(artisan)
    url = f"/api/orders/{order['_id']}/status/artisan"
    c.put(url, json={"status": "confirmed"})
    c.put(url, json={"status": "processing"})
    partial = {"carrier": "India Post"}
    assert c.put(url, json={"status": "shipped"}).status_code == 400
    assert c.put(url, json={"status": "shipped", "tracking": partial}).status_code == 400
    assert db["order"].find_one({"_id": ObjectId(order["_id"])})["status"] == "processing"


def test_unrelated_artisan_cannot_update(order, other_artisan, login):
    r = login(other_artisan).put(f"/api/orders/{order['_id']}/status/artisan", json={"status": "confirmed"})
    assert r.status_code == 404


def test_order_visibility(order, customer, other_customer, artisan, other_artisan, admin, login):
    url = f"/api/orders/{order['_id']}"
    r = login(customer).get(url)
    assert r.status_code == 200
    assert r.json()["order"]["items"][0]["product"]["title"] == "Blue Pottery Vase"
    assert login(artisan).get(url).status_code == 200
    assert login(admin).get(url).status_code == 200
    assert login(other_customer).get(url).status_code == 403
    assert login(other_artisan).get(url).status_code == 403
    assert login(customer).get(f"/api/orders/{ObjectId()}").status_code == 404


def test_admin_override(order, admin, login, db):
    c = login(admin)
    url = f"/api/orders/{order['_id']}/status"
    r = c.put(url, json={"status": "cancelled", "note": "Customer request"})
    assert r.status_code == 200
    stored = db["order"].find_one({"_id": ObjectId(order["_id"])})
    assert stored["status"] == "cancelled"
    assert stored["timeline"][-1]["note"] == "Customer request"
    assert stored["timeline"][-1]["updated_by"] == admin["_id"]

    assert c.put(url, json={"status": "lost"}).status_code == 400


def test_admin_override_requires_admin(order, artisan, login):
    assert login(artisan).put(f"/api/orders/{order['_id']}/status", json={"status": "delivered"}).status_code == 403


def test_role_order_lists(order, customer, artisan, other_artisan, admin, login):
    r = login(customer).get("/api/orders/customer/my-orders")
    assert [o["_id"] for o in r.json()["orders"]] == [order["_id"]]
    r = login(artisan).get("/api/orders/artisan/my-orders")
    assert [o["_id"] for o in r.json()["orders"]] == [order["_id"]]
    assert r.json()["orders"][0]["customer"]["name"] == "Asha Mehta"
    assert login(other_artisan).get("/api/orders/artisan/my-orders").json()["orders"] == []

    r = login(admin).get("/api/orders", params={"status": "pending"})
    assert r.json()["pagination"]["total"] == 1
    assert login(customer).get("/api/orders").status_code == 403


def test_concurrent_status_change_conflicts(order, artisan, login, db, monkeypatch):
    original = mongomock.Collection.find_one_and_update

    def racing(self, filter, update, *args, **kwargs):
        if self.name == "order" and "status" in filter:
            self.update_one({"_id": filter["_id"]}, {"$set": {"status": "cancelled"}})
        return original(self, filter, update, *args, **kwargs)

    monkeypatch.setattr(mongomock.Collection, "find_one_and_update", racing)
    r = login(artisan).put(f"/api/orders/{order['_id']}/status/artisan", json={"status": "confirmed"})
    assert r.status_code == 409
    stored = db["order"].find_one({"_id": ObjectId(order["_id"])})
    assert stored["status"] == "cancelled"
    assert len(stored["timeline"]) == 1


def test_order_number_retried_on_collision(customer, catalog, login, shipping_address, db, monkeypatch):
    db["order"].insert_one({"order_number": "KAR25010001"})
    numbers = iter(["KAR25010001", "KAR25010002"])
    monkeypatch.setattr(order_routes, "generate_order_number", lambda now=None, rng=None: next(numbers))
    vase, _ = catalog

    r = place_order(login(customer), shipping_address, (vase, 1))
    assert r.status_code == 201, r.text
    assert r.json()["order"]["order_number"] == "KAR25010002"
    assert db["order"].count_documents({}) == 2


def test_order_number_exhaustion_releases_stock(customer, catalog, login, shipping_address, db, monkeypatch):
    db["order"].insert_one({"order_number": "KAR25010001"})
    monkeypatch.setattr(order_routes, "generate_order_number", lambda now=None, rng=None: "KAR25010001")
    vase, _ = catalog

    with pytest.raises(RuntimeError):
        place_order(login(customer), shipping_address, (vase, 2))
    assert db["product"].find_one({"_id": vase["_id"]})["stock"] == 5
    assert db["order"].count_documents({}) == 1


def test_unknown_payment_method(customer, catalog, login, shipping_address):
    vase, _ = catalog
    items = [{"product_id": str(vase["_id"]), "quantity": 1}]
    r = login(customer).post(
        "/api/orders", json={"items": items, "shipping_address": shipping_address, "payment_method": "barter"}
    )
    assert r.status_code == 400

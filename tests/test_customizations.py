import pytest
from bson import ObjectId


def request_payload(artisan, product, **overrides):
    payload = {
        "artisan_id": str(artisan["_id"]),
        "product_id": str(product["_id"]),
        "request_details": {
            "title": "Vase with family crest",
            "description": "Same shape, with our crest painted in gold.",
            "specifications": {"color": "gold", "quantity": 2, "budget": {"min": 50, "max": 120}},
        },
        "priority": "high",
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def vase(artisan, add_product):
    return add_product(artisan)


@pytest.fixture
def customization(customer, artisan, vase, login):
    r = login(customer).post("/api/customizations", json=request_payload(artisan, vase))
    assert r.status_code == 201, r.text
    return r.json()["request"]


def test_create_request(customization, customer, artisan):
    assert customization["status"] == "pending"
    assert customization["customer"]["name"] == "Asha Mehta"
    assert customization["artisan"]["_id"] == str(artisan["_id"])
    assert customization["product"]["title"] == "Blue Pottery Vase"
    assert customization["request_details"]["specifications"]["quantity"] == 2
    assert [e["status"] for e in customization["timeline"]] == ["pending"]


def test_create_request_checks_artisan_and_product(customer, artisan, other_artisan, vase, login):
    c = login(customer)
    r = c.post("/api/customizations", json=request_payload(other_artisan, vase))
    assert r.status_code == 400
    r = c.post("/api/customizations", json=request_payload(customer, vase))
    assert r.status_code == 400
    r = c.post("/api/customizations", json=request_payload(artisan, {"_id": ObjectId()}))
    assert r.status_code == 400


def test_only_customers_create(artisan, vase, login):
    assert login(artisan).post("/api/customizations", json=request_payload(artisan, vase)).status_code == 403


def test_request_visibility(customization, customer, other_customer, artisan, other_artisan, admin, login):
    url = f"/api/customizations/{customization['_id']}"
    assert login(customer).get(url).status_code == 200
    assert login(artisan).get(url).status_code == 200
    assert login(admin).get(url).status_code == 200
    assert login(other_customer).get(url).status_code == 403
    assert login(other_artisan).get(url).status_code == 403


def test_role_lists(customization, customer, artisan, other_artisan, admin, login):
    r = login(customer).get("/api/customizations/customer/my-requests")
    assert [x["_id"] for x in r.json()["requests"]] == [customization["_id"]]
    r = login(artisan).get("/api/customizations/artisan/my-requests")
    assert [x["_id"] for x in r.json()["requests"]] == [customization["_id"]]
    assert login(other_artisan).get("/api/customizations/artisan/my-requests").json()["requests"] == []
    r = login(admin).get("/api/customizations", params={"status": "pending"})
    assert r.json()["pagination"]["total"] == 1


def test_status_update_appends_timeline(customization, artisan, other_customer, login, db):
    url = f"/api/customizations/{customization['_id']}/status"
    r = login(artisan).put(url, json={"status": "under-review", "note": "Checking glaze"})
    assert r.status_code == 200
    assert r.json()["request"]["status"] == "under-review"

    stored = db["customization"].find_one({"_id": ObjectId(customization["_id"])})
    assert [e["status"] for e in stored["timeline"]] == ["pending", "under-review"]
    assert stored["timeline"][-1]["note"] == "Checking glaze"

    assert login(other_customer).put(url, json={"status": "cancelled"}).status_code == 403
    assert login(artisan).put(url, json={"status": "teleported"}).status_code == 400


def test_quote_sums_components(customization, artisan, login, db):
    r = login(artisan).put(
        f"/api/customizations/{customization['_id']}/quote",
        json={"base_price": 40, "customization_fee": 25.5, "material_cost": 10, "labor_cost": 20, "message": "Two weeks"},
    )
    assert r.status_code == 200, r.text
    body = r.json()["request"]
    assert body["status"] == "quoted"
    assert body["quote"]["total_price"] == 95.5
    assert body["artisan_response"]["estimated_price"] == 95.5
    stored = db["customization"].find_one({"_id": ObjectId(customization["_id"])})
    assert stored["timeline"][-1]["status"] == "quoted"


def test_quote_explicit_total(customization, artisan, login):
    r = login(artisan).put(
        f"/api/customizations/{customization['_id']}/quote",
        json={"base_price": 40, "total_price": 60},
    )
    assert r.json()["request"]["quote"]["total_price"] == 60


def test_quote_restrictions(customization, artisan, other_artisan, login, db):
    url = f"/api/customizations/{customization['_id']}/quote"
    assert login(other_artisan).put(url, json={"base_price": 10}).status_code == 403
    assert login(artisan).put(url, json={"base_price": -1}).status_code == 400

    db["customization"].update_one({"_id": ObjectId(customization["_id"])}, {"$set": {"status": "completed"}})
    assert login(artisan).put(url, json={"base_price": 10}).status_code == 400

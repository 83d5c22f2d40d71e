import os
import sys

import mongomock
import pytest
from fastapi.testclient import TestClient
from passlib.context import CryptContext

# ensure project root is on sys.path when running from tests/ folder
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

import config
import security
from database import create_document, get_db, utcnow
from main import app
from schemas import User

PASSWORD = "password123"
PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64


@pytest.fixture(autouse=True)
def fast_hashing(monkeypatch):
    monkeypatch.setattr(security, "pwd_context", CryptContext(schemes=["bcrypt"], bcrypt__rounds=4))


@pytest.fixture(autouse=True)
def upload_dir(tmp_path, monkeypatch):
    path = tmp_path / "uploads"
    monkeypatch.setattr(config, "UPLOAD_DIR", str(path))
    return path


@pytest.fixture
def db():
    database = mongomock.MongoClient()["karigari_test"]
    database["user"].create_index("email", unique=True)
    database["order"].create_index("order_number", unique=True)
    database["chat"].create_index("room_id", unique=True)
    app.dependency_overrides[get_db] = lambda: database
    yield database
    app.dependency_overrides.clear()


@pytest.fixture
def client(db):
    return TestClient(app)


@pytest.fixture
def add_user(db):
    def _add(name, email, role="customer", status="approved"):
        user = User(name=name, email=email, password_hash=security.hash_password(PASSWORD), role=role, status=status)
        create_document(db, "user", user.model_dump())
        return db["user"].find_one({"email": email})
    return _add


@pytest.fixture
def login(db):
    def _login(user, password=PASSWORD):
        c = TestClient(app)
        r = c.post("/api/auth/login", json={"email": user["email"], "password": password})
        assert r.status_code == 200, r.text
        return c
    return _login


@pytest.fixture
def customer(add_user):
    return add_user("Asha Mehta", "asha@crafts.in")


@pytest.fixture
def other_customer(add_user):
    return add_user("Kabir Rao", "kabir@crafts.in")


@pytest.fixture
def artisan(add_user):
    return add_user("Ravi Kumhar", "ravi@crafts.in", role="artisan", status="approved")


@pytest.fixture
def other_artisan(add_user):
    return add_user("Meena Weaver", "meena@crafts.in", role="artisan", status="approved")


@pytest.fixture
def admin(add_user):
    return add_user("Admin", "admin@crafts.in", role="admin")


@pytest.fixture
def add_product(db):
    def _add(artisan, **overrides):
        now = utcnow()
        doc = {
            "title": "Blue Pottery Vase",
            "description": "Hand-thrown vase glazed in Jaipur blue.",
            "category": "Pottery",
            "materials": "clay, quartz",
            "price": 40.0,
            "stock": 5,
            "images": [],
            "tags": ["pottery", "jaipur"],
            "artisan": artisan["_id"],
            "status": "published",
            "stats": {"views": 0, "likes": 0, "sales": 0, "rating": 0, "review_count": 0},
            "shipping": {"free_shipping": False, "shipping_cost": 5.0},
            "created_at": now,
            "updated_at": now,
        }
        doc.update(overrides)
        doc["_id"] = db["product"].insert_one(doc).inserted_id
        return doc
    return _add


@pytest.fixture
def shipping_address():
    return {
        "name": "Asha Mehta",
        "street": "12 MG Road",
        "city": "Pune",
        "state": "MH",
        "zip_code": "411001",
        "country": "India",
    }

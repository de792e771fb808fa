import mongomock
import pytest
from fastapi.testclient import TestClient

import database
from main import app
from schemas import OrderCreate, Product, User
from security import create_access_token, hash_password

PASSWORD = "secret123"


@pytest.fixture(autouse=True)
def db(monkeypatch):
    mock = mongomock.MongoClient()["havre_test"]
    monkeypatch.setattr(database, "db", mock)
    database.ensure_indexes()
    return mock


@pytest.fixture
def client():
    return TestClient(app)


def _create_user(username: str, role: str) -> str:
    user = User(
        username=username,
        email=f"{username}@havrebakery.com",
        password_hash=hash_password(PASSWORD),
        first_name=username.title(),
        role=role,
    )
    return database.create_document("user", user)


@pytest.fixture
def admin_id(db):
    return _create_user("baker", "admin")


@pytest.fixture
def customer_id(db):
    return _create_user("margot", "customer")


@pytest.fixture
def admin_headers(admin_id):
    return {"Authorization": f"Bearer {create_access_token(admin_id)}"}


@pytest.fixture
def customer_headers(customer_id):
    return {"Authorization": f"Bearer {create_access_token(customer_id)}"}


@pytest.fixture
def make_product(db):
    def make(**overrides) -> str:
        data = {
            "name": "Sourdough Loaf",
            "description": "Naturally leavened country loaf",
            "price": 6.5,
            "category": "Bread",
            "stock": 10,
        }
        data.update(overrides)
        return database.create_document("product", Product(**data))
    return make


@pytest.fixture
def make_cart():
    def make(*lines, order_type="pickup", **extra) -> OrderCreate:
        return OrderCreate(
            customer={"name": "Ada Lind", "email": "ada@havrebakery.com", "phone": "555-0101"},
            items=[{"product": pid, "quantity": qty, "price": price} for pid, qty, price in lines],
            order_type=order_type,
            payment_method="cash",
            **extra,
        )
    return make

from collections import defaultdict

import mongomock
import pytest
from fastapi.testclient import TestClient

import config
import database
import main
from schemas import CustomerDetails, Product, ProductImage


@pytest.fixture
def store(monkeypatch):
    db = mongomock.MongoClient().db
    monkeypatch.setattr(database, "db", db)
    monkeypatch.setattr(database, "_collection_listeners", defaultdict(list))
    monkeypatch.setattr(database, "_document_listeners", defaultdict(list))
    return db


@pytest.fixture
def client(store):
    return TestClient(main.app)


@pytest.fixture
def admin_headers(client):
    res = client.post("/admin/login", json={"password": config.ADMIN_PASSWORD})
    return {"Authorization": f"Bearer {res.json()['token']}"}


@pytest.fixture
def jane():
    return CustomerDetails(name="Jane Doe", phone="+919876543210", address="12 MG Road, Pune, MH, 411001")


@pytest.fixture
def customer_headers(client, jane):
    res = client.post("/session/customer", json=jane.model_dump())
    return {"Authorization": f"Bearer {res.json()['token']}"}


@pytest.fixture
def make_product():
    def _make(id="prod_1", name="Denim Jacket", category="Jackets", sale_price=2999, original_price=3499,
              sizes=("S", "M", "L", "XL"), cod=True, **extra):
        return Product(
            id=id,
            name=name,
            category=category,
            description=f"{name} description",
            original_price=original_price,
            sale_price=sale_price,
            price_formatted=f"₹{sale_price}",
            images=[ProductImage(id=f"{id}_img", url=f"https://img.example.com/{id}.jpg", alt=name)],
            sizes=list(sizes),
            is_cash_on_delivery_available=cod,
            **extra,
        )
    return _make


@pytest.fixture
def denim_jacket(make_product):
    return make_product()

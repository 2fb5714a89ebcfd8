"""Shared fixtures: in-memory Mongo (mongomock) behind the store dependency."""

import os

# Must be set before config.get_settings() is first called
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("LOG_FORMAT", "text")
os.environ.setdefault("DATABASE_URL", "mongodb://localhost:27017")

import mongomock
import pytest
from fastapi.testclient import TestClient

from database import Store, get_store
from main import app


@pytest.fixture
def store():
    return Store(mongomock.MongoClient()["shop_test"])


@pytest.fixture
def client(store):
    app.dependency_overrides[get_store] = lambda: store
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def register(client):
    """Register a customer and return (customer, token)."""

    def _register(email="a@b.com", password="secret", name="Ada", last_name="Lovelace"):
        res = client.post(
            "/customers",
            json={"email": email, "password": password, "name": name, "last_name": last_name},
        )
        assert res.status_code == 201, res.text
        body = res.json()
        return body["customer"], body["token"]

    return _register


@pytest.fixture
def bearer():
    def _bearer(token: str) -> dict:
        return {"Authorization": f"Bearer {token}"}

    return _bearer

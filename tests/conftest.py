"""
Pytest fixtures for the marketplace test suite.

Provides:
- an in-memory MongoDB (mongomock) per test
- services bound to that database
- a Flask app / test clients wired to the same database

Nothing here needs a running MongoDB server.
"""

import os

# the module-level app in app.py must not try to reach a real server
os.environ.setdefault("DISABLE_MONGO", "1")

import mongomock
import pytest
from flask import Flask
from flask_bcrypt import Bcrypt

from agrolink.mongo import ensure_indexes
from agrolink.services.approval_service import ApprovalService
from agrolink.services.catalog_service import CatalogService
from agrolink.services.directory_service import DirectoryService
from agrolink.services.request_service import RequestService
from agrolink.services.settlement_service import SettlementService

FARMER_ID = "FRM000001"
RETAILER_ID = "RET000001"
LOGISTIC_ID = "LOG000001"
WAREHOUSE_ID = "WRH000001"

TEST_CONFIG = {
    "TESTING": True,
    "SECRET_KEY": "test-secret",
    "JWT_SECRET_KEY": "test-jwt-secret-key-that-is-long-enough-for-hs256",
    "BCRYPT_LOG_ROUNDS": 4,
    "PAYMENT_GATEWAY_BASE_URL": "",
    "MONGO_READ_RETRIES": 1,
    "MONGO_USE_TRANSACTIONS": False,
    "STREAM_POLL_INTERVAL": 0.01,
    "STORAGE_PAYMENT_DUE_DAYS": 30,
}


def make_db():
    client = mongomock.MongoClient(tz_aware=True)
    database = client["agrolink_test"]
    ensure_indexes(database)
    return database


@pytest.fixture
def db():
    return make_db()


@pytest.fixture
def catalog(db):
    return CatalogService(db, read_retries=1)


@pytest.fixture
def request_service(db):
    return RequestService(db, read_retries=1)


@pytest.fixture
def approvals(db, catalog):
    return ApprovalService(db, catalog=catalog, read_retries=1,
                           config={"STORAGE_PAYMENT_DUE_DAYS": 30})


@pytest.fixture
def settlements(db):
    return SettlementService(db, read_retries=1)


@pytest.fixture
def fast_bcrypt():
    holder = Flask("bcrypt-holder")
    holder.config["BCRYPT_LOG_ROUNDS"] = 4
    return Bcrypt(holder)


@pytest.fixture
def directory(db, fast_bcrypt):
    return DirectoryService(db, hasher=fast_bcrypt, read_retries=1)


@pytest.fixture
def crop(catalog):
    """Farmer crop: 100 kg at 10 per kg."""
    return catalog.create("farmer", FARMER_ID, {"crop_name": "Wheat", "quantity": 100, "price": 10})


# ------------------------------
# HTTP
# ------------------------------
@pytest.fixture
def app(db):
    from app import create_app

    return create_app(dict(TEST_CONFIG), db=db)


@pytest.fixture
def client(app):
    return app.test_client()


def signup(client, role, email, **extra):
    body = {
        "role": role,
        "full_name": extra.pop("full_name", f"{role.title()} One"),
        "email": email,
        "password": "secret123",
        "confirm_password": "secret123",
    }
    body.update(extra)
    resp = client.post("/auth/signup", json=body)
    assert resp.status_code == 201, resp.get_json()
    return resp.get_json()

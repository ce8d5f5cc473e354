# agrolink/mongo.py
from __future__ import annotations

from flask_pymongo import PyMongo

mongo = PyMongo()


def init_mongo(app):
    """
    Initializes Flask-PyMongo with bounded timeouts.
    Requires app.config["MONGO_URI"].
    Call this during app startup (create_app).
    """
    if not app.config.get("MONGO_URI"):
        print("⚠️ MONGO_URI not set. Mongo will not be initialized.")
        return mongo

    timeout_ms = app.config.get("MONGO_TIMEOUT_MS", 5000)

    # every round trip is bounded; nothing may hang a request indefinitely
    mongo.init_app(
        app,
        serverSelectionTimeoutMS=timeout_ms,
        connectTimeoutMS=timeout_ms,
        socketTimeoutMS=timeout_ms,
        tz_aware=True,
    )
    print("✅ Mongo initialized")

    return mongo


def ensure_indexes(db):
    """
    Indexes the marketplace relies on. Safe to call on every start-up.
    The unique (role, email) index backs sign-up's duplicate check.
    """
    db.users.create_index([("role", 1), ("email", 1)], unique=True)
    db.users.create_index("user_id", unique=True)
    db.catalog_items.create_index([("owner_role", 1), ("owner_id", 1)])
    db.requests.create_index([("target_owner_role", 1), ("target_owner_id", 1), ("status", 1)])
    db.requests.create_index([("requester_role", 1), ("requester_id", 1)])
    db.settlements.create_index([("payer_role", 1), ("payer_id", 1)])
    db.settlements.create_index([("payee_role", 1), ("payee_id", 1)])
    db.payment_receipts.create_index([("payer_role", 1), ("payer_id", 1)])

# agrolink/app_config.py

import logging
import os
from datetime import timedelta


def _flag(name: str, default: str = "0") -> bool:
    return os.getenv(name, default) == "1"


def load_config(app, overrides=None):
    """
    Load all Flask configuration in a clean centralized way.
    `overrides` wins over environment variables (used by tests).
    """
    # ------------------------------
    # Mongo
    # ------------------------------
    app.config["MONGO_URI"] = os.getenv(
        "MONGO_URI",
        "mongodb://localhost:27017/agrolink_db"
    )
    app.config["MONGO_TIMEOUT_MS"] = int(os.getenv("MONGO_TIMEOUT_MS", "5000"))
    app.config["MONGO_READ_RETRIES"] = int(os.getenv("MONGO_READ_RETRIES", "3"))
    app.config["MONGO_USE_TRANSACTIONS"] = _flag("MONGO_USE_TRANSACTIONS")
    app.config["DISABLE_MONGO"] = _flag("DISABLE_MONGO")

    # ------------------------------
    # Security Keys / JWT
    # ------------------------------
    app.config["SECRET_KEY"] = os.getenv("SECRET_KEY", os.urandom(24))
    app.config["JWT_SECRET_KEY"] = os.getenv("JWT_SECRET_KEY", "change-me")
    app.config["JWT_ACCESS_TOKEN_EXPIRES"] = timedelta(
        hours=int(os.getenv("JWT_ACCESS_TOKEN_EXPIRES_H", "6"))
    )
    app.config["JWT_REFRESH_TOKEN_EXPIRES"] = timedelta(
        days=int(os.getenv("JWT_REFRESH_TOKEN_EXPIRES_D", "14"))
    )
    app.config["JWT_TOKEN_LOCATION"] = ["headers"]
    app.config["JWT_HEADER_TYPE"] = "Bearer"

    # ------------------------------
    # Payment gateway (verification only)
    # ------------------------------
    app.config["PAYMENT_GATEWAY_BASE_URL"] = (os.getenv("PAYMENT_GATEWAY_BASE_URL", "") or "").rstrip("/")
    app.config["PAYMENT_GATEWAY_TIMEOUT"] = int(os.getenv("PAYMENT_GATEWAY_TIMEOUT", "20"))
    app.config["PAYMENT_GATEWAY_MAX_RETRIES"] = int(os.getenv("PAYMENT_GATEWAY_MAX_RETRIES", "3"))

    # ------------------------------
    # Marketplace rules
    # ------------------------------
    app.config["STORAGE_PAYMENT_DUE_DAYS"] = int(os.getenv("STORAGE_PAYMENT_DUE_DAYS", "30"))
    app.config["STREAM_POLL_INTERVAL"] = float(os.getenv("STREAM_POLL_INTERVAL", "2.0"))

    app.config["LOG_LEVEL"] = os.getenv("LOG_LEVEL", "INFO").upper()

    if overrides:
        app.config.update(overrides)

    print("✓ Config Loaded Successfully")


def configure_logging(app):
    """
    One stream handler on the root logger so service modules
    (logging.getLogger(__name__)) and app.logger share the same format.
    """
    level = getattr(logging, app.config.get("LOG_LEVEL", "INFO"), logging.INFO)
    root = logging.getLogger()
    if not any(getattr(h, "_agrolink", False) for h in root.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s [%(name)s] %(message)s")
        )
        handler._agrolink = True
        root.addHandler(handler)
    root.setLevel(level)
    app.logger.setLevel(level)

# agrolink/mongo_safe.py
from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from typing import Callable, Optional, TypeVar

from flask import current_app, has_app_context
from pymongo.errors import ConnectionFailure, PyMongoError

from agrolink.errors import RemoteUnavailableError

log = logging.getLogger(__name__)

T = TypeVar("T")

# extension slot used to hand a ready Database to the app (tests, scripts)
DB_EXTENSION_KEY = "agrolink_db"


def get_db():
    """
    Returns the active Database handle.
    Prefers an explicitly attached database (app.extensions[DB_EXTENSION_KEY]),
    then Flask-PyMongo's mongo.db.
    """
    if has_app_context():
        db = current_app.extensions.get(DB_EXTENSION_KEY)
        if db is not None:
            return db

    from agrolink.mongo import mongo  # Flask-PyMongo instance
    db = getattr(mongo, "db", None)
    if db is None:
        raise RemoteUnavailableError("Document store is not configured.")
    return db


def read_with_retry(op: Callable[[], T], retries: int = 3, base_delay: float = 0.2) -> T:
    """
    Run a read against the store, retrying transient connection failures
    with exponential backoff. Only reads go through here.
    """
    last_err: Optional[Exception] = None
    for attempt in range(1, max(retries, 1) + 1):
        try:
            return op()
        except ConnectionFailure as e:
            last_err = e
            log.warning("store read failed (attempt %s/%s): %s", attempt, retries, e)
            if attempt < retries:
                time.sleep(base_delay * (2 ** (attempt - 1)))
        except PyMongoError as e:
            raise RemoteUnavailableError() from e
    raise RemoteUnavailableError() from last_err


@contextmanager
def write_guard(action: str, session=None):
    """
    Writes are never retried; driver errors surface as RemoteUnavailableError.
    Inside a transaction (`session` given) they propagate untouched so
    with_transaction still sees TransientTransactionError labels.
    """
    try:
        yield
    except PyMongoError as e:
        if session is not None:
            raise
        log.error("store write failed during %s: %s", action, e)
        raise RemoteUnavailableError() from e

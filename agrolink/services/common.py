# agrolink/services/common.py
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from bson import ObjectId
from bson.errors import InvalidId

from agrolink.errors import NotFoundError


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def to_object_id(value: Any, what: str = "record") -> ObjectId:
    """Parse an id from a URL/body; a malformed id is reported like a missing one."""
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(str(value))
    except (InvalidId, TypeError):
        raise NotFoundError(f"{what.capitalize()} not found") from None


def iso(dt: Optional[datetime]) -> Optional[str]:
    if isinstance(dt, datetime):
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        return dt.isoformat()
    return dt

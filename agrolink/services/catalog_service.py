# agrolink/services/catalog_service.py

import logging
from typing import Any, Dict, List, Optional

from pydantic import ValidationError as PydanticValidationError
from pymongo import ReturnDocument

from agrolink.errors import (
    ForbiddenError,
    InsufficientStockError,
    NotFoundError,
    ValidationError,
    from_pydantic,
)
from agrolink.models.catalog_models import CatalogItemCreateModel, CatalogItemUpdateModel
from agrolink.models.roles import normalize_role
from agrolink.mongo_safe import read_with_retry, write_guard
from agrolink.services.common import iso, now_utc, to_object_id
from agrolink.services.item_locks import item_locks
from agrolink.services.resource_kinds import kind_for_role, to_money

log = logging.getLogger(__name__)


def item_row(d: Dict[str, Any]) -> Dict[str, Any]:
    """Shape a catalog document for JSON output."""
    return {
        "item_id": str(d.get("_id")),
        "owner_role": d.get("owner_role"),
        "owner_id": d.get("owner_id"),
        "kind": d.get("kind"),
        "name": d.get("name") or "-",
        "quantity_available": int(d.get("quantity_available") or 0),
        "unit_price": d.get("unit_price"),
        "attributes": d.get("attributes") or {},
        "version": d.get("version", 0),
        "created_at": iso(d.get("created_at")),
        "updated_at": iso(d.get("updated_at")),
    }


class CatalogService:

    def __init__(self, db, read_retries: int = 3):
        self.db = db
        self.items = db.catalog_items
        self.read_retries = read_retries

    # =========================
    # READ
    # =========================
    def list_items(self, owner_id: str, owner_role: Optional[str] = None) -> List[Dict[str, Any]]:
        query = {"owner_id": owner_id}
        if owner_role:
            query["owner_role"] = owner_role

        docs = read_with_retry(
            lambda: list(self.items.find(query).sort("created_at", -1)),
            self.read_retries,
        )
        return [item_row(d) for d in docs]

    def browse(self, owner_role: str, owner_id: str) -> List[Dict[str, Any]]:
        """Another actor's catalog as a requester sees it."""
        role = normalize_role(owner_role)
        if not role:
            raise ValidationError("Unknown role", fields=["role"])
        return self.list_items(owner_id, role)

    def get_doc(self, item_id) -> Dict[str, Any]:
        oid = to_object_id(item_id, "item")
        doc = read_with_retry(lambda: self.items.find_one({"_id": oid}), self.read_retries)
        if not doc:
            raise NotFoundError("Item not found")
        return doc

    def get(self, item_id) -> Dict[str, Any]:
        return item_row(self.get_doc(item_id))

    # =========================
    # WRITE
    # =========================
    def create(self, owner_role: str, owner_id: str, payload: dict) -> Dict[str, Any]:
        kind = kind_for_role(owner_role)
        fields = kind.normalize(payload)

        missing = [k for k in ("name", "quantity", "unit_price") if fields.get(k) in (None, "")]
        if missing:
            raise ValidationError(
                "Please fill at least name, quantity, and price.", fields=missing
            )
        try:
            data = CatalogItemCreateModel(**fields)
        except PydanticValidationError as e:
            raise from_pydantic(e) from None

        now = now_utc()
        doc = {
            "owner_role": owner_role,
            "owner_id": owner_id,
            "kind": kind.name,
            "name": data.name,
            "quantity_available": data.quantity,
            "unit_price": float(to_money(data.unit_price)),
            "attributes": data.attributes,
            "version": 0,
            "created_at": now,
            "updated_at": now,
        }
        with write_guard("catalog create"):
            inserted = self.items.insert_one(doc)
        doc["_id"] = inserted.inserted_id

        log.info("catalog item %s created by %s %s (qty=%s)",
                 inserted.inserted_id, owner_role, owner_id, data.quantity)
        return item_row(doc)

    def update(self, owner_role: str, owner_id: str, item_id, payload: dict) -> Dict[str, Any]:
        payload = dict(payload or {})
        if any(k in payload for k in ("quantity", "quantity_available", "capacity")):
            raise ValidationError(
                "Quantity cannot be overwritten; use a quantity adjustment.",
                fields=["quantity"],
            )

        kind = kind_for_role(owner_role)
        fields = kind.normalize(payload)
        try:
            data = CatalogItemUpdateModel(
                name=fields["name"],
                unit_price=fields["unit_price"],
                attributes=fields["attributes"] or None,
            )
        except PydanticValidationError as e:
            raise from_pydantic(e) from None

        changes: Dict[str, Any] = {}
        if data.name is not None:
            changes["name"] = data.name
        if data.unit_price is not None:
            changes["unit_price"] = float(to_money(data.unit_price))
        if data.attributes:
            for k, v in data.attributes.items():
                changes[f"attributes.{k}"] = v
        if not changes:
            raise ValidationError("Nothing to update")
        changes["updated_at"] = now_utc()

        oid = to_object_id(item_id, "item")
        with write_guard("catalog update"):
            doc = self.items.find_one_and_update(
                {"_id": oid, "owner_id": owner_id, "owner_role": owner_role},
                {"$set": changes},
                return_document=ReturnDocument.AFTER,
            )
        if not doc:
            raise NotFoundError("Item not found")
        return item_row(doc)

    def remove(self, owner_id: str, item_id) -> None:
        oid = to_object_id(item_id, "item")
        with write_guard("catalog remove"):
            res = self.items.delete_one({"_id": oid, "owner_id": owner_id})
        if res.deleted_count == 0:
            raise NotFoundError("Item not found")
        log.info("catalog item %s removed by %s", item_id, owner_id)

    def adjust_quantity(self, item_id, delta: int, owner_id: Optional[str] = None,
                        session=None) -> Dict[str, Any]:
        """
        The only quantity mutation path. Applies `delta` with a conditional
        update so the result can never go below zero.
        """
        if not isinstance(delta, int) or isinstance(delta, bool):
            raise ValidationError("delta must be an integer", fields=["delta"])

        oid = to_object_id(item_id, "item")
        query: Dict[str, Any] = {"_id": oid}
        if owner_id is not None:
            query["owner_id"] = owner_id
        if delta < 0:
            query["quantity_available"] = {"$gte": -delta}

        with item_locks.hold(oid):
            with write_guard("quantity adjust", session):
                doc = self.items.find_one_and_update(
                    query,
                    {
                        "$inc": {"quantity_available": delta, "version": 1},
                        "$set": {"updated_at": now_utc()},
                    },
                    return_document=ReturnDocument.AFTER,
                    session=session,
                )
            if doc:
                return item_row(doc)

            current = self.items.find_one({"_id": oid}, session=session)

        if not current:
            raise NotFoundError("Item not found")
        if owner_id is not None and current.get("owner_id") != owner_id:
            raise ForbiddenError("You can only adjust your own items.")
        available = int(current.get("quantity_available") or 0)
        log.warning("adjust refused on %s: available=%s delta=%s", item_id, available, delta)
        raise InsufficientStockError(available=available, requested=-delta)

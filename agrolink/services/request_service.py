# agrolink/services/request_service.py

import logging
from typing import Any, Dict, List, Optional

from pydantic import ValidationError as PydanticValidationError

from agrolink.errors import ForbiddenError, NotFoundError, ValidationError, from_pydantic
from agrolink.models.request_models import SubmitRequestModel
from agrolink.models.roles import RequestStatus
from agrolink.mongo_safe import read_with_retry, write_guard
from agrolink.services.common import iso, now_utc, to_object_id

log = logging.getLogger(__name__)


def request_row(d: Dict[str, Any]) -> Dict[str, Any]:
    snap = d.get("item_snapshot") or {}
    return {
        "request_id": str(d.get("_id")),
        "catalog_item_id": d.get("catalog_item_id"),
        "kind": d.get("kind"),
        "item_name": snap.get("name") or "-",
        "unit_price": snap.get("unit_price"),
        "target_owner_role": d.get("target_owner_role"),
        "target_owner_id": d.get("target_owner_id"),
        "requester_role": d.get("requester_role"),
        "requester_id": d.get("requester_id"),
        "requested_quantity": d.get("requested_quantity"),
        "status": d.get("status") or RequestStatus.PENDING,
        "created_at": iso(d.get("created_at")),
        "processed_at": iso(d.get("processed_at")),
    }


class RequestService:
    """
    Request ledger: submission and the owner / requester views.
    Status transitions (approve / reject) live in ApprovalService.
    """

    def __init__(self, db, read_retries: int = 3):
        self.db = db
        self.items = db.catalog_items
        self.requests = db.requests
        self.read_retries = read_retries

    # =========================
    # SUBMIT
    # =========================
    def submit(self, requester_role: str, requester_id: str, catalog_item_id, quantity) -> Dict[str, Any]:
        try:
            data = SubmitRequestModel(catalog_item_id=str(catalog_item_id or ""), quantity=quantity)
        except PydanticValidationError as e:
            err = from_pydantic(e)
            if "quantity" in err.details["fields"]:
                raise ValidationError("Please enter a valid quantity.", fields=["quantity"]) from None
            raise err from None

        oid = to_object_id(data.catalog_item_id, "item")
        item = read_with_retry(lambda: self.items.find_one({"_id": oid}), self.read_retries)
        if not item:
            raise NotFoundError("Item not found")

        if item.get("owner_id") == requester_id and item.get("owner_role") == requester_role:
            raise ValidationError("You cannot request your own listing.", fields=["catalog_item_id"])

        # advisory only; approval re-checks against the live quantity
        available = int(item.get("quantity_available") or 0)
        if data.quantity > available:
            raise ValidationError(
                f"Only {available} units are available. Cannot request more than available.",
                fields=["quantity"],
            )

        doc = {
            "target_owner_role": item.get("owner_role"),
            "target_owner_id": item.get("owner_id"),
            "catalog_item_id": str(oid),
            "kind": item.get("kind"),
            "requester_role": requester_role,
            "requester_id": requester_id,
            "requested_quantity": data.quantity,
            "status": RequestStatus.PENDING,
            "created_at": now_utc(),
            "processed_at": None,
            "item_snapshot": {
                "name": item.get("name"),
                "unit_price": item.get("unit_price"),
                "attributes": item.get("attributes") or {},
            },
        }
        with write_guard("request submit"):
            inserted = self.requests.insert_one(doc)
        doc["_id"] = inserted.inserted_id

        log.info("request %s submitted by %s %s for item %s (qty=%s)",
                 inserted.inserted_id, requester_role, requester_id, oid, data.quantity)
        return request_row(doc)

    # =========================
    # READ
    # =========================
    def _list(self, query: Dict[str, Any], status: Optional[str]) -> List[Dict[str, Any]]:
        if status:
            if status not in RequestStatus.ALL:
                raise ValidationError("Unknown status filter", fields=["status"])
            query["status"] = status
        docs = read_with_retry(
            lambda: list(self.requests.find(query).sort("created_at", -1)),
            self.read_retries,
        )
        return [request_row(d) for d in docs]

    def inbox(self, owner_role: str, owner_id: str, status: Optional[str] = None) -> List[Dict[str, Any]]:
        return self._list({"target_owner_role": owner_role, "target_owner_id": owner_id}, status)

    def outbox(self, requester_role: str, requester_id: str, status: Optional[str] = None) -> List[Dict[str, Any]]:
        return self._list({"requester_role": requester_role, "requester_id": requester_id}, status)

    def get(self, request_id, actor_role: str, actor_id: str) -> Dict[str, Any]:
        rid = to_object_id(request_id, "request")
        doc = read_with_retry(lambda: self.requests.find_one({"_id": rid}), self.read_retries)
        if not doc:
            raise NotFoundError("Request not found")

        is_owner = doc.get("target_owner_role") == actor_role and doc.get("target_owner_id") == actor_id
        is_requester = doc.get("requester_role") == actor_role and doc.get("requester_id") == actor_id
        if not (is_owner or is_requester):
            raise ForbiddenError("This request belongs to other parties.")
        return request_row(doc)

    def count_by_status(self, owner_role: str, owner_id: str) -> Dict[str, int]:
        pipeline = [
            {"$match": {"target_owner_role": owner_role, "target_owner_id": owner_id}},
            {"$group": {"_id": "$status", "n": {"$sum": 1}}},
        ]
        rows = read_with_retry(lambda: list(self.requests.aggregate(pipeline)), self.read_retries)
        counts = {s: 0 for s in RequestStatus.ALL}
        for r in rows:
            counts[r["_id"]] = r["n"]
        return counts

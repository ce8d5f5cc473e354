# agrolink/services/approval_service.py
"""
Accept / reject orchestration for cross-role requests.

Approval is one atomic unit over three collections:

    catalog_items   quantity_available -= requested_quantity   (CAS on >= qty)
    requests        status pending -> approved                 (CAS on pending)
    settlements     one obligation, _id = request _id

plus the accepted_requests mirror. Approvals on the same item are serialized
by an in-process lock; the CAS filters linearize approvals coming from other
processes. First committer wins, the rest see InsufficientStockError.
"""

import logging
from typing import Any, Dict, Optional

from pymongo.errors import PyMongoError

from agrolink.errors import (
    ForbiddenError,
    InsufficientStockError,
    InvalidTransitionError,
    NotFoundError,
    RemoteUnavailableError,
)
from agrolink.models.roles import PaymentStatus, RequestStatus
from agrolink.mongo_safe import read_with_retry
from agrolink.services.atomic import AtomicUnit
from agrolink.services.common import now_utc, to_object_id
from agrolink.services.item_locks import item_locks
from agrolink.services.request_service import request_row
from agrolink.services.catalog_service import CatalogService
from agrolink.services.resource_kinds import CENT, kind_for_role
from agrolink.services.settlement_service import obligation_row

log = logging.getLogger(__name__)


class ApprovalService:

    def __init__(self, db, catalog: Optional[CatalogService] = None, use_transactions: bool = False,
                 read_retries: int = 3, config: Optional[Dict[str, Any]] = None):
        self.db = db
        self.catalog = catalog or CatalogService(db, read_retries=read_retries)
        self.client = db.client
        self.items = db.catalog_items
        self.requests = db.requests
        self.accepted = db.accepted_requests
        self.declined = db.declined_requests
        self.settlements = db.settlements
        self.use_transactions = use_transactions
        self.read_retries = read_retries
        self.config = config or {}

    # ------------------------------
    # helpers
    # ------------------------------
    def _load_owned_pending(self, owner_role: str, owner_id: str, request_id, target: str):
        rid = to_object_id(request_id, "request")
        req = read_with_retry(lambda: self.requests.find_one({"_id": rid}), self.read_retries)
        if not req:
            raise NotFoundError("Request not found")
        if req.get("target_owner_role") != owner_role or req.get("target_owner_id") != owner_id:
            raise ForbiddenError("Only the owner of the requested item can act on this request.")
        if req.get("status") != RequestStatus.PENDING:
            raise InvalidTransitionError(req.get("status"), target)
        return req

    def _current_status(self, rid, session=None) -> str:
        doc = self.requests.find_one({"_id": rid}, {"status": 1}, session=session)
        return (doc or {}).get("status", "missing")

    @staticmethod
    def _mirror(req: Dict[str, Any], status: str, when) -> Dict[str, Any]:
        mirror = dict(req)
        mirror["status"] = status
        mirror["processed_at"] = when
        return mirror

    # =========================
    # APPROVE
    # =========================
    def approve(self, owner_role: str, owner_id: str, request_id) -> Dict[str, Any]:
        req = self._load_owned_pending(owner_role, owner_id, request_id, RequestStatus.APPROVED)
        rid = req["_id"]
        item_oid = to_object_id(req.get("catalog_item_id"), "item")
        qty = int(req.get("requested_quantity") or 0)

        with item_locks.hold(item_oid):
            # a concurrent approve/reject may have won while we waited
            status = read_with_retry(lambda: self._current_status(rid), self.read_retries)
            if status != RequestStatus.PENDING:
                raise InvalidTransitionError(status, RequestStatus.APPROVED)

            item = read_with_retry(lambda: self.items.find_one({"_id": item_oid}), self.read_retries)
            if not item:
                raise NotFoundError("Item not found")

            kind = kind_for_role(item.get("owner_role"))
            available = int(item.get("quantity_available") or 0)
            if not kind.check_availability(item, qty):
                log.warning("approve refused for request %s: available=%s requested=%s",
                            rid, available, qty)
                raise InsufficientStockError(available=available, requested=qty)

            # price snapshot at approval time
            unit_price = kind.price_of(item)
            amount_due = (unit_price * qty).quantize(CENT)
            now = now_utc()

            obligation = {
                "_id": rid,
                "request_id": str(rid),
                "payer_role": req.get("requester_role"),
                "payer_id": req.get("requester_id"),
                "payee_role": owner_role,
                "payee_id": owner_id,
                "catalog_item_id": str(item_oid),
                "kind": kind.name,
                "item_name": item.get("name") or "-",
                "approved_quantity": qty,
                "unit_price": float(unit_price),
                "amount_due": float(amount_due),
                "payment_status": PaymentStatus.PENDING,
                "payment_attempts": 0,
                "last_payment_error": None,
                "created_at": now,
            }
            obligation.update(kind.settlement_extras(item, now, self.config))
            remaining = {"qty": available - qty}

            def body(unit: AtomicUnit):
                s = unit.session

                # 1) decrement, only while enough remains
                after = kind.decrement(self.catalog, item_oid, qty, session=s)
                remaining["qty"] = after["quantity_available"]
                unit.on_undo(lambda: kind.increment(self.catalog, item_oid, qty))

                # 2) pending -> approved, only if still pending
                res = self.requests.update_one(
                    {"_id": rid, "status": RequestStatus.PENDING},
                    {"$set": {"status": RequestStatus.APPROVED, "processed_at": now}},
                    session=s,
                )
                if res.modified_count == 0:
                    raise InvalidTransitionError(self._current_status(rid, s), RequestStatus.APPROVED)
                unit.on_undo(lambda: self.requests.update_one(
                    {"_id": rid, "status": RequestStatus.APPROVED},
                    {"$set": {"status": RequestStatus.PENDING, "processed_at": None}},
                ))

                # 3) mirror + obligation
                self.accepted.replace_one(
                    {"_id": rid}, self._mirror(req, RequestStatus.APPROVED, now),
                    upsert=True, session=s,
                )
                unit.on_undo(lambda: self.accepted.delete_one({"_id": rid}))

                self.settlements.insert_one(obligation, session=s)
                return True

            unit = AtomicUnit(self.client, self.use_transactions, label=f"approve {rid}")
            try:
                unit.run(body)
            except PyMongoError as e:
                log.error("approval of request %s failed in the store: %s", rid, e)
                raise RemoteUnavailableError(
                    "Approval could not be completed. Nothing was changed; check the request and retry."
                ) from e

        log.info("request %s approved by %s %s: item %s -%s, amount_due=%s",
                 rid, owner_role, owner_id, item_oid, qty, obligation["amount_due"])

        req["status"] = RequestStatus.APPROVED
        req["processed_at"] = now
        return {
            "request": request_row(req),
            "obligation": obligation_row(obligation),
            "item": {"item_id": str(item_oid), "quantity_available": remaining["qty"]},
        }

    # =========================
    # REJECT
    # =========================
    def reject(self, owner_role: str, owner_id: str, request_id) -> Dict[str, Any]:
        req = self._load_owned_pending(owner_role, owner_id, request_id, RequestStatus.REJECTED)
        rid = req["_id"]
        now = now_utc()

        def body(unit: AtomicUnit):
            s = unit.session
            res = self.requests.update_one(
                {"_id": rid, "status": RequestStatus.PENDING},
                {"$set": {"status": RequestStatus.REJECTED, "processed_at": now}},
                session=s,
            )
            if res.modified_count == 0:
                raise InvalidTransitionError(self._current_status(rid, s), RequestStatus.REJECTED)
            unit.on_undo(lambda: self.requests.update_one(
                {"_id": rid, "status": RequestStatus.REJECTED},
                {"$set": {"status": RequestStatus.PENDING, "processed_at": None}},
            ))

            self.declined.replace_one(
                {"_id": rid}, self._mirror(req, RequestStatus.REJECTED, now),
                upsert=True, session=s,
            )
            return True

        unit = AtomicUnit(self.client, self.use_transactions, label=f"reject {rid}")
        try:
            unit.run(body)
        except PyMongoError as e:
            log.error("rejection of request %s failed in the store: %s", rid, e)
            raise RemoteUnavailableError() from e

        log.info("request %s rejected by %s %s", rid, owner_role, owner_id)
        req["status"] = RequestStatus.REJECTED
        req["processed_at"] = now
        return request_row(req)

# agrolink/services/settlement_service.py

import logging
from typing import Any, Dict, List, Optional

from pymongo.errors import DuplicateKeyError, PyMongoError

from agrolink.errors import NotFoundError, PaymentNotConfirmedError, RemoteUnavailableError
from agrolink.models.roles import PaymentStatus
from agrolink.mongo_safe import read_with_retry, write_guard
from agrolink.services.atomic import AtomicUnit
from agrolink.services.common import iso, now_utc, to_object_id

log = logging.getLogger(__name__)


def obligation_row(d: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "obligation_id": str(d.get("_id")),
        "request_id": d.get("request_id"),
        "payer_role": d.get("payer_role"),
        "payer_id": d.get("payer_id"),
        "payee_role": d.get("payee_role"),
        "payee_id": d.get("payee_id"),
        "catalog_item_id": d.get("catalog_item_id"),
        "kind": d.get("kind"),
        "item_name": d.get("item_name") or "-",
        "approved_quantity": d.get("approved_quantity"),
        "unit_price": d.get("unit_price"),
        "amount_due": d.get("amount_due"),
        "payment_status": d.get("payment_status") or PaymentStatus.PENDING,
        "payment_attempts": d.get("payment_attempts", 0),
        "last_payment_error": d.get("last_payment_error"),
        "due_date": iso(d.get("due_date")),
        "created_at": iso(d.get("created_at")),
    }


def receipt_row(d: Dict[str, Any]) -> Dict[str, Any]:
    row = obligation_row(d)
    row["payment_ref"] = d.get("payment_ref")
    row["paid_at"] = iso(d.get("paid_at"))
    return row


class SettlementService:
    """
    Obligations owed by requesters for approved requests.
    Records payment outcomes; never talks to the payment processor.
    """

    def __init__(self, db, use_transactions: bool = False, read_retries: int = 3):
        self.db = db
        self.client = db.client
        self.settlements = db.settlements
        self.receipts = db.payment_receipts
        self.use_transactions = use_transactions
        self.read_retries = read_retries

    # =========================
    # READ
    # =========================
    def list_obligations(self, payer_role: str, payer_id: str) -> List[Dict[str, Any]]:
        query = {"payer_role": payer_role, "payer_id": payer_id}
        docs = read_with_retry(
            lambda: list(self.settlements.find(query).sort("created_at", -1)),
            self.read_retries,
        )
        return [obligation_row(d) for d in docs]

    def list_receipts(self, payer_role: str, payer_id: str) -> List[Dict[str, Any]]:
        query = {"payer_role": payer_role, "payer_id": payer_id}
        docs = read_with_retry(
            lambda: list(self.receipts.find(query).sort("paid_at", -1)),
            self.read_retries,
        )
        return [receipt_row(d) for d in docs]

    def _load_for_payer(self, payer_role: str, payer_id: str, obligation_id) -> Dict[str, Any]:
        oid = to_object_id(obligation_id, "payment record")
        doc = read_with_retry(lambda: self.settlements.find_one({"_id": oid}), self.read_retries)
        # someone else's obligation looks exactly like a missing one
        if not doc or doc.get("payer_role") != payer_role or doc.get("payer_id") != payer_id:
            raise NotFoundError("Payment record not found")
        return doc

    def get(self, payer_role: str, payer_id: str, obligation_id) -> Dict[str, Any]:
        return obligation_row(self._load_for_payer(payer_role, payer_id, obligation_id))

    def totals(self, payer_role: str, payer_id: str) -> Dict[str, Any]:
        rows = self.list_obligations(payer_role, payer_id)
        return {
            "open_obligations": len(rows),
            "total_due": round(sum(float(r["amount_due"] or 0) for r in rows), 2),
        }

    # =========================
    # PAYMENT OUTCOME
    # =========================
    def mark_paid(self, payer_role: str, payer_id: str, obligation_id, payment_ref: str,
                  confirmed: bool = True, error: Optional[str] = None) -> Dict[str, Any]:
        """
        Settle an obligation once the external processor confirmed it.
        Unconfirmed outcomes are recorded and the obligation stays pending.
        """
        doc = self._load_for_payer(payer_role, payer_id, obligation_id)
        oid = doc["_id"]
        payment_ref = (payment_ref or "").strip()

        if not confirmed or not payment_ref:
            reason = error or ("missing payment reference" if confirmed else "payment not confirmed")
            with write_guard("record failed payment"):
                self.settlements.update_one(
                    {"_id": oid, "payment_status": PaymentStatus.PENDING},
                    {
                        "$inc": {"payment_attempts": 1},
                        "$set": {"last_payment_error": reason, "last_attempt_at": now_utc()},
                    },
                )
            log.warning("payment for obligation %s not confirmed: %s", oid, reason)
            raise PaymentNotConfirmedError()

        paid_at = now_utc()
        receipt = dict(doc)
        receipt.update({
            "payment_status": PaymentStatus.PAID,
            "payment_ref": payment_ref,
            "paid_at": paid_at,
        })

        def body(unit: AtomicUnit):
            s = unit.session
            # only the call that removes the obligation writes the receipt
            res = self.settlements.delete_one(
                {"_id": oid, "payment_status": PaymentStatus.PENDING}, session=s
            )
            if res.deleted_count == 0:
                raise NotFoundError("Payment record not found or already settled")
            unit.on_undo(lambda: self.settlements.insert_one(doc))

            self.receipts.insert_one(receipt, session=s)
            return True

        unit = AtomicUnit(self.client, self.use_transactions, label=f"settle {oid}")
        try:
            unit.run(body)
        except DuplicateKeyError:
            log.warning("obligation %s already has a receipt", oid)
            raise NotFoundError("Payment record not found or already settled") from None
        except PyMongoError as e:
            log.error("settling obligation %s failed in the store: %s", oid, e)
            raise RemoteUnavailableError(
                "Payment was received but could not be recorded yet. Please retry."
            ) from e

        log.info("obligation %s paid by %s %s (ref=%s, amount=%s)",
                 oid, payer_role, payer_id, payment_ref, doc.get("amount_due"))
        return receipt_row(receipt)

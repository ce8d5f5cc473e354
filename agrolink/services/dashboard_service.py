# agrolink/services/dashboard_service.py

from typing import Any, Dict

from agrolink.models.roles import PaymentStatus, RequestStatus, normalize_role
from agrolink.mongo_safe import read_with_retry
from agrolink.errors import ValidationError
from agrolink.services.catalog_service import CatalogService
from agrolink.services.request_service import RequestService
from agrolink.services.settlement_service import SettlementService


class DashboardService:
    """KPI block shown on every role's dashboard."""

    def __init__(self, catalog: CatalogService, requests: RequestService,
                 settlements: SettlementService, read_retries: int = 3):
        self.catalog = catalog
        self.requests = requests
        self.settlements = settlements
        self.read_retries = read_retries

    def _receivable(self, role: str, actor_id: str) -> Dict[str, Any]:
        pipeline = [
            {"$match": {"payee_role": role, "payee_id": actor_id,
                        "payment_status": PaymentStatus.PENDING}},
            {"$group": {"_id": None, "n": {"$sum": 1}, "total": {"$sum": "$amount_due"}}},
        ]
        rows = read_with_retry(
            lambda: list(self.settlements.settlements.aggregate(pipeline)),
            self.read_retries,
        )
        row = rows[0] if rows else {}
        return {"open": int(row.get("n", 0)), "total": round(float(row.get("total", 0) or 0), 2)}

    def summary(self, role: str, actor_id: str) -> Dict[str, Any]:
        role_n = normalize_role(role)
        if not role_n:
            raise ValidationError("Unknown role", fields=["role"])

        items = self.catalog.list_items(actor_id, role_n)
        payable = self.settlements.totals(role_n, actor_id)
        receivable = self._receivable(role_n, actor_id)

        outgoing = {s: 0 for s in RequestStatus.ALL}
        for r in self.requests.outbox(role_n, actor_id):
            outgoing[r["status"]] = outgoing.get(r["status"], 0) + 1

        return {
            "role": role_n,
            "actor_id": actor_id,
            "kpis": {
                "items": len(items),
                "total_quantity": sum(i["quantity_available"] for i in items),
                "out_of_stock": sum(1 for i in items if i["quantity_available"] == 0),
            },
            "incoming_requests": self.requests.count_by_status(role_n, actor_id),
            "outgoing_requests": outgoing,
            "payable": payable,
            "receivable": {
                "open_obligations": receivable["open"],
                "total_due": receivable["total"],
            },
        }

# agrolink/services/__init__.py

from types import SimpleNamespace

from flask import current_app, g

from agrolink.mongo_safe import get_db
from agrolink.services.approval_service import ApprovalService
from agrolink.services.catalog_service import CatalogService
from agrolink.services.dashboard_service import DashboardService
from agrolink.services.directory_service import DirectoryService
from agrolink.services.payment_gateway_client import PaymentGatewayClient
from agrolink.services.request_service import RequestService
from agrolink.services.settlement_service import SettlementService


def build_services(db, config) -> SimpleNamespace:
    retries = int(config.get("MONGO_READ_RETRIES", 3))
    use_tx = bool(config.get("MONGO_USE_TRANSACTIONS", False))

    catalog = CatalogService(db, read_retries=retries)
    requests_ = RequestService(db, read_retries=retries)
    settlements = SettlementService(db, use_transactions=use_tx, read_retries=retries)
    return SimpleNamespace(
        catalog=catalog,
        requests=requests_,
        approvals=ApprovalService(db, catalog=catalog, use_transactions=use_tx,
                                  read_retries=retries, config=config),
        settlements=settlements,
        directory=DirectoryService(db, read_retries=retries),
        dashboard=DashboardService(catalog, requests_, settlements, read_retries=retries),
        payments=PaymentGatewayClient.from_config(config),
    )


def get_services() -> SimpleNamespace:
    """Services bound to the active database, built once per request."""
    if "agrolink_services" not in g:
        g.agrolink_services = build_services(get_db(), current_app.config)
    return g.agrolink_services

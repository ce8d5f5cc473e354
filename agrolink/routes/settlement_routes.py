# agrolink/routes/settlement_routes.py

from flask import Blueprint, jsonify
from pydantic import ValidationError as PydanticValidationError

from agrolink.errors import from_pydantic
from agrolink.models.settlement_models import PaymentOutcomeModel
from agrolink.routes.actor import json_body, require_actor
from agrolink.services import get_services

settlement_bp = Blueprint("settlement_bp", __name__, url_prefix="/api/settlements")


@settlement_bp.get("")
def my_obligations():
    role, user_id = require_actor()
    svc = get_services().settlements
    return jsonify(
        ok=True,
        obligations=svc.list_obligations(role, user_id),
        totals=svc.totals(role, user_id),
    ), 200


@settlement_bp.get("/receipts")
def my_receipts():
    role, user_id = require_actor()
    return jsonify(ok=True, receipts=get_services().settlements.list_receipts(role, user_id)), 200


@settlement_bp.post("/<obligation_id>/pay")
def pay(obligation_id: str):
    """
    Called after the checkout widget closes.
    Body: {payment_ref, status: success|failed|cancelled, error?}
    The reference is verified with the processor before the obligation is settled.
    """
    role, user_id = require_actor()
    try:
        outcome = PaymentOutcomeModel(**json_body())
    except PydanticValidationError as e:
        raise from_pydantic(e) from None

    svc = get_services()
    obligation = svc.settlements.get(role, user_id, obligation_id)
    check = svc.payments.verify(
        outcome.payment_ref,
        amount=obligation["amount_due"],
        reported_status=outcome.status,
    )
    receipt = svc.settlements.mark_paid(
        role, user_id, obligation_id, outcome.payment_ref,
        confirmed=check["confirmed"],
        error=check["error"] or outcome.error,
    )
    return jsonify(ok=True, receipt=receipt), 200

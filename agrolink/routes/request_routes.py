# agrolink/routes/request_routes.py

from flask import Blueprint, current_app, jsonify, request

from agrolink.routes.actor import json_body, require_actor
from agrolink.services import get_services

requests_bp = Blueprint("requests_bp", __name__, url_prefix="/api/requests")


@requests_bp.post("")
def submit_request():
    """Body: {catalog_item_id, quantity}."""
    role, user_id = require_actor()
    data = json_body()
    row = get_services().requests.submit(
        role, user_id, data.get("catalog_item_id"), data.get("quantity")
    )
    return jsonify(ok=True, request=row), 201


@requests_bp.get("/inbox")
def inbox():
    role, user_id = require_actor()
    rows = get_services().requests.inbox(role, user_id, request.args.get("status"))
    return jsonify(ok=True, requests=rows), 200


@requests_bp.get("/outbox")
def outbox():
    role, user_id = require_actor()
    rows = get_services().requests.outbox(role, user_id, request.args.get("status"))
    return jsonify(ok=True, requests=rows), 200


@requests_bp.get("/<request_id>")
def get_request(request_id: str):
    role, user_id = require_actor()
    return jsonify(ok=True, request=get_services().requests.get(request_id, role, user_id)), 200


# ------------------------------------------------------------
# Owner decisions
# ------------------------------------------------------------
@requests_bp.post("/<request_id>/approve")
def approve_request(request_id: str):
    role, user_id = require_actor()
    result = get_services().approvals.approve(role, user_id, request_id)
    current_app.logger.info("approve %s -> amount_due %s", request_id, result["obligation"]["amount_due"])
    return jsonify(ok=True, **result), 200


@requests_bp.post("/<request_id>/reject")
def reject_request(request_id: str):
    role, user_id = require_actor()
    row = get_services().approvals.reject(role, user_id, request_id)
    return jsonify(ok=True, request=row), 200

# agrolink/routes/catalog_routes.py

from flask import Blueprint, jsonify
from pydantic import ValidationError as PydanticValidationError

from agrolink.errors import from_pydantic
from agrolink.models.catalog_models import QuantityAdjustModel
from agrolink.routes.actor import json_body, require_actor
from agrolink.services import get_services

catalog_bp = Blueprint("catalog_bp", __name__, url_prefix="/api")


# ------------------------------------------------------------
# Own catalog
# ------------------------------------------------------------
@catalog_bp.get("/catalog")
def my_items():
    role, user_id = require_actor()
    items = get_services().catalog.list_items(user_id, role)
    return jsonify(ok=True, items=items), 200


@catalog_bp.post("/catalog")
def add_item():
    """
    Role-specific listing form: crops (farmer), products (retailer),
    vehicles (logistic), storage units (warehouse).
    """
    role, user_id = require_actor()
    item = get_services().catalog.create(role, user_id, json_body())
    return jsonify(ok=True, item=item), 201


@catalog_bp.patch("/catalog/<item_id>")
def edit_item(item_id: str):
    role, user_id = require_actor()
    item = get_services().catalog.update(role, user_id, item_id, json_body())
    return jsonify(ok=True, item=item), 200


@catalog_bp.delete("/catalog/<item_id>")
def delete_item(item_id: str):
    _role, user_id = require_actor()
    get_services().catalog.remove(user_id, item_id)
    return jsonify(ok=True), 200


@catalog_bp.post("/catalog/<item_id>/adjust")
def adjust_item(item_id: str):
    """Body: {delta: int}. Restock with a positive delta, write off with a negative one."""
    _role, user_id = require_actor()
    try:
        data = QuantityAdjustModel(**json_body())
    except PydanticValidationError as e:
        raise from_pydantic(e) from None

    item = get_services().catalog.adjust_quantity(item_id, data.delta, owner_id=user_id)
    return jsonify(ok=True, item=item), 200


# ------------------------------------------------------------
# Directory (other actors and their listings)
# ------------------------------------------------------------
@catalog_bp.get("/directory/<role>")
def list_actors(role: str):
    require_actor()
    return jsonify(ok=True, actors=get_services().directory.list_actors(role)), 200


@catalog_bp.get("/directory/<role>/<owner_id>/catalog")
def browse_catalog(role: str, owner_id: str):
    require_actor()
    items = get_services().catalog.browse(role, owner_id)
    return jsonify(ok=True, items=items), 200

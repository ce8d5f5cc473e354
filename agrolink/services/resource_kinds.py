# agrolink/services/resource_kinds.py
"""
Per-resource capabilities used by catalog and approval code.

Every role lists one kind of resource (crops, shop products, fleet vehicles,
storage units). They differ only in field names and a few settlement
details, so approval runs one state machine and asks the kind for:

    check_availability(item, qty)          -> bool
    decrement(catalog, item_id, qty)       -> item after the conditional write
    price_of(item)                         -> Decimal unit price
    settlement_extras(item, now, config)   -> kind-specific obligation fields
"""

from __future__ import annotations

from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, Optional, Tuple

from agrolink.models.roles import FARMER, LOGISTIC, RETAILER, WAREHOUSE

CENT = Decimal("0.01")


def to_money(value) -> Decimal:
    return Decimal(str(value or 0)).quantize(CENT, rounding=ROUND_HALF_UP)


class ResourceKind:
    name = ""
    owner_role = ""
    unit = "units"

    # field spellings accepted from the role's listing form
    name_fields: Tuple[str, ...] = ("name",)
    quantity_fields: Tuple[str, ...] = ("quantity",)
    price_fields: Tuple[str, ...] = ("unit_price",)
    attribute_fields: Tuple[str, ...] = ()

    # ------------------------------
    # listing payloads
    # ------------------------------
    @staticmethod
    def _first(payload: dict, keys: Tuple[str, ...]):
        for k in keys:
            v = payload.get(k)
            if v is not None and v != "":
                return v
        return None

    def normalize(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Map a role-specific form into {name, quantity, unit_price, attributes}."""
        payload = payload or {}
        attrs = dict(payload.get("attributes") or {})
        for k in self.attribute_fields:
            if k in payload and k not in attrs:
                attrs[k] = payload[k]
        return {
            "name": self._first(payload, ("name",) + self.name_fields),
            "quantity": self._first(payload, ("quantity",) + self.quantity_fields),
            "unit_price": self._first(payload, ("unit_price",) + self.price_fields),
            "attributes": {k: v for k, v in attrs.items() if k in self.attribute_fields},
        }

    # ------------------------------
    # reservation capability
    # ------------------------------
    def check_availability(self, item: Dict[str, Any], qty: int) -> bool:
        return int(item.get("quantity_available") or 0) >= qty

    def decrement(self, catalog, item_id, qty: int, session=None) -> Dict[str, Any]:
        """Reserve `qty` through the catalog's conditional adjust path."""
        return catalog.adjust_quantity(item_id, -qty, session=session)

    def increment(self, catalog, item_id, qty: int, session=None) -> Dict[str, Any]:
        return catalog.adjust_quantity(item_id, qty, session=session)

    def price_of(self, item: Dict[str, Any]) -> Decimal:
        return to_money(item.get("unit_price"))

    def settlement_extras(self, item: Dict[str, Any], now: datetime,
                          config: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        return {}


class CropKind(ResourceKind):
    name = "crop"
    owner_role = FARMER
    unit = "kg"
    name_fields = ("crop_name", "productName")
    price_fields = ("price", "price_per_kg")
    attribute_fields = ("quality", "harvest_date", "variety")


class ProductKind(ResourceKind):
    name = "product"
    owner_role = RETAILER
    unit = "units"
    name_fields = ("product_name", "productName")
    price_fields = ("selling_price", "sellingPrice", "price")
    attribute_fields = ("brand", "category", "expiry_date")


class VehicleKind(ResourceKind):
    name = "vehicle"
    owner_role = LOGISTIC
    unit = "capacity units"
    name_fields = ("vehicle_number", "vehicleNumber")
    quantity_fields = ("capacity",)
    price_fields = ("rate_per_unit", "ratePerUnit", "price")
    attribute_fields = ("vehicle_type", "driver_name", "fuel_type", "availability_status")


class StorageKind(ResourceKind):
    name = "storage"
    owner_role = WAREHOUSE
    unit = "slots"
    name_fields = ("storage_name", "storageName")
    quantity_fields = ("capacity",)
    price_fields = ("price_per_day", "pricePerDay", "price")
    attribute_fields = ("storage_type", "location", "availability_status")

    def settlement_extras(self, item, now, config=None):
        days = int((config or {}).get("STORAGE_PAYMENT_DUE_DAYS", 30))
        return {"due_date": now + timedelta(days=days)}


KINDS_BY_ROLE: Dict[str, ResourceKind] = {
    k.owner_role: k for k in (CropKind(), ProductKind(), VehicleKind(), StorageKind())
}


def kind_for_role(role: str) -> ResourceKind:
    try:
        return KINDS_BY_ROLE[role]
    except KeyError:
        raise ValueError(f"unknown role: {role!r}") from None

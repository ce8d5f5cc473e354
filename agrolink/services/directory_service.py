# agrolink/services/directory_service.py
from __future__ import annotations

import logging
import os
import time
from typing import Any, Dict, List, Optional

from flask_bcrypt import Bcrypt
from pydantic import ValidationError as PydanticValidationError
from pymongo.errors import DuplicateKeyError

from agrolink.errors import AuthError, NotFoundError, ValidationError, from_pydantic
from agrolink.models.auth_models import SignUpModel
from agrolink.models.roles import ROLE_ID_PREFIX, normalize_role
from agrolink.mongo_safe import read_with_retry, write_guard
from agrolink.services.common import iso, now_utc

log = logging.getLogger(__name__)

# one shared instance; create_app calls bcrypt.init_app(app) for BCRYPT_LOG_ROUNDS
bcrypt = Bcrypt()

# role-specific sign-up fields kept on the profile
PROFILE_FIELDS = {
    "farmer": ("farm_name", "crop_types", "years_farming", "land_size", "land_unit", "avg_yield"),
    "retailer": ("shop_name", "shop_type", "gst_number"),
    "logistic": ("company_name", "fleet_size", "service_areas", "license_number"),
    "warehouse": ("warehouse_name", "capacity", "climate_control", "operational_since"),
}

_DUMMY_HASH: Optional[str] = None


def generate_user_id(role: str) -> str | None:
    prefix = ROLE_ID_PREFIX.get(role)
    if not prefix:
        return None
    # random + timestamp to keep IDs fairly unique
    return f"{prefix}{os.urandom(3).hex().upper()}{int(time.time())}"


def public_profile(u: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "user_id": u.get("user_id"),
        "role": u.get("role"),
        "full_name": u.get("full_name", ""),
        "email": u.get("email", ""),
        "phone": u.get("phone"),
        "address": u.get("address"),
        "profile": u.get("profile") or {},
        "created_at": iso(u.get("created_at")),
    }


class DirectoryService:

    def __init__(self, db, hasher: Bcrypt = None, read_retries: int = 3):
        self.db = db
        self.users = db.users
        self.hasher = hasher or bcrypt
        self.read_retries = read_retries

    # ------------------------------
    # sign-up
    # ------------------------------
    def sign_up(self, payload: dict) -> Dict[str, Any]:
        payload = dict(payload or {})
        payload["role"] = normalize_role(payload.get("role")) or payload.get("role")
        try:
            data = SignUpModel(**payload)
        except PydanticValidationError as e:
            raise from_pydantic(e) from None

        if read_with_retry(lambda: self.users.find_one({"role": data.role, "email": data.email}),
                           self.read_retries):
            raise ValidationError("An account with this email already exists.", fields=["email"])

        allowed = PROFILE_FIELDS.get(data.role, ())
        raw_profile = dict(data.profile)
        raw_profile.update({k: payload[k] for k in allowed if k in payload})

        user_doc = {
            "user_id": generate_user_id(data.role),
            "role": data.role,
            "full_name": data.full_name.strip(),
            "email": data.email,
            "password": self.hasher.generate_password_hash(data.password).decode("utf-8"),
            "phone": data.phone,
            "address": data.address,
            "profile": {k: v for k, v in raw_profile.items() if k in allowed},
            "created_at": now_utc(),
        }
        with write_guard("sign-up"):
            try:
                self.users.insert_one(user_doc)
            except DuplicateKeyError:
                raise ValidationError("An account with this email already exists.", fields=["email"]) from None

        log.info("%s %s signed up", data.role, user_doc["user_id"])
        return public_profile(user_doc)

    # ------------------------------
    # credentials
    # ------------------------------
    def _dummy_hash(self) -> str:
        global _DUMMY_HASH
        if _DUMMY_HASH is None:
            _DUMMY_HASH = self.hasher.generate_password_hash(os.urandom(8).hex()).decode("utf-8")
        return _DUMMY_HASH

    def find_credential(self, role: str, email: str, password: str) -> str:
        """
        Returns the actor id for (role, email, password) or raises AuthError.
        The error never says which of the three was wrong.
        """
        role = normalize_role(role)
        email = (email or "").strip().lower()
        if not (role and email and password):
            raise AuthError()

        user = read_with_retry(lambda: self.users.find_one({"role": role, "email": email}),
                               self.read_retries)
        # same hashing cost whether or not the account exists
        stored = (user or {}).get("password") or self._dummy_hash()
        try:
            ok = self.hasher.check_password_hash(stored, password)
        except ValueError:
            ok = False
        if not user or not ok:
            log.warning("failed login for role=%s", role)
            raise AuthError()
        return user["user_id"]

    # ------------------------------
    # directory
    # ------------------------------
    def get_profile(self, role: str, user_id: str) -> Dict[str, Any]:
        doc = read_with_retry(
            lambda: self.users.find_one({"role": role, "user_id": user_id}, {"password": 0}),
            self.read_retries,
        )
        if not doc:
            raise NotFoundError("User not found")
        return public_profile(doc)

    def list_actors(self, role: str) -> List[Dict[str, Any]]:
        role_n = normalize_role(role)
        if not role_n:
            raise ValidationError("Unknown role", fields=["role"])
        docs = read_with_retry(
            lambda: list(self.users.find({"role": role_n}, {"password": 0}).sort("full_name", 1)),
            self.read_retries,
        )
        out = []
        for d in docs:
            out.append({
                "user_id": d.get("user_id"),
                "role": d.get("role"),
                "full_name": d.get("full_name", ""),
                "address": d.get("address") or "-",
                "profile": d.get("profile") or {},
            })
        return out

# agrolink/routes/auth/auth_routes.py

from __future__ import annotations

from flask import Blueprint, current_app, jsonify, session
from flask_jwt_extended import (
    create_access_token,
    create_refresh_token,
    get_jwt,
    get_jwt_identity,
    jwt_required,
)
from pydantic import ValidationError as PydanticValidationError

from agrolink.errors import AuthError
from agrolink.models.auth_models import LoginModel
from agrolink.models.roles import normalize_role
from agrolink.routes.actor import json_body, require_actor
from agrolink.services import get_services

# -------------------------------------------------------------------
# Blueprint
# -------------------------------------------------------------------
auth_bp = Blueprint("auth", __name__, url_prefix="/auth")


# -------------------------------------------------------------------
# Helpers
# -------------------------------------------------------------------
def _issue_tokens(role: str, user_id: str) -> tuple[str, str]:
    claims = {"role": role}
    access = create_access_token(identity=user_id, additional_claims=claims)
    refresh = create_refresh_token(identity=user_id, additional_claims=claims)
    return access, refresh


def _start_session(role: str, user_id: str, name: str = "") -> None:
    # SSR session support
    session.clear()
    session.permanent = True
    session["user_id"] = user_id
    session["role"] = role
    session["username"] = name


# -------------------------------------------------------------------
# JSON: /auth/signup
# -------------------------------------------------------------------
@auth_bp.post("/signup")
def signup():
    """
    Body:
      { role, full_name, email, password, confirm_password?, phone?, address?,
        <role-specific profile fields> }
    Returns the public profile plus JWT access + refresh tokens.
    """
    data = json_body()
    profile = get_services().directory.sign_up(data)

    _start_session(profile["role"], profile["user_id"], profile["full_name"])
    access, refresh = _issue_tokens(profile["role"], profile["user_id"])
    return (
        jsonify(ok=True, user=profile, access_token=access, refresh_token=refresh),
        201,
    )


# -------------------------------------------------------------------
# JSON: /auth/login
# -------------------------------------------------------------------
@auth_bp.post("/login")
def login():
    """
    JSON login:
      { role, email, password }
    Any mismatch answers the same 401 "Invalid credentials".
    """
    try:
        data = LoginModel(**json_body())
    except PydanticValidationError:
        raise AuthError() from None

    directory = get_services().directory
    user_id = directory.find_credential(data.role, data.email, data.password)
    profile = directory.get_profile(normalize_role(data.role), user_id)

    _start_session(profile["role"], user_id, profile["full_name"])
    access, refresh = _issue_tokens(profile["role"], user_id)
    current_app.logger.info("%s %s logged in", profile["role"], user_id)
    return jsonify(ok=True, user=profile, access_token=access, refresh_token=refresh), 200


@auth_bp.post("/logout")
def logout():
    session.clear()
    return jsonify(ok=True), 200


# -------------------------------------------------------------------
# JSON: /auth/refresh
# -------------------------------------------------------------------
@auth_bp.post("/refresh")
@jwt_required(refresh=True)
def refresh():
    user_id = get_jwt_identity()
    role = (get_jwt() or {}).get("role")
    access = create_access_token(identity=user_id, additional_claims={"role": role})
    return jsonify(ok=True, access_token=access), 200


@auth_bp.get("/me")
def me():
    role, user_id = require_actor()
    return jsonify(ok=True, user=get_services().directory.get_profile(role, user_id)), 200

# agrolink/routes/actor.py

from flask import request, session
from flask_jwt_extended import get_jwt, get_jwt_identity, verify_jwt_in_request

from agrolink.errors import AuthError
from agrolink.models.roles import normalize_role


# ----------------------------
# HYBRID AUTH HELPERS
# ----------------------------
def current_actor():
    """
    Returns (role, user_id) if authenticated via:
      1) Flask cookie session (web)
      2) JWT Bearer token (mobile / SPA)
    Otherwise (None, None). A malformed or expired token is answered
    by the JWT error loaders registered in create_app.
    """
    # 1) Web session auth
    role = normalize_role(session.get("role"))
    user_id = session.get("user_id")
    if role and user_id:
        return role, user_id

    # 2) JWT auth
    verify_jwt_in_request(optional=True)  # does not raise if missing
    user_id = get_jwt_identity()
    claims = get_jwt() or {}
    role = normalize_role(claims.get("role"))
    if role and user_id:
        return role, user_id
    return None, None


def require_actor():
    role, user_id = current_actor()
    if not user_id:
        raise AuthError()
    return role, user_id


def json_body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        data = request.form.to_dict()
    return data if isinstance(data, dict) else {}

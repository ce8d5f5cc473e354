# agrolink/routes/root/root_routes.py

from flask import current_app, jsonify

from agrolink.errors import RemoteUnavailableError
from agrolink.mongo_safe import get_db
from . import root_bp


# -----------------------------
# HEALTH
# -----------------------------
@root_bp.get("/health")
def health():
    """Liveness plus a bounded ping of the document store."""
    try:
        db = get_db()
    except RemoteUnavailableError:
        if current_app.config.get("DISABLE_MONGO"):
            return jsonify(ok=True, mongo="disabled"), 200
        return jsonify(ok=False, mongo="unconfigured"), 503

    # PyMongoError here is answered 503 by the store error handler
    db.command("ping")
    return jsonify(ok=True, mongo="up"), 200

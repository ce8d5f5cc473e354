# app.py (gunicorn "app:app" + local run)

import os
from datetime import timedelta

from flask import Flask, jsonify
from flask_cors import CORS
from flask_jwt_extended import JWTManager
from pymongo.errors import PyMongoError

from agrolink.app_config import configure_logging, load_config
from agrolink.errors import register_error_handlers
from agrolink.mongo import ensure_indexes, init_mongo, mongo
from agrolink.mongo_safe import DB_EXTENSION_KEY
from agrolink.register_blueprints import register_all_blueprints
from agrolink.services.directory_service import bcrypt


def _register_jwt_loaders(jwt: JWTManager):
    # same {"ok": false, ...} shape as every other error

    @jwt.unauthorized_loader
    def _missing(reason):
        return jsonify(ok=False, error="auth_error", message="Invalid credentials"), 401

    @jwt.invalid_token_loader
    def _invalid(reason):
        return jsonify(ok=False, error="auth_error", message="Invalid credentials"), 401

    @jwt.expired_token_loader
    def _expired(_header, _payload):
        return jsonify(ok=False, error="token_expired", message="Session expired. Please log in again."), 401


def create_app(config_overrides=None, db=None):
    """
    config_overrides  mapping applied after environment config (tests)
    db                ready Database to use instead of Flask-PyMongo
    """
    app = Flask(__name__)

    # -------------------------
    # Config & security
    # -------------------------
    load_config(app, config_overrides)
    configure_logging(app)
    app.secret_key = app.config["SECRET_KEY"]
    app.permanent_session_lifetime = timedelta(days=7)

    CORS(app, resources={r"/*": {"origins": "*"}})

    # -------------------------
    # Mongo
    # -------------------------
    if db is not None:
        app.extensions[DB_EXTENSION_KEY] = db
    elif app.config["DISABLE_MONGO"]:
        print("⚠️ Mongo disabled by DISABLE_MONGO=1")
    else:
        init_mongo(app)
        db = mongo.db

    if db is not None:
        try:
            ensure_indexes(db)
        except PyMongoError as e:
            # don't crash startup; requests will surface the store error
            print(f"⚠️ Could not ensure indexes: {e}")

    # -------------------------
    # JWT + password hashing
    # -------------------------
    jwt = JWTManager(app)
    _register_jwt_loaders(jwt)
    bcrypt.init_app(app)

    # -------------------------
    # Errors + Blueprints
    # -------------------------
    register_error_handlers(app)
    register_all_blueprints(app)

    return app


# ✅ THIS is what gunicorn needs:
app = create_app()


# Local run only
if __name__ == "__main__":
    app.run(host="0.0.0.0", port=int(os.getenv("PORT", "5000")), debug=True)

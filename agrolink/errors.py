# agrolink/errors.py
from __future__ import annotations

from typing import Any, Dict, List, Optional

from flask import current_app, jsonify
from pydantic import ValidationError as PydanticValidationError
from pymongo.errors import PyMongoError
from werkzeug.exceptions import HTTPException


class MarketplaceError(Exception):
    """Base for every business / remote failure surfaced to the acting user."""

    status_code = 500
    code = "error"
    default_message = "Something went wrong. Please try again."

    def __init__(self, message: Optional[str] = None, **details: Any):
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)

    def to_payload(self) -> Dict[str, Any]:
        payload = {"ok": False, "error": self.code, "message": self.message}
        payload.update(self.details)
        return payload


class ValidationError(MarketplaceError):
    status_code = 400
    code = "validation_error"
    default_message = "Please check the highlighted fields."

    def __init__(self, message: Optional[str] = None, fields: Optional[List[str]] = None):
        super().__init__(message, fields=fields or [])


class AuthError(MarketplaceError):
    status_code = 401
    code = "auth_error"
    default_message = "Invalid credentials"

    def __init__(self, message: Optional[str] = None):
        # always the generic message; role and identity are never distinguished
        super().__init__(self.default_message)


class ForbiddenError(MarketplaceError):
    status_code = 403
    code = "forbidden"
    default_message = "You are not allowed to perform this action."


class NotFoundError(MarketplaceError):
    status_code = 404
    code = "not_found"
    default_message = "The record no longer exists. Refresh and try again."


class InsufficientStockError(MarketplaceError):
    status_code = 409
    code = "insufficient_stock"

    def __init__(self, available: int, requested: int):
        super().__init__(
            f"Insufficient quantity! Available: {available}, Requested: {requested}",
            available=available,
            requested=requested,
        )


class InvalidTransitionError(MarketplaceError):
    status_code = 409
    code = "invalid_transition"

    def __init__(self, current_status: str, target_status: str):
        super().__init__(
            f"Request is already {current_status}; cannot mark it {target_status}.",
            status=current_status,
        )


class PaymentNotConfirmedError(MarketplaceError):
    status_code = 402
    code = "payment_not_confirmed"
    default_message = "Payment was not confirmed. The amount is still due; you can retry."


class RemoteUnavailableError(MarketplaceError):
    status_code = 503
    code = "remote_unavailable"
    default_message = "Service is temporarily unavailable. Please retry."

    def __init__(self, message: Optional[str] = None):
        super().__init__(message, retryable=True)


def from_pydantic(exc: PydanticValidationError) -> ValidationError:
    fields = [".".join(str(p) for p in err.get("loc", ())) for err in exc.errors()]
    first = exc.errors()[0].get("msg", "") if exc.errors() else ""
    return ValidationError(f"Invalid input: {first}" if first else None, fields=fields)


# -------------------------------------------------------------------
# Flask wiring
# -------------------------------------------------------------------
def register_error_handlers(app):

    @app.errorhandler(MarketplaceError)
    def _marketplace_error(exc: MarketplaceError):
        if exc.status_code >= 500:
            current_app.logger.error("%s: %s", exc.code, exc.message)
        return jsonify(exc.to_payload()), exc.status_code

    @app.errorhandler(PydanticValidationError)
    def _pydantic_error(exc: PydanticValidationError):
        err = from_pydantic(exc)
        return jsonify(err.to_payload()), err.status_code

    @app.errorhandler(PyMongoError)
    def _store_error(exc: PyMongoError):
        current_app.logger.error("document store error: %s", exc)
        err = RemoteUnavailableError()
        return jsonify(err.to_payload()), err.status_code

    @app.errorhandler(404)
    def _route_not_found(_exc):
        return jsonify(ok=False, error="not_found", message="Not found"), 404

    @app.errorhandler(Exception)
    def _unexpected(exc: Exception):
        if isinstance(exc, HTTPException):
            return jsonify(ok=False, error="http_error", message=exc.description), exc.code
        current_app.logger.exception("unhandled error: %s", exc)
        return jsonify(ok=False, error="error", message=MarketplaceError.default_message), 500

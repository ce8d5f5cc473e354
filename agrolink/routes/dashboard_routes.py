# agrolink/routes/dashboard_routes.py

import json

from flask import Blueprint, Response, current_app, jsonify, stream_with_context

from agrolink.errors import MarketplaceError, ValidationError
from agrolink.routes.actor import require_actor
from agrolink.services import get_services
from agrolink.services.subscription import Subscription

dashboard_bp = Blueprint("dashboard_bp", __name__, url_prefix="/api")

STREAM_TOPICS = ("catalog", "inbox", "outbox", "settlements")


@dashboard_bp.get("/dashboard")
def dashboard():
    role, user_id = require_actor()
    return jsonify(ok=True, dashboard=get_services().dashboard.summary(role, user_id)), 200


def _fetcher(topic: str, role: str, user_id: str):
    svc = get_services()
    if topic == "catalog":
        return lambda: svc.catalog.list_items(user_id, role)
    if topic == "inbox":
        return lambda: svc.requests.inbox(role, user_id)
    if topic == "outbox":
        return lambda: svc.requests.outbox(role, user_id)
    return lambda: svc.settlements.list_obligations(role, user_id)


def _sse(topic: str, event) -> str:
    return f"id: {event['sequence']}\nevent: {topic}\ndata: {json.dumps(event, default=str)}\n\n"


# ------------------------------------------------------------
# Server-Sent Events
# ------------------------------------------------------------
@dashboard_bp.get("/stream/<topic>")
def stream(topic: str):
    """
    Live view of one collection snapshot for the signed-in actor.
    A new event is pushed whenever the snapshot changes.
    """
    role, user_id = require_actor()
    if topic not in STREAM_TOPICS:
        raise ValidationError("Unknown stream topic", fields=["topic"])

    sub = Subscription(
        _fetcher(topic, role, user_id),
        interval=current_app.config.get("STREAM_POLL_INTERVAL", 2.0),
        heartbeat=15.0,
        label=f"{topic} stream for {user_id}",
    )

    def gen():
        # leaving the block (client gone -> GeneratorExit) cancels the poller
        with sub:
            try:
                for event in sub:
                    if event is None:
                        yield ": keep-alive\n\n"
                        continue
                    yield _sse(topic, event)
            except MarketplaceError as e:
                yield f"event: error\ndata: {json.dumps(e.to_payload())}\n\n"

    return Response(
        stream_with_context(gen()),
        mimetype="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )

"""Public viewer API: timeline polling, presence and player signals."""

from __future__ import annotations

import uuid

from flask import Blueprint, jsonify, session

from utils.performance import performance_monitor
from web.config_middleware import csrf
from web.routes.common import call, int_field, payload, service

live_event_bp = Blueprint("live_event", __name__, url_prefix="/api")
# Called by anonymous viewer pages and the video player
csrf.exempt(live_event_bp)


def _session_id() -> str:
    data = payload()
    session_id = data.get("sessionId")
    if session_id:
        return str(session_id)
    if "viewer_id" not in session:
        session["viewer_id"] = uuid.uuid4().hex
    return session["viewer_id"]


@live_event_bp.route("/events/<int:event_id>/timeline")
def timeline(event_id: int):
    snapshot = call(service("LIVE_EVENT_SERVICE").get_status(event_id))
    response = jsonify(snapshot)
    response.headers["Cache-Control"] = "no-store"
    return response


@live_event_bp.route("/events/<int:event_id>/viewers/join", methods=["POST"])
def viewer_join(event_id: int):
    viewers = service("VIEWER_PRESENCE")
    count = viewers.join(event_id, _session_id())
    performance_monitor.record_viewers(event_id, count)
    return jsonify({"eventId": event_id, "count": count, "peak": viewers.peak(event_id)})


@live_event_bp.route("/events/<int:event_id>/viewers/leave", methods=["POST"])
def viewer_leave(event_id: int):
    viewers = service("VIEWER_PRESENCE")
    count = viewers.leave(event_id, _session_id())
    performance_monitor.record_viewers(event_id, count)
    return jsonify({"eventId": event_id, "count": count})


@live_event_bp.route("/events/<int:event_id>/performances/advance", methods=["POST"])
def performance_finished(event_id: int):
    """Player signal: the current performance clip ended."""
    expected_order = int_field(payload(), "expectedOrder", required=False)
    result = call(service("LIVE_EVENT_SERVICE").advance_performance(event_id, expected_order))
    return jsonify(result)


@live_event_bp.route("/events/<int:event_id>/commercials/complete", methods=["POST"])
def commercials_complete(event_id: int):
    """Player signal: the commercial break finished playing."""
    result = call(service("LIVE_EVENT_SERVICE").complete_commercials(event_id))
    return jsonify(result)


@live_event_bp.route("/featured")
def featured():
    placements = call(service("FEATURED_SERVICE").list_active())
    return jsonify({"featured": [placement.to_dict() for placement in placements]})

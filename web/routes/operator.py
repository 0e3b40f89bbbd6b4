"""Operator control surface.

JSON endpoints behind Flask-Login. Every command is recorded in the audit
log with the operator's name and the command result.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from flask import Blueprint, current_app, jsonify, request
from flask_login import current_user, login_required, login_user, logout_user
from flask_wtf.csrf import generate_csrf

from core.exceptions import AuthenticationError, NotFoundError, ValidationError
from core.logger import get_logger
from database.repositories import ContestantRepository, EventRepository
from services.audit_service import AuditService
from services.lottery import SecureLottery
from web.auth import OperatorUser, validate_credentials
from web.config_middleware import cache
from web.routes.common import call, datetime_field, int_field, payload, service
from web.routes.raffle import results_cache_key

logger = get_logger(__name__)

operator_bp = Blueprint("operator", __name__, url_prefix="/operator")


def _operator() -> str:
    return current_user.username


def _audit(action: str, event_id: Optional[int], details: Optional[Dict[str, Any]] = None) -> None:
    call(AuditService.log_action(action, _operator(), event_id, details))


def _command(action: str, event_id: int, result: Dict[str, Any], **params: Any):
    _audit(action, event_id, {**params, "result": result} if params else {"result": result})
    return jsonify(result)


def _float_field(data: Dict[str, Any], name: str) -> Optional[float]:
    value = data.get(name)
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"'{name}' must be a number", field=name, value=value) from None


@operator_bp.route("/login", methods=["GET", "POST"])
def login():
    if request.method == "GET":
        return jsonify({
            "authenticated": current_user.is_authenticated,
            "csrfToken": generate_csrf(),
        })

    data = payload()
    username = str(data.get("username", "")).strip()
    password = str(data.get("password", ""))
    credentials = current_app.config["OPERATOR_CREDENTIALS"]
    if not validate_credentials(credentials, username, password):
        raise AuthenticationError("Invalid username or password")
    login_user(OperatorUser(username=credentials.username))
    logger.info(f"🔐 Operator '{credentials.username}' logged in")
    return jsonify({"authenticated": True, "username": credentials.username})


@operator_bp.route("/logout", methods=["POST"])
@login_required
def logout():
    logger.info(f"Operator '{_operator()}' logged out")
    logout_user()
    return jsonify({"authenticated": False})


@operator_bp.route("/")
@login_required
def index():
    return jsonify({"operator": _operator(), "csrfToken": generate_csrf()})


# ----------------------------------------------------------------------
# Event setup
# ----------------------------------------------------------------------
@operator_bp.route("/events", methods=["POST"])
@login_required
def create_event():
    data = payload()
    title = str(data.get("title", "")).strip()
    if not title:
        raise ValidationError("'title' is required", field="title")
    capacity = int_field(data, "capacity")
    SecureLottery.validate_capacity(capacity)

    defaults = current_app.config["PHASE_DEFAULT_MINUTES"]
    minutes = {}
    for column, default in defaults.items():
        key = "".join(
            part.capitalize() if i else part for i, part in enumerate(column.split("_"))
        )
        value = _float_field(data, key)
        if value is not None and value < 0:
            raise ValidationError(f"'{key}' cannot be negative", field=key, value=value)
        minutes[column] = default if value is None else value

    durations = data.get("commercialDurations") or []
    if not isinstance(durations, list):
        raise ValidationError("'commercialDurations' must be a list", field="commercialDurations")

    event, state = call(service("LIVE_EVENT_SERVICE").create_event({
        "title": title,
        "event_date": datetime_field(data, "eventDate", required=True),
        "capacity": capacity,
        "registration_start": datetime_field(data, "registrationStart"),
        "registration_end": datetime_field(data, "registrationEnd"),
        "raffle_scheduled_at": datetime_field(data, "raffleScheduledAt"),
        "commercial_durations": durations,
        "prize_description": str(data.get("prizeDescription", "")),
        **minutes,
    }))
    _audit("event_create", event.id, {"title": title, "capacity": capacity})
    return jsonify({"event": event.to_dict(), "timeline": state.to_dict()}), 201


@operator_bp.route("/events/<int:event_id>/contestants", methods=["POST"])
@login_required
def add_contestant(event_id: int):
    data = payload()
    display_name = str(data.get("displayName", "")).strip()
    if not display_name:
        raise ValidationError("'displayName' is required", field="displayName")
    call(EventRepository.require(event_id))
    contestant_id = call(ContestantRepository.create(
        event_id,
        display_name,
        video_duration=_float_field(data, "videoDuration"),
        telegram_id=int_field(data, "telegramId", required=False),
    ))
    contestant = call(ContestantRepository.get(contestant_id))
    _audit("contestant_add", event_id, {"contestantId": contestant_id})
    return jsonify(contestant.to_dict()), 201


@operator_bp.route("/contestants/<int:contestant_id>/votes", methods=["POST"])
@login_required
def set_votes(contestant_id: int):
    votes = int_field(payload(), "votes")
    if votes < 0:
        raise ValidationError("'votes' cannot be negative", field="votes", value=votes)
    contestant = call(ContestantRepository.get(contestant_id))
    if contestant is None:
        raise NotFoundError(f"Contestant {contestant_id} not found", contestant_id=contestant_id)
    call(ContestantRepository.set_votes(contestant_id, votes))
    _audit("votes_set", contestant.event_id, {"contestantId": contestant_id, "votes": votes})
    return jsonify({"contestantId": contestant_id, "votes": votes})


@operator_bp.route("/events/<int:event_id>/reschedule", methods=["POST"])
@login_required
def reschedule(event_id: int):
    result = call(service("LIVE_EVENT_SERVICE").reschedule(event_id))
    return _command("reschedule", event_id, result)


# ----------------------------------------------------------------------
# Timeline commands
# ----------------------------------------------------------------------
@operator_bp.route("/events/<int:event_id>/start", methods=["POST"])
@login_required
def start(event_id: int):
    return _command("start", event_id, call(service("LIVE_EVENT_SERVICE").start(event_id)))


@operator_bp.route("/events/<int:event_id>/advance", methods=["POST"])
@login_required
def advance(event_id: int):
    expected = payload().get("expectedPhase")
    result = call(service("LIVE_EVENT_SERVICE").advance(event_id, expected))
    return _command("advance", event_id, result, expectedPhase=expected)


@operator_bp.route("/events/<int:event_id>/pause", methods=["POST"])
@login_required
def pause(event_id: int):
    result = call(service("LIVE_EVENT_SERVICE").pause(event_id, actor=_operator()))
    return _command("pause", event_id, result)


@operator_bp.route("/events/<int:event_id>/resume", methods=["POST"])
@login_required
def resume(event_id: int):
    return _command("resume", event_id, call(service("LIVE_EVENT_SERVICE").resume(event_id)))


@operator_bp.route("/events/<int:event_id>/adjust", methods=["POST"])
@login_required
def adjust(event_id: int):
    delta = int_field(payload(), "deltaMinutes")
    result = call(service("LIVE_EVENT_SERVICE").adjust_time(event_id, delta, actor=_operator()))
    return _command("adjust_time", event_id, result, deltaMinutes=delta)


@operator_bp.route("/events/<int:event_id>/adjustments")
@login_required
def adjustments(event_id: int):
    return jsonify(call(service("LIVE_EVENT_SERVICE").time_adjustments(event_id)))


@operator_bp.route("/events/<int:event_id>/jump", methods=["POST"])
@login_required
def jump(event_id: int):
    target = payload().get("phase")
    if not target:
        raise ValidationError("'phase' is required", field="phase")
    result = call(service("LIVE_EVENT_SERVICE").jump(event_id, str(target), actor=_operator()))
    return _command("jump", event_id, result, phase=target)


@operator_bp.route("/events/<int:event_id>/release-override", methods=["POST"])
@login_required
def release_override(event_id: int):
    result = call(service("LIVE_EVENT_SERVICE").release_override(event_id))
    return _command("release_override", event_id, result)


@operator_bp.route("/events/<int:event_id>/stop", methods=["POST"])
@login_required
def stop(event_id: int):
    winner_id = int_field(payload(), "winnerId", required=False)
    result = call(service("LIVE_EVENT_SERVICE").stop(event_id, winner_id))
    return _command("stop", event_id, result, winnerId=winner_id)


@operator_bp.route("/events/<int:event_id>/restart", methods=["POST"])
@login_required
def restart(event_id: int):
    return _command("restart", event_id, call(service("LIVE_EVENT_SERVICE").restart(event_id)))


# ----------------------------------------------------------------------
# Raffle and audit
# ----------------------------------------------------------------------
@operator_bp.route("/events/<int:event_id>/raffle", methods=["POST"])
@login_required
def execute_raffle(event_id: int):
    seed = payload().get("seed") or None
    report = call(service("RAFFLE_MANAGER").execute(event_id, actor=_operator(), seed=seed))
    cache.delete(results_cache_key(event_id))
    _audit("raffle_execute", event_id, {
        "seed": report["seed"],
        "selectedIds": [entry["entrantId"] for entry in report["selected"]],
    })
    return jsonify(report), 201


@operator_bp.route("/audit")
@login_required
def audit_log():
    event_id = request.args.get("eventId", type=int)
    limit = min(request.args.get("limit", 100, type=int), 1000)
    return jsonify({"entries": call(AuditService.get_audit_logs(event_id, limit))})

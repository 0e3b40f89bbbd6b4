"""Public raffle transparency endpoints."""

from __future__ import annotations

from flask import Blueprint, current_app, jsonify

from web.config_middleware import cache
from web.routes.common import call, service

raffle_bp = Blueprint("raffle", __name__, url_prefix="/api/raffles")

# Raffle results never change once written
RESULTS_CACHE_TIMEOUT = 24 * 3600


def results_cache_key(event_id: int) -> str:
    return f"raffle-results:{event_id}"


@raffle_bp.route("/<int:event_id>")
def results(event_id: int):
    key = results_cache_key(event_id)
    report = cache.get(key)
    if report is None:
        report = call(service("RAFFLE_MANAGER").results(event_id))
        cache.set(key, report, timeout=RESULTS_CACHE_TIMEOUT)
    response = jsonify(report)
    response.headers["Cache-Control"] = f"public, max-age={current_app.config['PUBLIC_CACHE_SECONDS']}"
    return response


@raffle_bp.route("/<int:event_id>/verify")
def verify(event_id: int):
    return jsonify(call(service("RAFFLE_MANAGER").verify(event_id)))


@raffle_bp.route("/<int:event_id>/status")
def status(event_id: int):
    response = jsonify(call(service("RAFFLE_MANAGER").status(event_id)))
    response.headers["Cache-Control"] = "no-store"
    return response

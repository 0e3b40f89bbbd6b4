"""Route registration for the Flask app."""

from __future__ import annotations

from flask import Flask

from .health import health_bp
from .live_event import live_event_bp
from .operator import operator_bp
from .raffle import raffle_bp


def register_routes(app: Flask) -> None:
    app.register_blueprint(operator_bp)
    app.register_blueprint(live_event_bp)
    app.register_blueprint(raffle_bp)
    app.register_blueprint(health_bp)

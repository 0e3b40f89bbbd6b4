"""Flask application factory with caching and security defaults."""

from __future__ import annotations

from typing import Any, Dict, Optional

from flask import Flask, jsonify, redirect, request, url_for
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from werkzeug.exceptions import HTTPException

from core.exceptions import ApplicationError
from core.logger import get_logger
from web.auth import OperatorCredentials, init_login_manager
from web.config_middleware import (
    configure_app,
    setup_extensions,
    setup_security_headers,
    setup_metrics,
)
from web.routes import register_routes

logger = get_logger(__name__)

ERROR_STATUS = {
    "not_found": 404,
    "invalid_state": 409,
    "conflict": 409,
    "bounds_violation": 422,
    "validation": 400,
    "unauthenticated": 401,
}


def create_app(config, testing=False, services: Optional[Dict[str, Any]] = None) -> Flask:
    """Create and configure Flask application.

    Args:
        config: Application configuration
        testing: Whether running in testing mode
        services: Service objects stored in ``app.config`` for the views
            (``LIVE_EVENT_SERVICE``, ``RAFFLE_MANAGER``, ``VIEWER_PRESENCE``)

    Returns:
        Configured Flask application
    """
    app = Flask(__name__)

    # Configure application
    configure_app(app, config, testing)
    app.config.update(services or {})

    # Setup extensions
    setup_extensions(app, testing)

    # Setup middleware
    setup_security_headers(app)
    setup_metrics(app)

    # Initialize authentication
    credentials = OperatorCredentials(
        username=config.operator_username,
        password_hash=config.operator_password
    )
    init_login_manager(app, credentials)

    # Register routes
    register_routes(app)

    # Setup additional handlers
    _setup_routes(app)
    _setup_error_handlers(app)

    return app


def _setup_routes(app: Flask) -> None:
    """Setup basic application routes.

    Args:
        app: Flask application instance
    """
    @app.route('/')
    def root():
        """Root route redirects to the operator panel."""
        return redirect(url_for('operator.index'))

    @app.route('/metrics')
    def metrics():
        """Expose Prometheus metrics."""
        data = generate_latest()
        return data, 200, {'Content-Type': CONTENT_TYPE_LATEST}


def _setup_error_handlers(app: Flask) -> None:
    """Map application errors and HTTP errors to JSON bodies.

    Args:
        app: Flask application instance
    """
    @app.errorhandler(ApplicationError)
    def application_error(error: ApplicationError):
        status = ERROR_STATUS.get(error.kind, 500)
        if status >= 500:
            logger.error(f"Unhandled application error: {error}", exc_info=True)
        else:
            logger.info(f"{request.method} {request.path} rejected ({error.kind}): {error.message}")
        return jsonify({"error": error.kind, **error.to_dict()}), status

    @app.errorhandler(HTTPException)
    def http_error(error: HTTPException):
        return jsonify({"error": error.name, "message": error.description}), error.code

    @app.errorhandler(500)
    def internal_error(error):
        """Handle 500 errors."""
        logger.error(f"Internal server error: {error}")
        return jsonify({"error": "internal", "message": "Internal server error"}), 500

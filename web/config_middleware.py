"""Flask application configuration and middleware setup."""

from __future__ import annotations

import time
from typing import TYPE_CHECKING

from flask import Flask, g, request
from flask_caching import Cache
from flask_wtf.csrf import CSRFProtect
from prometheus_client import Counter, Histogram

if TYPE_CHECKING:
    from config import Config

# Global instances
cache = Cache()
csrf = CSRFProtect()

# Prometheus metrics
REQUEST_LATENCY = Histogram(
    "http_request_latency_seconds",
    "HTTP request latency",
    ["method", "path"],
    buckets=(0.05, 0.1, 0.25, 0.5, 1, 2, 5),
)
REQUEST_ERRORS = Counter(
    "http_request_errors_total",
    "Total number of 5xx responses",
    ["method", "path"],
)


def configure_app(app: Flask, config: Config, testing: bool = False) -> None:
    """Configure Flask application settings.

    Args:
        app: Flask application instance
        config: Application configuration
        testing: Whether running in testing mode
    """
    app.config.update(
        SECRET_KEY=config.secret_key,
        SESSION_COOKIE_HTTPONLY=True,
        SESSION_COOKIE_SECURE=(config.environment != 'development' and not testing),
        SESSION_COOKIE_SAMESITE='Lax',
        DATABASE_PATH=config.database_path,
        PUBLIC_CACHE_SECONDS=config.public_cache_seconds,
        PHASE_DEFAULT_MINUTES={
            "welcome_minutes": config.welcome_minutes,
            "performance_slot_minutes": config.performance_slot_minutes,
            "voting_minutes": config.voting_minutes,
            "winner_minutes": config.winner_minutes,
            "thankyou_minutes": config.thankyou_minutes,
            "countdown_minutes": config.countdown_minutes,
        },
        TESTING=testing,
        WTF_CSRF_TIME_LIMIT=None,
        # JSON operator commands carry the token in the X-CSRFToken header
        WTF_CSRF_CHECK_DEFAULT=True,
    )

    # Warn if insecure defaults detected
    if config.environment == 'production':
        if config.operator_username == "admin" and config.operator_password in {"123456", "secure_password_change_me"}:
            app.logger.warning("Insecure operator credentials detected in production")
        if config.enable_notifications and not config.notifications_configured:
            app.logger.warning("BOT_TOKEN is not set properly, notifications disabled")


def setup_extensions(app: Flask, testing: bool = False) -> None:
    """Setup Flask extensions.

    Args:
        app: Flask application instance
        testing: Whether running in testing mode
    """
    cache.init_app(app, config={"CACHE_TYPE": "SimpleCache"})

    # Initialize CSRF protection (disabled in testing)
    if not testing:
        csrf.init_app(app)


def setup_security_headers(app: Flask) -> None:
    """Setup security headers middleware.

    Args:
        app: Flask application instance
    """
    @app.after_request
    def add_security_headers(response):
        """Add security headers to all responses."""
        if not response.headers.get('Content-Security-Policy'):
            response.headers['Content-Security-Policy'] = "default-src 'self'; frame-ancestors 'none'"
        response.headers.setdefault('X-Content-Type-Options', 'nosniff')
        response.headers.setdefault('X-Frame-Options', 'DENY')
        response.headers.setdefault('Referrer-Policy', 'same-origin')
        response.headers.setdefault('Permissions-Policy', "camera=(), microphone=(), geolocation=()")
        return response


def setup_metrics(app: Flask) -> None:
    """Setup Prometheus metrics middleware.

    Args:
        app: Flask application instance
    """
    @app.before_request
    def before_metrics():
        """Store request start time."""
        g._metrics_start = time.perf_counter()

    @app.after_request
    def after_metrics(response):
        """Record request metrics."""
        path = getattr(request.url_rule, 'rule', None) or 'unmatched'
        start = getattr(g, '_metrics_start', None)
        if start is not None:
            REQUEST_LATENCY.labels(method=request.method, path=path).observe(time.perf_counter() - start)
        if response.status_code >= 500:
            REQUEST_ERRORS.labels(method=request.method, path=path).inc()
        return response

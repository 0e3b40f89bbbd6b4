"""Authentication utilities for the operator control surface.

A single operator account configured through environment variables. The
password is hashed with werkzeug on startup when given in plain text.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from flask import jsonify, request
from flask_login import LoginManager, UserMixin
from werkzeug.security import check_password_hash, generate_password_hash

logger = logging.getLogger(__name__)


@dataclass
class OperatorCredentials:
    """Credentials for the live event operator."""
    username: str
    password_hash: str


login_manager = LoginManager()


class OperatorUser(UserMixin):
    """Represents an authenticated operator."""
    def __init__(self, username: str) -> None:
        self.id = username
        self.username = username


def init_login_manager(app, credentials: OperatorCredentials) -> OperatorCredentials:
    """Initialize the Flask-Login manager with operator credentials.

    Args:
        app: Flask application instance
        credentials: Operator credentials containing username and password or hash

    Returns:
        Updated credentials with properly hashed password
    """
    logger.info(
        "Initializing login manager with credentials: username='%s', password_hash='<hidden>'",
        credentials.username,
    )

    login_manager.init_app(app)
    login_manager.login_view = "operator.login"

    @login_manager.user_loader
    def load_user(user_id: str) -> Optional[OperatorUser]:
        if user_id == credentials.username:
            return OperatorUser(username=user_id)
        return None

    @login_manager.unauthorized_handler
    def unauthorized():
        # JSON clients get a 401 instead of a redirect to the login form
        return jsonify({
            "error": "unauthenticated",
            "message": "Operator login required",
            "login": f"{request.script_root}/operator/login",
        }), 401

    if not credentials.password_hash.startswith(("pbkdf2:", "scrypt:")):
        credentials.password_hash = generate_password_hash(credentials.password_hash)
        logger.info("Password hashed for operator '%s'", credentials.username)

    app.config["OPERATOR_CREDENTIALS"] = credentials
    return credentials


def validate_credentials(credentials: OperatorCredentials, username: str, password: str) -> bool:
    """Validate operator credentials.

    Args:
        credentials: Operator credentials to validate against
        username: Username provided by user
        password: Password provided by user

    Returns:
        True if credentials are valid, False otherwise
    """
    if username.lower() != credentials.username.lower():
        logger.info("Operator login rejected: unknown username '%s'", username)
        return False

    result = check_password_hash(credentials.password_hash, password)
    if not result:
        logger.info("Operator login rejected: wrong password for '%s'", username)
    return result

"""Helpers shared by the blueprints."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Awaitable, Dict, Optional, TypeVar

from flask import current_app, request

from core.exceptions import ConfigurationError, ValidationError
from services.async_runner import run_coroutine_sync
from utils.timeutils import parse_datetime

T = TypeVar("T")


def service(name: str) -> Any:
    """Fetch a service object stored in ``app.config`` by the factory."""
    value = current_app.config.get(name)
    if value is None:
        raise ConfigurationError(f"{name} is not configured")
    return value


def call(coro: Awaitable[T]) -> T:
    """Run a service coroutine on the main loop and wait for its result."""
    return run_coroutine_sync(coro)


def payload() -> Dict[str, Any]:
    """JSON body or form fields of the current request."""
    data = request.get_json(silent=True)
    if isinstance(data, dict):
        return data
    return request.form.to_dict()


def int_field(data: Dict[str, Any], name: str, required: bool = True) -> Optional[int]:
    value = data.get(name)
    if value is None or value == "":
        if required:
            raise ValidationError(f"'{name}' is required", field=name)
        return None
    if isinstance(value, bool):
        raise ValidationError(f"'{name}' must be an integer", field=name, value=value)
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"'{name}' must be an integer", field=name, value=value) from None


def datetime_field(data: Dict[str, Any], name: str, required: bool = False) -> Optional[datetime]:
    value = data.get(name)
    if value is None or value == "":
        if required:
            raise ValidationError(f"'{name}' is required", field=name)
        return None
    try:
        return parse_datetime(value)
    except (TypeError, ValueError):
        raise ValidationError(f"'{name}' must be an ISO-8601 datetime", field=name, value=value) from None

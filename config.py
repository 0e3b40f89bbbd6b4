"""Application configuration module.

Reads settings from environment variables with sane defaults. Phase minutes
configured here are the defaults for newly created events; each event keeps
its own copy once created.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv

from core.constants import CommercialDefaults, FeatureDefaults, TimelineDefaults, ViewerDefaults

load_dotenv()


def _get_bool(name: str, default: bool = False) -> bool:
    """Get boolean from environment variable."""
    value = os.getenv(name)
    if value is None:
        return default
    return value.lower() in {"1", "true", "yes", "on"}


def _get_int(name: str, default: int) -> int:
    """Get integer from environment variable with fallback."""
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _get_str(name: str, default: str = "") -> str:
    """Get string from environment variable."""
    return os.getenv(name, default)


@dataclass(frozen=True)
class Config:
    environment: str
    debug: bool
    log_level: str
    log_folder: str
    web_host: str
    web_port: int
    secret_key: str
    operator_username: str
    operator_password: str
    database_path: str
    db_pool_size: int
    db_busy_timeout: int
    bot_token: str
    enable_notifications: bool
    scheduler_enabled: bool
    scheduler_interval_seconds: int
    welcome_minutes: int
    performance_slot_minutes: int
    voting_minutes: int
    winner_minutes: int
    thankyou_minutes: int
    countdown_minutes: int
    commercial_max_seconds: int
    viewer_session_ttl: int
    viewer_count_base: int
    prune_unselected_after_raffle: bool
    feature_days: int
    public_cache_seconds: int

    @property
    def notifications_configured(self) -> bool:
        return (
            self.enable_notifications
            and bool(self.bot_token)
            and self.bot_token != "your_bot_token_here"
        )


def load_config() -> Config:
    """Load application configuration from environment variables.

    Returns:
        Config: Application configuration with validated values
    """
    return Config(
        environment=_get_str("ENVIRONMENT", "development"),
        debug=_get_bool("DEBUG", False),
        log_level=_get_str("LOG_LEVEL", "INFO"),
        log_folder=_get_str("LOG_FOLDER", "logs"),
        web_host=_get_str("WEB_HOST", "0.0.0.0"),
        web_port=_get_int("WEB_PORT", 5000),
        secret_key=_get_str(
            "SECRET_KEY",
            "production_secret_key_must_be_changed_in_production_environment"
        ),
        operator_username=_get_str("OPERATOR_USERNAME", "admin"),
        operator_password=_get_str("OPERATOR_PASSWORD", "123456"),
        database_path=_get_str("DATABASE_PATH", "data/showcase.sqlite"),
        db_pool_size=_get_int("DB_POOL_SIZE", 10),
        db_busy_timeout=_get_int("DB_BUSY_TIMEOUT", 5000),
        bot_token=_get_str("BOT_TOKEN", ""),
        enable_notifications=_get_bool("ENABLE_NOTIFICATIONS", True),
        scheduler_enabled=_get_bool("SCHEDULER_ENABLED", True),
        scheduler_interval_seconds=_get_int("SCHEDULER_INTERVAL_SECONDS", 5),
        welcome_minutes=_get_int("WELCOME_MINUTES", TimelineDefaults.WELCOME_MINUTES),
        performance_slot_minutes=_get_int(
            "PERFORMANCE_SLOT_MINUTES", TimelineDefaults.PERFORMANCE_SLOT_MINUTES
        ),
        voting_minutes=_get_int("VOTING_MINUTES", TimelineDefaults.VOTING_MINUTES),
        winner_minutes=_get_int("WINNER_MINUTES", TimelineDefaults.WINNER_MINUTES),
        thankyou_minutes=_get_int("THANKYOU_MINUTES", TimelineDefaults.THANKYOU_MINUTES),
        countdown_minutes=_get_int("COUNTDOWN_MINUTES", TimelineDefaults.COUNTDOWN_MINUTES),
        commercial_max_seconds=_get_int("COMMERCIAL_MAX_SECONDS", CommercialDefaults.MAX_SECONDS),
        viewer_session_ttl=_get_int("VIEWER_SESSION_TTL", ViewerDefaults.SESSION_TTL_SECONDS),
        viewer_count_base=_get_int("VIEWER_COUNT_BASE", ViewerDefaults.COUNT_BASE),
        prune_unselected_after_raffle=_get_bool("PRUNE_UNSELECTED_AFTER_RAFFLE", True),
        feature_days=_get_int("FEATURE_DAYS", FeatureDefaults.PLACEMENT_DAYS),
        public_cache_seconds=_get_int("PUBLIC_CACHE_SECONDS", 30),
    )

"""Application-wide constants and enumerations."""

from __future__ import annotations

from enum import Enum
from typing import Dict, Optional


# Phase enumeration
class PhaseName(str, Enum):
    """Named stages of a live showcase, in broadcast order."""
    WELCOME = "welcome"
    PERFORMANCE = "performance"
    COMMERCIAL = "commercial"
    VOTING = "voting"
    WINNER = "winner"
    THANKYOU = "thankyou"
    COUNTDOWN = "countdown"


PHASE_ORDER: tuple[PhaseName, ...] = (
    PhaseName.WELCOME,
    PhaseName.PERFORMANCE,
    PhaseName.COMMERCIAL,
    PhaseName.VOTING,
    PhaseName.WINNER,
    PhaseName.THANKYOU,
    PhaseName.COUNTDOWN,
)

# Explicit transition table: phase -> phase that follows it (None ends the event)
PHASE_TRANSITIONS: Dict[PhaseName, Optional[PhaseName]] = {
    current: PHASE_ORDER[idx + 1] if idx + 1 < len(PHASE_ORDER) else None
    for idx, current in enumerate(PHASE_ORDER)
}


class PhaseStatus(str, Enum):
    """Lifecycle of a phase or performance slot."""
    PENDING = "pending"
    ACTIVE = "active"
    COMPLETED = "completed"


class EventStatus(str, Enum):
    """Broadcast lifecycle of an event timeline."""
    SCHEDULED = "scheduled"
    LIVE = "live"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class ContestantStatus(str, Enum):
    """Roster status of a contestant entry."""
    SUBMITTED = "submitted"
    SELECTED = "selected"
    WAITLISTED = "waitlisted"


class RaffleOutcome(str, Enum):
    """Outcome of a raffle for a single entrant."""
    SELECTED = "selected"
    WAITLISTED = "waitlisted"


# Timeline constants
class TimelineDefaults:
    """Timeline timing rules."""
    WELCOME_MINUTES = 5
    PERFORMANCE_MINUTES = 0  # provisional, replaced once contestants are scheduled
    PERFORMANCE_SLOT_MINUTES = 0
    VOTING_MINUTES = 3
    WINNER_MINUTES = 3
    THANKYOU_MINUTES = 2
    COUNTDOWN_MINUTES = 1
    DEFAULT_SLOT_SECONDS = 300
    PERFORMANCE_FLOOR_SECONDS = 3
    MAX_AUTO_ADVANCE_STEPS = 10
    # Phases the read-time sweep may advance on the clock alone
    AUTO_ADVANCE_PHASES = frozenset({
        PhaseName.WELCOME,
        PhaseName.VOTING,
        PhaseName.WINNER,
        PhaseName.THANKYOU,
        PhaseName.COUNTDOWN,
    })
    # Phases whose roster may still be topped up
    TOP_UP_PHASES = frozenset({PhaseName.WELCOME, PhaseName.PERFORMANCE})
    AUTO_START_GRACE_HOURS = 24


class CommercialDefaults:
    """Commercial break measurement."""
    MIN_VALID_SECONDS = 3
    FALLBACK_SECONDS = 30
    MAX_SECONDS = 1800


# Raffle constants
class RaffleDefaults:
    """Raffle configuration."""
    SEED_RANDOM_BYTES = 32
    DIGEST_BYTES = 8
    MIN_CAPACITY = 1
    MAX_CAPACITY = 500
    DEFAULT_CAPACITY = 5
    PUBLIC_WAITLIST_SIZE = 10
    EXECUTION_WINDOW_MINUTES = 10
    ALGORITHM = "SHA-256 Deterministic Random Selection"


class FeatureDefaults:
    """Winner promotional placement."""
    PLACEMENT_DAYS = 30


class ViewerDefaults:
    """Viewer presence tracking."""
    SESSION_TTL_SECONDS = 60
    MAX_SESSIONS_PER_EVENT = 100_000
    COUNT_BASE = 0


class TelegramLimits:
    """Telegram API limits."""
    MESSAGE_MAX_LENGTH = 4096

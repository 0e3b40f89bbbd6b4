"""Duration precedence rules for performance slots and commercial breaks."""

from __future__ import annotations

import math
from typing import Iterable, Optional

from core.constants import CommercialDefaults, TimelineDefaults


def _usable(value: Optional[float]) -> bool:
    if value is None or isinstance(value, bool):
        return False
    try:
        number = float(value)
    except (TypeError, ValueError):
        return False
    return math.isfinite(number) and number > 0


def resolve_duration(*candidates: Optional[float], default: float = TimelineDefaults.DEFAULT_SLOT_SECONDS) -> float:
    """Return the first positive, finite candidate, else ``default``.

    Candidates are listed in precedence order, e.g. the slot's own duration,
    then the contestant's recorded duration, then the configured slot length.

    Args:
        *candidates: Durations in seconds, highest precedence first
        default: Seconds used when no candidate is usable

    Returns:
        Resolved duration in seconds
    """
    for candidate in candidates:
        if _usable(candidate):
            return float(candidate)
    return float(default)


def average_duration(values: Iterable[Optional[float]]) -> Optional[float]:
    """Mean of the usable durations, or None when there are none."""
    usable = [float(value) for value in values if _usable(value)]
    if not usable:
        return None
    return sum(usable) / len(usable)


def performance_minutes_for(total_seconds: float) -> int:
    """Performance phase length: slot total plus the floor, rounded up to minutes."""
    return math.ceil((total_seconds + TimelineDefaults.PERFORMANCE_FLOOR_SECONDS) / 60)


def commercial_minutes_for(total_seconds: float) -> int:
    if total_seconds <= 0:
        return 0
    return math.ceil(total_seconds / 60)


def measure_commercial_seconds(
    durations: Iterable[Optional[float]],
    max_seconds: int = CommercialDefaults.MAX_SECONDS,
) -> float:
    """Sum commercial clip lengths, capped at ``max_seconds``.

    Clips reporting three seconds or less are treated as unmeasured and
    counted at the fallback length.
    """
    total = 0.0
    for value in durations:
        if _usable(value) and float(value) > CommercialDefaults.MIN_VALID_SECONDS:
            total += float(value)
        else:
            total += CommercialDefaults.FALLBACK_SECONDS
    return min(total, float(max_seconds))

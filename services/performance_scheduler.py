"""Performance slot scheduling from the contestant roster."""

from __future__ import annotations

from typing import Iterable, List, Optional, Sequence

from core.constants import PhaseStatus, TimelineDefaults
from core.logger import get_logger
from database.models import Contestant, PerformanceSlot
from services.durations import average_duration, resolve_duration
from services.timeline import TimelineEngine

logger = get_logger(__name__)


def rank_contestants(contestants: Iterable[Contestant]) -> List[Contestant]:
    """Order contestants by raffle position, then votes (desc), then id.

    Entries without a raffle position sort after ranked ones.
    """
    return sorted(
        contestants,
        key=lambda c: (
            c.raffle_position is None,
            c.raffle_position if c.raffle_position is not None else 0,
            -(c.vote_count or 0),
            c.id,
        ),
    )


def fallback_slot_seconds(slot_minutes: Optional[float], contestants: Sequence[Contestant]) -> float:
    """Seconds assumed for contestants without a usable duration.

    Precedence: configured slot length, then the average of the known
    durations, then the fixed default.
    """
    configured = slot_minutes * 60 if slot_minutes else None
    average = average_duration(c.video_duration for c in contestants)
    return resolve_duration(configured, average, default=TimelineDefaults.DEFAULT_SLOT_SECONDS)


def build_slots(
    contestants: Sequence[Contestant],
    existing: Sequence[PerformanceSlot],
    fallback_seconds: float,
) -> List[PerformanceSlot]:
    """Rebuild the slot list, keeping progress only where contestant and ordinal still match.

    A contestant's existing slot duration wins over the roster's recorded
    duration, which wins over ``fallback_seconds``.
    """
    previous = {slot.order: slot for slot in existing}
    known = {slot.contestant_id: slot.video_duration for slot in existing}
    slots: List[PerformanceSlot] = []
    for order, contestant in enumerate(rank_contestants(contestants)):
        duration = resolve_duration(
            known.get(contestant.id), contestant.video_duration, default=fallback_seconds
        )
        slot = PerformanceSlot(contestant_id=contestant.id, order=order, video_duration=duration)
        prior = previous.get(order)
        if prior is not None and prior.contestant_id == contestant.id and prior.status != PhaseStatus.PENDING:
            slot.status = prior.status
            slot.start_time = prior.start_time
            slot.end_time = prior.end_time
        slots.append(slot)
    return slots


def schedule_performances(
    engine: TimelineEngine,
    contestants: Sequence[Contestant],
    slot_minutes: Optional[float] = None,
) -> List[PerformanceSlot]:
    """Overwrite the engine's slots from ``contestants`` and recompute timings.

    Args:
        engine: Engine holding the event timeline
        contestants: Contestants taking part, in any order
        slot_minutes: Configured slot length used as the first fallback

    Returns:
        The new slot list
    """
    fallback = fallback_slot_seconds(slot_minutes, contestants)
    slots = build_slots(contestants, engine.state.slots, fallback)
    engine.apply_slots(slots)
    logger.info(
        f"📋 Scheduled {len(slots)} performances for event {engine.state.event_id} "
        f"(fallback {fallback:.0f}s)"
    )
    return slots


def top_up(
    engine: TimelineEngine,
    selected: Sequence[Contestant],
    slot_minutes: Optional[float] = None,
) -> List[int]:
    """Append selected contestants missing from the slot list.

    Existing slots keep their order and progress. Returns the ids appended.
    """
    known = {slot.contestant_id for slot in engine.state.slots}
    missing = [c for c in rank_contestants(selected) if c.id not in known]
    if not missing:
        return []

    fallback = fallback_slot_seconds(slot_minutes, selected)
    slots = list(engine.state.slots)
    next_order = max((slot.order for slot in slots), default=-1) + 1
    for offset, contestant in enumerate(missing):
        slots.append(
            PerformanceSlot(
                contestant_id=contestant.id,
                order=next_order + offset,
                video_duration=resolve_duration(contestant.video_duration, default=fallback),
            )
        )
    engine.apply_slots(slots)
    added = [c.id for c in missing]
    logger.warning(f"➕ Topped up event {engine.state.event_id} with contestants {added}")
    return added

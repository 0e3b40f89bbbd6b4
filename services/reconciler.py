"""Read-time reconciliation and the viewer snapshot projection.

A status read first checks :func:`needs_reconcile` without locking. Only
when something has to change does the caller take the per-event lock,
reload, and run :func:`reconcile` on a fresh engine.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Sequence

from core.constants import EventStatus, PhaseName, PhaseStatus, TimelineDefaults
from core.logger import get_logger
from database.models import Contestant, Event, TimelineState
from services.durations import resolve_duration
from services.performance_scheduler import top_up
from services.timeline import TimelineEngine
from utils.timeutils import seconds_until, to_iso

logger = get_logger(__name__)


@dataclass(slots=True)
class ReconcileReport:
    normalized: bool = False
    recovered: bool = False
    slots_repaired: bool = False
    advanced: List[str] = field(default_factory=list)
    topped_up: List[int] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(
            self.normalized or self.recovered or self.slots_repaired or self.advanced or self.topped_up
        )


def _sweepable(state: TimelineState) -> bool:
    return (
        state.is_live
        and state.event_status == EventStatus.LIVE
        and not state.is_paused
        and not state.manual_override.active
    )


def _auto_advances(state: TimelineState, now: datetime) -> bool:
    active = state.active_phase()
    if active is None or active.end_time is None or now <= active.end_time:
        return False
    if active.name in TimelineDefaults.AUTO_ADVANCE_PHASES:
        return True
    # An empty commercial break has no clip to report completion
    return active.name == PhaseName.COMMERCIAL and active.duration <= 0


def _wants_top_up(state: TimelineState) -> bool:
    if state.event_status == EventStatus.SCHEDULED:
        return True
    if not state.is_live:
        return False
    active = state.active_phase()
    return active is not None and active.name in TimelineDefaults.TOP_UP_PHASES


def _slots_need_repair(state: TimelineState) -> bool:
    active_slots = [slot for slot in state.slots if slot.status == PhaseStatus.ACTIVE]
    if len(active_slots) > 1:
        return True
    active = state.active_phase()
    if active is not None and active.name == PhaseName.PERFORMANCE and not active_slots:
        return any(slot.status == PhaseStatus.PENDING for slot in state.slots)
    return False


def needs_reconcile(state: TimelineState, now: datetime, selected_ids: Sequence[int] = ()) -> bool:
    """Cheap check run before taking the lock; never mutates ``state``."""
    active_count = sum(1 for phase in state.phases if phase.status == PhaseStatus.ACTIVE)
    if active_count > 1:
        return True
    if state.is_live and active_count == 0:
        return True
    if state.is_live and _slots_need_repair(state):
        return True
    if _sweepable(state) and _auto_advances(state, now):
        return True
    if selected_ids and _wants_top_up(state):
        known = {slot.contestant_id for slot in state.slots}
        if any(contestant_id not in known for contestant_id in selected_ids):
            return True
    return False


def normalize_phases(engine: TimelineEngine) -> bool:
    """Collapse several active phases into one, keeping the latest started."""
    phases = engine.state.phases
    active = [idx for idx, phase in enumerate(phases) if phase.status == PhaseStatus.ACTIVE]
    if len(active) <= 1:
        return False
    keep = max(
        active,
        key=lambda idx: (phases[idx].start_time.timestamp() if phases[idx].start_time else 0.0, idx),
    )
    for idx, phase in enumerate(phases):
        if idx < keep:
            phase.status = PhaseStatus.COMPLETED
        elif idx > keep and phase.status != PhaseStatus.COMPLETED:
            phase.status = PhaseStatus.PENDING
    logger.warning(
        f"Event {engine.state.event_id}: {len(active)} active phases, kept '{phases[keep].name.value}'"
    )
    return True


def recover_active_phase(engine: TimelineEngine) -> bool:
    """Activate the first unfinished phase when a live event has none active."""
    state = engine.state
    if not state.is_live or state.active_phase() is not None:
        return False
    index = next(
        (idx for idx, phase in enumerate(state.phases) if phase.status != PhaseStatus.COMPLETED),
        -1,
    )
    if index < 0:
        return False
    for phase in state.phases[index + 1:]:
        if phase.status != PhaseStatus.COMPLETED:
            phase.status = PhaseStatus.PENDING
    state.phases[index].status = PhaseStatus.ACTIVE
    if state.phases[index].end_time is None:
        engine.enter_phase(index, engine.now())
    logger.warning(f"Event {state.event_id}: recovered active phase '{state.phases[index].name.value}'")
    return True


def repair_slots(engine: TimelineEngine) -> bool:
    state = engine.state
    changed = False
    active_slots = sorted(
        (slot for slot in state.slots if slot.status == PhaseStatus.ACTIVE),
        key=lambda slot: slot.order,
    )
    for extra in active_slots[1:]:
        extra.status = PhaseStatus.PENDING
        changed = True

    active = state.active_phase()
    if active is not None and active.name == PhaseName.PERFORMANCE and not active_slots:
        pending = sorted(
            (slot for slot in state.slots if slot.status == PhaseStatus.PENDING),
            key=lambda slot: slot.order,
        )
        if pending:
            engine.activate_slot(pending[0], engine.now())
            changed = True
    if changed:
        logger.warning(f"Event {state.event_id}: repaired performance slots")
    return changed


def sweep(engine: TimelineEngine, now: datetime) -> List[str]:
    """Advance expired clock-driven phases, at most MAX_AUTO_ADVANCE_STEPS times."""
    state = engine.state
    advanced: List[str] = []
    for _ in range(TimelineDefaults.MAX_AUTO_ADVANCE_STEPS):
        if not _sweepable(state) or not _auto_advances(state, now):
            break
        expired = state.active_phase()
        result = engine.advance_phase(expected=expired.name)
        if not result.changed:
            break
        advanced.append(expired.name.value)
        if result.terminal:
            break
    return advanced


def reconcile(
    engine: TimelineEngine,
    selected: Sequence[Contestant] = (),
    slot_minutes: Optional[float] = None,
) -> ReconcileReport:
    """Repair and auto-advance the timeline held by ``engine``."""
    state = engine.state
    now = engine.now()
    report = ReconcileReport()
    report.normalized = normalize_phases(engine)
    report.recovered = recover_active_phase(engine)
    if selected and _wants_top_up(state):
        report.topped_up = top_up(engine, selected, slot_minutes)
    if state.is_live:
        report.slots_repaired = repair_slots(engine)
    report.advanced = sweep(engine, now)
    if report.advanced:
        logger.info(f"⏭️ Event {state.event_id} auto-advanced past {report.advanced}")
    return report


def _performer(
    state: TimelineState,
    contestants: Mapping[int, Contestant],
    reference: datetime,
) -> Optional[Dict[str, Any]]:
    active = state.active_phase()
    slot = state.active_slot()
    if active is None or active.name != PhaseName.PERFORMANCE or slot is None:
        return None
    contestant = contestants.get(slot.contestant_id)
    duration = resolve_duration(
        slot.video_duration,
        contestant.video_duration if contestant else None,
    )
    return {
        "contestantId": slot.contestant_id,
        "displayName": contestant.display_name if contestant else None,
        "order": slot.order,
        "videoDuration": duration,
        "startTime": to_iso(slot.start_time),
        "endTime": to_iso(slot.end_time),
        "timeRemaining": seconds_until(slot.end_time, reference),
        "totalPerformances": len(state.slots),
    }


def project_snapshot(
    state: TimelineState,
    event: Event,
    now: datetime,
    contestants: Mapping[int, Contestant],
    viewer_count: int = 0,
    viewer_peak: int = 0,
) -> Dict[str, Any]:
    """Viewer-facing status document.

    While paused, remaining times are frozen at the pause instant.
    """
    reference = state.paused_at if state.is_paused and state.paused_at else now
    active = state.active_phase()
    return {
        "serverTime": to_iso(now),
        "eventId": event.id,
        "title": event.title,
        "eventStatus": state.event_status.value,
        "isLive": state.is_live,
        "isPaused": state.is_paused,
        "pausedAt": to_iso(state.paused_at),
        "currentPhase": {
            "name": state.current_phase_name,
            "startTime": to_iso(active.start_time) if active else None,
            "endTime": to_iso(active.end_time) if active else None,
            "timeRemaining": seconds_until(active.end_time, reference) if active else 0,
        },
        "phases": [phase.to_dict() for phase in state.phases],
        "performances": [slot.to_dict() for slot in state.slots],
        "currentPerformer": _performer(state, contestants, reference),
        "winnerAnnouncement": (
            state.winner_announcement.to_dict() if state.winner_announcement else None
        ),
        "voting": {
            "isOpen": event.voting_open,
            "deadline": to_iso(event.voting_deadline),
        },
        "manualOverride": state.manual_override.to_dict(),
        "actualStartTime": to_iso(state.actual_start_time),
        "actualEndTime": to_iso(state.actual_end_time),
        "restartCount": state.restart_count,
        "version": state.version,
        "viewers": {"count": viewer_count, "peak": viewer_peak},
    }

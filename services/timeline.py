"""Timeline engine for a single live event.

The engine mutates a :class:`TimelineState` in memory and never touches
storage; :mod:`services.live_event` loads, mutates and saves it under the
per-event lock. Every phase the engine enters is appended to
``entered_phases`` so the caller can fire phase-entry effects exactly once.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

from core.constants import (
    PHASE_ORDER,
    PHASE_TRANSITIONS,
    EventStatus,
    PhaseName,
    PhaseStatus,
    TimelineDefaults,
)
from core.exceptions import BoundsViolationError, InvalidPhaseError, InvalidStateError, ValidationError
from core.logger import get_logger
from database.models import (
    Event,
    ManualOverride,
    PerformanceSlot,
    Phase,
    TimeAdjustment,
    TimelineState,
)
from services.durations import commercial_minutes_for, performance_minutes_for, resolve_duration
from utils.timeutils import minutes, seconds_until, to_iso, utcnow

logger = get_logger(__name__)

Clock = Callable[[], datetime]


@dataclass(slots=True)
class TransitionResult:
    """Outcome of an advance-style command."""
    phase: Optional[Phase]
    terminal: bool = False
    changed: bool = True
    slot: Optional[PerformanceSlot] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "phase": self.phase.name.value if self.phase else "ended",
            "startTime": to_iso(self.phase.start_time) if self.phase else None,
            "endTime": to_iso(self.phase.end_time) if self.phase else None,
            "terminal": self.terminal,
            "changed": self.changed,
        }
        if self.slot is not None:
            payload["performance"] = self.slot.to_dict()
        return payload


@dataclass(slots=True)
class AdjustmentResult:
    phase: Phase
    delta_minutes: int
    new_end_time: datetime
    time_remaining: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "phase": self.phase.name.value,
            "startTime": to_iso(self.phase.start_time),
            "endTime": to_iso(self.phase.end_time),
            "deltaMinutes": self.delta_minutes,
            "newEndTime": to_iso(self.new_end_time),
            "timeRemaining": self.time_remaining,
        }


def parse_phase(value: Union[str, PhaseName]) -> PhaseName:
    """Convert free text into a PhaseName.

    Raises:
        InvalidPhaseError: If the name is not a known phase
    """
    if isinstance(value, PhaseName):
        return value
    try:
        return PhaseName(str(value).strip().lower())
    except ValueError:
        raise InvalidPhaseError(
            f"Unknown phase '{value}'",
            allowed=[name.value for name in PHASE_ORDER],
        ) from None


def slot_seconds(slot: PerformanceSlot) -> float:
    return resolve_duration(slot.video_duration)


def build_phases(
    configured: Mapping[PhaseName, float],
    anchor: datetime,
    performance_seconds: Optional[float] = None,
    commercial_seconds: float = 0.0,
) -> List[Phase]:
    """Build the ordered phase list walking forward from ``anchor``.

    Args:
        configured: Minutes for fixed phases; the performance entry is the
            provisional length used while no contestants are known
        anchor: Start instant of the first phase
        performance_seconds: Total slot seconds once contestants are known
        commercial_seconds: Measured commercial content, 0 when there is none

    Returns:
        Phases with contiguous start/end times; the first one active
    """
    phases: List[Phase] = []
    cursor = anchor
    for name in PHASE_ORDER:
        if name == PhaseName.PERFORMANCE:
            if performance_seconds is not None and performance_seconds > 0:
                duration: float = performance_minutes_for(performance_seconds)
            else:
                duration = configured.get(PhaseName.PERFORMANCE, TimelineDefaults.PERFORMANCE_MINUTES)
        elif name == PhaseName.COMMERCIAL:
            duration = commercial_minutes_for(commercial_seconds)
        else:
            duration = configured[name]
        end = cursor + minutes(duration)
        phases.append(Phase(name=name, duration=duration, start_time=cursor, end_time=end))
        cursor = end
    phases[0].status = PhaseStatus.ACTIVE
    return phases


def generate_timeline(
    event: Event,
    anchor: datetime,
    performance_seconds: Optional[float] = None,
    commercial_seconds: float = 0.0,
) -> TimelineState:
    """Create a fresh, not yet live timeline for ``event`` anchored at ``anchor``."""
    phases = build_phases(
        event.configured_minutes(),
        anchor,
        performance_seconds=performance_seconds,
        commercial_seconds=commercial_seconds,
    )
    return TimelineState(event_id=event.id, phases=phases)


class TimelineEngine:
    """Operations on one event's timeline aggregate."""

    def __init__(self, state: TimelineState, clock: Clock = utcnow) -> None:
        self.state = state
        self._clock = clock
        self.entered_phases: List[PhaseName] = []

    def now(self) -> datetime:
        return self._clock()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _performance_duration(self, phase: Phase) -> float:
        if not self.state.slots:
            return phase.duration
        return performance_minutes_for(sum(slot_seconds(slot) for slot in self.state.slots))

    def _reflow(self, start_index: int) -> None:
        """Lay out phases from ``start_index`` contiguously after their predecessor."""
        phases = self.state.phases
        if start_index >= len(phases):
            return
        if start_index == 0:
            cursor = phases[0].start_time
        else:
            cursor = phases[start_index - 1].end_time
        if cursor is None:
            return
        for phase in phases[start_index:]:
            phase.start_time = cursor
            phase.end_time = cursor + minutes(phase.duration)
            cursor = phase.end_time

    def enter_phase(self, index: int, now: datetime) -> Phase:
        phase = self.state.phases[index]
        if phase.name == PhaseName.PERFORMANCE:
            phase.duration = self._performance_duration(phase)
        phase.status = PhaseStatus.ACTIVE
        phase.start_time = now
        phase.end_time = now + minutes(phase.duration)
        self._reflow(index + 1)
        self.entered_phases.append(phase.name)
        logger.info(f"▶️ Event {self.state.event_id} entered phase '{phase.name.value}'")
        return phase

    def _finish(self, now: datetime) -> None:
        state = self.state
        for slot in state.slots:
            if slot.status == PhaseStatus.ACTIVE:
                slot.status = PhaseStatus.COMPLETED
                slot.end_time = now
        state.event_status = EventStatus.COMPLETED
        state.is_live = False
        state.actual_end_time = now
        logger.info(f"🏁 Event {state.event_id} timeline completed")

    def _require_unpaused(self, action: str) -> None:
        if self.state.is_paused:
            raise InvalidStateError(
                f"Cannot {action} while the event is paused",
                phase=self.state.current_phase_name,
                paused_at=to_iso(self.state.paused_at),
            )

    def _require_live(self, action: str) -> None:
        if not self.state.is_live:
            raise InvalidStateError(
                f"Cannot {action}: event is not live",
                event_status=self.state.event_status.value,
            )

    def _layout_pending_slots(self, cursor: Optional[datetime]) -> None:
        for slot in sorted(self.state.slots, key=lambda item: item.order):
            if slot.status != PhaseStatus.PENDING:
                continue
            if cursor is None:
                slot.start_time = None
                slot.end_time = None
                continue
            slot.start_time = cursor
            slot.end_time = cursor + timedelta(seconds=slot_seconds(slot))
            cursor = slot.end_time

    def activate_slot(self, slot: PerformanceSlot, now: datetime) -> PerformanceSlot:
        slot.status = PhaseStatus.ACTIVE
        slot.start_time = now
        slot.end_time = now + timedelta(seconds=slot_seconds(slot))
        self._layout_pending_slots(slot.end_time)
        return slot

    def _next_pending_slot(self) -> Optional[PerformanceSlot]:
        pending = [slot for slot in self.state.slots if slot.status == PhaseStatus.PENDING]
        return min(pending, key=lambda item: item.order) if pending else None

    # ------------------------------------------------------------------
    # Roster-driven layout
    # ------------------------------------------------------------------
    def apply_slots(self, slots: List[PerformanceSlot]) -> None:
        """Replace the slot list and recompute the performance phase and everything after it."""
        state = self.state
        perf = state.phase(PhaseName.PERFORMANCE)
        shift = timedelta(0)
        if (
            perf is not None
            and perf.status == PhaseStatus.ACTIVE
            and perf.start_time is not None
            and perf.end_time is not None
        ):
            # Pauses and operator adjustments already applied to the running phase
            shift = perf.end_time - (perf.start_time + minutes(self._performance_duration(perf)))
        state.slots = sorted(slots, key=lambda item: item.order)
        if perf is None or perf.status == PhaseStatus.COMPLETED:
            return

        if state.slots:
            perf.duration = self._performance_duration(perf)

        active_index = state.active_index()
        perf_index = state.phase_index(PhaseName.PERFORMANCE)
        if perf.status == PhaseStatus.ACTIVE and perf.start_time is not None:
            perf.end_time = perf.start_time + minutes(perf.duration) + shift
            self._reflow(perf_index + 1)
            cursor = perf.start_time
            for slot in state.slots:
                if slot.status != PhaseStatus.PENDING and slot.end_time is not None:
                    cursor = max(cursor, slot.end_time)
            self._layout_pending_slots(cursor)
        else:
            self._reflow(active_index + 1 if active_index >= 0 else 0)
            self._layout_pending_slots(perf.start_time)

    def ensure_first_slot_active(self) -> Optional[PerformanceSlot]:
        """Activate the first slot when the performance phase has none running yet."""
        state = self.state
        active = state.active_phase()
        if active is None or active.name != PhaseName.PERFORMANCE or not state.slots:
            return None
        if any(slot.status != PhaseStatus.PENDING for slot in state.slots):
            return state.active_slot()
        first = min(state.slots, key=lambda item: item.order)
        return self.activate_slot(first, self.now())

    # ------------------------------------------------------------------
    # Operator and automatic commands
    # ------------------------------------------------------------------
    def start(self) -> TransitionResult:
        """Go live now: re-anchor every phase at the current instant."""
        state = self.state
        if state.event_status == EventStatus.COMPLETED:
            raise InvalidStateError("Event already ended; restart it instead", event_status=state.event_status.value)
        if state.is_live:
            return TransitionResult(state.active_phase(), changed=False)

        now = self.now()
        for phase in state.phases:
            phase.status = PhaseStatus.PENDING
        for slot in state.slots:
            slot.status = PhaseStatus.PENDING
        state.is_live = True
        state.event_status = EventStatus.LIVE
        state.actual_start_time = now
        state.actual_end_time = None
        phase = self.enter_phase(0, now)
        self._layout_pending_slots(state.phase(PhaseName.PERFORMANCE).start_time)
        return TransitionResult(phase)

    def advance_phase(self, expected: Optional[PhaseName] = None) -> TransitionResult:
        """Complete the active phase and activate the next one.

        Args:
            expected: When given, only advance if this is the active phase;
                otherwise report the current phase without changing anything

        Returns:
            The new active phase, or a terminal result once no phase remains

        Raises:
            InvalidStateError: If the event is paused
        """
        self._require_unpaused("advance")
        state = self.state
        if not state.is_live or state.event_status == EventStatus.COMPLETED:
            return TransitionResult(
                state.active_phase(),
                terminal=state.event_status == EventStatus.COMPLETED,
                changed=False,
            )

        index = state.active_index()
        if expected is not None and (index < 0 or state.phases[index].name != expected):
            return TransitionResult(state.active_phase(), changed=False)

        now = self.now()
        if index >= 0:
            current = state.phases[index]
            current.status = PhaseStatus.COMPLETED
            if current.name == PhaseName.PERFORMANCE:
                slot = state.active_slot()
                if slot is not None:
                    slot.status = PhaseStatus.COMPLETED
                    slot.end_time = now
            following = PHASE_TRANSITIONS[current.name]
            next_index = state.phase_index(following) if following is not None else -1
            if next_index < 0:
                next_index = len(state.phases)
        else:
            next_index = next(
                (idx for idx, phase in enumerate(state.phases) if phase.status != PhaseStatus.COMPLETED),
                len(state.phases),
            )

        if next_index >= len(state.phases):
            self._finish(now)
            return TransitionResult(None, terminal=True)

        phase = self.enter_phase(next_index, now)
        slot = self.ensure_first_slot_active() if phase.name == PhaseName.PERFORMANCE else None
        return TransitionResult(phase, slot=slot)

    def advance_performance(self, expected_order: Optional[int] = None) -> TransitionResult:
        """Move to the next performance slot; after the last slot, leave the phase.

        Outside the performance phase, or with a stale ``expected_order``,
        this reports the current state and changes nothing.
        """
        self._require_unpaused("advance the performance")
        state = self.state
        active = state.active_phase()
        if not state.is_live or active is None or active.name != PhaseName.PERFORMANCE:
            return TransitionResult(active, changed=False)

        current = state.active_slot()
        if expected_order is not None and (current is None or current.order != expected_order):
            return TransitionResult(active, changed=False, slot=current)

        now = self.now()
        if current is not None:
            current.status = PhaseStatus.COMPLETED
            current.end_time = now

        following = self._next_pending_slot()
        if following is None:
            return self.advance_phase(expected=PhaseName.PERFORMANCE)

        slot = self.activate_slot(following, now)
        logger.info(
            f"🎤 Event {state.event_id} performance #{slot.order} started "
            f"(contestant {slot.contestant_id})"
        )
        return TransitionResult(active, slot=slot)

    def complete_commercials(self) -> TransitionResult:
        """Leave the commercial phase; a no-op in any other phase."""
        self._require_unpaused("complete commercials")
        active = self.state.active_phase()
        if active is None or active.name != PhaseName.COMMERCIAL:
            return TransitionResult(active, changed=False)
        return self.advance_phase(expected=PhaseName.COMMERCIAL)

    def pause(self, actor: Optional[str] = None) -> bool:
        """Freeze automatic progression. Returns False if already paused."""
        self._require_live("pause")
        state = self.state
        if state.is_paused:
            return False
        state.is_paused = True
        state.paused_at = self.now()
        state.paused_by = actor
        logger.info(f"⏸️ Event {state.event_id} paused by {actor or 'system'}")
        return True

    def resume(self) -> Optional[timedelta]:
        """Unfreeze and push every remaining boundary forward by the pause length.

        Returns:
            The pause length, or None if the event was not paused
        """
        state = self.state
        if not state.is_paused:
            return None
        now = self.now()
        paused_for = now - state.paused_at if state.paused_at else timedelta(0)
        if paused_for < timedelta(0):
            paused_for = timedelta(0)

        index = state.active_index()
        if index >= 0:
            state.phases[index].end_time += paused_for
            for phase in state.phases[index + 1:]:
                if phase.start_time is not None:
                    phase.start_time += paused_for
                if phase.end_time is not None:
                    phase.end_time += paused_for
        for slot in state.slots:
            if slot.status == PhaseStatus.ACTIVE and slot.end_time is not None:
                slot.end_time += paused_for
            elif slot.status == PhaseStatus.PENDING:
                if slot.start_time is not None:
                    slot.start_time += paused_for
                if slot.end_time is not None:
                    slot.end_time += paused_for

        state.is_paused = False
        state.paused_at = None
        state.paused_by = None
        logger.info(f"▶️ Event {state.event_id} resumed after {paused_for.total_seconds():.0f}s")
        return paused_for

    def adjust_current_phase_time(self, delta_minutes: int, actor: Optional[str] = None) -> AdjustmentResult:
        """Extend or reduce the active phase and shift everything after it.

        Args:
            delta_minutes: Signed minutes to add to the active phase's end
            actor: Operator recorded in the adjustment log

        Returns:
            The adjusted phase with its new end and remaining seconds

        Raises:
            InvalidStateError: If no phase is active
            ValidationError: If delta is zero
            BoundsViolationError: If a reduction would end the phase in the past;
                ``limit`` carries the largest permitted reduction in minutes
        """
        state = self.state
        index = state.active_index()
        if index < 0:
            raise InvalidStateError("No active phase to adjust", phase=state.current_phase_name)
        if delta_minutes == 0:
            raise ValidationError("Adjustment must be a non-zero number of minutes")

        now = self.now()
        phase = state.phases[index]
        delta = minutes(delta_minutes)
        new_end = phase.end_time + delta
        if delta_minutes < 0 and new_end < now:
            remaining = max(0.0, (phase.end_time - now).total_seconds())
            max_reduction = math.floor(remaining / 60)
            raise BoundsViolationError(
                f"Cannot reduce '{phase.name.value}' by {-delta_minutes} minutes; "
                f"at most {max_reduction} minutes remain",
                limit=max_reduction,
                max_reduction_minutes=max_reduction,
                phase=phase.name.value,
                time_remaining=int(remaining),
            )

        phase.end_time = new_end
        phase.duration = max(0, phase.duration + delta_minutes)
        for later in state.phases[index + 1:]:
            if later.start_time is not None:
                later.start_time += delta
            if later.end_time is not None:
                later.end_time += delta
        state.time_adjustments.append(
            TimeAdjustment(phase=phase.name.value, delta_minutes=delta_minutes, actor=actor, adjusted_at=now)
        )
        logger.info(
            f"⏱️ Event {state.event_id} phase '{phase.name.value}' adjusted by {delta_minutes:+d} min "
            f"by {actor or 'system'}"
        )
        return AdjustmentResult(
            phase=phase,
            delta_minutes=delta_minutes,
            new_end_time=new_end,
            time_remaining=seconds_until(new_end, now),
        )

    def jump_to_phase(self, target: Union[str, PhaseName], actor: Optional[str] = None) -> TransitionResult:
        """Make ``target`` the active phase and set the manual override."""
        name = parse_phase(target)
        self._require_live("jump")
        self._require_unpaused("jump")
        state = self.state
        index = state.phase_index(name)
        if index < 0:
            raise InvalidStateError(f"Phase '{name.value}' is not part of this timeline", phase=name.value)

        now = self.now()
        for idx, phase in enumerate(state.phases):
            if idx < index:
                phase.status = PhaseStatus.COMPLETED
            elif idx > index:
                phase.status = PhaseStatus.PENDING
        if name == PhaseName.PERFORMANCE:
            for slot in state.slots:
                slot.status = PhaseStatus.PENDING
                slot.start_time = None
                slot.end_time = None

        phase = self.enter_phase(index, now)
        if name == PhaseName.PERFORMANCE:
            self.ensure_first_slot_active()
        state.manual_override = ManualOverride(
            active=True,
            reason=f"Jumped to {name.value}",
            overridden_at=now,
            overridden_by=actor,
        )
        return TransitionResult(phase)

    def release_override(self) -> bool:
        """Hand control back to automatic advancement. Returns False if nothing to release."""
        if not self.state.manual_override.active:
            return False
        self.state.manual_override = ManualOverride()
        return True

    def stop(self) -> TransitionResult:
        """End the event immediately."""
        state = self.state
        if state.event_status == EventStatus.COMPLETED:
            return TransitionResult(None, terminal=True, changed=False)
        self._require_live("stop")
        now = self.now()
        active = state.active_phase()
        if active is not None:
            active.status = PhaseStatus.COMPLETED
            active.end_time = now
        state.is_paused = False
        state.paused_at = None
        state.paused_by = None
        state.manual_override = ManualOverride()
        self._finish(now)
        return TransitionResult(None, terminal=True)

    def restart(self) -> TransitionResult:
        """Reset the whole event and go live again from the first phase."""
        state = self.state
        now = self.now()
        for phase in state.phases:
            phase.status = PhaseStatus.PENDING
        for slot in state.slots:
            slot.status = PhaseStatus.PENDING
            slot.start_time = None
            slot.end_time = None
        state.winner_announcement = None
        state.manual_override = ManualOverride()
        state.is_paused = False
        state.paused_at = None
        state.paused_by = None
        state.is_live = True
        state.event_status = EventStatus.LIVE
        state.actual_start_time = now
        state.actual_end_time = None
        state.restart_count += 1
        phase = self.enter_phase(0, now)
        self._layout_pending_slots(state.phase(PhaseName.PERFORMANCE).start_time)
        logger.warning(f"🔄 Event {state.event_id} restarted (restart #{state.restart_count})")
        return TransitionResult(phase)

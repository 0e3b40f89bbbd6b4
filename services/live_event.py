"""Live event service: the per-event serialization boundary.

Every timeline command runs as load, mutate, fire phase effects, save and
then the deferred side writes, all inside one ``asyncio.Lock`` per event.
The save itself is version-checked, so a writer that bypasses the lock
(another process) is detected rather than silently overwritten, and a
rejected save leaves the event and roster rows untouched.
"""

from __future__ import annotations

import asyncio
import inspect
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple, TypeVar, Union

from core import get_logger
from core.constants import EventStatus, PhaseName
from core.exceptions import ConcurrencyConflictError, NotFoundError
from database.models import Event, TimelineState
from database.repositories import EventRepository, TimelineRepository
from services.durations import measure_commercial_seconds
from services.featuring import FeatureCollaborator
from services.notification_service import NotificationService
from services.performance_scheduler import schedule_performances
from services.phase_effects import EffectContext, declare_winner, fire_phase_effects, run_deferred
from services.reconciler import needs_reconcile, project_snapshot, reconcile
from services.roster import RosterProvider
from services.timeline import TimelineEngine, generate_timeline, parse_phase
from services.viewer_presence import ViewerPresence
from utils.performance import concurrency_conflicts_total, performance_monitor, reconcile_failures_total
from utils.timeutils import to_iso, utcnow

logger = get_logger(__name__)

T = TypeVar("T")
Operation = Callable[[EffectContext], Union[T, Awaitable[T]]]


class LiveEventService:
    """Owns timeline reads and writes for every event."""

    def __init__(
        self,
        roster: RosterProvider,
        features: Optional[FeatureCollaborator] = None,
        notifier: Optional[NotificationService] = None,
        viewers: Optional[ViewerPresence] = None,
        clock: Callable[[], datetime] = utcnow,
        commercial_max_seconds: Optional[int] = None,
    ) -> None:
        self.roster = roster
        self.features = features
        self.notifier = notifier
        self.viewers = viewers or ViewerPresence()
        self.clock = clock
        self.commercial_max_seconds = commercial_max_seconds
        self._locks: Dict[int, asyncio.Lock] = {}
        self._last_good: Dict[int, Dict[str, Any]] = {}

    def lock_for(self, event_id: int) -> asyncio.Lock:
        lock = self._locks.get(event_id)
        if lock is None:
            lock = self._locks[event_id] = asyncio.Lock()
        return lock

    def _commercial_seconds(self, event: Event) -> float:
        if not event.commercial_durations:
            return 0.0
        if self.commercial_max_seconds is None:
            return measure_commercial_seconds(event.commercial_durations)
        return measure_commercial_seconds(event.commercial_durations, self.commercial_max_seconds)

    async def _load(self, event_id: int) -> Tuple[Event, TimelineState]:
        event = await EventRepository.require(event_id)
        state = await TimelineRepository.load(event_id)
        if state is None:
            raise NotFoundError(f"Timeline for event {event_id} not found", event_id=event_id)
        return event, state

    def _context(self, event: Event, state: TimelineState) -> EffectContext:
        return EffectContext(
            engine=TimelineEngine(state, clock=self.clock),
            event=event,
            roster=self.roster,
            features=self.features,
            notifier=self.notifier,
        )

    async def _commit(self, ctx: EffectContext, source: str) -> None:
        await fire_phase_effects(ctx, ctx.engine.entered_phases)
        try:
            await TimelineRepository.save(ctx.engine.state)
        except ConcurrencyConflictError:
            concurrency_conflicts_total.inc()
            raise
        for name in ctx.engine.entered_phases:
            performance_monitor.record_phase_entered(name.value, source)
        await run_deferred(ctx)

    async def mutate(self, event_id: int, command: str, operation: Operation[T]) -> T:
        """Run ``operation`` against a freshly loaded timeline under the event lock."""
        with performance_monitor.track_command(command):
            async with self.lock_for(event_id):
                event, state = await self._load(event_id)
                ctx = self._context(event, state)
                result = operation(ctx)
                if inspect.isawaitable(result):
                    result = await result
                await self._commit(ctx, source=command)
                self._last_good.pop(event_id, None)
                return result

    # ------------------------------------------------------------------
    # Setup
    # ------------------------------------------------------------------
    async def create_event(self, data: Dict[str, Any]) -> Tuple[Event, TimelineState]:
        """Create an event and its timeline anchored at the scheduled date."""
        event = await EventRepository.create(data)
        state = generate_timeline(
            event,
            anchor=event.event_date,
            commercial_seconds=self._commercial_seconds(event),
        )
        await TimelineRepository.create(state)
        logger.info(f"✅ Event {event.id} '{event.title}' created for {to_iso(event.event_date)}")
        return event, state

    async def reschedule(self, event_id: int) -> Dict[str, Any]:
        """Rebuild performance slots from the selected roster."""
        async def operation(ctx: EffectContext) -> Dict[str, Any]:
            contestants = await self.roster.list_selected(event_id)
            if not contestants:
                contestants = await self.roster.list_entrants(event_id)
            slots = schedule_performances(ctx.engine, contestants, ctx.event.performance_slot_minutes)
            perf = ctx.engine.state.phase(PhaseName.PERFORMANCE)
            minutes = perf.duration
            ctx.defer(lambda: EventRepository.update_performance_minutes(event_id, minutes))
            return {
                "eventId": event_id,
                "performances": len(slots),
                "performanceMinutes": perf.duration,
            }

        return await self.mutate(event_id, "reschedule", operation)

    # ------------------------------------------------------------------
    # Timeline commands
    # ------------------------------------------------------------------
    async def start(self, event_id: int) -> Dict[str, Any]:
        def operation(ctx: EffectContext) -> Dict[str, Any]:
            return ctx.engine.start().to_dict()

        result = await self.mutate(event_id, "start", operation)
        await EventRepository.set_status(event_id, EventStatus.LIVE.value)
        return result

    async def advance(self, event_id: int, expected: Optional[str] = None) -> Dict[str, Any]:
        expected_phase = parse_phase(expected) if expected else None

        def operation(ctx: EffectContext) -> Dict[str, Any]:
            return ctx.engine.advance_phase(expected=expected_phase).to_dict()

        result = await self.mutate(event_id, "advance", operation)
        if result["terminal"] and result["changed"]:
            await EventRepository.set_status(event_id, EventStatus.COMPLETED.value)
        return result

    async def advance_performance(self, event_id: int, expected_order: Optional[int] = None) -> Dict[str, Any]:
        def operation(ctx: EffectContext) -> Dict[str, Any]:
            return ctx.engine.advance_performance(expected_order=expected_order).to_dict()

        return await self.mutate(event_id, "advance_performance", operation)

    async def complete_commercials(self, event_id: int) -> Dict[str, Any]:
        def operation(ctx: EffectContext) -> Dict[str, Any]:
            return ctx.engine.complete_commercials().to_dict()

        return await self.mutate(event_id, "complete_commercials", operation)

    async def pause(self, event_id: int, actor: Optional[str] = None) -> Dict[str, Any]:
        def operation(ctx: EffectContext) -> Dict[str, Any]:
            changed = ctx.engine.pause(actor)
            state = ctx.engine.state
            return {
                "phase": state.current_phase_name,
                "isPaused": True,
                "pausedAt": to_iso(state.paused_at),
                "changed": changed,
            }

        return await self.mutate(event_id, "pause", operation)

    async def resume(self, event_id: int) -> Dict[str, Any]:
        def operation(ctx: EffectContext) -> Dict[str, Any]:
            paused_for = ctx.engine.resume()
            active = ctx.engine.state.active_phase()
            return {
                "phase": ctx.engine.state.current_phase_name,
                "startTime": to_iso(active.start_time) if active else None,
                "endTime": to_iso(active.end_time) if active else None,
                "isPaused": False,
                "pausedSeconds": int(paused_for.total_seconds()) if paused_for is not None else 0,
                "changed": paused_for is not None,
            }

        return await self.mutate(event_id, "resume", operation)

    async def adjust_time(self, event_id: int, delta_minutes: int, actor: Optional[str] = None) -> Dict[str, Any]:
        def operation(ctx: EffectContext) -> Dict[str, Any]:
            return ctx.engine.adjust_current_phase_time(delta_minutes, actor).to_dict()

        return await self.mutate(event_id, "adjust_time", operation)

    async def jump(self, event_id: int, target: str, actor: Optional[str] = None) -> Dict[str, Any]:
        phase = parse_phase(target)

        def operation(ctx: EffectContext) -> Dict[str, Any]:
            return ctx.engine.jump_to_phase(phase, actor).to_dict()

        return await self.mutate(event_id, "jump", operation)

    async def release_override(self, event_id: int) -> Dict[str, Any]:
        def operation(ctx: EffectContext) -> Dict[str, Any]:
            released = ctx.engine.release_override()
            return {"phase": ctx.engine.state.current_phase_name, "changed": released}

        return await self.mutate(event_id, "release_override", operation)

    async def stop(self, event_id: int, winner_id: Optional[int] = None) -> Dict[str, Any]:
        async def operation(ctx: EffectContext) -> Dict[str, Any]:
            if winner_id is not None and ctx.engine.state.event_status != EventStatus.COMPLETED:
                await declare_winner(ctx, winner_id)
            return ctx.engine.stop().to_dict()

        result = await self.mutate(event_id, "stop", operation)
        await EventRepository.set_voting_state(event_id, False)
        await EventRepository.set_status(event_id, EventStatus.COMPLETED.value)
        return result

    async def restart(self, event_id: int) -> Dict[str, Any]:
        def operation(ctx: EffectContext) -> Dict[str, Any]:
            result = ctx.engine.restart().to_dict()
            result["restartCount"] = ctx.engine.state.restart_count
            return result

        result = await self.mutate(event_id, "restart", operation)
        await EventRepository.set_voting_state(event_id, False)
        await EventRepository.set_status(event_id, EventStatus.LIVE.value)
        return result

    async def time_adjustments(self, event_id: int) -> Dict[str, Any]:
        _, state = await self._load(event_id)
        return {
            "eventId": event_id,
            "adjustments": [adjustment.to_dict() for adjustment in state.time_adjustments],
        }

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    async def _reconcile_locked(self, event_id: int) -> Tuple[Event, TimelineState]:
        async with self.lock_for(event_id):
            event, state = await self._load(event_id)
            selected = await self.roster.list_selected(event_id)
            ctx = self._context(event, state)
            report = reconcile(ctx.engine, selected, event.performance_slot_minutes)
            if report.changed:
                await self._commit(ctx, source="reconcile")
                if state.event_status == EventStatus.COMPLETED:
                    await EventRepository.set_status(event_id, EventStatus.COMPLETED.value)
            return ctx.event, ctx.engine.state

    async def get_status(self, event_id: int) -> Dict[str, Any]:
        """Viewer snapshot, reconciling first when the timeline is stale.

        Reconciliation failures are logged and answered with the last good
        snapshot for the event, marked ``stale``.
        """
        event, state = await self._load(event_id)
        now = self.clock()
        try:
            selected = await self.roster.list_selected(event_id)
            if needs_reconcile(state, now, [c.id for c in selected]):
                event, state = await self._reconcile_locked(event_id)
        except (NotFoundError, asyncio.CancelledError):
            raise
        except Exception as e:
            reconcile_failures_total.inc()
            logger.error(f"Reconciliation failed for event {event_id}: {e}", exc_info=True)
            fallback = self._last_good.get(event_id)
            if fallback is not None:
                return {**fallback, "stale": True}

        entrants = await self.roster.list_entrants(event_id)
        snapshot = project_snapshot(
            state,
            event,
            self.clock(),
            {c.id: c for c in entrants},
            viewer_count=self.viewers.count(event_id),
            viewer_peak=self.viewers.peak(event_id),
        )
        self._last_good[event_id] = snapshot
        return snapshot

    async def reconcile_event(self, event_id: int) -> bool:
        """Background reconciliation used by the scheduler. Returns True if it wrote."""
        _, state = await self._load(event_id)
        selected = await self.roster.list_selected(event_id)
        if not needs_reconcile(state, self.clock(), [c.id for c in selected]):
            return False
        await self._reconcile_locked(event_id)
        return True

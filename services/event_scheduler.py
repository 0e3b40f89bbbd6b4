"""Background scheduler: auto-start events, run due raffles, reconcile live timelines."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta
from typing import Callable, Dict, Optional

from core import get_logger
from core.constants import EventStatus, RaffleDefaults, TimelineDefaults
from core.exceptions import ApplicationError, NothingToRaffleError, RaffleAlreadyExecutedError
from database.repositories import EventRepository, TimelineRepository
from services.live_event import LiveEventService
from services.lottery_service import RaffleManager
from utils.timeutils import utcnow

logger = get_logger(__name__)


class EventScheduler:
    """Periodic driver for work nobody polls for."""

    def __init__(
        self,
        live_events: LiveEventService,
        raffles: RaffleManager,
        interval_seconds: int = 5,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.live_events = live_events
        self.raffles = raffles
        self.interval = interval_seconds
        self.clock = clock
        self.running = False
        self.scheduler_task: Optional[asyncio.Task] = None

    async def _start_due_events(self, now: datetime) -> int:
        started = 0
        grace_start = now - timedelta(hours=TimelineDefaults.AUTO_START_GRACE_HOURS)
        for event in await EventRepository.list_starting_between(grace_start, now):
            state = await TimelineRepository.load(event.id)
            if state is None or state.event_status != EventStatus.SCHEDULED:
                continue
            try:
                await self.live_events.start(event.id)
                started += 1
                logger.info(f"🚀 Auto-started event {event.id} '{event.title}'")
            except ApplicationError as e:
                logger.warning(f"Could not auto-start event {event.id}: {e}")
        return started

    async def _run_due_raffles(self, now: datetime) -> int:
        executed = 0
        window_start = now - timedelta(minutes=RaffleDefaults.EXECUTION_WINDOW_MINUTES)
        for event in await EventRepository.list_raffle_due(now, window_start):
            if event.registration_end is not None and now < event.registration_end:
                continue
            try:
                await self.raffles.execute(event.id, actor="scheduler")
                executed += 1
            except RaffleAlreadyExecutedError:
                logger.debug(f"Raffle for event {event.id} already executed")
            except NothingToRaffleError:
                logger.warning(f"Scheduled raffle for event {event.id} has no entrants")
            except ApplicationError as e:
                logger.error(f"Scheduled raffle for event {event.id} failed: {e}")
        return executed

    async def _reconcile_live(self) -> int:
        reconciled = 0
        for event_id in await TimelineRepository.list_live_event_ids():
            try:
                if await self.live_events.reconcile_event(event_id):
                    reconciled += 1
            except ApplicationError as e:
                logger.warning(f"Background reconcile of event {event_id} failed: {e}")
        return reconciled

    async def tick(self) -> Dict[str, int]:
        """Run one scheduling pass."""
        now = self.clock()
        return {
            "started": await self._start_due_events(now),
            "raffles": await self._run_due_raffles(now),
            "reconciled": await self._reconcile_live(),
        }

    async def scheduler_loop(self) -> None:
        """Main scheduler loop running in background."""
        logger.info(f"🔄 Event scheduler started (interval: {self.interval}s)")
        while self.running:
            try:
                summary = await self.tick()
                if any(summary.values()):
                    logger.info(f"Scheduler pass: {summary}")
                await asyncio.sleep(self.interval)
            except asyncio.CancelledError:
                logger.info("Event scheduler loop cancelled")
                break
            except Exception as e:
                logger.error(f"Error in event scheduler loop: {e}", exc_info=True)
                await asyncio.sleep(self.interval)

    async def start(self) -> None:
        """Start the scheduler."""
        if self.running:
            logger.warning("Event scheduler is already running")
            return
        self.running = True
        self.scheduler_task = asyncio.create_task(self.scheduler_loop())

    async def stop(self) -> None:
        """Stop the scheduler."""
        if not self.running:
            return
        self.running = False
        if self.scheduler_task:
            self.scheduler_task.cancel()
            try:
                await self.scheduler_task
            except asyncio.CancelledError:
                pass
            self.scheduler_task = None
        logger.info("⏹️ Event scheduler stopped")

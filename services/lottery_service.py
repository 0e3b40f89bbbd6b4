"""Raffle management service: execution, verification and public results."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Callable, Dict, Optional

from core import get_logger
from core.exceptions import InvalidStateError, NotFoundError, RaffleAlreadyExecutedError
from database.repositories import EventRepository
from services.async_runner import fire_and_forget
from services.live_event import LiveEventService
from services.lottery import RaffleResult, SecureLottery
from services.lottery_run import load_raffle_run, save_raffle_run
from services.notification_service import NotificationService
from services.roster import RosterProvider
from utils.performance import raffles_executed_total
from utils.timeutils import to_iso, utcnow

logger = get_logger(__name__)


class RaffleManager:
    """Runs each event's raffle once and serves its transparency data.

    The ledger written by :func:`save_raffle_run` keeps every entrant's
    index and value, so verification still works after non-selected
    contestants are pruned from the roster.
    """

    def __init__(
        self,
        roster: RosterProvider,
        live_events: LiveEventService,
        notifier: Optional[NotificationService] = None,
        prune_unselected: bool = True,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.roster = roster
        self.live_events = live_events
        self.notifier = notifier
        self.prune_unselected = prune_unselected
        self.clock = clock

    async def execute(
        self,
        event_id: int,
        actor: Optional[str] = None,
        seed: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Execute the raffle for an event.

        Args:
            event_id: Event to raffle
            actor: Operator name or ``scheduler``
            seed: Optional pre-published seed; generated when omitted

        Returns:
            The public report of the new raffle

        Raises:
            RaffleAlreadyExecutedError: If the event already has a result
            InvalidStateError: If registration is still open
            NothingToRaffleError: If nobody registered
        """
        event = await EventRepository.require(event_id)
        if event.raffle_executed_at is not None:
            raise RaffleAlreadyExecutedError(
                f"Raffle for event {event_id} was already executed",
                event_id=event_id,
                executed_at=to_iso(event.raffle_executed_at),
            )
        now = self.clock()
        if event.registration_end is not None and now < event.registration_end:
            raise InvalidStateError(
                "Registration is still open",
                registration_end=to_iso(event.registration_end),
            )

        entrants = await self.roster.list_entrants(event_id)
        lottery = SecureLottery()
        result = lottery.perform_raffle([c.id for c in entrants], event.capacity, seed=seed)

        await save_raffle_run(event_id, result, now, executed_by=actor)
        await self.roster.record_raffle_outcome(event_id, result.entries)
        raffles_executed_total.inc()
        logger.info(
            f"🎲 Raffle executed for event {event_id}: {len(result.selected)}/{len(result.entries)} "
            f"selected (seed {result.seed[:16]}...)"
        )

        if self.prune_unselected:
            await self.roster.prune_unselected(event_id)
        await self.live_events.reschedule(event_id)

        if self.notifier is not None:
            selected = await self.roster.list_selected(event_id)
            fire_and_forget(
                self.notifier.notify_raffle_selected(event, selected),
                name=f"notify-raffle-{event_id}",
            )

        return SecureLottery.generate_public_report(result, event.title, to_iso(now))

    async def _ledger(self, event_id: int):
        loaded = await load_raffle_run(event_id)
        if loaded is None:
            raise NotFoundError(f"No raffle result for event {event_id}", event_id=event_id)
        return loaded

    async def results(self, event_id: int) -> Dict[str, Any]:
        """Public report rebuilt from the ledger."""
        event = await EventRepository.require(event_id)
        run, entries = await self._ledger(event_id)
        result = RaffleResult(seed=run.seed, capacity=run.capacity, entries=entries)
        return SecureLottery.generate_public_report(result, event.title, to_iso(run.executed_at))

    async def verify(self, event_id: int) -> Dict[str, Any]:
        """Recompute the raffle from the ledger's seed and entrant order."""
        run, entries = await self._ledger(event_id)
        entrants = [entry.entrant_id for entry in sorted(entries, key=lambda e: e.entrant_index)]
        expected = [entry.entrant_id for entry in entries if entry.position <= run.capacity]
        verified = SecureLottery().verify_raffle(entrants, run.seed, expected, run.capacity)
        if not verified:
            logger.error(f"❌ Raffle verification failed for event {event_id}")
        return {
            "eventId": event_id,
            "verified": verified,
            "seed": run.seed,
            "entrantCount": len(entrants),
            "capacity": run.capacity,
            "selectedIds": expected,
            "executedAt": to_iso(run.executed_at),
        }

    async def status(self, event_id: int) -> Dict[str, Any]:
        """Registration and raffle windows for an event."""
        event = await EventRepository.require(event_id)
        now = self.clock()
        registration_open = (
            (event.registration_start is None or event.registration_start <= now)
            and (event.registration_end is None or now < event.registration_end)
        )
        entrants = await self.roster.list_entrants(event_id)
        executed = event.raffle_executed_at is not None
        return {
            "eventId": event_id,
            "registrationOpen": registration_open,
            "registrationStart": to_iso(event.registration_start),
            "registrationEnd": to_iso(event.registration_end),
            "raffleScheduledAt": to_iso(event.raffle_scheduled_at),
            "raffleExecuted": executed,
            "raffleExecutedAt": to_iso(event.raffle_executed_at),
            "seed": event.raffle_seed if executed else None,
            "capacity": event.capacity,
            "entrantCount": len(entrants),
            "canExecute": not executed and not (
                event.registration_end is not None and now < event.registration_end
            ),
        }

"""Roster provider: contestant lists and the writes the showcase makes to them."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional, Protocol, Sequence

from core import get_logger
from core.constants import ContestantStatus, RaffleOutcome
from database.models import Contestant, RaffleEntry
from database.repositories import ContestantRepository

logger = get_logger(__name__)


class RosterProvider(Protocol):
    """Contestant storage the timeline and raffle depend on."""

    async def get(self, contestant_id: int) -> Optional[Contestant]: ...

    async def list_entrants(self, event_id: int) -> List[Contestant]: ...

    async def list_selected(self, event_id: int) -> List[Contestant]: ...

    async def list_for_winner(self, event_id: int) -> List[Contestant]: ...

    async def record_raffle_outcome(self, event_id: int, entries: Sequence[RaffleEntry]) -> None: ...

    async def prune_unselected(self, event_id: int) -> int: ...

    async def mark_winner(self, contestant_id: int, won_at: datetime) -> None: ...


class SQLiteRosterProvider:
    """Roster provider backed by the ``contestants`` table."""

    async def get(self, contestant_id: int) -> Optional[Contestant]:
        return await ContestantRepository.get(contestant_id)

    async def list_entrants(self, event_id: int) -> List[Contestant]:
        """Every contestant that registered for the event, in registration order."""
        return await ContestantRepository.list_by_event(event_id)

    async def list_selected(self, event_id: int) -> List[Contestant]:
        return await ContestantRepository.list_by_event(event_id, [ContestantStatus.SELECTED.value])

    async def list_for_winner(self, event_id: int) -> List[Contestant]:
        """Contestants eligible for votes: the selected ones, or everyone if no raffle ran."""
        selected = await self.list_selected(event_id)
        if selected:
            return selected
        return await ContestantRepository.list_by_event(event_id)

    async def record_raffle_outcome(self, event_id: int, entries: Sequence[RaffleEntry]) -> None:
        rows = [
            (
                entry.entrant_id,
                ContestantStatus.SELECTED.value
                if entry.outcome == RaffleOutcome.SELECTED
                else ContestantStatus.WAITLISTED.value,
                entry.position,
                entry.random_value,
            )
            for entry in entries
        ]
        await ContestantRepository.record_outcomes(rows)
        logger.info(f"Recorded raffle outcome for {len(rows)} contestants of event {event_id}")

    async def prune_unselected(self, event_id: int) -> int:
        """Delete waitlisted entries; winners and selected contestants are kept."""
        removed = await ContestantRepository.delete_not_selected(event_id)
        if removed:
            logger.info(f"🧹 Removed {removed} non-selected contestants from event {event_id}")
        return removed

    async def mark_winner(self, contestant_id: int, won_at: datetime) -> None:
        await ContestantRepository.mark_winner(contestant_id, won_at)

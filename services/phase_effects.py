"""Side effects bound to entering a phase.

Every entry point (auto-advance, operator advance, jump, restart, per-slot
advance) reports the phases it entered and :func:`fire_phase_effects` runs
the matching handler from ``PHASE_EFFECTS`` once per entry. Writes outside
the timeline document wait until the timeline itself has been saved.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Awaitable, Callable, Dict, List, Optional, Sequence

from core import get_logger
from core.constants import PhaseName
from core.exceptions import NotFoundError
from database.models import Contestant, Event, Phase, WinnerAnnouncement
from database.repositories import EventRepository
from services.async_runner import fire_and_forget
from services.featuring import FeatureCollaborator
from services.notification_service import NotificationService
from services.roster import RosterProvider
from services.timeline import TimelineEngine

logger = get_logger(__name__)


Write = Callable[[], Awaitable[None]]


@dataclass(slots=True)
class EffectContext:
    """State shared by one timeline command.

    Handlers only change the in-memory timeline and read the roster. Writes
    outside the timeline document are queued with :meth:`defer` and run by
    :func:`run_deferred` once the versioned save has gone through.
    """

    engine: TimelineEngine
    event: Event
    roster: RosterProvider
    features: Optional[FeatureCollaborator] = None
    notifier: Optional[NotificationService] = None
    deferred: List[Write] = field(default_factory=list)

    def defer(self, write: Write) -> None:
        self.deferred.append(write)


def compute_winner(
    contestants: Sequence[Contestant],
    announced_at: datetime,
    prize: str = "",
) -> WinnerAnnouncement:
    """Decide the winner from vote counts.

    Contestants are ranked by votes descending, ties by id ascending. No
    contestants or zero total votes gives a no-winner announcement; a shared
    top count gives a tie announcement listing every tied contestant.
    """
    ranked = sorted(contestants, key=lambda c: (-(c.vote_count or 0), c.id))
    total = sum(c.vote_count or 0 for c in ranked)

    if not ranked:
        return WinnerAnnouncement(
            announced_at=announced_at,
            no_winner=True,
            reason="No contestants participated",
            prize_details=prize,
        )
    if total == 0:
        return WinnerAnnouncement(
            announced_at=announced_at,
            no_winner=True,
            reason="No votes were cast",
            prize_details=prize,
        )

    top = ranked[0].vote_count
    tied = [c for c in ranked if c.vote_count == top]
    if len(tied) > 1:
        return WinnerAnnouncement(
            announced_at=announced_at,
            total_votes=total,
            top_votes=top,
            is_tie=True,
            no_winner=True,
            reason=f"Tie between {len(tied)} contestants with {top} votes each",
            prize_details=prize,
            tied_entries=[
                {"contestantId": c.id, "displayName": c.display_name, "votes": c.vote_count}
                for c in tied
            ],
        )

    winner = ranked[0]
    return WinnerAnnouncement(
        announced_at=announced_at,
        winner_id=winner.id,
        total_votes=total,
        top_votes=top,
        reason=f"{winner.display_name} won with {top} of {total} votes",
        prize_details=prize,
    )


def _promote_winner(ctx: EffectContext, contestant: Contestant) -> None:
    now = ctx.engine.now()
    contestant.is_winner = True
    contestant.won_at = now

    async def write() -> None:
        try:
            await ctx.roster.mark_winner(contestant.id, now)
        except Exception as e:
            logger.error(f"Failed to mark contestant {contestant.id} as winner: {e}", exc_info=True)

        if ctx.features is not None:
            fire_and_forget(ctx.features.feature_winner(contestant), name=f"feature-winner-{contestant.id}")
        if ctx.notifier is not None:
            fire_and_forget(
                ctx.notifier.notify_winner(ctx.event, contestant, ctx.event.prize_description),
                name=f"notify-winner-{contestant.id}",
            )

    ctx.defer(write)


async def announce_winner(ctx: EffectContext) -> WinnerAnnouncement:
    """Compute and store the announcement, then promote a sole winner."""
    contestants = await ctx.roster.list_for_winner(ctx.event.id)
    announcement = compute_winner(contestants, ctx.engine.now(), ctx.event.prize_description)
    ctx.engine.state.winner_announcement = announcement
    logger.info(f"🏆 Event {ctx.event.id} winner announcement: {announcement.reason}")

    if announcement.winner_id is not None:
        winner = next(c for c in contestants if c.id == announcement.winner_id)
        _promote_winner(ctx, winner)
    return announcement


async def declare_winner(ctx: EffectContext, contestant_id: int) -> WinnerAnnouncement:
    """Record an operator-chosen winner (used when stopping an event early)."""
    contestant = await ctx.roster.get(contestant_id)
    if contestant is None or contestant.event_id != ctx.event.id:
        raise NotFoundError(f"Contestant {contestant_id} not found in event {ctx.event.id}")
    contestants = await ctx.roster.list_for_winner(ctx.event.id)
    announcement = WinnerAnnouncement(
        announced_at=ctx.engine.now(),
        winner_id=contestant.id,
        total_votes=sum(c.vote_count or 0 for c in contestants),
        top_votes=contestant.vote_count,
        reason="Declared by operator",
        prize_details=ctx.event.prize_description,
    )
    ctx.engine.state.winner_announcement = announcement
    _promote_winner(ctx, contestant)
    return announcement


async def _on_voting(ctx: EffectContext, phase: Phase) -> None:
    event_id, deadline = ctx.event.id, phase.end_time
    ctx.event.voting_open = True
    ctx.event.voting_deadline = deadline
    ctx.defer(lambda: EventRepository.set_voting_state(event_id, True, deadline))


async def _on_winner(ctx: EffectContext, phase: Phase) -> None:
    event_id = ctx.event.id
    ctx.event.voting_open = False
    ctx.defer(lambda: EventRepository.set_voting_state(event_id, False))
    if ctx.engine.state.winner_announcement is None:
        await announce_winner(ctx)


async def _on_performance(ctx: EffectContext, phase: Phase) -> None:
    slot = ctx.engine.ensure_first_slot_active()
    if slot is None and not ctx.engine.state.slots:
        logger.warning(f"Event {ctx.event.id} entered performance with no scheduled performances")


PHASE_EFFECTS: Dict[PhaseName, Callable[[EffectContext, Phase], Awaitable[None]]] = {
    PhaseName.VOTING: _on_voting,
    PhaseName.WINNER: _on_winner,
    PhaseName.PERFORMANCE: _on_performance,
}


async def fire_phase_effects(ctx: EffectContext, entered: Sequence[PhaseName]) -> None:
    """Run the handler for each entered phase, in entry order."""
    for name in entered:
        handler = PHASE_EFFECTS.get(name)
        phase = ctx.engine.state.phase(name)
        if handler is None or phase is None:
            continue
        await handler(ctx, phase)


async def run_deferred(ctx: EffectContext) -> None:
    """Apply the queued writes, in the order they were queued."""
    writes, ctx.deferred = ctx.deferred, []
    for write in writes:
        await write()

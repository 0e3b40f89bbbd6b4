"""Tests for winner computation and phase entry side effects."""

import pytest

from conftest import BASE_TIME, add_contestants, event_data, make_contestants
from core.constants import PhaseName
from core.exceptions import ConcurrencyConflictError, NotFoundError
from database.repositories import ContestantRepository, EventRepository, TimelineRepository
from services.async_runner import wait_background_tasks
from services.live_event import LiveEventService
from services.phase_effects import compute_winner
from services.roster import SQLiteRosterProvider


def test_single_top_vote_count_wins():
    announcement = compute_winner(make_contestants([60, 60, 60], votes=[7, 3, 1]), BASE_TIME, "Trophy")

    assert announcement.winner_id == 1
    assert announcement.total_votes == 11
    assert announcement.top_votes == 7
    assert announcement.is_tie is False
    assert announcement.no_winner is False
    assert announcement.prize_details == "Trophy"


def test_shared_top_count_is_a_tie():
    announcement = compute_winner(make_contestants([60, 60, 60], votes=[5, 5, 3]), BASE_TIME)

    assert announcement.is_tie is True
    assert announcement.no_winner is True
    assert announcement.winner_id is None
    assert [entry["contestantId"] for entry in announcement.tied_entries] == [1, 2]


def test_zero_votes_means_no_winner():
    announcement = compute_winner(make_contestants([60, 60, 60]), BASE_TIME)

    assert announcement.no_winner is True
    assert announcement.is_tie is False
    assert announcement.reason == "No votes were cast"


def test_no_contestants_means_no_winner():
    announcement = compute_winner([], BASE_TIME)
    assert announcement.no_winner is True
    assert announcement.total_votes == 0


async def _live_event(clock, features, notifier, votes):
    service = LiveEventService(SQLiteRosterProvider(), features=features, notifier=notifier, clock=clock)
    event, _ = await service.create_event(event_data())
    ids = await add_contestants(event.id, [60] * len(votes), votes=votes)
    await service.reschedule(event.id)
    await service.start(event.id)
    return service, event, ids


@pytest.mark.asyncio
async def test_entering_voting_opens_voting(db_pool, clock, features, notifier):
    service, event, _ = await _live_event(clock, features, notifier, [1, 2])

    await service.jump(event.id, "voting", actor="op")

    stored = await EventRepository.get(event.id)
    state = await TimelineRepository.load(event.id)
    assert stored.voting_open is True
    assert stored.voting_deadline == state.phase(PhaseName.VOTING).end_time


@pytest.mark.asyncio
async def test_entering_winner_promotes_sole_winner(db_pool, clock, features, notifier):
    service, event, ids = await _live_event(clock, features, notifier, [7, 3, 1])
    await service.jump(event.id, "voting")

    await service.advance(event.id, expected="voting")
    await wait_background_tasks()

    state = await TimelineRepository.load(event.id)
    assert state.winner_announcement.winner_id == ids[0]
    assert (await EventRepository.get(event.id)).voting_open is False
    assert (await ContestantRepository.get(ids[0])).is_winner is True
    assert features.featured == [ids[0]]
    assert notifier.winners == [ids[0]]


@pytest.mark.asyncio
async def test_tie_promotes_nobody(db_pool, clock, features, notifier):
    service, event, ids = await _live_event(clock, features, notifier, [5, 5, 3])

    await service.jump(event.id, "winner")
    await wait_background_tasks()

    state = await TimelineRepository.load(event.id)
    assert state.winner_announcement.is_tie is True
    assert features.featured == []
    assert notifier.winners == []
    assert all(not c.is_winner for c in await ContestantRepository.list_by_event(event.id))


@pytest.mark.asyncio
async def test_stop_can_declare_a_winner(db_pool, clock, features, notifier):
    service, event, ids = await _live_event(clock, features, notifier, [7, 3, 1])

    await service.stop(event.id, winner_id=ids[1])
    await wait_background_tasks()

    state = await TimelineRepository.load(event.id)
    assert state.winner_announcement.winner_id == ids[1]
    assert state.winner_announcement.reason == "Declared by operator"
    assert features.featured == [ids[1]]


@pytest.mark.asyncio
async def test_declaring_unknown_winner_changes_nothing(db_pool, clock, features, notifier):
    service, event, _ = await _live_event(clock, features, notifier, [1])
    before = await TimelineRepository.load(event.id)

    with pytest.raises(NotFoundError):
        await service.stop(event.id, winner_id=999)

    after = await TimelineRepository.load(event.id)
    assert after.version == before.version
    assert after.is_live is True


@pytest.mark.asyncio
async def test_winner_survives_pruning_without_raffle(db_pool, clock, features, notifier):
    service, event, ids = await _live_event(clock, features, notifier, [7, 3, 1])
    await service.jump(event.id, "winner")
    await wait_background_tasks()

    removed = await service.roster.prune_unselected(event.id)

    assert removed == 2
    winner = await ContestantRepository.get(ids[0])
    assert winner is not None
    assert winner.is_winner is True


@pytest.mark.asyncio
async def test_conflicting_save_skips_side_writes(db_pool, clock, features, notifier, monkeypatch):
    service, event, ids = await _live_event(clock, features, notifier, [7, 3, 1])
    load = service._load

    async def load_then_lose_race(event_id):
        loaded = await load(event_id)
        await TimelineRepository.save(await TimelineRepository.load(event_id))
        return loaded

    monkeypatch.setattr(service, "_load", load_then_lose_race)

    with pytest.raises(ConcurrencyConflictError):
        await service.jump(event.id, "voting")
    with pytest.raises(ConcurrencyConflictError):
        await service.jump(event.id, "winner")
    await wait_background_tasks()

    assert (await TimelineRepository.load(event.id)).active_phase().name == PhaseName.WELCOME
    assert (await EventRepository.get(event.id)).voting_open is False
    assert (await ContestantRepository.get(ids[0])).is_winner is False
    assert features.featured == []
    assert notifier.winners == []


class FailingFeatures:
    async def feature_winner(self, contestant):
        raise RuntimeError("featured slots unavailable")


@pytest.mark.asyncio
async def test_feature_failure_does_not_block_winner_phase(db_pool, clock, notifier):
    service, event, ids = await _live_event(clock, FailingFeatures(), notifier, [7, 3, 1])

    result = await service.jump(event.id, "winner")
    await wait_background_tasks()

    assert result["phase"] == "winner"
    state = await TimelineRepository.load(event.id)
    assert state.active_phase().name == PhaseName.WINNER
    assert state.winner_announcement.winner_id == ids[0]
    assert (await ContestantRepository.get(ids[0])).is_winner is True
    assert notifier.winners == [ids[0]]

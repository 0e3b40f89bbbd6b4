"""Tests for the live event service and the background scheduler."""

from datetime import timedelta

import pytest

from conftest import add_contestants, event_data
from core.constants import EventStatus, PhaseName
from core.exceptions import BoundsViolationError, ConcurrencyConflictError, InvalidStateError, NotFoundError
from database.repositories import EventRepository, TimelineRepository
from services.event_scheduler import EventScheduler
from services.live_event import LiveEventService
from services.lottery_service import RaffleManager
from services.roster import SQLiteRosterProvider
from services.viewer_presence import ViewerPresence


@pytest.fixture
def service(db_pool, clock):
    return LiveEventService(SQLiteRosterProvider(), viewers=ViewerPresence(), clock=clock)


async def _scheduled_event(service, durations=(120, 90), **overrides):
    event, _ = await service.create_event(event_data(**overrides))
    await add_contestants(event.id, list(durations))
    await service.reschedule(event.id)
    return event


@pytest.mark.asyncio
async def test_create_event_stores_timeline_at_version_one(service, clock):
    event, _ = await service.create_event(event_data(commercial_durations=[45, 45]))

    stored = await TimelineRepository.load(event.id)
    assert stored.version == 1
    assert stored.event_status == EventStatus.SCHEDULED
    assert stored.phases[0].start_time == clock.now
    assert stored.phase(PhaseName.COMMERCIAL).duration == 2


@pytest.mark.asyncio
async def test_reschedule_sizes_performance_phase(service):
    event = await _scheduled_event(service, durations=(120, 90, 60))

    stored = await EventRepository.get(event.id)
    state = await TimelineRepository.load(event.id)
    assert stored.performance_minutes == 5
    assert len(state.slots) == 3
    assert state.version == 2


@pytest.mark.asyncio
async def test_start_and_advance_update_event_status(service):
    event = await _scheduled_event(service)

    started = await service.start(event.id)
    assert started["phase"] == "welcome"
    assert (await EventRepository.get(event.id)).status == EventStatus.LIVE.value

    advanced = await service.advance(event.id, expected="welcome")
    assert advanced["phase"] == "performance"
    assert advanced["performance"]["order"] == 0

    stale = await service.advance(event.id, expected="welcome")
    assert stale["changed"] is False
    assert stale["phase"] == "performance"


@pytest.mark.asyncio
async def test_pause_then_resume_reports_pause_length(service, clock):
    event = await _scheduled_event(service)
    await service.start(event.id)

    paused = await service.pause(event.id, actor="op")
    clock.advance(minutes=3)
    resumed = await service.resume(event.id)

    assert paused["isPaused"] is True
    assert resumed["pausedSeconds"] == 180
    assert resumed["changed"] is True
    with_pause = await service.get_status(event.id)
    assert with_pause["isPaused"] is False


@pytest.mark.asyncio
async def test_commands_rejected_while_paused_leave_no_trace(service):
    event = await _scheduled_event(service)
    await service.start(event.id)
    await service.pause(event.id)
    before = await TimelineRepository.load(event.id)

    with pytest.raises(InvalidStateError):
        await service.jump(event.id, "voting")

    assert (await TimelineRepository.load(event.id)).version == before.version


@pytest.mark.asyncio
async def test_adjustment_bounds_and_history(service):
    event = await _scheduled_event(service)
    await service.start(event.id)

    with pytest.raises(BoundsViolationError) as exc_info:
        await service.adjust_time(event.id, -15, actor="op")
    assert exc_info.value.details["limit"] == 5

    result = await service.adjust_time(event.id, 2, actor="op")
    assert result["deltaMinutes"] == 2

    history = await service.time_adjustments(event.id)
    assert len(history["adjustments"]) == 1
    assert history["adjustments"][0]["actor"] == "op"


@pytest.mark.asyncio
async def test_get_status_reconciles_stale_timeline(service, clock):
    event = await _scheduled_event(service)
    await service.start(event.id)
    service.viewers.join(event.id, "viewer-a")
    clock.advance(minutes=5, seconds=1)

    snapshot = await service.get_status(event.id)

    assert snapshot["currentPhase"]["name"] == "performance"
    assert snapshot["currentPerformer"]["displayName"] == "Act 1"
    assert snapshot["viewers"]["count"] == 1
    state = await TimelineRepository.load(event.id)
    assert state.active_phase().name == PhaseName.PERFORMANCE


@pytest.mark.asyncio
async def test_get_status_serves_last_good_snapshot_on_failure(service, clock, monkeypatch):
    event = await _scheduled_event(service)
    await service.start(event.id)
    good = await service.get_status(event.id)

    async def broken(event_id):
        raise RuntimeError("roster unavailable")

    monkeypatch.setattr(service.roster, "list_selected", broken)
    snapshot = await service.get_status(event.id)

    assert snapshot["stale"] is True
    assert snapshot["currentPhase"] == good["currentPhase"]


@pytest.mark.asyncio
async def test_unknown_event_is_not_found(service):
    with pytest.raises(NotFoundError):
        await service.get_status(404)
    with pytest.raises(NotFoundError):
        await service.start(404)


@pytest.mark.asyncio
async def test_stale_version_is_a_conflict(service):
    event = await _scheduled_event(service)
    first = await TimelineRepository.load(event.id)
    second = await TimelineRepository.load(event.id)

    await TimelineRepository.save(first)
    with pytest.raises(ConcurrencyConflictError):
        await TimelineRepository.save(second)


@pytest.mark.asyncio
async def test_stop_then_restart(service, clock):
    event = await _scheduled_event(service)
    await service.start(event.id)
    await service.jump(event.id, "voting")

    stopped = await service.stop(event.id)
    assert stopped["terminal"] is True
    stored = await EventRepository.get(event.id)
    assert stored.status == EventStatus.COMPLETED.value
    assert stored.voting_open is False

    clock.advance(minutes=10)
    restarted = await service.restart(event.id)
    assert restarted["phase"] == "welcome"
    assert restarted["restartCount"] == 1
    assert (await EventRepository.get(event.id)).status == EventStatus.LIVE.value


# ----------------------------------------------------------------------
# EventScheduler
# ----------------------------------------------------------------------
@pytest.mark.asyncio
async def test_scheduler_tick_starts_events_and_runs_due_raffles(db_pool, clock):
    roster = SQLiteRosterProvider()
    live_events = LiveEventService(roster, clock=clock)
    raffles = RaffleManager(roster, live_events, clock=clock)
    scheduler = EventScheduler(live_events, raffles, clock=clock)

    event, _ = await live_events.create_event(
        event_data(
            event_date=clock.now - timedelta(minutes=10),
            raffle_scheduled_at=clock.now - timedelta(minutes=1),
            capacity=2,
        )
    )
    await add_contestants(event.id, [60, 60, 60, 60])

    summary = await scheduler.tick()
    assert summary["started"] == 1
    assert summary["raffles"] == 1

    state = await TimelineRepository.load(event.id)
    assert state.is_live is True
    assert len(state.slots) == 2

    again = await scheduler.tick()
    assert again["started"] == 0
    assert again["raffles"] == 0

    clock.advance(minutes=6)
    later = await scheduler.tick()
    assert later["reconciled"] == 1
    assert (await TimelineRepository.load(event.id)).active_phase().name == PhaseName.PERFORMANCE


@pytest.mark.asyncio
async def test_scheduler_ignores_future_events(db_pool, clock):
    roster = SQLiteRosterProvider()
    live_events = LiveEventService(roster, clock=clock)
    scheduler = EventScheduler(live_events, RaffleManager(roster, live_events, clock=clock), clock=clock)
    await live_events.create_event(event_data(event_date=clock.now + timedelta(hours=2)))

    summary = await scheduler.tick()

    assert summary == {"started": 0, "raffles": 0, "reconciled": 0}

"""Tests for read-time reconciliation and snapshot projection."""

from datetime import timedelta

from conftest import BASE_TIME, active_count, make_contestants, make_event
from core.constants import EventStatus, PhaseName, PhaseStatus
from services.performance_scheduler import schedule_performances
from services.reconciler import needs_reconcile, project_snapshot, reconcile
from services.timeline import TimelineEngine, generate_timeline


def _live_engine(clock, durations=(60, 60)):
    engine = TimelineEngine(generate_timeline(make_event(), BASE_TIME), clock=clock)
    schedule_performances(engine, make_contestants(list(durations)))
    engine.start()
    return engine


def test_fresh_live_timeline_needs_nothing(clock):
    engine = _live_engine(clock)
    assert needs_reconcile(engine.state, clock.now) is False
    assert reconcile(engine).changed is False


def test_expired_welcome_auto_advances_into_performance(clock):
    engine = _live_engine(clock)
    clock.advance(minutes=5, seconds=1)

    assert needs_reconcile(engine.state, clock.now) is True
    report = reconcile(engine)

    assert report.advanced == ["welcome"]
    assert engine.state.active_phase().name == PhaseName.PERFORMANCE
    assert engine.state.active_slot().contestant_id == 1


def test_performance_is_never_advanced_by_the_clock(clock):
    engine = _live_engine(clock)
    engine.advance_phase()
    clock.advance(hours=2)

    report = reconcile(engine)

    assert report.advanced == []
    assert engine.state.active_phase().name == PhaseName.PERFORMANCE


def test_empty_commercial_break_is_skipped(clock):
    engine = _live_engine(clock)
    engine.advance_phase()
    engine.advance_phase()
    assert engine.state.active_phase().name == PhaseName.COMMERCIAL
    clock.advance(seconds=1)

    report = reconcile(engine)

    assert report.advanced == ["commercial"]
    assert engine.state.active_phase().name == PhaseName.VOTING


def test_sweep_runs_through_to_the_end(clock):
    engine = _live_engine(clock)
    engine.jump_to_phase(PhaseName.VOTING)
    engine.release_override()
    clock.advance(days=1)

    report = reconcile(engine)

    assert report.advanced == ["voting", "winner", "thankyou", "countdown"]
    assert engine.state.event_status == EventStatus.COMPLETED
    assert engine.state.current_phase_name == "ended"


def test_paused_or_overridden_timelines_are_not_swept(clock):
    engine = _live_engine(clock)
    engine.pause("op")
    clock.advance(minutes=30)
    assert needs_reconcile(engine.state, clock.now) is False
    assert reconcile(engine).advanced == []

    engine.resume()
    engine.jump_to_phase(PhaseName.VOTING, actor="op")
    clock.advance(minutes=30)
    assert reconcile(engine).advanced == []
    assert engine.state.active_phase().name == PhaseName.VOTING


def test_phase_never_moves_backwards_across_reads(clock):
    engine = _live_engine(clock)
    engine.jump_to_phase(PhaseName.VOTING)
    engine.release_override()
    seen = []
    for _ in range(12):
        clock.advance(seconds=50)
        reconcile(engine)
        seen.append(engine.state.active_index())

    progress = [index if index >= 0 else len(engine.state.phases) for index in seen]
    assert progress == sorted(progress)


def test_duplicate_active_phases_are_collapsed(clock):
    engine = _live_engine(clock)
    clock.advance(minutes=1)
    engine.state.phases[3].status = PhaseStatus.ACTIVE
    engine.state.phases[3].start_time = clock.now
    assert needs_reconcile(engine.state, clock.now) is True

    report = reconcile(engine)

    assert report.normalized is True
    assert active_count(engine.state) == 1
    assert engine.state.active_phase().name == PhaseName.VOTING
    assert engine.state.phases[0].status == PhaseStatus.COMPLETED


def test_live_timeline_without_active_phase_is_recovered(clock):
    engine = _live_engine(clock)
    engine.state.phases[0].status = PhaseStatus.COMPLETED

    report = reconcile(engine)

    assert report.recovered is True
    assert engine.state.active_phase().name == PhaseName.PERFORMANCE


def test_missing_selected_contestants_are_topped_up(clock):
    engine = _live_engine(clock)
    selected = make_contestants([60, 60, 90])

    assert needs_reconcile(engine.state, clock.now, [c.id for c in selected]) is True
    report = reconcile(engine, selected)

    assert report.topped_up == [3]
    assert len(engine.state.slots) == 3


def test_snapshot_freezes_remaining_time_while_paused(clock):
    engine = _live_engine(clock)
    event = make_event()
    clock.advance(minutes=2)
    engine.pause("op")
    clock.advance(minutes=10)

    snapshot = project_snapshot(engine.state, event, clock.now, {}, viewer_count=4, viewer_peak=9)

    assert snapshot["isPaused"] is True
    assert snapshot["currentPhase"]["name"] == "welcome"
    assert snapshot["currentPhase"]["timeRemaining"] == 180
    assert snapshot["viewers"] == {"count": 4, "peak": 9}


def test_snapshot_reports_current_performer(clock):
    engine = _live_engine(clock, durations=(90, 60))
    engine.advance_phase()
    clock.advance(seconds=30)
    contestants = {c.id: c for c in make_contestants([90, 60])}

    snapshot = project_snapshot(engine.state, make_event(), clock.now, contestants)

    performer = snapshot["currentPerformer"]
    assert performer["contestantId"] == 1
    assert performer["displayName"] == "Act 1"
    assert performer["timeRemaining"] == 60
    assert performer["totalPerformances"] == 2
    assert snapshot["serverTime"] == (BASE_TIME + timedelta(seconds=30)).isoformat()

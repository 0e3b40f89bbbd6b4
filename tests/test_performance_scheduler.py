"""Tests for slot scheduling and duration rules."""

from datetime import timedelta

from conftest import BASE_TIME, make_contestants, make_event
from core.constants import PhaseName, PhaseStatus
from database.models import Contestant
from services.durations import (
    average_duration,
    measure_commercial_seconds,
    performance_minutes_for,
    resolve_duration,
)
from services.performance_scheduler import (
    build_slots,
    fallback_slot_seconds,
    rank_contestants,
    schedule_performances,
    top_up,
)
from services.timeline import TimelineEngine, generate_timeline


def test_resolve_duration_skips_unusable_values():
    assert resolve_duration(None, 0, -5, float("nan"), 42) == 42.0
    assert resolve_duration(None, default=300) == 300.0
    assert resolve_duration(True, 12) == 12.0


def test_average_duration_ignores_missing():
    assert average_duration([None, 60, 120]) == 90
    assert average_duration([None, 0]) is None


def test_performance_minutes_round_up_with_floor():
    assert performance_minutes_for(270) == 5
    assert performance_minutes_for(57) == 1
    assert performance_minutes_for(58) == 2


def test_commercial_measurement_uses_fallback_and_cap():
    # 2s is unmeasured and counts as the 30s fallback, missing clips too
    assert measure_commercial_seconds([2, 40, None]) == 100
    assert measure_commercial_seconds([900, 900, 900], max_seconds=1800) == 1800


def test_rank_by_raffle_position_then_votes_then_id():
    contestants = [
        Contestant(id=1, event_id=1, display_name="a", raffle_position=None, vote_count=9),
        Contestant(id=2, event_id=1, display_name="b", raffle_position=2),
        Contestant(id=3, event_id=1, display_name="c", raffle_position=1),
        Contestant(id=4, event_id=1, display_name="d", raffle_position=None, vote_count=9),
        Contestant(id=5, event_id=1, display_name="e", raffle_position=None, vote_count=20),
    ]
    assert [c.id for c in rank_contestants(contestants)] == [3, 2, 5, 1, 4]


def test_fallback_precedence():
    known = make_contestants([60, None, 120])
    assert fallback_slot_seconds(2, known) == 120
    assert fallback_slot_seconds(None, known) == 90
    assert fallback_slot_seconds(None, make_contestants([None, None])) == 300


def test_contestants_without_duration_get_fallback():
    slots = build_slots(make_contestants([60, None]), [], fallback_seconds=45)
    assert [slot.video_duration for slot in slots] == [60, 45]


def test_rebuild_prefers_existing_slot_duration():
    existing = build_slots(make_contestants([120, 90]), [], fallback_seconds=300)

    rebuilt = build_slots(make_contestants([None, 45]), existing, fallback_seconds=300)

    assert [slot.video_duration for slot in rebuilt] == [120, 90]


def test_rebuild_falls_back_when_slot_duration_unusable():
    existing = build_slots(make_contestants([60]), [], fallback_seconds=300)
    existing[0].video_duration = 0

    assert build_slots(make_contestants([75]), existing, 300)[0].video_duration == 75
    assert build_slots(make_contestants([None]), existing, 300)[0].video_duration == 300


def test_rebuild_keeps_progress_only_for_unchanged_ordinals():
    contestants = make_contestants([60, 60, 60])
    slots = build_slots(contestants, [], 60)
    slots[0].status = PhaseStatus.COMPLETED
    slots[1].status = PhaseStatus.ACTIVE

    # Contestant 2 withdraws, so contestant 3 moves into ordinal 1
    rebuilt = build_slots([contestants[0], contestants[2]], slots, 60)

    assert [slot.contestant_id for slot in rebuilt] == [1, 3]
    assert rebuilt[0].status == PhaseStatus.COMPLETED
    assert rebuilt[1].status == PhaseStatus.PENDING


def test_schedule_during_live_performance_recomputes_later_phases(clock):
    engine = TimelineEngine(generate_timeline(make_event(), BASE_TIME), clock=clock)
    contestants = make_contestants([60, 60])
    schedule_performances(engine, contestants)
    engine.start()
    engine.advance_phase()
    perf = engine.state.phase(PhaseName.PERFORMANCE)
    assert perf.duration == 3

    contestants.append(Contestant(id=3, event_id=1, display_name="late", video_duration=240))
    schedule_performances(engine, contestants)

    perf = engine.state.phase(PhaseName.PERFORMANCE)
    assert perf.duration == 7
    assert perf.end_time == perf.start_time + timedelta(minutes=7)
    assert engine.state.phase(PhaseName.COMMERCIAL).start_time == perf.end_time
    assert engine.state.slots[0].status == PhaseStatus.ACTIVE
    assert engine.state.slots[2].start_time == engine.state.slots[1].end_time


def test_reschedule_keeps_pause_shift_of_running_performance(clock):
    engine = TimelineEngine(generate_timeline(make_event(), BASE_TIME), clock=clock)
    contestants = make_contestants([60, 60])
    schedule_performances(engine, contestants)
    engine.start()
    engine.advance_phase()
    engine.pause("op")
    clock.advance(minutes=2)
    engine.resume()
    perf = engine.state.phase(PhaseName.PERFORMANCE)
    shifted_end = perf.end_time
    assert shifted_end == perf.start_time + timedelta(minutes=5)

    schedule_performances(engine, contestants)

    assert perf.end_time == shifted_end
    assert engine.state.phase(PhaseName.COMMERCIAL).start_time == shifted_end


def test_top_up_appends_missing_contestants(clock):
    engine = TimelineEngine(generate_timeline(make_event(), BASE_TIME), clock=clock)
    selected = make_contestants([60, 60, 60])
    schedule_performances(engine, selected[:2])

    added = top_up(engine, selected)

    assert added == [3]
    assert [slot.order for slot in engine.state.slots] == [0, 1, 2]
    assert top_up(engine, selected) == []

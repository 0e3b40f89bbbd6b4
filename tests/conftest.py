"""Pytest configuration and fixtures."""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import pytest

from config import Config
from database import close_db_pool, init_db_pool, run_migrations
from database.models import Contestant, Event
from database.repositories import ContestantRepository

BASE_TIME = datetime(2025, 6, 1, 18, 0, tzinfo=timezone.utc)


class FixedClock:
    """Manually driven clock passed wherever services accept ``clock``."""

    def __init__(self, now: datetime = BASE_TIME) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta: float) -> datetime:
        self.now += timedelta(**delta)
        return self.now


class RecordingFeatures:
    """Feature collaborator that remembers who it featured."""

    def __init__(self) -> None:
        self.featured: List[int] = []

    async def feature_winner(self, contestant: Contestant) -> None:
        self.featured.append(contestant.id)


class RecordingNotifier:
    """Stands in for NotificationService without a Telegram bot."""

    def __init__(self) -> None:
        self.selected: List[int] = []
        self.winners: List[int] = []

    async def notify_raffle_selected(self, event, contestants) -> int:
        self.selected.extend(c.id for c in contestants)
        return len(self.selected)

    async def notify_winner(self, event, contestant, prize: Optional[str] = None) -> bool:
        self.winners.append(contestant.id)
        return True


def make_event(**overrides: Any) -> Event:
    """In-memory event with the default phase minutes."""
    values: Dict[str, Any] = {"id": 1, "title": "Summer Showcase", "event_date": BASE_TIME, "capacity": 3}
    values.update(overrides)
    return Event(**values)


def make_contestants(durations, event_id: int = 1, votes=None) -> List[Contestant]:
    votes = votes or [0] * len(durations)
    return [
        Contestant(id=idx + 1, event_id=event_id, display_name=f"Act {idx + 1}",
                   video_duration=duration, vote_count=votes[idx])
        for idx, duration in enumerate(durations)
    ]


def event_data(**overrides: Any) -> Dict[str, Any]:
    """Row values accepted by EventRepository.create / LiveEventService.create_event."""
    data: Dict[str, Any] = {
        "title": "Summer Showcase",
        "event_date": BASE_TIME,
        "capacity": 3,
        "welcome_minutes": 5,
        "performance_slot_minutes": 0,
        "voting_minutes": 3,
        "winner_minutes": 3,
        "thankyou_minutes": 2,
        "countdown_minutes": 1,
        "prize_description": "Studio session",
    }
    data.update(overrides)
    return data


async def add_contestants(event_id: int, durations, votes=None) -> List[int]:
    votes = votes or [0] * len(durations)
    return [
        await ContestantRepository.create(event_id, f"Act {idx + 1}", video_duration=duration, vote_count=votes[idx])
        for idx, duration in enumerate(durations)
    ]


def phase_names(state) -> List[str]:
    return [phase.name.value for phase in state.phases]


def active_count(state) -> int:
    return sum(1 for phase in state.phases if phase.status.value == "active")


def make_config(tmp_path, **overrides: Any) -> Config:
    config = Config(
        environment="testing",
        debug=False,
        log_level="DEBUG",
        log_folder=str(tmp_path / "logs"),
        web_host="127.0.0.1",
        web_port=5000,
        secret_key="test-secret",
        operator_username="operator",
        operator_password="s3cret",
        database_path=str(tmp_path / "showcase.sqlite"),
        db_pool_size=2,
        db_busy_timeout=1000,
        bot_token="",
        enable_notifications=False,
        scheduler_enabled=False,
        scheduler_interval_seconds=5,
        welcome_minutes=5,
        performance_slot_minutes=0,
        voting_minutes=3,
        winner_minutes=3,
        thankyou_minutes=2,
        countdown_minutes=1,
        commercial_max_seconds=1800,
        viewer_session_ttl=60,
        viewer_count_base=0,
        prune_unselected_after_raffle=True,
        feature_days=30,
        public_cache_seconds=30,
    )
    return replace(config, **overrides)


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
async def db_pool(tmp_path):
    """Fresh SQLite database per test."""
    pool = await init_db_pool(str(tmp_path / "test.sqlite"), pool_size=2, busy_timeout_ms=1000)
    await run_migrations(pool)
    yield pool
    await close_db_pool()


@pytest.fixture
def features():
    return RecordingFeatures()


@pytest.fixture
def notifier():
    return RecordingNotifier()

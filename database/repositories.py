"""Database access layer helpers."""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

import aiosqlite

from core.constants import ContestantStatus, EventStatus
from core.exceptions import ConcurrencyConflictError, NotFoundError
from database.base_repository import BaseRepository
from database.models import Contestant, Event, FeaturedPlacement, TimelineState
from utils.timeutils import parse_datetime, to_iso, utcnow

EVENT_COLUMNS = (
    "id, title, event_date, capacity, registration_start, registration_end, "
    "raffle_scheduled_at, raffle_seed, raffle_executed_at, welcome_minutes, "
    "performance_minutes, performance_slot_minutes, voting_minutes, winner_minutes, "
    "thankyou_minutes, countdown_minutes, commercial_durations, prize_description, "
    "status, voting_open, voting_deadline"
)

CONTESTANT_COLUMNS = (
    "id, event_id, display_name, status, video_duration, vote_count, raffle_position, "
    "raffle_value, is_winner, won_at, telegram_id, created_at"
)


def _row_to_event(row: aiosqlite.Row) -> Event:
    return Event(
        id=row["id"],
        title=row["title"],
        event_date=parse_datetime(row["event_date"]),
        capacity=row["capacity"],
        registration_start=parse_datetime(row["registration_start"]),
        registration_end=parse_datetime(row["registration_end"]),
        raffle_scheduled_at=parse_datetime(row["raffle_scheduled_at"]),
        raffle_seed=row["raffle_seed"],
        raffle_executed_at=parse_datetime(row["raffle_executed_at"]),
        welcome_minutes=row["welcome_minutes"],
        performance_minutes=row["performance_minutes"],
        performance_slot_minutes=row["performance_slot_minutes"],
        voting_minutes=row["voting_minutes"],
        winner_minutes=row["winner_minutes"],
        thankyou_minutes=row["thankyou_minutes"],
        countdown_minutes=row["countdown_minutes"],
        commercial_durations=json.loads(row["commercial_durations"] or "[]"),
        prize_description=row["prize_description"] or "",
        status=row["status"],
        voting_open=bool(row["voting_open"]),
        voting_deadline=parse_datetime(row["voting_deadline"]),
    )


def _row_to_contestant(row: aiosqlite.Row) -> Contestant:
    raffle_value = row["raffle_value"]
    return Contestant(
        id=row["id"],
        event_id=row["event_id"],
        display_name=row["display_name"],
        status=row["status"],
        video_duration=row["video_duration"],
        vote_count=row["vote_count"] or 0,
        raffle_position=row["raffle_position"],
        raffle_value=int(raffle_value) if raffle_value is not None else None,
        is_winner=bool(row["is_winner"]),
        won_at=parse_datetime(row["won_at"]),
        telegram_id=row["telegram_id"],
        created_at=parse_datetime(row["created_at"]),
    )


class EventRepository(BaseRepository):
    """Repository for event configuration rows."""

    @staticmethod
    async def create(data: Dict[str, Any]) -> Event:
        """Insert an event and return it.

        Args:
            data: Column values keyed by column name. ``title``, ``event_date``,
                ``capacity`` and the fixed phase minutes are required.
        """
        event_id = await BaseRepository.insert(
            """
            INSERT INTO events (
                title, event_date, capacity, registration_start, registration_end,
                raffle_scheduled_at, welcome_minutes, performance_minutes,
                performance_slot_minutes, voting_minutes, winner_minutes,
                thankyou_minutes, countdown_minutes, commercial_durations,
                prize_description, status
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                data["title"],
                to_iso(data["event_date"]),
                data["capacity"],
                to_iso(data.get("registration_start")),
                to_iso(data.get("registration_end")),
                to_iso(data.get("raffle_scheduled_at")),
                data["welcome_minutes"],
                data.get("performance_minutes", 0),
                data.get("performance_slot_minutes", 0),
                data["voting_minutes"],
                data["winner_minutes"],
                data["thankyou_minutes"],
                data["countdown_minutes"],
                json.dumps(list(data.get("commercial_durations") or [])),
                data.get("prize_description", ""),
                data.get("status", "published"),
            ),
        )
        event = await EventRepository.get(event_id)
        assert event is not None
        return event

    @staticmethod
    async def get(event_id: int) -> Optional[Event]:
        row = await BaseRepository.fetch_one(
            f"SELECT {EVENT_COLUMNS} FROM events WHERE id=?", (event_id,)
        )
        return _row_to_event(row) if row else None

    @staticmethod
    async def require(event_id: int) -> Event:
        """Get an event or raise NotFoundError."""
        event = await EventRepository.get(event_id)
        if event is None:
            raise NotFoundError(f"Event {event_id} not found", event_id=event_id)
        return event

    @staticmethod
    async def list_starting_between(start: datetime, end: datetime) -> List[Event]:
        """Events whose scheduled date falls inside ``[start, end]``."""
        rows = await BaseRepository.fetch_all(
            f"SELECT {EVENT_COLUMNS} FROM events "
            "WHERE event_date >= ? AND event_date <= ? AND status != 'cancelled' "
            "ORDER BY event_date",
            (to_iso(start), to_iso(end)),
        )
        return [_row_to_event(row) for row in rows]

    @staticmethod
    async def list_raffle_due(now: datetime, window_start: datetime) -> List[Event]:
        """Unraffled events whose raffle time passed inside the execution window."""
        rows = await BaseRepository.fetch_all(
            f"SELECT {EVENT_COLUMNS} FROM events "
            "WHERE raffle_executed_at IS NULL AND raffle_scheduled_at IS NOT NULL "
            "AND raffle_scheduled_at <= ? AND raffle_scheduled_at >= ? "
            "AND status != 'cancelled'",
            (to_iso(now), to_iso(window_start)),
        )
        return [_row_to_event(row) for row in rows]

    @staticmethod
    async def set_voting_state(
        event_id: int, voting_open: bool, deadline: Optional[datetime] = None
    ) -> None:
        await BaseRepository.execute(
            "UPDATE events SET voting_open=?, voting_deadline=COALESCE(?, voting_deadline) WHERE id=?",
            (1 if voting_open else 0, to_iso(deadline), event_id),
        )

    @staticmethod
    async def update_performance_minutes(event_id: int, minutes: float) -> None:
        await BaseRepository.execute(
            "UPDATE events SET performance_minutes=? WHERE id=?", (minutes, event_id)
        )

    @staticmethod
    async def set_status(event_id: int, status: str) -> None:
        await BaseRepository.execute(
            "UPDATE events SET status=? WHERE id=?", (status, event_id)
        )


class TimelineRepository(BaseRepository):
    """Repository for the per-event timeline document."""

    @staticmethod
    async def load(event_id: int) -> Optional[TimelineState]:
        row = await BaseRepository.fetch_one(
            "SELECT document, version FROM event_timelines WHERE event_id=?", (event_id,)
        )
        if row is None:
            return None
        return TimelineState.from_dict(json.loads(row["document"]), version=row["version"])

    @staticmethod
    async def create(state: TimelineState) -> TimelineState:
        """Insert a fresh timeline document at version 1."""
        await BaseRepository.execute(
            "INSERT INTO event_timelines (event_id, document, version, updated_at) VALUES (?, ?, 1, ?)",
            (state.event_id, json.dumps(state.to_dict()), to_iso(utcnow())),
        )
        state.version = 1
        return state

    @staticmethod
    async def save(state: TimelineState) -> TimelineState:
        """Persist the document if nobody else wrote since it was loaded.

        Raises:
            ConcurrencyConflictError: If the stored version moved on.
        """
        updated = await BaseRepository.execute(
            "UPDATE event_timelines SET document=?, version=version+1, updated_at=? "
            "WHERE event_id=? AND version=?",
            (json.dumps(state.to_dict()), to_iso(utcnow()), state.event_id, state.version),
        )
        if updated == 0:
            raise ConcurrencyConflictError(
                f"Timeline for event {state.event_id} changed concurrently",
                event_id=state.event_id,
                version=state.version,
            )
        state.version += 1
        return state

    @staticmethod
    async def list_live_event_ids() -> List[int]:
        return await BaseRepository.fetch_column(
            "SELECT event_id FROM event_timelines "
            "WHERE json_extract(document, '$.eventStatus') = ?",
            (EventStatus.LIVE.value,),
        )


class ContestantRepository(BaseRepository):
    """Repository for contestant roster rows."""

    @staticmethod
    async def create(
        event_id: int,
        display_name: str,
        video_duration: Optional[float] = None,
        telegram_id: Optional[int] = None,
        status: str = ContestantStatus.SUBMITTED.value,
        vote_count: int = 0,
    ) -> int:
        return await BaseRepository.insert(
            "INSERT INTO contestants (event_id, display_name, video_duration, telegram_id, status, vote_count) "
            "VALUES (?, ?, ?, ?, ?, ?)",
            (event_id, display_name, video_duration, telegram_id, status, vote_count),
        )

    @staticmethod
    async def get(contestant_id: int) -> Optional[Contestant]:
        row = await BaseRepository.fetch_one(
            f"SELECT {CONTESTANT_COLUMNS} FROM contestants WHERE id=?", (contestant_id,)
        )
        return _row_to_contestant(row) if row else None

    @staticmethod
    async def list_by_event(event_id: int, statuses: Optional[Sequence[str]] = None) -> List[Contestant]:
        query = f"SELECT {CONTESTANT_COLUMNS} FROM contestants WHERE event_id=?"
        params: List[Any] = [event_id]
        if statuses:
            query += f" AND status IN ({', '.join('?' * len(statuses))})"
            params.extend(statuses)
        query += " ORDER BY id"
        rows = await BaseRepository.fetch_all(query, params)
        return [_row_to_contestant(row) for row in rows]

    @staticmethod
    async def record_outcomes(rows: Sequence[tuple[int, str, int, int]]) -> None:
        """Write raffle outcomes as ``(contestant_id, status, position, value)``."""
        await BaseRepository.transaction(
            [
                (
                    "UPDATE contestants SET status=?, raffle_position=?, raffle_value=? WHERE id=?",
                    (status, position, str(value), contestant_id),
                )
                for contestant_id, status, position, value in rows
            ]
        )

    @staticmethod
    async def delete_not_selected(event_id: int) -> int:
        return await BaseRepository.execute(
            "DELETE FROM contestants WHERE event_id=? AND status != ? AND is_winner = 0",
            (event_id, ContestantStatus.SELECTED.value),
        )

    @staticmethod
    async def mark_winner(contestant_id: int, won_at: datetime) -> None:
        await BaseRepository.execute(
            "UPDATE contestants SET is_winner=1, won_at=? WHERE id=?",
            (to_iso(won_at), contestant_id),
        )

    @staticmethod
    async def set_votes(contestant_id: int, vote_count: int) -> None:
        await BaseRepository.execute(
            "UPDATE contestants SET vote_count=? WHERE id=?", (vote_count, contestant_id)
        )


class FeaturedRepository(BaseRepository):
    """Repository for winner promotional placements."""

    @staticmethod
    async def upsert(contestant_id: int, event_id: int, starts_at: datetime, expires_at: datetime) -> None:
        await BaseRepository.execute(
            """
            INSERT INTO featured_placements (contestant_id, event_id, starts_at, expires_at)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(contestant_id, event_id) DO UPDATE SET
                starts_at=excluded.starts_at,
                expires_at=excluded.expires_at
            """,
            (contestant_id, event_id, to_iso(starts_at), to_iso(expires_at)),
        )

    @staticmethod
    async def list_active(now: datetime) -> List[FeaturedPlacement]:
        rows = await BaseRepository.fetch_all(
            "SELECT id, contestant_id, event_id, starts_at, expires_at FROM featured_placements "
            "WHERE starts_at <= ? AND expires_at > ? ORDER BY starts_at DESC",
            (to_iso(now), to_iso(now)),
        )
        return [
            FeaturedPlacement(
                id=row["id"],
                contestant_id=row["contestant_id"],
                event_id=row["event_id"],
                starts_at=parse_datetime(row["starts_at"]),
                expires_at=parse_datetime(row["expires_at"]),
            )
            for row in rows
        ]

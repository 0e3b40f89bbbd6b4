"""Raffle ledger persistence helpers."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional, Tuple

from core.constants import RaffleOutcome
from core.exceptions import RaffleAlreadyExecutedError
from database.connection import get_db_pool
from database.models import RaffleEntry, RaffleRun
from services.lottery import RaffleResult
from utils.timeutils import parse_datetime, to_iso


async def save_raffle_run(
    event_id: int,
    result: RaffleResult,
    executed_at: datetime,
    executed_by: Optional[str] = None,
) -> int:
    """Store the seed on the event and append the ledger in one transaction.

    Raises:
        RaffleAlreadyExecutedError: If the event already has a raffle result
    """
    pool = get_db_pool()
    async with pool.connection() as conn:
        await conn.execute("BEGIN IMMEDIATE")
        try:
            cursor = await conn.execute(
                "UPDATE events SET raffle_seed=?, raffle_executed_at=? "
                "WHERE id=? AND raffle_executed_at IS NULL",
                (result.seed, to_iso(executed_at), event_id),
            )
            if cursor.rowcount == 0:
                raise RaffleAlreadyExecutedError(
                    f"Raffle for event {event_id} was already executed", event_id=event_id
                )
            cursor = await conn.execute(
                """
                INSERT INTO raffle_runs (event_id, seed, capacity, entrant_count, selected_count, executed_at, executed_by)
                VALUES (?, ?, ?, ?, ?, ?, ?) RETURNING id
                """,
                (
                    event_id,
                    result.seed,
                    result.capacity,
                    len(result.entries),
                    len(result.selected),
                    to_iso(executed_at),
                    executed_by,
                ),
            )
            rows = await cursor.fetchall()
            run_id = rows[0][0]
            await conn.executemany(
                """
                INSERT INTO raffle_entries (run_id, event_id, entrant_id, entrant_index, position, random_value, outcome)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                [
                    (
                        run_id,
                        event_id,
                        entry.entrant_id,
                        entry.entrant_index,
                        entry.position,
                        str(entry.random_value),
                        entry.outcome.value,
                    )
                    for entry in result.entries
                ],
            )
        except Exception:
            await conn.rollback()
            raise
        else:
            await conn.commit()
            return run_id


async def load_raffle_run(event_id: int) -> Optional[Tuple[RaffleRun, List[RaffleEntry]]]:
    """Load the run and its ledger ranked by position, or None if no raffle ran."""
    pool = get_db_pool()
    async with pool.connection() as conn:
        cursor = await conn.execute(
            "SELECT id, event_id, seed, capacity, entrant_count, selected_count, executed_at, executed_by "
            "FROM raffle_runs WHERE event_id=?",
            (event_id,),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        run = RaffleRun(
            id=row["id"],
            event_id=row["event_id"],
            seed=row["seed"],
            capacity=row["capacity"],
            entrant_count=row["entrant_count"],
            selected_count=row["selected_count"],
            executed_at=parse_datetime(row["executed_at"]),
            executed_by=row["executed_by"],
        )
        cursor = await conn.execute(
            "SELECT entrant_id, entrant_index, position, random_value, outcome "
            "FROM raffle_entries WHERE run_id=? ORDER BY position",
            (run.id,),
        )
        entries = [
            RaffleEntry(
                entrant_id=entry["entrant_id"],
                entrant_index=entry["entrant_index"],
                position=entry["position"],
                random_value=int(entry["random_value"]),
                outcome=RaffleOutcome(entry["outcome"]),
            )
            async for entry in cursor
        ]
    return run, entries

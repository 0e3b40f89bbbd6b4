"""Database schema migrations."""

from __future__ import annotations

from .connection import OptimizedSQLitePool
from core.logger import get_logger

logger = get_logger(__name__)


SCHEMA_SQL: tuple[str, ...] = (
    """
    CREATE TABLE IF NOT EXISTS events (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        title TEXT NOT NULL,
        event_date TEXT NOT NULL,
        capacity INTEGER NOT NULL,
        registration_start TEXT,
        registration_end TEXT,
        raffle_scheduled_at TEXT,
        raffle_seed TEXT,
        raffle_executed_at TEXT,
        welcome_minutes REAL NOT NULL,
        performance_minutes REAL NOT NULL DEFAULT 0,
        performance_slot_minutes REAL NOT NULL DEFAULT 0,
        voting_minutes REAL NOT NULL,
        winner_minutes REAL NOT NULL,
        thankyou_minutes REAL NOT NULL,
        countdown_minutes REAL NOT NULL,
        commercial_durations TEXT NOT NULL DEFAULT '[]',
        prize_description TEXT NOT NULL DEFAULT '',
        status TEXT NOT NULL DEFAULT 'draft',
        voting_open INTEGER NOT NULL DEFAULT 0,
        voting_deadline TEXT,
        created_at TEXT DEFAULT CURRENT_TIMESTAMP
    );
    """,
    "CREATE INDEX IF NOT EXISTS idx_events_date ON events(event_date);",
    "CREATE INDEX IF NOT EXISTS idx_events_raffle ON events(raffle_scheduled_at, raffle_executed_at);",
    """
    CREATE TABLE IF NOT EXISTS event_timelines (
        event_id INTEGER PRIMARY KEY,
        document TEXT NOT NULL,
        version INTEGER NOT NULL DEFAULT 1,
        updated_at TEXT,
        FOREIGN KEY(event_id) REFERENCES events(id)
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS contestants (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        event_id INTEGER NOT NULL,
        display_name TEXT NOT NULL,
        status TEXT NOT NULL DEFAULT 'submitted',
        video_duration REAL,
        vote_count INTEGER NOT NULL DEFAULT 0,
        raffle_position INTEGER,
        raffle_value TEXT,
        is_winner INTEGER NOT NULL DEFAULT 0,
        won_at TEXT,
        telegram_id BIGINT,
        created_at TEXT DEFAULT CURRENT_TIMESTAMP,
        FOREIGN KEY(event_id) REFERENCES events(id)
    );
    """,
    "CREATE INDEX IF NOT EXISTS idx_contestants_event ON contestants(event_id, status);",
    """
    CREATE TABLE IF NOT EXISTS raffle_runs (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        event_id INTEGER NOT NULL UNIQUE,
        seed TEXT NOT NULL,
        capacity INTEGER NOT NULL,
        entrant_count INTEGER NOT NULL,
        selected_count INTEGER NOT NULL,
        executed_at TEXT NOT NULL,
        executed_by TEXT,
        FOREIGN KEY(event_id) REFERENCES events(id)
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS raffle_entries (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        run_id INTEGER NOT NULL,
        event_id INTEGER NOT NULL,
        entrant_id INTEGER NOT NULL,
        entrant_index INTEGER NOT NULL,
        position INTEGER NOT NULL,
        random_value TEXT NOT NULL,
        outcome TEXT NOT NULL,
        FOREIGN KEY(run_id) REFERENCES raffle_runs(id)
    );
    """,
    "CREATE INDEX IF NOT EXISTS idx_raffle_entries_event ON raffle_entries(event_id, position);",
    # Ledger rows are never rewritten
    """
    CREATE TRIGGER IF NOT EXISTS raffle_entries_immutable
    BEFORE UPDATE ON raffle_entries
    BEGIN
        SELECT RAISE(ABORT, 'raffle ledger is append-only');
    END;
    """,
    """
    CREATE TRIGGER IF NOT EXISTS raffle_entries_undeletable
    BEFORE DELETE ON raffle_entries
    BEGIN
        SELECT RAISE(ABORT, 'raffle ledger is append-only');
    END;
    """,
    """
    CREATE TABLE IF NOT EXISTS featured_placements (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        contestant_id INTEGER NOT NULL,
        event_id INTEGER NOT NULL,
        starts_at TEXT NOT NULL,
        expires_at TEXT NOT NULL,
        UNIQUE(contestant_id, event_id)
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS audit_log (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        event_id INTEGER,
        action TEXT NOT NULL,
        actor TEXT,
        details TEXT,
        created_at TEXT DEFAULT CURRENT_TIMESTAMP
    );
    """,
    "CREATE INDEX IF NOT EXISTS idx_audit_event ON audit_log(event_id, created_at);",
)


async def run_migrations(pool: OptimizedSQLitePool) -> None:
    async with pool.connection() as conn:
        await conn.execute("BEGIN")
        try:
            for statement in SCHEMA_SQL:
                await conn.execute(statement)
        except Exception:
            await conn.rollback()
            raise
        else:
            await conn.commit()
    logger.info("✅ Database schema is up to date")

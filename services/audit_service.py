"""Audit log of operator commands."""

from __future__ import annotations

import json
from typing import Any, Dict, List, Optional

from database.base_repository import BaseRepository
from utils.timeutils import to_iso, utcnow


class AuditService:
    """Append-only record of who did what to which event."""

    @staticmethod
    async def log_action(
        action: str,
        actor: Optional[str],
        event_id: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> int:
        """Record an operator action.

        Args:
            action: Command name, e.g. ``pause`` or ``raffle_execute``
            actor: Operator username
            event_id: Event the command targeted
            details: JSON-serialisable command parameters and result

        Returns:
            ID of the new audit row
        """
        return await BaseRepository.insert(
            "INSERT INTO audit_log (event_id, action, actor, details, created_at) VALUES (?, ?, ?, ?, ?)",
            (
                event_id,
                action,
                actor,
                json.dumps(details, default=str) if details else None,
                to_iso(utcnow()),
            ),
        )

    @staticmethod
    async def get_audit_logs(event_id: Optional[int] = None, limit: int = 100) -> List[Dict[str, Any]]:
        query = "SELECT id, event_id, action, actor, details, created_at FROM audit_log"
        params: List[Any] = []
        if event_id is not None:
            query += " WHERE event_id = ?"
            params.append(event_id)
        query += " ORDER BY id DESC LIMIT ?"
        params.append(limit)
        rows = await BaseRepository.fetch_all(query, params)
        return [
            {
                "id": row["id"],
                "eventId": row["event_id"],
                "action": row["action"],
                "actor": row["actor"],
                "details": json.loads(row["details"]) if row["details"] else None,
                "createdAt": row["created_at"],
            }
            for row in rows
        ]

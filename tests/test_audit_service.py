"""Unit tests for AuditService and ViewerPresence."""

import pytest

from services.audit_service import AuditService
from services.viewer_presence import ViewerPresence


@pytest.mark.asyncio
async def test_log_action_round_trip(db_pool):
    """Logged actions come back newest first with decoded details."""
    first = await AuditService.log_action("start", "op", event_id=1)
    second = await AuditService.log_action("adjust_time", "op", event_id=1, details={"deltaMinutes": -2})
    await AuditService.log_action("start", "other", event_id=2)

    entries = await AuditService.get_audit_logs(event_id=1)

    assert [entry["id"] for entry in entries] == [second, first]
    assert entries[0]["details"] == {"deltaMinutes": -2}
    assert entries[1]["details"] is None
    assert entries[0]["actor"] == "op"


@pytest.mark.asyncio
async def test_audit_limit(db_pool):
    for index in range(5):
        await AuditService.log_action("pause", "op", event_id=1, details={"n": index})

    entries = await AuditService.get_audit_logs(limit=2)

    assert len(entries) == 2
    assert entries[0]["details"] == {"n": 4}


def test_viewer_presence_counts_sessions_once():
    viewers = ViewerPresence(ttl=60, count_base=10)

    assert viewers.join(1, "a") == 11
    assert viewers.join(1, "a") == 11
    assert viewers.join(1, "b") == 12
    assert viewers.leave(1, "a") == 11
    assert viewers.count(1) == 11
    assert viewers.peak(1) == 12
    assert viewers.count(2) == 10


def test_viewer_presence_reset():
    viewers = ViewerPresence()
    viewers.join(1, "a")
    viewers.join(2, "b")

    viewers.reset(1)
    assert viewers.count(1) == 0
    assert viewers.count(2) == 1

    viewers.reset()
    assert viewers.peak(2) == 0

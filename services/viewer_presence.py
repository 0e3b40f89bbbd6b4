"""Concurrent viewer tracking for display purposes."""

from __future__ import annotations

import threading
from typing import Dict, Optional

from cachetools import TTLCache

from core.constants import ViewerDefaults


class ViewerPresence:
    """Counts live viewer sessions per event.

    Sessions expire ``ttl`` seconds after their last heartbeat. Counts are
    informational only and never feed timeline decisions.
    """

    def __init__(
        self,
        ttl: int = ViewerDefaults.SESSION_TTL_SECONDS,
        max_sessions: int = ViewerDefaults.MAX_SESSIONS_PER_EVENT,
        count_base: int = ViewerDefaults.COUNT_BASE,
    ) -> None:
        self.ttl = ttl
        self.max_sessions = max_sessions
        self.count_base = count_base
        self._sessions: Dict[int, TTLCache] = {}
        self._peaks: Dict[int, int] = {}
        self._lock = threading.RLock()

    def _cache(self, event_id: int) -> TTLCache:
        cache = self._sessions.get(event_id)
        if cache is None:
            cache = TTLCache(maxsize=self.max_sessions, ttl=self.ttl)
            self._sessions[event_id] = cache
        return cache

    def join(self, event_id: int, session_id: str) -> int:
        """Register or refresh a session. Returns the displayed count."""
        with self._lock:
            cache = self._cache(event_id)
            cache[session_id] = True
            live = len(cache)
            if live > self._peaks.get(event_id, 0):
                self._peaks[event_id] = live
            return self.count_base + live

    def leave(self, event_id: int, session_id: str) -> int:
        with self._lock:
            cache = self._cache(event_id)
            cache.pop(session_id, None)
            return self.count_base + len(cache)

    def count(self, event_id: int) -> int:
        with self._lock:
            cache = self._sessions.get(event_id)
            if cache is None:
                return self.count_base
            cache.expire()
            return self.count_base + len(cache)

    def peak(self, event_id: int) -> int:
        with self._lock:
            return self.count_base + self._peaks.get(event_id, 0)

    def reset(self, event_id: Optional[int] = None) -> None:
        with self._lock:
            if event_id is None:
                self._sessions.clear()
                self._peaks.clear()
            else:
                self._sessions.pop(event_id, None)
                self._peaks.pop(event_id, None)

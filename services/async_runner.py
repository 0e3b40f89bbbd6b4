"""Utilities to execute coroutines on the main asyncio loop from sync contexts."""

from __future__ import annotations

import asyncio
import threading
from typing import Awaitable, Optional, Set, Tuple, TypeVar

from core.logger import get_logger

logger = get_logger(__name__)

_loop: Optional[asyncio.AbstractEventLoop] = None
_background_tasks: Set[asyncio.Task] = set()
T = TypeVar("T")


def set_main_loop(loop: Optional[asyncio.AbstractEventLoop]) -> None:
    global _loop
    _loop = loop


def run_coroutine_sync(coro: Awaitable[T], timeout: Optional[float] = 30.0) -> T:
    if _loop is None:
        raise RuntimeError("Asyncio loop is not initialized")
    future = asyncio.run_coroutine_threadsafe(coro, _loop)
    return future.result(timeout=timeout)


def fire_and_forget(coro: Awaitable[object], name: str) -> asyncio.Task:
    """Run a side effect in the background; failures are logged, never raised.

    Must be called from inside the running loop.
    """
    async def _guarded() -> None:
        try:
            await coro
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Background task '{name}' failed: {e}", exc_info=True)

    task = asyncio.get_running_loop().create_task(_guarded(), name=name)
    _background_tasks.add(task)
    task.add_done_callback(_background_tasks.discard)
    return task


async def wait_background_tasks(timeout: Optional[float] = None) -> None:
    """Wait for pending fire-and-forget tasks (used on shutdown and in tests)."""
    pending = [task for task in _background_tasks if not task.done()]
    if pending:
        await asyncio.wait(pending, timeout=timeout)


def start_background_loop() -> Tuple[asyncio.AbstractEventLoop, threading.Thread]:
    """Start an event loop in a daemon thread and register it as the main loop."""
    loop = asyncio.new_event_loop()
    thread = threading.Thread(target=loop.run_forever, name="asyncio-main-loop", daemon=True)
    thread.start()
    set_main_loop(loop)
    return loop, thread


def stop_background_loop(loop: asyncio.AbstractEventLoop, thread: threading.Thread) -> None:
    loop.call_soon_threadsafe(loop.stop)
    thread.join(timeout=5)
    loop.close()
    if _loop is loop:
        set_main_loop(None)

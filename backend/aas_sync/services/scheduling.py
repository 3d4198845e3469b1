"""
Deferred re-check tasks.

Reconciliation schedules re-fetches that run after a delay. They are
tracked per tree session so a reload or teardown can cancel them.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RecheckScheduler:
    """Owns the asyncio tasks of pending re-checks for one session."""

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task[Any]] = set()

    def schedule(
        self, factory: Callable[[], Awaitable[T]], name: str | None = None
    ) -> "asyncio.Task[T]":
        """
        Start a re-check in the background.

        Must be called from within a running event loop.
        """
        task = asyncio.ensure_future(factory())
        if name:
            task.set_name(name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    @property
    def pending(self) -> int:
        return sum(1 for task in self._tasks if not task.done())

    def cancel_all(self) -> int:
        """Cancel every pending re-check; returns how many were cancelled."""
        cancelled = 0
        for task in list(self._tasks):
            if not task.done():
                task.cancel()
                cancelled += 1
        if cancelled:
            logger.debug(f"Cancelled {cancelled} pending re-check(s)")
        return cancelled

    async def wait_all(self) -> None:
        """Wait until all scheduled re-checks have finished."""
        while True:
            pending = [task for task in self._tasks if not task.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

"""
Periodic analytics flushing for Search Gateway MCP.

PURPOSE: Persist the AnalyticsStore on a fixed interval and once more on shutdown.
AI CONTEXT: Started and stopped by the FastAPI lifespan in web/app.py.

LIFECYCLE:
1. start(): spawn an asyncio task on the running loop
2. Task waits on a stop event with a timeout of `interval` seconds;
   each timeout runs store.persist() in a worker thread
3. stop(): set the stop event, await the task, persist one final time

uvicorn turns SIGTERM/SIGINT into an orderly lifespan shutdown, so a clean
stop always ends with a flush. A killed process loses at most one interval.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import TYPE_CHECKING

from .config import Config

if TYPE_CHECKING:
    from .analytics import AnalyticsStore

__all__ = ["AnalyticsScheduler"]

logger = logging.getLogger(__name__)


class AnalyticsScheduler:
    """
    Background task that periodically persists analytics.

    The stop event is the cancellation token: setting it wakes the loop
    immediately instead of waiting out the current interval.
    """

    def __init__(self, store: AnalyticsStore, interval: float | None = None) -> None:
        """
        Args:
            store: Store to persist.
            interval: Seconds between flushes. Default: Config.get_save_interval()
        """
        self.store = store
        self.interval = interval if interval is not None else Config.get_save_interval()
        self._stop_event: asyncio.Event | None = None
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """
        Start the periodic flush task on the running event loop.

        Calling start() on a running scheduler is a no-op.

        Raises:
            RuntimeError: If called outside a running event loop.
        """
        if self.running:
            return
        self._stop_event = asyncio.Event()
        self._task = asyncio.get_running_loop().create_task(
            self._run(self._stop_event), name="analytics-flush"
        )
        logger.info(f"Analytics flush scheduled every {self.interval:g}s")

    async def _run(self, stop_event: asyncio.Event) -> None:
        while not stop_event.is_set():
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=self.interval)
            except TimeoutError:
                try:
                    await asyncio.to_thread(self.store.persist)
                except Exception as e:
                    logger.error(f"Periodic analytics flush failed: {e}")

    async def stop(self) -> None:
        """
        Stop periodic flushing and persist one final time.

        Safe to call when never started or already stopped; the final
        persist still runs so shutdown always flushes.
        """
        if self._stop_event is not None:
            self._stop_event.set()
        if self._task is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None
        logger.info("Flushing analytics before shutdown")
        await asyncio.to_thread(self.store.persist)

"""
Background session cleanup worker.

Runs ``SessionManager.cleanup_expired_sessions`` on a fixed interval in an
asyncio task. The worker holds no session state of its own, survives sweep
failures, and exits cleanly when stopped.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging

from .manager import SessionManager

logger = logging.getLogger(__name__)


class SessionCleanupWorker:
    """
    Periodic expiry sweep.

    Example:
        worker = SessionCleanupWorker(manager, interval=3600)
        worker.start()
        ...
        await worker.stop()
    """

    def __init__(self, manager: SessionManager, interval: float = 3600.0) -> None:
        if interval <= 0:
            raise ValueError("Cleanup interval must be positive")
        self._manager = manager
        self._interval = interval
        self._task: asyncio.Task[None] | None = None
        self.sweeps = 0

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.is_running:
            return
        self._task = asyncio.create_task(self._run(), name="session-cleanup")
        logger.info(f"Session cleanup worker started (interval {self._interval:.0f}s)")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
        logger.info("Session cleanup worker stopped")

    async def run_once(self) -> int:
        """One sweep. Errors are logged, never raised."""
        try:
            removed = await self._manager.cleanup_expired_sessions()
        except Exception:
            logger.exception("Session cleanup sweep failed")
            return 0
        finally:
            self.sweeps += 1
        return removed

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            await self.run_once()

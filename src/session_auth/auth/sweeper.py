"""Background eviction of expired sessions.

Expiry is already enforced lazily on every access, so the sweeper is purely a
memory bound for sessions that are abandoned and never touched again.  It is a
single asyncio task that wakes every ``interval`` and calls
``SessionStore.purge_expired``.
"""

from __future__ import annotations

import asyncio
import datetime
import logging

from session_auth.auth.session_store import SessionStore

logger = logging.getLogger(__name__)

DEFAULT_SWEEP_INTERVAL = datetime.timedelta(minutes=1)


class SessionSweeper:
    """Runs ``store.purge_expired()`` periodically on the current event loop."""

    def __init__(
        self,
        store: SessionStore,
        interval: datetime.timedelta = DEFAULT_SWEEP_INTERVAL,
    ) -> None:
        if interval <= datetime.timedelta(0):
            raise ValueError(f"Sweep interval must be positive, got {interval}")
        self._store = store
        self._interval = interval
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(
            self._run(), name="session-sweeper"
        )
        logger.debug("Session sweeper started (interval=%ss)", self._interval.total_seconds())

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            # Only the sweeper's own cancellation is expected here.
            current = asyncio.current_task()
            if current is not None and current.cancelling():
                raise
        logger.debug("Session sweeper stopped")

    def sweep_once(self) -> int:
        return self._store.purge_expired()

    # -- private helpers -----------------------------------------------------

    async def _run(self) -> None:
        seconds = self._interval.total_seconds()
        while True:
            await asyncio.sleep(seconds)
            try:
                self.sweep_once()
            except Exception:
                # Keep sweeping; lazy expiry still guarantees correctness.
                logger.exception("Session sweep failed")

"""Periodic expiry sweep.

Correctness never depends on the sweeper: every transition re-checks
expiry inside its own transaction.  The sweep only keeps list views
fresh and garbage-collects expired notifications.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass, field

from pycartransfer.coordinator import TransferCoordinator
from pycartransfer.notifications import NotificationDispatcher

_logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SweepResult:
    expired_requests: list[str] = field(default_factory=list)
    deleted_notifications: int = 0


class ExpirySweeper:
    """Runs :meth:`sweep_once` every *interval* seconds in a background task."""

    def __init__(
        self,
        coordinator: TransferCoordinator,
        dispatcher: NotificationDispatcher,
        *,
        interval: float = 300.0,
    ) -> None:
        self._coordinator = coordinator
        self._dispatcher = dispatcher
        self._interval = interval
        self._task: asyncio.Task[None] | None = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def sweep_once(self, *, timeout: float | None = None) -> SweepResult:
        """Expire stale requests, then delete expired notifications.

        Each request expiry commits on its own, so a timeout part-way
        leaves every request either fully expired or untouched.
        """
        async with asyncio.timeout(timeout):
            expired = await self._coordinator.expire_stale()
            deleted = await self._dispatcher.sweep_expired()
        return SweepResult(expired_requests=expired, deleted_notifications=deleted)

    def start(self) -> None:
        if self.is_running:
            return
        self._task = asyncio.create_task(self._run(), name="pycartransfer-expiry-sweeper")

    async def stop(self) -> None:
        task = self._task
        self._task = None
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

    async def _run(self) -> None:
        while True:
            try:
                await self.sweep_once(timeout=self._interval)
            except Exception:
                _logger.warning("Expiry sweep failed", exc_info=True)
            await asyncio.sleep(self._interval)

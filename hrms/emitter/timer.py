"""Periodic timer used to drive the heartbeat cadence."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Protocol

logger = logging.getLogger(__name__)

TickCallback = Callable[[], Awaitable[None]]


class PeriodicTimer(Protocol):
    def start(self, interval_seconds: float, callback: TickCallback) -> None: ...

    def cancel(self) -> None: ...


class AsyncioPeriodicTimer:
    """Runs ``callback`` every ``interval_seconds`` on the running event loop.

    The first call happens one full interval after ``start``. ``cancel`` is
    safe to call from inside the callback.
    """

    def __init__(self) -> None:
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self, interval_seconds: float, callback: TickCallback) -> None:
        self.cancel()
        self._task = asyncio.get_running_loop().create_task(
            self._run(interval_seconds, callback)
        )

    def cancel(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None

    async def _run(self, interval_seconds: float, callback: TickCallback) -> None:
        while True:
            await asyncio.sleep(interval_seconds)
            try:
                await callback()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Periodic callback failed")

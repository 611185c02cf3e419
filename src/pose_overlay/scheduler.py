from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable

LOGGER = logging.getLogger("pose_overlay.scheduler")


class PeriodicTask:
    """Cancellable cooperative loop that calls ``callback`` once per interval.

    ``callback`` runs on the event loop thread. Exceptions are logged and the
    loop keeps going; only ``cancel()`` (or the callback calling it) ends it.
    """

    def __init__(self, interval_sec: float, callback: Callable[[], None], *, name: str) -> None:
        if interval_sec <= 0:
            raise ValueError(f"interval_sec must be positive: {interval_sec}")
        self.interval_sec = float(interval_sec)
        self.callback = callback
        self.name = name
        self._task: asyncio.Task[None] | None = None
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done() and not self._cancelled

    def start(self) -> None:
        if self.running:
            return
        self._cancelled = False
        self._task = asyncio.get_running_loop().create_task(self._run(), name=self.name)

    def cancel(self) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        task = self._task
        if task is None or task.done():
            return
        if task is asyncio.current_task():
            # the loop checks the flag before its next tick
            return
        task.cancel()

    async def wait_closed(self) -> None:
        task = self._task
        if task is None:
            return
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _run(self) -> None:
        while not self._cancelled:
            tick_started = time.monotonic()
            try:
                self.callback()
            except Exception:  # noqa: BLE001
                LOGGER.exception("%s tick failed", self.name)
            if self._cancelled:
                break
            elapsed = time.monotonic() - tick_started
            await asyncio.sleep(max(0.0, self.interval_sec - elapsed))

"""asyncio driver that ticks a SessionTimer once per second."""

from __future__ import annotations

import asyncio
import logging

from sanctuary.domain.models import TimerState
from sanctuary.timer.session import SessionTimer

logger = logging.getLogger(__name__)


class TimerRunner:
    """Schedules ticks for a :class:`SessionTimer` on the running event loop.

    Ticks are cooperative: if the loop is throttled they arrive late and
    the session undercounts, which is accepted. ``close()`` is the only
    way to cancel the pending tick.
    """

    def __init__(self, timer: SessionTimer, interval: float = 1.0) -> None:
        self._timer = timer
        self._interval = interval
        self._unpaused = asyncio.Event()
        self._task: asyncio.Task | None = None

    @property
    def timer(self) -> SessionTimer:
        return self._timer

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start the timer and schedule the tick loop."""
        self._timer.start()
        if self._timer.state is not TimerState.RUNNING:
            return
        self._unpaused.set()
        self._task = asyncio.create_task(self._tick_loop())

    def pause(self) -> None:
        self._timer.pause()
        if self._timer.state is TimerState.PAUSED:
            self._unpaused.clear()

    def resume(self) -> None:
        self._timer.resume()
        if self._timer.state is TimerState.RUNNING:
            self._unpaused.set()

    async def close(self) -> None:
        """End the session and cancel the pending tick."""
        self._timer.close()
        if self._task is not None and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass

    async def wait(self) -> None:
        """Block until the session ends on its own or is closed."""
        if self._task is not None:
            try:
                await self._task
            except asyncio.CancelledError:
                pass

    async def _tick_loop(self) -> None:
        while self._timer.state is not TimerState.ENDED:
            await self._unpaused.wait()
            await asyncio.sleep(self._interval)
            if self._timer.state is TimerState.RUNNING:
                self._timer.tick()
        logger.debug("Tick loop finished (%s)", self._timer.end_reason)

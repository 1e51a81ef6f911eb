"""Trailing-edge debounce on top of asyncio tasks."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable


logger = logging.getLogger(__name__)


class Debouncer:
    """Run ``callback`` once, ``delay`` seconds after the last ``trigger()``.

    A trigger inside the window cancels the sleeping timer and starts a new
    one. Once the callback starts it is never cancelled by later triggers;
    callbacks run one at a time under a lock, so two firings for the same
    debouncer never overlap. Callback errors are logged, not raised, because
    nobody awaits a timer task.
    """

    def __init__(
        self,
        delay: float,
        callback: Callable[[], Awaitable[None]],
        *,
        name: str = "debounce",
    ) -> None:
        self._delay = max(0.0, delay)
        self._callback = callback
        self._name = name
        self._timer: asyncio.Task[None] | None = None
        self._running: set[asyncio.Task[None]] = set()
        self._lock = asyncio.Lock()
        self._closed = False

    @property
    def delay(self) -> float:
        return self._delay

    @property
    def pending(self) -> bool:
        """True while a timer is waiting to fire."""
        return self._timer is not None and not self._timer.done()

    def trigger(self) -> None:
        if self._closed:
            return
        self.cancel()
        self._timer = asyncio.get_running_loop().create_task(
            self._wait_then_fire(), name=f"{self._name}-timer"
        )

    def cancel(self) -> None:
        """Drop the waiting timer; a callback already running is left alone."""
        if self.pending:
            assert self._timer is not None
            self._timer.cancel()
        self._timer = None

    async def flush(self) -> None:
        """Fire now if a timer is waiting, then wait for running callbacks."""
        if self.pending:
            self.cancel()
            await self._fire()
        if self._running:
            await asyncio.gather(*self._running, return_exceptions=True)

    async def aclose(self) -> None:
        self._closed = True
        timer = self._timer
        self.cancel()
        if timer is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await timer
        if self._running:
            await asyncio.gather(*self._running, return_exceptions=True)

    async def _wait_then_fire(self) -> None:
        await asyncio.sleep(self._delay)
        # Detach from the timer slot before firing so trigger() cannot
        # cancel the callback mid-flight.
        task = asyncio.current_task()
        if task is not None:
            self._running.add(task)
        self._timer = None
        try:
            await self._fire()
        finally:
            if task is not None:
                self._running.discard(task)

    async def _fire(self) -> None:
        async with self._lock:
            try:
                await self._callback()
            except Exception:  # noqa: BLE001
                logger.exception("Debounced callback %s failed", self._name)

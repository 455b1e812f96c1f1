"""Async polling loop used for the command inbox fallback scan."""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable

from reelrelay.infrastructure.logger import logger


class PollLoop:
    """Calls ``fn`` every ``interval_s`` seconds until stopped.

    Errors from ``fn`` are logged and the loop keeps going; a failing scan
    must not take the inbox down.
    """

    def __init__(self, name: str, interval_s: float, fn: Callable[[], Awaitable[None]]) -> None:
        self.name = name
        self._interval = interval_s
        self._fn = fn
        self._task: asyncio.Task[None] | None = None
        self._wake = asyncio.Event()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._loop(), name=f"poll:{self.name}")
        logger.info("Poll loop started", loop=self.name, interval_s=self._interval)

    def poke(self) -> None:
        """Run the next iteration now instead of waiting out the interval."""
        self._wake.set()

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("Poll loop stopped", loop=self.name)

    async def _loop(self) -> None:
        while True:
            try:
                await self._fn()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Error in poll loop", loop=self.name)
            self._wake.clear()
            try:
                await asyncio.wait_for(self._wake.wait(), timeout=self._interval)
            except asyncio.TimeoutError:
                pass


def start_poll_loop(name: str, interval_s: float, fn: Callable[[], Awaitable[None]]) -> PollLoop:
    """Create and start a polling loop. Returns a handle to stop it."""
    loop = PollLoop(name, interval_s, fn)
    loop.start()
    return loop

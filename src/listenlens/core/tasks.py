"""
Cancellable periodic asyncio tasks owned by a session.
"""

import asyncio
from typing import Awaitable, Callable, Optional

from loguru import logger

# A tick returns False to end the loop; any other value keeps it running
TickCallback = Callable[[], Awaitable[Optional[bool]]]


class PeriodicTask:
    """Runs an async callback every ``interval`` seconds until stopped.

    Errors raised by a tick are logged and the loop keeps going. A tick that
    returns ``False`` ends the loop.
    """

    def __init__(
        self,
        name: str,
        callback: TickCallback,
        interval: float,
        run_immediately: bool = False,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.name = name
        self.interval = interval
        self._callback = callback
        self._run_immediately = run_immediately
        self._sleep = sleep
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start the loop. No-op if already running."""
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name=self.name)
        logger.debug(f"Started periodic task '{self.name}' (every {self.interval}s)")

    async def stop(self) -> None:
        """Cancel the loop and wait for it to finish."""
        task = self._task
        self._task = None
        if task is None or task.done():
            return

        task.cancel()
        # A tick stopping its own loop must not await itself
        if task is asyncio.current_task():
            return
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.debug(f"Stopped periodic task '{self.name}'")

    async def _run(self) -> None:
        if self._run_immediately and await self._tick() is False:
            return
        while True:
            await self._sleep(self.interval)
            if await self._tick() is False:
                logger.debug(f"Periodic task '{self.name}' ended itself")
                return

    async def _tick(self) -> Optional[bool]:
        try:
            return await self._callback()
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception(f"Periodic task '{self.name}' tick failed")
            return None

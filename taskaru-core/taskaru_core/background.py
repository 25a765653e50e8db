"""
Periodic Tasks
==============
Background sweep timers for the in-memory registries.
"""

import asyncio
from typing import Awaitable, Callable, Optional

import structlog

logger = structlog.get_logger(__name__)


class PeriodicTask:
    """
    Run an async callable every ``interval`` seconds until stopped.

    Failures are logged and the loop keeps running; the next tick retries.
    """

    def __init__(
        self,
        name: str,
        func: Callable[[], Awaitable[object]],
        interval: float,
    ):
        self.name = name
        self.func = func
        self.interval = interval
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name=self.name)
        logger.info("Periodic task started", task=self.name, interval=self.interval)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Periodic task stopped", task=self.name)

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            try:
                result = await self.func()
                logger.debug("Periodic task ran", task=self.name, result=result)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error("Periodic task failed", task=self.name, error=str(e))

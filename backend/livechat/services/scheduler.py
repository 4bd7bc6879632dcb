"""
Periodic background tasks.
"""
import asyncio
import logging
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


class PeriodicTask:
    """
    Runs ``func`` every ``interval`` seconds until stopped.

    A failing tick is logged and the loop keeps going.
    """

    def __init__(self, name: str, interval: float, func: Callable[[], Awaitable[object]]):
        self.name = name
        self.interval = interval
        self.func = func
        self.ticks = 0
        self._shutdown = asyncio.Event()
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return

        self._shutdown.clear()
        self._task = asyncio.create_task(self._run(), name=self.name)
        logger.info(f"Started periodic task '{self.name}' (every {self.interval}s)")

    async def _run(self) -> None:
        while not self._shutdown.is_set():
            try:
                # Wait for the interval or shutdown
                await asyncio.wait_for(self._shutdown.wait(), timeout=self.interval)
                break
            except asyncio.TimeoutError:
                pass

            try:
                await self.func()
                self.ticks += 1
            except Exception as e:
                logger.error(f"Error in periodic task '{self.name}': {e}", exc_info=True)

    async def stop(self, timeout: float = 5.0) -> None:
        if self._task is None:
            return

        self._shutdown.set()
        try:
            await asyncio.wait_for(self._task, timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Periodic task '{self.name}' did not stop in time, cancelling...")
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass

        self._task = None
        logger.info(f"✓ Periodic task '{self.name}' stopped")


__all__ = ["PeriodicTask"]

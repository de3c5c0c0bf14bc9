"""RouterScheduler — runs EventRouter cycles on a fixed interval inside the API process.

Runs as an asyncio.Task started from the FastAPI lifespan, not a separate
process. Routing is safe to run from several processes at once (claims are
optimistic), so each process may run its own scheduler.

Overlapping cycles within one process are serialized: a run_once() call made
while a cycle is in flight waits for it instead of starting a second one.
A failed cycle is logged and the next one runs on schedule.
"""

import asyncio

import structlog

from workflow_events.router.task import EventRouter, RouterCycleResult

logger = structlog.get_logger(__name__)


class RouterScheduler:
    """Periodic driver for EventRouter.run().

    Usage:
        scheduler = RouterScheduler(router, interval_seconds=10)
        scheduler.start()
        ...
        await scheduler.stop()
    """

    def __init__(self, router: EventRouter, interval_seconds: float = 10.0) -> None:
        self.router = router
        self.interval_seconds = interval_seconds
        self._lock = asyncio.Lock()
        self._stop_event = asyncio.Event()
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run_once(self) -> RouterCycleResult | None:
        """Run one cycle. Returns None if the cycle failed."""
        async with self._lock:
            try:
                return await self.router.run()
            except Exception as exc:
                logger.error(
                    "router_cycle_failed",
                    error=str(exc),
                    error_type=type(exc).__name__,
                    exc_info=True,
                )
                return None

    async def _loop(self) -> None:
        logger.info("router_scheduler_started", interval_seconds=self.interval_seconds)
        while not self._stop_event.is_set():
            await self.run_once()
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval_seconds)
            except asyncio.TimeoutError:
                pass
        logger.info("router_scheduler_stopped")

    def start(self) -> None:
        if self.running:
            return
        self._stop_event.clear()
        self._task = asyncio.create_task(self._loop())

    async def stop(self) -> None:
        """Stop after the in-flight cycle (if any) finishes."""
        if self._task is None:
            return
        self._stop_event.set()
        await self._task
        self._task = None

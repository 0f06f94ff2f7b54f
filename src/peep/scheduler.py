"""Fixed-interval driver for sampling cycles."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

MIN_INTERVAL = 0.1


class SchedulerState(Enum):
    IDLE = "idle"
    SCHEDULED = "scheduled"
    SAMPLING = "sampling"
    STOPPED = "stopped"


def _log_error(exc: BaseException) -> None:
    logger.warning("sampling cycle failed: %s", exc, exc_info=exc)


class SamplingScheduler(Generic[T]):
    """
    Runs ``fetch`` immediately on start and then every ``interval`` seconds.

    At most one fetch is in flight: a tick that fires while the previous
    fetch is still pending is skipped, not queued. A failed fetch is handed
    to ``on_error`` and the ticking carries on. After ``stop()`` nothing is
    delivered any more, including the result of a fetch that was already
    running; that fetch is left to finish and its result is discarded.

    Must be started from inside a running event loop.
    """

    def __init__(
        self,
        fetch: Callable[[], Awaitable[T]],
        interval: float = 2.0,
        name: str = "SamplingScheduler",
    ) -> None:
        """
        Initialize the SamplingScheduler.

        Args:
            fetch: Coroutine function producing one sample.
            interval: Seconds between ticks. Clamped to a 0.1s minimum.
            name: Name used for the asyncio tasks.
        """
        self._fetch = fetch
        self._interval = max(MIN_INTERVAL, interval)
        self._name = name
        self._state = SchedulerState.IDLE
        self._generation = 0
        self._timer: asyncio.Task[None] | None = None
        self._cycle: asyncio.Task[None] | None = None
        self._on_sample: Callable[[T], None] | None = None
        self._on_error: Callable[[BaseException], None] = _log_error
        self.skipped_ticks = 0

    @property
    def interval(self) -> float:
        return self._interval

    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state in (SchedulerState.SCHEDULED, SchedulerState.SAMPLING)

    @property
    def in_flight(self) -> bool:
        """Whether a fetch is currently pending, including a discarded one."""
        return self._cycle is not None and not self._cycle.done()

    def start(
        self,
        on_sample: Callable[[T], None],
        on_error: Callable[[BaseException], None] | None = None,
    ) -> None:
        """Request one sample right away, then arm the recurring timer."""
        if self.is_running:
            return

        loop = asyncio.get_running_loop()
        self._generation += 1
        self._on_sample = on_sample
        self._on_error = on_error or _log_error
        self._state = SchedulerState.SCHEDULED
        self._tick()
        self._timer = loop.create_task(
            self._run_timer(self._generation), name=f"{self._name}-timer"
        )

    def stop(self) -> None:
        """Cancel the timer and suppress any in-flight result."""
        if self._state in (SchedulerState.IDLE, SchedulerState.STOPPED):
            self._state = SchedulerState.STOPPED
            return
        self._generation += 1
        self._state = SchedulerState.STOPPED
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    async def wait_idle(self) -> None:
        """Wait until no fetch is pending."""
        cycle = self._cycle
        if cycle is not None and not cycle.done():
            await asyncio.wait({cycle})

    async def _run_timer(self, generation: int) -> None:
        while generation == self._generation:
            await asyncio.sleep(self._interval)
            if generation != self._generation:
                break
            self._tick()

    def _tick(self) -> None:
        if self.in_flight:
            self.skipped_ticks += 1
            logger.debug("previous sampling cycle still in flight, skipping tick")
            return
        self._state = SchedulerState.SAMPLING
        self._cycle = asyncio.get_running_loop().create_task(
            self._run_cycle(self._generation), name=f"{self._name}-cycle"
        )

    async def _run_cycle(self, generation: int) -> None:
        try:
            result = await self._fetch()
        except Exception as exc:
            if generation == self._generation:
                self._state = SchedulerState.SCHEDULED
                self._report(exc)
            return

        if generation != self._generation:
            logger.debug("discarding sample that completed after stop")
            return

        self._state = SchedulerState.SCHEDULED
        try:
            self._on_sample(result)
        except Exception as exc:
            self._report(exc)

    def _report(self, exc: BaseException) -> None:
        try:
            self._on_error(exc)
        except Exception:
            logger.exception("error handler raised")

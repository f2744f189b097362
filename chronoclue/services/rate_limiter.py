"""Token bucket admission control for outbound LLM calls.

Only the admission rate is bounded. Once a task is admitted it runs
concurrently with everything else; callers that need an in-flight cap
combine this with their own semaphore.
"""

import asyncio
import time
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, TypeVar

from loguru import logger

T = TypeVar("T")


@dataclass
class _QueuedTask:
    factory: Callable[[], Awaitable[Any]]
    future: asyncio.Future


class RateLimiter:
    """FIFO token bucket with a single drain loop.

    State is mutated only by the drain loop; ``execute`` just appends to the
    queue and makes sure a drainer is running. All access happens on one
    event loop, so no lock is needed.
    """

    def __init__(
        self,
        tokens_per_second: float = 10.0,
        burst_capacity: int = 20,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if tokens_per_second <= 0:
            raise ValueError(f"tokens_per_second must be positive, got {tokens_per_second}")
        if burst_capacity < 1:
            raise ValueError(f"burst_capacity must be at least 1, got {burst_capacity}")

        self._rate = float(tokens_per_second)
        self._capacity = float(burst_capacity)
        self._clock = clock
        self._sleep = sleep

        self._tokens = self._capacity
        self._last_refill = clock()
        self._queue: deque[_QueuedTask] = deque()
        self._draining = False
        self._drain_task: asyncio.Task | None = None
        self._in_flight: set[asyncio.Task] = set()

    @property
    def queue_depth(self) -> int:
        return len(self._queue)

    @property
    def available_tokens(self) -> float:
        return self._tokens

    async def execute(self, task: Callable[[], Awaitable[T]]) -> T:
        """Run ``task`` once a token is available and return its result.

        Args:
            task: Zero-argument callable returning an awaitable

        Raises:
            Whatever ``task`` raises; the limiter keeps draining regardless.
        """
        future: asyncio.Future = asyncio.get_running_loop().create_future()
        self._queue.append(_QueuedTask(task, future))
        if not self._draining:
            self._draining = True
            self._drain_task = asyncio.create_task(self._drain())
        return await future

    async def _drain(self) -> None:
        try:
            while self._queue:
                self._refill()
                if self._tokens >= 1:
                    queued = self._queue.popleft()
                    if queued.future.cancelled():
                        continue
                    self._tokens -= 1
                    self._launch(queued)
                    continue

                wait = (1 - self._tokens) / self._rate
                logger.debug(
                    f"Rate limiter waiting {wait:.3f}s ({len(self._queue)} queued)"
                )
                await self._sleep(wait)
        finally:
            self._draining = False
            self._drain_task = None

    def _refill(self) -> None:
        now = self._clock()
        elapsed = now - self._last_refill
        if elapsed > 0:
            self._tokens = min(self._capacity, self._tokens + elapsed * self._rate)
        self._last_refill = now

    def _launch(self, queued: _QueuedTask) -> None:
        running = asyncio.create_task(self._run(queued))
        self._in_flight.add(running)
        running.add_done_callback(self._in_flight.discard)

    @staticmethod
    async def _run(queued: _QueuedTask) -> None:
        try:
            result = await queued.factory()
        except asyncio.CancelledError:
            if not queued.future.done():
                queued.future.cancel()
            raise
        except Exception as e:
            if not queued.future.done():
                queued.future.set_exception(e)
            return
        if not queued.future.done():
            queued.future.set_result(result)

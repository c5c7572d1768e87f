"""Reentrancy guards, throttles and debouncing for engine operations."""

import asyncio
import logging
import time
from collections.abc import AsyncIterator, Awaitable, Callable, Hashable
from contextlib import asynccontextmanager
from typing import Any

from .exceptions import OperationInProgressError

logger = logging.getLogger(__name__)


class SingleFlight:
    """
    Coalesces concurrent calls to the same operation.

    While a call for a key is in flight, other non-forced callers for that key
    wait for it and receive its result instead of starting their own. Forced
    callers wait for the in-flight call to finish and then run their own.

    The work runs as its own task. A caller that is cancelled stops waiting,
    but the work carries on for everyone else.
    """

    def __init__(self, name: str):
        self.name = name
        self._inflight: dict[Hashable, asyncio.Task] = {}

    def in_progress(self, key: Hashable = None) -> bool:
        task = self._inflight.get(key)
        return task is not None and not task.done()

    async def run(
        self,
        factory: Callable[[], Awaitable[Any]],
        key: Hashable = None,
        force: bool = False,
    ) -> Any:
        """
        Run ``factory()`` unless an identical call is already running.

        Args:
            factory: Creates the coroutine to run
            key: Identity of the call; calls with different keys never coalesce
            force: Run a fresh call after any in-flight one instead of sharing it

        Returns:
            Result of this call, or of the in-flight call that was shared
        """
        while self.in_progress(key):
            current = self._inflight[key]
            if not force:
                logger.debug(f"{self.name} already in progress, waiting for it")
                return await asyncio.shield(current)
            await asyncio.wait([current])

        task = asyncio.ensure_future(factory())
        self._inflight[key] = task
        task.add_done_callback(lambda t: self._finished(key, t))
        return await asyncio.shield(task)

    def _finished(self, key: Hashable, task: asyncio.Task) -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]
        # Retrieve the outcome so an abandoned failure is logged once, not at garbage collection
        if not task.cancelled() and task.exception() is not None:
            logger.debug(f"{self.name} failed: {task.exception()}")


class OperationGuard:
    """Non-blocking mutex: a second entrant is refused instead of queued."""

    def __init__(self, name: str):
        self.name = name
        self._lock = asyncio.Lock()

    @property
    def in_progress(self) -> bool:
        return self._lock.locked()

    @asynccontextmanager
    async def hold(self) -> AsyncIterator[None]:
        """
        Enter the guarded section.

        Raises:
            OperationInProgressError: If the section is already held
        """
        if self._lock.locked():
            raise OperationInProgressError(f"{self.name} already in progress")
        async with self._lock:
            yield


class InvalidationThrottle:
    """Allows at most one cycle per ``interval`` seconds."""

    def __init__(self, interval: float = 30.0, clock: Callable[[], float] = time.monotonic):
        self.interval = interval
        self._clock = clock
        self._last: float | None = None

    @property
    def last_run(self) -> float | None:
        return self._last

    def try_acquire(self) -> bool:
        """Claim the next cycle. Returns False while still inside the interval."""
        now = self._clock()
        if self._last is not None and now - self._last < self.interval:
            return False
        self._last = now
        return True

    def reset(self) -> None:
        self._last = None


class Debouncer:
    """
    Cancellable delayed task.

    Each ``trigger()`` cancels a pending, not yet started run and schedules a
    new one ``delay`` seconds later. A run that has already started is never
    cancelled; the next run waits for it to finish.
    """

    def __init__(self, action: Callable[[], Awaitable[None]], delay: float = 0.1, name: str = "debouncer"):
        self.name = name
        self.delay = delay
        self._action = action
        self._pending: asyncio.Task | None = None
        self._running: asyncio.Task | None = None
        self.fire_count = 0

    @property
    def pending(self) -> bool:
        return self._pending is not None and not self._pending.done()

    def trigger(self) -> asyncio.Task:
        """Schedule the action, replacing any pending schedule."""
        if self.pending:
            self._pending.cancel()
        self._pending = asyncio.create_task(self._run(self._running))
        return self._pending

    async def _run(self, previous: asyncio.Task | None) -> None:
        if previous is not None and not previous.done():
            await asyncio.wait([previous])
        await asyncio.sleep(self.delay)

        # From here on the run is no longer cancellable through trigger()
        self._pending = None
        self._running = asyncio.current_task()
        try:
            await self._action()
            self.fire_count += 1
        except Exception as e:
            logger.warning(f"{self.name} action failed: {e}")
        finally:
            self._running = None

    async def wait(self) -> None:
        """Wait until no run is pending or running."""
        while self._pending is not None or self._running is not None:
            tasks = [t for t in (self._pending, self._running) if t is not None]
            await asyncio.wait(tasks)
            if self._pending is not None and self._pending.done():
                self._pending = None

    def cancel(self) -> None:
        """Cancel a pending run, if any."""
        if self.pending:
            self._pending.cancel()
        self._pending = None

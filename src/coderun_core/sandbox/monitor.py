"""Execution monitoring with advisory progress reporting."""

import asyncio
from collections.abc import Awaitable
from typing import Any, TypeVar

from coderun_core.protocols.progress import ProgressObserver, ProgressUpdate
from coderun_core.observability import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class ProgressTracker:
    """Non-decreasing progress schedule for one request.

    ``begin`` returns the launch value, each ``advance`` moves by ``step``
    from ``start`` and by 1 once ``slow_threshold`` is reached, never passing
    ``total - 1``. ``finish`` returns ``total``.
    """

    def __init__(
        self,
        total: int = 100,
        initial: int = 10,
        start: int = 20,
        step: int = 5,
        slow_threshold: int = 90,
    ) -> None:
        self.total = total
        self.initial = initial
        self.start = start
        self.step = step
        self.slow_threshold = slow_threshold
        self.current = 0
        self._next: int | None = None
        self.finished = False

    def begin(self) -> int:
        self.current = min(self.initial, self.total - 1)
        return self.current

    def advance(self) -> int | None:
        """Progress after one more elapsed interval, or None when unchanged."""
        if self.finished:
            return None
        if self._next is None:
            candidate = self.start
        elif self._next >= self.slow_threshold:
            candidate = self._next + 1
        else:
            candidate = self._next + self.step
        self._next = candidate

        value = min(max(candidate, self.current), self.total - 1)
        if value == self.current:
            return None
        self.current = value
        return value

    def finish(self) -> int | None:
        """Terminal value; returned once only."""
        if self.finished:
            return None
        self.finished = True
        self.current = self.total
        return self.total


class ExecutionMonitor:
    """Runs one unit of work as a task and reports progress until it ends.

    The coordinator races a timer against task completion; progress
    notifications never affect the outcome.
    """

    def __init__(
        self,
        observer: ProgressObserver | None = None,
        token: Any = None,
        poll_interval: float = 2.0,
        tracker: ProgressTracker | None = None,
    ) -> None:
        self.observer = observer
        self.token = token
        self.poll_interval = poll_interval
        self.tracker = tracker or ProgressTracker()
        self.emitted: list[int] = []

    async def _notify(self, progress: int | None) -> None:
        if progress is None:
            return
        self.emitted.append(progress)
        if self.observer is None:
            return
        update = ProgressUpdate(progress=progress, total=self.tracker.total, token=self.token)
        try:
            await self.observer(update)
        except Exception as e:
            logger.warning("Failed to send progress notification", error=e)

    async def run(self, work: Awaitable[T]) -> T:
        """Await ``work`` while emitting progress; return or raise its outcome.

        Cancelling the caller cancels the inner task as well.
        """
        task = asyncio.ensure_future(work)
        try:
            await self._notify(self.tracker.begin())
            while True:
                done, _ = await asyncio.wait({task}, timeout=self.poll_interval)
                if done:
                    break
                await self._notify(self.tracker.advance())
        except asyncio.CancelledError:
            task.cancel()
            raise

        await self._notify(self.tracker.finish())
        return task.result()

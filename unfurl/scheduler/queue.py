"""
Bounded-concurrency task queue for render work.

A fixed pool of workers drains an asyncio.Queue in FIFO order. Each item
carries its own future, so callers simply await ``enqueue()`` and get the
task's return value, its exception, or ``TaskTimeoutError``.

Example:
    queue = ConcurrencyQueue(concurrency=4)
    result = await queue.enqueue(lambda: render(url), timeout=60.0)
"""

import asyncio
import itertools
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from unfurl.utils.logging import get_logger

logger = get_logger(__name__)


class TaskTimeoutError(Exception):
    """A queued task exceeded its own deadline and was cancelled."""

    def __init__(self, timeout: float, label: str = ""):
        self.timeout = timeout
        self.label = label
        name = f"Task {label}" if label else "Task"
        super().__init__(f"{name} timed out after {timeout}s")


@dataclass
class _WorkItem:
    task_id: int
    factory: Callable[[], Awaitable[Any]]
    timeout: float | None
    future: asyncio.Future
    label: str = ""
    enqueued_at: float = field(default=0.0)


class ConcurrencyQueue:
    """Fixed worker pool with per-task timeout.

    Args:
        concurrency: Number of workers, i.e. tasks running at once.
    """

    def __init__(self, concurrency: int = 4) -> None:
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")

        self._concurrency = concurrency
        self._queue: asyncio.Queue[_WorkItem | None] | None = None
        self._workers: list[asyncio.Task] = []
        self._ids = itertools.count(1)
        self._active = 0
        self._closed = False

        self._completed = 0
        self._failed = 0
        self._timed_out = 0

    @property
    def concurrency(self) -> int:
        return self._concurrency

    @property
    def pending(self) -> int:
        """Tasks waiting for a worker."""
        return self._queue.qsize() if self._queue is not None else 0

    @property
    def active(self) -> int:
        """Tasks currently running."""
        return self._active

    def get_stats(self) -> dict[str, Any]:
        """Get queue statistics."""
        return {
            "concurrency": self._concurrency,
            "pending": self.pending,
            "active": self._active,
            "completed": self._completed,
            "failed": self._failed,
            "timed_out": self._timed_out,
        }

    def _ensure_workers(self) -> asyncio.Queue:
        # Created lazily so the queue binds to the running loop
        if self._queue is None:
            self._queue = asyncio.Queue()
        if not self._workers:
            self._workers = [
                asyncio.create_task(self._worker(i), name=f"unfurl-worker-{i}")
                for i in range(self._concurrency)
            ]
            logger.debug("Queue workers started", concurrency=self._concurrency)
        return self._queue

    async def enqueue[T](
        self,
        task_factory: Callable[[], Awaitable[T]],
        timeout: float | None = None,
        label: str = "",
    ) -> T:
        """Run ``task_factory()`` on a worker and return its result.

        Args:
            task_factory: Zero-argument callable returning an awaitable.
            timeout: Deadline in seconds, measured from when a worker starts the task.
            label: For logging only.

        Returns:
            The task's return value.

        Raises:
            TaskTimeoutError: The deadline elapsed; the task was cancelled.
            RuntimeError: The queue is closed.
            Exception: Whatever the task raised.
        """
        if self._closed:
            raise RuntimeError("ConcurrencyQueue is closed")

        queue = self._ensure_workers()
        loop = asyncio.get_running_loop()
        item = _WorkItem(
            task_id=next(self._ids),
            factory=task_factory,
            timeout=timeout,
            future=loop.create_future(),
            label=label,
            enqueued_at=loop.time(),
        )
        await queue.put(item)
        return await item.future

    async def _worker(self, worker_id: int) -> None:
        assert self._queue is not None
        while True:
            item = await self._queue.get()
            try:
                if item is None:
                    return
                if item.future.cancelled():
                    continue
                await self._run(item, worker_id)
            finally:
                self._queue.task_done()

    async def _run(self, item: _WorkItem, worker_id: int) -> None:
        loop = asyncio.get_running_loop()
        waited = loop.time() - item.enqueued_at
        self._active += 1
        try:
            result = await asyncio.wait_for(item.factory(), timeout=item.timeout)
        except TaskTimeoutError as e:
            # Raised by the task itself, e.g. a navigation deadline
            self._timed_out += 1
            logger.warning(
                "Queued task reported a timeout",
                task_id=item.task_id,
                label=item.label[:80],
                error=str(e),
                worker=worker_id,
            )
            if not item.future.done():
                item.future.set_exception(e)
        except TimeoutError:
            self._timed_out += 1
            logger.warning(
                "Queued task timed out",
                task_id=item.task_id,
                label=item.label[:80],
                timeout=item.timeout,
                worker=worker_id,
            )
            if not item.future.done():
                item.future.set_exception(TaskTimeoutError(item.timeout or 0.0, item.label))
        except asyncio.CancelledError:
            if not item.future.done():
                item.future.cancel()
            raise
        except Exception as e:
            self._failed += 1
            if not item.future.done():
                item.future.set_exception(e)
        else:
            self._completed += 1
            if not item.future.done():
                item.future.set_result(result)
            logger.debug(
                "Queued task finished",
                task_id=item.task_id,
                worker=worker_id,
                waited=round(waited, 3),
            )
        finally:
            self._active -= 1

    async def close(self) -> None:
        """Stop the workers; queued tasks that never started are cancelled."""
        if self._closed:
            return
        self._closed = True

        if self._queue is not None:
            while not self._queue.empty():
                item = self._queue.get_nowait()
                self._queue.task_done()
                if item is not None and not item.future.done():
                    item.future.cancel()

        for worker in self._workers:
            worker.cancel()
        if self._workers:
            await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []
        logger.debug("Queue closed", **self.get_stats())

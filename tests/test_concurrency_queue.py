"""
Tests for the bounded-concurrency task queue.

## Test Perspectives Table

| Case ID | Input / Precondition | Perspective (Equivalence / Boundary) | Expected Result | Notes |
|---------|---------------------|---------------------------------------|-----------------|-------|
| TC-CQ-N-01 | Single task | Equivalence – normal | Caller gets return value | - |
| TC-CQ-N-02 | 10 tasks, concurrency 3 | Equivalence – bound | Never more than 3 running | - |
| TC-CQ-N-03 | concurrency 1 | Equivalence – ordering | FIFO start order | - |
| TC-CQ-A-01 | Task raises | Equivalence – abnormal | Exception delivered to caller | - |
| TC-CQ-A-02 | Task exceeds timeout | Equivalence – timeout | TaskTimeoutError, task cancelled | - |
| TC-CQ-A-04 | Task raises TaskTimeoutError | Equivalence – timeout | Counted as timed_out, error delivered | - |
| TC-CQ-N-04 | Sibling of a timed-out task | Equivalence – isolation | Sibling succeeds | - |
| TC-CQ-N-05 | pending/active | Equivalence – stats | Reflect queue state | - |
| TC-CQ-A-03 | Enqueue after close | Equivalence – abnormal | RuntimeError | - |
| TC-CQ-B-01 | concurrency=0 | Boundary – invalid | ValueError | - |
"""

import asyncio

import pytest
import pytest_asyncio

from unfurl.scheduler.queue import ConcurrencyQueue, TaskTimeoutError
from unfurl.scraper.orchestrator import NavigationTimeoutError


@pytest_asyncio.fixture
async def queue():
    q = ConcurrencyQueue(concurrency=3)
    yield q
    await q.close()


class TestConcurrencyQueue:
    @pytest.mark.asyncio
    async def test_returns_result(self, queue: ConcurrencyQueue) -> None:
        async def task() -> str:
            return "done"

        assert await queue.enqueue(task, timeout=1.0) == "done"

    @pytest.mark.asyncio
    async def test_concurrency_bound(self, queue: ConcurrencyQueue) -> None:
        """
        Given: concurrency=3
        When: 10 tasks are enqueued at once
        Then: At most 3 run simultaneously and all complete
        """
        running = 0
        peak = 0

        async def task(i: int) -> int:
            nonlocal running, peak
            running += 1
            peak = max(peak, running)
            await asyncio.sleep(0.01)
            running -= 1
            return i

        results = await asyncio.gather(
            *(queue.enqueue(lambda i=i: task(i), timeout=1.0) for i in range(10))
        )

        assert sorted(results) == list(range(10))
        assert peak == 3

    @pytest.mark.asyncio
    async def test_fifo_start_order(self) -> None:
        q = ConcurrencyQueue(concurrency=1)
        started: list[int] = []

        async def task(i: int) -> None:
            started.append(i)
            await asyncio.sleep(0)

        try:
            await asyncio.gather(*(q.enqueue(lambda i=i: task(i)) for i in range(5)))
        finally:
            await q.close()

        assert started == [0, 1, 2, 3, 4]

    @pytest.mark.asyncio
    async def test_exception_propagates(self, queue: ConcurrencyQueue) -> None:
        async def task() -> None:
            raise ValueError("broken page")

        with pytest.raises(ValueError, match="broken page"):
            await queue.enqueue(task, timeout=1.0)

        assert queue.get_stats()["failed"] == 1

    @pytest.mark.asyncio
    async def test_timeout_cancels_task(self, queue: ConcurrencyQueue) -> None:
        """
        Given: A task that outlives its deadline
        When: The deadline elapses
        Then: The caller gets TaskTimeoutError and the task observes cancellation
        """
        cancelled = asyncio.Event()

        async def task() -> None:
            try:
                await asyncio.sleep(10)
            except asyncio.CancelledError:
                cancelled.set()
                raise

        with pytest.raises(TaskTimeoutError) as exc_info:
            await queue.enqueue(task, timeout=0.05, label="https://slow.example")

        assert cancelled.is_set()
        assert exc_info.value.timeout == 0.05
        assert queue.get_stats()["timed_out"] == 1
        assert queue.active == 0

    @pytest.mark.asyncio
    async def test_task_raised_timeout_counts_as_timed_out(self, queue: ConcurrencyQueue) -> None:
        """
        Given: A task that raises NavigationTimeoutError, a TaskTimeoutError subclass
        When: It runs on the queue
        Then: The caller gets that error and it is counted as timed out, not failed
        """

        async def task() -> None:
            raise NavigationTimeoutError(15.0, "https://slow.example")

        with pytest.raises(NavigationTimeoutError):
            await queue.enqueue(task, timeout=1.0)

        stats = queue.get_stats()
        assert stats["timed_out"] == 1
        assert stats["failed"] == 0

    @pytest.mark.asyncio
    async def test_timeout_does_not_affect_siblings(self, queue: ConcurrencyQueue) -> None:
        async def slow() -> str:
            await asyncio.sleep(10)
            return "never"

        async def fast() -> str:
            await asyncio.sleep(0.01)
            return "ok"

        results = await asyncio.gather(
            queue.enqueue(slow, timeout=0.05),
            queue.enqueue(fast, timeout=1.0),
            return_exceptions=True,
        )

        assert isinstance(results[0], TaskTimeoutError)
        assert results[1] == "ok"

    @pytest.mark.asyncio
    async def test_pending_and_active(self) -> None:
        q = ConcurrencyQueue(concurrency=1)
        gate = asyncio.Event()

        async def blocker() -> None:
            await gate.wait()

        try:
            first = asyncio.create_task(q.enqueue(blocker))
            second = asyncio.create_task(q.enqueue(blocker))
            await asyncio.sleep(0.01)

            assert q.active == 1
            assert q.pending == 1

            gate.set()
            await asyncio.gather(first, second)
            assert q.active == 0
            assert q.pending == 0
        finally:
            await q.close()

    @pytest.mark.asyncio
    async def test_enqueue_after_close(self) -> None:
        q = ConcurrencyQueue(concurrency=1)
        await q.close()

        async def task() -> None:
            return None

        with pytest.raises(RuntimeError):
            await q.enqueue(task)

    def test_invalid_concurrency(self) -> None:
        with pytest.raises(ValueError, match="concurrency must be at least 1"):
            ConcurrencyQueue(concurrency=0)

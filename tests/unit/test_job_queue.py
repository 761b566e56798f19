"""
Unit Tests - Job Queue and Cancellation
"""
import asyncio

import pytest

from src.ingestion.cancellation import check_cancelled, wait_or_cancel
from src.ingestion.errors import JobCancelledError
from src.ingestion.job_queue import CallableJob, IngestFileJob, JobKind, JobQueue


class TestJobQueue:
    """Tests for JobQueue"""

    async def test_fifo_order(self):
        queue = JobQueue()
        for name in ("a.csv", "b.csv", "c.csv"):
            queue.enqueue(IngestFileJob(name))

        received = [(await queue.dequeue()).job.file_path for _ in range(3)]

        assert received == ["a.csv", "b.csv", "c.csv"]
        assert len(queue) == 0

    async def test_enqueue_wraps_coroutine_function(self):
        queue = JobQueue()

        async def rebuild_report(cancel):
            return "done"

        queue.enqueue(rebuild_report)
        queued = await queue.dequeue()

        assert isinstance(queued.job, CallableJob)
        assert queued.job.kind == JobKind.CALLABLE
        assert queued.job.name == "rebuild_report"

    async def test_enqueue_none_rejected(self):
        with pytest.raises(TypeError):
            JobQueue().enqueue(None)

    async def test_handle_resolves_with_result(self):
        queue = JobQueue()
        handle = queue.enqueue(IngestFileJob("a.csv"))

        queued = await queue.dequeue()
        assert queued.job_id == handle.job_id
        queued.future.set_result("loaded")

        assert await handle == "loaded"

    async def test_dequeue_blocks_until_enqueue(self):
        queue = JobQueue()
        waiter = asyncio.create_task(queue.dequeue())

        await asyncio.sleep(0)
        assert not waiter.done()

        queue.enqueue(IngestFileJob("late.csv"))
        queued = await asyncio.wait_for(waiter, timeout=1)

        assert queued.job.file_path == "late.csv"

    async def test_dequeue_cancelled(self):
        queue = JobQueue()
        cancel = asyncio.Event()
        waiter = asyncio.create_task(queue.dequeue(cancel))

        await asyncio.sleep(0)
        cancel.set()

        with pytest.raises(JobCancelledError):
            await asyncio.wait_for(waiter, timeout=1)

    async def test_each_job_delivered_once(self):
        queue = JobQueue()
        for i in range(10):
            queue.enqueue(IngestFileJob(f"{i}.csv"))

        async def consume():
            got = []
            while len(queue):
                got.append((await queue.dequeue()).job.file_path)
                await asyncio.sleep(0)
            return got

        first, second = await asyncio.gather(consume(), consume())

        assert sorted(first + second) == sorted(f"{i}.csv" for i in range(10))
        assert not set(first) & set(second)

    async def test_cancel_pending_fails_waiting_handles(self):
        queue = JobQueue()
        handles = [queue.enqueue(IngestFileJob(f"{i}.csv")) for i in range(2)]

        assert queue.cancel_pending() == 2
        assert len(queue) == 0

        for handle in handles:
            with pytest.raises(JobCancelledError):
                await handle

    async def test_cancel_pending_on_empty_queue(self):
        assert JobQueue().cancel_pending() == 0


class TestCancellation:
    """Tests for cancellation helpers"""

    def test_check_cancelled(self):
        cancel = asyncio.Event()
        check_cancelled(cancel)
        check_cancelled(None)

        cancel.set()
        with pytest.raises(JobCancelledError):
            check_cancelled(cancel)

    async def test_wait_or_cancel_returns_result(self):
        async def work():
            return 42

        assert await wait_or_cancel(work(), asyncio.Event()) == 42

    async def test_wait_or_cancel_already_set(self):
        cancel = asyncio.Event()
        cancel.set()
        with pytest.raises(JobCancelledError):
            await wait_or_cancel(asyncio.sleep(10), cancel)

    async def test_wait_or_cancel_interrupts_wait(self):
        cancel = asyncio.Event()
        asyncio.get_running_loop().call_later(0.01, cancel.set)

        with pytest.raises(JobCancelledError):
            await wait_or_cancel(asyncio.sleep(10), cancel)

    async def test_wait_or_cancel_releases_when_caller_cancelled(self):
        lock = asyncio.Lock()
        await lock.acquire()

        waiter = asyncio.create_task(
            wait_or_cancel(lock.acquire(), asyncio.Event(), release=lambda _: lock.release())
        )
        for _ in range(3):
            await asyncio.sleep(0)
        assert not waiter.done()

        # hand the lock over, then cancel the caller before it resumes
        lock.release()
        await asyncio.sleep(0)
        waiter.cancel()

        with pytest.raises(asyncio.CancelledError):
            await waiter
        assert not lock.locked()

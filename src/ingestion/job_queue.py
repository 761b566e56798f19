"""
Background Job Queue

Unbounded FIFO hand-off between job producers (the refresh endpoint and
callers in-process) and the single worker that drains it.

Jobs are tagged values rather than opaque callables:
- IngestFileJob: load one CSV file through the loader
- CallableJob: run an arbitrary coroutine function taking the cancel signal

Every enqueue returns an awaitable handle resolved with the job's result, so
callers that care can await the outcome while everyone else fires and
forgets.
"""

import asyncio
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Union

import structlog

from src.ingestion.cancellation import wait_or_cancel
from src.ingestion.errors import JobCancelledError
from src.ingestion.metrics import JOB_QUEUE_DEPTH

logger = structlog.get_logger(__name__)


class JobKind(str, Enum):
    """Supported job kinds"""
    INGEST_FILE = "ingest_file"
    CALLABLE = "callable"


@dataclass(frozen=True)
class IngestFileJob:
    """Load a delimited sales file"""
    file_path: str

    @property
    def kind(self) -> JobKind:
        return JobKind.INGEST_FILE


@dataclass(frozen=True)
class CallableJob:
    """Run a coroutine function that receives the cancel signal"""
    func: Callable[[asyncio.Event], Awaitable[Any]]
    name: str = "callable"

    @property
    def kind(self) -> JobKind:
        return JobKind.CALLABLE


Job = Union[IngestFileJob, CallableJob]


@dataclass
class QueuedJob:
    """
    A job plus the future its producer may await.

    Awaiting a QueuedJob waits for the job's result.
    """
    job: Job
    future: asyncio.Future
    job_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    enqueued_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __await__(self):
        return self.future.__await__()


def _retrieve_exception(future: asyncio.Future) -> None:
    # Producers may never await the future; mark failures as observed
    if not future.cancelled():
        future.exception()


def _abandon(queued: QueuedJob) -> None:
    # taken off the queue but never run
    if not queued.future.done():
        queued.future.set_exception(JobCancelledError("Job cancelled before it ran"))


class JobQueue:
    """
    Unbounded FIFO job queue.

    ``enqueue`` never blocks and never rejects. ``dequeue`` blocks until a
    job is available or the cancel signal fires. Each job is delivered to
    exactly one consumer.

    Example:
        queue = JobQueue()
        handle = queue.enqueue(IngestFileJob("data/sales.csv"))
        queued = await queue.dequeue(stop_event)
        # worker runs queued.job, then: result = await handle
    """

    def __init__(self):
        self._queue: asyncio.Queue[QueuedJob] = asyncio.Queue()

    def __len__(self) -> int:
        return self._queue.qsize()

    def enqueue(self, job: Union[Job, Callable[[asyncio.Event], Awaitable[Any]]]) -> QueuedJob:
        """
        Add a job to the tail of the queue.

        Plain coroutine functions are wrapped as CallableJob.

        Returns:
            QueuedJob whose future resolves with the job's result once the
            worker runs it
        """
        if job is None:
            raise TypeError("job must not be None")
        if not isinstance(job, (IngestFileJob, CallableJob)):
            job = CallableJob(func=job, name=getattr(job, "__name__", "callable"))

        future = asyncio.get_running_loop().create_future()
        future.add_done_callback(_retrieve_exception)
        queued = QueuedJob(job=job, future=future)
        self._queue.put_nowait(queued)
        JOB_QUEUE_DEPTH.set(self._queue.qsize())

        logger.info(
            "Job enqueued",
            job_id=queued.job_id,
            kind=job.kind.value,
            depth=self._queue.qsize(),
        )
        return queued

    async def dequeue(self, cancel: Optional[asyncio.Event] = None) -> QueuedJob:
        """
        Remove and return the job at the head of the queue.

        Args:
            cancel: Signal that aborts the wait

        Raises:
            JobCancelledError: If the signal fires while waiting
        """
        queued = await wait_or_cancel(self._queue.get(), cancel, release=_abandon)
        JOB_QUEUE_DEPTH.set(self._queue.qsize())
        return queued

    def cancel_pending(self) -> int:
        """
        Fail every job still waiting in the queue with JobCancelledError.

        Returns:
            Number of jobs removed
        """
        count = 0
        while True:
            try:
                queued = self._queue.get_nowait()
            except asyncio.QueueEmpty:
                break
            _abandon(queued)
            count += 1
        JOB_QUEUE_DEPTH.set(0)
        if count:
            logger.warning("Cancelled pending jobs", count=count)
        return count

"""
Ingestion Scheduler

Long-lived background service with two concurrent loops:
- Worker: drains the job queue one job at a time, in FIFO order
- Timer: fires the daily refresh at a configured UTC time of day

Job failures are logged and never stop either loop. The timer calls the
loader directly rather than through the queue; the loader's ingestion lock
is what keeps runs from overlapping.
"""

import asyncio
from datetime import datetime, time, timedelta, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional

import structlog

from src.config import IngestionSettings, get_settings
from src.ingestion.cancellation import wait_or_cancel
from src.ingestion.csv_loader import CsvLoader, LoadResult, create_csv_loader
from src.ingestion.errors import JobCancelledError
from src.ingestion.job_queue import CallableJob, IngestFileJob, Job, JobKind, JobQueue, QueuedJob
from src.ingestion.metrics import JOBS_PROCESSED

logger = structlog.get_logger(__name__)


def next_run_at(now: datetime, time_of_day: time) -> datetime:
    """
    Next occurrence of ``time_of_day`` (UTC) strictly after ``now``.

    Example:
        next_run_at(datetime(2025, 1, 1, 3, 0, tzinfo=timezone.utc), time(2, 0))
        -> 2025-01-02 02:00 UTC
    """
    now = now.astimezone(timezone.utc)
    candidate = datetime.combine(now.date(), time_of_day.replace(tzinfo=None), tzinfo=timezone.utc)
    if candidate <= now:
        candidate += timedelta(days=1)
    return candidate


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class IngestionScheduler:
    """
    Worker and daily timer for ingestion jobs.

    Example:
        scheduler = IngestionScheduler(queue, loader)
        await scheduler.start()
        ...
        await scheduler.stop()
    """

    def __init__(
        self,
        queue: JobQueue,
        loader: CsvLoader,
        settings: Optional[IngestionSettings] = None,
        clock: Callable[[], datetime] = _utcnow,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        after_load: Optional[Callable[[LoadResult], Awaitable[Any]]] = None,
    ):
        self._queue = queue
        self._loader = loader
        self._settings = settings or get_settings().ingestion
        self._clock = clock
        self._sleep = sleep
        self._after_load = after_load
        self._stop = asyncio.Event()
        self._tasks: List[asyncio.Task] = []
        self._handlers: Dict[JobKind, Callable[[Job, asyncio.Event], Awaitable[Any]]] = {
            JobKind.INGEST_FILE: self._run_ingest_job,
            JobKind.CALLABLE: self._run_callable_job,
        }

    @property
    def queue(self) -> JobQueue:
        return self._queue

    @property
    def loader(self) -> CsvLoader:
        return self._loader

    @property
    def is_running(self) -> bool:
        return any(not task.done() for task in self._tasks)

    async def start(self) -> None:
        """Start the worker and timer loops as background tasks"""
        if self.is_running:
            logger.warning("Ingestion scheduler already running")
            return

        self._stop.clear()
        self._tasks = [
            asyncio.create_task(self.run_worker(self._stop), name="ingestion-worker"),
            asyncio.create_task(self.run_timer(self._stop), name="ingestion-timer"),
        ]
        logger.info("Ingestion scheduler started")

    async def stop(self) -> None:
        """Signal both loops and wait for the in-flight job to wind down"""
        logger.info("Stopping ingestion scheduler")
        self._stop.set()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        logger.info("Ingestion scheduler stopped")

    # =========================================================================
    # WORKER
    # =========================================================================

    async def run_worker(self, stop: asyncio.Event) -> None:
        """Drain the job queue until ``stop`` is set"""
        logger.info("Background job worker is starting")

        try:
            while not stop.is_set():
                try:
                    queued = await self._queue.dequeue(stop)
                except JobCancelledError:
                    break
                await self._execute(queued, stop)
        finally:
            # nothing drains the queue once the worker is gone
            self._queue.cancel_pending()

        logger.info("Background job worker is stopping")

    async def _execute(self, queued: QueuedJob, stop: asyncio.Event) -> None:
        job = queued.job
        with structlog.contextvars.bound_contextvars(job_id=queued.job_id, job_kind=job.kind.value):
            logger.info("Executing queued job")
            try:
                result = await self._handlers[job.kind](job, stop)
            except asyncio.CancelledError:
                if not queued.future.done():
                    queued.future.set_exception(JobCancelledError("Worker stopped while the job was running"))
                raise
            except Exception as e:
                logger.error("Queued job failed", error=str(e), error_type=type(e).__name__, exc_info=True)
                JOBS_PROCESSED.labels(kind=job.kind.value, status="error").inc()
                if not queued.future.done():
                    queued.future.set_exception(e)
                return

            status = "failed" if isinstance(result, LoadResult) and not result.success else "success"
            JOBS_PROCESSED.labels(kind=job.kind.value, status=status).inc()
            logger.info("Queued job finished", status=status)
            if not queued.future.done():
                queued.future.set_result(result)

    async def _run_ingest_job(self, job: IngestFileJob, cancel: asyncio.Event) -> LoadResult:
        result = await self._loader.load_file(job.file_path, cancel)
        await self._notify_loaded(result)
        return result

    async def _run_callable_job(self, job: CallableJob, cancel: asyncio.Event) -> Any:
        return await job.func(cancel)

    async def _notify_loaded(self, result: LoadResult) -> None:
        # failed runs may still have committed batches
        if self._after_load is None or result.items_inserted == 0:
            return
        try:
            await self._after_load(result)
        except Exception as e:
            logger.error("After-load hook failed", error=str(e), exc_info=True)

    # =========================================================================
    # DAILY TIMER
    # =========================================================================

    async def run_timer(self, stop: asyncio.Event) -> None:
        """Fire the daily refresh at the configured time until ``stop`` is set"""
        refresh_time = self._settings.daily_refresh_time
        logger.info(
            "Scheduled daily refresh",
            time_of_day=refresh_time.isoformat(),
            path=self._settings.daily_refresh_path,
        )

        target: Optional[datetime] = None
        while not stop.is_set():
            now = self._clock()
            # an early wake-up must not fire the same slot twice
            target = next_run_at(now if target is None else max(now, target), refresh_time)
            delay = max((target - now).total_seconds(), 0.0)
            try:
                await wait_or_cancel(self._sleep(delay), stop)
            except JobCancelledError:
                break

            path = self._settings.daily_refresh_path
            if not path:
                continue

            try:
                logger.info("Starting scheduled daily refresh", path=path)
                result = await self._loader.load_file(path, stop)
                logger.info(
                    "Scheduled daily refresh finished",
                    success=result.success,
                    orders=result.orders_inserted,
                    items=result.items_inserted,
                    message=result.message,
                )
                await self._notify_loaded(result)
            except Exception as e:
                logger.error("Scheduled refresh failed", error=str(e), exc_info=True)

        logger.info("Daily refresh timer stopped")


# =============================================================================
# FACTORY FUNCTIONS
# =============================================================================

_scheduler: Optional[IngestionScheduler] = None


async def start_ingestion_service(
    after_load: Optional[Callable[[LoadResult], Awaitable[Any]]] = None,
) -> IngestionScheduler:
    """
    Create the shared queue, loader and scheduler and start them (called from main app).

    Args:
        after_load: Awaited with each LoadResult that wrote rows
    """
    global _scheduler

    if _scheduler is not None:
        return _scheduler

    _scheduler = IngestionScheduler(JobQueue(), create_csv_loader(), after_load=after_load)
    await _scheduler.start()
    return _scheduler


async def stop_ingestion_service() -> None:
    """Stop the shared scheduler"""
    global _scheduler

    if _scheduler is not None:
        await _scheduler.stop()
        _scheduler = None


def get_ingestion_scheduler() -> IngestionScheduler:
    """Get the running scheduler"""
    if _scheduler is None:
        raise RuntimeError("Ingestion service not started. Call start_ingestion_service() first.")
    return _scheduler

"""
Refresh API Endpoints

Queue ingestion runs and inspect the run log.
"""

from datetime import datetime
from typing import List, Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import AliasChoices, BaseModel, Field

from src.database.connection import get_session_factory
from src.database.models import RunStatus
from src.ingestion import IngestFileJob, JobQueue, LoadResult, SqlAlchemyRecordStore
from src.ingestion.errors import JobCancelledError
from src.ingestion.scheduler import get_ingestion_scheduler

logger = structlog.get_logger(__name__)
router = APIRouter()


# =============================================================================
# REQUEST/RESPONSE MODELS
# =============================================================================

class TriggerRequest(BaseModel):
    """Refresh trigger body"""
    file_path: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("file_path", "filePath"),
    )


class TriggerResponse(BaseModel):
    """Accepted refresh"""
    message: str
    file: str
    job_id: str
    result: Optional[LoadResult] = None


class RunLogResponse(BaseModel):
    """One ingestion run"""
    id: int
    started_at: datetime
    finished_at: Optional[datetime]
    status: RunStatus
    message: Optional[str]

    class Config:
        from_attributes = True


# =============================================================================
# DEPENDENCIES
# =============================================================================

async def job_queue_dependency() -> JobQueue:
    """Shared job queue; 503 while the ingestion service is down"""
    try:
        scheduler = get_ingestion_scheduler()
    except RuntimeError:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Ingestion service is not running.",
        )
    if not scheduler.is_running:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Ingestion service is not running.",
        )
    return scheduler.queue


def record_store_dependency() -> SqlAlchemyRecordStore:
    """Gateway over the application database"""
    return SqlAlchemyRecordStore(get_session_factory())


# =============================================================================
# ENDPOINTS
# =============================================================================

@router.post("/trigger", response_model=TriggerResponse, status_code=status.HTTP_202_ACCEPTED)
async def trigger_refresh(
    request: TriggerRequest,
    wait: bool = Query(False, description="Wait for the load to finish"),
    queue: JobQueue = Depends(job_queue_dependency),
) -> TriggerResponse:
    """
    Queue a load of ``file_path``.

    Returns immediately unless ``wait`` is set, in which case the response
    carries the LoadResult.
    """
    file_path = (request.file_path or "").strip()
    if not file_path:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="file_path is required.")

    handle = queue.enqueue(IngestFileJob(file_path))
    logger.info("Refresh queued", path=file_path, job_id=handle.job_id)

    response = TriggerResponse(message="Refresh queued", file=file_path, job_id=handle.job_id)
    if wait:
        try:
            response.result = await handle
        except JobCancelledError:
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail="Ingestion service stopped before the load finished.",
            )
        response.message = response.result.message
    return response


@router.get("/runs", response_model=List[RunLogResponse])
async def list_runs(
    limit: int = Query(20, ge=1, le=200),
    store: SqlAlchemyRecordStore = Depends(record_store_dependency),
) -> List[RunLogResponse]:
    """Most recent ingestion runs, newest first"""
    runs = await store.list_run_logs(limit=limit)
    return [RunLogResponse.model_validate(run) for run in runs]


@router.get("/runs/{run_log_id}", response_model=RunLogResponse)
async def get_run(
    run_log_id: int,
    store: SqlAlchemyRecordStore = Depends(record_store_dependency),
) -> RunLogResponse:
    run = await store.get_run_log(run_log_id)
    if run is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Run {run_log_id} not found.")
    return RunLogResponse.model_validate(run)

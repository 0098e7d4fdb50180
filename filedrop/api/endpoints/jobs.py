"""
Job distribution endpoints: pending listing, download, completion, history.
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import FileResponse

from filedrop.api.deps import get_job_service
from filedrop.models.schemas import (
    CompleteJobRequest,
    CompleteJobResponse,
    CompletedJobSummary,
    CompletedJobsResponse,
    PendingJobsResponse,
)
from filedrop.services.job_service import JobService
from filedrop.utils import get_logger

router = APIRouter()
logger = get_logger(__name__)


@router.get(
    "/jobs/pending",
    response_model=PendingJobsResponse,
    summary="List pending jobs from the head of the queue"
)
def list_pending_jobs(
    request: Request,
    client_id: Optional[str] = Query(None, alias="clientId"),
    limit: int = Query(50, ge=0, description="Maximum jobs to return (capped server side)"),
    service: JobService = Depends(get_job_service),
) -> PendingJobsResponse:
    jobs, total = service.list_pending(limit)
    logger.debug(
        "Pending jobs listed",
        client_id=client_id,
        returned=len(jobs),
        total_in_queue=total,
        request_id=getattr(request.state, "request_id", None),
    )
    return PendingJobsResponse(jobs=jobs, count=len(jobs), total_in_queue=total)


@router.get(
    "/download/{job_id}",
    response_class=FileResponse,
    summary="Download the stored file of a pending job under its original name"
)
def download_job_file(
    job_id: str,
    client_id: Optional[str] = Query(None, alias="clientId"),
    service: JobService = Depends(get_job_service),
) -> FileResponse:
    """Stream the stored file.

    404 with code JOB_NOT_FOUND when the id is unknown, FILE_NOT_FOUND when the
    backing file disappeared (the stale job is evicted as a side effect).
    """
    target = service.stream_download(job_id)
    logger.info("File downloaded", job_id=job_id, client_id=client_id, original_name=target.download_name)
    return FileResponse(
        target.path,
        filename=target.download_name,
        media_type="application/octet-stream",
    )


@router.post(
    "/jobs/{job_id}/complete",
    response_model=CompleteJobResponse,
    summary="Mark a job as completed"
)
def complete_job(
    job_id: str,
    payload: Optional[CompleteJobRequest] = None,
    service: JobService = Depends(get_job_service),
) -> CompleteJobResponse:
    completed = service.complete_job(job_id)
    logger.info(
        "Job completion acknowledged",
        job_id=job_id,
        client_id=payload.client_id if payload else None,
    )
    return CompleteJobResponse(
        job=CompletedJobSummary(
            id=completed.id,
            file_name=completed.original_name,
            completed_at=completed.completed_at,
        )
    )


@router.get(
    "/jobs/completed",
    response_model=CompletedJobsResponse,
    summary="Most recently completed jobs"
)
def list_completed_jobs(
    limit: int = Query(50, ge=0, le=500),
    service: JobService = Depends(get_job_service),
) -> CompletedJobsResponse:
    jobs = service.queue.completed(limit)
    return CompletedJobsResponse(jobs=jobs, count=len(jobs), total_completed=service.queue.completed_depth())

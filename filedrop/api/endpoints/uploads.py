"""
Multipart upload endpoint feeding the pending queue.
"""
import time
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Request, UploadFile

from filedrop.api.deps import get_job_service
from filedrop.config import UPLOAD_LIMITS
from filedrop.errors import UploadRejected
from filedrop.models.job import JobRecord
from filedrop.models.schemas import UploadResponse, UploadedJobSummary
from filedrop.services.job_service import JobService
from filedrop.utils import get_logger, log_performance, format_file_size
from filedrop.utils.files import safe_basename

router = APIRouter()
logger = get_logger(__name__)

_COPY_CHUNK = 1024 * 1024


def _store_upload(service: JobService, upload: UploadFile) -> JobRecord:
    """Write one upload straight to its stored name, then enqueue it.

    The stored name carries the separator marker, so the intake watcher skips it.
    """
    max_size = int(UPLOAD_LIMITS["max_file_size_bytes"])
    original_name = safe_basename(upload.filename or "upload")
    created_at, target = service.allocate_stored_path(original_name)

    written = 0
    try:
        with target.open("wb") as out:
            while True:
                chunk = upload.file.read(_COPY_CHUNK)
                if not chunk:
                    break
                written += len(chunk)
                if written > max_size:
                    raise UploadRejected(
                        f"File too large (maximum {format_file_size(max_size)} per file)",
                        code="FILE_TOO_LARGE",
                    )
                out.write(chunk)
    except BaseException:
        target.unlink(missing_ok=True)
        raise

    job = service.register_stored_file(original_name, target, created_at)
    logger.info("File uploaded", original_name=original_name, size=format_file_size(job.size))
    return job


@router.post(
    "/upload",
    response_model=UploadResponse,
    summary="Upload one or more files"
)
def upload_files(
    request: Request,
    files: Optional[List[UploadFile]] = File(None),
    service: JobService = Depends(get_job_service),
) -> UploadResponse:
    start_time = time.time()
    if not files:
        raise UploadRejected("No files were uploaded", code="NO_FILES")
    max_files = int(UPLOAD_LIMITS["max_files"])
    if len(files) > max_files:
        raise UploadRejected(f"Too many files (maximum {max_files} files)", code="TOO_MANY_FILES")

    jobs = [_store_upload(service, upload) for upload in files]

    log_performance(
        operation="upload_files",
        duration_ms=(time.time() - start_time) * 1000,
        additional_data={"files": len(jobs), "request_id": getattr(request.state, "request_id", None)},
    )
    return UploadResponse(
        message=f"{len(jobs)} file(s) uploaded successfully",
        count=len(jobs),
        jobs=[
            UploadedJobSummary(
                id=job.id,
                file_name=job.original_name,
                size=format_file_size(job.size),
                uploaded_at=job.created_at,
            )
            for job in jobs
        ],
    )

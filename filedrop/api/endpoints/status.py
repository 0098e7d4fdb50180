"""
Liveness and server status endpoints.
"""
import time

from fastapi import APIRouter, Depends, Request

from filedrop.api.deps import get_job_service, require_api_key
from filedrop.config import AUTH_SETTINGS, SERVER_SETTINGS, UPLOAD_LIMITS
from filedrop.models.schemas import HealthResponse, StatusResponse
from filedrop.services.job_service import JobService
from filedrop.utils import format_file_size
from filedrop.utils.time import utc_now

router = APIRouter()


@router.get("/health", response_model=HealthResponse, summary="Liveness probe (no auth)")
def health() -> HealthResponse:
    return HealthResponse(status="ok", timestamp=utc_now())


@router.get(
    "/status",
    response_model=StatusResponse,
    dependencies=[Depends(require_api_key)],
    summary="Queue depth, uptime, version and limits"
)
def server_status(request: Request, service: JobService = Depends(get_job_service)) -> StatusResponse:
    started_at = getattr(request.app.state, "started_at", time.monotonic())
    watcher = getattr(request.app.state, "intake_watcher", None)
    snapshot = service.queue.snapshot()
    return StatusResponse(
        version=str(SERVER_SETTINGS["version"]),
        uptime=int(time.monotonic() - started_at),
        pending=snapshot["pending"],
        completed=snapshot["completed"],
        upload_path=str(service.upload_dir),
        file_watcher="active" if watcher is not None and watcher.is_running else "inactive",
        auth_enabled=bool(AUTH_SETTINGS["enabled"]),
        queue={"backend": snapshot["backend"]},
        limits={
            "maxFileSize": format_file_size(int(UPLOAD_LIMITS["max_file_size_bytes"])),
            "maxFiles": int(UPLOAD_LIMITS["max_files"]),
            "timeout": f"{int(UPLOAD_LIMITS['request_timeout_seconds']) // 60} minutes",
        },
    )

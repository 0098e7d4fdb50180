"""
FileDrop producer service.

Wires the job queue, intake watcher, retention sweeper and HTTP API into one
FastAPI application. Run with ``filedrop-server`` or ``uvicorn filedrop.main:app``.
"""
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, RedirectResponse
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
import time
import uuid
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, Optional

from filedrop.api import api_router
from filedrop.api.endpoints.status import health as health_probe
from filedrop.config import AUTH_SETTINGS, LOGGING_SETTINGS, SERVER_SETTINGS, VERSION, WATCHER_SETTINGS
from filedrop.errors import FileDropError, NotFoundError, QueueStoreError, Unauthorized, UploadRejected
from filedrop.jobs import JobQueue, create_store
from filedrop.models.schemas import HealthResponse
from filedrop.services import IntakeWatcher, JobService, RetentionSweeper
from filedrop.utils import setup_logging, get_logger

setup_logging(
    log_level=str(LOGGING_SETTINGS["level"]),
    log_file=LOGGING_SETTINGS["file"],
    enable_console=True
)

logger = get_logger(__name__)

API_PREFIX = str(SERVER_SETTINGS["api_prefix"])
REQUEST_ID_HEADER = "X-Request-ID"


def error_status_code(exc: FileDropError) -> int:
    """HTTP status for a domain error."""
    if isinstance(exc, NotFoundError):
        return 404
    if isinstance(exc, Unauthorized):
        return 401
    if isinstance(exc, UploadRejected):
        return 400
    if isinstance(exc, QueueStoreError):
        return 503
    return 500


def build_services(upload_dir: Path) -> JobService:
    upload_dir.mkdir(parents=True, exist_ok=True)
    # Redis unreachable here is fatal unless the memory fallback is enabled
    queue = JobQueue(create_store())
    return JobService(queue, upload_dir)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start intake and retention around the app's lifetime; stop them on shutdown."""
    upload_dir = Path(str(SERVER_SETTINGS["upload_path"]))
    logger.info("FileDrop starting", version=VERSION, upload_path=str(upload_dir))

    watcher: Optional[IntakeWatcher] = None
    sweeper: Optional[RetentionSweeper] = None
    try:
        service = build_services(upload_dir)
        app.state.job_service = service  # type: ignore[attr-defined]
        app.state.started_at = time.monotonic()  # type: ignore[attr-defined]

        if WATCHER_SETTINGS.get("enabled", True):
            watcher = IntakeWatcher(service)
            watcher.start()
        else:
            logger.info("File watcher disabled; uploads only")
        app.state.intake_watcher = watcher  # type: ignore[attr-defined]

        sweeper = RetentionSweeper(upload_dir)
        sweeper.start()

        if AUTH_SETTINGS["enabled"] and not AUTH_SETTINGS.get("api_key"):
            logger.warning("Authentication enabled but no API key configured; every protected request will be rejected")

        logger.info(
            "FileDrop ready",
            upload_path=str(upload_dir.resolve()),
            queue_backend=service.queue.backend,
            pending=service.queue.depth(),
            auth_enabled=bool(AUTH_SETTINGS["enabled"]),
        )
        yield
    except Exception as e:  # pragma: no cover
        logger.error("FileDrop startup failed", error=str(e), exc_info=True)
        raise
    finally:
        if watcher is not None:
            watcher.stop()
        if sweeper is not None:
            sweeper.stop()
        logger.info("FileDrop stopped")


app = FastAPI(
    title="FileDrop",
    description="""
    File distribution service.

    ## Flow
    * **Intake** - files dropped into the upload directory or posted to `/api/upload` become pending jobs
    * **Distribution** - sync clients poll `/api/jobs/pending`, download and mark jobs complete
    * **Retention** - stored files older than the retention window are swept

    ## Authentication
    When enabled, send the shared key in the `X-API-Key` header.
    """,
    version=VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url=f"{API_PREFIX}/openapi.json",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=str(SERVER_SETTINGS["cors_origins"]).split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def request_context(request: Request, call_next):
    """Tag every request with an id and log how long it took."""
    request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
    request.state.request_id = request_id
    started = time.perf_counter()

    logger.debug(
        "Request received",
        method=request.method,
        path=request.url.path,
        client=request.client.host if request.client else "unknown",
        request_id=request_id
    )

    response = await call_next(request)

    elapsed_ms = round((time.perf_counter() - started) * 1000, 2)
    response.headers[REQUEST_ID_HEADER] = request_id
    response.headers["X-Process-Time"] = str(elapsed_ms)
    response.headers["X-Content-Type-Options"] = "nosniff"

    logger.info(
        "Request handled",
        method=request.method,
        path=request.url.path,
        status_code=response.status_code,
        process_time_ms=elapsed_ms,
        request_id=request_id
    )
    return response


def _error_response(
    request: Request,
    status_code: int,
    message: Any,
    code: Optional[str] = None,
    **extra: Any,
) -> JSONResponse:
    """Every failure leaves the API as ``{success: false, message, code?, request_id}``."""
    request_id = getattr(request.state, "request_id", "unknown")
    body: dict[str, Any] = {"success": False, "message": message}
    if code:
        body["code"] = code
    body.update(extra)
    body["request_id"] = request_id
    return JSONResponse(status_code=status_code, content=body)


@app.exception_handler(FileDropError)
async def filedrop_exception_handler(request: Request, exc: FileDropError):
    status_code = error_status_code(exc)
    log = logger.error if status_code >= 500 else logger.warning
    log(
        "Request failed",
        error=exc.message,
        code=exc.code,
        status_code=status_code,
        path=request.url.path,
        request_id=getattr(request.state, "request_id", None)
    )
    return _error_response(request, status_code, exc.message, exc.code)


def jsonable_errors(exc: RequestValidationError) -> list:
    # ctx may carry exception instances that json cannot encode
    return [{k: v for k, v in err.items() if k != "ctx"} for err in exc.errors()]


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    details = jsonable_errors(exc)
    logger.warning("Request validation failed", errors=details, path=request.url.path)
    return _error_response(request, 422, "Request validation failed", "VALIDATION_ERROR", details=details)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    logger.warning("HTTP error", status_code=exc.status_code, detail=exc.detail, path=request.url.path)
    return _error_response(request, exc.status_code, exc.detail)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(
        "Unhandled exception",
        error=str(exc),
        error_type=type(exc).__name__,
        path=request.url.path,
        request_id=getattr(request.state, "request_id", None),
        exc_info=True
    )
    return _error_response(request, 500, "Internal server error")


# Unprefixed liveness probe for load balancers
@app.get("/health", tags=["health"], response_model=HealthResponse, summary="Basic health check")
def health_check() -> HealthResponse:
    return health_probe()


@app.get("/", include_in_schema=False)
async def root():
    return RedirectResponse(url=f"{API_PREFIX}/status")


app.include_router(api_router, prefix=API_PREFIX)


def run() -> None:
    """Console entry point: serve the app with uvicorn."""
    import uvicorn

    logger.info("Starting FileDrop server", host=SERVER_SETTINGS["host"], port=SERVER_SETTINGS["port"])
    uvicorn.run(
        "filedrop.main:app",
        host=str(SERVER_SETTINGS["host"]),
        port=int(SERVER_SETTINGS["port"]),
        log_level=str(LOGGING_SETTINGS["level"]).lower(),
        access_log=False,
        timeout_keep_alive=int(SERVER_SETTINGS["keep_alive_seconds"]),
    )


if __name__ == "__main__":
    run()

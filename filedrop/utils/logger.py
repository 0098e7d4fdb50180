"""
Logging setup shared by the producer service and the sync client.

Every FileDrop logger lives under the ``filedrop`` namespace and accepts keyword
context (``job_id=..., endpoint=...``). The console shows that context as
``key=value`` pairs. The optional log file gets one JSON object per line.
"""
import logging
import logging.config
import json
import sys
from datetime import datetime, timezone
from typing import Dict, Any, Optional
from pathlib import Path

ROOT_LOGGER = "filedrop"

# Third-party loggers routed through the same handlers, with their own floor.
_ROUTED_LOGGERS = {
    "uvicorn": "INFO",
    "aiohttp": "WARNING",
    "watchdog": "WARNING",  # observer internals are noisy at INFO
}

_LOG_FILE_MAX_BYTES = 10 * 1024 * 1024
_LOG_FILE_BACKUPS = 5


def _context(record: logging.LogRecord) -> Dict[str, Any]:
    return getattr(record, "context", None) or {}


class JSONFormatter(logging.Formatter):
    """One JSON document per record: fixed fields first, then the call's context."""

    def format(self, record: logging.LogRecord) -> str:
        created = datetime.fromtimestamp(record.created, tz=timezone.utc)
        entry: Dict[str, Any] = {
            "timestamp": created.isoformat(timespec="milliseconds").replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "where": f"{record.module}:{record.funcName}:{record.lineno}",
            "pid": record.process,
            "thread": record.threadName,
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        for key, value in _context(record).items():
            entry.setdefault(key, value)
        return json.dumps(entry, ensure_ascii=False, default=str)


class ContextFormatter(logging.Formatter):
    """Console format with the call's context appended as key=value pairs."""

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        context = _context(record)
        if not context:
            return line
        pairs = " ".join(f"{key}={value}" for key, value in context.items())
        return f"{line} | {pairs}"


class StructuredLogger:
    """Thin wrapper that turns keyword arguments into record context."""

    def __init__(self, name: str):
        self.logger = logging.getLogger(name)

    def _emit(self, level: int, message: str, exc_info: bool = False, **context):
        if not self.logger.isEnabledFor(level):
            return
        context = {k: v for k, v in context.items() if v is not None}
        self.logger.log(level, message, exc_info=exc_info, extra={"context": context}, stacklevel=3)

    def debug(self, message: str, **context):
        self._emit(logging.DEBUG, message, **context)

    def info(self, message: str, **context):
        self._emit(logging.INFO, message, **context)

    def warning(self, message: str, **context):
        self._emit(logging.WARNING, message, **context)

    def error(self, message: str, **context):
        self._emit(logging.ERROR, message, **context)


def setup_logging(
    log_level: str = "INFO",
    log_file: Optional[str] = None,
    enable_console: bool = True
) -> None:
    """
    Configure the ``filedrop`` logger tree and the routed third-party loggers.

    Args:
        log_level: Level name for FileDrop's own loggers
        log_file: Rotating JSON log file; its directory is created if needed
        enable_console: Write the human format to stdout
    """
    handlers: Dict[str, Dict[str, Any]] = {}
    if enable_console:
        handlers["console"] = {
            "class": "logging.StreamHandler",
            "stream": sys.stdout,
            "formatter": "console",
        }
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers["file"] = {
            "class": "logging.handlers.RotatingFileHandler",
            "filename": log_file,
            "maxBytes": _LOG_FILE_MAX_BYTES,
            "backupCount": _LOG_FILE_BACKUPS,
            "encoding": "utf-8",
            "formatter": "json",
        }
    names = list(handlers)

    loggers: Dict[str, Dict[str, Any]] = {
        ROOT_LOGGER: {"level": log_level, "handlers": names, "propagate": False},
    }
    for name, floor in _ROUTED_LOGGERS.items():
        loggers[name] = {"level": floor, "handlers": names, "propagate": False}

    logging.config.dictConfig({
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "json": {"()": JSONFormatter},
            "console": {
                "()": ContextFormatter,
                "format": "[%(asctime)s] %(levelname)-7s %(name)s - %(message)s",
                "datefmt": "%H:%M:%S",
            },
        },
        "handlers": handlers,
        "loggers": loggers,
        "root": {"level": "WARNING", "handlers": names},
    })


def get_logger(name: str) -> StructuredLogger:
    """Logger for ``name``, placed under the ``filedrop`` namespace if it is not already."""
    if name == ROOT_LOGGER or name.startswith(f"{ROOT_LOGGER}."):
        return StructuredLogger(name)
    return StructuredLogger(f"{ROOT_LOGGER}.{name}")


def log_business_event(
    event_type: str,
    details: Dict[str, Any],
    request_id: Optional[str] = None
) -> None:
    """
    Record a job lifecycle event on the ``filedrop.audit`` logger.

    Args:
        event_type: e.g. 'job_enqueued', 'job_completed', 'job_synced', 'stale_job_evicted'
        details: Event fields (job id, names, sizes, client id)
        request_id: Request ID when the event came from an HTTP call
    """
    get_logger("audit").info(
        f"Job event: {event_type}",
        event_type=event_type,
        request_id=request_id,
        **details
    )


def log_performance(
    operation: str,
    duration_ms: float,
    additional_data: Optional[Dict[str, Any]] = None
) -> None:
    """Record how long an upload, download or sync transfer took."""
    data = dict(additional_data or {})
    get_logger("performance").info(
        f"Timing: {operation}",
        operation=operation,
        duration_ms=round(duration_ms, 2),
        **data
    )

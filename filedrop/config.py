"""Core application configuration & tunable operational rules.

All settings that may evolve (paths, limits, queue keys, polling cadence,
retry timings, retention) are centralized here so they can be adjusted without
diving into service logic. Values are read from environment variables at import
time; tests monkeypatch the dicts directly.
"""
from __future__ import annotations

import os


def _env_bool(name: str, default: bool) -> bool:
	raw = os.getenv(name)
	if raw is None or not raw.strip():
		return default
	return raw.strip().lower() in ("1", "true", "yes", "on")


VERSION: str = "2.1.0"

# --------------------------------- Server --------------------------------- #
SERVER_SETTINGS: dict[str, str | int] = {
	"host": os.getenv("FILEDROP_HOST", "0.0.0.0"),
	"port": int(os.getenv("FILEDROP_PORT", "3000")),
	"upload_path": os.getenv("FILEDROP_UPLOAD_PATH", "./uploads"),
	"api_prefix": "/api",
	"version": VERSION,
	"cors_origins": os.getenv("CORS_ORIGINS", "*"),
	"keep_alive_seconds": int(os.getenv("FILEDROP_KEEP_ALIVE_SECONDS", "5")),
}

# -------------------------------- Logging --------------------------------- #
LOGGING_SETTINGS: dict[str, str | None] = {
	"level": os.getenv("LOG_LEVEL", "INFO").upper(),
	"file": os.getenv("LOG_FILE") or None,
}

# Upload limits enforced by the upload endpoint.
UPLOAD_LIMITS: dict[str, int] = {
	"max_file_size_bytes": 500 * 1024 * 1024,  # 500MB per file
	"max_files": 20,
	"request_timeout_seconds": 10 * 60,
}

# ---------------------------------- Auth ---------------------------------- #
AUTH_SETTINGS: dict[str, str | bool | None] = {
	"enabled": _env_bool("FILEDROP_AUTH_ENABLED", False),
	"api_key": os.getenv("FILEDROP_API_KEY") or None,
	"header_name": "X-API-Key",
}

# -------------------------------- Cleanup --------------------------------- #
CLEANUP_SETTINGS: dict[str, bool | int | float] = {
	"delete_after_download": _env_bool("FILEDROP_DELETE_AFTER_DOWNLOAD", False),
	"keep_files_for_days": float(os.getenv("FILEDROP_KEEP_DAYS", "7")),
	"auto_cleanup_interval_hours": float(os.getenv("FILEDROP_CLEANUP_INTERVAL_HOURS", "24")),  # 0 disables
}

# --------------------------------- Queue ---------------------------------- #
QUEUE_SETTINGS: dict[str, str | int | float | bool] = {
	"use_redis": _env_bool("FILEDROP_USE_REDIS", True),
	"redis_url": os.getenv("REDIS_URL", "redis://localhost:6379/0"),
	"redis_health_check_timeout": 2.0,
	# Fall back to the in-memory store when redis is unreachable at boot.
	"allow_memory_fallback": _env_bool("FILEDROP_ALLOW_MEMORY_FALLBACK", False),
	"pending_key": "filedrop_queue",
	"completed_key": "filedrop_completed",
	"index_key": "filedrop_queue_index",
	"warn_depth": 1000,
	"max_pending_listing": 50,
}

# -------------------------------- Watcher --------------------------------- #
WATCHER_SETTINGS: dict[str, float | bool] = {
	"enabled": _env_bool("FILEDROP_WATCHER_ENABLED", True),
	"stability_threshold_seconds": 1.0,
	"poll_interval_seconds": 0.1,
	"ignore_initial": True,
}

# ------------------------------ Sync (client) ----------------------------- #
SYNC_SETTINGS: dict[str, float | int | str] = {
	"batch_size": 5,
	"inter_endpoint_delay_seconds": 1.0,
	"active_wait_seconds": 5.0,          # fast re-poll while a burst is in progress
	"default_wait_seconds": 30.0,        # no enabled endpoints
	"error_cooldown_seconds": 30.0,      # global loop failure
	"default_download_path": "./downloads",
	"default_poll_interval_ms": 30000,
	"default_max_retries": 3,
	"default_priority": 1,
}

# ---------------------------- Transfer (client) --------------------------- #
TRANSFER_SETTINGS: dict[str, float | int] = {
	"retry_base_seconds": 2.0,           # linear: attempt * base
	"health_timeout_seconds": 5.0,
	"poll_timeout_seconds": 10.0,
	"download_timeout_seconds": 300.0,
	"complete_timeout_seconds": 5.0,
	"chunk_size_bytes": 64 * 1024,
}

__all__ = [
	"VERSION",
	"SERVER_SETTINGS",
	"LOGGING_SETTINGS",
	"UPLOAD_LIMITS",
	"AUTH_SETTINGS",
	"CLEANUP_SETTINGS",
	"QUEUE_SETTINGS",
	"WATCHER_SETTINGS",
	"SYNC_SETTINGS",
	"TRANSFER_SETTINGS",
]

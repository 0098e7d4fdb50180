from .job_service import JobService, DownloadTarget
from .intake_watcher import IntakeWatcher
from .retention import RetentionSweeper, SweepResult

__all__ = ["JobService", "DownloadTarget", "IntakeWatcher", "RetentionSweeper", "SweepResult"]

"""Sync services."""

from .job_control import JobNotFound, SyncJobService
from .sync_orchestrator import PushResult, SyncOrchestrator, SyncOutcome
from .sync_scheduler import SyncScheduler

__all__ = [
    "JobNotFound",
    "PushResult",
    "SyncJobService",
    "SyncOrchestrator",
    "SyncOutcome",
    "SyncScheduler",
]

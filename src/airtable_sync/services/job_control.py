"""Job-control operations behind the sync API."""

from typing import Any, Dict, List, Optional

from shopify_api.config.constants import STATS_WINDOW_SIZE
from shopify_api.core.logger import setup_logger
from airtable_sync.db.models import InvalidJobTransition, JobStatus, SyncJob
from airtable_sync.repositories.job_repository import SyncJobRepository
from airtable_sync.services.sync_scheduler import SyncScheduler

logger = setup_logger(__name__)

DASHBOARD_LIST_SIZE = 5


class JobNotFound(LookupError):
    """No sync job with the given id."""


class SyncJobService:
    """Start/stop the scheduler, trigger syncs and inspect sync jobs."""

    def __init__(self, scheduler: SyncScheduler, job_repository: SyncJobRepository):
        self.scheduler = scheduler
        self.jobs = job_repository

    # Scheduler control

    async def start_scheduler(self) -> Dict[str, Any]:
        started = await self.scheduler.start()
        return {
            "success": True,
            "message": "Sync scheduler started successfully" if started else "Sync scheduler already running",
            "data": self.scheduler.get_status(),
        }

    async def stop_scheduler(self) -> Dict[str, Any]:
        stopped = await self.scheduler.stop()
        return {
            "success": True,
            "message": "Sync scheduler stopped successfully" if stopped else "Sync scheduler was not running",
            "data": self.scheduler.get_status(),
        }

    def get_status(self) -> Dict[str, Any]:
        return self.scheduler.get_status()

    async def trigger_sync(self, metadata: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        return await self.scheduler.trigger_manual_sync(metadata)

    async def push_to_airtable(self) -> Dict[str, Any]:
        """Re-push stored orders to Airtable (no Shopify fetch)."""
        return await self.scheduler.trigger_push()

    # Job queries

    async def get_recent_jobs(self, limit: int = 20) -> List[Dict[str, Any]]:
        return [job.to_dict() for job in await self.jobs.get_recent(limit)]

    async def get_failed_jobs(self, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        return [job.to_dict() for job in await self.jobs.get_failed(limit)]

    async def get_running_jobs(self) -> List[Dict[str, Any]]:
        return [job.to_dict() for job in await self.jobs.get_running()]

    async def _require(self, job_id: str) -> SyncJob:
        job = await self.jobs.get(job_id)
        if job is None:
            raise JobNotFound(f"Sync job {job_id} not found")
        return job

    async def get_job(self, job_id: str) -> Dict[str, Any]:
        return (await self._require(job_id)).to_dict()

    # Job actions

    async def retry_job(self, job_id: str) -> Dict[str, Any]:
        """
        Retry a failed job.

        Raises:
            JobNotFound: Unknown job id
            InvalidJobTransition: Job is not failed or has no retries left
        """
        job = await self._require(job_id)
        if not job.can_retry():
            raise InvalidJobTransition(
                f"Job cannot be retried (status={job.status}, "
                f"retries={job.retry_count}/{job.max_retries})"
            )
        return await self.scheduler.retry_job(job)

    async def cancel_job(self, job_id: str) -> Dict[str, Any]:
        """
        Mark a running job as cancelled. The in-flight cycle is not interrupted.

        Raises:
            JobNotFound: Unknown job id
            InvalidJobTransition: Job is not running
        """
        job = await self._require(job_id)
        job.cancel()
        await self.jobs.save(job)
        logger.info(f"Cancelled sync job {job.id}", extra={"job_id": job.id})
        return {"success": True, "message": "Job cancelled successfully", "data": job.to_dict()}

    # Aggregates

    async def get_stats(self) -> Dict[str, Any]:
        recent = await self.jobs.get_recent(STATS_WINDOW_SIZE)
        failed = await self.jobs.get_failed()
        running = await self.jobs.get_running()

        total = len(recent)
        completed = sum(1 for job in recent if job.status == JobStatus.COMPLETED.value)

        return {
            "total_jobs": total,
            "completed_jobs": completed,
            "failed_jobs": len(failed),
            "running_jobs": len(running),
            "success_rate": round(completed / total * 100, 2) if total else 0,
            "average_duration_ms": (
                sum(job.duration_ms or 0 for job in recent) / total if total else 0
            ),
        }

    async def get_dashboard(self) -> Dict[str, Any]:
        return {
            "status": self.get_status(),
            "stats": await self.get_stats(),
            "recent_jobs": await self.get_recent_jobs(DASHBOARD_LIST_SIZE),
            "failed_jobs": await self.get_failed_jobs(DASHBOARD_LIST_SIZE),
        }

"""
Sync Scheduler using APScheduler.

Manages scheduled sync jobs:
- Full sync: on ``sync_cron`` (every 12 hours by default)
- Retry sweep: on ``retry_cron`` (hourly), re-runs failed jobs that still
  have retries left

Only one sync cycle runs at a time. A request that arrives while a cycle
is in flight is dropped, not queued.
"""

from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from shopify_api.config.constants import RETRY_CRON, SYNC_CRON
from shopify_api.core.logger import setup_logger
from airtable_sync.db.models import SyncJob, TriggeredBy

logger = setup_logger(__name__)

ALREADY_RUNNING_MESSAGE = "Sync job is already running. Please wait for it to complete."

# (triggered_by, metadata, job) -> SyncOutcome
SyncProcedure = Callable[..., Awaitable[Any]]


def _format_time(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


class SyncScheduler:
    """Owns the cron schedule and the single-flight guard."""

    def __init__(
        self,
        sync_procedure: SyncProcedure,
        job_repository,
        sync_cron: str = SYNC_CRON,
        retry_cron: str = RETRY_CRON,
        timezone: str = "UTC",
        push_procedure: Optional[Callable[[], Awaitable[Any]]] = None,
    ):
        self.sync_procedure = sync_procedure
        self.push_procedure = push_procedure
        self.jobs = job_repository
        self.sync_cron = sync_cron
        self.retry_cron = retry_cron
        self.timezone = timezone
        self.scheduler: Optional[AsyncIOScheduler] = None
        self._started = False
        self._is_running = False

    # ------------------------------------------------------------------
    # Single-flight guard
    # ------------------------------------------------------------------

    @property
    def is_running(self) -> bool:
        """True while a sync cycle is in flight."""
        return self._is_running

    def _acquire(self) -> bool:
        # Check and set happen without an await in between
        if self._is_running:
            return False
        self._is_running = True
        return True

    def _release(self) -> None:
        self._is_running = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> bool:
        """
        Start scheduler with configured jobs.

        Returns:
            False if the scheduler was already started
        """
        if self._started:
            logger.warning("Scheduler already started")
            return False

        self.scheduler = AsyncIOScheduler(timezone=self.timezone)

        self.scheduler.add_job(
            self.run_scheduled_sync,
            CronTrigger.from_crontab(self.sync_cron, timezone=self.timezone),
            id="scheduled_sync",
            name="Shopify to Airtable Sync",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        logger.info(f"Added scheduled sync job (cron: {self.sync_cron})")

        self.scheduler.add_job(
            self.retry_failed_jobs,
            CronTrigger.from_crontab(self.retry_cron, timezone=self.timezone),
            id="retry_failed_jobs",
            name="Failed Sync Job Retry Sweep",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        logger.info(f"Added retry sweep job (cron: {self.retry_cron})")

        self.scheduler.start()
        self._started = True
        logger.info("Sync scheduler started")
        return True

    async def stop(self) -> bool:
        """
        Stop the scheduler. A cycle already in flight keeps running.

        Returns:
            False if the scheduler was not started
        """
        if not self._started:
            return False

        self.scheduler.shutdown(wait=False)
        self.scheduler = None
        self._started = False
        logger.info("Sync scheduler stopped")
        return True

    @property
    def scheduler_active(self) -> bool:
        return self._started and self.scheduler is not None and self.scheduler.running

    # ------------------------------------------------------------------
    # Triggers
    # ------------------------------------------------------------------

    async def run_scheduled_sync(self) -> None:
        """Wrapper for scheduled sync with error handling."""
        if not self._acquire():
            logger.warning("Sync job is already running, skipping this execution")
            return

        try:
            logger.info("Scheduled sync triggered")
            outcome = await self.sync_procedure(
                triggered_by=TriggeredBy.SCHEDULED.value, metadata={}, job=None
            )
            if outcome.success:
                logger.info(f"Scheduled sync completed: {outcome.message}")
            else:
                logger.warning(f"Scheduled sync failed: {outcome.message}")
        except Exception as e:
            logger.error(f"Scheduled sync failed: {e}", exc_info=True)
        finally:
            self._release()

    async def trigger_manual_sync(self, metadata: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Run a sync now, outside the schedule.

        Returns:
            Dict with ``success``, ``message`` and, when a job ran, ``job_id``
            and ``data`` (the outcome)
        """
        if not self._acquire():
            logger.warning("Manual sync rejected: a sync is already running")
            return {"success": False, "message": ALREADY_RUNNING_MESSAGE}

        try:
            logger.info("Manually triggering sync job")
            outcome = await self.sync_procedure(
                triggered_by=TriggeredBy.MANUAL.value, metadata=metadata or {}, job=None
            )
            return {
                "success": outcome.success,
                "message": outcome.message,
                "job_id": outcome.job_id,
                "data": outcome.to_dict(),
            }
        except Exception as e:
            logger.error(f"Error in manual sync trigger: {e}", exc_info=True)
            return {"success": False, "message": "Failed to trigger manual sync", "error": str(e)}
        finally:
            self._release()

    async def trigger_push(self) -> Dict[str, Any]:
        """
        Re-push stored orders to Airtable without fetching from Shopify.

        Shares the single-flight guard with full syncs. No sync job is recorded.
        """
        if self.push_procedure is None:
            return {"success": False, "message": "Airtable push is not configured"}

        if not self._acquire():
            logger.warning("Airtable push rejected: a sync is already running")
            return {"success": False, "message": ALREADY_RUNNING_MESSAGE}

        try:
            logger.info("Pushing stored orders to Airtable")
            result = await self.push_procedure()
            failed = len(result.failed_chunks)
            logger.info(
                f"Airtable push finished: {result.created} created, "
                f"{result.updated} updated, {failed} failed chunk(s)"
            )
            return {
                "success": True,
                "message": (
                    "Airtable push completed"
                    if not failed
                    else f"Airtable push completed with {failed} failed chunk(s)"
                ),
                "data": result.to_dict(),
            }
        except Exception as e:
            logger.error(f"Error pushing orders to Airtable: {e}", exc_info=True)
            return {"success": False, "message": "Failed to push orders to Airtable", "error": str(e)}
        finally:
            self._release()

    async def retry_job(self, job: SyncJob) -> Dict[str, Any]:
        """
        Move a failed job back to pending and run it again.

        Returns:
            Dict with ``success`` and ``message``
        """
        if not job.can_retry():
            return {
                "success": False,
                "message": (
                    f"Job cannot be retried (status={job.status}, "
                    f"retries={job.retry_count}/{job.max_retries})"
                ),
            }

        if not self._acquire():
            return {"success": False, "message": ALREADY_RUNNING_MESSAGE}

        try:
            job.increment_retry()
            await self.jobs.save(job)
            logger.info(
                f"Retrying job {job.id} (attempt {job.retry_count}/{job.max_retries})",
                extra={"job_id": job.id},
            )
            outcome = await self.sync_procedure(
                triggered_by=job.triggered_by, metadata=job.job_metadata or {}, job=job
            )
            return {
                "success": outcome.success,
                "message": outcome.message,
                "job_id": job.id,
                "data": outcome.to_dict(),
            }
        finally:
            self._release()

    async def retry_failed_jobs(self) -> Dict[str, int]:
        """
        Retry sweep. Errors on one job are logged and the sweep moves on.

        Returns:
            Counts of ``retried``, ``succeeded`` and ``failed`` jobs
        """
        counts = {"retried": 0, "succeeded": 0, "failed": 0}
        logger.info("Checking for failed jobs to retry")

        try:
            retryable = await self.jobs.get_retryable()
        except Exception as e:
            logger.error(f"Error in retry job scheduler: {e}", exc_info=True)
            return counts

        if not retryable:
            logger.info("No failed jobs to retry")
            return counts

        logger.info(f"Found {len(retryable)} failed job(s) to retry")

        for job in retryable:
            try:
                result = await self.retry_job(job)
                counts["retried"] += 1
                if result["success"]:
                    counts["succeeded"] += 1
                    logger.info(f"Job {job.id} retry successful", extra={"job_id": job.id})
                else:
                    counts["failed"] += 1
                    logger.warning(f"Job {job.id} retry failed: {result['message']}", extra={"job_id": job.id})
            except Exception as e:
                counts["failed"] += 1
                logger.error(f"Error retrying job {job.id}: {e}", exc_info=True)

        return counts

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def _next_run(self, job_id: str) -> Optional[datetime]:
        if not self.scheduler_active:
            return None
        job = self.scheduler.get_job(job_id)
        return job.next_run_time if job else None

    def get_next_scheduled_sync(self) -> Optional[str]:
        return _format_time(self._next_run("scheduled_sync"))

    def get_status(self) -> Dict[str, Any]:
        return {
            "is_running": self._is_running,
            "scheduler_active": self.scheduler_active,
            "next_sync_time": self.get_next_scheduled_sync(),
            "next_retry_sweep": _format_time(self._next_run("retry_failed_jobs")),
            "sync_cron": self.sync_cron,
            "retry_cron": self.retry_cron,
        }

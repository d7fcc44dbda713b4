"""Persistence for sync job records."""

from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from shopify_api.config.constants import JOB_TYPE_FULL_SYNC
from shopify_api.core.logger import setup_logger
from airtable_sync.db.models import JobStatus, SyncJob, TriggeredBy

logger = setup_logger(__name__)


class SyncJobRepository:
    """Data access layer for SyncJob model. Jobs are never deleted."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def create_job(
        self,
        job_type: str = JOB_TYPE_FULL_SYNC,
        triggered_by: str = TriggeredBy.MANUAL.value,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> SyncJob:
        """Insert a new pending job."""
        job = SyncJob(
            job_type=job_type,
            triggered_by=TriggeredBy(triggered_by).value,
            job_metadata=metadata or {},
        )
        async with self.session_factory() as session:
            session.add(job)
            await session.commit()
        logger.info(f"Created sync job {job.id} ({job.triggered_by})", extra={"job_id": job.id})
        return job

    async def save(self, job: SyncJob) -> SyncJob:
        """
        Persist the in-memory job.

        A job cancelled through the API while the cycle was still running
        stays cancelled: the stored status and completion time win over the
        in-memory copy, counters and errors are still written.
        """
        async with self.session_factory() as session:
            stored = await session.get(SyncJob, job.id)
            if (
                stored is not None
                and stored.status == JobStatus.CANCELLED.value
                and job.status != JobStatus.CANCELLED.value
            ):
                job.status = stored.status
                job.completed_at = stored.completed_at
                job.duration_ms = stored.duration_ms

            merged = await session.merge(job)
            await session.commit()
            await session.refresh(merged)

        job.updated_at = merged.updated_at
        return job

    async def get(self, job_id: str) -> Optional[SyncJob]:
        async with self.session_factory() as session:
            return await session.get(SyncJob, job_id)

    async def get_recent(self, limit: int = 20) -> List[SyncJob]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(SyncJob).order_by(SyncJob.created_at.desc()).limit(limit)
            )
            return list(result.scalars().all())

    async def get_failed(self, limit: Optional[int] = None) -> List[SyncJob]:
        async with self.session_factory() as session:
            query = (
                select(SyncJob)
                .where(SyncJob.status == JobStatus.FAILED.value)
                .order_by(SyncJob.created_at.desc())
            )
            if limit:
                query = query.limit(limit)
            result = await session.execute(query)
            return list(result.scalars().all())

    async def get_running(self) -> List[SyncJob]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(SyncJob)
                .where(SyncJob.status == JobStatus.RUNNING.value)
                .order_by(SyncJob.created_at.desc())
            )
            return list(result.scalars().all())

    async def get_retryable(self) -> List[SyncJob]:
        """Failed jobs that still have retries left, oldest first."""
        async with self.session_factory() as session:
            result = await session.execute(
                select(SyncJob)
                .where(
                    SyncJob.status == JobStatus.FAILED.value,
                    SyncJob.retry_count < SyncJob.max_retries,
                )
                .order_by(SyncJob.created_at.asc())
            )
            return list(result.scalars().all())

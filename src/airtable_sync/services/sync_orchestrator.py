"""
Sync Orchestrator for Shopify -> Airtable order sync.

Runs one full cycle as a sequence of stages, each tracked on a SyncJob:

1. shopify_fetch    - page through every Shopify order
2. database_upsert  - idempotent upsert into the intermediate store
3. airtable_sync    - push create/update batches of at most 10 records

A stage failure is terminal for the cycle; the job is always left in a
terminal state with the failing stage recorded in its error list.
"""

import asyncio
import json
import time
import traceback
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional

from shopify_api.config.constants import (
    AIRTABLE_BATCH_DELAY_SECONDS,
    AIRTABLE_MAX_RECORDS_PER_REQUEST,
    AIRTABLE_RATE_LIMIT_BACKOFF_SECONDS,
    DEFAULT_AIRTABLE_TABLE,
    JOB_TYPE_FULL_SYNC,
    ORDER_PAGE_SIZE,
    STAGE_AIRTABLE_SYNC,
    STAGE_CRITICAL,
    STAGE_DATABASE_UPSERT,
    STAGE_SHOPIFY_FETCH,
    STAGE_TIMEOUT_SECONDS,
)
from shopify_api.core.errors import ApiResult, ErrorType
from shopify_api.core.logger import setup_logger
from shopify_api.core.monitoring import capture_exception, capture_message, set_sync_context
from airtable_sync.db.models import SyncJob, TriggeredBy
from airtable_sync.services.field_derivation import (
    COL_ORDER_NUMBER,
    ExistingRecord,
    NewRecord,
    extract_legacy_id,
    to_airtable_record,
)

logger = setup_logger(__name__)


@dataclass
class PushResult:
    """Outcome of pushing stored orders to Airtable."""

    to_create: int = 0
    to_update: int = 0
    created: int = 0
    updated: int = 0
    create_batches: int = 0
    update_batches: int = 0
    references_set: int = 0
    failed_chunks: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class SyncOutcome:
    """Result of one ``run_full_sync`` call."""

    success: bool
    message: str
    job_id: Optional[str] = None
    status: Optional[str] = None
    stage: Optional[str] = None
    error: Optional[Dict[str, Any]] = None
    summary: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class StageFailed(Exception):
    """A stage ended the cycle."""

    def __init__(self, stage: str, message: str, stack: Optional[str] = None,
                 error: Optional[Dict[str, Any]] = None, exc: Optional[BaseException] = None):
        super().__init__(message)
        self.stage = stage
        self.message = message
        self.stack = stack
        self.error = error
        self.exc = exc


def chunked(items: List[Any], size: int = AIRTABLE_MAX_RECORDS_PER_REQUEST) -> List[List[Any]]:
    return [items[i:i + size] for i in range(0, len(items), size)]


class SyncOrchestrator:
    """Coordinates fetch -> upsert -> push and records it on a SyncJob."""

    def __init__(
        self,
        shopify_client,
        airtable_client,
        store,
        job_repository,
        table_name: str = DEFAULT_AIRTABLE_TABLE,
        page_size: int = ORDER_PAGE_SIZE,
        batch_delay: float = AIRTABLE_BATCH_DELAY_SECONDS,
        stage_timeout: Optional[float] = STAGE_TIMEOUT_SECONDS,
        rate_limit_retries: int = 0,
        rate_limit_backoff: float = AIRTABLE_RATE_LIMIT_BACKOFF_SECONDS,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.shopify = shopify_client
        self.airtable = airtable_client
        self.store = store
        self.jobs = job_repository
        self.table_name = table_name
        self.page_size = page_size
        self.batch_delay = batch_delay
        self.stage_timeout = stage_timeout
        self.rate_limit_retries = rate_limit_retries
        self.rate_limit_backoff = rate_limit_backoff
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    async def _wait(self, seconds: float) -> None:
        if seconds > 0:
            await asyncio.sleep(seconds)

    async def _run_stage(self, job: SyncJob, stage: str, work: Awaitable[Any]) -> Any:
        """Await one stage under the stage deadline; any exception becomes StageFailed."""
        set_sync_context(job.id, job.triggered_by, stage)
        logger.info(f"Stage {stage} started", extra={"job_id": job.id, "stage": stage})
        try:
            if self.stage_timeout:
                return await asyncio.wait_for(work, timeout=self.stage_timeout)
            return await work
        except asyncio.TimeoutError as e:
            raise StageFailed(
                stage,
                f"Stage {stage} timed out after {self.stage_timeout}s",
                stack=traceback.format_exc(),
                exc=e,
            )
        except StageFailed:
            raise
        except Exception as e:
            raise StageFailed(stage, str(e) or type(e).__name__, stack=traceback.format_exc(), exc=e)

    # ------------------------------------------------------------------
    # Full cycle
    # ------------------------------------------------------------------

    async def run_full_sync(
        self,
        triggered_by: str = TriggeredBy.MANUAL.value,
        metadata: Optional[Dict[str, Any]] = None,
        job: Optional[SyncJob] = None,
    ) -> SyncOutcome:
        """
        Run one complete sync cycle.

        Args:
            triggered_by: manual, scheduled or webhook
            metadata: Free-form metadata stored on a new job
            job: Existing pending job to run (retry); a new job is created otherwise

        Returns:
            SyncOutcome describing how the job ended
        """
        started = time.monotonic()

        try:
            if job is None:
                job = await self.jobs.create_job(JOB_TYPE_FULL_SYNC, triggered_by, metadata)
            job.mark_running()
            await self.jobs.save(job)
            logger.info(
                f"Starting sync job {job.id} (triggered by {job.triggered_by}, retry {job.retry_count})",
                extra={"job_id": job.id},
            )

            # Stage 1: fetch
            fetch: ApiResult = await self._run_stage(
                job, STAGE_SHOPIFY_FETCH, self.shopify.fetch_all_orders(self.page_size)
            )
            if not fetch.success:
                error = fetch.error
                raise StageFailed(
                    STAGE_SHOPIFY_FETCH,
                    error.user_message or error.message or "Failed to fetch orders from Shopify",
                    stack=json.dumps(error.to_dict(), default=str),
                    error=error.to_dict(),
                )
            orders = fetch.data.get("orders") or []
            job.shopify_orders_fetched = len(orders)
            await self.jobs.save(job)
            logger.info(f"Fetched {len(orders)} orders from Shopify", extra={"job_id": job.id})

            # Stage 2: upsert
            upsert = await self._run_stage(job, STAGE_DATABASE_UPSERT, self.store.upsert_orders(orders))
            job.shopify_orders_upserted = upsert.upserted
            await self.jobs.save(job)
            logger.info(
                f"Upserted {upsert.upserted} orders ({upsert.created} created, "
                f"{upsert.updated} updated, {upsert.errors} errors)",
                extra={"job_id": job.id},
            )

            # Stage 3: push
            push: PushResult = await self._run_stage(job, STAGE_AIRTABLE_SYNC, self.push_to_airtable())
            job.airtable_records_created = push.created
            job.airtable_records_updated = push.updated
            await self.jobs.save(job)

            if push.failed_chunks:
                capture_message(
                    f"{len(push.failed_chunks)} Airtable batch(es) failed in job {job.id}",
                    level="warning",
                    context={"job_id": job.id, "failed_chunks": push.failed_chunks},
                )

            summary = {
                "shopify_orders_fetched": job.shopify_orders_fetched,
                "shopify_orders_upserted": job.shopify_orders_upserted,
                "upsert_errors": upsert.errors,
                "airtable_records_created": push.created,
                "airtable_records_updated": push.updated,
                "airtable_failed_batches": len(push.failed_chunks),
                "elapsed_ms": int((time.monotonic() - started) * 1000),
            }
            finished = job.mark_completed(summary)
            await self.jobs.save(job)

            if not finished:
                logger.warning(f"Sync job {job.id} finished after being cancelled", extra={"job_id": job.id})
                return SyncOutcome(
                    success=False,
                    message="Sync finished but the job had been cancelled",
                    job_id=job.id,
                    status=job.status,
                    summary=summary,
                )

            logger.info(
                f"Sync job {job.id} completed in {summary['elapsed_ms']}ms: "
                f"{push.created} created, {push.updated} updated in Airtable",
                extra={"job_id": job.id},
            )
            return SyncOutcome(
                success=True,
                message="Sync completed successfully",
                job_id=job.id,
                status=job.status,
                summary=summary,
            )

        except StageFailed as failure:
            return await self._fail(job, failure)
        except Exception as e:
            logger.error(f"Critical error in sync job: {e}", exc_info=True)
            failure = StageFailed(STAGE_CRITICAL, str(e) or type(e).__name__,
                                  stack=traceback.format_exc(), exc=e)
            return await self._fail(job, failure)

    async def _fail(self, job: Optional[SyncJob], failure: StageFailed) -> SyncOutcome:
        logger.error(
            f"Sync failed at stage {failure.stage}: {failure.message}",
            extra={"job_id": job.id} if job else {},
        )
        context = {"stage": failure.stage, "job_id": job.id if job else None}
        if failure.exc is not None:
            capture_exception(failure.exc, context=context)
        else:
            capture_message(f"Sync failed at stage {failure.stage}: {failure.message}",
                            level="error", context=context)

        if job is None:
            return SyncOutcome(success=False, message=failure.message, stage=failure.stage,
                               error=failure.error)

        try:
            job.mark_failed({"stage": failure.stage, "message": failure.message, "stack": failure.stack})
            await self.jobs.save(job)
        except Exception as e:
            logger.error(f"Could not record failure on job {job.id}: {e}", exc_info=True)

        return SyncOutcome(
            success=False,
            message=failure.message,
            job_id=job.id,
            status=job.status,
            stage=failure.stage,
            error=failure.error,
        )

    # ------------------------------------------------------------------
    # Airtable push
    # ------------------------------------------------------------------

    async def push_to_airtable(self) -> PushResult:
        """
        Push every stored order to Airtable.

        Orders without a stored record id are created, the rest are updated.
        Each partition is sent in chunks of at most 10, one chunk at a time,
        with ``batch_delay`` between chunks. A failed chunk is recorded and the
        push moves on. Created records are linked back to their order through
        the legacy id embedded in the "Order Number" column.
        """
        orders = await self.store.get_all_orders()
        now = self.clock()

        new_records: List[NewRecord] = []
        existing_records: List[ExistingRecord] = []
        for order in orders:
            record = to_airtable_record(order, now)
            if isinstance(record, ExistingRecord):
                existing_records.append(record)
            else:
                new_records.append(record)

        result = PushResult(to_create=len(new_records), to_update=len(existing_records))

        create_chunks = chunked(new_records)
        result.create_batches = len(create_chunks)
        if create_chunks:
            logger.info(f"Creating {len(new_records)} records in {len(create_chunks)} batch(es)")

        for index, chunk in enumerate(create_chunks):
            logger.info(f"Processing create batch {index + 1}/{len(create_chunks)} ({len(chunk)} records)")
            response = await self._push_chunk(self.airtable.create_batch, chunk)

            if response.success:
                for record in (response.data or {}).get("records") or []:
                    result.created += 1
                    legacy_id = extract_legacy_id((record.get("fields") or {}).get(COL_ORDER_NUMBER))
                    if legacy_id and record.get("id"):
                        if await self.store.set_airtable_reference(legacy_id, record["id"], self.table_name):
                            result.references_set += 1
            else:
                result.failed_chunks.append(self._chunk_failure("create", index, chunk, response))

            if index < len(create_chunks) - 1:
                await self._wait(self.batch_delay)

        update_chunks = chunked(existing_records)
        result.update_batches = len(update_chunks)
        if update_chunks:
            logger.info(f"Updating {len(existing_records)} records in {len(update_chunks)} batch(es)")

        for index, chunk in enumerate(update_chunks):
            logger.info(f"Processing update batch {index + 1}/{len(update_chunks)} ({len(chunk)} records)")
            response = await self._push_chunk(self.airtable.upsert_batch, chunk)

            if response.success:
                result.updated += len((response.data or {}).get("records") or [])
            else:
                result.failed_chunks.append(self._chunk_failure("update", index, chunk, response))

            if index < len(update_chunks) - 1:
                await self._wait(self.batch_delay)

        logger.info(
            f"Airtable push done: {result.created}/{result.to_create} created, "
            f"{result.updated}/{result.to_update} updated, {len(result.failed_chunks)} failed batch(es)"
        )
        return result

    async def _push_chunk(self, send, chunk) -> ApiResult:
        payload = [record.payload() for record in chunk]
        attempts = 0
        while True:
            response = await send(self.table_name, payload)
            if (
                response.success
                or response.error.type != ErrorType.RATE_LIMIT_EXCEEDED
                or attempts >= self.rate_limit_retries
            ):
                return response
            attempts += 1
            logger.warning(
                f"Airtable rate limit hit, retrying batch in {self.rate_limit_backoff}s "
                f"(attempt {attempts}/{self.rate_limit_retries})"
            )
            await self._wait(self.rate_limit_backoff)

    @staticmethod
    def _chunk_failure(operation: str, index: int, chunk, response: ApiResult) -> Dict[str, Any]:
        error = response.error
        logger.error(f"Airtable {operation} batch {index + 1} failed: {error.type.value} - {error.message}")
        return {
            "operation": operation,
            "batch": index + 1,
            "size": len(chunk),
            "error": error.to_dict(),
        }


import asyncio

import pytest

from airtable_sync.services.sync_orchestrator import PushResult, SyncOutcome
from airtable_sync.services.sync_scheduler import ALREADY_RUNNING_MESSAGE, SyncScheduler


class FakeSync:
    """Stands in for SyncOrchestrator.run_full_sync and records calls."""

    def __init__(self, job_repository, results=None):
        self.jobs = job_repository
        self.results = list(results or [])
        self.calls = []
        self.gate = None

    async def __call__(self, triggered_by, metadata, job=None):
        self.calls.append({"triggered_by": triggered_by, "metadata": metadata, "job": job})
        if job is None:
            job = await self.jobs.create_job(triggered_by=triggered_by, metadata=metadata)
        job.mark_running()
        await self.jobs.save(job)

        if self.gate is not None:
            await self.gate.wait()

        result = self.results.pop(0) if self.results else True
        if isinstance(result, Exception):
            raise result
        if result:
            job.mark_completed({})
        else:
            job.mark_failed({"stage": "shopify_fetch", "message": "upstream down"})
        await self.jobs.save(job)
        return SyncOutcome(success=bool(result), message="done" if result else "upstream down",
                           job_id=job.id, status=job.status)


async def _wait_for_calls(fake: FakeSync, count: int = 1) -> None:
    for _ in range(200):
        if len(fake.calls) >= count:
            return
        await asyncio.sleep(0.01)
    raise AssertionError("sync procedure was not called")


async def _failed_job(job_repository, **attrs):
    job = await job_repository.create_job(triggered_by="scheduled")
    for key, value in attrs.items():
        setattr(job, key, value)
    job.mark_running()
    job.mark_failed({"stage": "airtable_sync", "message": "boom"})
    await job_repository.save(job)
    return job


@pytest.mark.asyncio
async def test_manual_trigger_runs_sync(job_repository) -> None:
    fake = FakeSync(job_repository)
    scheduler = SyncScheduler(fake, job_repository)

    result = await scheduler.trigger_manual_sync({"requested_by": "ops"})

    assert result["success"] is True
    assert result["job_id"]
    assert fake.calls[0]["triggered_by"] == "manual"
    assert fake.calls[0]["metadata"] == {"requested_by": "ops"}
    assert scheduler.is_running is False


@pytest.mark.asyncio
async def test_manual_trigger_rejected_while_running(job_repository) -> None:
    fake = FakeSync(job_repository)
    fake.gate = asyncio.Event()
    scheduler = SyncScheduler(fake, job_repository)

    in_flight = asyncio.create_task(scheduler.run_scheduled_sync())
    await _wait_for_calls(fake)
    assert scheduler.is_running is True

    result = await scheduler.trigger_manual_sync({})

    assert result == {"success": False, "message": ALREADY_RUNNING_MESSAGE}
    fake.gate.set()
    await in_flight

    jobs = await job_repository.get_recent()
    assert len(jobs) == 1
    assert jobs[0].triggered_by == "scheduled"
    assert jobs[0].status == "completed"
    assert scheduler.is_running is False


@pytest.mark.asyncio
async def test_scheduled_sync_skipped_while_running(job_repository) -> None:
    fake = FakeSync(job_repository)
    fake.gate = asyncio.Event()
    scheduler = SyncScheduler(fake, job_repository)

    in_flight = asyncio.create_task(scheduler.trigger_manual_sync())
    await _wait_for_calls(fake)
    await scheduler.run_scheduled_sync()
    fake.gate.set()
    await in_flight

    assert len(fake.calls) == 1


@pytest.mark.asyncio
async def test_guard_released_after_procedure_raises(job_repository) -> None:
    fake = FakeSync(job_repository, results=[RuntimeError("kaboom")])
    scheduler = SyncScheduler(fake, job_repository)

    await scheduler.run_scheduled_sync()
    result = await scheduler.trigger_manual_sync()

    assert result["success"] is True
    assert scheduler.is_running is False


@pytest.mark.asyncio
async def test_retry_sweep_reruns_failed_job(job_repository) -> None:
    job = await _failed_job(job_repository)
    fake = FakeSync(job_repository)
    scheduler = SyncScheduler(fake, job_repository)

    counts = await scheduler.retry_failed_jobs()

    assert counts == {"retried": 1, "succeeded": 1, "failed": 0}
    assert fake.calls[0]["job"].id == job.id
    assert fake.calls[0]["triggered_by"] == "scheduled"
    stored = await job_repository.get(job.id)
    assert stored.status == "completed"
    assert stored.retry_count == 1
    assert len(await job_repository.get_recent()) == 1


@pytest.mark.asyncio
async def test_retry_sweep_respects_max_retries(job_repository) -> None:
    job = await _failed_job(job_repository)
    fake = FakeSync(job_repository, results=[False, False, False, False])
    scheduler = SyncScheduler(fake, job_repository)

    for _ in range(4):
        await scheduler.retry_failed_jobs()

    stored = await job_repository.get(job.id)
    assert stored.status == "failed"
    assert stored.retry_count == 3
    assert stored.can_retry() is False
    assert len(fake.calls) == 3
    assert await job_repository.get_retryable() == []


@pytest.mark.asyncio
async def test_exhausted_job_excluded_from_sweep(job_repository) -> None:
    await _failed_job(job_repository, retry_count=3)
    fake = FakeSync(job_repository)
    scheduler = SyncScheduler(fake, job_repository)

    counts = await scheduler.retry_failed_jobs()

    assert counts["retried"] == 0
    assert fake.calls == []


@pytest.mark.asyncio
async def test_sweep_continues_after_job_error(job_repository) -> None:
    first = await _failed_job(job_repository)
    second = await _failed_job(job_repository)
    fake = FakeSync(job_repository, results=[RuntimeError("kaboom"), True])
    scheduler = SyncScheduler(fake, job_repository)

    counts = await scheduler.retry_failed_jobs()

    assert counts == {"retried": 1, "succeeded": 1, "failed": 1}
    assert [c["job"].id for c in fake.calls] == [first.id, second.id]
    assert (await job_repository.get(second.id)).status == "completed"


@pytest.mark.asyncio
async def test_start_and_stop_are_idempotent(job_repository) -> None:
    scheduler = SyncScheduler(FakeSync(job_repository), job_repository)

    assert scheduler.get_status()["scheduler_active"] is False
    assert await scheduler.start() is True
    assert await scheduler.start() is False

    status = scheduler.get_status()
    assert status["scheduler_active"] is True
    assert status["is_running"] is False
    assert status["next_sync_time"] is not None
    assert status["next_retry_sweep"] is not None

    assert await scheduler.stop() is True
    assert await scheduler.stop() is False
    assert scheduler.get_status()["next_sync_time"] is None

    assert await scheduler.start() is True
    assert await scheduler.stop() is True


@pytest.mark.asyncio
async def test_push_runs_through_guard(job_repository) -> None:
    pushes = []

    async def push():
        pushes.append(True)
        return PushResult(to_create=3, created=3, create_batches=1)

    scheduler = SyncScheduler(FakeSync(job_repository), job_repository, push_procedure=push)

    result = await scheduler.trigger_push()

    assert result["success"] is True
    assert result["data"]["created"] == 3
    assert pushes == [True]
    assert scheduler.is_running is False
    assert await job_repository.get_recent() == []


@pytest.mark.asyncio
async def test_push_rejected_while_sync_runs(job_repository) -> None:
    pushes = []

    async def push():
        pushes.append(True)
        return PushResult()

    fake = FakeSync(job_repository)
    fake.gate = asyncio.Event()
    scheduler = SyncScheduler(fake, job_repository, push_procedure=push)

    in_flight = asyncio.create_task(scheduler.run_scheduled_sync())
    await _wait_for_calls(fake)

    result = await scheduler.trigger_push()

    assert result == {"success": False, "message": ALREADY_RUNNING_MESSAGE}
    assert pushes == []
    fake.gate.set()
    await in_flight


@pytest.mark.asyncio
async def test_push_failure_releases_guard(job_repository) -> None:
    async def push():
        raise RuntimeError("store unavailable")

    scheduler = SyncScheduler(FakeSync(job_repository), job_repository, push_procedure=push)

    result = await scheduler.trigger_push()

    assert result["success"] is False
    assert result["error"] == "store unavailable"
    assert scheduler.is_running is False

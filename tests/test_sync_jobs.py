import pytest

from airtable_sync.db.models import InvalidJobTransition, SyncJob


def _failed_job(**kwargs) -> SyncJob:
    job = SyncJob(**kwargs)
    job.mark_running()
    job.mark_failed({"stage": "shopify_fetch", "message": "boom"})
    return job


def test_new_job_defaults() -> None:
    job = SyncJob()

    assert job.status == "pending"
    assert job.job_type == "full_sync"
    assert job.retry_count == 0
    assert job.max_retries == 3
    assert job.errors == []
    assert job.triggered_by == "manual"


def test_lifecycle_sets_completion_once() -> None:
    job = SyncJob()
    job.mark_running()
    assert job.status == "running"
    assert job.started_at is not None

    assert job.mark_completed({"elapsed_ms": 5}) is True
    assert job.status == "completed"
    assert job.completed_at is not None
    assert job.duration_ms >= 0

    with pytest.raises(InvalidJobTransition):
        job.mark_completed()
    with pytest.raises(InvalidJobTransition):
        job.mark_failed({"stage": "x", "message": "y"})
    with pytest.raises(InvalidJobTransition):
        job.mark_running()


def test_failure_records_stage_tagged_error() -> None:
    job = _failed_job()

    assert job.status == "failed"
    assert len(job.errors) == 1
    error = job.errors[0]
    assert error["stage"] == "shopify_fetch"
    assert error["message"] == "boom"
    assert "timestamp" in error
    assert job.last_error == error


def test_retry_moves_failed_back_to_pending() -> None:
    job = _failed_job()

    assert job.can_retry() is True
    job.increment_retry()

    assert job.status == "pending"
    assert job.retry_count == 1
    assert job.last_retry_at is not None
    assert job.completed_at is None
    assert job.duration_ms is None
    assert len(job.errors) == 1


def test_retry_bound() -> None:
    job = _failed_job(retry_count=3, max_retries=3)

    assert job.can_retry() is False
    with pytest.raises(InvalidJobTransition):
        job.increment_retry()


def test_only_failed_jobs_can_retry() -> None:
    job = SyncJob()
    assert job.can_retry() is False
    job.mark_running()
    assert job.can_retry() is False


def test_cancel_only_running() -> None:
    pending = SyncJob()
    with pytest.raises(InvalidJobTransition):
        pending.cancel()

    running = SyncJob()
    running.mark_running()
    running.cancel()
    assert running.status == "cancelled"
    assert running.completed_at is not None

    # The in-flight cycle finishing later does not overwrite the cancellation
    assert running.mark_completed({}) is False
    assert running.mark_failed({"stage": "airtable_sync", "message": "late"}) is False
    assert running.status == "cancelled"
    assert running.errors[-1]["message"] == "late"


@pytest.mark.asyncio
async def test_repository_create_and_get(job_repository) -> None:
    job = await job_repository.create_job("full_sync", "scheduled", {"reason": "cron"})

    stored = await job_repository.get(job.id)
    assert stored.status == "pending"
    assert stored.triggered_by == "scheduled"
    assert stored.job_metadata == {"reason": "cron"}
    assert await job_repository.get("missing") is None


@pytest.mark.asyncio
async def test_repository_rejects_unknown_trigger(job_repository) -> None:
    with pytest.raises(ValueError):
        await job_repository.create_job("full_sync", "cosmic rays")


@pytest.mark.asyncio
async def test_repository_queries(job_repository) -> None:
    completed = await job_repository.create_job()
    completed.mark_running()
    completed.mark_completed({})
    await job_repository.save(completed)

    retryable = await job_repository.create_job()
    retryable.mark_running()
    retryable.mark_failed({"stage": "shopify_fetch", "message": "x"})
    await job_repository.save(retryable)

    exhausted = await job_repository.create_job()
    exhausted.max_retries = 0
    exhausted.mark_running()
    exhausted.mark_failed({"stage": "shopify_fetch", "message": "x"})
    await job_repository.save(exhausted)

    running = await job_repository.create_job()
    running.mark_running()
    await job_repository.save(running)

    assert len(await job_repository.get_recent(10)) == 4
    assert len(await job_repository.get_recent(2)) == 2
    assert {j.id for j in await job_repository.get_failed()} == {retryable.id, exhausted.id}
    assert [j.id for j in await job_repository.get_running()] == [running.id]
    assert [j.id for j in await job_repository.get_retryable()] == [retryable.id]


@pytest.mark.asyncio
async def test_save_keeps_cancellation_made_elsewhere(job_repository) -> None:
    job = await job_repository.create_job()
    job.mark_running()
    await job_repository.save(job)

    # Cancelled through the API on a separate copy
    copy = await job_repository.get(job.id)
    copy.cancel()
    await job_repository.save(copy)

    job.airtable_records_created = 7
    await job_repository.save(job)
    assert job.mark_completed({}) is False

    stored = await job_repository.get(job.id)
    assert stored.status == "cancelled"
    assert stored.airtable_records_created == 7

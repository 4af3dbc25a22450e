import asyncio
from datetime import UTC, datetime, timedelta

import pytest

from citation_sync.jobs.citation_queue_job import CitationQueueJob, CitationQueueJobError
from citation_sync.models.domain.citation_domain import SubmitResult


@pytest.mark.asyncio
async def test_run_once_drains_and_finalizes(harness):
    harness.clients["foursquare"].script("submit", SubmitResult(success=False, error="busy"))
    await harness.service.queue_bulk_submission(["dom-1"], ["foursquare"], "Nightly")
    job = CitationQueueJob(harness.service, batch_size=5)

    first = await job.run_once()
    second = await job.run_once()

    assert first["items_processed"] == 1
    assert first["items_failed"] == 1
    assert first["failures_count"] == 1
    assert first["batches_finalized"] == 0
    assert second["items_succeeded"] == 1
    assert second["success_rate_percent"] == 100
    assert second["batches_finalized"] == 1
    assert job.get_job_status()["last_run_metrics"]["job_run"] == "citation_queue"


@pytest.mark.asyncio
async def test_batch_size_is_clamped(harness):
    assert CitationQueueJob(harness.service, batch_size=500).batch_size == 50
    assert CitationQueueJob(harness.service, batch_size=0).batch_size == 1


@pytest.mark.asyncio
async def test_overlapping_run_is_skipped(harness, monkeypatch):
    job = CitationQueueJob(harness.service)
    release = asyncio.Event()
    original = harness.service.drain_queue

    async def slow_drain(limit=None):
        await release.wait()
        return await original(limit)

    monkeypatch.setattr(harness.service, "drain_queue", slow_drain)

    running = asyncio.create_task(job.run_once())
    await asyncio.sleep(0)

    assert await job.run_once() == {"skipped": True, "reason": "already_running"}

    release.set()
    await running
    assert job.is_running is False


@pytest.mark.asyncio
async def test_drain_failure_is_wrapped(harness, monkeypatch):
    async def broken_drain(limit=None):
        raise RuntimeError("pool exhausted")

    monkeypatch.setattr(harness.service, "drain_queue", broken_drain)
    job = CitationQueueJob(harness.service)

    with pytest.raises(CitationQueueJobError, match="pool exhausted"):
        await job.run_once()

    assert job.is_running is False


def test_health_check_flags_overdue_job(harness):
    job = CitationQueueJob(harness.service, interval_seconds=60)
    assert job.health_check()["healthy"] is True

    job.last_run_time = datetime.now(UTC) - timedelta(minutes=5)
    health = job.health_check()

    assert health["healthy"] is False
    assert health["is_overdue"] is True
    assert "overdue" in health["warning"]

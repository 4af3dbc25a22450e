import pytest

from citation_sync.jobs import worker
from citation_sync.jobs.citation_queue_job import CitationQueueJobError
from citation_sync.services.citations.registry import ProviderRegistry


class FakePool:
    def __init__(self, fail=False):
        self.fail = fail
        self.initialized = False
        self.closed = False

    async def initialize(self):
        if self.fail:
            raise RuntimeError("connection refused")
        self.initialized = True

    async def close(self):
        self.closed = True


@pytest.fixture
def fake_pool(monkeypatch):
    pool = FakePool()
    monkeypatch.setattr(worker, "db_pool", pool)
    monkeypatch.setattr(worker, "build_default_registry", lambda resolver: ProviderRegistry([]))
    return pool


@pytest.mark.asyncio
async def test_run_worker_runs_job(monkeypatch, fake_pool):
    called = {"service": None}

    async def dummy_job(service):
        called["service"] = service

    monkeypatch.setitem(worker.JOB_REGISTRY, "dummy", dummy_job)

    await worker.run_worker("dummy")

    assert called["service"] is not None
    assert fake_pool.initialized is True
    assert fake_pool.closed is True


@pytest.mark.asyncio
async def test_run_worker_closes_pool_when_job_fails(monkeypatch, fake_pool):
    async def broken_job(service):
        raise RuntimeError("boom")

    monkeypatch.setitem(worker.JOB_REGISTRY, "broken", broken_job)

    with pytest.raises(RuntimeError):
        await worker.run_worker("broken")

    assert fake_pool.closed is True


@pytest.mark.asyncio
async def test_run_worker_unknown_job():
    with pytest.raises(ValueError):
        await worker.run_worker("missing")


@pytest.mark.asyncio
async def test_run_worker_pool_failure(monkeypatch):
    monkeypatch.setattr(worker, "db_pool", FakePool(fail=True))

    with pytest.raises(CitationQueueJobError) as exc:
        await worker.run_worker("citation_queue_once")

    assert exc.value.recoverable is False


def test_job_name_from_environment(monkeypatch):
    monkeypatch.setattr(worker.sys, "argv", ["worker"])
    monkeypatch.setenv("WORKER_JOB", " Seed_Providers ")

    assert worker._resolve_job_name() == "seed_providers"


@pytest.mark.asyncio
async def test_seed_providers_job(make_harness):
    harness = make_harness()
    await harness.providers.set_enabled("yelp", False)

    await worker.seed_providers(harness.service)

    assert harness.providers.providers["yelp"].is_enabled is False
    assert len(harness.providers.providers) == len(worker.PROVIDER_CATALOG)

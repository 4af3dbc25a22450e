"""
Generic background worker runner.

Reads the desired job name from CLI args or the WORKER_JOB environment
variable, opens the database pool and provider registry, and runs the job.
"""

import asyncio
import os
import sys
from collections.abc import Awaitable, Callable

from citation_sync.config import settings
from citation_sync.db.pool import db_pool
from citation_sync.infrastructure.observability.logging import get_logger, setup_logging
from citation_sync.jobs.citation_queue_job import CitationQueueJob, CitationQueueJobError
from citation_sync.repositories.citation_repository import CredentialRepository
from citation_sync.services.citation_workflow_service import (
    CitationWorkflowService,
    create_workflow_service,
)
from citation_sync.services.citations.catalog import PROVIDER_CATALOG
from citation_sync.services.citations.credentials import CredentialResolver
from citation_sync.services.citations.registry import build_default_registry

logger = get_logger(__name__)

JobCoroutine = Callable[[CitationWorkflowService], Awaitable[None]]


async def run_citation_queue(service: CitationWorkflowService) -> None:
    await CitationQueueJob(service).run_forever()


async def run_citation_queue_once(service: CitationWorkflowService) -> None:
    metrics = await CitationQueueJob(service).run_once()
    logger.info("Single citation drain finished", **metrics)


async def seed_providers(service: CitationWorkflowService) -> None:
    count = await service.providers.seed(PROVIDER_CATALOG)
    logger.info("Provider catalog seeded", provider_count=count)


JOB_REGISTRY: dict[str, JobCoroutine] = {
    "citation_queue": run_citation_queue,
    "citation_queue_once": run_citation_queue_once,
    "seed_providers": seed_providers,
}


def _resolve_job_name() -> str:
    """Pick the target job from CLI args or WORKER_JOB env variable."""
    if len(sys.argv) > 1:
        return sys.argv[1].strip().lower()
    return os.getenv("WORKER_JOB", "citation_queue").strip().lower()


async def run_worker(job_name: str | None = None) -> None:
    """Run the requested background job with the pool and registry open."""
    name = (job_name or _resolve_job_name()).strip().lower()
    if name not in JOB_REGISTRY:
        raise ValueError(
            f"Unknown worker job '{name}'. "
            f"Available jobs: {', '.join(sorted(JOB_REGISTRY.keys()))}"
        )

    try:
        await db_pool.initialize()
    except Exception as e:
        raise CitationQueueJobError(
            f"Database pool initialization failed: {e}", operation="startup", recoverable=False
        ) from e

    registry = build_default_registry(CredentialResolver(CredentialRepository))
    service = create_workflow_service(registry)

    try:
        logger.info("Starting background worker", job=name, environment=settings.environment)
        await registry.warm_credentials()
        await JOB_REGISTRY[name](service)
    finally:
        await registry.close()
        await db_pool.close()


def main() -> None:
    """CLI entrypoint."""
    setup_logging(log_level=settings.LOG_LEVEL)
    job_name = _resolve_job_name()
    asyncio.run(run_worker(job_name))


if __name__ == "__main__":
    main()

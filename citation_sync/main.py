"""
Citation sync API with database pool and provider registry lifecycle.
"""

import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request

from citation_sync.config import settings
from citation_sync.db.pool import db_pool
from citation_sync.infrastructure.observability.logging import get_logger, setup_logging
from citation_sync.repositories.citation_repository import CredentialRepository
from citation_sync.routes import citations, cron, health
from citation_sync.services.citation_workflow_service import create_workflow_service
from citation_sync.services.citations.credentials import CredentialResolver
from citation_sync.services.citations.registry import build_default_registry

# Setup logging before creating the app
setup_logging(log_level=settings.LOG_LEVEL)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open the database pool, then build the registry and workflow service."""
    logger.info("Citation sync starting", environment=settings.environment, debug=settings.debug)

    await db_pool.initialize()

    registry = build_default_registry(CredentialResolver(CredentialRepository))
    try:
        configured = await registry.warm_credentials()
        logger.info(
            "Citation providers loaded",
            adapters=len(registry),
            configured=sorted(slug for slug, ok in configured.items() if ok),
        )
    except Exception as e:
        # Environment credentials still work; stored ones resolve on the next drain
        logger.warning("Initial credential warm-up failed", error=str(e))

    app.state.workflow_service = create_workflow_service(registry)

    yield

    logger.info("Citation sync shutting down")

    # Provider clients close before the pool
    failed = []
    for component, close in (("providers", registry.close), ("database", db_pool.close)):
        try:
            await close()
        except Exception as e:
            logger.error("Shutdown step failed", component=component, error=str(e))
            failed.append(component)

    if failed:
        logger.warning("Citation sync stopped with shutdown errors", components=failed)
    else:
        logger.info("Citation sync stopped cleanly")


app = FastAPI(
    title="Citation Sync",
    description="Business listing submission to citation directories",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(health.router)
app.include_router(citations.router)
app.include_router(cron.router)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    started = time.perf_counter()
    response = await call_next(request)

    logger.info(
        "Citation API request",
        method=request.method,
        path=request.url.path,
        status_code=response.status_code,
        duration_ms=round((time.perf_counter() - started) * 1000, 2),
    )
    return response


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)

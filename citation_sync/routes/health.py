"""
Liveness, readiness and database pool endpoints for the citation API.
"""

import time

from fastapi import APIRouter, Request

from citation_sync.config import settings
from citation_sync.db.pool import db_health_check
from citation_sync.infrastructure.observability.logging import log_health_check

router = APIRouter()


@router.get("/healthz")
async def healthz():
    """Basic health check - always returns 200 if app is running."""
    return {"status": "ok", "service": "citation-sync"}


@router.get("/readyz")
async def readyz(request: Request):
    """Readiness check: database pool, provider registry and configuration."""
    checks = {}
    overall_ok = True

    t0 = time.time()
    try:
        db_health = await db_health_check()
        is_healthy = db_health.get("healthy", False)

        checks["database"] = {
            "ok": is_healthy,
            "latency_ms": round((time.time() - t0) * 1000, 1),
        }
        if "pool_stats" in db_health:
            pool_stats = db_health["pool_stats"]
            checks["database"].update(
                {
                    "pool_size": pool_stats.get("pool_size", 0),
                    "pool_available": pool_stats.get("pool_available", 0),
                }
            )
        if not is_healthy:
            checks["database"]["error"] = db_health.get("error", "Database unhealthy")

        log_health_check(
            "database",
            is_healthy,
            checks["database"]["latency_ms"],
            checks["database"].get("error"),
        )

        overall_ok = overall_ok and is_healthy

    except Exception as e:
        checks["database"] = {
            "ok": False,
            "error": f"{type(e).__name__}: {e}",
            "latency_ms": round((time.time() - t0) * 1000, 1),
        }
        overall_ok = False

    service = getattr(request.app.state, "workflow_service", None)
    if service is not None:
        configured = [client.slug for client in service.registry.configured()]
        checks["providers"] = {
            "ok": True,
            "adapters": len(service.registry),
            "configured": configured,
        }
    else:
        checks["providers"] = {"ok": False, "error": "Registry not initialized"}
        overall_ok = False

    config_issues = []
    if not settings.DATABASE_URL:
        config_issues.append("DATABASE_URL not set")
    if not settings.ENCRYPTION_KEY:
        config_issues.append("ENCRYPTION_KEY not set")

    checks["configuration"] = {
        "ok": not config_issues,
        "issues": config_issues or None,
        "environment": settings.environment,
    }
    overall_ok = overall_ok and not config_issues

    return {"overall_ok": overall_ok, "checks": checks, "timestamp": time.time()}


@router.get("/health/database")
async def database_health():
    """Detailed database pool health information."""
    return await db_health_check()

"""FastAPI dependencies shared by the citation routers."""

import hmac

from fastapi import Header, HTTPException, Request, status

from citation_sync.config import settings
from citation_sync.services.citation_workflow_service import CitationWorkflowService


def get_workflow_service(request: Request) -> CitationWorkflowService:
    """The workflow service built in the application lifespan."""
    service = getattr(request.app.state, "workflow_service", None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Citation service not initialized",
        )
    return service


async def verify_cron_secret(authorization: str | None = Header(default=None)) -> None:
    """Require `Bearer <CRON_SECRET>` when a secret is configured."""
    if not settings.CRON_SECRET:
        return
    expected = f"Bearer {settings.CRON_SECRET}"
    if not authorization or not hmac.compare_digest(authorization, expected):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")

"""
Cron trigger for the citation queue.

Call periodically (every 1-5 minutes) from an external scheduler when the
worker loop is not running.
"""

from fastapi import APIRouter, Depends, HTTPException, status

from citation_sync.config import settings
from citation_sync.db.helpers import DatabaseError
from citation_sync.infrastructure.observability.logging import get_logger
from citation_sync.models.api.citation_request import CronDrainRequest
from citation_sync.models.api.citation_response import CronDrainResponse
from citation_sync.routes.dependencies import get_workflow_service, verify_cron_secret
from citation_sync.services.citation_workflow_service import CitationWorkflowService

logger = get_logger(__name__)

router = APIRouter(prefix="/cron", tags=["cron"])


@router.post(
    "/citations",
    response_model=CronDrainResponse,
    dependencies=[Depends(verify_cron_secret)],
)
async def drain_citation_queue(
    request: CronDrainRequest | None = None,
    service: CitationWorkflowService = Depends(get_workflow_service),
):
    """Drain due queue items, then settle batches that have nothing left."""
    limit = settings.clamp_queue_limit(request.limit if request else None)

    try:
        drain = await service.drain_queue(limit)
        finalized = await service.finalize_batches()
    except DatabaseError as e:
        logger.error("Citation cron drain failed", error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to process queue"
        )

    return CronDrainResponse(
        success=True,
        processed=drain.processed,
        succeeded=drain.succeeded,
        failed=drain.failed,
        skipped=drain.skipped,
        batches_finalized=[batch.id for batch in finalized],
        results=drain.results,
    )

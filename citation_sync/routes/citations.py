"""
Citation API Routes
Provider status, credential storage, queueing, direct submission, coverage
and batch management.
"""

from fastapi import APIRouter, Depends, HTTPException, status

from citation_sync.db.helpers import DatabaseError
from citation_sync.infrastructure.observability.logging import get_logger
from citation_sync.models.api.citation_request import (
    BulkSubmissionRequest,
    CredentialsUpdateRequest,
    ProviderToggleRequest,
    QueueDomainRequest,
    RemoveListingsRequest,
    SubmitNowRequest,
    VerifyDomainRequest,
)
from citation_sync.models.api.citation_response import (
    BulkSubmissionResponse,
    BulkSummary,
    CredentialsUpdateResponse,
    ProviderStatusResponse,
    ProvidersListResponse,
    QueueDomainResponse,
    SubmissionsListResponse,
    SubmitNowResponse,
)
from citation_sync.models.domain.citation_domain import (
    CitationBatch,
    CitationProvider,
    DomainCoverage,
    QueueDomainResult,
)
from citation_sync.routes.dependencies import get_workflow_service
from citation_sync.services.citation_workflow_service import (
    CitationWorkflowError,
    CitationWorkflowService,
)
from citation_sync.services.infrastructure.encryption_service import EncryptionError

logger = get_logger(__name__)

router = APIRouter(prefix="/citations", tags=["citations"])


def _configured_slugs(service: CitationWorkflowService) -> list[str]:
    return [client.slug for client in service.registry.configured()]


def _queue_response(result: QueueDomainResult) -> QueueDomainResponse:
    return QueueDomainResponse(
        success=not result.errors,
        domain_id=result.domain_id,
        queued=result.queued,
        skipped=result.skipped,
        errors=result.errors,
    )


# =================================================================
# PROVIDERS AND CREDENTIALS
# =================================================================


@router.get("/providers", response_model=ProvidersListResponse)
async def list_providers(service: CitationWorkflowService = Depends(get_workflow_service)):
    """Catalog providers merged with adapter configuration status."""
    try:
        providers = await service.providers.list_all()
    except DatabaseError as e:
        logger.error("Error listing citation providers", error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to list providers"
        )

    responses = []
    for provider in providers:
        client = service.registry.get(provider.slug)
        responses.append(
            ProviderStatusResponse(
                slug=provider.slug,
                name=provider.name,
                tier=provider.tier,
                configured=bool(client and client.is_configured()),
                is_enabled=provider.is_enabled,
                is_aggregator=provider.is_aggregator,
                coverage_description=provider.coverage_description,
                has_adapter=client is not None,
            )
        )

    return ProvidersListResponse(
        configured=sum(1 for p in responses if p.configured),
        total=len(responses),
        providers=responses,
    )


@router.patch("/providers/{slug}", response_model=CitationProvider)
async def toggle_provider(
    slug: str,
    request: ProviderToggleRequest,
    service: CitationWorkflowService = Depends(get_workflow_service),
):
    provider = await service.providers.set_enabled(slug, request.is_enabled)
    if provider is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Provider not found")
    return provider


@router.put("/credentials/{slug}", response_model=CredentialsUpdateResponse)
async def save_credentials(
    slug: str,
    request: CredentialsUpdateRequest,
    service: CitationWorkflowService = Depends(get_workflow_service),
):
    """Store provider credentials encrypted, then re-resolve adapter configuration."""
    client = service.registry.get(slug)
    if client is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail=f"Unknown provider: {slug}"
        )
    if service.registry.resolver is None or service.registry.resolver.store is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Credential store not available",
        )

    try:
        await service.registry.resolver.save(slug, request.credentials)
        await service.registry.warm_credentials()
    except EncryptionError as e:
        logger.error("Credential encryption failed", provider=slug, error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Credential encryption is not configured",
        )
    except DatabaseError as e:
        logger.error("Error saving credentials", provider=slug, error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to save credentials"
        )

    return CredentialsUpdateResponse(
        success=True, provider_slug=slug, configured=client.is_configured()
    )


# =================================================================
# QUEUEING AND SUBMISSION
# =================================================================


@router.post("/domains/{domain_id}/queue", response_model=QueueDomainResponse)
async def queue_domain(
    domain_id: str,
    request: QueueDomainRequest,
    service: CitationWorkflowService = Depends(get_workflow_service),
):
    provider_slugs = request.provider_slugs or _configured_slugs(service)
    result = await service.queue_domain(domain_id, provider_slugs, priority=request.priority)
    return _queue_response(result)


@router.post("/bulk", response_model=BulkSubmissionResponse)
async def queue_bulk(
    request: BulkSubmissionRequest,
    service: CitationWorkflowService = Depends(get_workflow_service),
):
    provider_slugs = request.provider_slugs or _configured_slugs(service)
    if not provider_slugs:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="No providers configured"
        )

    try:
        bulk = await service.queue_bulk_submission(
            request.domain_ids, provider_slugs, request.batch_name, request.created_by
        )
    except DatabaseError as e:
        logger.error("Error queueing bulk submission", error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to queue bulk submission",
        )

    return BulkSubmissionResponse(
        success=True,
        batch_id=bulk.batch_id,
        summary=BulkSummary(
            domains=len(request.domain_ids),
            providers=len(provider_slugs),
            queued=bulk.queued_count,
            skipped=bulk.skipped_count,
            errors=bulk.error_count,
        ),
        results=bulk.results,
    )


@router.post("/domains/{domain_id}/verify", response_model=QueueDomainResponse)
async def queue_verification(
    domain_id: str,
    request: VerifyDomainRequest,
    service: CitationWorkflowService = Depends(get_workflow_service),
):
    result = await service.queue_verification(
        domain_id, request.provider_slugs, batch_id=request.batch_id
    )
    return _queue_response(result)


@router.post("/domains/{domain_id}/remove", response_model=QueueDomainResponse)
async def queue_removal(
    domain_id: str,
    request: RemoveListingsRequest,
    service: CitationWorkflowService = Depends(get_workflow_service),
):
    result = await service.queue_deletion(
        domain_id, request.provider_slugs, batch_id=request.batch_id
    )
    return _queue_response(result)


@router.post("/domains/{domain_id}/submit-now", response_model=SubmitNowResponse)
async def submit_now(
    domain_id: str,
    request: SubmitNowRequest,
    service: CitationWorkflowService = Depends(get_workflow_service),
):
    """Submit directly to one provider without going through the queue."""
    try:
        result = await service.submit_now(domain_id, request.provider_slug)
    except CitationWorkflowError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    return SubmitNowResponse(
        success=result.success,
        message=result.message or ("Submitted successfully" if result.success else "Submission failed"),
        external_id=result.external_id,
        external_url=result.external_url,
        error=result.error,
        metadata=result.metadata,
    )


# =================================================================
# READS
# =================================================================


@router.get("/domains/{domain_id}/coverage", response_model=DomainCoverage)
async def domain_coverage(
    domain_id: str, service: CitationWorkflowService = Depends(get_workflow_service)
):
    return await service.get_domain_coverage(domain_id)


@router.get("/domains/{domain_id}/submissions", response_model=SubmissionsListResponse)
async def domain_submissions(
    domain_id: str, service: CitationWorkflowService = Depends(get_workflow_service)
):
    submissions = await service.submissions.list_for_domain(domain_id)
    return SubmissionsListResponse(domain_id=domain_id, submissions=submissions)


@router.get("/batches/{batch_id}", response_model=CitationBatch)
async def get_batch(batch_id: str, service: CitationWorkflowService = Depends(get_workflow_service)):
    batch = await service.batches.get(batch_id)
    if batch is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Batch not found")
    return batch


@router.post("/batches/{batch_id}/cancel", response_model=CitationBatch)
async def cancel_batch(
    batch_id: str, service: CitationWorkflowService = Depends(get_workflow_service)
):
    try:
        return await service.cancel_batch(batch_id)
    except CitationWorkflowError as e:
        if "not found" in str(e):
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))

from typing import Any

from pydantic import BaseModel, Field

from citation_sync.models.domain.citation_domain import (
    CitationSubmission,
    QueueDomainResult,
    QueueItemOutcome,
)


class ProviderStatusResponse(BaseModel):
    slug: str
    name: str
    tier: int
    configured: bool
    is_enabled: bool
    is_aggregator: bool = False
    coverage_description: str | None = None
    has_adapter: bool = Field(..., description="False for providers without an API integration")


class ProvidersListResponse(BaseModel):
    """Response for GET /citations/providers"""

    configured: int
    total: int
    providers: list[ProviderStatusResponse]


class QueueDomainResponse(BaseModel):
    success: bool
    domain_id: str
    queued: list[str]
    skipped: list[str]
    errors: list[str]


class BulkSummary(BaseModel):
    domains: int
    providers: int
    queued: int
    skipped: int
    errors: int


class BulkSubmissionResponse(BaseModel):
    """Response for POST /citations/bulk"""

    success: bool
    batch_id: str
    summary: BulkSummary
    results: list[QueueDomainResult]


class SubmitNowResponse(BaseModel):
    success: bool
    message: str
    external_id: str | None = None
    external_url: str | None = None
    error: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class SubmissionsListResponse(BaseModel):
    domain_id: str
    submissions: list[CitationSubmission]


class CredentialsUpdateResponse(BaseModel):
    success: bool
    provider_slug: str
    configured: bool


class CronDrainResponse(BaseModel):
    """Response for POST /cron/citations"""

    success: bool
    processed: int
    succeeded: int
    failed: int
    skipped: int
    batches_finalized: list[str]
    results: list[QueueItemOutcome]

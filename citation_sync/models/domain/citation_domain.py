# models/domain/citation_domain.py
"""
Citation domain models: provider descriptors, submission/queue/batch rows and
the typed results every provider adapter returns.
"""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

SubmissionStatus = Literal[
    "pending", "queued", "submitting", "submitted", "verified", "error", "needs_update"
]
QueueAction = Literal["submit", "update", "verify", "delete"]
BatchStatus = Literal["pending", "processing", "completed", "failed", "cancelled"]
VerifyStatus = Literal["verified", "pending", "not_found", "error"]
AuthMethod = Literal["api_key", "oauth2", "none"]

PENDING_STATUSES = ("pending", "queued", "submitting")
ERROR_STATUSES = ("error", "needs_update")
TERMINAL_BATCH_STATUSES = ("completed", "failed", "cancelled")


class CitationProvider(BaseModel):
    """Static descriptor for one citation directory."""

    slug: str
    name: str
    tier: int = Field(ge=1, le=4)
    auth_method: AuthMethod = "api_key"
    base_url: str | None = None
    rate_limit_per_minute: int = 60
    rate_limit_per_day: int = 1000
    requires_credentials: bool = True
    is_aggregator: bool = False
    coverage_description: str | None = None
    documentation_url: str | None = None
    is_enabled: bool = True


class CitationSubmission(BaseModel):
    """One (domain, provider) submission record."""

    id: str
    domain_id: str
    provider_slug: str
    external_id: str | None = None
    external_url: str | None = None
    status: SubmissionStatus = "pending"
    brand_info_hash: str | None = None
    error_message: str | None = None
    error_count: int = 0
    last_submitted_at: datetime | None = None
    last_verified_at: datetime | None = None
    last_error_at: datetime | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime | None = None
    updated_at: datetime | None = None


class CitationQueueItem(BaseModel):
    """A scheduled unit of work against a submission."""

    id: str
    submission_id: str
    action: QueueAction
    priority: int = 50
    attempts: int = 0
    max_attempts: int = 3
    scheduled_at: datetime | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    error_message: str | None = None
    batch_id: str | None = None

    @property
    def is_exhausted(self) -> bool:
        return self.attempts >= self.max_attempts


class CitationBatch(BaseModel):
    """Groups the queue items created by one bulk operation."""

    id: str
    name: str | None = None
    status: BatchStatus = "pending"
    total_submissions: int = 0
    completed_submissions: int = 0
    failed_submissions: int = 0
    started_at: datetime | None = None
    completed_at: datetime | None = None
    created_by: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    def final_status(self) -> BatchStatus:
        """Status a drained batch settles into."""
        if self.completed_submissions == 0 and self.failed_submissions > 0:
            return "failed"
        return "completed"


# =================================================================
# ADAPTER RESULTS
# =================================================================


class SubmitResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    success: bool
    external_id: str | None = None
    external_url: str | None = None
    message: str | None = None
    error: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    # False for failures another attempt cannot fix (missing required fields)
    retryable: bool = True


class UpdateResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    success: bool
    message: str | None = None
    error: str | None = None
    retryable: bool = True


class VerifyResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    success: bool
    status: VerifyStatus
    external_url: str | None = None
    last_updated: str | None = None
    message: str | None = None
    error: str | None = None


class DeleteResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    success: bool
    message: str | None = None
    error: str | None = None


AdapterResult = SubmitResult | UpdateResult | VerifyResult | DeleteResult


class QueueItemOutcome(BaseModel):
    """Result of draining one queue item."""

    queue_item_id: str
    submission_id: str
    provider: str
    action: QueueAction
    success: bool
    message: str
    batch_id: str | None = None


class DrainResult(BaseModel):
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    results: list[QueueItemOutcome] = Field(default_factory=list)


class QueueDomainResult(BaseModel):
    """Per-domain outcome of a queue request."""

    domain_id: str
    queued: list[str] = Field(default_factory=list)
    skipped: list[str] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)


class BulkQueueResult(BaseModel):
    batch_id: str
    results: list[QueueDomainResult] = Field(default_factory=list)

    @property
    def queued_count(self) -> int:
        return sum(len(result.queued) for result in self.results)

    @property
    def skipped_count(self) -> int:
        return sum(len(result.skipped) for result in self.results)

    @property
    def error_count(self) -> int:
        return sum(len(result.errors) for result in self.results)


class ProviderCoverage(BaseModel):
    slug: str
    name: str
    status: SubmissionStatus
    url: str | None = None


class DomainCoverage(BaseModel):
    """Read-only projection of a domain's submissions against the provider catalog."""

    domain_id: str
    total: int = 0
    submitted: int = 0
    verified: int = 0
    pending: int = 0
    errors: int = 0
    providers: list[ProviderCoverage] = Field(default_factory=list)

from pydantic import BaseModel, Field


class QueueDomainRequest(BaseModel):
    """Request body for queueing one domain. No providers means every configured one."""

    provider_slugs: list[str] | None = None
    priority: int | None = Field(default=None, ge=0, le=100)


class BulkSubmissionRequest(BaseModel):
    """Request body for queueing many domains under one batch."""

    domain_ids: list[str] = Field(..., min_length=1)
    provider_slugs: list[str] | None = None
    batch_name: str | None = Field(default=None, max_length=200)
    created_by: str | None = None


class VerifyDomainRequest(BaseModel):
    provider_slugs: list[str] | None = None
    batch_id: str | None = None


class RemoveListingsRequest(BaseModel):
    provider_slugs: list[str] = Field(..., min_length=1)
    batch_id: str | None = None


class SubmitNowRequest(BaseModel):
    provider_slug: str = Field(..., min_length=1)


class ProviderToggleRequest(BaseModel):
    is_enabled: bool


class CredentialsUpdateRequest(BaseModel):
    """Credential key -> plaintext value; stored encrypted."""

    credentials: dict[str, str] = Field(..., min_length=1)


class CronDrainRequest(BaseModel):
    limit: int | None = Field(default=None, description="Items to drain, clamped to 1-50")

"""
Capability contract shared by every citation provider adapter.

Adapters are plain classes that satisfy CitationClient; shared behaviour
(validation, phone/hours formatting, normalization, hashing) lives in
citation_sync.services.citations.formatting.
"""

from typing import Protocol, runtime_checkable

from citation_sync.models.domain.citation_domain import (
    DeleteResult,
    SubmitResult,
    UpdateResult,
    VerifyResult,
)
from citation_sync.models.domain.location_domain import BrandRecord, NormalizedLocation


class CitationProviderError(Exception):
    """Base exception for citation adapter plumbing."""

    def __init__(self, message: str, provider: str | None = None):
        super().__init__(message)
        self.provider = provider


class ProviderAPIError(CitationProviderError):
    """Non-success HTTP response from a provider API."""

    def __init__(
        self,
        message: str,
        provider: str | None = None,
        status_code: int | None = None,
        response_text: str | None = None,
        error_code: str | None = None,
    ):
        super().__init__(message, provider=provider)
        self.status_code = status_code
        self.response_text = response_text
        self.error_code = error_code

    @property
    def is_not_found(self) -> bool:
        return self.status_code == 404


class ProviderNotConfiguredError(CitationProviderError):
    """Required credentials are missing for a provider."""


class OAuthTokenError(CitationProviderError):
    """Refresh-token exchange failed."""

    def __init__(self, message: str, provider: str | None = None, status_code: int | None = None):
        super().__init__(message, provider=provider)
        self.status_code = status_code


@runtime_checkable
class CitationClient(Protocol):
    slug: str
    name: str
    tier: int

    def is_configured(self) -> bool: ...

    async def submit(self, location: NormalizedLocation) -> SubmitResult: ...

    async def update(self, external_id: str, location: NormalizedLocation) -> UpdateResult: ...

    async def verify(self, external_id: str) -> VerifyResult: ...

    async def delete(self, external_id: str) -> DeleteResult: ...

    def normalize(self, brand: BrandRecord) -> NormalizedLocation: ...

    def hash(self, brand: BrandRecord) -> str: ...

    async def close(self) -> None: ...

"""
Local Data Exchange (RapidAPI) client.
Tier 2 aggregator: one submission fans out to 130+ directories
(Apple, Bing, TomTom, HERE, Yahoo, Uber).
"""

import httpx

from citation_sync.infrastructure.observability.logging import get_logger
from citation_sync.models.domain.citation_domain import (
    DeleteResult,
    SubmitResult,
    UpdateResult,
    VerifyResult,
)
from citation_sync.models.domain.location_domain import BrandRecord, NormalizedLocation
from citation_sync.services.citations.base import (
    CitationProviderError,
    ProviderAPIError,
    ProviderNotConfiguredError,
)
from citation_sync.services.citations.credentials import CredentialResolver, ProviderCredentials
from citation_sync.services.citations.formatting import (
    compact,
    format_phone,
    hash_brand,
    normalize_brand,
    plain_hours,
    social_profiles,
    unsupported_delete,
    validation_error,
)
from citation_sync.services.citations.http import ProviderHttpClient, describe_error

logger = get_logger(__name__)

LDE_RAPIDAPI_HOST = "local-data-exchange.p.rapidapi.com"
LDE_API_BASE_URL = f"https://{LDE_RAPIDAPI_HOST}"
SOCIAL_PLATFORMS = ("facebook", "twitter", "instagram", "linkedin")


def _envelope_error(result: dict, default: str = "Unknown error") -> str:
    return result.get("error") or result.get("message") or default


class LDEClient:
    slug = "lde"
    name = "Local Data Exchange"
    tier = 2

    CREDENTIALS = (("api_key", "LDE_RAPIDAPI_KEY"),)

    def __init__(
        self,
        resolver: CredentialResolver | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.credentials = ProviderCredentials(self.slug, self.CREDENTIALS, resolver)
        self.http = ProviderHttpClient("LDE", LDE_API_BASE_URL, transport=transport)

    def is_configured(self) -> bool:
        return self.credentials.is_configured()

    def normalize(self, brand: BrandRecord) -> NormalizedLocation:
        return normalize_brand(brand)

    def hash(self, brand: BrandRecord) -> str:
        return hash_brand(brand)

    async def close(self) -> None:
        await self.http.close()

    async def _request(self, method: str, path: str, operation: str, **kwargs) -> dict:
        api_key = await self.credentials.get("api_key")
        if not api_key:
            raise ProviderNotConfiguredError("LDE RapidAPI key is not configured", self.slug)
        headers = {
            "X-RapidAPI-Key": api_key,
            "X-RapidAPI-Host": LDE_RAPIDAPI_HOST,
            "Content-Type": "application/json",
        }
        return await self.http.request(method, path, operation=operation, headers=headers, **kwargs)

    def _to_location(self, location: NormalizedLocation) -> dict:
        return compact(
            {
                "name": location.business_name,
                "address": location.street,
                "city": location.city,
                "state": location.state,
                "postal_code": location.zip,
                "country": location.country,
                "phone": format_phone(location.phone),
                "website": location.website,
                "email": location.email,
                "description": location.description,
                "categories": location.categories,
                "hours": plain_hours(location.hours),
                "logo_url": location.logo_url,
                "photos": location.image_urls,
                "social": social_profiles(location, SOCIAL_PLATFORMS),
            }
        )

    async def submit(self, location: NormalizedLocation) -> SubmitResult:
        error = validation_error(location)
        if error:
            return SubmitResult(success=False, error=error, retryable=False)

        # Aggregator: no duplicate search, LDE dedupes downstream
        try:
            result = await self._request(
                "POST", "/locations", "create", json=self._to_location(location)
            )
        except (CitationProviderError, httpx.HTTPError) as e:
            return SubmitResult(success=False, error=describe_error(e))

        data = result.get("data")
        if not result.get("success") or not data:
            return SubmitResult(success=False, error=_envelope_error(result))

        directories = data.get("directories") or []
        logger.info("LDE location submitted", location_id=data.get("id"), directories=len(directories))
        return SubmitResult(
            success=True,
            external_id=data.get("id"),
            message=f"Submitted to {len(directories)} directories",
            metadata={"directories": directories},
        )

    async def update(self, external_id: str, location: NormalizedLocation) -> UpdateResult:
        try:
            result = await self._request(
                "PUT", f"/locations/{external_id}", "update", json=self._to_location(location)
            )
        except (CitationProviderError, httpx.HTTPError) as e:
            return UpdateResult(success=False, error=describe_error(e))

        if not result.get("success"):
            return UpdateResult(success=False, error=_envelope_error(result))
        return UpdateResult(success=True, message="Location updated successfully")

    async def verify(self, external_id: str) -> VerifyResult:
        try:
            result = await self._request("GET", f"/locations/{external_id}/status", "status")
        except ProviderAPIError as e:
            if e.is_not_found:
                return VerifyResult(success=True, status="not_found", message="Location not found")
            return VerifyResult(success=False, status="error", error=describe_error(e))
        except (CitationProviderError, httpx.HTTPError) as e:
            return VerifyResult(success=False, status="error", error=describe_error(e))

        data = result.get("data")
        if not result.get("success") or not data:
            return VerifyResult(
                success=False, status="error", error=_envelope_error(result, "Could not get status")
            )

        directories = data.get("directories") or []
        synced = sum(1 for d in directories if d.get("status") == "synced")
        pending = sum(1 for d in directories if d.get("status") == "pending")

        status = "pending"
        if synced > 0 and pending == 0:
            status = "verified"
        elif not directories:
            status = "not_found"

        return VerifyResult(
            success=True,
            status=status,
            message=f"{synced} synced, {pending} pending across {len(directories)} directories",
        )

    async def delete(self, external_id: str) -> DeleteResult:
        return unsupported_delete(self.name)

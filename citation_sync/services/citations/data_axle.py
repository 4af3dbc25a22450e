"""
Data Axle listings API client.
Tier 1 direct API covering roughly 95% of search traffic (Google, Yelp, Facebook, Bing).
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

DATA_AXLE_API_BASE_URL = "https://api.data-axle.com/v1"
SOCIAL_PLATFORMS = ("facebook", "twitter", "instagram", "linkedin", "youtube")


def _envelope_error(result: dict, default: str = "Unknown error") -> str:
    error = result.get("error") or {}
    if isinstance(error, dict):
        return error.get("message") or default
    return str(error) or default


class DataAxleClient:
    slug = "data-axle"
    name = "Data Axle"
    tier = 1

    CREDENTIALS = (("api_key", "DATA_AXLE_API_KEY"),)

    def __init__(
        self,
        resolver: CredentialResolver | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.credentials = ProviderCredentials(self.slug, self.CREDENTIALS, resolver)
        self.http = ProviderHttpClient(self.name, DATA_AXLE_API_BASE_URL, transport=transport)

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
            raise ProviderNotConfiguredError("Data Axle API key is not configured", self.slug)
        headers = {"Authorization": f"Bearer {api_key}", "Content-Type": "application/json"}
        return await self.http.request(method, path, operation=operation, headers=headers, **kwargs)

    def _to_listing(self, location: NormalizedLocation) -> dict:
        return compact(
            {
                "name": location.business_name,
                "address": {
                    "street": location.street,
                    "city": location.city,
                    "state": location.state,
                    "postal_code": location.zip,
                    "country_code": location.country,
                },
                "phone": format_phone(location.phone),
                "website": location.website,
                "email": location.email,
                "description": location.description,
                "categories": location.categories,
                "hours_of_operation": plain_hours(location.hours),
                "social_profiles": social_profiles(location, SOCIAL_PLATFORMS),
                "logo_url": location.logo_url,
                "photos": location.image_urls,
            }
        )

    async def search(self, name: str, city: str, state: str) -> list[dict]:
        result = await self._request(
            "GET",
            "/listings/search",
            "search",
            params={"name": name, "city": city, "state": state},
        )
        return result.get("data") or []

    async def submit(self, location: NormalizedLocation) -> SubmitResult:
        error = validation_error(location)
        if error:
            return SubmitResult(success=False, error=error, retryable=False)

        try:
            existing = await self.search(location.business_name, location.city, location.state)
            if existing:
                match = existing[0]
                return SubmitResult(
                    success=True,
                    external_id=match["id"],
                    message="Existing listing found - use update to modify",
                    metadata={"matched": True, "status": match.get("status")},
                )

            result = await self._request(
                "POST", "/listings", "create", json=self._to_listing(location)
            )
            data = result.get("data")
            if not result.get("success") or not data:
                return SubmitResult(success=False, error=_envelope_error(result))

            logger.info("Data Axle listing created", listing_id=data.get("id"))
            return SubmitResult(
                success=True,
                external_id=data.get("id"),
                message="Listing created successfully",
                metadata={
                    "status": data.get("status"),
                    "verification_status": data.get("verification_status"),
                },
            )
        except (CitationProviderError, httpx.HTTPError) as e:
            return SubmitResult(success=False, error=describe_error(e))

    async def update(self, external_id: str, location: NormalizedLocation) -> UpdateResult:
        try:
            result = await self._request(
                "PUT", f"/listings/{external_id}", "update", json=self._to_listing(location)
            )
            if not result.get("success"):
                return UpdateResult(success=False, error=_envelope_error(result))
            return UpdateResult(success=True, message="Listing updated successfully")
        except (CitationProviderError, httpx.HTTPError) as e:
            return UpdateResult(success=False, error=describe_error(e))

    async def verify(self, external_id: str) -> VerifyResult:
        try:
            result = await self._request("GET", f"/listings/{external_id}", "get_listing")
        except ProviderAPIError as e:
            if e.is_not_found:
                return VerifyResult(success=True, status="not_found", message="Listing not found")
            return VerifyResult(success=False, status="error", error=describe_error(e))
        except (CitationProviderError, httpx.HTTPError) as e:
            return VerifyResult(success=False, status="error", error=describe_error(e))

        listing = result.get("data")
        if not result.get("success") or not listing:
            return VerifyResult(
                success=False,
                status="error",
                error=_envelope_error(result, "Could not get listing"),
            )

        status = "pending"
        if listing.get("verification_status") == "verified" and listing.get("status") == "active":
            status = "verified"
        elif listing.get("status") == "rejected":
            status = "error"

        return VerifyResult(
            success=True,
            status=status,
            last_updated=listing.get("updated_at"),
            message=(
                f"Status: {listing.get('status')}, "
                f"Verification: {listing.get('verification_status')}"
            ),
        )

    async def delete(self, external_id: str) -> DeleteResult:
        return unsupported_delete(self.name)

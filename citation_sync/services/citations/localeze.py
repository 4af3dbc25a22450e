"""
Neustar Localeze listings API client.
Tier 2 aggregator feeding 200+ partners (Google, Apple, Bing, HERE, TomTom).
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
    lowercase_hours,
    normalize_brand,
    social_profiles,
    unsupported_delete,
    validation_error,
)
from citation_sync.services.citations.http import ProviderHttpClient, describe_error

logger = get_logger(__name__)

LOCALEZE_API_BASE_URL = "https://api.neustarlocaleze.biz/v2"
SOCIAL_PLATFORMS = ("facebook", "twitter", "instagram", "linkedin", "youtube")


def _envelope_error(result: dict, default: str = "Unknown error") -> str:
    if result.get("message"):
        return result["message"]
    errors = result.get("errors") or []
    joined = ", ".join(e.get("message", "") for e in errors if isinstance(e, dict))
    return joined or default


class LocalezeClient:
    slug = "localeze"
    name = "Neustar Localeze"
    tier = 2

    CREDENTIALS = (("api_key", "NEUSTAR_LOCALEZE_API_KEY"),)

    def __init__(
        self,
        resolver: CredentialResolver | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.credentials = ProviderCredentials(self.slug, self.CREDENTIALS, resolver)
        self.http = ProviderHttpClient("Localeze", LOCALEZE_API_BASE_URL, transport=transport)

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
            raise ProviderNotConfiguredError(
                "Neustar Localeze API key is not configured", self.slug
            )
        headers = {"Authorization": f"ApiKey {api_key}", "Content-Type": "application/json"}
        return await self.http.request(method, path, operation=operation, headers=headers, **kwargs)

    def _to_listing(self, location: NormalizedLocation) -> dict:
        return compact(
            {
                "businessName": location.business_name,
                "address1": location.street,
                "city": location.city,
                "state": location.state,
                "postalCode": location.zip,
                "country": location.country,
                "phone": format_phone(location.phone),
                "website": location.website,
                "email": location.email,
                "description": location.description,
                "categories": location.categories,
                "hours": lowercase_hours(location.hours),
                "socialMedia": social_profiles(location, SOCIAL_PLATFORMS),
                "logo": location.logo_url,
                "images": location.image_urls,
            }
        )

    async def search(self, business_name: str, city: str, state: str) -> list[dict]:
        result = await self._request(
            "GET",
            "/listings/search",
            "search",
            params={"businessName": business_name, "city": city, "state": state},
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
                    metadata={
                        "matched": True,
                        "status": match.get("status"),
                        "verificationStatus": match.get("verificationStatus"),
                    },
                )

            result = await self._request(
                "POST", "/listings", "create", json=self._to_listing(location)
            )
        except (CitationProviderError, httpx.HTTPError) as e:
            return SubmitResult(success=False, error=describe_error(e))

        listing = result.get("data")
        if result.get("status") != "success" or not listing:
            return SubmitResult(success=False, error=_envelope_error(result))

        logger.info("Localeze listing created", listing_id=listing.get("id"))
        return SubmitResult(
            success=True,
            external_id=listing.get("id"),
            message="Listing created - pending distribution to 200+ partners",
            metadata={
                "status": listing.get("status"),
                "publisherCount": len(listing.get("publisherStatus") or []),
            },
        )

    async def update(self, external_id: str, location: NormalizedLocation) -> UpdateResult:
        try:
            result = await self._request(
                "PUT", f"/listings/{external_id}", "update", json=self._to_listing(location)
            )
        except (CitationProviderError, httpx.HTTPError) as e:
            return UpdateResult(success=False, error=describe_error(e))

        if result.get("status") != "success":
            return UpdateResult(success=False, error=_envelope_error(result))
        return UpdateResult(
            success=True, message="Listing updated - changes will propagate to partners"
        )

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
        if result.get("status") != "success" or not listing:
            return VerifyResult(
                success=False,
                status="error",
                error=_envelope_error(result, "Could not get listing"),
            )

        status = "pending"
        if listing.get("verificationStatus") == "verified" and listing.get("status") == "active":
            status = "verified"
        elif listing.get("status") in ("rejected", "suspended"):
            status = "error"

        publishers = listing.get("publisherStatus") or []
        published = sum(1 for p in publishers if p.get("status") == "published")

        return VerifyResult(
            success=True,
            status=status,
            last_updated=listing.get("updatedAt"),
            message=(
                f"Status: {listing.get('status')}, "
                f"Published: {published}/{len(publishers)} directories"
            ),
        )

    async def delete(self, external_id: str) -> DeleteResult:
        return unsupported_delete(self.name)

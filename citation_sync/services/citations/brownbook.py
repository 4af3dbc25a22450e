"""
Brownbook.net business directory API client.
Tier 1 direct API, the only directory here with a real delete endpoint.
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
    hours_text,
    normalize_brand,
    validation_error,
)
from citation_sync.services.citations.http import ProviderHttpClient, describe_error

logger = get_logger(__name__)

BROWNBOOK_API_BASE_URL = "https://api.brownbook.net/v1"
BROWNBOOK_LISTING_URL = "https://www.brownbook.net/business/{business_id}"


def _envelope_error(result: dict) -> str:
    return result.get("error") or result.get("message") or "Unknown error"


class BrownbookClient:
    slug = "brownbook"
    name = "Brownbook.net"
    tier = 1

    CREDENTIALS = (("api_key", "BROWNBOOK_API_KEY"),)

    def __init__(
        self,
        resolver: CredentialResolver | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.credentials = ProviderCredentials(self.slug, self.CREDENTIALS, resolver)
        self.http = ProviderHttpClient(self.name, BROWNBOOK_API_BASE_URL, transport=transport)

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
            raise ProviderNotConfiguredError("Brownbook API key is not configured", self.slug)
        headers = {"Authorization": f"Bearer {api_key}", "Content-Type": "application/json"}
        return await self.http.request(method, path, operation=operation, headers=headers, **kwargs)

    @staticmethod
    def _listing_url(business: dict) -> str:
        return business.get("url") or BROWNBOOK_LISTING_URL.format(business_id=business.get("id"))

    def _to_business(self, location: NormalizedLocation) -> dict:
        return compact(
            {
                "name": location.business_name,
                "address": location.street,
                "city": location.city,
                "region": location.state,
                "postcode": location.zip,
                "country": location.country,
                "phone": format_phone(location.phone),
                "website": location.website,
                "email": location.email,
                "description": location.description,
                "categories": location.categories,
                "opening_hours": hours_text(location.hours),
                "facebook": location.social("facebook"),
                "twitter": location.social("twitter"),
                "instagram": location.social("instagram"),
                "linkedin": location.social("linkedin"),
                "logo_url": location.logo_url,
                "images": location.image_urls,
            }
        )

    async def search(self, name: str, city: str) -> list[dict]:
        result = await self._request(
            "GET", "/businesses/search", "search", params={"name": name, "city": city}
        )
        return result.get("data") or []

    async def submit(self, location: NormalizedLocation) -> SubmitResult:
        error = validation_error(location)
        if error:
            return SubmitResult(success=False, error=error, retryable=False)

        try:
            existing = await self.search(location.business_name, location.city)
            name = location.business_name.lower()
            match = next(
                (b for b in existing if (b.get("name") or "").lower() == name and b.get("id")),
                None,
            )
            if match:
                return SubmitResult(
                    success=True,
                    external_id=str(match["id"]),
                    external_url=self._listing_url(match),
                    message="Existing listing found",
                    metadata={"matched": True, "status": match.get("status")},
                )

            result = await self._request(
                "POST", "/businesses", "create", json=self._to_business(location)
            )
            business = result.get("data")
            if not result.get("success") or not business:
                return SubmitResult(success=False, error=_envelope_error(result))

            logger.info("Brownbook listing created", business_id=business.get("id"))
            return SubmitResult(
                success=True,
                external_id=str(business.get("id")) if business.get("id") is not None else None,
                external_url=self._listing_url(business),
                message="Listing created successfully",
                metadata={"status": business.get("status")},
            )
        except (CitationProviderError, httpx.HTTPError) as e:
            return SubmitResult(success=False, error=describe_error(e))

    async def update(self, external_id: str, location: NormalizedLocation) -> UpdateResult:
        try:
            result = await self._request(
                "PUT", f"/businesses/{external_id}", "update", json=self._to_business(location)
            )
            if not result.get("success"):
                return UpdateResult(success=False, error=_envelope_error(result))
            return UpdateResult(success=True, message="Listing updated successfully")
        except (CitationProviderError, httpx.HTTPError) as e:
            return UpdateResult(success=False, error=describe_error(e))

    async def verify(self, external_id: str) -> VerifyResult:
        try:
            result = await self._request("GET", f"/businesses/{external_id}", "get_business")
        except ProviderAPIError as e:
            if e.is_not_found:
                return VerifyResult(success=True, status="not_found", message="Listing not found")
            return VerifyResult(success=False, status="error", error=describe_error(e))
        except (CitationProviderError, httpx.HTTPError) as e:
            return VerifyResult(success=False, status="error", error=describe_error(e))

        business = result.get("data")
        if not business:
            return VerifyResult(success=True, status="not_found", message="Listing not found")

        status = "pending"
        if business.get("status") == "active":
            status = "verified"
        elif business.get("status") == "rejected":
            status = "error"

        return VerifyResult(
            success=True,
            status=status,
            external_url=self._listing_url(business),
            last_updated=business.get("updated_at"),
            message=f"Status: {business.get('status')}",
        )

    async def delete(self, external_id: str) -> DeleteResult:
        try:
            result = await self._request("DELETE", f"/businesses/{external_id}", "delete")
        except (CitationProviderError, httpx.HTTPError) as e:
            return DeleteResult(success=False, error=describe_error(e))

        if result.get("success"):
            return DeleteResult(success=True, message="Listing deleted successfully")
        return DeleteResult(success=False, error=_envelope_error(result))

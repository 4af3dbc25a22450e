"""
Foursquare Places API client.
Tier 1 direct API; proposals feed Snapchat, Uber and 50+ navigation apps.

Writes go through the venue proposal endpoints, which require Places API
edit access on the key.
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
    foursquare_hours,
    hash_brand,
    normalize_brand,
    validation_error,
)
from citation_sync.services.citations.http import ProviderHttpClient, describe_error

logger = get_logger(__name__)

FOURSQUARE_API_BASE_URL = "https://api.foursquare.com/v3"
FOURSQUARE_PLACE_URL = "https://foursquare.com/v/{fsq_id}"
SEARCH_LIMIT = 5


class FoursquareClient:
    slug = "foursquare"
    name = "Foursquare"
    tier = 1

    CREDENTIALS = (("api_key", "FOURSQUARE_API_KEY"),)

    def __init__(
        self,
        resolver: CredentialResolver | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.credentials = ProviderCredentials(self.slug, self.CREDENTIALS, resolver)
        self.http = ProviderHttpClient(self.name, FOURSQUARE_API_BASE_URL, transport=transport)

    def is_configured(self) -> bool:
        return self.credentials.is_configured()

    def normalize(self, brand: BrandRecord) -> NormalizedLocation:
        return normalize_brand(brand)

    def hash(self, brand: BrandRecord) -> str:
        return hash_brand(brand)

    async def close(self) -> None:
        await self.http.close()

    async def _headers(self) -> dict:
        api_key = await self.credentials.get("api_key")
        if not api_key:
            raise ProviderNotConfiguredError("Foursquare API key is not configured", self.slug)
        # Foursquare takes the raw key, no scheme
        return {
            "Authorization": api_key,
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    async def _request(self, method: str, path: str, operation: str, **kwargs):
        headers = await self._headers()
        return await self.http.request(method, path, operation=operation, headers=headers, **kwargs)

    async def search(self, query: str, near: str | None = None) -> list[dict]:
        params = {"query": query, "limit": str(SEARCH_LIMIT)}
        if near:
            params["near"] = near
        data = await self._request("GET", "/places/search", "search", params=params)
        return data.get("results", []) or []

    async def get_place(self, fsq_id: str) -> dict:
        return await self._request("GET", f"/places/{fsq_id}", "get_place")

    def _to_payload(self, location: NormalizedLocation) -> dict:
        return compact(
            {
                "name": location.business_name,
                "address": location.street,
                "city": location.city,
                "state": location.state,
                "zip": location.zip,
                "country": location.country,
                "phone": format_phone(location.phone),
                "website": location.website,
                "description": location.description,
                "hours": foursquare_hours(location.hours),
            }
        )

    @staticmethod
    def _find_match(places: list[dict], location: NormalizedLocation) -> dict | None:
        name = location.business_name.lower()
        street_token = location.street.lower().split(" ")[0]
        for place in places:
            address = (place.get("location") or {}).get("address")
            if (place.get("name") or "").lower() == name and address and street_token in address.lower():
                return place
        return None

    async def submit(self, location: NormalizedLocation) -> SubmitResult:
        error = validation_error(location)
        if error:
            return SubmitResult(success=False, error=error, retryable=False)

        try:
            existing = await self.search(location.business_name, f"{location.city}, {location.state}")
            match = self._find_match(existing, location)
            if match:
                return SubmitResult(
                    success=True,
                    external_id=match["fsq_id"],
                    external_url=FOURSQUARE_PLACE_URL.format(fsq_id=match["fsq_id"]),
                    message="Existing place found",
                    metadata={"matched": True},
                )

            result = await self._request(
                "POST", "/places/propose", "propose", json=self._to_payload(location)
            )
            fsq_id = result.get("fsq_id")
            logger.info("Foursquare place proposed", fsq_id=fsq_id)
            return SubmitResult(
                success=True,
                external_id=fsq_id,
                external_url=FOURSQUARE_PLACE_URL.format(fsq_id=fsq_id) if fsq_id else None,
                message="Place proposed successfully",
            )
        except (CitationProviderError, httpx.HTTPError) as e:
            return SubmitResult(success=False, error=describe_error(e))

    async def update(self, external_id: str, location: NormalizedLocation) -> UpdateResult:
        try:
            await self._request(
                "POST",
                f"/places/{external_id}/propose",
                "propose_edit",
                json=self._to_payload(location),
            )
            return UpdateResult(success=True, message="Update proposed successfully")
        except (CitationProviderError, httpx.HTTPError) as e:
            return UpdateResult(success=False, error=describe_error(e))

    async def verify(self, external_id: str) -> VerifyResult:
        try:
            place = await self.get_place(external_id)
        except ProviderAPIError as e:
            if e.is_not_found:
                return VerifyResult(success=True, status="not_found", message="Place not found")
            return VerifyResult(success=False, status="error", error=describe_error(e))
        except (CitationProviderError, httpx.HTTPError) as e:
            return VerifyResult(success=False, status="error", error=describe_error(e))

        fsq_id = place.get("fsq_id") or external_id
        return VerifyResult(
            success=True,
            status="verified" if place.get("verified") else "pending",
            external_url=FOURSQUARE_PLACE_URL.format(fsq_id=fsq_id),
            last_updated=place.get("date_updated"),
        )

    async def delete(self, external_id: str) -> DeleteResult:
        # No hard delete; flagging the venue as closed is the closest operation
        try:
            await self._request(
                "POST", f"/places/{external_id}/flag", "flag", json={"problem": "closed"}
            )
            return DeleteResult(success=True, message="Place flagged as closed")
        except (CitationProviderError, httpx.HTTPError) as e:
            return DeleteResult(success=False, error=describe_error(e))

"""
Facebook/Meta Pages (Graph API) client.
Tier 1 direct API for Facebook Places.

Graph API reports failures in an {"error": {...}} body, sometimes with a
2xx status, so responses are inspected here rather than by status alone.
Page updates are partial: only fields sent are changed.
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
    facebook_hours,
    format_phone,
    hash_brand,
    normalize_brand,
    unsupported_delete,
    validation_error,
)
from citation_sync.services.citations.http import ProviderHttpClient, describe_error

logger = get_logger(__name__)

FACEBOOK_GRAPH_BASE_URL = "https://graph.facebook.com/v18.0"
FACEBOOK_PAGE_URL = "https://www.facebook.com/{page_id}"
FACEBOOK_PAGE_CREATE_URL = "https://www.facebook.com/pages/create/"

# Graph API "object does not exist / unsupported get request"
GRAPH_OBJECT_MISSING_CODE = 100

PAGE_FIELDS = (
    "id,name,about,description,location,phone,website,emails,hours,category,"
    "category_list,link,is_published,verification_status,single_line_address"
)
SEARCH_FIELDS = "id,name,location,phone,website,link,single_line_address"
ABOUT_MAX_LENGTH = 255


class FacebookClient:
    slug = "facebook"
    name = "Facebook/Meta"
    tier = 1

    CREDENTIALS = (
        ("app_id", "FACEBOOK_APP_ID"),
        ("app_secret", "FACEBOOK_APP_SECRET"),
        ("access_token", "FACEBOOK_ACCESS_TOKEN"),
    )

    def __init__(
        self,
        resolver: CredentialResolver | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.credentials = ProviderCredentials(self.slug, self.CREDENTIALS, resolver)
        self.http = ProviderHttpClient(self.name, FACEBOOK_GRAPH_BASE_URL, transport=transport)

    def is_configured(self) -> bool:
        return self.credentials.is_configured()

    def normalize(self, brand: BrandRecord) -> NormalizedLocation:
        return normalize_brand(brand)

    def hash(self, brand: BrandRecord) -> str:
        return hash_brand(brand)

    async def close(self) -> None:
        await self.http.close()

    async def _request(
        self,
        method: str,
        path: str,
        operation: str,
        params: dict | None = None,
        json: dict | None = None,
    ) -> dict:
        access_token = await self.credentials.get("access_token")
        if not access_token:
            raise ProviderNotConfiguredError("Facebook API credentials are not configured", self.slug)

        response = await self.http.send(
            method,
            path,
            params={**(params or {}), "access_token": access_token},
            json=json,
            headers={"Content-Type": "application/json"},
        )

        try:
            data = response.json() if response.text else {}
        except ValueError:
            data = None

        if isinstance(data, dict) and data.get("error"):
            error = data["error"]
            code = error.get("code")
            logger.warning(
                "Facebook Graph API error",
                operation=operation,
                status_code=response.status_code,
                error_code=code,
                error_type=error.get("type"),
            )
            raise ProviderAPIError(
                f"Facebook API error: {error.get('message', 'Unknown error')} ({code})",
                provider=self.slug,
                status_code=response.status_code,
                response_text=response.text[:500],
                error_code=str(code) if code is not None else None,
            )

        if not response.is_success or data is None:
            raise ProviderAPIError(
                f"Facebook API error: {response.status_code} - {response.text[:500]}",
                provider=self.slug,
                status_code=response.status_code,
                response_text=response.text[:500],
            )

        return data

    @staticmethod
    def _is_missing(error: ProviderAPIError) -> bool:
        return error.is_not_found or error.error_code == str(GRAPH_OBJECT_MISSING_CODE)

    async def search_places(self, query: str) -> list[dict]:
        result = await self._request(
            "GET",
            "/search",
            "search_places",
            params={"type": "place", "q": query, "fields": SEARCH_FIELDS},
        )
        data = result.get("data")
        return data if isinstance(data, list) else []

    async def get_page(self, page_id: str) -> dict:
        return await self._request("GET", f"/{page_id}", "get_page", params={"fields": PAGE_FIELDS})

    @staticmethod
    def _location_block(location: NormalizedLocation) -> dict:
        return {
            "street": location.street,
            "city": location.city,
            "state": location.state,
            "zip": location.zip,
            "country": location.country,
        }

    @staticmethod
    def _about(location: NormalizedLocation) -> str | None:
        return location.description[:ABOUT_MAX_LENGTH] if location.description else None

    async def submit(self, location: NormalizedLocation) -> SubmitResult:
        error = validation_error(location)
        if error:
            return SubmitResult(success=False, error=error, retryable=False)

        try:
            existing = await self.search_places(location.business_name)
            name = location.business_name.lower()
            city = location.city.lower()
            for page in existing:
                page_city = ((page.get("location") or {}).get("city") or "").lower()
                if (page.get("name") or "").lower() == name and page_city == city:
                    return SubmitResult(
                        success=True,
                        external_id=page["id"],
                        external_url=page.get("link") or FACEBOOK_PAGE_URL.format(page_id=page["id"]),
                        message="Existing page found",
                        metadata={"matched": True},
                    )

            page_data = compact(
                {
                    "name": location.business_name,
                    "about": self._about(location),
                    "location": self._location_block(location),
                    "phone": format_phone(location.phone),
                    "website": location.website,
                    "hours": facebook_hours(location.hours),
                }
            )
            result = await self._request("POST", "/me/accounts", "create_page", json=page_data)
            page_id = result.get("id")
            if not page_id:
                return SubmitResult(
                    success=False,
                    error="Failed to create page - consider creating manually on Facebook",
                )

            logger.info("Facebook page created", page_id=page_id)
            return SubmitResult(
                success=True,
                external_id=page_id,
                external_url=FACEBOOK_PAGE_URL.format(page_id=page_id),
                message="Page created successfully",
            )
        except (CitationProviderError, httpx.HTTPError) as e:
            # Page creation is restricted for most apps
            return SubmitResult(
                success=False,
                error=describe_error(e),
                metadata={"suggestion": f"Create the page manually at {FACEBOOK_PAGE_CREATE_URL}"},
            )

    async def update(self, external_id: str, location: NormalizedLocation) -> UpdateResult:
        page_data = compact(
            {
                "about": self._about(location),
                "phone": format_phone(location.phone),
                "website": location.website,
                "location": (
                    self._location_block(location) if location.street and location.city else None
                ),
                "hours": facebook_hours(location.hours),
            }
        )
        try:
            await self._request("POST", f"/{external_id}", "update_page", json=page_data)
            return UpdateResult(success=True, message="Page updated successfully")
        except (CitationProviderError, httpx.HTTPError) as e:
            return UpdateResult(success=False, error=describe_error(e))

    async def verify(self, external_id: str) -> VerifyResult:
        try:
            page = await self.get_page(external_id)
        except ProviderAPIError as e:
            if self._is_missing(e):
                return VerifyResult(success=True, status="not_found", message="Page not found")
            return VerifyResult(success=False, status="error", error=describe_error(e))
        except (CitationProviderError, httpx.HTTPError) as e:
            return VerifyResult(success=False, status="error", error=describe_error(e))

        if not page:
            return VerifyResult(success=True, status="not_found", message="Page not found")

        published = bool(page.get("is_published"))
        page_id = page.get("id") or external_id
        return VerifyResult(
            success=True,
            status="verified" if published else "pending",
            external_url=page.get("link") or FACEBOOK_PAGE_URL.format(page_id=page_id),
            message=f"Page: {page.get('name')}, Published: {'Yes' if published else 'No'}",
        )

    async def delete(self, external_id: str) -> DeleteResult:
        return unsupported_delete(self.name)

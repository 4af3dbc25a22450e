"""
Google Business Profile API client.
Tier 1 direct API with Google Search/Maps integration.

Authenticates with the OAuth2 refresh-token grant; the access token is cached
in memory and refreshed five minutes before it expires. Updates use PATCH,
which clears any field named in the update mask but missing from the body,
so the mask only ever lists fields the location actually carries.
"""

import asyncio

import httpx

from citation_sync.infrastructure.observability.logging import get_logger
from citation_sync.models.domain.citation_domain import (
    DeleteResult,
    SubmitResult,
    UpdateResult,
    VerifyResult,
)
from citation_sync.models.domain.location_domain import BrandRecord, NormalizedLocation
from citation_sync.models.domain.oauth_domain import AccessToken
from citation_sync.services.citations.base import (
    CitationProviderError,
    OAuthTokenError,
    ProviderAPIError,
    ProviderNotConfiguredError,
)
from citation_sync.services.citations.credentials import CredentialResolver, ProviderCredentials
from citation_sync.services.citations.formatting import (
    compact,
    format_phone,
    google_hours,
    hash_brand,
    normalize_brand,
    unsupported_delete,
    validation_error,
)
from citation_sync.services.citations.http import ProviderHttpClient, describe_error

logger = get_logger(__name__)

GOOGLE_BUSINESS_API_BASE_URL = "https://mybusinessbusinessinformation.googleapis.com/v1"
GOOGLE_ACCOUNT_MANAGEMENT_URL = "https://mybusinessaccountmanagement.googleapis.com/v1"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
TOKEN_REFRESH_BUFFER_MINUTES = 5


class GoogleBusinessClient:
    slug = "google-business"
    name = "Google Business Profile"
    tier = 1

    CREDENTIALS = (
        ("client_id", "GOOGLE_BUSINESS_CLIENT_ID"),
        ("client_secret", "GOOGLE_BUSINESS_CLIENT_SECRET"),
        ("refresh_token", "GOOGLE_BUSINESS_REFRESH_TOKEN"),
    )

    def __init__(
        self,
        resolver: CredentialResolver | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.credentials = ProviderCredentials(self.slug, self.CREDENTIALS, resolver)
        self.http = ProviderHttpClient(self.name, GOOGLE_BUSINESS_API_BASE_URL, transport=transport)
        self._token: AccessToken | None = None
        self._token_lock = asyncio.Lock()

    def is_configured(self) -> bool:
        return self.credentials.is_configured()

    def normalize(self, brand: BrandRecord) -> NormalizedLocation:
        return normalize_brand(brand)

    def hash(self, brand: BrandRecord) -> str:
        return hash_brand(brand)

    async def close(self) -> None:
        await self.http.close()

    # =================================================================
    # AUTH
    # =================================================================

    async def get_access_token(self) -> str:
        """Cached access token, refreshed under a lock when close to expiry."""
        async with self._token_lock:
            if self._token and not self._token.needs_refresh(TOKEN_REFRESH_BUFFER_MINUTES):
                return self._token.access_token

            client_id = await self.credentials.get("client_id")
            client_secret = await self.credentials.get("client_secret")
            refresh_token = await self.credentials.get("refresh_token")
            if not (client_id and client_secret and refresh_token):
                raise ProviderNotConfiguredError(
                    "Google Business Profile credentials are not configured", self.slug
                )

            response = await self.http.send(
                "POST",
                GOOGLE_TOKEN_URL,
                data={
                    "client_id": client_id,
                    "client_secret": client_secret,
                    "refresh_token": refresh_token,
                    "grant_type": "refresh_token",
                },
                headers={"Content-Type": "application/x-www-form-urlencoded"},
            )
            if not response.is_success:
                raise OAuthTokenError(
                    f"Failed to refresh Google token: {response.status_code} - {response.text[:200]}",
                    provider=self.slug,
                    status_code=response.status_code,
                )

            try:
                self._token = AccessToken.from_token_response(response.json())
            except (ValueError, KeyError) as e:
                raise OAuthTokenError(
                    f"Invalid Google token response: {e}", provider=self.slug
                ) from e

            logger.info(
                "Google Business access token refreshed",
                expires_at=self._token.expires_at.isoformat() if self._token.expires_at else None,
            )
            return self._token.access_token

    async def _request(self, method: str, path: str, operation: str, **kwargs) -> dict:
        token = await self.get_access_token()
        headers = {"Authorization": f"Bearer {token}", "Content-Type": "application/json"}
        return await self.http.request(method, path, operation=operation, headers=headers, **kwargs)

    async def get_accounts(self) -> list[dict]:
        result = await self._request(
            "GET", "/accounts", "list_accounts", base_url=GOOGLE_ACCOUNT_MANAGEMENT_URL
        )
        return result.get("accounts") or []

    async def _resource_name(self, external_id: str) -> str | None:
        """accounts/{account}/locations/{id}; bare ids are resolved against the first account."""
        if "/" in external_id:
            return external_id
        accounts = await self.get_accounts()
        if not accounts:
            return None
        return f"{accounts[0]['name']}/locations/{external_id}"

    # =================================================================
    # PAYLOADS
    # =================================================================

    def _to_location(self, location: NormalizedLocation) -> dict:
        phone = format_phone(location.phone)
        address = {
            key: value
            for key, value in (
                ("addressLines", [location.street] if location.street else None),
                ("locality", location.city),
                ("administrativeArea", location.state),
                ("postalCode", location.zip),
                ("regionCode", location.country),
            )
            if value
        }
        return compact(
            {
                "title": location.business_name or None,
                "storefrontAddress": address or None,
                "phoneNumbers": {"primaryPhone": phone} if phone else None,
                "websiteUri": location.website,
                "regularHours": google_hours(location.hours),
                "profile": {"description": location.description} if location.description else None,
            }
        )

    @staticmethod
    def update_mask(payload: dict) -> str:
        """Field mask naming only the top-level fields present in the payload."""
        return ",".join(payload.keys())

    # =================================================================
    # OPERATIONS
    # =================================================================

    async def submit(self, location: NormalizedLocation) -> SubmitResult:
        error = validation_error(location)
        if error:
            return SubmitResult(success=False, error=error, retryable=False)

        try:
            accounts = await self.get_accounts()
            if not accounts:
                return SubmitResult(
                    success=False,
                    error="No Google Business accounts found. Please create an account first.",
                )

            account = accounts[0]
            result = await self._request(
                "POST",
                f"/{account['name']}/locations",
                "create_location",
                json=self._to_location(location),
            )
            resource_name = result.get("name")
            if not resource_name:
                return SubmitResult(success=False, error="Failed to create location")

            logger.info("Google Business location created", resource_name=resource_name)
            return SubmitResult(
                success=True,
                external_id=resource_name.split("/")[-1],
                external_url=(result.get("metadata") or {}).get("mapsUri"),
                message="Location created successfully",
                metadata={"resourceName": resource_name, "accountName": account["name"]},
            )
        except (CitationProviderError, httpx.HTTPError) as e:
            return SubmitResult(success=False, error=describe_error(e))

    async def update(self, external_id: str, location: NormalizedLocation) -> UpdateResult:
        try:
            resource_name = await self._resource_name(external_id)
            if not resource_name:
                return UpdateResult(success=False, error="No Google Business accounts found")

            payload = self._to_location(location)
            await self._request(
                "PATCH",
                f"/{resource_name}",
                "update_location",
                params={"updateMask": self.update_mask(payload)},
                json=payload,
            )
            return UpdateResult(success=True, message="Location updated successfully")
        except (CitationProviderError, httpx.HTTPError) as e:
            return UpdateResult(success=False, error=describe_error(e))

    async def verify(self, external_id: str) -> VerifyResult:
        try:
            resource_name = await self._resource_name(external_id)
            if not resource_name:
                return VerifyResult(
                    success=False, status="error", error="No Google Business accounts found"
                )
            result = await self._request("GET", f"/{resource_name}", "get_location")
        except ProviderAPIError as e:
            if e.is_not_found:
                return VerifyResult(success=True, status="not_found", message="Location not found")
            return VerifyResult(success=False, status="error", error=describe_error(e))
        except (CitationProviderError, httpx.HTTPError) as e:
            return VerifyResult(success=False, status="error", error=describe_error(e))

        if not result:
            return VerifyResult(success=True, status="not_found", message="Location not found")

        return VerifyResult(
            success=True,
            status="verified",
            external_url=(result.get("metadata") or {}).get("mapsUri"),
            message=f"Location: {result.get('title')}",
        )

    async def delete(self, external_id: str) -> DeleteResult:
        return unsupported_delete(self.name)

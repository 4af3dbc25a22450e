"""
Shared HTTP plumbing for citation adapters.
One httpx.AsyncClient per adapter with optional retry/backoff.
"""

import asyncio
from typing import Any

import httpx

from citation_sync.config import settings
from citation_sync.infrastructure.observability.logging import get_logger
from citation_sync.services.citations.base import ProviderAPIError

logger = get_logger(__name__)

RETRY_STATUS_CODES = {429, 500, 502, 503, 504}


def describe_error(exc: Exception) -> str:
    """Human-readable failure text for a caught provider/transport error."""
    message = str(exc)
    if message:
        return message
    return f"{type(exc).__name__} while calling provider"


class ProviderHttpClient:
    """
    Thin wrapper over httpx.AsyncClient used by every adapter.

    Non-2xx responses raise ProviderAPIError with the provider's own text, e.g.
    "Foursquare API error: 500 - upstream down". Retries are off by default;
    the citation queue attempt counter is the retry mechanism.
    """

    def __init__(
        self,
        provider_name: str,
        base_url: str,
        *,
        timeout: float | None = None,
        max_retries: int | None = None,
        backoff_factor: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.provider_name = provider_name
        self.base_url = base_url.rstrip("/")
        self.max_retries = (
            settings.PROVIDER_HTTP_MAX_RETRIES if max_retries is None else max_retries
        )
        self.backoff_factor = (
            settings.PROVIDER_HTTP_BACKOFF_FACTOR if backoff_factor is None else backoff_factor
        )
        self._timeout = timeout or settings.PROVIDER_REQUEST_TIMEOUT
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    def _create_client(self) -> httpx.AsyncClient:
        timeout = httpx.Timeout(self._timeout)
        limits = httpx.Limits(max_keepalive_connections=10, max_connections=20)
        return httpx.AsyncClient(timeout=timeout, limits=limits, transport=self._transport)

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = self._create_client()
        return self._client

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
        self._client = None

    def url_for(self, path: str, base_url: str | None = None) -> str:
        if path.startswith("http://") or path.startswith("https://"):
            return path
        return f"{(base_url or self.base_url).rstrip('/')}/{path.lstrip('/')}"

    async def send(self, method: str, path: str, **kwargs) -> httpx.Response:
        """Execute a request with retry and backoff, returning the raw response."""
        base_url = kwargs.pop("base_url", None)
        url = self.url_for(path, base_url)
        attempts = self.max_retries + 1

        for attempt in range(1, attempts + 1):
            try:
                response = await self.client.request(method, url, **kwargs)
                if response.status_code in RETRY_STATUS_CODES and attempt < attempts:
                    backoff = self.backoff_factor * (2 ** (attempt - 1))
                    logger.debug(
                        "Provider API retrying request",
                        provider=self.provider_name,
                        attempt=attempt,
                        status_code=response.status_code,
                        backoff_seconds=backoff,
                    )
                    await asyncio.sleep(backoff)
                    continue
                return response
            except httpx.RequestError as e:
                if attempt >= attempts:
                    raise
                backoff = self.backoff_factor * (2 ** (attempt - 1))
                logger.debug(
                    "Provider API request error, retrying",
                    provider=self.provider_name,
                    attempt=attempt,
                    error=str(e),
                    backoff_seconds=backoff,
                )
                await asyncio.sleep(backoff)
        raise RuntimeError(f"{self.provider_name} retry loop exhausted")

    def handle_response(self, response: httpx.Response, operation: str) -> Any:
        """
        Parse a provider response.

        Returns:
            Decoded JSON body ({} for an empty body)

        Raises:
            ProviderAPIError: for any non-2xx status or a non-JSON success body
        """
        logger.debug(
            "Provider API response",
            provider=self.provider_name,
            operation=operation,
            status_code=response.status_code,
            response_size=len(response.text) if response.text else 0,
        )

        if response.is_success:
            if not response.text:
                return {}
            try:
                return response.json()
            except ValueError as e:
                raise ProviderAPIError(
                    f"{self.provider_name} API error: invalid JSON response ({e})",
                    provider=self.provider_name,
                    status_code=response.status_code,
                    response_text=response.text[:500],
                ) from e

        error_text = self._error_text(response)
        logger.warning(
            "Provider API call failed",
            provider=self.provider_name,
            operation=operation,
            status_code=response.status_code,
            response_text=error_text[:200] if error_text else "",
        )
        raise ProviderAPIError(
            f"{self.provider_name} API error: {response.status_code} - {error_text}",
            provider=self.provider_name,
            status_code=response.status_code,
            response_text=error_text,
        )

    @staticmethod
    def _error_text(response: httpx.Response) -> str:
        """Google-style {"error": {"message": ...}} bodies collapse to the message."""
        if not response.text:
            return response.reason_phrase
        try:
            body = response.json()
        except ValueError:
            return response.text[:500]
        if isinstance(body, dict) and isinstance(body.get("error"), dict):
            message = body["error"].get("message")
            if message:
                return str(message)[:500]
        return response.text[:500]

    async def request(self, method: str, path: str, *, operation: str = "request", **kwargs) -> Any:
        response = await self.send(method, path, **kwargs)
        return self.handle_response(response, operation)

"""
Provider credential resolution.

Settings (environment / .env.local) win; otherwise the encrypted credential
store is consulted behind a short TTL cache. Adapters check configuration
synchronously against settings and the last warmed cache entry.
"""

import time
from typing import Protocol

from citation_sync.config import settings
from citation_sync.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class CredentialStore(Protocol):
    async def get(self, provider_slug: str, credential_key: str) -> str | None: ...

    async def save(self, provider_slug: str, credential_key: str, value: str) -> None: ...


class CredentialResolver:
    def __init__(self, store: CredentialStore | None = None, ttl_seconds: float | None = None):
        self.store = store
        self.ttl_seconds = (
            settings.CREDENTIAL_CACHE_TTL_SECONDS if ttl_seconds is None else ttl_seconds
        )
        self._cache: dict[tuple[str, str], tuple[str | None, float]] = {}

    @staticmethod
    def from_settings(setting_name: str) -> str | None:
        return getattr(settings, setting_name, None) or None

    def cached(self, provider_slug: str, credential_key: str, setting_name: str) -> str | None:
        """Settings value or the last value fetched from the store. No I/O."""
        env_value = self.from_settings(setting_name)
        if env_value:
            return env_value
        entry = self._cache.get((provider_slug, credential_key))
        return entry[0] if entry else None

    async def get(self, provider_slug: str, credential_key: str, setting_name: str) -> str | None:
        env_value = self.from_settings(setting_name)
        if env_value:
            return env_value

        if self.store is None:
            return None

        cache_key = (provider_slug, credential_key)
        entry = self._cache.get(cache_key)
        now = time.monotonic()
        if entry and now - entry[1] < self.ttl_seconds:
            return entry[0]

        try:
            value = await self.store.get(provider_slug, credential_key)
        except Exception as e:
            logger.warning(
                "Credential lookup failed",
                provider=provider_slug,
                credential_key=credential_key,
                error=str(e),
            )
            return entry[0] if entry else None

        self._cache[cache_key] = (value or None, now)
        return value or None

    async def save(self, provider_slug: str, credentials: dict[str, str]) -> None:
        """Persist credentials through the store and drop the cache."""
        if self.store is None:
            raise RuntimeError("No credential store configured")
        for credential_key, value in credentials.items():
            await self.store.save(provider_slug, credential_key, value)
        self.clear()
        logger.info(
            "Provider credentials saved",
            provider=provider_slug,
            credential_keys=sorted(credentials),
        )

    def clear(self) -> None:
        self._cache.clear()


class ProviderCredentials:
    """The credential set one adapter needs, as (credential_key, setting_name) pairs."""

    def __init__(
        self,
        provider_slug: str,
        required: tuple[tuple[str, str], ...],
        resolver: CredentialResolver | None = None,
    ):
        self.provider_slug = provider_slug
        self.required = required
        self.resolver = resolver or CredentialResolver()

    def is_configured(self) -> bool:
        return all(
            self.resolver.cached(self.provider_slug, key, setting_name)
            for key, setting_name in self.required
        )

    async def get(self, credential_key: str) -> str | None:
        for key, setting_name in self.required:
            if key == credential_key:
                return await self.resolver.get(self.provider_slug, key, setting_name)
        raise KeyError(f"{self.provider_slug} has no credential '{credential_key}'")

    async def warm(self) -> bool:
        values = [
            await self.resolver.get(self.provider_slug, key, setting_name)
            for key, setting_name in self.required
        ]
        return all(values)

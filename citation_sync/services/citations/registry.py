"""
Provider registry: the set of citation adapters available to this process.

Built once at startup (API lifespan or worker main) and handed to the
workflow service; tests construct their own with fake adapters.
"""

import httpx

from citation_sync.infrastructure.observability.logging import get_logger
from citation_sync.services.citations.base import CitationClient
from citation_sync.services.citations.brownbook import BrownbookClient
from citation_sync.services.citations.credentials import CredentialResolver
from citation_sync.services.citations.data_axle import DataAxleClient
from citation_sync.services.citations.facebook import FacebookClient
from citation_sync.services.citations.foursquare import FoursquareClient
from citation_sync.services.citations.google_business import GoogleBusinessClient
from citation_sync.services.citations.lde import LDEClient
from citation_sync.services.citations.localeze import LocalezeClient

logger = get_logger(__name__)

TIERS = (1, 2, 3, 4)


class ProviderRegistry:
    def __init__(self, clients: list[CitationClient], resolver: CredentialResolver | None = None):
        self._clients: dict[str, CitationClient] = {}
        for client in clients:
            if client.slug in self._clients:
                raise ValueError(f"Duplicate citation provider: {client.slug}")
            self._clients[client.slug] = client
        self.resolver = resolver

    def __contains__(self, slug: str) -> bool:
        return slug in self._clients

    def __len__(self) -> int:
        return len(self._clients)

    def all(self) -> list[CitationClient]:
        return list(self._clients.values())

    def get(self, slug: str) -> CitationClient | None:
        return self._clients.get(slug)

    def configured(self) -> list[CitationClient]:
        return [client for client in self._clients.values() if client.is_configured()]

    def by_tier(self) -> dict[int, list[CitationClient]]:
        grouped: dict[int, list[CitationClient]] = {tier: [] for tier in TIERS}
        for client in self._clients.values():
            grouped.setdefault(client.tier, []).append(client)
        return grouped

    def status_report(self) -> list[dict]:
        """Diagnostics: slug, name, tier and configured flag per adapter."""
        return [
            {
                "slug": client.slug,
                "name": client.name,
                "tier": client.tier,
                "configured": client.is_configured(),
            }
            for client in self._clients.values()
        ]

    async def warm_credentials(self) -> dict[str, bool]:
        """
        Resolve stored credentials so is_configured() reflects the credential store.

        Entries older than the resolver TTL are re-read; when the store fails
        the last known value stays in place.
        """
        if self.resolver is None:
            return {client.slug: client.is_configured() for client in self._clients.values()}

        report = {}
        for client in self._clients.values():
            credentials = getattr(client, "credentials", None)
            if credentials is not None:
                report[client.slug] = await credentials.warm()
            else:
                report[client.slug] = client.is_configured()

        logger.debug(
            "Provider credentials warmed",
            configured=sorted(slug for slug, ok in report.items() if ok),
        )
        return report

    async def close(self) -> None:
        for client in self._clients.values():
            try:
                await client.close()
            except Exception as e:
                logger.warning("Error closing provider client", provider=client.slug, error=str(e))


def build_default_registry(
    resolver: CredentialResolver | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> ProviderRegistry:
    """Registry with every shipped adapter sharing one credential resolver."""
    resolver = resolver or CredentialResolver()
    clients = [
        FoursquareClient(resolver, transport),
        DataAxleClient(resolver, transport),
        GoogleBusinessClient(resolver, transport),
        FacebookClient(resolver, transport),
        BrownbookClient(resolver, transport),
        LDEClient(resolver, transport),
        LocalezeClient(resolver, transport),
    ]
    return ProviderRegistry(clients, resolver)

import pytest

from citation_sync.config import settings
from citation_sync.services.citations.base import CitationClient
from citation_sync.services.citations.credentials import CredentialResolver
from citation_sync.services.citations.registry import ProviderRegistry, build_default_registry

SHIPPED_SLUGS = {
    "foursquare",
    "data-axle",
    "google-business",
    "facebook",
    "brownbook",
    "lde",
    "localeze",
}


class StubCredentialStore:
    def __init__(self, values):
        self.values = values

    async def get(self, provider_slug, credential_key):
        return self.values.get((provider_slug, credential_key))

    async def save(self, provider_slug, credential_key, value):
        self.values[(provider_slug, credential_key)] = value


def test_duplicate_slug_rejected(fake_client):
    with pytest.raises(ValueError):
        ProviderRegistry([fake_client(), fake_client()])


def test_lookup_and_configured_filter(fake_client):
    registry = ProviderRegistry(
        [
            fake_client("foursquare", tier=1),
            fake_client("lde", name="LDE", tier=2, configured=False),
        ]
    )

    assert "foursquare" in registry
    assert "yelp" not in registry
    assert registry.get("yelp") is None
    assert len(registry) == 2
    assert [client.slug for client in registry.configured()] == ["foursquare"]


def test_by_tier_lists_every_tier(fake_client):
    registry = ProviderRegistry(
        [fake_client("foursquare", tier=1), fake_client("lde", tier=2)]
    )

    grouped = registry.by_tier()

    assert set(grouped) == {1, 2, 3, 4}
    assert [client.slug for client in grouped[2]] == ["lde"]
    assert grouped[4] == []


def test_status_report(fake_client):
    registry = ProviderRegistry([fake_client("lde", name="LDE", tier=2, configured=False)])

    assert registry.status_report() == [
        {"slug": "lde", "name": "LDE", "tier": 2, "configured": False}
    ]


def test_default_registry_ships_every_adapter():
    registry = build_default_registry()

    assert {client.slug for client in registry.all()} == SHIPPED_SLUGS
    assert all(isinstance(client, CitationClient) for client in registry.all())
    assert registry.configured() == []


def test_default_registry_reads_settings(monkeypatch):
    monkeypatch.setattr(settings, "FOURSQUARE_API_KEY", "fsq-key")
    registry = build_default_registry()

    assert [client.slug for client in registry.configured()] == ["foursquare"]


@pytest.mark.asyncio
async def test_warm_credentials_picks_up_stored_keys():
    store = StubCredentialStore({("brownbook", "api_key"): "bb-key"})
    registry = build_default_registry(CredentialResolver(store))

    assert registry.get("brownbook").is_configured() is False

    report = await registry.warm_credentials()

    assert report["brownbook"] is True
    assert report["foursquare"] is False
    assert registry.get("brownbook").is_configured() is True


@pytest.mark.asyncio
async def test_stored_key_survives_store_outage_between_warms():
    store = StubCredentialStore({("brownbook", "api_key"): "bb-key"})
    registry = build_default_registry(CredentialResolver(store, ttl_seconds=0))
    await registry.warm_credentials()

    async def unavailable(provider_slug, credential_key):
        raise ConnectionError("credential store unreachable")

    store.get = unavailable
    report = await registry.warm_credentials()

    assert report["brownbook"] is True
    assert registry.get("brownbook").is_configured() is True
    assert [client.slug for client in registry.configured()] == ["brownbook"]


@pytest.mark.asyncio
async def test_warm_rereads_store_once_entries_expire():
    store = StubCredentialStore({("brownbook", "api_key"): "bb-key"})
    registry = build_default_registry(CredentialResolver(store, ttl_seconds=0))
    await registry.warm_credentials()

    del store.values[("brownbook", "api_key")]
    report = await registry.warm_credentials()

    assert report["brownbook"] is False
    assert registry.get("brownbook").is_configured() is False


@pytest.mark.asyncio
async def test_close_closes_every_client(fake_client):
    clients = [fake_client("foursquare"), fake_client("lde")]
    registry = ProviderRegistry(clients)

    await registry.close()

    assert all(client.closed for client in clients)

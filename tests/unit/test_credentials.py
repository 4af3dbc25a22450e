import pytest

from citation_sync.config import settings
from citation_sync.services.citations.credentials import CredentialResolver, ProviderCredentials


class MemoryCredentialStore:
    def __init__(self, values=None):
        self.values = dict(values or {})
        self.reads = 0
        self.fail = False

    async def get(self, provider_slug, credential_key):
        self.reads += 1
        if self.fail:
            raise RuntimeError("database unavailable")
        return self.values.get((provider_slug, credential_key))

    async def save(self, provider_slug, credential_key, value):
        self.values[(provider_slug, credential_key)] = value


@pytest.mark.asyncio
async def test_settings_win_over_store(monkeypatch):
    monkeypatch.setattr(settings, "FOURSQUARE_API_KEY", "env-key")
    store = MemoryCredentialStore({("foursquare", "api_key"): "stored-key"})
    resolver = CredentialResolver(store)

    assert await resolver.get("foursquare", "api_key", "FOURSQUARE_API_KEY") == "env-key"
    assert store.reads == 0


@pytest.mark.asyncio
async def test_store_value_is_cached_within_ttl():
    store = MemoryCredentialStore({("foursquare", "api_key"): "stored-key"})
    resolver = CredentialResolver(store, ttl_seconds=60)

    assert await resolver.get("foursquare", "api_key", "FOURSQUARE_API_KEY") == "stored-key"
    assert await resolver.get("foursquare", "api_key", "FOURSQUARE_API_KEY") == "stored-key"
    assert store.reads == 1


@pytest.mark.asyncio
async def test_expired_cache_reads_store_again():
    store = MemoryCredentialStore({("foursquare", "api_key"): "stored-key"})
    resolver = CredentialResolver(store, ttl_seconds=0)

    await resolver.get("foursquare", "api_key", "FOURSQUARE_API_KEY")
    await resolver.get("foursquare", "api_key", "FOURSQUARE_API_KEY")

    assert store.reads == 2


@pytest.mark.asyncio
async def test_store_failure_falls_back_to_last_value():
    store = MemoryCredentialStore({("foursquare", "api_key"): "stored-key"})
    resolver = CredentialResolver(store, ttl_seconds=0)
    await resolver.get("foursquare", "api_key", "FOURSQUARE_API_KEY")

    store.fail = True

    assert await resolver.get("foursquare", "api_key", "FOURSQUARE_API_KEY") == "stored-key"


@pytest.mark.asyncio
async def test_store_failure_without_cache_is_missing():
    store = MemoryCredentialStore()
    store.fail = True
    resolver = CredentialResolver(store)

    assert await resolver.get("foursquare", "api_key", "FOURSQUARE_API_KEY") is None


@pytest.mark.asyncio
async def test_save_persists_and_clears_cache():
    store = MemoryCredentialStore({("brownbook", "api_key"): "old"})
    resolver = CredentialResolver(store, ttl_seconds=60)
    assert await resolver.get("brownbook", "api_key", "BROWNBOOK_API_KEY") == "old"

    await resolver.save("brownbook", {"api_key": "new"})

    assert store.values[("brownbook", "api_key")] == "new"
    assert await resolver.get("brownbook", "api_key", "BROWNBOOK_API_KEY") == "new"


@pytest.mark.asyncio
async def test_save_without_store_raises():
    with pytest.raises(RuntimeError):
        await CredentialResolver().save("brownbook", {"api_key": "new"})


@pytest.mark.asyncio
async def test_provider_credentials_configured_after_warm():
    store = MemoryCredentialStore(
        {
            ("facebook", "app_id"): "app",
            ("facebook", "app_secret"): "secret",
            ("facebook", "access_token"): "token",
        }
    )
    credentials = ProviderCredentials(
        "facebook",
        (
            ("app_id", "FACEBOOK_APP_ID"),
            ("app_secret", "FACEBOOK_APP_SECRET"),
            ("access_token", "FACEBOOK_ACCESS_TOKEN"),
        ),
        CredentialResolver(store),
    )

    assert credentials.is_configured() is False
    assert await credentials.warm() is True
    assert credentials.is_configured() is True
    assert await credentials.get("access_token") == "token"


@pytest.mark.asyncio
async def test_partial_credentials_are_not_configured(monkeypatch):
    monkeypatch.setattr(settings, "GOOGLE_BUSINESS_CLIENT_ID", "client")
    credentials = ProviderCredentials(
        "google-business",
        (
            ("client_id", "GOOGLE_BUSINESS_CLIENT_ID"),
            ("client_secret", "GOOGLE_BUSINESS_CLIENT_SECRET"),
        ),
    )

    assert credentials.is_configured() is False
    assert await credentials.warm() is False


@pytest.mark.asyncio
async def test_unknown_credential_key_raises():
    credentials = ProviderCredentials("lde", (("api_key", "LDE_RAPIDAPI_KEY"),))

    with pytest.raises(KeyError):
        await credentials.get("password")

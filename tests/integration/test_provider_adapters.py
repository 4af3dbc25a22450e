import json
import re

import pytest

from citation_sync.config import settings
from citation_sync.models.domain.location_domain import BrandRecord
from citation_sync.services.citations.brownbook import BrownbookClient
from citation_sync.services.citations.data_axle import DataAxleClient
from citation_sync.services.citations.facebook import FacebookClient
from citation_sync.services.citations.foursquare import FoursquareClient
from citation_sync.services.citations.formatting import normalize_brand
from citation_sync.services.citations.lde import LDEClient
from citation_sync.services.citations.localeze import LocalezeClient

FOURSQUARE_SEARCH = re.compile(r"https://api\.foursquare\.com/v3/places/search\?.*")
DATA_AXLE_SEARCH = re.compile(r"https://api\.data-axle\.com/v1/listings/search\?.*")
LOCALEZE_SEARCH = re.compile(r"https://api\.neustarlocaleze\.biz/v2/listings/search\?.*")


# =================================================================
# FOURSQUARE
# =================================================================


@pytest.mark.asyncio
async def test_foursquare_proposes_new_place(httpx_mock, monkeypatch, joes_pizza):
    monkeypatch.setattr(settings, "FOURSQUARE_API_KEY", "fsq-key")
    client = FoursquareClient()

    httpx_mock.add_response(method="GET", url=FOURSQUARE_SEARCH, json={"results": []})
    httpx_mock.add_response(
        method="POST",
        url="https://api.foursquare.com/v3/places/propose",
        json={"fsq_id": "4b8c1234"},
    )

    result = await client.submit(normalize_brand(joes_pizza))
    await client.close()

    assert result.success is True
    assert result.external_id == "4b8c1234"
    assert result.external_url == "https://foursquare.com/v/4b8c1234"

    search, propose = httpx_mock.get_requests()
    assert search.url.params["query"] == "Joe's Pizza"
    assert search.url.params["near"] == "Springfield, IL"
    assert search.headers["Authorization"] == "fsq-key"

    payload = json.loads(propose.content)
    assert payload["phone"] == "+12175551234"
    assert payload["name"] == "Joe's Pizza"
    assert "website" not in payload


@pytest.mark.asyncio
async def test_foursquare_matches_existing_place(httpx_mock, monkeypatch, joes_pizza):
    monkeypatch.setattr(settings, "FOURSQUARE_API_KEY", "fsq-key")
    client = FoursquareClient()

    httpx_mock.add_response(
        method="GET",
        url=FOURSQUARE_SEARCH,
        json={
            "results": [
                {"fsq_id": "other", "name": "Joe's Pizzeria", "location": {"address": "12 Main St"}},
                {"fsq_id": "abc123", "name": "JOE'S PIZZA", "location": {"address": "12 Main Street"}},
            ]
        },
    )

    result = await client.submit(normalize_brand(joes_pizza))
    await client.close()

    assert result.success is True
    assert result.external_id == "abc123"
    assert result.metadata == {"matched": True}
    assert len(httpx_mock.get_requests()) == 1


@pytest.mark.asyncio
async def test_foursquare_server_error_is_reported(httpx_mock, monkeypatch, joes_pizza):
    monkeypatch.setattr(settings, "FOURSQUARE_API_KEY", "fsq-key")
    client = FoursquareClient()

    httpx_mock.add_response(method="GET", url=FOURSQUARE_SEARCH, status_code=500, text="upstream down")

    result = await client.submit(normalize_brand(joes_pizza))
    await client.close()

    assert result.success is False
    assert result.retryable is True
    assert result.error == "Foursquare API error: 500 - upstream down"


@pytest.mark.asyncio
async def test_foursquare_verify_missing_place(httpx_mock, monkeypatch):
    monkeypatch.setattr(settings, "FOURSQUARE_API_KEY", "fsq-key")
    client = FoursquareClient()

    httpx_mock.add_response(
        method="GET",
        url="https://api.foursquare.com/v3/places/gone",
        status_code=404,
        json={"message": "Not found"},
    )

    result = await client.verify("gone")
    await client.close()

    assert result.success is True
    assert result.status == "not_found"


@pytest.mark.asyncio
async def test_foursquare_verify_verified_place(httpx_mock, monkeypatch):
    monkeypatch.setattr(settings, "FOURSQUARE_API_KEY", "fsq-key")
    client = FoursquareClient()

    httpx_mock.add_response(
        method="GET",
        url="https://api.foursquare.com/v3/places/abc123",
        json={"fsq_id": "abc123", "verified": True, "date_updated": "2024-05-01"},
    )

    result = await client.verify("abc123")
    await client.close()

    assert result.status == "verified"
    assert result.external_url == "https://foursquare.com/v/abc123"
    assert result.last_updated == "2024-05-01"


@pytest.mark.asyncio
async def test_incomplete_location_never_reaches_the_network(httpx_mock, monkeypatch):
    monkeypatch.setattr(settings, "FOURSQUARE_API_KEY", "fsq-key")
    client = FoursquareClient()
    brand = BrandRecord(domain_id="dom-2", business_name="Corner Cafe", city="Austin", state="TX")

    result = await client.submit(normalize_brand(brand))
    await client.close()

    assert result.success is False
    assert result.retryable is False
    assert result.error == "Street address is required, ZIP code is required"
    assert httpx_mock.get_requests() == []


# =================================================================
# DATA AXLE
# =================================================================


@pytest.mark.asyncio
async def test_data_axle_reuses_existing_listing(httpx_mock, monkeypatch, joes_pizza):
    monkeypatch.setattr(settings, "DATA_AXLE_API_KEY", "da-key")
    client = DataAxleClient()

    httpx_mock.add_response(
        method="GET",
        url=DATA_AXLE_SEARCH,
        json={"success": True, "data": [{"id": "da-77", "status": "active"}]},
    )

    result = await client.submit(normalize_brand(joes_pizza))
    await client.close()

    assert result.success is True
    assert result.external_id == "da-77"
    assert result.message == "Existing listing found - use update to modify"
    assert httpx_mock.get_requests()[0].headers["Authorization"] == "Bearer da-key"


@pytest.mark.asyncio
async def test_data_axle_create_failure_envelope(httpx_mock, monkeypatch, joes_pizza):
    monkeypatch.setattr(settings, "DATA_AXLE_API_KEY", "da-key")
    client = DataAxleClient()

    httpx_mock.add_response(method="GET", url=DATA_AXLE_SEARCH, json={"success": True, "data": []})
    httpx_mock.add_response(
        method="POST",
        url="https://api.data-axle.com/v1/listings",
        json={"success": False, "error": {"message": "Duplicate phone number"}},
    )

    result = await client.submit(normalize_brand(joes_pizza))
    await client.close()

    assert result.success is False
    assert result.error == "Duplicate phone number"


@pytest.mark.asyncio
async def test_data_axle_verify_requires_active_and_verified(httpx_mock, monkeypatch):
    monkeypatch.setattr(settings, "DATA_AXLE_API_KEY", "da-key")
    client = DataAxleClient()

    httpx_mock.add_response(
        method="GET",
        url="https://api.data-axle.com/v1/listings/da-77",
        json={"success": True, "data": {"verification_status": "verified", "status": "pending"}},
    )

    result = await client.verify("da-77")
    await client.close()

    assert result.success is True
    assert result.status == "pending"


@pytest.mark.asyncio
async def test_data_axle_delete_unsupported():
    result = await DataAxleClient().delete("da-77")

    assert result.success is False
    assert result.error == "Delete not supported for Data Axle"


# =================================================================
# FACEBOOK
# =================================================================


@pytest.mark.asyncio
async def test_facebook_missing_page_is_not_found(httpx_mock, monkeypatch):
    monkeypatch.setattr(settings, "FACEBOOK_ACCESS_TOKEN", "fb-token")
    client = FacebookClient()

    httpx_mock.add_response(
        method="GET",
        url=re.compile(r"https://graph\.facebook\.com/v18\.0/12345\?.*"),
        status_code=400,
        json={
            "error": {
                "message": "Unsupported get request.",
                "type": "GraphMethodException",
                "code": 100,
            }
        },
    )

    result = await client.verify("12345")
    await client.close()

    assert result.success is True
    assert result.status == "not_found"
    assert httpx_mock.get_requests()[0].url.params["access_token"] == "fb-token"


@pytest.mark.asyncio
async def test_facebook_auth_error_message(httpx_mock, monkeypatch):
    monkeypatch.setattr(settings, "FACEBOOK_ACCESS_TOKEN", "fb-token")
    client = FacebookClient()

    httpx_mock.add_response(
        method="GET",
        url=re.compile(r"https://graph\.facebook\.com/v18\.0/12345\?.*"),
        status_code=400,
        json={"error": {"message": "Error validating access token", "code": 190}},
    )

    result = await client.verify("12345")
    await client.close()

    assert result.success is False
    assert result.error == "Facebook API error: Error validating access token (190)"


@pytest.mark.asyncio
async def test_facebook_matches_page_by_name_and_city(httpx_mock, monkeypatch, joes_pizza):
    monkeypatch.setattr(settings, "FACEBOOK_ACCESS_TOKEN", "fb-token")
    client = FacebookClient()

    httpx_mock.add_response(
        method="GET",
        url=re.compile(r"https://graph\.facebook\.com/v18\.0/search\?.*"),
        json={
            "data": [
                {
                    "id": "98765",
                    "name": "Joe's Pizza",
                    "location": {"city": "Springfield"},
                    "link": "https://www.facebook.com/joespizza",
                }
            ]
        },
    )

    result = await client.submit(normalize_brand(joes_pizza))
    await client.close()

    assert result.success is True
    assert result.external_id == "98765"
    assert result.external_url == "https://www.facebook.com/joespizza"


# =================================================================
# BROWNBOOK
# =================================================================


@pytest.mark.asyncio
async def test_brownbook_delete(httpx_mock, monkeypatch):
    monkeypatch.setattr(settings, "BROWNBOOK_API_KEY", "bb-key")
    client = BrownbookClient()

    httpx_mock.add_response(
        method="DELETE", url="https://api.brownbook.net/v1/businesses/555", json={"success": True}
    )

    result = await client.delete("555")
    await client.close()

    assert result.success is True
    assert httpx_mock.get_requests()[0].headers["Authorization"] == "Bearer bb-key"


@pytest.mark.asyncio
async def test_brownbook_active_business_is_verified(httpx_mock, monkeypatch):
    monkeypatch.setattr(settings, "BROWNBOOK_API_KEY", "bb-key")
    client = BrownbookClient()

    httpx_mock.add_response(
        method="GET",
        url="https://api.brownbook.net/v1/businesses/555",
        json={"success": True, "data": {"id": 555, "status": "active"}},
    )

    result = await client.verify("555")
    await client.close()

    assert result.status == "verified"
    assert result.external_url == "https://www.brownbook.net/business/555"


# =================================================================
# LDE AND LOCALEZE
# =================================================================


@pytest.mark.asyncio
async def test_lde_submit_reports_directories(httpx_mock, monkeypatch, joes_pizza):
    monkeypatch.setattr(settings, "LDE_RAPIDAPI_KEY", "rapid-key")
    client = LDEClient()

    httpx_mock.add_response(
        method="POST",
        url="https://local-data-exchange.p.rapidapi.com/locations",
        json={
            "success": True,
            "data": {"id": "lde-1", "directories": [{"name": "Apple Maps"}, {"name": "Bing"}]},
        },
    )

    result = await client.submit(normalize_brand(joes_pizza))
    await client.close()

    assert result.success is True
    assert result.external_id == "lde-1"
    assert result.message == "Submitted to 2 directories"

    request = httpx_mock.get_requests()[0]
    assert request.headers["X-RapidAPI-Key"] == "rapid-key"
    assert request.headers["X-RapidAPI-Host"] == "local-data-exchange.p.rapidapi.com"


@pytest.mark.asyncio
async def test_lde_verify_counts_synced_directories(httpx_mock, monkeypatch):
    monkeypatch.setattr(settings, "LDE_RAPIDAPI_KEY", "rapid-key")
    client = LDEClient()

    httpx_mock.add_response(
        method="GET",
        url="https://local-data-exchange.p.rapidapi.com/locations/lde-1/status",
        json={
            "success": True,
            "data": {"directories": [{"status": "synced"}, {"status": "synced"}]},
        },
    )

    result = await client.verify("lde-1")
    await client.close()

    assert result.status == "verified"
    assert result.message == "2 synced, 0 pending across 2 directories"


@pytest.mark.asyncio
async def test_localeze_creates_listing(httpx_mock, monkeypatch, joes_pizza):
    monkeypatch.setattr(settings, "NEUSTAR_LOCALEZE_API_KEY", "lz-key")
    client = LocalezeClient()

    httpx_mock.add_response(
        method="GET", url=LOCALEZE_SEARCH, json={"status": "success", "data": []}
    )
    httpx_mock.add_response(
        method="POST",
        url="https://api.neustarlocaleze.biz/v2/listings",
        json={
            "status": "success",
            "data": {"id": "lz-9", "status": "pending", "publisherStatus": [{}, {}, {}]},
        },
    )

    result = await client.submit(normalize_brand(joes_pizza))
    await client.close()

    assert result.success is True
    assert result.external_id == "lz-9"
    assert result.metadata == {"status": "pending", "publisherCount": 3}
    assert httpx_mock.get_requests()[0].headers["Authorization"] == "ApiKey lz-key"


@pytest.mark.asyncio
async def test_localeze_suspended_listing_is_error(httpx_mock, monkeypatch):
    monkeypatch.setattr(settings, "NEUSTAR_LOCALEZE_API_KEY", "lz-key")
    client = LocalezeClient()

    httpx_mock.add_response(
        method="GET",
        url="https://api.neustarlocaleze.biz/v2/listings/lz-9",
        json={"status": "success", "data": {"status": "suspended", "publisherStatus": []}},
    )

    result = await client.verify("lz-9")
    await client.close()

    assert result.success is True
    assert result.status == "error"

from datetime import UTC, datetime
from uuid import uuid4

import pytest
from cryptography.fernet import Fernet
from psycopg.types.json import Jsonb

from citation_sync.config import settings
from citation_sync.models.domain.citation_domain import CitationQueueItem
from citation_sync.repositories import citation_repository
from citation_sync.repositories.brand_repository import BrandRepository
from citation_sync.repositories.citation_repository import (
    ERROR_MESSAGE_MAX_LENGTH,
    CitationRepositoryError,
    CredentialRepository,
    ProviderRepository,
    QueueRepository,
    SubmissionRepository,
    _submission_set_clause,
)
from citation_sync.services.citations.catalog import PROVIDER_CATALOG
from citation_sync.services.infrastructure.encryption_service import encrypt_credential


def _queue_item(**overrides) -> CitationQueueItem:
    fields = {"id": "item-1", "submission_id": "sub-1", "action": "submit", "attempts": 1}
    fields.update(overrides)
    return CitationQueueItem(**fields)


def test_set_clause_wraps_metadata_and_truncates_errors():
    clause, params = _submission_set_clause(
        {"status": "error", "error_message": "x" * 900, "metadata": {"matched": True}}
    )

    assert clause == "status = %s, error_message = %s, metadata = %s, updated_at = NOW()"
    assert params[0] == "error"
    assert len(params[1]) == ERROR_MESSAGE_MAX_LENGTH
    assert isinstance(params[2], Jsonb)


def test_set_clause_rejects_unknown_columns():
    with pytest.raises(CitationRepositoryError):
        _submission_set_clause({"status": "error", "domain_id": "dom-2"})


@pytest.mark.asyncio
async def test_lost_claim_returns_none(monkeypatch):
    async def no_row(query, params=None):
        assert "attempts < max_attempts" in query
        return None

    monkeypatch.setattr(citation_repository, "fetch_one", no_row)

    assert await QueueRepository.claim("item-1", datetime.now(UTC)) is None


@pytest.mark.asyncio
async def test_mark_failed_updates_submission_and_queue_together(monkeypatch):
    captured = []

    async def record_transaction(statements):
        captured.extend(statements)

    monkeypatch.setattr(citation_repository, "execute_transaction", record_transaction)

    await QueueRepository.mark_failed(
        _queue_item(), "rejected", {"status": "error", "error_count": 1}, exhaust=True
    )

    (submission_sql, submission_params), (queue_sql, queue_params) = captured
    assert "UPDATE citation_submissions" in submission_sql
    assert submission_params == ("error", 1, "sub-1")
    assert "started_at = NULL" in queue_sql
    assert queue_params == ("rejected", True, "item-1")


@pytest.mark.asyncio
async def test_submission_row_mapping(monkeypatch):
    submission_id = uuid4()

    async def row(query, params=None):
        return {
            "id": submission_id,
            "domain_id": 42,
            "provider_slug": "foursquare",
            "status": "submitted",
            "error_count": None,
            "metadata": None,
        }

    monkeypatch.setattr(citation_repository, "fetch_one", row)

    submission = await SubmissionRepository.get("42", "foursquare")

    assert submission.id == str(submission_id)
    assert submission.domain_id == "42"
    assert submission.error_count == 0
    assert submission.metadata == {}


@pytest.mark.asyncio
async def test_credentials_are_decrypted(monkeypatch):
    monkeypatch.setattr(settings, "ENCRYPTION_KEY", Fernet.generate_key().decode("utf-8"))
    stored = encrypt_credential("bb-live-key")

    async def value(query, params=None):
        assert params == ("brownbook", "api_key")
        return memoryview(stored)

    monkeypatch.setattr(citation_repository, "fetch_val", value)

    assert await CredentialRepository.get("brownbook", "api_key") == "bb-live-key"


@pytest.mark.asyncio
async def test_seed_writes_whole_catalog_in_one_transaction(monkeypatch):
    calls = []

    async def record_transaction(statements):
        calls.append(statements)

    monkeypatch.setattr(citation_repository, "execute_transaction", record_transaction)

    count = await ProviderRepository.seed(PROVIDER_CATALOG)

    assert count == len(PROVIDER_CATALOG)
    assert len(calls) == 1
    assert "is_enabled" not in calls[0][0][0].split("DO UPDATE SET")[1]


def test_brand_row_drops_closed_days():
    brand = BrandRepository._row_to_brand(
        {
            "domain_id": 7,
            "business_name": "Joe's Pizza",
            "hours": {"monday": {"open": "11:00", "close": "22:00"}, "tuesday": None},
        }
    )

    assert brand.domain_id == "7"
    assert list(brand.hours) == ["monday"]

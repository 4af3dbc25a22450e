from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from uuid import uuid4

import pytest

from citation_sync.config import settings
from citation_sync.models.domain.citation_domain import (
    CitationBatch,
    CitationProvider,
    CitationQueueItem,
    CitationSubmission,
    DeleteResult,
    SubmitResult,
    UpdateResult,
    VerifyResult,
)
from citation_sync.models.domain.location_domain import BrandRecord
from citation_sync.services.citation_workflow_service import CitationWorkflowService
from citation_sync.services.citations.catalog import PROVIDER_CATALOG
from citation_sync.services.citations.formatting import hash_brand, normalize_brand
from citation_sync.services.citations.registry import ProviderRegistry

PROVIDER_SETTINGS = (
    "FOURSQUARE_API_KEY",
    "DATA_AXLE_API_KEY",
    "GOOGLE_BUSINESS_CLIENT_ID",
    "GOOGLE_BUSINESS_CLIENT_SECRET",
    "GOOGLE_BUSINESS_REFRESH_TOKEN",
    "FACEBOOK_APP_ID",
    "FACEBOOK_APP_SECRET",
    "FACEBOOK_ACCESS_TOKEN",
    "BROWNBOOK_API_KEY",
    "LDE_RAPIDAPI_KEY",
    "NEUSTAR_LOCALEZE_API_KEY",
)


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch):
    """Keep a developer's .env.local out of the tests."""
    for name in PROVIDER_SETTINGS:
        monkeypatch.setattr(settings, name, None)
    monkeypatch.setattr(settings, "CRON_SECRET", None)
    monkeypatch.setattr(settings, "PROVIDER_HTTP_MAX_RETRIES", 0)


@pytest.fixture
def joes_pizza() -> BrandRecord:
    return BrandRecord(
        domain_id="dom-1",
        business_name="Joe's Pizza",
        street="12 Main St",
        city="Springfield",
        state="IL",
        zip="62701",
        country="US",
        phone="2175551234",
    )


def _now() -> datetime:
    return datetime.now(UTC)


# =================================================================
# FAKE STORES
# =================================================================


class FakeSubmissionStore:
    def __init__(self):
        self.rows: dict[str, CitationSubmission] = {}

    async def get(self, domain_id: str, provider_slug: str) -> CitationSubmission | None:
        return next(
            (
                row
                for row in self.rows.values()
                if row.domain_id == domain_id and row.provider_slug == provider_slug
            ),
            None,
        )

    async def get_by_id(self, submission_id: str) -> CitationSubmission | None:
        return self.rows.get(submission_id)

    async def list_for_domain(self, domain_id: str) -> list[CitationSubmission]:
        return [row for row in self.rows.values() if row.domain_id == domain_id]

    async def upsert(self, domain_id, provider_slug, status, brand_info_hash) -> CitationSubmission:
        existing = await self.get(domain_id, provider_slug)
        if existing:
            row = existing.model_copy(update={"status": status, "brand_info_hash": brand_info_hash})
        else:
            row = CitationSubmission(
                id=str(uuid4()),
                domain_id=domain_id,
                provider_slug=provider_slug,
                status=status,
                brand_info_hash=brand_info_hash,
                created_at=_now(),
            )
        self.rows[row.id] = row
        return row

    async def update_status(self, submission_id: str, updates: dict) -> CitationSubmission | None:
        row = self.rows.get(submission_id)
        if row is None:
            return None
        row = row.model_copy(update=updates)
        self.rows[submission_id] = row
        return row

    def add(self, **fields) -> CitationSubmission:
        row = CitationSubmission(id=str(uuid4()), **fields)
        self.rows[row.id] = row
        return row


class FakeQueueStore:
    def __init__(self, submissions: FakeSubmissionStore):
        self.submissions = submissions
        self.items: dict[str, CitationQueueItem] = {}
        self.claims_to_lose: set[str] = set()
        self._sequence = 0

    async def insert(self, submission_id, action, priority, batch_id=None, max_attempts=3):
        self._sequence += 1
        item = CitationQueueItem(
            id=f"item-{self._sequence}",
            submission_id=submission_id,
            action=action,
            priority=priority,
            max_attempts=max_attempts,
            batch_id=batch_id,
            scheduled_at=_now() - timedelta(minutes=5) + timedelta(milliseconds=self._sequence),
        )
        self.items[item.id] = item
        return item

    async def fetch_next(self, limit, now, stale_before):
        due = [
            item
            for item in self.items.values()
            if item.completed_at is None
            and item.scheduled_at <= now
            and item.attempts < item.max_attempts
            and (item.started_at is None or item.started_at < stale_before)
        ]
        due.sort(key=lambda item: (-item.priority, item.scheduled_at))
        return due[:limit]

    async def claim(self, item_id, stale_before):
        item = self.items.get(item_id)
        if item is None or item_id in self.claims_to_lose:
            return None
        if item.completed_at is not None or item.attempts >= item.max_attempts:
            return None
        if item.started_at is not None and item.started_at >= stale_before:
            return None
        claimed = item.model_copy(update={"started_at": _now(), "attempts": item.attempts + 1})
        self.items[item_id] = claimed
        return claimed

    async def mark_completed(self, item, submission_updates):
        await self.submissions.update_status(item.submission_id, submission_updates)
        current = self.items[item.id]
        self.items[item.id] = current.model_copy(
            update={"completed_at": _now(), "error_message": None}
        )

    async def mark_failed(self, item, error_message, submission_updates, exhaust=False):
        if submission_updates:
            await self.submissions.update_status(item.submission_id, submission_updates)
        current = self.items[item.id]
        self.items[item.id] = current.model_copy(
            update={
                "started_at": None,
                "error_message": error_message,
                "attempts": current.max_attempts if exhaust else current.attempts,
            }
        )

    async def count_remaining_for_batch(self, batch_id):
        return sum(
            1
            for item in self.items.values()
            if item.batch_id == batch_id
            and item.completed_at is None
            and item.attempts < item.max_attempts
        )

    async def complete_for_batch(self, batch_id, error_message):
        closed = 0
        for item_id, item in list(self.items.items()):
            if item.batch_id == batch_id and item.completed_at is None:
                self.items[item_id] = item.model_copy(
                    update={"completed_at": _now(), "error_message": error_message}
                )
                closed += 1
        return closed

    def for_submission(self, submission_id: str) -> list[CitationQueueItem]:
        return [item for item in self.items.values() if item.submission_id == submission_id]


class FakeBatchStore:
    def __init__(self):
        self.batches: dict[str, CitationBatch] = {}

    async def create(self, name, created_by=None, metadata=None):
        batch = CitationBatch(
            id=str(uuid4()), name=name, created_by=created_by, metadata=metadata or {}
        )
        self.batches[batch.id] = batch
        return batch

    async def get(self, batch_id):
        return self.batches.get(batch_id)

    async def set_total(self, batch_id, total):
        self._update(batch_id, total_submissions=total)

    async def update_status(self, batch_id, status):
        updates = {"status": status}
        if status == "processing":
            updates["started_at"] = _now()
        if status in ("completed", "failed", "cancelled"):
            updates["completed_at"] = _now()
        self._update(batch_id, **updates)

    async def increment_counters(self, batch_id, completed=0, failed=0):
        batch = self.batches[batch_id]
        self._update(
            batch_id,
            completed_submissions=batch.completed_submissions + completed,
            failed_submissions=batch.failed_submissions + failed,
        )

    async def list_by_status(self, status):
        return [batch for batch in self.batches.values() if batch.status == status]

    def _update(self, batch_id, **updates):
        self.batches[batch_id] = self.batches[batch_id].model_copy(update=updates)


class FakeProviderStore:
    def __init__(self, providers=PROVIDER_CATALOG):
        self.providers: dict[str, CitationProvider] = {p.slug: p for p in providers}

    async def list_all(self):
        return sorted(self.providers.values(), key=lambda p: (p.tier, p.name))

    async def get(self, slug):
        return self.providers.get(slug)

    async def set_enabled(self, slug, enabled):
        if slug not in self.providers:
            return None
        self.providers[slug] = self.providers[slug].model_copy(update={"is_enabled": enabled})
        return self.providers[slug]

    async def seed(self, catalog):
        catalog = list(catalog)
        for provider in catalog:
            current = self.providers.get(provider.slug)
            enabled = current.is_enabled if current else provider.is_enabled
            self.providers[provider.slug] = provider.model_copy(update={"is_enabled": enabled})
        return len(catalog)


class FakeBrandSource:
    def __init__(self, *brands: BrandRecord):
        self.brands = {brand.domain_id: brand for brand in brands}

    async def get_brand(self, domain_id):
        return self.brands.get(domain_id)


# =================================================================
# FAKE ADAPTER
# =================================================================


class FakeCitationClient:
    """Scriptable adapter: queue results (or exceptions) per action."""

    def __init__(self, slug="foursquare", name="Foursquare", tier=1, configured=True):
        self.slug = slug
        self.name = name
        self.tier = tier
        self.configured = configured
        self.outcomes: dict[str, list] = {}
        self.calls: list[tuple] = []
        self.closed = False

    def script(self, action: str, *outcomes) -> None:
        self.outcomes.setdefault(action, []).extend(outcomes)

    def _next(self, action, default):
        pending = self.outcomes.get(action)
        if pending:
            outcome = pending.pop(0)
            if isinstance(outcome, Exception):
                raise outcome
            return outcome
        return default

    def is_configured(self) -> bool:
        return self.configured

    def normalize(self, brand):
        return normalize_brand(brand)

    def hash(self, brand):
        return hash_brand(brand)

    async def submit(self, location):
        self.calls.append(("submit", location))
        return self._next(
            "submit",
            SubmitResult(
                success=True,
                external_id=f"{self.slug}-ext-1",
                external_url=f"https://{self.slug}.example/ext-1",
                message="Created",
            ),
        )

    async def update(self, external_id, location):
        self.calls.append(("update", external_id, location))
        return self._next("update", UpdateResult(success=True, message="Updated"))

    async def verify(self, external_id):
        self.calls.append(("verify", external_id))
        return self._next("verify", VerifyResult(success=True, status="verified"))

    async def delete(self, external_id):
        self.calls.append(("delete", external_id))
        return self._next("delete", DeleteResult(success=True, message="Deleted"))

    async def close(self):
        self.closed = True


@dataclass
class WorkflowHarness:
    service: CitationWorkflowService
    registry: ProviderRegistry
    submissions: FakeSubmissionStore
    queue: FakeQueueStore
    batches: FakeBatchStore
    providers: FakeProviderStore
    brands: FakeBrandSource
    clients: dict[str, FakeCitationClient]


@pytest.fixture
def make_harness():
    def _make(*brands: BrandRecord, clients: list[FakeCitationClient] | None = None):
        clients = clients if clients is not None else [FakeCitationClient()]
        registry = ProviderRegistry(clients)
        submissions = FakeSubmissionStore()
        queue = FakeQueueStore(submissions)
        batches = FakeBatchStore()
        providers = FakeProviderStore()
        brand_source = FakeBrandSource(*brands)
        service = CitationWorkflowService(
            registry=registry,
            submissions=submissions,
            queue=queue,
            batches=batches,
            providers=providers,
            brands=brand_source,
        )
        return WorkflowHarness(
            service=service,
            registry=registry,
            submissions=submissions,
            queue=queue,
            batches=batches,
            providers=providers,
            brands=brand_source,
            clients={client.slug: client for client in clients},
        )

    return _make


@pytest.fixture
def harness(make_harness, joes_pizza):
    return make_harness(joes_pizza)


@pytest.fixture
def fake_client():
    """The FakeCitationClient class, for tests that build their own registry."""
    return FakeCitationClient

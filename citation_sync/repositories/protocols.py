"""
Store interfaces the citation workflow depends on.

The Postgres repositories satisfy these with classmethods, so the repository
classes themselves are passed in; tests pass in-memory fakes.
"""

from datetime import datetime
from typing import Any, Protocol

from citation_sync.models.domain.citation_domain import (
    BatchStatus,
    CitationBatch,
    CitationProvider,
    CitationQueueItem,
    CitationSubmission,
    QueueAction,
    SubmissionStatus,
)
from citation_sync.models.domain.location_domain import BrandRecord


class SubmissionStore(Protocol):
    async def get(self, domain_id: str, provider_slug: str) -> CitationSubmission | None: ...

    async def get_by_id(self, submission_id: str) -> CitationSubmission | None: ...

    async def list_for_domain(self, domain_id: str) -> list[CitationSubmission]: ...

    async def upsert(
        self,
        domain_id: str,
        provider_slug: str,
        status: SubmissionStatus,
        brand_info_hash: str | None,
    ) -> CitationSubmission: ...

    async def update_status(
        self, submission_id: str, updates: dict[str, Any]
    ) -> CitationSubmission | None: ...


class QueueStore(Protocol):
    async def insert(
        self,
        submission_id: str,
        action: QueueAction,
        priority: int,
        batch_id: str | None = None,
        max_attempts: int = 3,
    ) -> CitationQueueItem: ...

    async def fetch_next(
        self, limit: int, now: datetime, stale_before: datetime
    ) -> list[CitationQueueItem]: ...

    async def claim(self, item_id: str, stale_before: datetime) -> CitationQueueItem | None: ...

    async def mark_completed(
        self, item: CitationQueueItem, submission_updates: dict[str, Any]
    ) -> None: ...

    async def mark_failed(
        self,
        item: CitationQueueItem,
        error_message: str,
        submission_updates: dict[str, Any],
        exhaust: bool = False,
    ) -> None: ...

    async def count_remaining_for_batch(self, batch_id: str) -> int: ...

    async def complete_for_batch(self, batch_id: str, error_message: str) -> int: ...


class BatchStore(Protocol):
    async def create(
        self, name: str | None, created_by: str | None = None, metadata: dict | None = None
    ) -> CitationBatch: ...

    async def get(self, batch_id: str) -> CitationBatch | None: ...

    async def set_total(self, batch_id: str, total: int) -> None: ...

    async def update_status(self, batch_id: str, status: BatchStatus) -> None: ...

    async def increment_counters(self, batch_id: str, completed: int = 0, failed: int = 0) -> None: ...

    async def list_by_status(self, status: BatchStatus) -> list[CitationBatch]: ...


class ProviderStore(Protocol):
    async def list_all(self) -> list[CitationProvider]: ...

    async def get(self, slug: str) -> CitationProvider | None: ...

    async def set_enabled(self, slug: str, enabled: bool) -> CitationProvider | None: ...

    async def seed(self, catalog) -> int: ...


class BrandSource(Protocol):
    async def get_brand(self, domain_id: str) -> BrandRecord | None: ...

"""
PostgreSQL persistence for the citation tables.

Providers, encrypted provider credentials, submissions, the work queue and
batches. Queue claims are conditional updates so overlapping drains can never
process the same item twice; the loser sees zero affected rows.
"""

from collections.abc import Iterable
from datetime import datetime
from typing import Any

from psycopg.types.json import Jsonb

from citation_sync.db.helpers import (
    DatabaseError,
    execute_query,
    execute_transaction,
    fetch_all,
    fetch_one,
    fetch_val,
    with_db_retry,
)
from citation_sync.infrastructure.observability.logging import get_logger
from citation_sync.models.domain.citation_domain import (
    TERMINAL_BATCH_STATUSES,
    BatchStatus,
    CitationBatch,
    CitationProvider,
    CitationQueueItem,
    CitationSubmission,
    QueueAction,
    SubmissionStatus,
)
from citation_sync.services.infrastructure.encryption_service import (
    decrypt_credential,
    encrypt_credential,
)

logger = get_logger(__name__)

ERROR_MESSAGE_MAX_LENGTH = 500

SUBMISSION_UPDATE_COLUMNS = frozenset(
    {
        "status",
        "external_id",
        "external_url",
        "brand_info_hash",
        "error_message",
        "error_count",
        "last_submitted_at",
        "last_verified_at",
        "last_error_at",
        "metadata",
    }
)


class CitationRepositoryError(DatabaseError):
    """More specific exception for citation repository failures."""


def _str_or_none(value: Any) -> str | None:
    return str(value) if value is not None else None


def _truncate(message: str | None) -> str | None:
    return message[:ERROR_MESSAGE_MAX_LENGTH] if message else message


def _submission_set_clause(updates: dict[str, Any]) -> tuple[str, list]:
    unknown = set(updates) - SUBMISSION_UPDATE_COLUMNS
    if unknown:
        raise CitationRepositoryError(
            f"Unknown submission columns: {sorted(unknown)}", operation="update_submission"
        )

    assignments = []
    params: list = []
    for column, value in updates.items():
        if column == "metadata":
            value = Jsonb(value or {})
        elif column == "error_message":
            value = _truncate(value)
        assignments.append(f"{column} = %s")
        params.append(value)
    assignments.append("updated_at = NOW()")
    return ", ".join(assignments), params


class ProviderRepository:
    """citation_providers: the seeded catalog plus operator enable toggles."""

    SELECT_COLUMNS = """
        slug, name, tier, auth_method, base_url, rate_limit_per_minute,
        rate_limit_per_day, requires_credentials, is_aggregator,
        coverage_description, documentation_url, is_enabled
    """

    @classmethod
    def _row_to_provider(cls, row: dict | None) -> CitationProvider | None:
        if not row:
            return None
        return CitationProvider(**row)

    @classmethod
    async def list_all(cls) -> list[CitationProvider]:
        query = f"SELECT {cls.SELECT_COLUMNS} FROM citation_providers ORDER BY tier, name"
        rows = await fetch_all(query)
        return [cls._row_to_provider(row) for row in rows]

    @classmethod
    async def get(cls, slug: str) -> CitationProvider | None:
        query = f"SELECT {cls.SELECT_COLUMNS} FROM citation_providers WHERE slug = %s"
        return cls._row_to_provider(await fetch_one(query, (slug,)))

    @classmethod
    async def set_enabled(cls, slug: str, enabled: bool) -> CitationProvider | None:
        query = f"""
            UPDATE citation_providers
            SET is_enabled = %s, updated_at = NOW()
            WHERE slug = %s
            RETURNING {cls.SELECT_COLUMNS}
        """
        provider = cls._row_to_provider(await fetch_one(query, (enabled, slug)))
        if provider:
            logger.info("Citation provider toggled", provider=slug, enabled=enabled)
        return provider

    @classmethod
    async def seed(cls, catalog: Iterable[CitationProvider]) -> int:
        """Insert or refresh catalog rows; is_enabled is left as the operator set it."""
        query = """
            INSERT INTO citation_providers (
                slug, name, tier, auth_method, base_url, rate_limit_per_minute,
                rate_limit_per_day, requires_credentials, is_aggregator,
                coverage_description, documentation_url
            )
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
            ON CONFLICT (slug) DO UPDATE SET
                name = EXCLUDED.name,
                tier = EXCLUDED.tier,
                auth_method = EXCLUDED.auth_method,
                base_url = EXCLUDED.base_url,
                rate_limit_per_minute = EXCLUDED.rate_limit_per_minute,
                rate_limit_per_day = EXCLUDED.rate_limit_per_day,
                requires_credentials = EXCLUDED.requires_credentials,
                is_aggregator = EXCLUDED.is_aggregator,
                coverage_description = EXCLUDED.coverage_description,
                documentation_url = EXCLUDED.documentation_url,
                updated_at = NOW()
        """
        statements = [
            (
                query,
                (
                    p.slug,
                    p.name,
                    p.tier,
                    p.auth_method,
                    p.base_url,
                    p.rate_limit_per_minute,
                    p.rate_limit_per_day,
                    p.requires_credentials,
                    p.is_aggregator,
                    p.coverage_description,
                    p.documentation_url,
                ),
            )
            for p in catalog
        ]
        if not statements:
            return 0
        await execute_transaction(statements)
        logger.info("Citation providers seeded", provider_count=len(statements))
        return len(statements)


class CredentialRepository:
    """provider_credentials with Fernet-encrypted values."""

    @classmethod
    async def get(cls, provider_slug: str, credential_key: str) -> str | None:
        query = """
            SELECT credential_value
            FROM provider_credentials
            WHERE provider_slug = %s AND credential_key = %s AND is_configured = true
        """
        encrypted = await fetch_val(query, (provider_slug, credential_key))
        if not encrypted:
            return None
        return decrypt_credential(bytes(encrypted))

    @classmethod
    async def save(cls, provider_slug: str, credential_key: str, value: str) -> None:
        query = """
            INSERT INTO provider_credentials (
                provider_slug, credential_key, credential_value, is_configured
            )
            VALUES (%s, %s, %s, true)
            ON CONFLICT (provider_slug, credential_key) DO UPDATE SET
                credential_value = EXCLUDED.credential_value,
                is_configured = true,
                updated_at = NOW()
        """
        await execute_query(query, (provider_slug, credential_key, encrypt_credential(value)))
        logger.info("Provider credential stored", provider=provider_slug, credential_key=credential_key)


class SubmissionRepository:
    """citation_submissions: one row per (domain, provider)."""

    SELECT_COLUMNS = """
        id, domain_id, provider_slug, external_id, external_url, status,
        brand_info_hash, error_message, error_count, last_submitted_at,
        last_verified_at, last_error_at, metadata, created_at, updated_at
    """

    @classmethod
    def _row_to_submission(cls, row: dict | None) -> CitationSubmission | None:
        if not row:
            return None
        return CitationSubmission(
            id=str(row["id"]),
            domain_id=str(row["domain_id"]),
            provider_slug=row["provider_slug"],
            external_id=row.get("external_id"),
            external_url=row.get("external_url"),
            status=row["status"],
            brand_info_hash=row.get("brand_info_hash"),
            error_message=row.get("error_message"),
            error_count=row.get("error_count") or 0,
            last_submitted_at=row.get("last_submitted_at"),
            last_verified_at=row.get("last_verified_at"),
            last_error_at=row.get("last_error_at"),
            metadata=row.get("metadata") or {},
            created_at=row.get("created_at"),
            updated_at=row.get("updated_at"),
        )

    @classmethod
    async def get(cls, domain_id: str, provider_slug: str) -> CitationSubmission | None:
        query = f"""
            SELECT {cls.SELECT_COLUMNS}
            FROM citation_submissions
            WHERE domain_id = %s AND provider_slug = %s
        """
        return cls._row_to_submission(await fetch_one(query, (domain_id, provider_slug)))

    @classmethod
    async def get_by_id(cls, submission_id: str) -> CitationSubmission | None:
        query = f"SELECT {cls.SELECT_COLUMNS} FROM citation_submissions WHERE id = %s"
        return cls._row_to_submission(await fetch_one(query, (submission_id,)))

    @classmethod
    async def list_for_domain(cls, domain_id: str) -> list[CitationSubmission]:
        query = f"""
            SELECT {cls.SELECT_COLUMNS}
            FROM citation_submissions
            WHERE domain_id = %s
            ORDER BY created_at DESC
        """
        rows = await fetch_all(query, (domain_id,))
        return [cls._row_to_submission(row) for row in rows]

    @classmethod
    async def upsert(
        cls,
        domain_id: str,
        provider_slug: str,
        status: SubmissionStatus,
        brand_info_hash: str | None,
    ) -> CitationSubmission:
        query = f"""
            INSERT INTO citation_submissions (domain_id, provider_slug, status, brand_info_hash)
            VALUES (%s, %s, %s, %s)
            ON CONFLICT (domain_id, provider_slug) DO UPDATE SET
                status = EXCLUDED.status,
                brand_info_hash = EXCLUDED.brand_info_hash,
                updated_at = NOW()
            RETURNING {cls.SELECT_COLUMNS}
        """
        row = await fetch_one(query, (domain_id, provider_slug, status, brand_info_hash))
        if not row:
            raise CitationRepositoryError(
                "Failed to upsert citation submission", operation="upsert_submission"
            )
        return cls._row_to_submission(row)

    @classmethod
    @with_db_retry(max_retries=2)
    async def update_status(
        cls, submission_id: str, updates: dict[str, Any]
    ) -> CitationSubmission | None:
        set_clause, params = _submission_set_clause(updates)
        query = f"""
            UPDATE citation_submissions
            SET {set_clause}
            WHERE id = %s
            RETURNING {cls.SELECT_COLUMNS}
        """
        return cls._row_to_submission(await fetch_one(query, (*params, submission_id)))


class QueueRepository:
    """citation_queue: prioritized, attempt-bounded work items."""

    SELECT_COLUMNS = """
        id, submission_id, action, priority, attempts, max_attempts,
        scheduled_at, started_at, completed_at, error_message, batch_id
    """

    @classmethod
    def _row_to_item(cls, row: dict | None) -> CitationQueueItem | None:
        if not row:
            return None
        return CitationQueueItem(
            id=str(row["id"]),
            submission_id=str(row["submission_id"]),
            action=row["action"],
            priority=row["priority"],
            attempts=row["attempts"],
            max_attempts=row["max_attempts"],
            scheduled_at=row.get("scheduled_at"),
            started_at=row.get("started_at"),
            completed_at=row.get("completed_at"),
            error_message=row.get("error_message"),
            batch_id=_str_or_none(row.get("batch_id")),
        )

    @classmethod
    async def insert(
        cls,
        submission_id: str,
        action: QueueAction,
        priority: int,
        batch_id: str | None = None,
        max_attempts: int = 3,
    ) -> CitationQueueItem:
        query = f"""
            INSERT INTO citation_queue (submission_id, action, priority, batch_id, max_attempts)
            VALUES (%s, %s, %s, %s, %s)
            RETURNING {cls.SELECT_COLUMNS}
        """
        row = await fetch_one(query, (submission_id, action, priority, batch_id, max_attempts))
        if not row:
            raise CitationRepositoryError("Failed to enqueue citation work", operation="enqueue")
        return cls._row_to_item(row)

    @classmethod
    async def fetch_next(
        cls, limit: int, now: datetime, stale_before: datetime
    ) -> list[CitationQueueItem]:
        query = f"""
            SELECT {cls.SELECT_COLUMNS}
            FROM citation_queue
            WHERE completed_at IS NULL
              AND scheduled_at <= %s
              AND attempts < max_attempts
              AND (started_at IS NULL OR started_at < %s)
            ORDER BY priority DESC, scheduled_at ASC
            LIMIT %s
        """
        rows = await fetch_all(query, (now, stale_before, limit))
        return [cls._row_to_item(row) for row in rows]

    @classmethod
    async def claim(cls, item_id: str, stale_before: datetime) -> CitationQueueItem | None:
        """Mark started and count the attempt, only if nobody else holds the item."""
        query = f"""
            UPDATE citation_queue
            SET started_at = NOW(),
                attempts = attempts + 1,
                updated_at = NOW()
            WHERE id = %s
              AND completed_at IS NULL
              AND attempts < max_attempts
              AND (started_at IS NULL OR started_at < %s)
            RETURNING {cls.SELECT_COLUMNS}
        """
        return cls._row_to_item(await fetch_one(query, (item_id, stale_before)))

    @classmethod
    async def mark_completed(cls, item: CitationQueueItem, submission_updates: dict[str, Any]) -> None:
        set_clause, params = _submission_set_clause(submission_updates)
        await execute_transaction(
            [
                (
                    f"UPDATE citation_submissions SET {set_clause} WHERE id = %s",
                    (*params, item.submission_id),
                ),
                (
                    """
                    UPDATE citation_queue
                    SET completed_at = NOW(), error_message = NULL, updated_at = NOW()
                    WHERE id = %s
                    """,
                    (item.id,),
                ),
            ]
        )

    @classmethod
    async def mark_failed(
        cls,
        item: CitationQueueItem,
        error_message: str,
        submission_updates: dict[str, Any],
        exhaust: bool = False,
    ) -> None:
        """Release the claim so the next drain retries, or exhaust the item when retrying is futile."""
        set_clause, params = _submission_set_clause(submission_updates)
        await execute_transaction(
            [
                (
                    f"UPDATE citation_submissions SET {set_clause} WHERE id = %s",
                    (*params, item.submission_id),
                ),
                (
                    """
                    UPDATE citation_queue
                    SET started_at = NULL,
                        error_message = %s,
                        attempts = CASE WHEN %s THEN max_attempts ELSE attempts END,
                        updated_at = NOW()
                    WHERE id = %s
                    """,
                    (_truncate(error_message), exhaust, item.id),
                ),
            ]
        )

    @classmethod
    async def count_remaining_for_batch(cls, batch_id: str) -> int:
        query = """
            SELECT COUNT(*) AS remaining
            FROM citation_queue
            WHERE batch_id = %s
              AND completed_at IS NULL
              AND attempts < max_attempts
        """
        return int(await fetch_val(query, (batch_id,)) or 0)

    @classmethod
    async def complete_for_batch(cls, batch_id: str, error_message: str) -> int:
        query = """
            UPDATE citation_queue
            SET completed_at = NOW(), error_message = %s, updated_at = NOW()
            WHERE batch_id = %s AND completed_at IS NULL
        """
        return await execute_query(query, (_truncate(error_message), batch_id))


class BatchRepository:
    """citation_batches with progress counters."""

    SELECT_COLUMNS = """
        id, name, status, total_submissions, completed_submissions,
        failed_submissions, started_at, completed_at, created_by, metadata
    """

    @classmethod
    def _row_to_batch(cls, row: dict | None) -> CitationBatch | None:
        if not row:
            return None
        return CitationBatch(
            id=str(row["id"]),
            name=row.get("name"),
            status=row["status"],
            total_submissions=row.get("total_submissions") or 0,
            completed_submissions=row.get("completed_submissions") or 0,
            failed_submissions=row.get("failed_submissions") or 0,
            started_at=row.get("started_at"),
            completed_at=row.get("completed_at"),
            created_by=row.get("created_by"),
            metadata=row.get("metadata") or {},
        )

    @classmethod
    async def create(
        cls, name: str | None, created_by: str | None = None, metadata: dict | None = None
    ) -> CitationBatch:
        query = f"""
            INSERT INTO citation_batches (name, created_by, status, metadata)
            VALUES (%s, %s, 'pending', %s)
            RETURNING {cls.SELECT_COLUMNS}
        """
        row = await fetch_one(query, (name, created_by, Jsonb(metadata or {})))
        if not row:
            raise CitationRepositoryError("Failed to create citation batch", operation="create_batch")
        batch = cls._row_to_batch(row)
        logger.info("Citation batch created", batch_id=batch.id, name=name)
        return batch

    @classmethod
    async def get(cls, batch_id: str) -> CitationBatch | None:
        query = f"SELECT {cls.SELECT_COLUMNS} FROM citation_batches WHERE id = %s"
        return cls._row_to_batch(await fetch_one(query, (batch_id,)))

    @classmethod
    async def set_total(cls, batch_id: str, total: int) -> None:
        query = """
            UPDATE citation_batches
            SET total_submissions = %s, updated_at = NOW()
            WHERE id = %s
        """
        await execute_query(query, (total, batch_id))

    @classmethod
    async def update_status(cls, batch_id: str, status: BatchStatus) -> None:
        query = """
            UPDATE citation_batches
            SET status = %s,
                started_at = CASE WHEN %s THEN COALESCE(started_at, NOW()) ELSE started_at END,
                completed_at = CASE WHEN %s THEN NOW() ELSE completed_at END,
                updated_at = NOW()
            WHERE id = %s
        """
        await execute_query(
            query,
            (status, status == "processing", status in TERMINAL_BATCH_STATUSES, batch_id),
        )
        logger.info("Citation batch status changed", batch_id=batch_id, status=status)

    @classmethod
    async def increment_counters(cls, batch_id: str, completed: int = 0, failed: int = 0) -> None:
        query = """
            UPDATE citation_batches
            SET completed_submissions = completed_submissions + %s,
                failed_submissions = failed_submissions + %s,
                updated_at = NOW()
            WHERE id = %s
        """
        await execute_query(query, (completed, failed, batch_id))

    @classmethod
    async def list_by_status(cls, status: BatchStatus) -> list[CitationBatch]:
        query = f"""
            SELECT {cls.SELECT_COLUMNS}
            FROM citation_batches
            WHERE status = %s
            ORDER BY created_at
        """
        rows = await fetch_all(query, (status,))
        return [cls._row_to_batch(row) for row in rows]

"""
Citation workflow orchestration.

Queues domains for providers (deduplicated by brand hash and submission
status), drains the queue through the provider adapters and keeps submission,
queue and batch state in step. This service is the only writer of those
transitions; adapters just return results.
"""

from collections.abc import Iterable
from datetime import UTC, datetime, timedelta

from citation_sync.config import settings
from citation_sync.db.helpers import DatabaseError
from citation_sync.infrastructure.observability.logging import get_logger, log_queue_item_result
from citation_sync.models.domain.citation_domain import (
    ERROR_STATUSES,
    PENDING_STATUSES,
    AdapterResult,
    BulkQueueResult,
    CitationBatch,
    CitationQueueItem,
    CitationSubmission,
    DomainCoverage,
    DrainResult,
    ProviderCoverage,
    QueueAction,
    QueueDomainResult,
    QueueItemOutcome,
    SubmitResult,
    UpdateResult,
    VerifyResult,
)
from citation_sync.models.domain.location_domain import BrandRecord
from citation_sync.repositories.brand_repository import BrandRepository
from citation_sync.repositories.citation_repository import (
    BatchRepository,
    ProviderRepository,
    QueueRepository,
    SubmissionRepository,
)
from citation_sync.repositories.protocols import (
    BatchStore,
    BrandSource,
    ProviderStore,
    QueueStore,
    SubmissionStore,
)
from citation_sync.services.citations.base import CitationClient
from citation_sync.services.citations.formatting import (
    hash_location,
    normalize_brand,
    validation_error,
)
from citation_sync.services.citations.registry import ProviderRegistry

logger = get_logger(__name__)

BATCH_CANCELLED_MESSAGE = "Batch cancelled"


class CitationWorkflowError(Exception):
    """Raised for workflow misuse: unknown provider or batch, missing brand data."""

    def __init__(self, message: str, operation: str | None = None):
        super().__init__(message)
        self.operation = operation


def _now() -> datetime:
    return datetime.now(UTC)


class CitationWorkflowService:
    def __init__(
        self,
        registry: ProviderRegistry,
        submissions: SubmissionStore,
        queue: QueueStore,
        batches: BatchStore,
        providers: ProviderStore,
        brands: BrandSource,
    ):
        self.registry = registry
        self.submissions = submissions
        self.queue = queue
        self.batches = batches
        self.providers = providers
        self.brands = brands

    # =================================================================
    # QUEUEING
    # =================================================================

    async def queue_domain(
        self,
        domain_id: str,
        provider_slugs: Iterable[str],
        batch_id: str | None = None,
        priority: int | None = None,
    ) -> QueueDomainResult:
        """
        Queue one domain for submission to each named provider.

        A provider is skipped when it is not configured, or when the stored
        submission already carries the current brand hash and is verified.
        Everything else gets a queue item: update when the provider already
        assigned an external id, submit otherwise.
        """
        result = QueueDomainResult(domain_id=domain_id)
        priority = settings.CITATION_DEFAULT_PRIORITY if priority is None else priority

        brand = await self.brands.get_brand(domain_id)
        if brand is None:
            result.errors.append("No brand info found for domain")
            return result

        location = normalize_brand(brand)
        error = validation_error(location)
        if error:
            result.errors.append(f"Invalid brand info: {error}")
            logger.info("Brand info failed validation", domain_id=domain_id, error=error)
            return result

        brand_hash = hash_location(location)

        for slug in provider_slugs:
            client = self.registry.get(slug)
            if client is None:
                result.errors.append(f"Unknown provider: {slug}")
                continue

            if not client.is_configured():
                result.skipped.append(f"{slug} (not configured)")
                continue

            try:
                existing = await self.submissions.get(domain_id, slug)
                if (
                    existing
                    and existing.brand_info_hash == brand_hash
                    and existing.status == "verified"
                ):
                    result.skipped.append(f"{slug} (already verified, no changes)")
                    continue

                submission = await self.submissions.upsert(domain_id, slug, "queued", brand_hash)
                action: QueueAction = "update" if existing and existing.external_id else "submit"
                await self.queue.insert(
                    submission.id,
                    action,
                    priority,
                    batch_id,
                    settings.CITATION_MAX_ATTEMPTS,
                )
                result.queued.append(slug)

            except DatabaseError as e:
                logger.error(
                    "Failed to queue citation", domain_id=domain_id, provider=slug, error=str(e)
                )
                result.errors.append(f"{slug}: {e}")

        logger.info(
            "Domain queued for citations",
            domain_id=domain_id,
            batch_id=batch_id,
            queued=result.queued,
            skipped_count=len(result.skipped),
            error_count=len(result.errors),
        )
        return result

    async def queue_bulk_submission(
        self,
        domain_ids: list[str],
        provider_slugs: list[str],
        batch_name: str | None = None,
        created_by: str | None = None,
    ) -> BulkQueueResult:
        """Create a batch, queue every domain under it and start it processing."""
        name = batch_name or f"Bulk submission {_now().isoformat()}"
        batch = await self.batches.create(name, created_by=created_by)
        await self.batches.set_total(batch.id, len(domain_ids) * len(provider_slugs))

        results = []
        for domain_id in domain_ids:
            results.append(await self.queue_domain(domain_id, provider_slugs, batch.id))

        await self.batches.update_status(batch.id, "processing")

        bulk = BulkQueueResult(batch_id=batch.id, results=results)
        logger.info(
            "Bulk citation submission queued",
            batch_id=batch.id,
            domain_count=len(domain_ids),
            provider_count=len(provider_slugs),
            queued=bulk.queued_count,
            skipped=bulk.skipped_count,
            errors=bulk.error_count,
        )
        return bulk

    async def _queue_existing(
        self,
        domain_id: str,
        action: QueueAction,
        provider_slugs: Iterable[str] | None,
        batch_id: str | None,
        priority: int | None,
    ) -> QueueDomainResult:
        result = QueueDomainResult(domain_id=domain_id)
        priority = settings.CITATION_DEFAULT_PRIORITY if priority is None else priority
        wanted = set(provider_slugs) if provider_slugs is not None else None

        submissions = await self.submissions.list_for_domain(domain_id)
        for submission in submissions:
            slug = submission.provider_slug
            if wanted is not None and slug not in wanted:
                continue
            if slug not in self.registry:
                result.errors.append(f"Unknown provider: {slug}")
                continue
            if not submission.external_id:
                result.skipped.append(f"{slug} (no external ID)")
                continue

            await self.queue.insert(
                submission.id, action, priority, batch_id, settings.CITATION_MAX_ATTEMPTS
            )
            result.queued.append(slug)

        if wanted is not None:
            found = {s.provider_slug for s in submissions}
            result.skipped.extend(f"{slug} (no submission)" for slug in sorted(wanted - found))

        logger.info(
            "Citation follow-up queued",
            domain_id=domain_id,
            action=action,
            batch_id=batch_id,
            queued=result.queued,
        )
        return result

    async def queue_verification(
        self,
        domain_id: str,
        provider_slugs: Iterable[str] | None = None,
        batch_id: str | None = None,
        priority: int | None = None,
    ) -> QueueDomainResult:
        """Enqueue verify for every submission of the domain that has an external id."""
        return await self._queue_existing(domain_id, "verify", provider_slugs, batch_id, priority)

    async def queue_deletion(
        self,
        domain_id: str,
        provider_slugs: Iterable[str],
        batch_id: str | None = None,
        priority: int | None = None,
    ) -> QueueDomainResult:
        return await self._queue_existing(domain_id, "delete", provider_slugs, batch_id, priority)

    # =================================================================
    # DRAINING
    # =================================================================

    async def drain_queue(self, limit: int | None = None) -> DrainResult:
        """
        Process up to `limit` due queue items, one at a time.

        Each item is claimed before the adapter call; an item another drain
        claimed first is counted as skipped.
        """
        limit = settings.clamp_queue_limit(limit)
        now = _now()
        stale_before = now - timedelta(seconds=settings.CITATION_CLAIM_STALE_SECONDS)

        await self.registry.warm_credentials()
        items = await self.queue.fetch_next(limit, now, stale_before)

        drain = DrainResult()
        for item in items:
            claimed = await self.queue.claim(item.id, stale_before)
            if claimed is None:
                drain.skipped += 1
                logger.debug("Queue item claimed elsewhere", queue_item_id=item.id)
                continue

            outcome = await self.process_queue_item(claimed)
            drain.processed += 1
            if outcome.success:
                drain.succeeded += 1
            else:
                drain.failed += 1
            drain.results.append(outcome)

            if claimed.batch_id:
                await self.batches.increment_counters(
                    claimed.batch_id,
                    completed=1 if outcome.success else 0,
                    failed=0 if outcome.success else 1,
                )

        if items:
            logger.info(
                "Citation queue drained",
                fetched=len(items),
                processed=drain.processed,
                succeeded=drain.succeeded,
                failed=drain.failed,
                skipped=drain.skipped,
            )
        return drain

    async def process_queue_item(self, item: CitationQueueItem) -> QueueItemOutcome:
        """Run one claimed item through its adapter and persist the outcome."""
        submission = await self.submissions.get_by_id(item.submission_id)
        if submission is None:
            message = "Submission not found"
            await self.queue.mark_failed(item, message, {}, exhaust=True)
            log_queue_item_result(item.id, "unknown", item.action, False, message, item.batch_id)
            return QueueItemOutcome(
                queue_item_id=item.id,
                submission_id=item.submission_id,
                provider="unknown",
                action=item.action,
                success=False,
                message=message,
                batch_id=item.batch_id,
            )

        try:
            result = await self._run_action(item, submission)
        except Exception as e:
            # Unexpected adapter or lookup failures land in the same error state
            logger.warning(
                "Citation action raised",
                queue_item_id=item.id,
                provider=submission.provider_slug,
                action=item.action,
                error=str(e),
                error_type=type(e).__name__,
            )
            success, message = False, str(e) or type(e).__name__
            await self._record_failure(item, submission, message)
        else:
            if result.success:
                success = True
                message = result.message or f"{item.action} completed successfully"
                await self._record_success(item, submission, result)
            else:
                success = False
                message = result.error or "Unknown error"
                exhaust = isinstance(result, (SubmitResult, UpdateResult)) and not result.retryable
                await self._record_failure(item, submission, message, exhaust=exhaust)

        log_queue_item_result(
            item.id,
            submission.provider_slug,
            item.action,
            success,
            message,
            batch_id=item.batch_id,
            attempt=item.attempts,
        )
        return QueueItemOutcome(
            queue_item_id=item.id,
            submission_id=submission.id,
            provider=submission.provider_slug,
            action=item.action,
            success=success,
            message=message,
            batch_id=item.batch_id,
        )

    async def _run_action(
        self, item: CitationQueueItem, submission: CitationSubmission
    ) -> AdapterResult:
        slug = submission.provider_slug
        client = self.registry.get(slug)
        if client is None:
            raise CitationWorkflowError(f"Unknown provider: {slug}", operation=item.action)
        if not client.is_configured():
            raise CitationWorkflowError(f"Provider {slug} is not configured", operation=item.action)

        brand: BrandRecord | None = None
        if item.action in ("submit", "update"):
            brand = await self.brands.get_brand(submission.domain_id)
            if brand is None:
                raise CitationWorkflowError("Brand info not found", operation=item.action)

        await self.submissions.update_status(submission.id, {"status": "submitting"})
        return await self._dispatch(client, item.action, submission, brand)

    @staticmethod
    async def _dispatch(
        client: CitationClient,
        action: QueueAction,
        submission: CitationSubmission,
        brand: BrandRecord | None,
    ) -> AdapterResult:
        if action == "submit":
            return await client.submit(client.normalize(brand))

        missing = {
            "update": "No external ID for update",
            "verify": "No external ID for verification",
            "delete": "No external ID for deletion",
        }
        if action not in missing:
            raise CitationWorkflowError(f"Unknown action: {action}", operation=action)
        if not submission.external_id:
            raise CitationWorkflowError(missing[action], operation=action)

        if action == "update":
            return await client.update(submission.external_id, client.normalize(brand))
        if action == "verify":
            return await client.verify(submission.external_id)
        return await client.delete(submission.external_id)

    async def _record_success(
        self, item: CitationQueueItem, submission: CitationSubmission, result: AdapterResult
    ) -> None:
        now = _now()
        updates = {
            "status": "submitted",
            "last_submitted_at": now,
            "error_message": None,
        }
        metadata = dict(submission.metadata)

        if isinstance(result, SubmitResult):
            if result.external_id:
                updates["external_id"] = result.external_id
            if result.external_url:
                updates["external_url"] = result.external_url
            metadata.update(result.metadata)
        elif isinstance(result, VerifyResult):
            if result.external_url:
                updates["external_url"] = result.external_url
            metadata["verify_status"] = result.status
            if result.status == "verified":
                updates["status"] = "verified"
                updates["last_verified_at"] = now
        elif item.action == "delete":
            metadata["deleted_at"] = now.isoformat()

        if metadata != submission.metadata:
            updates["metadata"] = metadata

        await self.queue.mark_completed(item, updates)

    async def _record_failure(
        self,
        item: CitationQueueItem,
        submission: CitationSubmission,
        message: str,
        exhaust: bool = False,
    ) -> None:
        updates = {
            "status": "error",
            "error_message": message,
            "error_count": submission.error_count + 1,
            "last_error_at": _now(),
        }
        await self.queue.mark_failed(item, message, updates, exhaust=exhaust)

    # =================================================================
    # BATCHES
    # =================================================================

    async def finalize_batches(self) -> list[CitationBatch]:
        """
        Settle every processing batch that has nothing left to drain.

        Items count as remaining until they complete or use up their attempts.
        """
        finalized = []
        for batch in await self.batches.list_by_status("processing"):
            remaining = await self.queue.count_remaining_for_batch(batch.id)
            if remaining > 0:
                continue

            current = await self.batches.get(batch.id) or batch
            status = current.final_status()
            await self.batches.update_status(batch.id, status)
            finalized.append(current.model_copy(update={"status": status}))

        if finalized:
            logger.info(
                "Citation batches finalized",
                batch_ids=[batch.id for batch in finalized],
            )
        return finalized

    async def cancel_batch(self, batch_id: str) -> CitationBatch:
        batch = await self.batches.get(batch_id)
        if batch is None:
            raise CitationWorkflowError(f"Batch not found: {batch_id}", operation="cancel_batch")
        if batch.status not in ("pending", "processing"):
            raise CitationWorkflowError(
                f"Batch {batch_id} is already {batch.status}", operation="cancel_batch"
            )

        closed = await self.queue.complete_for_batch(batch_id, BATCH_CANCELLED_MESSAGE)
        await self.batches.update_status(batch_id, "cancelled")
        logger.info("Citation batch cancelled", batch_id=batch_id, closed_items=closed)
        return batch.model_copy(update={"status": "cancelled"})

    # =================================================================
    # DIRECT ACTIONS AND READS
    # =================================================================

    async def submit_now(self, domain_id: str, provider_slug: str) -> SubmitResult:
        """Submit straight to one provider, bypassing the queue."""
        client = self.registry.get(provider_slug)
        if client is None:
            raise CitationWorkflowError(f"Unknown provider: {provider_slug}", operation="submit_now")
        if not client.is_configured():
            raise CitationWorkflowError(
                f"Provider {provider_slug} is not configured", operation="submit_now"
            )

        brand = await self.brands.get_brand(domain_id)
        if brand is None:
            raise CitationWorkflowError("Brand info not found for domain", operation="submit_now")

        result = await client.submit(client.normalize(brand))
        if not result.success:
            logger.info(
                "Direct citation submission failed",
                domain_id=domain_id,
                provider=provider_slug,
                error=result.error,
            )
            return result

        submission = await self.submissions.upsert(
            domain_id, provider_slug, "submitted", client.hash(brand)
        )
        await self.submissions.update_status(
            submission.id,
            {
                "external_id": result.external_id,
                "external_url": result.external_url,
                "error_message": None,
                "error_count": 0,
                "last_submitted_at": _now(),
                "metadata": {**submission.metadata, **result.metadata},
            },
        )
        logger.info(
            "Direct citation submission recorded",
            domain_id=domain_id,
            provider=provider_slug,
            submission_id=submission.id,
        )
        return result

    async def get_domain_coverage(self, domain_id: str) -> DomainCoverage:
        submissions = await self.submissions.list_for_domain(domain_id)
        providers = {provider.slug: provider for provider in await self.providers.list_all()}

        coverage = DomainCoverage(
            domain_id=domain_id,
            total=sum(1 for p in providers.values() if p.tier <= 2 and p.is_enabled),
        )
        for submission in submissions:
            provider = providers.get(submission.provider_slug)
            if provider is None:
                continue

            coverage.providers.append(
                ProviderCoverage(
                    slug=submission.provider_slug,
                    name=provider.name,
                    status=submission.status,
                    url=submission.external_url,
                )
            )
            if submission.status == "submitted":
                coverage.submitted += 1
            elif submission.status == "verified":
                coverage.verified += 1
            elif submission.status in PENDING_STATUSES:
                coverage.pending += 1
            elif submission.status in ERROR_STATUSES:
                coverage.errors += 1

        return coverage


def create_workflow_service(registry: ProviderRegistry) -> CitationWorkflowService:
    """Workflow service wired to the Postgres repositories."""
    return CitationWorkflowService(
        registry=registry,
        submissions=SubmissionRepository,
        queue=QueueRepository,
        batches=BatchRepository,
        providers=ProviderRepository,
        brands=BrandRepository,
    )

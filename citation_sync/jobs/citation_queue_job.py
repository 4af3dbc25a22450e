"""
Citation queue background job.

Drains due citation queue items on a fixed interval, then settles any batch
with nothing left to process. The cron endpoint runs the same drain on
demand.
"""

import asyncio
from datetime import UTC, datetime, timedelta

from citation_sync.config import settings
from citation_sync.infrastructure.observability.logging import get_logger
from citation_sync.models.domain.citation_domain import DrainResult
from citation_sync.services.citation_workflow_service import CitationWorkflowService

logger = get_logger(__name__)

# Pause after an unexpected scheduler error before the next attempt
ERROR_BACKOFF_SECONDS = 60


class CitationQueueJobError(Exception):
    """Custom exception for citation queue job operations."""

    def __init__(self, message: str, operation: str | None = None, recoverable: bool = True):
        super().__init__(message)
        self.operation = operation
        self.recoverable = recoverable


class CitationQueueMetrics:
    """Metrics for one drain run."""

    def __init__(self):
        self.reset()

    def reset(self):
        self.start_time = datetime.now(UTC)
        self.items_processed = 0
        self.items_succeeded = 0
        self.items_failed = 0
        self.items_skipped = 0
        self.batches_finalized = 0
        self.total_duration_seconds = 0.0
        self.failures: list[dict] = []

    def record_drain(self, drain: DrainResult):
        self.items_processed += drain.processed
        self.items_succeeded += drain.succeeded
        self.items_failed += drain.failed
        self.items_skipped += drain.skipped
        self.failures.extend(
            {
                "queue_item_id": outcome.queue_item_id,
                "provider": outcome.provider,
                "action": outcome.action,
                "message": outcome.message,
            }
            for outcome in drain.results
            if not outcome.success
        )

    def finalize(self):
        self.total_duration_seconds = (datetime.now(UTC) - self.start_time).total_seconds()

    def to_dict(self) -> dict:
        return {
            "job_run": "citation_queue",
            "start_time": self.start_time.isoformat(),
            "total_duration_seconds": round(self.total_duration_seconds, 2),
            "items_processed": self.items_processed,
            "items_succeeded": self.items_succeeded,
            "items_failed": self.items_failed,
            "items_skipped": self.items_skipped,
            "batches_finalized": self.batches_finalized,
            "success_rate_percent": round(
                (
                    (self.items_succeeded / self.items_processed * 100)
                    if self.items_processed > 0
                    else 0
                ),
                2,
            ),
            "failures_count": len(self.failures),
        }


class CitationQueueJob:
    """Periodic drain of the citation queue."""

    def __init__(
        self,
        service: CitationWorkflowService,
        batch_size: int | None = None,
        interval_seconds: int | None = None,
    ):
        self.service = service
        self.batch_size = settings.clamp_queue_limit(batch_size)
        self.interval_seconds = (
            settings.CITATION_QUEUE_INTERVAL_SECONDS if interval_seconds is None else interval_seconds
        )
        self.is_running = False
        self.last_run_time: datetime | None = None
        self.job_metrics = CitationQueueMetrics()

    async def run_once(self) -> dict:
        """
        Run a single drain and batch finalization.

        Returns:
            Dict: Job execution metrics, or a skip marker if a run is in progress

        Raises:
            CitationQueueJobError: If the drain fails on a system error
        """
        if self.is_running:
            logger.warning("Citation queue job already running, skipping this iteration")
            return {"skipped": True, "reason": "already_running"}

        try:
            self.is_running = True
            self.job_metrics.reset()

            drain = await self.service.drain_queue(self.batch_size)
            self.job_metrics.record_drain(drain)

            finalized = await self.service.finalize_batches()
            self.job_metrics.batches_finalized = len(finalized)

            self.job_metrics.finalize()
            self.last_run_time = datetime.now(UTC)

            metrics = self.job_metrics.to_dict()
            if drain.processed or finalized:
                logger.info("Citation queue job completed", **metrics)
            else:
                logger.debug("Citation queue empty", **metrics)
            return metrics

        except Exception as e:
            logger.error("Citation queue job failed", error=str(e), error_type=type(e).__name__)
            self.job_metrics.finalize()
            raise CitationQueueJobError(
                f"Citation queue job failed: {e}", operation="run_once"
            ) from e

        finally:
            self.is_running = False

    def get_job_status(self) -> dict:
        return {
            "job_name": "citation_queue",
            "is_running": self.is_running,
            "last_run_time": self.last_run_time.isoformat() if self.last_run_time else None,
            "interval_seconds": self.interval_seconds,
            "batch_size": self.batch_size,
            "last_run_metrics": self.job_metrics.to_dict() if self.last_run_time else None,
        }

    def health_check(self) -> dict:
        """Healthy unless the last run is older than twice the interval."""
        now = datetime.now(UTC)
        overdue_threshold = timedelta(seconds=self.interval_seconds * 2)
        is_overdue = self.last_run_time is not None and (now - self.last_run_time) > overdue_threshold

        health_status = {
            "healthy": not is_overdue,
            "service": "citation_queue_job",
            "is_running": self.is_running,
            "last_run_time": self.last_run_time.isoformat() if self.last_run_time else None,
            "is_overdue": is_overdue,
        }
        if is_overdue:
            health_status["warning"] = (
                f"Job overdue by {(now - self.last_run_time).total_seconds() / 60:.1f} minutes"
            )
        return health_status

    async def run_forever(self) -> None:
        logger.info(
            "Starting citation queue scheduler",
            interval_seconds=self.interval_seconds,
            batch_size=self.batch_size,
        )

        while True:
            try:
                await self.run_once()
                await asyncio.sleep(self.interval_seconds)
            except CitationQueueJobError as e:
                logger.error("Error in citation queue scheduler", error=str(e))
                await asyncio.sleep(ERROR_BACKOFF_SECONDS)

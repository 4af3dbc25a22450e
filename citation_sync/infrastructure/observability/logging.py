"""
Structured JSON logging for the citation API and the queue worker.

Every entry carries ``service="citation-sync"``; queue and health outcomes go
through the helpers below so their field names stay stable for log queries.
"""

import logging
import sys
from typing import Any

import structlog
from structlog.stdlib import LoggerFactory

SERVICE_NAME = "citation-sync"
RESULT_MESSAGE_MAX_LENGTH = 200

_QUIET_LOGGERS = ("httpx", "httpcore", "uvicorn.access")


def setup_logging(log_level: str = "INFO") -> None:
    """Route structlog through stdlib logging and render JSON to stdout."""
    structlog.configure(
        processors=[
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            _add_service_context,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=LoggerFactory(),
        context_class=dict,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper()),
    )

    # Provider calls are logged by the adapters themselves
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def _add_service_context(logger, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    event_dict.setdefault("service", SERVICE_NAME)
    return event_dict


def get_logger(name: str = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def log_health_check(component: str, healthy: bool, latency_ms: float, error: str = None):
    """One line per readiness probe; failures log at error level."""
    fields = {"component": component, "healthy": healthy, "latency_ms": latency_ms}
    if error:
        fields["error"] = error

    log = get_logger("health")
    if healthy:
        log.info("Readiness probe passed", **fields)
    else:
        log.error("Readiness probe failed", **fields)


def log_queue_item_result(
    queue_item_id: str,
    provider: str,
    action: str,
    success: bool,
    message: str,
    batch_id: str | None = None,
    attempt: int | None = None,
):
    """Log the outcome of one drained queue item with consistent fields."""
    log = get_logger("citation_queue").bind(
        queue_item_id=queue_item_id, provider=provider, action=action
    )

    extra = {"result_message": (message or "")[:RESULT_MESSAGE_MAX_LENGTH]}
    if batch_id:
        extra["batch_id"] = batch_id
    if attempt is not None:
        extra["attempt"] = attempt

    if success:
        log.info("Citation queue item processed", success=True, **extra)
    else:
        log.warning("Citation queue item failed", success=False, **extra)

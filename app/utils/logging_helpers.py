"""
Structured logging helpers for notifier passes.

Logging contract:
- correlation_id: Unique identifier for one notification pass
- component: Component name (worker, dispatcher, store, sms)
- operation: Operation name (queue_notifier_iteration, notify_entry, ...)
- outcome: success | degraded | failed | skipped

Failure taxonomy:
- infra_error: Infrastructure errors (DB, network, timeouts)
- dependency_error: External dependency errors (SMS provider)
- domain_error: Business logic errors (invalid policy, unreadable snapshot)
- unexpected_error: Unexpected errors (bugs, unhandled exceptions)
"""

import asyncio
import json
import logging
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Optional

import asyncpg
import httpx

_correlation_id: ContextVar[Optional[str]] = ContextVar('correlation_id', default=None)

logger = logging.getLogger(__name__)


def generate_correlation_id() -> str:
    """
    Generate a unique correlation ID for a pass.

    Returns:
        UUID string (e.g., "550e8400-e29b-41d4-a716-446655440000")
    """
    return str(uuid.uuid4())


def set_correlation_id(correlation_id: str) -> None:
    _correlation_id.set(correlation_id)


def get_correlation_id() -> Optional[str]:
    return _correlation_id.get()


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def mask_phone(phone_number: Optional[str]) -> str:
    """
    Mask a phone number for logs, keeping the last 4 digits.

    "+15551234567" -> "***4567"
    """
    if not phone_number:
        return "<none>"
    digits = "".join(ch for ch in str(phone_number) if ch.isdigit())
    if len(digits) <= 4:
        return "***"
    return f"***{digits[-4:]}"


def log_worker_iteration_start(
    worker_name: str,
    iteration_number: Optional[int] = None,
    **kwargs
) -> str:
    """
    Log worker iteration start.

    Args:
        worker_name: Name of the worker (e.g., "queue_notifier")
        iteration_number: Iteration number (optional)
        **kwargs: Additional context to log

    Returns:
        Correlation ID for this iteration
    """
    correlation_id = generate_correlation_id()
    set_correlation_id(correlation_id)

    log_data = {
        "event": "ITERATION_START",
        "worker": worker_name,
        "correlation_id": correlation_id,
        "component": "worker",
        "operation": f"{worker_name}_iteration",
        "timestamp": _timestamp(),
    }

    if iteration_number is not None:
        log_data["iteration_number"] = iteration_number

    if kwargs:
        log_data.update(kwargs)

    log_data["level"] = "INFO"
    logger.info(json.dumps(log_data))
    return correlation_id


def log_worker_iteration_end(
    worker_name: str,
    outcome: str,  # "success" | "degraded" | "failed" | "skipped"
    items_processed: Optional[int] = None,
    error_type: Optional[str] = None,
    duration_ms: Optional[float] = None,
    **kwargs
) -> None:
    """
    Log worker iteration end.

    Args:
        worker_name: Name of the worker
        outcome: Outcome of the iteration ("success" | "degraded" | "failed" | "skipped")
        items_processed: Number of decisions dispatched (optional)
        error_type: Type of error if outcome is "failed" (optional)
        duration_ms: Duration of the iteration in milliseconds (optional)
        **kwargs: Additional context to log
    """
    log_data = {
        "event": "ITERATION_END",
        "worker": worker_name,
        "correlation_id": get_correlation_id(),
        "component": "worker",
        "operation": f"{worker_name}_iteration",
        "outcome": outcome,
        "timestamp": _timestamp(),
    }

    if items_processed is not None:
        log_data["items_processed"] = items_processed

    if error_type:
        log_data["error_type"] = error_type

    if duration_ms is not None:
        log_data["duration_ms"] = duration_ms

    if kwargs:
        log_data.update(kwargs)

    if outcome == "failed":
        log_data["level"] = "ERROR"
        logger.error(json.dumps(log_data))
    elif outcome == "degraded":
        log_data["level"] = "WARNING"
        logger.warning(json.dumps(log_data))
    else:
        log_data["level"] = "INFO"
        logger.info(json.dumps(log_data))


def classify_error(exception: Exception) -> str:
    """
    Classify error type for failure taxonomy.

    Args:
        exception: Exception to classify

    Returns:
        Error type: "infra_error" | "dependency_error" | "domain_error" | "unexpected_error"
    """
    from app.services.notifications.exceptions import NotificationServiceError
    from app.services.queue.exceptions import QueueServiceError, SnapshotReadError
    from sms_service import SmsTransportError

    # An unreadable snapshot is an infra problem underneath
    if isinstance(exception, SnapshotReadError):
        return classify_error(exception.cause)

    if isinstance(exception, (QueueServiceError, NotificationServiceError)):
        return "domain_error"

    if isinstance(exception, (SmsTransportError, httpx.HTTPError)):
        return "dependency_error"

    if isinstance(exception, (
        asyncpg.PostgresError,
        asyncpg.InterfaceError,
        asyncio.TimeoutError,
        ConnectionError,
        OSError,
    )):
        return "infra_error"

    return "unexpected_error"

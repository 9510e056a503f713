"""Queue notifier: text customers whose turn is approaching and mark them notified"""
import asyncio
import logging
import time
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple

import config
from app.core.feature_flags import FeatureFlags, get_feature_flags
from app.core.structured_logger import log_event
from app.services.notifications import service as notification_service
from app.services.notifications.service import (
    NotificationDecision,
    NotificationKind,
    NotificationPolicy,
)
from app.services.queue.snapshot import SnapshotAnomaly, load_snapshot
from app.utils.logging_helpers import (
    classify_error,
    get_correlation_id,
    log_worker_iteration_end,
    log_worker_iteration_start,
    mask_phone,
)

logger = logging.getLogger(__name__)

WORKER_NAME = "queue_notifier"

# Minimum sleep after a failed iteration so a broken DB does not spin the loop
MINIMUM_SAFE_SLEEP_ON_FAILURE = 30


class DispatchOutcome(Enum):
    NOTIFIED = "notified"  # SMS accepted and row marked
    TRANSPORT_FAILED = "transport_failed"  # SMS not sent, row untouched, retried next pass
    MARK_FAILED = "mark_failed"  # SMS sent but row not marked: may be texted again next pass
    ALREADY_MARKED = "already_marked"  # SMS sent, conditional update changed no row
    SKIPPED_DISABLED = "skipped_disabled"  # kill switch: nothing sent, nothing marked


@dataclass(frozen=True)
class DispatchResult:
    entry_id: str
    location_id: str
    kind: NotificationKind
    outcome: DispatchOutcome
    reason: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.outcome in (DispatchOutcome.NOTIFIED, DispatchOutcome.SKIPPED_DISABLED)


@dataclass
class PassReport:
    """Summary of one notification pass"""
    locations_evaluated: int = 0
    anomalies: Tuple[SnapshotAnomaly, ...] = ()
    decisions: List[NotificationDecision] = field(default_factory=list)
    results: List[DispatchResult] = field(default_factory=list)

    def count(self, outcome: DispatchOutcome) -> int:
        return sum(1 for r in self.results if r.outcome is outcome)

    @property
    def outcome_counts(self) -> dict:
        return dict(Counter(r.outcome.value for r in self.results))

    @property
    def outcome(self) -> str:
        """success when every decision went through, degraded otherwise"""
        if self.anomalies or any(not r.ok for r in self.results):
            return "degraded"
        return "success"


# ====================================================================================
# Dispatcher
# ====================================================================================

async def notify_and_mark(
    store,
    transport,
    decision: NotificationDecision,
    *,
    sending_enabled: bool = True,
) -> DispatchResult:
    """
    Send one notification, then mark the entry notified.

    The mark happens strictly after the transport confirms the send. Failures
    become tagged results; nothing is raised.
    """
    entry = decision.entry

    def _result(outcome: DispatchOutcome, reason: Optional[str] = None) -> DispatchResult:
        return DispatchResult(
            entry_id=entry.id,
            location_id=entry.location_id,
            kind=decision.kind,
            outcome=outcome,
            reason=reason,
        )

    if not sending_enabled:
        logger.info(
            "SMS sending disabled, skipping entry_id=%s kind=%s to=%s",
            entry.id, decision.kind.value, mask_phone(entry.phone_number),
        )
        return _result(DispatchOutcome.SKIPPED_DISABLED, "sms_sending_disabled")

    try:
        send_result = await transport.send(entry.phone_number, decision.message)
    except Exception as e:
        # Transport contract is result-based; an exception here is a bug in the adapter
        logger.error("Unexpected transport error for entry_id=%s: %s", entry.id, e, exc_info=True)
        return _result(DispatchOutcome.TRANSPORT_FAILED, f"{classify_error(e)}: {type(e).__name__}")

    if not send_result.ok:
        return _result(DispatchOutcome.TRANSPORT_FAILED, send_result.error)

    try:
        marked = await store.mark_notified(entry.id)
    except Exception as e:
        logger.error(
            "MARK_NOTIFIED_FAILED entry_id=%s error_type=%s error=%s (customer may be texted again next pass)",
            entry.id, classify_error(e), e,
        )
        return _result(DispatchOutcome.MARK_FAILED, f"{classify_error(e)}: {type(e).__name__}")

    if not marked:
        logger.warning("Entry %s was already marked notified or no longer exists", entry.id)
        return _result(DispatchOutcome.ALREADY_MARKED, "no_row_updated")

    return _result(DispatchOutcome.NOTIFIED)


async def dispatch_decisions(
    store,
    transport,
    decisions: List[NotificationDecision],
    *,
    sending_enabled: bool = True,
) -> List[DispatchResult]:
    """
    Dispatch decisions sequentially, in the order produced by the policy.

    One entry failing never stops the rest of the batch, and nothing is
    retried within the pass.

    Returns:
        One DispatchResult per decision, same order
    """
    results = []
    for decision in decisions:
        entry = decision.entry
        logger.info(
            "Notifying entry_id=%s location_id=%s kind=%s bucket_index=%s",
            entry.id, entry.location_id, decision.kind.value, decision.bucket_index,
        )
        result = await notify_and_mark(store, transport, decision, sending_enabled=sending_enabled)
        log_event(
            logger,
            component="dispatcher",
            operation="notify_entry",
            correlation_id=get_correlation_id(),
            outcome=result.outcome.value,
            reason=result.reason,
            level="info" if result.ok else "warning",
            message=f"notify_entry entry_id={entry.id} outcome={result.outcome.value}",
        )
        results.append(result)
    return results


# ====================================================================================
# Pass
# ====================================================================================

async def run_notification_pass(
    store,
    transport,
    *,
    policy: Optional[NotificationPolicy] = None,
    include_notified: Optional[bool] = None,
    flags: Optional[FeatureFlags] = None,
) -> PassReport:
    """
    Snapshot → policy per location → dispatch.

    Raises:
        SnapshotReadError: store could not be read; no decisions were made
    """
    if policy is None:
        policy = NotificationPolicy.from_config()
    if include_notified is None:
        include_notified = config.NOTIFIER_INCLUDE_NOTIFIED_CONTEXT
    if flags is None:
        flags = get_feature_flags()

    snapshot = await load_snapshot(store, include_notified=include_notified)

    report = PassReport(
        locations_evaluated=len(snapshot.locations),
        anomalies=snapshot.anomalies,
    )
    report.decisions = notification_service.evaluate_snapshot(snapshot, policy)

    if not report.decisions:
        logger.info("No queue entries eligible for notification")
        return report

    logger.info("Found %s queue entries to notify", len(report.decisions))
    report.results = await dispatch_decisions(
        store,
        transport,
        report.decisions,
        sending_enabled=flags.sms_sending_enabled,
    )
    return report


async def run_iteration(store, transport, iteration_number: Optional[int] = None) -> str:
    """
    One logged pass.

    The pass is never cancelled once started: a slow transport makes the pass
    slow, it does not cut the dispatch batch short.

    Returns:
        "success" | "degraded" | "skipped" | "failed"
    """
    iteration_start_time = time.time()
    log_worker_iteration_start(worker_name=WORKER_NAME, iteration_number=iteration_number)

    outcome = "success"
    error_type = None
    report: Optional[PassReport] = None
    try:
        if not get_feature_flags().notifier_enabled:
            logger.warning("Queue notifier disabled by FEATURE_NOTIFIER_ENABLED, skipping pass")
            outcome = "skipped"
        else:
            report = await run_notification_pass(store, transport)
            outcome = report.outcome
    except Exception as e:
        logger.error("%s: pass failed: %s: %s", WORKER_NAME, type(e).__name__, str(e)[:200])
        logger.debug("%s: full traceback", WORKER_NAME, exc_info=True)
        outcome = "failed"
        error_type = classify_error(e)
    finally:
        duration_ms = int((time.time() - iteration_start_time) * 1000)
        extra = {}
        if report is not None:
            extra = {
                "locations_evaluated": report.locations_evaluated,
                "anomalies": len(report.anomalies),
                "outcomes": report.outcome_counts,
            }
        log_worker_iteration_end(
            worker_name=WORKER_NAME,
            outcome=outcome,
            items_processed=len(report.results) if report is not None else 0,
            error_type=error_type,
            duration_ms=duration_ms,
            **extra,
        )
    return outcome


async def queue_notifier_task(store, transport, interval_seconds: Optional[float] = None):
    """Run passes back to back, one at a time, until cancelled"""
    if interval_seconds is None:
        interval_seconds = config.NOTIFIER_INTERVAL_SECONDS

    iteration_number = 0
    while True:
        iteration_number += 1
        try:
            outcome = await run_iteration(store, transport, iteration_number)
        except asyncio.CancelledError:
            logger.info("Queue notifier task cancelled")
            break

        if outcome == "failed":
            sleep_seconds = max(interval_seconds, MINIMUM_SAFE_SLEEP_ON_FAILURE)
        else:
            sleep_seconds = interval_seconds

        try:
            await asyncio.sleep(sleep_seconds)
        except asyncio.CancelledError:
            logger.info("Queue notifier task cancelled")
            break

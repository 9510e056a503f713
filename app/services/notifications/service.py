"""
Notification Service Layer

Decides which waiting customers should be told their turn is approaching.

All functions are pure business logic:
- No database access
- No SMS calls
- No logging
- Deterministic for a given snapshot and policy

Per location, the FIFO queue is partitioned into buckets: one per requested
provider plus one for "any provider". The head of each requested-provider
bucket is eligible; in the "any provider" bucket only the entry at the notify
position is eligible. Entries already marked notified are never emitted and do
not advance their bucket.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Set, Tuple

import config
from app import i18n
from app.services.notifications.exceptions import InvalidPolicyError
from app.services.queue.models import (
    ANY_PROVIDER,
    ProviderRequest,
    QueueEntry,
    RequestedProvider,
)
from app.services.queue.snapshot import LocationQueue, QueueSnapshot


# ====================================================================================
# Notification / Policy Types
# ====================================================================================

class NotificationKind(Enum):
    """Types of queue notifications"""
    REQUESTED_PROVIDER_NEXT = "requested_provider_next"  # head of a requested-provider bucket
    ANY_PROVIDER_ALMOST_UP = "any_provider_almost_up"  # notify position in the "any provider" bucket


class PolicyKind(Enum):
    """Rule used for the "any provider" bucket"""
    FIXED_INDEX = "fixed_index"
    ESTIMATED_WAIT = "estimated_wait"


@dataclass(frozen=True)
class NotificationPolicy:
    """
    Immutable policy settings for one pass.

    FIXED_INDEX notifies exactly one entry at the notify position.
    ESTIMATED_WAIT notifies every entry whose estimated wait
    (index * avg_service_minutes / active providers) fits in notify_wait_minutes.
    """
    kind: PolicyKind = PolicyKind.FIXED_INDEX
    avg_service_minutes: float = 20.0
    notify_wait_minutes: float = 15.0
    shop_name: str = "Fade Lab"
    language: str = i18n.DEFAULT_LANGUAGE

    def __post_init__(self):
        if not isinstance(self.kind, PolicyKind):
            raise InvalidPolicyError(f"Unknown policy kind: {self.kind!r}")
        if self.avg_service_minutes <= 0:
            raise InvalidPolicyError(f"avg_service_minutes must be positive, got {self.avg_service_minutes}")
        if self.notify_wait_minutes < 0:
            raise InvalidPolicyError(f"notify_wait_minutes must not be negative, got {self.notify_wait_minutes}")

    @classmethod
    def from_config(cls) -> "NotificationPolicy":
        try:
            kind = PolicyKind(config.NOTIFY_POLICY)
        except ValueError:
            raise InvalidPolicyError(f"Unknown NOTIFY_POLICY: {config.NOTIFY_POLICY!r}") from None
        return cls(
            kind=kind,
            avg_service_minutes=config.AVG_SERVICE_MINUTES,
            notify_wait_minutes=config.NOTIFY_WAIT_MINUTES,
            shop_name=config.SHOP_NAME,
            language=config.NOTIFIER_LANGUAGE,
        )


DEFAULT_POLICY = NotificationPolicy()


@dataclass(frozen=True)
class NotificationDecision:
    """One entry to notify on this pass"""
    entry: QueueEntry
    kind: NotificationKind
    message: str
    bucket: ProviderRequest
    bucket_index: int

    @property
    def location_id(self) -> str:
        return self.entry.location_id


Buckets = Dict[ProviderRequest, List[QueueEntry]]


# ====================================================================================
# Notify Position
# ====================================================================================

def compute_notify_position(active_provider_count: int, notify_threshold: Optional[int] = None) -> int:
    """
    Zero-based index in the "any provider" bucket that is eligible this pass.

    An explicit location threshold always wins. Otherwise one or two active
    providers (or none) give 0, and three or more give count - 1.

    Args:
        active_provider_count: Active providers at the location
        notify_threshold: Location's configured threshold, if any

    Returns:
        Non-negative notify position
    """
    if notify_threshold is not None:
        return max(int(notify_threshold), 0)
    if active_provider_count <= 2:
        return 0
    return active_provider_count - 1


def estimate_wait_minutes(index: int, active_provider_count: int, avg_service_minutes: float) -> float:
    """Estimated wait for the entry at `index` of the "any provider" bucket"""
    return index * avg_service_minutes / max(active_provider_count, 1)


# ====================================================================================
# Bucketing
# ====================================================================================

def partition_by_provider(entries: List[QueueEntry]) -> Buckets:
    """
    Split a FIFO queue into provider buckets, preserving order in each.

    The "any provider" bucket is always present (possibly empty) and comes
    first; requested-provider buckets follow in order of first appearance.
    A request for a provider that is not active still gets its own bucket.
    """
    buckets: Buckets = {ANY_PROVIDER: []}
    for entry in entries:
        buckets.setdefault(entry.requested_provider, []).append(entry)
    return buckets


def select_requested_provider_heads(buckets: Buckets) -> List[Tuple[QueueEntry, ProviderRequest, int]]:
    """
    Head of every requested-provider bucket, unless that head was already notified.

    A notified head keeps its place: the bucket only advances once the entry
    leaves the waiting queue upstream.
    """
    selected = []
    for request, bucket in buckets.items():
        if not isinstance(request, RequestedProvider) or not bucket:
            continue
        head = bucket[0]
        if head.notified:
            continue
        selected.append((head, request, 0))
    return selected


def select_any_provider_entries(
    bucket: List[QueueEntry],
    active_provider_count: int,
    notify_threshold: Optional[int],
    policy: NotificationPolicy = DEFAULT_POLICY,
) -> List[Tuple[QueueEntry, int]]:
    """
    Eligible entries of the "any provider" bucket under the given policy.

    Returns:
        List of (entry, bucket_index)
    """
    if policy.kind is PolicyKind.ESTIMATED_WAIT:
        selected = []
        for index, entry in enumerate(bucket):
            wait = estimate_wait_minutes(index, active_provider_count, policy.avg_service_minutes)
            if wait > policy.notify_wait_minutes:
                break
            if not entry.notified:
                selected.append((entry, index))
        return selected

    position = compute_notify_position(active_provider_count, notify_threshold)
    if len(bucket) <= position:
        return []
    entry = bucket[position]
    if entry.notified:
        return []
    return [(entry, position)]


# ====================================================================================
# Messages
# ====================================================================================

_MESSAGE_KEYS = {
    NotificationKind.REQUESTED_PROVIDER_NEXT: "queue.requested_provider_next",
    NotificationKind.ANY_PROVIDER_ALMOST_UP: "queue.any_provider_almost_up",
}


def render_message(kind: NotificationKind, policy: NotificationPolicy = DEFAULT_POLICY) -> str:
    return i18n.get_text(policy.language, _MESSAGE_KEYS[kind], shop_name=policy.shop_name)


# ====================================================================================
# Evaluation
# ====================================================================================

def evaluate_location(
    queue: LocationQueue,
    policy: NotificationPolicy = DEFAULT_POLICY,
) -> List[NotificationDecision]:
    """
    Run the notification policy for a single location.

    Args:
        queue: Location queue from the snapshot (FIFO order)
        policy: Notification policy

    Returns:
        Decisions in FIFO order of the location's queue; no entry appears twice
    """
    buckets = partition_by_provider(list(queue.entries))

    picked: Dict[str, Tuple[NotificationKind, ProviderRequest, int]] = {}
    for entry, request, index in select_requested_provider_heads(buckets):
        picked.setdefault(entry.id, (NotificationKind.REQUESTED_PROVIDER_NEXT, request, index))

    any_selected = select_any_provider_entries(
        buckets[ANY_PROVIDER],
        queue.active_provider_count,
        queue.notify_threshold,
        policy,
    )
    for entry, index in any_selected:
        picked.setdefault(entry.id, (NotificationKind.ANY_PROVIDER_ALMOST_UP, ANY_PROVIDER, index))

    decisions = []
    emitted: Set[str] = set()
    for entry in queue.entries:
        if entry.id not in picked or entry.id in emitted or entry.notified:
            continue
        kind, request, index = picked[entry.id]
        decisions.append(NotificationDecision(
            entry=entry,
            kind=kind,
            message=render_message(kind, policy),
            bucket=request,
            bucket_index=index,
        ))
        emitted.add(entry.id)
    return decisions


def evaluate_snapshot(
    snapshot: QueueSnapshot,
    policy: NotificationPolicy = DEFAULT_POLICY,
) -> List[NotificationDecision]:
    """
    Run the policy once per location and concatenate the results.

    Location order follows the snapshot; an entry id is emitted at most once.
    """
    decisions = []
    seen: Set[str] = set()
    for queue in snapshot.locations:
        for decision in evaluate_location(queue, policy):
            if decision.entry.id in seen:
                continue
            seen.add(decision.entry.id)
            decisions.append(decision)
    return decisions

"""
Queue Snapshot

Assembles an immutable, per-location view of the queue for one evaluation pass.

assemble_snapshot() is pure: rows in, snapshot out.
load_snapshot() reads the queue store and fails fast with SnapshotReadError;
there is no fallback value for "the queue", so no partial snapshot is returned.
"""

import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Tuple

from app.services.queue.exceptions import SnapshotReadError
from app.services.queue.models import Location, Provider, QueueEntry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SnapshotAnomaly:
    """Non-fatal data gap found while assembling a snapshot"""
    entry_id: str
    location_id: str
    reason: str


@dataclass(frozen=True)
class LocationQueue:
    """FIFO queue of one location plus the capacity figures the policy needs"""
    location: Location
    entries: Tuple[QueueEntry, ...]
    active_provider_count: int

    @property
    def location_id(self) -> str:
        return self.location.id

    @property
    def notify_threshold(self) -> Optional[int]:
        return self.location.notify_threshold


@dataclass(frozen=True)
class QueueSnapshot:
    locations: Tuple[LocationQueue, ...]
    anomalies: Tuple[SnapshotAnomaly, ...] = ()
    taken_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def entry_count(self) -> int:
        return sum(len(q.entries) for q in self.locations)

    def get(self, location_id: str) -> Optional[LocationQueue]:
        for queue in self.locations:
            if queue.location_id == location_id:
                return queue
        return None


def count_active_providers(providers: Iterable[Provider]) -> Dict[str, int]:
    """Active provider count per location id"""
    return dict(Counter(p.location_id for p in providers if p.is_active))


def assemble_snapshot(
    entries: Iterable[QueueEntry],
    providers: Iterable[Provider],
    locations: Iterable[Location],
    now: Optional[datetime] = None,
) -> QueueSnapshot:
    """
    Group waiting entries by location, FIFO by joined_at.

    Entries that are not waiting are dropped. Entries pointing at a location
    missing from `locations` are skipped and reported as anomalies.
    Locations appear in order of their earliest waiting entry.

    Args:
        entries: Queue entries (any order)
        providers: Providers (only active ones are counted)
        locations: Known locations
        now: Snapshot timestamp (defaults to datetime.now(timezone.utc))

    Returns:
        QueueSnapshot
    """
    if now is None:
        now = datetime.now(timezone.utc)

    location_map = {loc.id: loc for loc in locations}
    active_counts = count_active_providers(providers)

    # sorted() is stable, so rows with equal joined_at keep store order
    ordered = sorted((e for e in entries if e.is_waiting), key=lambda e: e.joined_at)

    grouped: Dict[str, List[QueueEntry]] = {}
    anomalies: List[SnapshotAnomaly] = []
    for entry in ordered:
        if entry.location_id not in location_map:
            anomalies.append(SnapshotAnomaly(
                entry_id=entry.id,
                location_id=entry.location_id,
                reason="location_not_found",
            ))
            continue
        grouped.setdefault(entry.location_id, []).append(entry)

    queues = tuple(
        LocationQueue(
            location=location_map[location_id],
            entries=tuple(queue_entries),
            active_provider_count=active_counts.get(location_id, 0),
        )
        for location_id, queue_entries in grouped.items()
    )
    return QueueSnapshot(locations=queues, anomalies=tuple(anomalies), taken_at=now)


async def load_snapshot(store, *, include_notified: bool = True) -> QueueSnapshot:
    """
    Read the queue store and assemble a snapshot.

    Args:
        store: QueueStore-like object (fetch_waiting_entries, fetch_active_providers, fetch_locations)
        include_notified: Keep already-notified waiting entries as bucket context

    Returns:
        QueueSnapshot

    Raises:
        SnapshotReadError: any store read failure (no partial evaluation)
    """
    try:
        entries = await store.fetch_waiting_entries(include_notified=include_notified)
    except Exception as e:
        raise SnapshotReadError("queue entries", e) from e

    try:
        providers = await store.fetch_active_providers()
    except Exception as e:
        raise SnapshotReadError("providers", e) from e

    try:
        locations = await store.fetch_locations()
    except Exception as e:
        raise SnapshotReadError("locations", e) from e

    snapshot = assemble_snapshot(entries, providers, locations)

    for anomaly in snapshot.anomalies:
        logger.warning(
            "SNAPSHOT_LOCATION_GAP entry_id=%s location_id=%s reason=%s",
            anomaly.entry_id, anomaly.location_id, anomaly.reason,
        )
    logger.info(
        "Queue snapshot loaded: locations=%s entries=%s anomalies=%s",
        len(snapshot.locations), snapshot.entry_count, len(snapshot.anomalies),
    )
    return snapshot

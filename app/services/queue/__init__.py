"""
Queue Service Package

Queue domain model and per-pass snapshot assembly.
"""

from app.services.queue.models import (
    ANY_PROVIDER,
    AnyProvider,
    Location,
    Provider,
    ProviderRequest,
    QueueEntry,
    RequestedProvider,
    provider_request_from_id,
)
from app.services.queue.snapshot import (
    LocationQueue,
    QueueSnapshot,
    SnapshotAnomaly,
    assemble_snapshot,
    load_snapshot,
)
from app.services.queue.exceptions import (
    QueueServiceError,
    SnapshotReadError,
)

__all__ = [
    "ANY_PROVIDER",
    "AnyProvider",
    "Location",
    "Provider",
    "ProviderRequest",
    "QueueEntry",
    "RequestedProvider",
    "provider_request_from_id",
    "LocationQueue",
    "QueueSnapshot",
    "SnapshotAnomaly",
    "assemble_snapshot",
    "load_snapshot",
    "QueueServiceError",
    "SnapshotReadError",
]

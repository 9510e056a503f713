"""
Pytest configuration and shared fixtures for queue notifier tests.
"""
import itertools
from datetime import datetime, timedelta, timezone
from typing import Optional
from unittest.mock import AsyncMock, MagicMock

import pytest

from app.services.queue.models import (
    Location,
    Provider,
    QueueEntry,
    provider_request_from_id,
)
from app.services.queue.snapshot import LocationQueue
from sms_service import SmsSendResult


@pytest.fixture
def base_time():
    """Fixed datetime for deterministic tests"""
    return datetime(2024, 1, 15, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def make_entry(base_time):
    """
    Factory for queue entries.

    Each call joins one minute after the previous one unless joined_at is given.
    """
    counter = itertools.count()

    def _make(
        entry_id: str,
        *,
        provider: Optional[str] = None,
        location: str = "shop-1",
        notified: bool = False,
        status: str = "waiting",
        joined_at: Optional[datetime] = None,
        phone_number: Optional[str] = None,
    ) -> QueueEntry:
        if joined_at is None:
            joined_at = base_time + timedelta(minutes=next(counter))
        return QueueEntry(
            id=entry_id,
            customer_name=f"Customer {entry_id}",
            phone_number=phone_number or "+15550001234",
            status=status,
            joined_at=joined_at,
            location_id=location,
            requested_provider=provider_request_from_id(provider),
            notified=notified,
        )

    return _make


@pytest.fixture
def make_queue():
    """Factory for a LocationQueue"""

    def _make(entries, active_providers: int = 1, threshold: Optional[int] = None, location: str = "shop-1"):
        return LocationQueue(
            location=Location(id=location, notify_threshold=threshold),
            entries=tuple(entries),
            active_provider_count=active_providers,
        )

    return _make


@pytest.fixture
def shop():
    return Location(id="shop-1", notify_threshold=None)


@pytest.fixture
def active_barbers():
    return [
        Provider(id="barber-1", location_id="shop-1", status="active"),
        Provider(id="barber-2", location_id="shop-1", status="active"),
        Provider(id="barber-3", location_id="shop-1", status="inactive"),
    ]


@pytest.fixture
def mock_store():
    """Mock queue store"""
    store = MagicMock()
    store.fetch_waiting_entries = AsyncMock(return_value=[])
    store.fetch_active_providers = AsyncMock(return_value=[])
    store.fetch_locations = AsyncMock(return_value=[])
    store.mark_notified = AsyncMock(return_value=True)
    return store


@pytest.fixture
def mock_transport():
    """Mock message transport that accepts every message"""
    transport = MagicMock()
    transport.send = AsyncMock(return_value=SmsSendResult(ok=True, message_sid="SM123"))
    return transport


@pytest.fixture
def mock_pool():
    """
    Mock asyncpg pool.

    Returns (pool, conn); conn.fetch / conn.execute are AsyncMocks.
    """
    conn = MagicMock()
    conn.fetch = AsyncMock(return_value=[])
    conn.execute = AsyncMock(return_value="UPDATE 1")

    acq = MagicMock()
    acq.__aenter__ = AsyncMock(return_value=conn)
    acq.__aexit__ = AsyncMock(return_value=None)

    pool = MagicMock()
    pool.acquire.return_value = acq
    pool.close = AsyncMock()
    return pool, conn

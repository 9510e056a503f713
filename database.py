import logging
import os
from datetime import datetime, timezone
from typing import Any, List, Mapping, Optional

import asyncpg

from app.services.queue.models import (
    Location,
    Provider,
    QueueEntry,
    provider_request_from_id,
)
from app.utils.retry import retry_async

logger = logging.getLogger(__name__)


# ====================================================================================
# UTC HELPERS: DB boundary
# ====================================================================================
# joined_at may be stored as TIMESTAMP (naive, UTC by convention) or TIMESTAMPTZ.
# Everything read FROM the DB goes through _from_db_utc so FIFO ordering never
# compares naive and aware datetimes.
# ====================================================================================

def _from_db_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """
    Convert DB datetime to aware UTC.
    Naive values are assumed to be stored as UTC.
    """
    if dt is None:
        return None
    if dt.tzinfo is not None:
        return dt.astimezone(timezone.utc)
    return dt.replace(tzinfo=timezone.utc)


def _optional_int(value: Any) -> Optional[int]:
    """notify_threshold is nullable; unparseable values count as unset"""
    if value is None:
        return None
    try:
        return int(value)
    except (ValueError, TypeError):
        logger.warning("Ignoring non-integer notify_threshold=%r", value)
        return None


# ====================================================================================
# ROW MAPPING: physical columns → domain model
# ====================================================================================
# queue_entries.shop_id            → QueueEntry.location_id
# queue_entries.requested_barber_id → RequestedProvider / AnyProvider
# barbers.shop_id                  → Provider.location_id
# barbershops                      → Location
# ====================================================================================

def row_to_entry(row: Mapping[str, Any]) -> QueueEntry:
    return QueueEntry(
        id=str(row["id"]),
        customer_name=row["customer_name"] or "",
        phone_number=row["phone_number"] or "",
        status=row["status"],
        joined_at=_from_db_utc(row["joined_at"]),
        location_id=str(row["shop_id"]),
        requested_provider=provider_request_from_id(row["requested_barber_id"]),
        notified=bool(row["notified"]),
    )


def row_to_provider(row: Mapping[str, Any]) -> Provider:
    return Provider(
        id=str(row["id"]),
        location_id=str(row["shop_id"]),
        status=row["status"],
    )


def row_to_location(row: Mapping[str, Any]) -> Location:
    return Location(
        id=str(row["id"]),
        notify_threshold=_optional_int(row["notify_threshold"]),
    )


# ====================================================================================
# DB POOL CONFIG: ENV-overridable
# ====================================================================================

def _get_pool_config() -> dict:
    """Build asyncpg.create_pool kwargs. A pass is sequential, so the pool stays small."""
    return {
        "min_size": int(os.getenv("DB_POOL_MIN_SIZE", "1")),
        "max_size": int(os.getenv("DB_POOL_MAX_SIZE", "4")),
        "max_inactive_connection_lifetime": 300,
        "timeout": int(os.getenv("DB_POOL_ACQUIRE_TIMEOUT", "10")),
        "command_timeout": int(os.getenv("DB_POOL_COMMAND_TIMEOUT", "30")),
    }


async def create_pool(dsn: str) -> asyncpg.Pool:
    """
    Create the connection pool, retrying on transient errors only.

    Raises:
        RuntimeError: dsn is empty
        asyncpg exceptions / OSError: DB unreachable after retries
    """
    if not dsn:
        raise RuntimeError("DATABASE_URL is not configured")
    pool_config = _get_pool_config()
    pool = await retry_async(
        lambda: asyncpg.create_pool(dsn, **pool_config),
        retries=1,
        base_delay=0.5,
        max_delay=5.0,
    )
    logger.info(
        "DB_POOL_CONFIG min=%s max=%s acquire_timeout=%s command_timeout=%s",
        pool_config["min_size"], pool_config["max_size"],
        pool_config["timeout"], pool_config["command_timeout"],
    )
    return pool


# ====================================================================================
# QUEUE STORE
# ====================================================================================

_WAITING_ENTRIES_QUERY = """
    SELECT id, customer_name, phone_number, status, joined_at,
           shop_id, requested_barber_id, notified
    FROM queue_entries
    WHERE status = 'waiting'
    ORDER BY joined_at ASC"""

_WAITING_UNNOTIFIED_ENTRIES_QUERY = """
    SELECT id, customer_name, phone_number, status, joined_at,
           shop_id, requested_barber_id, notified
    FROM queue_entries
    WHERE status = 'waiting'
      AND notified = FALSE
    ORDER BY joined_at ASC"""


class QueueStore:
    """
    Queue store backed by a PostgreSQL pool.

    The pool is owned by whoever created it (the entry point); close() is a
    convenience for that owner.
    """

    def __init__(self, pool: asyncpg.Pool):
        self._pool = pool

    @classmethod
    async def connect(cls, dsn: str) -> "QueueStore":
        return cls(await create_pool(dsn))

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            logger.info("Database pool closed")

    async def fetch_waiting_entries(self, include_notified: bool = True) -> List[QueueEntry]:
        """
        Waiting entries ordered by joined_at ascending.

        Args:
            include_notified: Also return entries already marked notified

        Returns:
            List of QueueEntry
        """
        query = _WAITING_ENTRIES_QUERY if include_notified else _WAITING_UNNOTIFIED_ENTRIES_QUERY
        async with self._pool.acquire() as conn:
            rows = await conn.fetch(query)
        return [row_to_entry(row) for row in rows]

    async def fetch_active_providers(self) -> List[Provider]:
        async with self._pool.acquire() as conn:
            rows = await conn.fetch(
                "SELECT id, shop_id, status FROM barbers WHERE status = 'active'"
            )
        return [row_to_provider(row) for row in rows]

    async def fetch_locations(self) -> List[Location]:
        async with self._pool.acquire() as conn:
            rows = await conn.fetch("SELECT id, notify_threshold FROM barbershops")
        return [row_to_location(row) for row in rows]

    async def mark_notified(self, entry_id: str) -> bool:
        """
        Atomically mark one entry as notified (idempotent).

        Args:
            entry_id: queue_entries.id

        Returns:
            True if the flag was set by this call, False if the row was already
            marked or no longer exists

        Raises:
            asyncpg exceptions: on DB errors
        """
        async with self._pool.acquire() as conn:
            result = await conn.execute(
                "UPDATE queue_entries SET notified = TRUE WHERE id = $1::uuid AND notified = FALSE",
                str(entry_id)
            )
        # asyncpg execute returns a status string like "UPDATE 1" or "UPDATE 0"
        return result.split()[-1] == "1"

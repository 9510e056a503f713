"""
Queue domain model.

Plain immutable records read from the queue store. Nothing here performs I/O.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Union


WAITING_STATUS = "waiting"
ACTIVE_PROVIDER_STATUS = "active"


# ====================================================================================
# Provider request: either a specific provider or "any provider"
# ====================================================================================

@dataclass(frozen=True)
class RequestedProvider:
    """Customer asked for a specific provider (barber)"""
    provider_id: str


@dataclass(frozen=True)
class AnyProvider:
    """Customer takes whichever provider frees up first"""

    def __repr__(self) -> str:
        return "AnyProvider()"


ANY_PROVIDER = AnyProvider()

ProviderRequest = Union[RequestedProvider, AnyProvider]


def provider_request_from_id(provider_id: Optional[object]) -> ProviderRequest:
    """
    Build a ProviderRequest from a nullable store column.

    None and blank strings mean "any provider"; everything else is kept as an
    explicit request, even if no such provider is active.
    """
    if provider_id is None:
        return ANY_PROVIDER
    value = str(provider_id).strip()
    if not value:
        return ANY_PROVIDER
    return RequestedProvider(value)


# ====================================================================================
# Records
# ====================================================================================

@dataclass(frozen=True)
class QueueEntry:
    """One customer's waiting-in-line record"""
    id: str
    customer_name: str
    phone_number: str
    status: str
    joined_at: datetime
    location_id: str
    requested_provider: ProviderRequest = ANY_PROVIDER
    notified: bool = False

    @property
    def is_waiting(self) -> bool:
        return self.status == WAITING_STATUS

    @property
    def wants_any_provider(self) -> bool:
        return isinstance(self.requested_provider, AnyProvider)


@dataclass(frozen=True)
class Provider:
    id: str
    location_id: str
    status: str

    @property
    def is_active(self) -> bool:
        return self.status == ACTIVE_PROVIDER_STATUS


@dataclass(frozen=True)
class Location:
    id: str
    notify_threshold: Optional[int] = None

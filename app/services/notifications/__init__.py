"""
Notification Service Layer

This package provides the queue notification policy: which waiting entries
should be notified on a pass, and with which message.
"""

from app.services.notifications.service import (
    compute_notify_position,
    estimate_wait_minutes,
    partition_by_provider,
    select_requested_provider_heads,
    select_any_provider_entries,
    evaluate_location,
    evaluate_snapshot,
    render_message,
    NotificationDecision,
    NotificationKind,
    NotificationPolicy,
    PolicyKind,
    DEFAULT_POLICY,
)

from app.services.notifications.exceptions import (
    NotificationServiceError,
    InvalidPolicyError,
)

__all__ = [
    "compute_notify_position",
    "estimate_wait_minutes",
    "partition_by_provider",
    "select_requested_provider_heads",
    "select_any_provider_entries",
    "evaluate_location",
    "evaluate_snapshot",
    "render_message",
    "NotificationDecision",
    "NotificationKind",
    "NotificationPolicy",
    "PolicyKind",
    "DEFAULT_POLICY",
    "NotificationServiceError",
    "InvalidPolicyError",
]

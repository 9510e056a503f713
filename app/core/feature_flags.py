"""
Global operational flags (kill switches).

Lets operators stop customer texting during an incident without a deploy.

IMPORTANT:
- Flags default to SAFE = True (enabled)
- Flags are read-only at runtime
- Flags have zero side effects
- Disabled = log + skip (no exceptions)
"""

import os
import logging
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FeatureFlags:
    """
    Immutable feature flags for operational control.

    Set via environment variables:
    - FEATURE_NOTIFIER_ENABLED (default: true): run notification passes at all
    - FEATURE_SMS_SENDING_ENABLED (default: true): actually send SMS; when
      false, decisions are logged and entries stay notified=false
    """
    notifier_enabled: bool
    sms_sending_enabled: bool

    def __post_init__(self):
        """Validate flags are boolean."""
        for field_name, field_value in self.__dict__.items():
            if not isinstance(field_value, bool):
                raise ValueError(f"Feature flag {field_name} must be boolean, got {type(field_value)}")


_feature_flags: Optional[FeatureFlags] = None


def _parse_bool_env(key: str, default: bool = True) -> bool:
    """
    Parse boolean from environment variable.

    Args:
        key: Environment variable name
        default: Default value if not set or unparseable

    Returns:
        Boolean value
    """
    value = os.getenv(key, "").lower().strip()
    if value in ("true", "1", "yes", "on"):
        return True
    elif value in ("false", "0", "no", "off"):
        return False
    else:
        return default


def get_feature_flags() -> FeatureFlags:
    """
    Get global feature flags (read once per process).

    Returns:
        FeatureFlags instance
    """
    global _feature_flags

    if _feature_flags is None:
        _feature_flags = FeatureFlags(
            notifier_enabled=_parse_bool_env("FEATURE_NOTIFIER_ENABLED", default=True),
            sms_sending_enabled=_parse_bool_env("FEATURE_SMS_SENDING_ENABLED", default=True),
        )
        logger.info(
            "[FEATURE_FLAGS] Initialized: notifier=%s sms_sending=%s",
            _feature_flags.notifier_enabled,
            _feature_flags.sms_sending_enabled,
        )

    return _feature_flags


def reset_feature_flags() -> None:
    """Drop the cached flags so the next call re-reads the environment."""
    global _feature_flags
    _feature_flags = None

import os
import sys

# ====================================================================================
# ENVIRONMENT CONFIGURATION: PROD / STAGE / LOCAL isolation via prefixes
# ====================================================================================
# All deployment secrets use the environment prefix:
#   - PROD: PROD_DATABASE_URL, PROD_TWILIO_AUTH_TOKEN, ...
#   - STAGE: STAGE_DATABASE_URL, STAGE_TWILIO_AUTH_TOKEN, ...
#   - LOCAL: LOCAL_DATABASE_URL, LOCAL_TWILIO_AUTH_TOKEN, ...
#
# A STAGE notifier can never text real customers with PROD credentials,
# even if the PROD variables happen to be present in the container.
# ====================================================================================

APP_ENV = os.getenv("APP_ENV", "prod").lower()
if APP_ENV not in ("prod", "stage", "local"):
    print(f"ERROR: Invalid APP_ENV={APP_ENV}. Must be one of: prod, stage, local", file=sys.stderr)
    sys.exit(1)

IS_LOCAL = APP_ENV == "local"
IS_STAGE = APP_ENV == "stage"
IS_PROD = APP_ENV == "prod"


def env(key: str, default: str = "") -> str:
    """
    Get an environment variable using the environment prefix.

    Args:
        key: Variable name without prefix (e.g. "DATABASE_URL")
        default: Value returned when the variable is not set

    Returns:
        Value of the prefixed variable (e.g. "STAGE_DATABASE_URL")

    Example:
        env("DATABASE_URL") -> value of PROD_DATABASE_URL (if APP_ENV=prod)
        env("SHOP_NAME", default="Fade Lab") -> "Fade Lab" if unset
    """
    env_key = f"{APP_ENV.upper()}_{key}"
    return os.getenv(env_key, default)


def _env_float(key: str, default: float) -> float:
    raw = env(key, default=str(default))
    try:
        return float(raw)
    except ValueError:
        print(f"WARNING: {APP_ENV.upper()}_{key}={raw!r} is not a number, using {default}", file=sys.stderr)
        return default


def _env_bool(raw: str, default: bool) -> bool:
    value = raw.lower().strip()
    if value in ("true", "1", "yes", "on"):
        return True
    if value in ("false", "0", "no", "off"):
        return False
    return default


# ====================================================================================
# SECRETS (validated at startup by require_runtime_config, never logged)
# ====================================================================================

DATABASE_URL = env("DATABASE_URL")

TWILIO_ACCOUNT_SID = env("TWILIO_ACCOUNT_SID")
TWILIO_AUTH_TOKEN = env("TWILIO_AUTH_TOKEN")
TWILIO_PHONE_NUMBER = env("TWILIO_PHONE_NUMBER")
TWILIO_API_URL = env("TWILIO_API_URL") or "https://api.twilio.com"
# Timeout for a single SMS API request (seconds)
SMS_TIMEOUT = _env_float("SMS_TIMEOUT", 10.0)

# ====================================================================================
# NOTIFICATION POLICY
# ====================================================================================

SHOP_NAME = env("SHOP_NAME", default="Fade Lab")
NOTIFIER_LANGUAGE = env("NOTIFIER_LANGUAGE", default="en").lower()

# fixed_index | estimated_wait
NOTIFY_POLICY = env("NOTIFY_POLICY", default="fixed_index").lower()
AVG_SERVICE_MINUTES = _env_float("AVG_SERVICE_MINUTES", 20.0)
NOTIFY_WAIT_MINUTES = _env_float("NOTIFY_WAIT_MINUTES", 15.0)

# Keep already-notified waiting entries in the snapshot so they hold their slot
NOTIFIER_INCLUDE_NOTIFIED_CONTEXT = _env_bool(env("NOTIFIER_INCLUDE_NOTIFIED_CONTEXT", default="true"), True)

# ====================================================================================
# PROCESS SETTINGS (unprefixed, same across environments)
# ====================================================================================

# once | loop
NOTIFIER_MODE = os.getenv("NOTIFIER_MODE", "once").lower()
NOTIFIER_INTERVAL_SECONDS = float(os.getenv("NOTIFIER_INTERVAL_SECONDS", "60"))
RUN_MIGRATIONS = _env_bool(os.getenv("RUN_MIGRATIONS", "false"), False)
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Unprefixed secrets are refused so PROD/STAGE values never get mixed up
_direct_usage_vars = ["DATABASE_URL", "TWILIO_AUTH_TOKEN", "TWILIO_ACCOUNT_SID"]


def require_runtime_config() -> None:
    """
    Validate everything a notification pass needs. Exits the process on error.

    Called by the entry point, not at import, so the service layer and tests
    can import config without a full deployment environment.
    """
    for var in _direct_usage_vars:
        if os.getenv(var):
            print(f"ERROR: Direct usage of {var} is FORBIDDEN!", file=sys.stderr)
            print(f"ERROR: Use {APP_ENV.upper()}_{var} instead (via env('{var}'))", file=sys.stderr)
            sys.exit(1)

    if not DATABASE_URL:
        print(f"ERROR: {APP_ENV.upper()}_DATABASE_URL environment variable is not set!", file=sys.stderr)
        sys.exit(1)

    missing = [
        name for name, value in (
            ("TWILIO_ACCOUNT_SID", TWILIO_ACCOUNT_SID),
            ("TWILIO_AUTH_TOKEN", TWILIO_AUTH_TOKEN),
            ("TWILIO_PHONE_NUMBER", TWILIO_PHONE_NUMBER),
        ) if not value
    ]
    if missing:
        prefixed = ", ".join(f"{APP_ENV.upper()}_{name}" for name in missing)
        if IS_PROD:
            print(f"ERROR: {prefixed} is REQUIRED in PROD!", file=sys.stderr)
            sys.exit(1)
        print(f"WARNING: {prefixed} not set - SMS sending will fail for every entry", file=sys.stderr)

    if NOTIFY_POLICY not in ("fixed_index", "estimated_wait"):
        print(f"ERROR: NOTIFY_POLICY must be fixed_index or estimated_wait, got: {NOTIFY_POLICY}", file=sys.stderr)
        sys.exit(1)

    if NOTIFIER_MODE not in ("once", "loop"):
        print(f"ERROR: NOTIFIER_MODE must be once or loop, got: {NOTIFIER_MODE}", file=sys.stderr)
        sys.exit(1)

    print(f"INFO: Config loaded for environment: {APP_ENV.upper()}", flush=True)
    print(f"INFO: Using DATABASE_URL from {APP_ENV.upper()}_DATABASE_URL", flush=True)
    print(f"INFO: NOTIFY_POLICY={NOTIFY_POLICY} NOTIFIER_MODE={NOTIFIER_MODE}", flush=True)

import asyncio
import logging
import sys

import httpx

import config
import database
import migrations
import queue_notifier
from app.core.feature_flags import get_feature_flags
from app.core.logging_config import setup_logging, stop_logging
from app.utils.logging_helpers import classify_error
from sms_service import TwilioSmsTransport

# ====================================================================================
# LOGGING CONTRACT
# ====================================================================================
# - component        (worker / dispatcher / sms / store)
# - operation        (queue_notifier_iteration / notify_entry)
# - correlation_id   (one UUID per pass)
# - outcome          (success | degraded | failed | skipped)
# - duration_ms
# - reason           (short, non-PII explanation)
#
# SECURITY:
# - DO NOT log secrets, full phone numbers or message bodies
# ====================================================================================

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1


async def main() -> int:
    """
    Own the store and transport for the lifetime of the process.

    Returns:
        Process exit status: 0 when the pass completed (per-entry SMS or mark
        failures included), 1 when the pass could not run.
    """
    logger.info("Starting queue notifier in %s environment (mode=%s)", config.APP_ENV.upper(), config.NOTIFIER_MODE)
    get_feature_flags()

    try:
        pool = await database.create_pool(config.DATABASE_URL)
    except Exception as e:
        logger.error("DB connection failed: %s: %s (error_type=%s)", type(e).__name__, e, classify_error(e))
        return EXIT_FAILED

    store = database.QueueStore(pool)
    try:
        if config.RUN_MIGRATIONS:
            applied = await migrations.run_migrations_safe(pool)
            logger.info("RUN_MIGRATIONS applied=%s", applied)

        async with httpx.AsyncClient(timeout=config.SMS_TIMEOUT) as client:
            transport = TwilioSmsTransport.from_config(client)
            if not transport.is_configured():
                logger.warning("SMS transport not configured - every send will fail")

            if config.NOTIFIER_MODE == "loop":
                logger.info("Queue notifier loop started, interval=%ss", config.NOTIFIER_INTERVAL_SECONDS)
                await queue_notifier.queue_notifier_task(store, transport)
                return EXIT_OK

            outcome = await queue_notifier.run_iteration(store, transport)
            if outcome == "failed":
                return EXIT_FAILED
            return EXIT_OK
    finally:
        await store.close()


def run() -> None:
    """Console entry point: validate config, run, exit with the pass status"""
    setup_logging(config.LOG_LEVEL)
    config.require_runtime_config()

    try:
        exit_code = asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Queue notifier interrupted")
        exit_code = EXIT_FAILED
    except Exception as e:
        logger.critical("Unexpected error in queue notifier: %s: %s", type(e).__name__, e, exc_info=True)
        exit_code = EXIT_FAILED
    finally:
        stop_logging()

    sys.exit(exit_code)


if __name__ == "__main__":
    run()

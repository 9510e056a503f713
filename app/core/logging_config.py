# -*- coding: utf-8 -*-
"""
Process logging configuration.

Routes logs by severity for correct container/platform classification:
- DEBUG, INFO, WARNING → STDOUT
- ERROR, CRITICAL → STDERR

Records go through QueueHandler + QueueListener so a slow stdout never stalls
the event loop between SMS sends. stop_logging() drains the queue; the entry
point calls it before returning an exit status so the last lines are not lost.
"""

import atexit
import logging
import queue
import sys
from logging.handlers import QueueHandler, QueueListener


class MaxLevelFilter(logging.Filter):
    """
    Allows only records up to a specified level (inclusive).
    Keeps ERROR/CRITICAL off stdout.
    """

    def __init__(self, max_level):
        super().__init__()
        self.max_level = max_level

    def filter(self, record):
        return record.levelno <= self.max_level


_log_listener: QueueListener | None = None


def setup_logging(level: str = "INFO"):
    """
    Install a QueueHandler on the root logger and start the listener thread.

    Must be called before any logger is used. Calling it again replaces the
    previous configuration.
    """
    global _log_listener

    stop_logging()

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    root_logger.handlers.clear()

    formatter = logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    stdout_handler = logging.StreamHandler(sys.stdout)
    stdout_handler.setLevel(logging.DEBUG)
    stdout_handler.addFilter(MaxLevelFilter(logging.WARNING))
    stdout_handler.setFormatter(formatter)

    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setLevel(logging.ERROR)
    stderr_handler.setFormatter(formatter)

    log_queue = queue.Queue()
    root_logger.addHandler(QueueHandler(log_queue))

    _log_listener = QueueListener(
        log_queue,
        stdout_handler,
        stderr_handler,
        respect_handler_level=True,
    )
    _log_listener.start()
    atexit.register(stop_logging)


def stop_logging():
    """Stop the queue listener, flushing pending records."""
    global _log_listener
    if _log_listener is not None:
        _log_listener.stop()
        _log_listener = None

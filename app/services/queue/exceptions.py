"""
Queue Service Domain Exceptions

All exceptions raised by the queue snapshot layer.
"""


class QueueServiceError(Exception):
    """Base exception for queue service errors"""
    pass


class SnapshotReadError(QueueServiceError):
    """Raised when the queue store cannot be read; the whole pass is aborted"""

    def __init__(self, source: str, cause: Exception):
        self.source = source
        self.cause = cause
        super().__init__(f"Failed to read {source} from queue store: {type(cause).__name__}: {cause}")

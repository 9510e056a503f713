"""
Notification Service Domain Exceptions

All exceptions raised by the notification service layer.
The policy engine itself never raises for data shape reasons; these cover
invalid policy configuration only.
"""


class NotificationServiceError(Exception):
    """Base exception for notification service errors"""
    pass


class InvalidPolicyError(NotificationServiceError):
    """Raised when a notification policy is configured with invalid values"""
    pass

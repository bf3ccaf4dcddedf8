"""
Dispute Portal Exceptions
"""
from typing import Optional


class DisputePortalError(Exception):
    """Base class for dispute portal adapter errors"""

    def __init__(self, message: str, portal_type: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.portal_type = portal_type


class PortalRequestError(DisputePortalError):
    """
    Outbound call failed

    Raised for portal rejections (not retried) and for transient failures
    once the retry budget is exhausted.
    """

    def __init__(self, message: str, portal_type: Optional[str] = None,
                 status_code: Optional[int] = None, retryable: bool = False, attempts: int = 1):
        super().__init__(message, portal_type)
        self.status_code = status_code
        self.retryable = retryable
        self.attempts = attempts

    def __str__(self) -> str:
        status = f" (HTTP {self.status_code})" if self.status_code else ""
        return f"[{self.portal_type}] {self.message}{status}"


class WebhookPayloadError(DisputePortalError):
    """Webhook body could not be parsed"""


class PortalConfigurationError(DisputePortalError):
    """Adapter configuration is missing or invalid"""

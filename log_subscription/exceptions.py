"""
Log Subscription Exceptions.

TransportError is the only failure that triggers a reconnect.
"""

from datetime import datetime, timezone
from typing import Any, Optional


class TransportError(Exception):
    """The log stream failed or closed."""

    def __init__(
        self,
        message: str,
        url: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.url = url
        self.original_error = original_error
        self.timestamp = datetime.now(timezone.utc)

    def to_dict(self) -> dict[str, Any]:
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "url": self.url,
            "original_error": str(self.original_error) if self.original_error else None,
            "timestamp": self.timestamp.isoformat(),
        }

    def __str__(self) -> str:
        text = f"{self.__class__.__name__}: {self.message}"
        if self.original_error:
            text += f" (caused by: {self.original_error})"
        return text


class TransportClosedError(TransportError):
    """The connection closed while the stream was expected to be open."""


class SubscriptionRejectedError(TransportError):
    """The node answered eth_subscribe with an error."""

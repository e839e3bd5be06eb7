"""
Event Decoder Exceptions.

A DecodeError is scoped to a single log. Callers catch it at the
per-log boundary, log it, and move on to the next log.
"""

from datetime import datetime, timezone
from typing import Any, Optional


class DecodeError(Exception):
    """Raised when a raw log cannot be decoded into a typed event."""

    def __init__(
        self,
        message: str,
        transaction_hash: Optional[str] = None,
        log_index: Optional[int] = None,
        topic: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.transaction_hash = transaction_hash
        self.log_index = log_index
        self.topic = topic
        self.original_error = original_error
        self.timestamp = datetime.now(timezone.utc)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "transaction_hash": self.transaction_hash,
            "log_index": self.log_index,
            "topic": self.topic,
            "original_error": str(self.original_error) if self.original_error else None,
            "timestamp": self.timestamp.isoformat(),
        }

    def __str__(self) -> str:
        parts = [f"{self.__class__.__name__}: {self.message}"]
        if self.transaction_hash:
            parts.append(f"[tx={self.transaction_hash}:{self.log_index}]")
        if self.original_error:
            parts.append(f"(caused by: {self.original_error})")
        return " ".join(parts)

"""
Price Resolver Exceptions - Custom exception hierarchy.

Sources raise these; the resolver classifies them to decide
between retrying, moving to the next source, or degrading to
an "unknown" price. Nothing here escapes the resolver.
"""

from datetime import datetime, timezone
from typing import Any, Optional


class PriceResolverError(Exception):
    """Base exception for all price and metadata lookup errors."""

    def __init__(
        self,
        message: str,
        source_name: Optional[str] = None,
        token_address: Optional[str] = None,
        original_error: Optional[Exception] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.source_name = source_name
        self.token_address = token_address
        self.original_error = original_error
        self.context = context or {}
        self.timestamp = datetime.now(timezone.utc)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "source_name": self.source_name,
            "token_address": self.token_address,
            "original_error": str(self.original_error) if self.original_error else None,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
        }

    def __str__(self) -> str:
        parts = [f"{self.__class__.__name__}: {self.message}"]
        if self.source_name:
            parts.append(f"[source={self.source_name}]")
        if self.token_address:
            parts.append(f"[token={self.token_address}]")
        if self.original_error:
            parts.append(f"(caused by: {self.original_error})")
        return " ".join(parts)


class FetchError(PriceResolverError):
    """Error during a request to a price source or RPC node."""

    def __init__(
        self,
        message: str,
        source_name: Optional[str] = None,
        token_address: Optional[str] = None,
        status_code: Optional[int] = None,
        response_body: Optional[str] = None,
        request_url: Optional[str] = None,
        original_error: Optional[Exception] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, source_name, token_address, original_error, context)
        self.status_code = status_code
        self.response_body = response_body
        self.request_url = request_url

    @property
    def is_client_error(self) -> bool:
        """4xx responses will not succeed on retry."""
        return self.status_code is not None and 400 <= self.status_code < 500

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data.update({
            "status_code": self.status_code,
            "response_body": self.response_body,
            "request_url": self.request_url,
        })
        return data


class RateLimitError(PriceResolverError):
    """Rate limit exceeded (HTTP 429 or provider specific)."""

    def __init__(
        self,
        message: str,
        source_name: Optional[str] = None,
        token_address: Optional[str] = None,
        retry_after_seconds: Optional[float] = None,
        original_error: Optional[Exception] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, source_name, token_address, original_error, context)
        self.retry_after_seconds = retry_after_seconds

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["retry_after_seconds"] = self.retry_after_seconds
        return data


class PriceNotFoundError(PriceResolverError):
    """Source answered but has no usable price for the token."""


class RpcError(PriceResolverError):
    """JSON-RPC node returned an error object."""

    def __init__(
        self,
        message: str,
        method: Optional[str] = None,
        code: Optional[int] = None,
        original_error: Optional[Exception] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, "rpc", None, original_error, context)
        self.method = method
        self.code = code

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data.update({"method": self.method, "code": self.code})
        return data


class MetadataResolutionError(PriceResolverError):
    """decimals() or totalSupply() could not be read."""

    def __init__(
        self,
        message: str,
        token_address: Optional[str] = None,
        field_name: Optional[str] = None,
        original_error: Optional[Exception] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, "metadata", token_address, original_error, context)
        self.field_name = field_name

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["field_name"] = self.field_name
        return data

"""
Base Price Source - Abstract interface for USD price providers.

All sources MUST:
- Return a positive Decimal USD price or raise
- Raise RateLimitError for throttling responses
- Raise FetchError for transport / HTTP failures
- Raise PriceNotFoundError when the provider has no usable price
"""

import logging
import time
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

import aiohttp

from price_resolver.exceptions import (
    FetchError,
    PriceNotFoundError,
    PriceResolverError,
    RateLimitError,
)


logger = logging.getLogger(__name__)


class BasePriceSource(ABC):
    """
    Abstract base class for price sources.

    Retrying is not done here; the resolver owns the retry schedule
    and uses the exception type to decide what to do next.
    """

    DEFAULT_TIMEOUT = 10.0

    def __init__(
        self,
        timeout: float = DEFAULT_TIMEOUT,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        self._timeout = timeout
        self._session = session
        self._owns_session = session is None

        self._requests = 0
        self._failures = 0
        self._consecutive_failures = 0
        self._last_error: Optional[str] = None
        self._last_success: Optional[datetime] = None
        self._latency_ms: Optional[float] = None

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique identifier for this source."""
        pass

    @abstractmethod
    async def get_price(self, token_address: str) -> Decimal:
        """
        Fetch the USD price of a token.

        Args:
            token_address: Lowercase contract address

        Returns:
            Positive USD price

        Raises:
            PriceResolverError subclasses
        """
        pass

    # ─────────────────────────────────────────────────────────────
    # HTTP Helpers
    # ─────────────────────────────────────────────────────────────

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create HTTP session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self._timeout),
                headers={"Accept": "application/json", "User-Agent": "WhaleWatch/1.0"},
            )
            self._owns_session = True
        return self._session

    async def _make_request(
        self,
        method: str,
        url: str,
        params: Optional[dict[str, Any]] = None,
        headers: Optional[dict[str, str]] = None,
        token_address: Optional[str] = None,
    ) -> Any:
        """Make HTTP request with error handling."""
        session = await self._get_session()
        self._requests += 1

        start_time = time.time()
        try:
            async with session.request(method, url, params=params, headers=headers) as response:
                self._latency_ms = (time.time() - start_time) * 1000

                if response.status == 429:
                    retry_after = response.headers.get("Retry-After")
                    raise RateLimitError(
                        message="Rate limit exceeded",
                        source_name=self.name,
                        token_address=token_address,
                        retry_after_seconds=_parse_retry_after(retry_after),
                    )

                if response.status >= 400:
                    body = await response.text()
                    raise FetchError(
                        message=f"HTTP {response.status}",
                        source_name=self.name,
                        token_address=token_address,
                        status_code=response.status,
                        response_body=body[:500],
                        request_url=url,
                    )

                try:
                    return await response.json(content_type=None)
                except ValueError as e:
                    raise PriceNotFoundError(
                        message="Response body is not JSON",
                        source_name=self.name,
                        token_address=token_address,
                        original_error=e,
                    ) from e

        except aiohttp.ClientError as e:
            raise FetchError(
                message=f"Connection error: {e}",
                source_name=self.name,
                token_address=token_address,
                request_url=url,
                original_error=e,
            ) from e

    def _parse_price(self, value: Any, token_address: str) -> Decimal:
        """Convert a provider price field into a positive Decimal."""
        try:
            price = Decimal(str(value))
        except (InvalidOperation, ValueError) as e:
            raise PriceNotFoundError(
                message=f"Unparseable price {value!r}",
                source_name=self.name,
                token_address=token_address,
                original_error=e,
            ) from e

        if not price.is_finite() or price <= 0:
            raise PriceNotFoundError(
                message=f"Non-positive price {value!r}",
                source_name=self.name,
                token_address=token_address,
            )
        return price

    # ─────────────────────────────────────────────────────────────
    # Health Tracking
    # ─────────────────────────────────────────────────────────────

    def record_success(self) -> None:
        self._last_success = datetime.now(timezone.utc)
        self._consecutive_failures = 0

    def record_failure(self, error: PriceResolverError) -> None:
        self._failures += 1
        self._consecutive_failures += 1
        self._last_error = str(error)

    def get_stats(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "requests": self._requests,
            "failures": self._failures,
            "consecutive_failures": self._consecutive_failures,
            "last_error": self._last_error,
            "last_success": self._last_success.isoformat() if self._last_success else None,
            "latency_ms": self._latency_ms,
        }

    # ─────────────────────────────────────────────────────────────
    # Lifecycle
    # ─────────────────────────────────────────────────────────────

    async def close(self) -> None:
        """Close resources."""
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()

    async def __aenter__(self) -> "BasePriceSource":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}(name={self.name})>"


def _parse_retry_after(value: Optional[str]) -> Optional[float]:
    if not value:
        return None
    try:
        return float(value)
    except ValueError:
        return None

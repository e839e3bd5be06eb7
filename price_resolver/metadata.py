"""
Token Metadata Resolver.

Reads decimals() and totalSupply() with eth_call, in parallel,
and caches the result for the metadata TTL. A field that cannot be
read falls back (decimals=18, total supply=0) so downstream math
never fails; the degraded result is cached like any other.
"""

import asyncio
import logging
from typing import Optional

from eth_abi import decode as abi_decode
from eth_abi.exceptions import DecodingError

from core.clock import ClockFactory, ClockProtocol
from price_resolver.cache import TTLCache
from price_resolver.exceptions import MetadataResolutionError, PriceResolverError
from price_resolver.models import DEFAULT_DECIMALS, TokenMetadata
from price_resolver.rpc import JsonRpcClient


logger = logging.getLogger(__name__)


# 4-byte function selectors
DECIMALS_SELECTOR = "0x313ce567"      # decimals()
TOTAL_SUPPLY_SELECTOR = "0x18160ddd"  # totalSupply()

MAX_DECIMALS = 77


class MetadataResolver:
    """decimals / totalSupply lookups behind a TTL cache."""

    def __init__(
        self,
        rpc: JsonRpcClient,
        ttl_seconds: float = 60.0,
        clock: Optional[ClockProtocol] = None,
        cache: Optional[TTLCache[TokenMetadata]] = None,
    ) -> None:
        self._rpc = rpc
        self._clock = clock or ClockFactory.get_clock()
        self._cache = cache or TTLCache(ttl_seconds, clock=self._clock, name="metadata")
        self._fallbacks = 0

    @property
    def cache(self) -> TTLCache[TokenMetadata]:
        return self._cache

    async def resolve(self, token_address: str) -> TokenMetadata:
        """Cached metadata for a token. Never raises for lookup failures."""
        token = token_address.lower()
        return await self._cache.get_or_load(token, lambda: self._load(token))

    async def _load(self, token: str) -> TokenMetadata:
        decimals_result, supply_result = await asyncio.gather(
            self._read_uint(token, DECIMALS_SELECTOR, "decimals"),
            self._read_uint(token, TOTAL_SUPPLY_SELECTOR, "totalSupply"),
            return_exceptions=True,
        )

        is_fallback = False

        if isinstance(decimals_result, BaseException):
            self._raise_if_unexpected(decimals_result)
            logger.warning(
                f"[metadata] decimals() failed for {token}, using {DEFAULT_DECIMALS}: "
                f"{decimals_result}"
            )
            decimals = DEFAULT_DECIMALS
            is_fallback = True
        elif decimals_result > MAX_DECIMALS:
            logger.warning(f"[metadata] Implausible decimals {decimals_result} for {token}")
            decimals = DEFAULT_DECIMALS
            is_fallback = True
        else:
            decimals = decimals_result

        if isinstance(supply_result, BaseException):
            self._raise_if_unexpected(supply_result)
            logger.warning(f"[metadata] totalSupply() failed for {token}, using 0: {supply_result}")
            total_supply = 0
            is_fallback = True
        else:
            total_supply = supply_result

        if is_fallback:
            self._fallbacks += 1

        return TokenMetadata(
            token_address=token,
            decimals=decimals,
            total_supply_raw=total_supply,
            cached_at=self._clock.now(),
            is_fallback=is_fallback,
        )

    @staticmethod
    def _raise_if_unexpected(error: BaseException) -> None:
        if not isinstance(error, (PriceResolverError, asyncio.TimeoutError)):
            raise error

    async def _read_uint(self, token: str, selector: str, field_name: str) -> int:
        result = await self._rpc.eth_call(token, selector)
        if not isinstance(result, str):
            raise MetadataResolutionError(
                f"{field_name}() returned {type(result).__name__}, expected hex",
                token_address=token,
                field_name=field_name,
            )
        raw = result[2:] if result.startswith("0x") else result
        if not raw:
            raise MetadataResolutionError(
                f"{field_name}() returned no data",
                token_address=token,
                field_name=field_name,
            )
        try:
            (value,) = abi_decode(["uint256"], bytes.fromhex(raw))
        except (DecodingError, ValueError) as e:
            raise MetadataResolutionError(
                f"{field_name}() returned undecodable data",
                token_address=token,
                field_name=field_name,
                original_error=e,
            ) from e
        return value

    def get_stats(self) -> dict:
        stats = self._cache.get_stats()
        stats["fallbacks"] = self._fallbacks
        return stats

    async def close(self) -> None:
        await self._rpc.close()

"""
Metadata & Price Resolver.

============================================================
PURPOSE
============================================================
Answers two questions for a token address:
- decimals and total supply (MetadataResolver, TTL cached)
- USD price (ordered sources, TTL cached)

Price resolution order:
1. Stablecoin table -> 1.0, no network call
2. Each source in order, up to max_attempts each
   - RateLimitError   -> back off longer, retry same source
   - FetchError 4xx   -> next source immediately
   - PriceNotFound    -> next source immediately
   - transient errors -> back off, retry same source
3. All exhausted -> cache and return 0 ("unknown")

Total attempts are bounded by sources x max_attempts and the
whole lookup runs under resolve_timeout_seconds.

============================================================
"""

import asyncio
import logging
from decimal import Decimal
from typing import Any, Iterable, Optional, Sequence, Tuple

import aiohttp

from core.clock import ClockFactory, ClockProtocol
from core.retry import RetryPolicy
from price_resolver.cache import TTLCache
from price_resolver.config import ResolverConfig
from price_resolver.exceptions import (
    FetchError,
    PriceNotFoundError,
    PriceResolverError,
    RateLimitError,
)
from price_resolver.metadata import MetadataResolver
from price_resolver.models import STABLECOIN_SOURCE, UNKNOWN_SOURCE, PriceQuote, TokenMetadata
from price_resolver.rpc import JsonRpcClient
from price_resolver.sources import BasePriceSource, CoinGeckoSource, DexScreenerSource


logger = logging.getLogger(__name__)


class PriceResolver:
    """
    Resolves token metadata and USD price.

    Never raises for upstream failures; an unresolvable price is
    reported as Decimal(0).
    """

    def __init__(
        self,
        sources: Sequence[BasePriceSource],
        metadata_resolver: MetadataResolver,
        stablecoin_addresses: Iterable[str] = (),
        retry_policy: Optional[RetryPolicy] = None,
        price_ttl_seconds: float = 60.0,
        resolve_timeout_seconds: float = 45.0,
        clock: Optional[ClockProtocol] = None,
        price_cache: Optional[TTLCache[PriceQuote]] = None,
    ) -> None:
        self._sources = list(sources)
        self._metadata = metadata_resolver
        self._stablecoins = frozenset(a.lower() for a in stablecoin_addresses)
        self._policy = retry_policy or RetryPolicy()
        self._resolve_timeout = resolve_timeout_seconds
        self._clock = clock or ClockFactory.get_clock()
        self._price_cache = price_cache or TTLCache(
            price_ttl_seconds, clock=self._clock, name="price"
        )

        self._attempts = 0
        self._exhausted = 0
        self._timeouts = 0

    @classmethod
    def from_config(
        cls,
        config: ResolverConfig,
        clock: Optional[ClockProtocol] = None,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> "PriceResolver":
        """Build the default source chain (DexScreener, then CoinGecko)."""
        clock = clock or ClockFactory.get_clock()
        sources = [
            DexScreenerSource(
                chain_id=config.dexscreener_chain_id,
                base_url=config.dexscreener_base_url,
                timeout=config.source_timeout_seconds,
                session=session,
            ),
            CoinGeckoSource(
                platform=config.coingecko_platform,
                api_key=config.coingecko_api_key,
                base_url=config.coingecko_base_url,
                timeout=config.source_timeout_seconds,
                session=session,
            ),
        ]
        metadata = MetadataResolver(
            JsonRpcClient(config.rpc_http_url, timeout=config.rpc_timeout_seconds, session=session),
            ttl_seconds=config.metadata_ttl_seconds,
            clock=clock,
        )
        return cls(
            sources=sources,
            metadata_resolver=metadata,
            stablecoin_addresses=config.stablecoin_addresses,
            retry_policy=config.retry_policy,
            price_ttl_seconds=config.price_ttl_seconds,
            resolve_timeout_seconds=config.resolve_timeout_seconds,
            clock=clock,
        )

    @property
    def max_total_attempts(self) -> int:
        return len(self._sources) * (self._policy.max_attempts or 1)

    def is_stablecoin(self, token_address: str) -> bool:
        return token_address.lower() in self._stablecoins

    # ─────────────────────────────────────────────────────────────
    # Public API
    # ─────────────────────────────────────────────────────────────

    async def resolve_metadata(self, token_address: str) -> TokenMetadata:
        return await self._metadata.resolve(token_address)

    async def resolve_price(self, token_address: str) -> Decimal:
        """USD price, or Decimal(0) when unknown."""
        quote = await self.resolve_quote(token_address)
        return quote.usd_price

    async def resolve_quote(self, token_address: str) -> PriceQuote:
        token = token_address.lower()

        if token in self._stablecoins:
            return PriceQuote(
                token_address=token,
                usd_price=Decimal(1),
                source=STABLECOIN_SOURCE,
                cached_at=self._clock.now(),
            )

        try:
            return await asyncio.wait_for(
                self._price_cache.get_or_load(token, lambda: self._fetch_quote(token)),
                timeout=self._resolve_timeout,
            )
        except asyncio.TimeoutError:
            self._timeouts += 1
            logger.warning(
                f"[resolver] Price lookup for {token} exceeded "
                f"{self._resolve_timeout}s, treating as unknown"
            )
            return self._unknown(token)

    async def resolve(self, token_address: str) -> Tuple[TokenMetadata, PriceQuote]:
        """Metadata and price, looked up in parallel."""
        metadata, quote = await asyncio.gather(
            self.resolve_metadata(token_address),
            self.resolve_quote(token_address),
        )
        return metadata, quote

    # ─────────────────────────────────────────────────────────────
    # Source Fallback
    # ─────────────────────────────────────────────────────────────

    async def _fetch_quote(self, token: str) -> PriceQuote:
        for source in self._sources:
            price = await self._try_source(source, token)
            if price is not None:
                return PriceQuote(
                    token_address=token,
                    usd_price=price,
                    source=source.name,
                    cached_at=self._clock.now(),
                )

        self._exhausted += 1
        logger.warning(f"[resolver] All price sources exhausted for {token}")
        return self._unknown(token)

    async def _try_source(self, source: BasePriceSource, token: str) -> Optional[Decimal]:
        attempt = 0

        while True:
            attempt += 1
            self._attempts += 1

            try:
                price = await source.get_price(token)
                source.record_success()
                return price

            except RateLimitError as e:
                source.record_failure(e)
                if not self._policy.should_retry(attempt):
                    return None
                delay = self._policy.delay_for(
                    attempt, rate_limited=True, retry_after=e.retry_after_seconds
                )

            except PriceNotFoundError as e:
                source.record_failure(e)
                logger.info(f"[resolver] {source.name} has no price for {token}: {e.message}")
                return None

            except FetchError as e:
                source.record_failure(e)
                if e.is_client_error:
                    logger.warning(f"[resolver] {source.name} rejected {token}: {e}")
                    return None
                if not self._policy.should_retry(attempt):
                    return None
                delay = self._policy.delay_for(attempt)

            except asyncio.TimeoutError as e:
                error = FetchError("Timeout", source.name, token, original_error=e)
                source.record_failure(error)
                if not self._policy.should_retry(attempt):
                    return None
                delay = self._policy.delay_for(attempt)

            except PriceResolverError as e:
                source.record_failure(e)
                logger.warning(f"[resolver] {source.name} failed for {token}: {e}")
                return None

            logger.warning(
                f"[resolver] {source.name} retry {attempt}/{self._policy.max_attempts} "
                f"for {token} in {delay:.1f}s"
            )
            await self._clock.sleep(delay)

    def _unknown(self, token: str) -> PriceQuote:
        return PriceQuote(
            token_address=token,
            usd_price=Decimal(0),
            source=UNKNOWN_SOURCE,
            cached_at=self._clock.now(),
        )

    # ─────────────────────────────────────────────────────────────
    # Stats & Lifecycle
    # ─────────────────────────────────────────────────────────────

    def get_stats(self) -> dict[str, Any]:
        return {
            "attempts": self._attempts,
            "exhausted": self._exhausted,
            "timeouts": self._timeouts,
            "price_cache": self._price_cache.get_stats(),
            "metadata": self._metadata.get_stats(),
            "sources": [s.get_stats() for s in self._sources],
        }

    async def close(self) -> None:
        for source in self._sources:
            await source.close()
        await self._metadata.close()

    async def __aenter__(self) -> "PriceResolver":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

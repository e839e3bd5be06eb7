"""
DexScreener Price Source.

Primary source. One request per token returns every pair the
token trades in; the most liquid pair where the token is the base
token on the configured chain supplies the price.

API: GET https://api.dexscreener.com/latest/dex/tokens/{address}
"""

import logging
from decimal import Decimal
from typing import Any, Optional

import aiohttp

from price_resolver.exceptions import PriceNotFoundError
from price_resolver.sources.base import BasePriceSource


logger = logging.getLogger(__name__)


class DexScreenerSource(BasePriceSource):
    """DexScreener token pairs endpoint."""

    BASE_URL = "https://api.dexscreener.com/latest/dex"

    def __init__(
        self,
        chain_id: Optional[str] = "base",
        base_url: str = BASE_URL,
        timeout: float = BasePriceSource.DEFAULT_TIMEOUT,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        super().__init__(timeout=timeout, session=session)
        self._chain_id = chain_id
        self._base_url = base_url.rstrip("/")

    @property
    def name(self) -> str:
        return "dexscreener"

    async def get_price(self, token_address: str) -> Decimal:
        token = token_address.lower()
        data = await self._make_request(
            "GET",
            f"{self._base_url}/tokens/{token}",
            token_address=token,
        )

        pair = self._select_pair(data, token)
        if pair is None:
            raise PriceNotFoundError(
                message="No pair lists this token as base token",
                source_name=self.name,
                token_address=token,
            )

        return self._parse_price(pair.get("priceUsd"), token)

    def _select_pair(self, data: Any, token: str) -> Optional[dict[str, Any]]:
        pairs = (data or {}).get("pairs") if isinstance(data, dict) else None
        if not pairs:
            return None

        candidates = [
            p for p in pairs
            if isinstance(p, dict)
            and str((p.get("baseToken") or {}).get("address", "")).lower() == token
            and (self._chain_id is None or p.get("chainId") in (None, self._chain_id))
            and p.get("priceUsd")
        ]
        if not candidates:
            return None

        def liquidity(pair: dict[str, Any]) -> float:
            try:
                return float((pair.get("liquidity") or {}).get("usd") or 0)
            except (TypeError, ValueError):
                return 0.0

        return max(candidates, key=liquidity)

"""
CoinGecko Price Source.

Secondary source, looked up by contract address on an asset
platform. The demo API key is optional.

API: GET /simple/token_price/{platform}?contract_addresses=..&vs_currencies=usd
"""

import logging
from decimal import Decimal
from typing import Optional

import aiohttp

from price_resolver.exceptions import PriceNotFoundError
from price_resolver.sources.base import BasePriceSource


logger = logging.getLogger(__name__)


class CoinGeckoSource(BasePriceSource):
    """CoinGecko simple token price endpoint."""

    BASE_URL = "https://api.coingecko.com/api/v3"

    def __init__(
        self,
        platform: str = "base",
        api_key: Optional[str] = None,
        base_url: str = BASE_URL,
        timeout: float = BasePriceSource.DEFAULT_TIMEOUT,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        super().__init__(timeout=timeout, session=session)
        self._platform = platform
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")

    @property
    def name(self) -> str:
        return "coingecko"

    async def get_price(self, token_address: str) -> Decimal:
        token = token_address.lower()
        headers = {"x-cg-demo-api-key": self._api_key} if self._api_key else None

        data = await self._make_request(
            "GET",
            f"{self._base_url}/simple/token_price/{self._platform}",
            params={"contract_addresses": token, "vs_currencies": "usd"},
            headers=headers,
            token_address=token,
        )

        entry = None
        if isinstance(data, dict):
            entry = next(
                (v for k, v in data.items() if str(k).lower() == token),
                None,
            )

        if not isinstance(entry, dict) or "usd" not in entry:
            raise PriceNotFoundError(
                message=f"No USD price on platform {self._platform}",
                source_name=self.name,
                token_address=token,
            )

        return self._parse_price(entry["usd"], token)

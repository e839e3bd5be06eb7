"""
Watchlist - tracked tokens and their pools.

============================================================
PURPOSE
============================================================
Read-only catalog of tokens to monitor. Each entry pairs a token
contract with the AMM pool it trades in. The catalog is loaded
at startup and may be reloaded wholesale while running.

Entries with malformed addresses are skipped with a warning.

============================================================
"""

import asyncio
import json
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable, Iterator, List, Optional, Sequence


logger = logging.getLogger(__name__)


ADDRESS_PATTERN = re.compile(r"^0x[0-9a-fA-F]{40}$")


def is_valid_address(value: Any) -> bool:
    return isinstance(value, str) and bool(ADDRESS_PATTERN.match(value))


@dataclass(frozen=True)
class WatchedToken:
    """A token to monitor and the pool it trades in."""

    symbol: str
    token_address: str
    pool_address: str
    pool_token_index: int = 0
    """0 if the token is token0 of the pool, 1 if token1."""

    def __post_init__(self) -> None:
        if not is_valid_address(self.token_address):
            raise ValueError(f"Invalid token address: {self.token_address!r}")
        if not is_valid_address(self.pool_address):
            raise ValueError(f"Invalid pool address: {self.pool_address!r}")
        if self.pool_token_index not in (0, 1):
            raise ValueError(f"pool_token_index must be 0 or 1: {self.pool_token_index!r}")
        object.__setattr__(self, "token_address", self.token_address.lower())
        object.__setattr__(self, "pool_address", self.pool_address.lower())

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "WatchedToken":
        return cls(
            symbol=str(data.get("symbol") or "").strip() or "UNKNOWN",
            token_address=data.get("token_address") or data.get("address"),
            pool_address=data.get("pool_address") or data.get("pool"),
            pool_token_index=int(data.get("pool_token_index", 0)),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "symbol": self.symbol,
            "token_address": self.token_address,
            "pool_address": self.pool_address,
            "pool_token_index": self.pool_token_index,
        }


class Watchlist:
    """Immutable indexed view over a set of watched tokens."""

    def __init__(self, tokens: Iterable[WatchedToken] = ()) -> None:
        by_token: dict[str, WatchedToken] = {}
        for token in tokens:
            if token.token_address in by_token:
                logger.warning(f"[watchlist] Duplicate token {token.token_address}, keeping first")
                continue
            by_token[token.token_address] = token

        self._tokens = tuple(by_token.values())
        self._by_token = by_token
        self._by_pool = {t.pool_address: t for t in self._tokens}

    @property
    def tokens(self) -> tuple[WatchedToken, ...]:
        return self._tokens

    @property
    def token_addresses(self) -> frozenset[str]:
        return frozenset(self._by_token)

    @property
    def pool_addresses(self) -> frozenset[str]:
        return frozenset(self._by_pool)

    def by_token(self, address: str) -> Optional[WatchedToken]:
        return self._by_token.get(address.lower())

    def by_pool(self, address: str) -> Optional[WatchedToken]:
        return self._by_pool.get(address.lower())

    def subscription_addresses(self) -> List[str]:
        """Every contract whose logs are needed: tokens and their pools."""
        return sorted(self.token_addresses | self.pool_addresses)

    def __len__(self) -> int:
        return len(self._tokens)

    def __iter__(self) -> Iterator[WatchedToken]:
        return iter(self._tokens)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Watchlist):
            return NotImplemented
        return set(self._tokens) == set(other._tokens)

    def __repr__(self) -> str:
        return f"<Watchlist(tokens={len(self._tokens)})>"


def parse_entries(entries: Sequence[Any]) -> List[WatchedToken]:
    """Build tokens from raw dicts, skipping invalid entries."""
    tokens: List[WatchedToken] = []
    for index, entry in enumerate(entries):
        if not isinstance(entry, dict):
            logger.warning(f"[watchlist] Skipping entry {index}: not an object")
            continue
        try:
            tokens.append(WatchedToken.from_dict(entry))
        except (TypeError, ValueError) as e:
            logger.warning(f"[watchlist] Skipping entry {index} ({entry.get('symbol')}): {e}")
    return tokens


# ============================================================
# SOURCES
# ============================================================

class WatchlistSource(ABC):
    """Provider of the current watchlist."""

    @abstractmethod
    async def load(self) -> Watchlist:
        pass


class StaticWatchlistSource(WatchlistSource):
    """Fixed in-memory watchlist."""

    def __init__(self, tokens: Iterable[WatchedToken]) -> None:
        self._watchlist = Watchlist(tokens)

    async def load(self) -> Watchlist:
        return self._watchlist


class JsonFileWatchlistSource(WatchlistSource):
    """
    Watchlist stored as a JSON array, or an object with a "tokens" array:

        [{"symbol": "TKN", "token_address": "0x..", "pool_address": "0x..",
          "pool_token_index": 0}]
    """

    def __init__(self, path: str) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    async def load(self) -> Watchlist:
        text = await asyncio.to_thread(self._path.read_text, encoding="utf-8")
        data = json.loads(text)
        if isinstance(data, dict):
            data = data.get("tokens", [])
        if not isinstance(data, list):
            raise ValueError(f"{self._path}: expected a list of tokens")

        watchlist = Watchlist(parse_entries(data))
        logger.info(f"[watchlist] Loaded {len(watchlist)} tokens from {self._path}")
        return watchlist

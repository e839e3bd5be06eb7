"""
Whale Detection Package.

Turns decoded events into qualifying WhaleTransactions:
- watchlist: tracked tokens and pools, and where they come from
- classifier: Buy / Sell / Transfer direction
- thresholds: valuation, qualification floors, deduplication
"""

from .classifier import TransactionClassifier
from .config import ThresholdConfig
from .models import Direction, SwapDetails, Valuation, WhaleTransaction
from .thresholds import Deduplicator, ThresholdFilter
from .watchlist import (
    JsonFileWatchlistSource,
    StaticWatchlistSource,
    WatchedToken,
    Watchlist,
    WatchlistSource,
    is_valid_address,
)

__all__ = [
    "TransactionClassifier",
    "ThresholdConfig",
    "Direction",
    "SwapDetails",
    "Valuation",
    "WhaleTransaction",
    "Deduplicator",
    "ThresholdFilter",
    "JsonFileWatchlistSource",
    "StaticWatchlistSource",
    "WatchedToken",
    "Watchlist",
    "WatchlistSource",
    "is_valid_address",
]

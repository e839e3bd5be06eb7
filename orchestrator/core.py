"""
Orchestrator - Core.

============================================================
RESPONSIBILITY
============================================================
Builds the whale monitor from configuration and runs it.

- Single entrypoint for the monitoring process
- Wires subscription -> pipeline -> sink
- Handles signals (SIGINT, SIGTERM)
- Shutdown: stop the subscription, drain in-flight work,
  then release HTTP sessions and the database

============================================================
"""

import asyncio
import json
import logging
import signal
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import aiohttp

from core.clock import ClockFactory, ClockProtocol
from event_decoder.decoder import EventDecoder
from log_subscription.manager import LogSubscriptionManager
from log_subscription.transport import LogTransport, WebSocketLogTransport
from price_resolver.resolver import PriceResolver
from storage.database import Database
from storage.sink import WhaleSink
from whale_detection.classifier import TransactionClassifier
from whale_detection.thresholds import Deduplicator, ThresholdFilter
from whale_detection.watchlist import JsonFileWatchlistSource, WatchlistSource

from .config import MonitorConfig
from .pipeline import WhalePipeline


# ============================================================
# LOGGING SETUP
# ============================================================

class JsonFormatter(logging.Formatter):
    """One JSON object per record; message text is escaped by json.dumps."""

    def __init__(self, correlation_id: Optional[str] = None) -> None:
        super().__init__()
        self._correlation_id = correlation_id or ""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "correlation_id": self._correlation_id,
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def setup_logging(
    level: str = "INFO",
    log_format: str = "json",
    correlation_id: Optional[str] = None,
) -> logging.Logger:
    """
    Set up structured logging.

    Args:
        level: Log level
        log_format: Output format (json or text)
        correlation_id: Correlation ID for tracing

    Returns:
        Configured logger
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    if log_format == "json":
        formatter = JsonFormatter(correlation_id)
    else:
        formatter = logging.Formatter(
            f"%(asctime)s | %(levelname)-8s | %(name)s | {correlation_id or ''} | %(message)s"
        )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers = [handler]

    # engine echo floods DEBUG output
    logging.getLogger("sqlalchemy.engine").setLevel(max(log_level, logging.WARNING))

    return logging.getLogger("orchestrator")


# ============================================================
# WHALE MONITOR
# ============================================================

class WhaleMonitor:
    """
    The running monitor.

    Collaborators can be injected (tests pass a fake transport, an
    in-memory database and a resolver with fake sources); anything
    not given is built from the configuration.
    """

    def __init__(
        self,
        config: MonitorConfig,
        transport: Optional[LogTransport] = None,
        resolver: Optional[PriceResolver] = None,
        database: Optional[Database] = None,
        watchlist_source: Optional[WatchlistSource] = None,
        clock: Optional[ClockProtocol] = None,
    ):
        errors = config.validate()
        if errors:
            raise ValueError(f"Invalid configuration: {', '.join(errors)}")

        self._config = config
        self._clock = clock or ClockFactory.get_clock()
        self._logger = logging.getLogger("orchestrator")

        self._session: Optional[aiohttp.ClientSession] = None
        self._transport = transport
        self._resolver = resolver
        self._database = database
        self._watchlist_source = watchlist_source or JsonFileWatchlistSource(
            config.watchlist_path
        )

        self._pipeline: Optional[WhalePipeline] = None
        self._manager: Optional[LogSubscriptionManager] = None

        self._running = False
        self._shutdown_event = asyncio.Event()
        self._started_at: Optional[datetime] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    # --------------------------------------------------------
    # Properties
    # --------------------------------------------------------

    @property
    def config(self) -> MonitorConfig:
        return self._config

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def pipeline(self) -> Optional[WhalePipeline]:
        return self._pipeline

    @property
    def manager(self) -> Optional[LogSubscriptionManager]:
        return self._manager

    @property
    def database(self) -> Optional[Database]:
        return self._database

    # --------------------------------------------------------
    # Wiring
    # --------------------------------------------------------

    def _build(self) -> None:
        config = self._config

        if self._session is None and (self._transport is None or self._resolver is None):
            self._session = aiohttp.ClientSession()

        if self._database is None:
            self._database = Database(config.database_url)
        self._database.create_all()

        if self._resolver is None:
            self._resolver = PriceResolver.from_config(
                config.resolver, clock=self._clock, session=self._session
            )

        if self._transport is None:
            self._transport = WebSocketLogTransport(
                config.subscription.rpc_ws_url,
                heartbeat_seconds=config.subscription.heartbeat_seconds,
                request_timeout_seconds=config.subscription.request_timeout_seconds,
                queue_size=config.subscription.queue_size,
                session=self._session,
            )

        sink = WhaleSink(self._database, clock=self._clock)
        decoder = EventDecoder()

        self._pipeline = WhalePipeline(
            decoder=decoder,
            resolver=self._resolver,
            classifier=TransactionClassifier(
                stablecoin_addresses=config.resolver.stablecoin_addresses,
            ),
            threshold_filter=ThresholdFilter(config.thresholds),
            deduplicator=Deduplicator(sink, recent_capacity=config.dedup_recent_capacity),
            sink=sink,
            extra_pool_addresses=config.thresholds.extra_pool_addresses,
            clock=self._clock,
        )

        self._manager = LogSubscriptionManager(
            self._transport,
            self._pipeline.submit,
            topics=decoder.topics,
            reconnect_policy=config.subscription.reconnect_policy,
            clock=self._clock,
            watchlist_source=self._watchlist_source,
            refresh_interval_seconds=config.subscription.watchlist_refresh_seconds,
            on_watchlist_change=self._pipeline.set_watchlist,
        )

    # --------------------------------------------------------
    # Lifecycle
    # --------------------------------------------------------

    async def start(self) -> None:
        """Load the watchlist and open the subscription."""
        if self._running:
            self._logger.warning("Monitor already running")
            return

        self._logger.info("=== WHALE MONITOR STARTUP ===")
        self._logger.info(f"Configuration: {self._config.to_dict()}")

        try:
            self._build()
            watchlist = await self._watchlist_source.load()
            if not len(watchlist):
                self._logger.warning("Watchlist is empty; nothing will be monitored")

            await self._manager.start(watchlist)
        except Exception as e:
            self._logger.error(f"Startup failed: {e}", exc_info=True)
            await self._release()
            raise

        self._running = True
        self._shutdown_event.clear()
        self._started_at = self._clock.now()
        self._logger.info(f"=== WHALE MONITOR RUNNING ({len(watchlist)} tokens) ===")

    async def stop(self) -> None:
        """Stop accepting logs, drain dispatched work, release resources."""
        if not self._running:
            return

        self._logger.info("=== WHALE MONITOR SHUTDOWN ===")
        self._running = False

        try:
            await self._manager.stop()
            await self._pipeline.drain(timeout=self._config.drain_timeout_seconds)
        finally:
            await self._release()
            self._shutdown_event.set()

        self._logger.info(f"Final stats: {self.get_status()}")
        self._logger.info("=== WHALE MONITOR STOPPED ===")

    async def _release(self) -> None:
        if self._resolver is not None:
            await self._resolver.close()
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None
        if self._database is not None:
            self._database.dispose()

    def request_shutdown(self) -> None:
        self._shutdown_event.set()

    async def run_forever(self) -> None:
        """Run until a signal or request_shutdown()."""
        if not self._running:
            await self.start()

        self._install_signal_handlers()
        try:
            await self._shutdown_event.wait()
        finally:
            self._restore_signal_handlers()
            await self.stop()

    # --------------------------------------------------------
    # Signal Handlers
    # --------------------------------------------------------

    def _install_signal_handlers(self) -> None:
        """Install signal handlers for graceful shutdown."""
        self._loop = asyncio.get_running_loop()
        if sys.platform == "win32":
            # Windows doesn't support loop signal handlers
            signal.signal(signal.SIGINT, self._signal_handler)
        else:
            for sig in (signal.SIGTERM, signal.SIGINT):
                self._loop.add_signal_handler(sig, self._async_signal_handler, sig)

    def _restore_signal_handlers(self) -> None:
        """Restore original signal handlers."""
        if sys.platform != "win32" and self._loop is not None:
            for sig in (signal.SIGTERM, signal.SIGINT):
                self._loop.remove_signal_handler(sig)

    def _signal_handler(self, signum: int, frame: Any) -> None:
        """Synchronous signal handler (Windows)."""
        self._logger.info(f"Received signal {signum}")
        self._loop.call_soon_threadsafe(self.request_shutdown)

    def _async_signal_handler(self, sig: signal.Signals) -> None:
        """Loop signal handler (Unix)."""
        self._logger.info(f"Received signal {sig.name}")
        self.request_shutdown()

    # --------------------------------------------------------
    # Status
    # --------------------------------------------------------

    def get_status(self) -> Dict[str, Any]:
        return {
            "running": self._running,
            "started_at": self._started_at.isoformat() if self._started_at else None,
            "current_time": self._clock.now().isoformat(),
            "subscription": self._manager.get_stats() if self._manager else None,
            "pipeline": self._pipeline.get_stats() if self._pipeline else None,
            "resolver": self._resolver.get_stats() if self._resolver else None,
        }


# ============================================================
# MONITOR FACTORY
# ============================================================

def create_monitor(
    config: Optional[MonitorConfig] = None,
    **overrides: Any,
) -> WhaleMonitor:
    """
    Factory function to create a monitor.

    Args:
        config: Configuration (or load from environment)
        **overrides: Collaborators passed through to WhaleMonitor

    Returns:
        Configured WhaleMonitor instance
    """
    if config is None:
        config = MonitorConfig.from_env()

    return WhaleMonitor(config=config, **overrides)


def correlation_id(prefix: str = "whale") -> str:
    return f"{prefix}_{datetime.now(timezone.utc).strftime('%Y%m%d_%H%M%S')}"


# ============================================================
# EXPORTS
# ============================================================

__all__ = [
    "JsonFormatter",
    "WhaleMonitor",
    "create_monitor",
    "correlation_id",
    "setup_logging",
]

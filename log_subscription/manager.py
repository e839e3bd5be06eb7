"""
Log Subscription Manager.

============================================================
PURPOSE
============================================================
Keeps ONE log subscription open for every watched contract and
hands each RawLog to a handler.

- The handler is called synchronously and must not block; the
  pipeline schedules its own task per log
- Handler errors are logged and never reach the stream
- Transport failures trigger reconnect with capped backoff,
  retried until stop()
- After reconnect the entire current watchlist is resubscribed;
  the previous subscription id is dropped first, so there is at
  most one active subscription
- Logs flagged `removed` (reorgs) are dropped

============================================================
USAGE
============================================================
```python
manager = LogSubscriptionManager(transport, pipeline.submit)
await manager.start(watchlist)
...
await manager.stop()
```

============================================================
"""

import asyncio
import logging
from typing import Any, Callable, List, Optional, Tuple

from core.clock import ClockFactory, ClockProtocol
from core.retry import RetryPolicy
from event_decoder.models import RawLog
from event_decoder.signatures import subscription_topics
from log_subscription.exceptions import TransportClosedError, TransportError
from log_subscription.state import SubscriptionState, SubscriptionStateMachine
from log_subscription.transport import LogTransport
from whale_detection.watchlist import Watchlist, WatchlistSource


logger = logging.getLogger(__name__)


LogHandler = Callable[[RawLog], None]
WatchlistListener = Callable[[Watchlist], None]


class LogSubscriptionManager:
    """Owns the log stream lifecycle."""

    def __init__(
        self,
        transport: LogTransport,
        handler: LogHandler,
        topics: Optional[List[str]] = None,
        reconnect_policy: Optional[RetryPolicy] = None,
        clock: Optional[ClockProtocol] = None,
        watchlist_source: Optional[WatchlistSource] = None,
        refresh_interval_seconds: Optional[float] = None,
        on_watchlist_change: Optional[WatchlistListener] = None,
        name: str = "log-subscription",
    ) -> None:
        self._transport = transport
        self._handler = handler
        self._topics = list(topics) if topics is not None else subscription_topics()
        self._policy = reconnect_policy or RetryPolicy(
            max_attempts=None, base_delay=5.0, max_delay=60.0
        )
        self._clock = clock or ClockFactory.get_clock()
        self._watchlist_source = watchlist_source
        self._refresh_interval = refresh_interval_seconds
        self._on_watchlist_change = on_watchlist_change
        self._name = name

        self._machine = SubscriptionStateMachine(name)
        self._watchlist = Watchlist()
        self._subscription_id: Optional[str] = None
        self._subscribed_addresses: Tuple[str, ...] = ()
        self._subscribe_lock = asyncio.Lock()
        self._running_event = asyncio.Event()
        self._stop_requested = False

        self._run_task: Optional[asyncio.Task] = None
        self._refresh_task: Optional[asyncio.Task] = None

        # Stats
        self._reconnects = 0
        self._subscriptions_opened = 0
        self._logs_delivered = 0
        self._logs_removed = 0
        self._handler_errors = 0
        self._refreshes = 0

    # --------------------------------------------------------
    # PROPERTIES
    # --------------------------------------------------------

    @property
    def state(self) -> SubscriptionState:
        return self._machine.state

    @property
    def state_machine(self) -> SubscriptionStateMachine:
        return self._machine

    @property
    def watchlist(self) -> Watchlist:
        return self._watchlist

    @property
    def subscription_id(self) -> Optional[str]:
        return self._subscription_id

    @property
    def is_running(self) -> bool:
        return self._machine.state == SubscriptionState.RUNNING

    # --------------------------------------------------------
    # LIFECYCLE
    # --------------------------------------------------------

    async def start(self, watchlist: Watchlist) -> None:
        """
        Begin streaming. Returns once the stream task is scheduled;
        use wait_until_running() to wait for the first subscription.

        Raises:
            InvalidStateTransitionError: If already started
        """
        self._machine.transition_to(SubscriptionState.STARTING, "start requested")
        self._stop_requested = False
        self._running_event.clear()
        self._set_watchlist(watchlist)

        self._run_task = asyncio.create_task(self._run_loop())

        if self._watchlist_source is not None and self._refresh_interval:
            self._refresh_task = asyncio.create_task(self._refresh_loop())

    async def stop(self) -> None:
        """
        Stop accepting logs and close the stream.

        Handler work already dispatched is not cancelled here.
        """
        if not self._machine.state.is_live:
            return

        self._stop_requested = True
        self._running_event.clear()
        self._machine.transition_to(SubscriptionState.STOPPING, "stop requested")

        for task in (self._refresh_task, self._run_task):
            if task is not None:
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        self._refresh_task = None
        self._run_task = None

        if self._subscription_id is not None and self._transport.is_connected:
            await self._transport.unsubscribe(self._subscription_id)
        self._subscription_id = None
        self._subscribed_addresses = ()

        await self._transport.close()
        self._machine.transition_to(SubscriptionState.STOPPED, "stopped")

    async def wait_until_running(self, timeout: Optional[float] = None) -> bool:
        try:
            await asyncio.wait_for(self._running_event.wait(), timeout=timeout)
            return True
        except asyncio.TimeoutError:
            return False

    # --------------------------------------------------------
    # STREAM LOOP
    # --------------------------------------------------------

    async def _run_loop(self) -> None:
        failures = 0

        while not self._stop_requested:
            try:
                await self._open()
                if self._stop_requested:
                    break

                failures = 0
                self._machine.transition_to(SubscriptionState.RUNNING, "subscribed")
                self._running_event.set()

                async for log in self._transport.messages():
                    if self._stop_requested:
                        break
                    self._deliver(log)

                if self._stop_requested:
                    break
                raise TransportClosedError("Log stream ended")

            except asyncio.CancelledError:
                raise

            except Exception as e:
                if self._stop_requested:
                    break

                if isinstance(e, TransportError):
                    logger.warning(f"[{self._name}] Stream failure: {e}")
                else:
                    logger.error(f"[{self._name}] Unexpected stream error: {e}", exc_info=True)

                failures += 1
                self._reconnects += 1
                self._running_event.clear()
                self._subscription_id = None
                self._subscribed_addresses = ()

                if self._machine.state != SubscriptionState.RECONNECTING:
                    self._machine.transition_to(SubscriptionState.RECONNECTING, str(e))

                delay = self._policy.delay_for(failures)
                logger.info(f"[{self._name}] Reconnecting in {delay:.1f}s (attempt {failures})")

                await self._close_transport()
                await self._clock.sleep(delay)

    async def _open(self) -> None:
        await self._transport.connect()
        self._subscription_id = None
        self._subscribed_addresses = ()
        await self._subscribe_current()

    async def _subscribe_current(self) -> None:
        """Replace the active subscription with one for the current watchlist."""
        async with self._subscribe_lock:
            if self._subscription_id is not None:
                await self._transport.unsubscribe(self._subscription_id)
                self._subscription_id = None
                self._subscribed_addresses = ()

            addresses = self._watchlist.subscription_addresses()
            if not addresses:
                logger.warning(f"[{self._name}] Watchlist is empty, not subscribing")
                return

            self._subscription_id = await self._transport.subscribe(addresses, self._topics)
            self._subscribed_addresses = tuple(addresses)
            self._subscriptions_opened += 1
            logger.info(
                f"[{self._name}] Subscription {self._subscription_id} covers "
                f"{len(self._watchlist)} tokens ({len(addresses)} contracts)"
            )

    async def _close_transport(self) -> None:
        try:
            await self._transport.close()
        except Exception as e:
            logger.warning(f"[{self._name}] Error closing transport: {e}")

    def _deliver(self, log: RawLog) -> None:
        if log.removed:
            self._logs_removed += 1
            logger.debug(f"[{self._name}] Dropping removed log {log.transaction_hash}")
            return

        self._logs_delivered += 1
        try:
            self._handler(log)
        except Exception as e:
            self._handler_errors += 1
            logger.error(
                f"[{self._name}] Handler failed for {log.transaction_hash}: {e}",
                exc_info=True,
            )

    # --------------------------------------------------------
    # WATCHLIST
    # --------------------------------------------------------

    def _set_watchlist(self, watchlist: Watchlist) -> None:
        self._watchlist = watchlist
        if self._on_watchlist_change is not None:
            try:
                self._on_watchlist_change(watchlist)
            except Exception as e:
                logger.error(f"[{self._name}] Watchlist listener failed: {e}", exc_info=True)

    async def refresh_watchlist(self, watchlist: Watchlist) -> bool:
        """
        Replace the watchlist. Resubscribes when the set of contracts
        changed and the stream is running.

        Returns:
            True if the contract set changed
        """
        changed = tuple(watchlist.subscription_addresses()) != tuple(
            self._watchlist.subscription_addresses()
        )
        self._set_watchlist(watchlist)
        self._refreshes += 1

        if not changed:
            return False

        logger.info(f"[{self._name}] Watchlist changed ({len(watchlist)} tokens)")

        live = self._machine.state in (SubscriptionState.STARTING, SubscriptionState.RUNNING)
        if live and self._transport.is_connected:
            try:
                await self._subscribe_current()
            except TransportError as e:
                # force the stream loop through reconnect, which resubscribes
                logger.warning(f"[{self._name}] Resubscribe failed, reconnecting: {e}")
                await self._close_transport()

        return True

    async def _refresh_loop(self) -> None:
        while not self._stop_requested:
            try:
                await self._clock.sleep(self._refresh_interval)
                watchlist = await self._watchlist_source.load()
                await self.refresh_watchlist(watchlist)
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"[{self._name}] Watchlist refresh failed: {e}")

    # --------------------------------------------------------
    # STATS
    # --------------------------------------------------------

    def get_stats(self) -> dict[str, Any]:
        return {
            "state": self._machine.state.value,
            "subscription_id": self._subscription_id,
            "subscribed_contracts": len(self._subscribed_addresses),
            "watched_tokens": len(self._watchlist),
            "reconnects": self._reconnects,
            "subscriptions_opened": self._subscriptions_opened,
            "logs_delivered": self._logs_delivered,
            "logs_removed": self._logs_removed,
            "handler_errors": self._handler_errors,
            "watchlist_refreshes": self._refreshes,
        }

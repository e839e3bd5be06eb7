"""
Log Transport - JSON-RPC log stream.

============================================================
PURPOSE
============================================================
Abstracts the long-lived connection to a chain node:

- connect() / close()
- subscribe(addresses, topics) -> subscription id
- unsubscribe(subscription id)
- messages(): async iterator of RawLog; raises TransportError
  when the connection drops

WebSocketLogTransport speaks eth_subscribe("logs", filter) over
an aiohttp WebSocket. Notifications for subscription ids that are
no longer active are discarded.

============================================================
"""

import asyncio
import itertools
import json
import logging
from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Dict, List, Optional, Set, Tuple

import aiohttp

from event_decoder.exceptions import DecodeError
from event_decoder.models import RawLog
from log_subscription.exceptions import (
    SubscriptionRejectedError,
    TransportClosedError,
    TransportError,
)


logger = logging.getLogger(__name__)


class LogTransport(ABC):
    """Connection to a node that can stream logs."""

    @property
    @abstractmethod
    def is_connected(self) -> bool:
        pass

    @abstractmethod
    async def connect(self) -> None:
        """
        Raises:
            TransportError: If the connection cannot be opened
        """
        pass

    @abstractmethod
    async def subscribe(self, addresses: List[str], topics: List[str]) -> str:
        """
        Open one log subscription for all addresses, any of the topics.

        Raises:
            TransportError: If the request fails or is rejected
        """
        pass

    @abstractmethod
    async def unsubscribe(self, subscription_id: str) -> bool:
        pass

    @abstractmethod
    def messages(self) -> AsyncIterator[RawLog]:
        pass

    @abstractmethod
    async def close(self) -> None:
        pass


_CLOSED = object()


class WebSocketLogTransport(LogTransport):
    """eth_subscribe over an aiohttp WebSocket."""

    def __init__(
        self,
        url: str,
        heartbeat_seconds: float = 20.0,
        request_timeout_seconds: float = 15.0,
        queue_size: int = 10_000,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        self._url = url
        self._heartbeat = heartbeat_seconds
        self._request_timeout = request_timeout_seconds
        self._queue_size = queue_size

        self._session = session
        self._owns_session = session is None
        self._ws: Optional[aiohttp.ClientWebSocketResponse] = None
        self._reader_task: Optional[asyncio.Task] = None

        self._ids = itertools.count(1)
        # request id -> (method, future awaiting the reply)
        self._pending: Dict[int, Tuple[str, asyncio.Future]] = {}
        self._subscription_ids: Set[str] = set()
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=queue_size)
        self._close_reason: Optional[TransportError] = None

        self._dropped_stale = 0
        self._dropped_overflow = 0
        self._malformed = 0

    @property
    def url(self) -> str:
        return self._url

    @property
    def is_connected(self) -> bool:
        return self._ws is not None and not self._ws.closed

    # --------------------------------------------------------
    # CONNECTION
    # --------------------------------------------------------

    async def connect(self) -> None:
        await self._teardown()

        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True

        try:
            self._ws = await self._session.ws_connect(self._url, heartbeat=self._heartbeat)
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as e:
            raise TransportError(f"WebSocket connect failed: {e}", self._url, e) from e

        self._queue = asyncio.Queue(maxsize=self._queue_size)
        self._subscription_ids.clear()
        self._close_reason = None
        self._reader_task = asyncio.create_task(self._reader_loop())
        logger.info(f"[transport] WebSocket connected: {self._url}")

    async def close(self) -> None:
        await self._teardown()
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()
        self._session = None if self._owns_session else self._session

    async def _teardown(self) -> None:
        had_connection = self._ws is not None

        if self._reader_task:
            self._reader_task.cancel()
            try:
                await self._reader_task
            except asyncio.CancelledError:
                pass
            self._reader_task = None

        if self._ws and not self._ws.closed:
            await self._ws.close()
        self._ws = None
        self._fail_pending(TransportClosedError("Transport closed", self._url))
        self._subscription_ids.clear()

        if had_connection:
            # wake any consumer still iterating messages()
            if self._close_reason is None:
                self._close_reason = TransportClosedError("Transport closed", self._url)
            self._enqueue_closed()

    # --------------------------------------------------------
    # REQUESTS
    # --------------------------------------------------------

    async def _request(self, method: str, params: List[Any]) -> Any:
        if not self.is_connected:
            raise TransportClosedError("Not connected", self._url)

        request_id = next(self._ids)
        future = asyncio.get_running_loop().create_future()
        self._pending[request_id] = (method, future)

        try:
            await self._ws.send_json({
                "jsonrpc": "2.0",
                "id": request_id,
                "method": method,
                "params": params,
            })
            return await asyncio.wait_for(future, timeout=self._request_timeout)
        except asyncio.TimeoutError as e:
            raise TransportError(f"{method} timed out", self._url, e) from e
        except (aiohttp.ClientError, ConnectionError) as e:
            raise TransportError(f"{method} send failed: {e}", self._url, e) from e
        finally:
            self._pending.pop(request_id, None)

    async def subscribe(self, addresses: List[str], topics: List[str]) -> str:
        log_filter = {"address": list(addresses), "topics": [list(topics)]}
        subscription_id = await self._request("eth_subscribe", ["logs", log_filter])
        if not isinstance(subscription_id, str):
            raise SubscriptionRejectedError(
                f"Unexpected eth_subscribe result: {subscription_id!r}", self._url
            )
        self._subscription_ids.add(subscription_id)
        logger.info(
            f"[transport] Subscribed {subscription_id} to {len(addresses)} contracts, "
            f"{len(topics)} topics"
        )
        return subscription_id

    async def unsubscribe(self, subscription_id: str) -> bool:
        self._subscription_ids.discard(subscription_id)
        if not self.is_connected:
            return False
        try:
            return bool(await self._request("eth_unsubscribe", [subscription_id]))
        except TransportError as e:
            logger.warning(f"[transport] eth_unsubscribe {subscription_id} failed: {e}")
            return False

    # --------------------------------------------------------
    # MESSAGE HANDLING
    # --------------------------------------------------------

    async def messages(self) -> AsyncIterator[RawLog]:
        queue = self._queue
        while True:
            item = await queue.get()
            if item is _CLOSED:
                raise self._close_reason or TransportClosedError("Stream closed", self._url)
            yield item

    async def _reader_loop(self) -> None:
        reason: Optional[TransportError] = None
        try:
            async for msg in self._ws:
                if msg.type == aiohttp.WSMsgType.TEXT:
                    self._handle_text(msg.data)
                elif msg.type == aiohttp.WSMsgType.ERROR:
                    reason = TransportError("WebSocket error", self._url, self._ws.exception())
                    break
                elif msg.type in (aiohttp.WSMsgType.CLOSE, aiohttp.WSMsgType.CLOSED):
                    break
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"[transport] Error in receive loop: {e}")
            reason = TransportError("Receive loop failed", self._url, e)

        self._close_reason = reason or TransportClosedError("WebSocket closed by peer", self._url)
        logger.warning(f"[transport] {self._close_reason}")
        self._fail_pending(self._close_reason)
        self._enqueue_closed()

    def _handle_text(self, data: str) -> None:
        try:
            payload = json.loads(data)
        except json.JSONDecodeError:
            logger.debug(f"[transport] Non-JSON frame: {data[:100]}")
            return

        if not isinstance(payload, dict):
            return

        request_id = payload.get("id")
        if request_id is not None:
            self._resolve_request(request_id, payload)
            return

        if payload.get("method") != "eth_subscription":
            return

        params = payload.get("params") or {}
        if params.get("subscription") not in self._subscription_ids:
            self._dropped_stale += 1
            return

        try:
            log = RawLog.from_rpc(params.get("result") or {})
        except DecodeError as e:
            self._malformed += 1
            logger.warning(f"[transport] Malformed log notification: {e}")
            return

        try:
            self._queue.put_nowait(log)
        except asyncio.QueueFull:
            self._dropped_overflow += 1
            logger.warning(f"[transport] Queue full, dropping log {log.transaction_hash}")

    def _resolve_request(self, request_id: Any, payload: dict) -> None:
        pending = self._pending.get(request_id)
        if pending is None:
            return
        method, future = pending
        if future.done():
            return

        error = payload.get("error")
        if error:
            future.set_exception(SubscriptionRejectedError(f"RPC error: {error}", self._url))
            return

        result = payload.get("result")
        if method == "eth_subscribe" and isinstance(result, str):
            # notifications may follow in the same read batch, before subscribe() resumes
            self._subscription_ids.add(result)
        future.set_result(result)

    def _enqueue_closed(self) -> None:
        try:
            self._queue.put_nowait(_CLOSED)
        except asyncio.QueueFull:
            # make room for the close marker
            self._queue.get_nowait()
            self._queue.put_nowait(_CLOSED)

    def _fail_pending(self, error: TransportError) -> None:
        for _, future in self._pending.values():
            if not future.done():
                future.set_exception(error)
        self._pending.clear()

    def get_stats(self) -> dict[str, Any]:
        return {
            "connected": self.is_connected,
            "active_subscriptions": len(self._subscription_ids),
            "queued": self._queue.qsize(),
            "dropped_stale": self._dropped_stale,
            "dropped_overflow": self._dropped_overflow,
            "malformed": self._malformed,
        }

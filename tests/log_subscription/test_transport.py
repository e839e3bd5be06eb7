"""
WebSocket Log Transport Tests.

============================================================
PURPOSE
============================================================
Runs WebSocketLogTransport against a scripted JSON-RPC node
served by aiohttp.

TEST CATEGORIES:
- eth_subscribe / eth_unsubscribe request correlation
- Notification routing by subscription id
- Peer close and queue overflow
============================================================
"""

import asyncio
import json
from contextlib import asynccontextmanager

import pytest
from aiohttp import WSMsgType, test_utils, web

from conftest import TOKEN, build_transfer_log, wait_for
from log_subscription import (
    SubscriptionRejectedError,
    TransportClosedError,
    WebSocketLogTransport,
)


SUB_ID = "0x9cef478923ff08bf67fde6c64013158d"
TOPICS = ["0x" + "dd" * 32]


def rpc_log(log):
    return {
        "address": log.contract_address,
        "topics": list(log.topics),
        "data": log.data,
        "transactionHash": log.transaction_hash,
        "blockNumber": hex(log.block_number),
        "logIndex": hex(log.log_index),
        "removed": log.removed,
    }


def notification(subscription_id, log):
    return {
        "jsonrpc": "2.0",
        "method": "eth_subscription",
        "params": {"subscription": subscription_id, "result": rpc_log(log)},
    }


class ScriptedNode:
    """Answers eth_subscribe / eth_unsubscribe and pushes scripted frames."""

    def __init__(self, after_subscribe=(), close_after_subscribe=False, subscribe_error=None):
        self.after_subscribe = list(after_subscribe)
        self.close_after_subscribe = close_after_subscribe
        self.subscribe_error = subscribe_error
        self.requests = []

    async def handler(self, request):
        ws = web.WebSocketResponse()
        await ws.prepare(request)

        async for msg in ws:
            if msg.type != WSMsgType.TEXT:
                continue
            payload = json.loads(msg.data)
            self.requests.append(payload)
            await self._answer(ws, payload)
            if self.close_after_subscribe and payload["method"] == "eth_subscribe":
                await ws.close()
                break

        return ws

    async def _answer(self, ws, payload):
        reply = {"jsonrpc": "2.0", "id": payload["id"]}

        if payload["method"] == "eth_subscribe":
            if self.subscribe_error:
                await ws.send_json({**reply, "error": self.subscribe_error})
                return
            await ws.send_json({**reply, "result": SUB_ID})
            for frame in self.after_subscribe:
                await ws.send_json(frame)
        elif payload["method"] == "eth_unsubscribe":
            await ws.send_json({**reply, "result": True})


@asynccontextmanager
async def connected(node, **transport_kwargs):
    app = web.Application()
    app.router.add_get("/ws", node.handler)
    server = test_utils.TestServer(app)
    await server.start_server()

    url = str(server.make_url("/ws")).replace("http://", "ws://", 1)
    transport = WebSocketLogTransport(url, request_timeout_seconds=5, **transport_kwargs)
    try:
        await transport.connect()
        yield transport
    finally:
        await transport.close()
        await server.close()


async def next_log(transport):
    stream = transport.messages()
    return await asyncio.wait_for(stream.__anext__(), timeout=2)


# ============================================================
# REQUEST TESTS
# ============================================================

class TestRequests:
    """Tests for JSON-RPC request handling."""

    @pytest.mark.asyncio
    async def test_subscribe_returns_node_id(self):
        node = ScriptedNode()

        async with connected(node) as transport:
            subscription_id = await transport.subscribe([TOKEN], TOPICS)

            assert subscription_id == SUB_ID
            assert transport.get_stats()["active_subscriptions"] == 1

        request = node.requests[0]
        assert request["method"] == "eth_subscribe"
        assert request["params"] == ["logs", {"address": [TOKEN], "topics": [TOPICS]}]

    @pytest.mark.asyncio
    async def test_unsubscribe_forgets_id(self):
        node = ScriptedNode()

        async with connected(node) as transport:
            subscription_id = await transport.subscribe([TOKEN], TOPICS)
            assert await transport.unsubscribe(subscription_id) is True

            assert transport.get_stats()["active_subscriptions"] == 0

        assert node.requests[1]["params"] == [SUB_ID]

    @pytest.mark.asyncio
    async def test_rpc_error_rejects_subscription(self):
        node = ScriptedNode(subscribe_error={"code": -32602, "message": "bad filter"})

        async with connected(node) as transport:
            with pytest.raises(SubscriptionRejectedError):
                await transport.subscribe([TOKEN], TOPICS)

            assert transport.get_stats()["active_subscriptions"] == 0

    @pytest.mark.asyncio
    async def test_request_without_connection_fails(self):
        transport = WebSocketLogTransport("ws://127.0.0.1:1/ws")

        with pytest.raises(TransportClosedError):
            await transport.subscribe([TOKEN], TOPICS)


# ============================================================
# NOTIFICATION TESTS
# ============================================================

class TestNotifications:
    """Tests for routing eth_subscription frames."""

    @pytest.mark.asyncio
    async def test_log_sent_right_after_reply_is_kept(self):
        log = build_transfer_log(5)
        node = ScriptedNode(after_subscribe=[notification(SUB_ID, log)])

        async with connected(node) as transport:
            await transport.subscribe([TOKEN], TOPICS)
            received = await next_log(transport)

            assert received.transaction_hash == log.transaction_hash
            assert received.contract_address == TOKEN
            assert transport.get_stats()["dropped_stale"] == 0

    @pytest.mark.asyncio
    async def test_unknown_subscription_dropped(self):
        stale = build_transfer_log(1)
        live = build_transfer_log(2)
        node = ScriptedNode(after_subscribe=[
            notification("0xgone", stale),
            notification(SUB_ID, live),
        ])

        async with connected(node) as transport:
            await transport.subscribe([TOKEN], TOPICS)
            received = await next_log(transport)

            assert received.transaction_hash == live.transaction_hash
            assert transport.get_stats()["dropped_stale"] == 1

    @pytest.mark.asyncio
    async def test_malformed_notification_counted(self):
        broken = {
            "jsonrpc": "2.0",
            "method": "eth_subscription",
            "params": {"subscription": SUB_ID, "result": {"topics": []}},
        }
        live = build_transfer_log(3)
        node = ScriptedNode(after_subscribe=[broken, notification(SUB_ID, live)])

        async with connected(node) as transport:
            await transport.subscribe([TOKEN], TOPICS)
            received = await next_log(transport)

            assert received.transaction_hash == live.transaction_hash
            assert transport.get_stats()["malformed"] == 1

    @pytest.mark.asyncio
    async def test_full_queue_drops_new_logs(self):
        frames = [notification(SUB_ID, build_transfer_log(n)) for n in range(1, 6)]
        node = ScriptedNode(after_subscribe=frames)

        async with connected(node, queue_size=2) as transport:
            await transport.subscribe([TOKEN], TOPICS)
            await wait_for(lambda: transport.get_stats()["dropped_overflow"] == 3)

            assert transport.get_stats()["queued"] == 2


# ============================================================
# CLOSE TESTS
# ============================================================

class TestClose:
    """Tests for stream termination."""

    @pytest.mark.asyncio
    async def test_peer_close_ends_stream_with_error(self):
        node = ScriptedNode(close_after_subscribe=True)

        async with connected(node) as transport:
            await transport.subscribe([TOKEN], TOPICS)

            with pytest.raises(TransportClosedError):
                async for _ in transport.messages():
                    pass

    @pytest.mark.asyncio
    async def test_local_close_wakes_consumer(self):
        node = ScriptedNode()

        async with connected(node) as transport:
            await transport.subscribe([TOKEN], TOPICS)
            consumer = asyncio.create_task(next_log(transport))
            await asyncio.sleep(0.05)

            await transport.close()

            with pytest.raises(TransportClosedError):
                await consumer

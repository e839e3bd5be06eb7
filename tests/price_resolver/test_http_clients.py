"""
HTTP Client Tests.

Runs JsonRpcClient, MetadataResolver and BasePriceSource._make_request
against a local aiohttp server to check status and body handling.
"""

from contextlib import asynccontextmanager
from decimal import Decimal

import pytest
from aiohttp import test_utils, web
from eth_abi import encode

from conftest import TOKEN
from core.clock import MockClock
from price_resolver import (
    BasePriceSource,
    FetchError,
    JsonRpcClient,
    MetadataResolver,
    PriceNotFoundError,
    RateLimitError,
    RpcError,
)


def uint_hex(value: int) -> str:
    return "0x" + encode(["uint256"], [value]).hex()


@asynccontextmanager
async def serving(handler, path="/"):
    app = web.Application()
    app.router.add_route("*", path, handler)
    server = test_utils.TestServer(app)
    await server.start_server()
    try:
        yield str(server.make_url(path))
    finally:
        await server.close()


def fixed_response(**kwargs):
    async def handler(request):
        return web.Response(**kwargs)
    return handler


def rpc_node(results):
    """JSON-RPC handler answering eth_call by selector from `results`."""
    calls = []

    async def handler(request):
        payload = await request.json()
        calls.append(payload)
        selector = payload["params"][0]["data"]
        reply = {"jsonrpc": "2.0", "id": payload["id"]}
        reply.update(results[selector])
        return web.json_response(reply)

    handler.calls = calls
    return handler


# =============================================================================
# JSON-RPC CLIENT
# =============================================================================

class TestJsonRpcClient:

    @pytest.mark.asyncio
    async def test_hex_result_returned(self):
        handler = rpc_node({"0x313ce567": {"result": uint_hex(6)}})

        async with serving(handler) as url:
            client = JsonRpcClient(url)
            try:
                result = await client.eth_call(TOKEN, "0x313ce567")
            finally:
                await client.close()

        assert result == uint_hex(6)
        request = handler.calls[0]
        assert request["method"] == "eth_call"
        assert request["params"] == [{"to": TOKEN, "data": "0x313ce567"}, "latest"]

    @pytest.mark.asyncio
    async def test_html_body_raises_rpc_error(self):
        handler = fixed_response(text="<html>bad gateway</html>", content_type="text/html")

        async with serving(handler) as url:
            client = JsonRpcClient(url)
            try:
                with pytest.raises(RpcError) as exc_info:
                    await client.call("eth_call", [])
            finally:
                await client.close()

        assert exc_info.value.method == "eth_call"

    @pytest.mark.asyncio
    async def test_error_object_raises_with_code(self):
        handler = rpc_node({"0x313ce567": {"error": {"code": -32000, "message": "execution reverted"}}})

        async with serving(handler) as url:
            client = JsonRpcClient(url)
            try:
                with pytest.raises(RpcError) as exc_info:
                    await client.eth_call(TOKEN, "0x313ce567")
            finally:
                await client.close()

        assert exc_info.value.code == -32000

    @pytest.mark.asyncio
    async def test_non_string_result_rejected(self):
        handler = rpc_node({"0x313ce567": {"result": 18}})

        async with serving(handler) as url:
            client = JsonRpcClient(url)
            try:
                with pytest.raises(RpcError):
                    await client.eth_call(TOKEN, "0x313ce567")
            finally:
                await client.close()

    @pytest.mark.asyncio
    async def test_429_raises_rate_limit(self):
        handler = fixed_response(status=429, text="slow down")

        async with serving(handler) as url:
            client = JsonRpcClient(url)
            try:
                with pytest.raises(RateLimitError):
                    await client.call("eth_call", [])
            finally:
                await client.close()

    @pytest.mark.asyncio
    async def test_5xx_raises_fetch_error(self):
        handler = fixed_response(status=502, text="upstream down")

        async with serving(handler) as url:
            client = JsonRpcClient(url)
            try:
                with pytest.raises(FetchError) as exc_info:
                    await client.call("eth_call", [])
            finally:
                await client.close()

        assert exc_info.value.status_code == 502
        assert exc_info.value.response_body == "upstream down"


# =============================================================================
# METADATA OVER HTTP
# =============================================================================

class TestMetadataOverHttp:

    @pytest.mark.asyncio
    async def test_reads_decimals_and_supply(self):
        handler = rpc_node({
            "0x313ce567": {"result": uint_hex(6)},
            "0x18160ddd": {"result": uint_hex(1_000_000 * 10 ** 6)},
        })

        async with serving(handler) as url:
            resolver = MetadataResolver(JsonRpcClient(url), clock=MockClock())
            try:
                metadata = await resolver.resolve(TOKEN)
            finally:
                await resolver.close()

        assert metadata.decimals == 6
        assert metadata.total_supply_raw == 1_000_000 * 10 ** 6
        assert metadata.is_fallback is False

    @pytest.mark.asyncio
    async def test_html_gateway_page_falls_back(self):
        handler = fixed_response(text="<html>bad gateway</html>", content_type="text/html")

        async with serving(handler) as url:
            resolver = MetadataResolver(JsonRpcClient(url), clock=MockClock())
            try:
                metadata = await resolver.resolve(TOKEN)
            finally:
                await resolver.close()

        assert metadata.decimals == 18
        assert metadata.total_supply_raw == 0
        assert metadata.is_fallback is True

    @pytest.mark.asyncio
    async def test_integer_result_falls_back(self):
        handler = rpc_node({
            "0x313ce567": {"result": 6},
            "0x18160ddd": {"result": uint_hex(500)},
        })

        async with serving(handler) as url:
            resolver = MetadataResolver(JsonRpcClient(url), clock=MockClock())
            try:
                metadata = await resolver.resolve(TOKEN)
            finally:
                await resolver.close()

        assert metadata.decimals == 18
        assert metadata.total_supply_raw == 500
        assert metadata.is_fallback is True


# =============================================================================
# PRICE SOURCE REQUESTS
# =============================================================================

class EchoSource(BasePriceSource):
    """Source that GETs a fixed URL and reads `price` from the body."""

    def __init__(self, url: str):
        super().__init__(timeout=5.0)
        self.url = url

    @property
    def name(self) -> str:
        return "echo"

    async def get_price(self, token_address: str) -> Decimal:
        data = await self._make_request("GET", self.url, token_address=token_address)
        return self._parse_price(data.get("price"), token_address)


class TestMakeRequest:

    @pytest.mark.asyncio
    async def test_json_body_parsed(self):
        handler = fixed_response(text='{"price": "2.5"}', content_type="application/json")

        async with serving(handler, "/price") as url:
            async with EchoSource(url) as source:
                price = await source.get_price(TOKEN)

        assert price == Decimal("2.5")

    @pytest.mark.asyncio
    async def test_429_reads_retry_after(self):
        handler = fixed_response(status=429, headers={"Retry-After": "12"})

        async with serving(handler, "/price") as url:
            async with EchoSource(url) as source:
                with pytest.raises(RateLimitError) as exc_info:
                    await source.get_price(TOKEN)

        assert exc_info.value.retry_after_seconds == 12.0
        assert exc_info.value.token_address == TOKEN

    @pytest.mark.asyncio
    async def test_429_without_header(self):
        handler = fixed_response(status=429)

        async with serving(handler, "/price") as url:
            async with EchoSource(url) as source:
                with pytest.raises(RateLimitError) as exc_info:
                    await source.get_price(TOKEN)

        assert exc_info.value.retry_after_seconds is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [404, 503])
    async def test_error_status_raises_fetch_error(self, status):
        handler = fixed_response(status=status, text="nope")

        async with serving(handler, "/price") as url:
            async with EchoSource(url) as source:
                with pytest.raises(FetchError) as exc_info:
                    await source.get_price(TOKEN)

        assert exc_info.value.status_code == status
        assert exc_info.value.is_client_error is (status < 500)

    @pytest.mark.asyncio
    async def test_html_body_is_not_a_price(self):
        handler = fixed_response(text="<html>maintenance</html>", content_type="text/html")

        async with serving(handler, "/price") as url:
            async with EchoSource(url) as source:
                with pytest.raises(PriceNotFoundError):
                    await source.get_price(TOKEN)

    @pytest.mark.asyncio
    async def test_unreachable_host_raises_fetch_error(self):
        async with EchoSource("http://127.0.0.1:1/price") as source:
            with pytest.raises(FetchError) as exc_info:
                await source.get_price(TOKEN)

        assert exc_info.value.status_code is None

"""
JSON-RPC over HTTP client for read-only chain calls.
"""

import itertools
import logging
from typing import Any, Optional

import aiohttp

from price_resolver.exceptions import FetchError, RateLimitError, RpcError


logger = logging.getLogger(__name__)


class JsonRpcClient:
    """Minimal async JSON-RPC 2.0 client."""

    DEFAULT_TIMEOUT = 10.0

    def __init__(
        self,
        url: str,
        timeout: float = DEFAULT_TIMEOUT,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        self._url = url
        self._timeout = timeout
        self._session = session
        self._owns_session = session is None
        self._ids = itertools.count(1)

    @property
    def url(self) -> str:
        return self._url

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self._timeout),
            )
            self._owns_session = True
        return self._session

    async def call(self, method: str, params: list[Any]) -> Any:
        """
        Send one request and return its `result`.

        Raises:
            RateLimitError: HTTP 429
            FetchError: transport or HTTP failure
            RpcError: node returned an error object or a non-JSON body
        """
        session = await self._get_session()
        payload = {
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": method,
            "params": params,
        }

        try:
            async with session.post(self._url, json=payload) as response:
                if response.status == 429:
                    raise RateLimitError(
                        message="RPC rate limit exceeded",
                        source_name="rpc",
                        retry_after_seconds=None,
                    )
                if response.status >= 400:
                    body = await response.text()
                    raise FetchError(
                        message=f"HTTP {response.status}",
                        source_name="rpc",
                        status_code=response.status,
                        response_body=body[:500],
                        request_url=self._url,
                    )
                try:
                    body = await response.json(content_type=None)
                except ValueError as e:
                    raise RpcError(
                        f"Response to {method} is not JSON",
                        method=method,
                        original_error=e,
                    ) from e
        except aiohttp.ClientError as e:
            raise FetchError(
                message=f"Connection error: {e}",
                source_name="rpc",
                request_url=self._url,
                original_error=e,
            ) from e

        if not isinstance(body, dict):
            raise RpcError(f"Malformed response to {method}", method=method)

        error = body.get("error")
        if error:
            raise RpcError(
                message=str(error.get("message", error)) if isinstance(error, dict) else str(error),
                method=method,
                code=error.get("code") if isinstance(error, dict) else None,
            )

        return body.get("result")

    async def eth_call(self, to: str, data: str, block: str = "latest") -> str:
        result = await self.call("eth_call", [{"to": to, "data": data}, block])
        if result is None:
            return "0x"
        if not isinstance(result, str):
            raise RpcError(
                f"eth_call returned {type(result).__name__}, expected a hex string",
                method="eth_call",
            )
        return result

    async def close(self) -> None:
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()

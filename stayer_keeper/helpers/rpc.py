"""Casper node JSON-RPC client."""

import itertools

from typing import Any

import httpx

from stayer_keeper.helpers.constants import DEFAULT_TIMEOUT
from stayer_keeper.helpers.rpc_models import JsonRpcRequest, JsonRpcResponse


class JsonRpcError(Exception):
    """Raised when a JSON-RPC response carries an ``error`` member."""

    def __init__(self, method: str, code: int | None, message: str) -> None:
        self.method = method
        self.code = code
        self.message = message
        super().__init__(f"RPC error in {method} ({code}): {message}")


class RPCClient:
    """JSON-RPC 2.0 client for a Casper node (named parameters)."""

    def __init__(self, rpc_url: str, timeout: float = DEFAULT_TIMEOUT) -> None:
        """Initialize RPC client.

        Args:
            rpc_url: Node JSON-RPC endpoint, e.g. ``http://node:7777/rpc``
            timeout: Default timeout for requests in seconds

        Raises:
            ValueError: If rpc_url is empty or None
        """
        if not rpc_url:
            msg = "RPC URL cannot be empty"
            raise ValueError(msg)

        self.rpc_url = rpc_url
        self.timeout = timeout
        self._ids = itertools.count(1)

    async def call(
        self,
        client: httpx.AsyncClient,
        method: str,
        params: dict[str, Any] | None = None,
        *,
        timeout: float | None = None,
    ) -> Any:
        """Make a single JSON-RPC call.

        Args:
            client: HTTP client instance
            method: RPC method name (e.g., "info_get_status")
            params: Named method parameters
            timeout: Optional timeout override

        Returns:
            The ``result`` member of the response

        Raises:
            httpx.HTTPError: If the HTTP request fails
            JsonRpcError: If the RPC response contains an error
        """
        request = JsonRpcRequest(method=method, params=params or {}, id=next(self._ids))

        response = await client.post(
            self.rpc_url,
            json=request.model_dump(),
            timeout=timeout or self.timeout,
        )
        response.raise_for_status()
        body = JsonRpcResponse.model_validate(response.json())

        if body.error is not None:
            raise JsonRpcError(method, body.error.code, body.error.message)

        return body.result


__all__ = [
    "JsonRpcError",
    "RPCClient",
]

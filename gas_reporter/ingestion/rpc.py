"""Async JSON-RPC access to the test node.

``EthApi`` is the request interface every collaborator talks to: the
ledger (code fetches), the resolver strategies (proxy probes) and the
collector (latest block). ``RpcClient`` implements it over HTTP with
httpx; the instrumented provider wraps any ``EthApi`` and intercepts the
requests that pass through it.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from typing import Any

import httpx

from gas_reporter.core.config import Settings, get_settings
from gas_reporter.core.errors import RpcError
from gas_reporter.core.types import (
    EMPTY_CODE,
    JsonRpcTransaction,
    TransactionReceipt,
    hex_to_int,
)

logger = logging.getLogger(__name__)


class EthApi:
    """Request interface plus the handful of typed helpers the engine uses."""

    async def request(self, method: str, params: list[Any] | None = None) -> Any:
        raise NotImplementedError

    async def get_code(self, address: str, block: str = "latest") -> str:
        code = await self.request("eth_getCode", [address, block])
        return code or EMPTY_CODE

    async def get_latest_block(self) -> dict[str, Any]:
        return await self.request("eth_getBlockByNumber", ["latest", False]) or {}

    async def get_block_gas_limit(self) -> int:
        block = await self.get_latest_block()
        return hex_to_int(block.get("gasLimit", 0))

    async def call(self, to: str, data: str, block: str = "latest") -> str:
        return await self.request("eth_call", [{"to": to, "data": data}, block])

    async def get_storage_at(self, address: str, slot: str, block: str = "latest") -> str:
        return await self.request("eth_getStorageAt", [address, slot, block])

    async def estimate_gas(self, call_args: dict[str, Any]) -> int:
        return hex_to_int(await self.request("eth_estimateGas", [call_args]))

    async def get_transaction_by_hash(self, tx_hash: str) -> JsonRpcTransaction | None:
        tx = await self.request("eth_getTransactionByHash", [tx_hash])
        return JsonRpcTransaction.model_validate(tx) if tx else None

    async def get_transaction_receipt(self, tx_hash: str) -> TransactionReceipt | None:
        receipt = await self.request("eth_getTransactionReceipt", [tx_hash])
        return TransactionReceipt.model_validate(receipt) if receipt else None


class RpcClient(EthApi):
    """JSON-RPC over HTTP.

    Transport failures are retried with exponential backoff; HTTP error
    statuses and JSON-RPC error objects are not. Every failure surfaces as
    ``RpcError``.
    """

    def __init__(
        self,
        url: str | None = None,
        settings: Settings | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.url = url or self.settings.rpc_url
        self._client = client or httpx.AsyncClient(timeout=self.settings.rpc_timeout)
        self._max_retries = max(1, self.settings.rpc_max_retries)
        self._retry_base_delay = self.settings.rpc_retry_base_delay
        self._ids = itertools.count(1)

    async def request(self, method: str, params: list[Any] | None = None) -> Any:
        payload = {
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": method,
            "params": params or [],
        }
        response = await self._post(method, payload)

        try:
            response.raise_for_status()
            body = response.json()
        except httpx.HTTPStatusError as e:
            raise RpcError(f"{method}: HTTP {e.response.status_code}", method=method) from e
        except ValueError as e:
            raise RpcError(f"{method}: invalid JSON response", method=method) from e

        error = body.get("error")
        if error:
            raise RpcError(
                f"{method}: {error.get('message', 'unknown error')}",
                method=method,
                code=error.get("code"),
                data=error.get("data"),
            )
        return body.get("result")

    async def _post(self, method: str, payload: dict[str, Any]) -> httpx.Response:
        last_error: httpx.TransportError | None = None
        for attempt in range(self._max_retries):
            try:
                return await self._client.post(self.url, json=payload)
            except httpx.TransportError as e:
                last_error = e
                if attempt + 1 == self._max_retries:
                    break
                delay = self._retry_base_delay * (2 ** attempt)
                logger.debug(
                    "Retry %d/%d for %s after %.2fs: %s",
                    attempt + 1, self._max_retries, method, delay, e,
                )
                await asyncio.sleep(delay)
        raise RpcError(f"{method}: {last_error}", method=method) from last_error

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()

    async def __aenter__(self) -> RpcClient:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

"""Instrumented provider.

Wraps an ``EthApi`` and forwards finished transactions and simulated calls
to the collector. Until ``initialize`` is called it is a plain
pass-through. Requests it issues on its own behalf go straight to the
wrapped api, so they are never intercepted twice.

Finalization points per host library:

  eth_getTransactionReceipt   Truffle polls receipts
  eth_getTransactionByHash    Ethers reads the tx once it is mined
  eth_sendRawTransaction      Waffle and Viem
  eth_sendTransaction         Viem only
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from gas_reporter.core.errors import RpcError
from gas_reporter.core.types import hex_to_int
from gas_reporter.ingestion.rpc import EthApi

if TYPE_CHECKING:
    from gas_reporter.attribution.context import ResolutionContext

logger = logging.getLogger(__name__)


class GasReporterProvider(EthApi):
    """Request dispatcher that feeds the collector."""

    def __init__(self, wrapped: EthApi) -> None:
        self._wrapped = wrapped
        self._context: ResolutionContext | None = None

    @property
    def is_initialized(self) -> bool:
        return self._context is not None

    def initialize(self, context: ResolutionContext) -> None:
        self._context = context

    async def request(self, method: str, params: list[Any] | None = None) -> Any:
        if self._context is None:
            return await self._wrapped.request(method, params)

        if method == "eth_call":
            return await self._handle_eth_call(params)
        if method == "eth_getTransactionReceipt":
            return await self._handle_receipt(params)
        if method == "eth_getTransactionByHash":
            return await self._handle_transaction(params)
        if method == "eth_sendRawTransaction":
            return await self._handle_send(method, params)
        if method == "eth_sendTransaction" and self._context.using_viem:
            return await self._handle_send(method, params)
        return await self._wrapped.request(method, params)

    async def close(self) -> None:
        close = getattr(self._wrapped, "close", None)
        if close is not None:
            await close()

    # ── Handlers ─────────────────────────────────────────────────────────────

    async def _collect(self, tx: Any, receipt: Any) -> None:
        collector = self._context.collector if self._context else None
        if collector is None or not tx or not receipt:
            return
        await collector.collect_transaction(tx, receipt)

    async def _handle_receipt(self, params: list[Any] | None) -> Any:
        receipt = await self._wrapped.request("eth_getTransactionReceipt", params)
        if receipt and receipt.get("status") and receipt.get("transactionHash"):
            tx = await self._wrapped.request(
                "eth_getTransactionByHash", [receipt["transactionHash"]],
            )
            await self._collect(tx, receipt)
        return receipt

    async def _handle_transaction(self, params: list[Any] | None) -> Any:
        receipt = await self._wrapped.request("eth_getTransactionReceipt", params)
        tx = await self._wrapped.request("eth_getTransactionByHash", params)
        if receipt and receipt.get("status"):
            await self._collect(tx, receipt)
        return tx

    async def _handle_send(self, method: str, params: list[Any] | None) -> Any:
        tx_hash = await self._wrapped.request(method, params)
        if isinstance(tx_hash, str):
            tx = await self._wrapped.request("eth_getTransactionByHash", [tx_hash])
            receipt = await self._wrapped.request("eth_getTransactionReceipt", [tx_hash])
            if receipt and receipt.get("status"):
                await self._collect(tx, receipt)
        return tx_hash

    async def _handle_eth_call(self, params: list[Any] | None) -> Any:
        call_args = params[0] if params and isinstance(params[0], dict) else None
        context = self._context

        if call_args is not None and context is not None and context.can_estimate(call_args):
            try:
                gas = hex_to_int(await self._wrapped.request("eth_estimateGas", [call_args]))
            except (RpcError, ValueError) as e:
                logger.debug("Gas estimate failed: %s", e, extra={"address": call_args.get("to")})
                gas = None

            if gas and context.collector is not None:
                await context.collector.collect_call(call_args, gas)

        return await self._wrapped.request("eth_call", params)

"""Collector: classifies observed transactions and calls and records
their gas in the ledger.

Event kinds:

  deployment       receipt carries a created address; matched against
                   known creation bytecode
  method call      mined transaction to an existing address
  read-only call   ``eth_call`` with a gas estimate (call tracking only)

Attribution misses never raise. They end up in ``unresolved_calls``.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Iterable

from gas_reporter.attribution.context import ResolutionContext
from gas_reporter.attribution.ledger import GasLedger, method_id
from gas_reporter.attribution.resolvers import Resolver
from gas_reporter.core.config import Settings, get_settings
from gas_reporter.core.errors import RpcError
from gas_reporter.core.gas import calldata_gas_for_network, intrinsic_gas
from gas_reporter.core.types import (
    CallArgs,
    ContractArtifact,
    JsonRpcTransaction,
    TransactionReceipt,
    hex_to_int,
)

if TYPE_CHECKING:
    from gas_reporter.ingestion.rpc import EthApi

logger = logging.getLogger(__name__)


class Collector:
    """Single owner of the ledger during collection."""

    def __init__(
        self,
        settings: Settings | None = None,
        provider: EthApi | None = None,
        context: ResolutionContext | None = None,
        custom_resolver: Any = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.provider = provider
        self.context = context or ResolutionContext.from_settings(self.settings)
        self.context.collector = self
        self.data = GasLedger(provider, self.settings)
        self.resolver = Resolver(self.data, provider, self.context, custom_resolver)  # type: ignore[arg-type]
        self._seen_hashes: set[str] = set()

    @property
    def unresolved_calls(self) -> int:
        return self.resolver.unresolved_calls

    def initialize(self, contracts: Iterable[ContractArtifact]) -> None:
        self.data.initialize(contracts, include_read_only=self.context.track_calls)

    # ── Entry points ─────────────────────────────────────────────────────────

    async def collect_transaction(
        self,
        tx: JsonRpcTransaction | dict[str, Any],
        receipt: TransactionReceipt | dict[str, Any],
    ) -> None:
        """Record a mined transaction. Reverted and repeated ones are skipped."""
        if isinstance(tx, dict):
            tx = JsonRpcTransaction.model_validate(tx)
        if isinstance(receipt, dict):
            receipt = TransactionReceipt.model_validate(receipt)

        if not receipt.status:
            return

        tx_hash = (tx.hash or receipt.transaction_hash or "").lower()
        if tx_hash:
            if tx_hash in self._seen_hashes:
                return
            self._seen_hashes.add(tx_hash)

        if receipt.contract_address:
            await self._collect_deployment(tx, receipt)
        else:
            await self._collect_mined_method(tx, receipt)

    async def collect_call(
        self,
        call_args: CallArgs | dict[str, Any],
        estimated_gas: int | str,
    ) -> None:
        """Record a simulated call; the intrinsic cost is taken off the estimate."""
        if isinstance(call_args, dict):
            call_args = CallArgs.model_validate(call_args)

        tx = call_args.as_transaction()
        intrinsic = intrinsic_gas(tx.input)
        await self._collect_method(
            tx,
            execution_gas=hex_to_int(estimated_gas) - intrinsic,
            calldata_gas=calldata_gas_for_network(self.settings, tx.input),
            intrinsic=intrinsic,
            is_call=True,
        )

    async def run_analysis(
        self,
        block_gas_limit: int | None = None,
        token_price: float | None = None,
        gas_price: float | None = None,
    ) -> GasLedger:
        """Reduce the collected samples. Call once, after the run."""
        if block_gas_limit is None:
            block_gas_limit = self.settings.block_gas_limit
        if block_gas_limit is None and self.provider is not None:
            try:
                block_gas_limit = await self.provider.get_block_gas_limit()
            except RpcError as e:
                logger.warning("Could not read the block gas limit: %s", e)
        if token_price is None:
            token_price = self.settings.token_price
        if gas_price is None:
            gas_price = self.settings.gas_price

        self.data.run_analysis(block_gas_limit or 0, token_price, gas_price)
        logger.info(
            "Collection finished: %d transactions observed, %d unresolved calls",
            len(self._seen_hashes), self.unresolved_calls,
        )
        return self.data

    # ── Classification ───────────────────────────────────────────────────────

    async def _collect_deployment(self, tx: JsonRpcTransaction, receipt: TransactionReceipt) -> None:
        address = receipt.contract_address
        match = self.data.get_contract_by_deployment_input(tx.input)
        if match is None:
            logger.debug("Unattributed deployment", extra={"address": address, "tx_hash": tx.hash})
            return

        try:
            await self.data.track_name_by_address(match.name, address)  # type: ignore[arg-type]
        except RpcError as e:
            logger.debug("Code fetch failed, caching address only: %s", e,
                         extra={"address": address, "contract": match.name})
            self.data.track_name_by_preloaded_address(match.name, address, None)  # type: ignore[arg-type]

        match.gas_data.append(receipt.gas_used)
        match.call_data.append(calldata_gas_for_network(self.settings, tx.input))

    async def _collect_mined_method(self, tx: JsonRpcTransaction, receipt: TransactionReceipt) -> None:
        intrinsic = intrinsic_gas(tx.input)
        execution_gas = receipt.gas_used
        if not self.settings.include_intrinsic_gas:
            execution_gas -= intrinsic

        await self._collect_method(
            tx,
            execution_gas=execution_gas,
            calldata_gas=calldata_gas_for_network(self.settings, tx.input),
            intrinsic=intrinsic,
            is_call=False,
        )

    async def _collect_method(
        self,
        tx: JsonRpcTransaction,
        execution_gas: int,
        calldata_gas: int,
        intrinsic: int,
        is_call: bool,
    ) -> None:
        name = await self._name_by_address(tx.to)
        record = self.data.get_method(name, tx.input)

        if record is None:
            if name is not None:
                # Known target without this method: proxied call
                name = await self.resolver.resolve_by_proxy(tx)
            else:
                # Unknown target: hidden (factory) deployment or no code at all
                name = await self.resolver.resolve_unknown(tx)
            if name is None:
                return
            record = self.data.methods[method_id(name, tx.input)]

        record.gas_data.append(execution_gas)
        record.call_data.append(calldata_gas)
        record.intrinsic_data.append(intrinsic)
        record.number_of_calls += 1
        if is_call:
            record.is_call = True

    async def _name_by_address(self, address: str | None) -> str | None:
        try:
            return await self.data.get_name_by_address(address)
        except RpcError as e:
            logger.debug("Name lookup failed: %s", e, extra={"address": address})
            return None

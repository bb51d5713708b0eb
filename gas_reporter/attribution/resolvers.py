"""Resolver chain: recovers the contract behind a call the ledger could
not classify directly (proxies, routers, factory-deployed contracts).

Strategies are selected once per run into a fixed order:

    1. user-supplied   (``proxy_resolver`` setting)
    2. proxy family    (OpenZeppelin ERC-1967 / beacon probes)
    3. deployed bytecode
    4. method signature  (first registered contract exposing the selector)

A strategy's answer is only accepted if the ledger holds a method record
for ``{name}_{selector}``; otherwise the next strategy runs. A strategy
that fails on RPC is treated as having no answer.
"""

from __future__ import annotations

import importlib
import inspect
import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

from gas_reporter.core.errors import ResolverLoadError, RpcError
from gas_reporter.core.types import JsonRpcTransaction, ProxyFamily, is_empty_code

if TYPE_CHECKING:
    from gas_reporter.attribution.context import ResolutionContext
    from gas_reporter.attribution.ledger import GasLedger
    from gas_reporter.ingestion.rpc import EthApi

logger = logging.getLogger(__name__)

ZERO_ADDRESS = "0x" + "0" * 40


def word_to_address(word: str | None) -> str | None:
    """Take the low 20 bytes of a 32-byte hex word. None for zero/short words."""
    if not word or not isinstance(word, str):
        return None
    text = word[2:] if word.startswith("0x") else word
    if len(text) < 40:
        return None
    address = "0x" + text[-40:].lower()
    if address == ZERO_ADDRESS:
        return None
    return address


# ── Strategies ───────────────────────────────────────────────────────────────


class ResolverStrategy(ABC):
    """One step of the resolver chain."""

    name: str = "strategy"

    def ignore(self) -> list[str]:
        """Selectors of probe calls this strategy issues through the provider."""
        return []

    @abstractmethod
    async def resolve(self, resolver: Resolver, tx: JsonRpcTransaction) -> str | None:
        ...


class UserSuppliedStrategy(ResolverStrategy):
    """Wraps a resolver object or function supplied by the user.

    Accepts an object with ``resolve(resolver, tx)`` (and optionally
    ``ignore()``), or a plain callable with the same signature. Sync and
    async implementations both work.
    """

    name = "user"

    def __init__(self, custom: Any) -> None:
        self.custom = custom

    def ignore(self) -> list[str]:
        ignore = getattr(self.custom, "ignore", None)
        return list(ignore()) if callable(ignore) else []

    async def resolve(self, resolver: Resolver, tx: JsonRpcTransaction) -> str | None:
        resolve = getattr(self.custom, "resolve", self.custom)
        result = resolve(resolver, tx)
        if inspect.isawaitable(result):
            result = await result
        return result


class OpenZeppelinProxyStrategy(ResolverStrategy):
    """Probes ERC-1967 style proxies for their implementation address.

    Probes run in order, each failure is ignored:

      - ERC-1967 implementation slot
      - ERC-1967 beacon slot, then ``implementation()`` on the beacon
      - legacy zos implementation slot
      - ``implementation()`` on the proxy itself
    """

    name = "openzeppelin"

    # keccak256("eip1967.proxy.implementation") - 1
    IMPLEMENTATION_SLOT = "0x360894a13ba1a3210667c828492db98dca3e2076cc3735a920a3ca505d382bbc"
    # keccak256("eip1967.proxy.beacon") - 1
    BEACON_SLOT = "0xa3f0ad74e5423aebfd80d3ef4346578335a9a72aeaee59ff6cb3582b35133d50"
    # keccak256("org.zeppelinos.proxy.implementation")
    LEGACY_IMPLEMENTATION_SLOT = "0x7050c9e0f4ca769c69bd3a8ef740bc37934f8e2c036e5a723fd8ee048ed3f8c3"
    # implementation()
    IMPLEMENTATION_SELECTOR = "5c60da1b"

    def ignore(self) -> list[str]:
        return [self.IMPLEMENTATION_SELECTOR]

    async def _erc1967(self, provider: EthApi, proxy: str) -> str | None:
        return word_to_address(await provider.get_storage_at(proxy, self.IMPLEMENTATION_SLOT))

    async def _beacon(self, provider: EthApi, proxy: str) -> str | None:
        beacon = word_to_address(await provider.get_storage_at(proxy, self.BEACON_SLOT))
        if beacon is None:
            return None
        return word_to_address(
            await provider.call(beacon, "0x" + self.IMPLEMENTATION_SELECTOR)
        )

    async def _legacy(self, provider: EthApi, proxy: str) -> str | None:
        return word_to_address(
            await provider.get_storage_at(proxy, self.LEGACY_IMPLEMENTATION_SLOT)
        )

    async def _direct(self, provider: EthApi, proxy: str) -> str | None:
        return word_to_address(await provider.call(proxy, "0x" + self.IMPLEMENTATION_SELECTOR))

    async def resolve(self, resolver: Resolver, tx: JsonRpcTransaction) -> str | None:
        if not tx.to:
            return None

        for probe in (self._erc1967, self._beacon, self._legacy, self._direct):
            try:
                implementation = await probe(resolver.provider, tx.to)
                if implementation is None:
                    continue
                name = await resolver.resolve_via_cache(implementation)
            except (RpcError, ValueError) as e:
                logger.debug("Proxy probe %s failed: %s", probe.__name__, e,
                             extra={"address": tx.to, "strategy": self.name})
                continue

            # A stale slot can point at a known contract without this method
            if name and resolver.data.get_method(name, tx.input) is not None:
                return name
        return None


class DeployedBytecodeStrategy(ResolverStrategy):
    name = "deployed_bytecode"

    async def resolve(self, resolver: Resolver, tx: JsonRpcTransaction) -> str | None:
        return await resolver.resolve_by_deployed_bytecode(tx.to)


class MethodSignatureStrategy(ResolverStrategy):
    """Last resort. Ambiguous when several contracts share a selector:
    the first one registered wins."""

    name = "method_signature"

    async def resolve(self, resolver: Resolver, tx: JsonRpcTransaction) -> str | None:
        return resolver.resolve_by_method_signature(tx)


# ── Chain ────────────────────────────────────────────────────────────────────


class Resolver:
    """Ordered strategy chain plus the helpers strategies build on.

    Custom resolvers receive this object, so ``data`` (the ledger),
    ``provider`` and the ``resolve_*`` helpers are part of its public
    surface.
    """

    def __init__(
        self,
        ledger: GasLedger,
        provider: EthApi,
        context: ResolutionContext,
        custom: Any = None,
    ) -> None:
        self.unresolved_calls = 0
        self.data = ledger
        self.provider = provider
        self.context = context

        self.strategies: list[ResolverStrategy] = []
        if custom is not None:
            self.strategies.append(
                custom if isinstance(custom, ResolverStrategy) else UserSuppliedStrategy(custom)
            )
        if context.proxy_family == ProxyFamily.OPENZEPPELIN:
            self.strategies.append(OpenZeppelinProxyStrategy())
        self.fallback_strategies: list[ResolverStrategy] = [
            DeployedBytecodeStrategy(),
            MethodSignatureStrategy(),
        ]
        self.strategies.extend(self.fallback_strategies)

        for strategy in self.strategies:
            context.ignore(strategy.ignore())

    async def resolve(
        self,
        tx: JsonRpcTransaction,
        strategies: list[ResolverStrategy] | None = None,
    ) -> str | None:
        """Run the chain for ``tx``. Counts one unresolved call on failure.

        Never raises.
        """
        for strategy in strategies if strategies is not None else self.strategies:
            try:
                name = await strategy.resolve(self, tx)
            except RpcError as e:
                logger.debug("Strategy failed on RPC: %s", e,
                             extra={"tx_hash": tx.hash, "strategy": strategy.name})
                continue
            except Exception as e:
                # User-supplied code
                logger.warning("Resolver strategy raised %s: %s", type(e).__name__, e,
                               extra={"tx_hash": tx.hash, "strategy": strategy.name})
                continue

            if name and self.data.get_method(name, tx.input) is not None:
                logger.debug("Resolved %s via %s", name, strategy.name,
                             extra={"tx_hash": tx.hash, "contract": name,
                                    "strategy": strategy.name})
                return name

        self.unresolved_calls += 1
        logger.debug("Unresolved call to %s", tx.to,
                     extra={"tx_hash": tx.hash, "selector": tx.selector, "address": tx.to})
        return None

    async def resolve_by_proxy(self, tx: JsonRpcTransaction) -> str | None:
        """Full chain, for calls whose target is known but lacks the method."""
        return await self.resolve(tx)

    async def resolve_unknown(self, tx: JsonRpcTransaction) -> str | None:
        """Bytecode then method signature, for targets with no known name."""
        return await self.resolve(tx, self.fallback_strategies)

    # ── Helpers ──────────────────────────────────────────────────────────────

    def resolve_by_method_signature(self, tx: JsonRpcTransaction) -> str | None:
        matches = self.data.get_all_contracts_with_method(tx.selector)
        if matches:
            return matches[0].contract
        return None

    async def resolve_by_deployed_bytecode(self, address: str | None) -> str | None:
        """Match the code at ``address`` against known runtime bytecode and
        cache the address on success.

        Raises:
            RpcError: if the code fetch fails
        """
        if not address:
            return None
        code = await self.provider.get_code(address)
        match = self.data.get_contract_by_deployed_bytecode(code)
        if match is None:
            return None
        await self.data.track_name_by_address(match.name, address)
        return match.name

    async def resolve_via_cache(self, address: str | None) -> str | None:
        """Cached or code-hash name for ``address``, else a bytecode match."""
        if is_empty_code(address):
            return None
        name = await self.data.get_name_by_address(address)
        if name:
            return name
        return await self.resolve_by_deployed_bytecode(address)


# ── Custom resolver loading ──────────────────────────────────────────────────


def load_custom_resolver(path: str) -> Any:
    """Load a user-supplied resolver from ``"package.module:attribute"``.

    Classes are instantiated with no arguments; objects and functions are
    returned as is.

    Raises:
        ResolverLoadError: if the path is malformed or cannot be imported
    """
    module_name, sep, attr = path.partition(":")
    if not sep or not module_name or not attr:
        raise ResolverLoadError(f"Expected 'module:attribute', got {path!r}")

    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise ResolverLoadError(f"Cannot import resolver module {module_name!r}: {e}") from e

    try:
        target = getattr(module, attr)
    except AttributeError as e:
        raise ResolverLoadError(f"{module_name!r} has no attribute {attr!r}") from e

    if inspect.isclass(target):
        try:
            return target()
        except Exception as e:
            raise ResolverLoadError(f"Cannot instantiate resolver {path!r}: {e}") from e
    return target

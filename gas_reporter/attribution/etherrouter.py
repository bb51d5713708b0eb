"""Example user-supplied resolver for EtherRouter-style routers.

A router forwards every call to a target it looks up by selector:

    router.resolver()      -> address of the lookup contract
    lookup.lookup(bytes4)  -> address of the contract owning that selector

Enable with ``GAS_REPORTER_PROXY_RESOLVER=gas_reporter.attribution.etherrouter:EtherRouterResolver``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from gas_reporter.attribution.ledger import get_selector
from gas_reporter.attribution.resolvers import word_to_address
from gas_reporter.core.errors import RpcError

if TYPE_CHECKING:
    from gas_reporter.attribution.resolvers import Resolver
    from gas_reporter.core.types import JsonRpcTransaction

RESOLVER_SIGNATURE = "resolver()"
LOOKUP_SIGNATURE = "lookup(bytes4)"


class EtherRouterResolver:
    """Asks the router which contract a forwarded selector belongs to."""

    def __init__(self) -> None:
        self.resolver_selector = get_selector(RESOLVER_SIGNATURE)
        self.lookup_selector = get_selector(LOOKUP_SIGNATURE)

    def ignore(self) -> list[str]:
        # Probe calls go through the instrumented provider too
        return [self.resolver_selector, self.lookup_selector]

    def encode_lookup(self, selector: str) -> str:
        """ABI-encode ``lookup(bytes4)``: bytes4 is left-aligned in its word."""
        return "0x" + self.lookup_selector + selector.ljust(64, "0")

    async def resolve(self, resolver: Resolver, tx: JsonRpcTransaction) -> str | None:
        if not tx.to:
            return None

        try:
            lookup_address = word_to_address(
                await resolver.provider.call(tx.to, "0x" + self.resolver_selector)
            )
            if lookup_address is None:
                return None
            target = word_to_address(
                await resolver.provider.call(lookup_address, self.encode_lookup(tx.selector))
            )
        except RpcError:
            return None

        if target is None:
            return None
        return await resolver.resolve_via_cache(target)

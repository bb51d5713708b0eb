"""Tests for gas_reporter.attribution.resolvers: the resolver chain."""

from __future__ import annotations

import pytest

from gas_reporter.attribution.context import ResolutionContext
from gas_reporter.attribution.etherrouter import EtherRouterResolver
from gas_reporter.attribution.ledger import GasLedger, get_selector
from gas_reporter.attribution.resolvers import (
    DeployedBytecodeStrategy,
    MethodSignatureStrategy,
    OpenZeppelinProxyStrategy,
    Resolver,
    UserSuppliedStrategy,
    load_custom_resolver,
    word_to_address,
)
from gas_reporter.core.errors import ResolverLoadError
from gas_reporter.core.types import JsonRpcTransaction, ProxyFamily


def build(chain, settings, artifacts, custom=None, proxy_family=None):
    ledger = GasLedger(chain, settings)
    ledger.initialize(artifacts)
    context = ResolutionContext(proxy_family=proxy_family)
    return Resolver(ledger, chain, context, custom), ledger, context


class TestWordToAddress:

    def test_padded_word(self, to_word, addresses):
        assert word_to_address(to_word(addresses["token"])) == addresses["token"]

    def test_zero_and_short(self):
        assert word_to_address("0x" + "0" * 64) is None
        assert word_to_address("0x") is None
        assert word_to_address(None) is None


class TestStrategySelection:

    def test_default_order(self, chain, settings, all_artifacts):
        resolver, _, _ = build(chain, settings, all_artifacts)
        assert [type(s) for s in resolver.strategies] == [
            DeployedBytecodeStrategy,
            MethodSignatureStrategy,
        ]

    def test_full_order(self, chain, settings, all_artifacts):
        resolver, _, context = build(
            chain, settings, all_artifacts,
            custom=EtherRouterResolver(), proxy_family=ProxyFamily.OPENZEPPELIN,
        )
        assert [type(s) for s in resolver.strategies] == [
            UserSuppliedStrategy,
            OpenZeppelinProxyStrategy,
            DeployedBytecodeStrategy,
            MethodSignatureStrategy,
        ]
        assert context.method_ignore_list == {
            get_selector("resolver()"),
            get_selector("lookup(bytes4)"),
            "5c60da1b",
        }


class TestMethodSignature:

    @pytest.mark.asyncio
    async def test_first_registered_wins(self, chain, settings, duplicate_artifacts):
        resolver, _, _ = build(chain, settings, duplicate_artifacts)
        tx = JsonRpcTransaction(input="0x0dbe671f")

        assert resolver.resolve_by_method_signature(tx) == "contracts/A.sol:Duplicate"
        assert await resolver.resolve(tx) == "contracts/A.sol:Duplicate"

    @pytest.mark.asyncio
    async def test_registration_order_decides(self, chain, settings, duplicate_artifacts):
        resolver, _, _ = build(chain, settings, list(reversed(duplicate_artifacts)))
        tx = JsonRpcTransaction(input="0x0dbe671f")
        assert await resolver.resolve(tx) == "contracts/B.sol:Duplicate"

    @pytest.mark.asyncio
    async def test_unknown_selector_counts_once(self, chain, settings, all_artifacts):
        resolver, _, _ = build(chain, settings, all_artifacts)
        tx = JsonRpcTransaction(input="0xdeadbeef", to="0x" + "1" * 40)

        assert await resolver.resolve(tx) is None
        assert resolver.unresolved_calls == 1


class TestDeployedBytecode:

    @pytest.mark.asyncio
    async def test_resolves_and_caches_hidden_deployment(
        self, chain, settings, all_artifacts, addresses, make_transfer, sample_code,
    ):
        chain.deploy(addresses["token"], sample_code.token_runtime)
        resolver, ledger, _ = build(chain, settings, all_artifacts)
        tx = JsonRpcTransaction(input=make_transfer(), to=addresses["token"])

        assert await resolver.resolve_unknown(tx) == "Token"
        assert ledger.address_cache[addresses["token"]] == "Token"

    @pytest.mark.asyncio
    async def test_rpc_failure_moves_to_next_strategy(
        self, chain, settings, all_artifacts, addresses, make_transfer,
    ):
        chain.failing.add("eth_getCode")
        resolver, ledger, _ = build(chain, settings, all_artifacts)
        tx = JsonRpcTransaction(input=make_transfer(), to=addresses["token"])

        # Falls through to the method signature strategy
        assert await resolver.resolve(tx) == "Token"
        assert not ledger.address_is_cached(addresses["token"])
        assert resolver.unresolved_calls == 0


class TestOpenZeppelinProxy:

    @pytest.mark.asyncio
    async def test_erc1967_implementation_slot(
        self, chain, settings, all_artifacts, addresses, make_transfer, to_word, sample_code,
    ):
        chain.deploy(addresses["proxy"], sample_code.proxy_runtime)
        chain.storage[(addresses["proxy"], OpenZeppelinProxyStrategy.IMPLEMENTATION_SLOT)] = (
            to_word(addresses["token"])
        )
        resolver, ledger, _ = build(
            chain, settings, all_artifacts, proxy_family=ProxyFamily.OPENZEPPELIN,
        )
        ledger.track_name_by_preloaded_address("Token", addresses["token"], None)
        tx = JsonRpcTransaction(input=make_transfer(), to=addresses["proxy"])

        assert await resolver.resolve_by_proxy(tx) == "Token"

    @pytest.mark.asyncio
    async def test_beacon_implementation(
        self, chain, settings, all_artifacts, addresses, make_transfer, to_word, sample_code,
    ):
        beacon = "0x" + "be" * 20
        chain.deploy(addresses["token"], sample_code.token_runtime)
        chain.storage[(addresses["proxy"], OpenZeppelinProxyStrategy.BEACON_SLOT)] = to_word(beacon)
        chain.calls[(beacon, "0x5c60da1b")] = to_word(addresses["token"])
        resolver, ledger, _ = build(
            chain, settings, all_artifacts, proxy_family=ProxyFamily.OPENZEPPELIN,
        )
        tx = JsonRpcTransaction(input=make_transfer(), to=addresses["proxy"])

        # Implementation not cached yet: resolved by its deployed bytecode
        assert await resolver.resolve_by_proxy(tx) == "Token"
        assert ledger.address_cache[addresses["token"]] == "Token"

    @pytest.mark.asyncio
    async def test_failed_probes_are_ignored(
        self, chain, settings, all_artifacts, addresses, make_transfer, to_word,
    ):
        chain.failing.add("eth_getStorageAt")
        chain.calls[(addresses["proxy"], "0x5c60da1b")] = to_word(addresses["token"])
        resolver, ledger, _ = build(
            chain, settings, all_artifacts, proxy_family=ProxyFamily.OPENZEPPELIN,
        )
        ledger.track_name_by_preloaded_address("Token", addresses["token"], None)
        tx = JsonRpcTransaction(input=make_transfer(), to=addresses["proxy"])

        strategy = OpenZeppelinProxyStrategy()
        assert await strategy.resolve(resolver, tx) == "Token"

    @pytest.mark.asyncio
    async def test_unreachable_implementation_falls_through_to_beacon(
        self, chain, settings, duplicate_artifacts, addresses, to_word, sample_code,
    ):
        stale = "0x" + "5a" * 20
        beacon = "0x" + "be" * 20
        chain.unreachable.add(stale)
        chain.deploy(addresses["duplicate_b"], sample_code.duplicate_b_runtime)
        chain.storage[(addresses["proxy"], OpenZeppelinProxyStrategy.IMPLEMENTATION_SLOT)] = to_word(stale)
        chain.storage[(addresses["proxy"], OpenZeppelinProxyStrategy.BEACON_SLOT)] = to_word(beacon)
        chain.calls[(beacon, "0x5c60da1b")] = to_word(addresses["duplicate_b"])
        resolver, _, _ = build(
            chain, settings, duplicate_artifacts, proxy_family=ProxyFamily.OPENZEPPELIN,
        )
        tx = JsonRpcTransaction(input="0x" + get_selector("a()"), to=addresses["proxy"])

        # The signature fallback alone would pick the first registered Duplicate
        assert await resolver.resolve_by_proxy(tx) == "contracts/B.sol:Duplicate"
        assert resolver.unresolved_calls == 0

    @pytest.mark.asyncio
    async def test_probing_continues_past_name_without_method(
        self, chain, settings, all_artifacts, addresses, to_word, sample_code,
    ):
        beacon = "0x" + "be" * 20
        chain.deploy(addresses["duplicate_b"], sample_code.duplicate_b_runtime)
        chain.storage[(addresses["proxy"], OpenZeppelinProxyStrategy.IMPLEMENTATION_SLOT)] = (
            to_word(addresses["token"])
        )
        chain.storage[(addresses["proxy"], OpenZeppelinProxyStrategy.BEACON_SLOT)] = to_word(beacon)
        chain.calls[(beacon, "0x5c60da1b")] = to_word(addresses["duplicate_b"])
        resolver, ledger, _ = build(
            chain, settings, all_artifacts, proxy_family=ProxyFamily.OPENZEPPELIN,
        )
        ledger.track_name_by_preloaded_address("Token", addresses["token"], None)
        tx = JsonRpcTransaction(input="0x" + get_selector("a()"), to=addresses["proxy"])

        strategy = OpenZeppelinProxyStrategy()
        assert await strategy.resolve(resolver, tx) == "contracts/B.sol:Duplicate"

    @pytest.mark.asyncio
    async def test_name_without_method_is_rejected(
        self, chain, settings, all_artifacts, addresses, to_word,
    ):
        chain.storage[(addresses["proxy"], OpenZeppelinProxyStrategy.IMPLEMENTATION_SLOT)] = (
            to_word(addresses["token"])
        )
        resolver, ledger, _ = build(
            chain, settings, all_artifacts, proxy_family=ProxyFamily.OPENZEPPELIN,
        )
        ledger.track_name_by_preloaded_address("Token", addresses["token"], None)
        tx = JsonRpcTransaction(input="0x" + get_selector("upgradeTo(address)"), to=addresses["proxy"])

        # Token has no upgradeTo; the signature fallback finds Proxy
        assert await resolver.resolve_by_proxy(tx) == "Proxy"


class TestUserSupplied:

    @pytest.mark.asyncio
    async def test_plain_function(self, chain, settings, all_artifacts, make_transfer):
        calls = []

        def custom(resolver, tx):
            calls.append(tx.selector)
            return "Token"

        resolver, _, _ = build(chain, settings, all_artifacts, custom=custom)
        assert await resolver.resolve(JsonRpcTransaction(input=make_transfer())) == "Token"
        assert calls == ["a9059cbb"]

    @pytest.mark.asyncio
    async def test_raising_resolver_does_not_abort(self, chain, settings, all_artifacts, make_transfer):
        class Exploding:
            async def resolve(self, resolver, tx):
                raise RuntimeError("boom")

        resolver, _, _ = build(chain, settings, all_artifacts, custom=Exploding())
        assert await resolver.resolve(JsonRpcTransaction(input=make_transfer())) == "Token"
        assert resolver.unresolved_calls == 0

    @pytest.mark.asyncio
    async def test_ether_router(self, chain, settings, all_artifacts, addresses, make_transfer, to_word, sample_code):
        router = addresses["proxy"]
        lookup = "0x" + "1b" * 20
        router_resolver = EtherRouterResolver()
        chain.calls[(router, "0x" + router_resolver.resolver_selector)] = to_word(lookup)
        chain.calls[(lookup, router_resolver.encode_lookup("a9059cbb"))] = to_word(addresses["token"])
        chain.deploy(addresses["token"], sample_code.token_runtime)

        resolver, _, _ = build(chain, settings, all_artifacts, custom=router_resolver)
        tx = JsonRpcTransaction(input=make_transfer(), to=router)

        assert await router_resolver.resolve(resolver, tx) == "Token"

    @pytest.mark.asyncio
    async def test_ether_router_without_router(self, chain, settings, all_artifacts, addresses, make_transfer):
        router_resolver = EtherRouterResolver()
        resolver, _, _ = build(chain, settings, all_artifacts, custom=router_resolver)
        tx = JsonRpcTransaction(input=make_transfer(), to=addresses["user"])

        assert await router_resolver.resolve(resolver, tx) is None

    def test_encode_lookup(self):
        encoded = EtherRouterResolver().encode_lookup("a9059cbb")
        assert len(encoded) == 2 + 8 + 64
        assert encoded.endswith("a9059cbb" + "0" * 56)


class TestLoadCustomResolver:

    def test_class_is_instantiated(self):
        loaded = load_custom_resolver("gas_reporter.attribution.etherrouter:EtherRouterResolver")
        assert isinstance(loaded, EtherRouterResolver)

    def test_function_returned_as_is(self):
        loaded = load_custom_resolver("gas_reporter.attribution.resolvers:word_to_address")
        assert loaded is word_to_address

    @pytest.mark.parametrize("path", [
        "no_colon",
        "gas_reporter.does_not_exist:Thing",
        "gas_reporter.attribution.etherrouter:Missing",
    ])
    def test_bad_paths(self, path):
        with pytest.raises(ResolverLoadError):
            load_custom_resolver(path)

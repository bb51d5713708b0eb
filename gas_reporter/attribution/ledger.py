"""Gas ledger: the data store behind attribution and reporting.

Holds one ``MethodRecord`` per known contract method and one
``DeploymentRecord`` per known artifact, plus two lookup tables used to
recover a contract name from an address:

  address_cache    address   → contract name (first resolution wins)
  code_hash_map    code hash → contract name

Sample arrays are append-only until ``run_analysis`` reduces them.
"""

from __future__ import annotations

import hashlib
import logging
import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Iterable

from eth_utils import function_signature_to_4byte_selector

from gas_reporter.attribution.aggregator import GasAggregator
from gas_reporter.attribution.bytecode import matches
from gas_reporter.core.config import Settings, get_settings
from gas_reporter.core.errors import AnalysisStateError, ArtifactDecodeError
from gas_reporter.core.types import ContractArtifact, is_empty_code

if TYPE_CHECKING:
    from gas_reporter.ingestion.rpc import EthApi

logger = logging.getLogger(__name__)

_INT_ALIAS = re.compile(r"^(u?int)(?=$|\[)")


# ── Records ──────────────────────────────────────────────────────────────────

@dataclass
class MethodRecord:
    """Gas samples for one (contract, selector) pair."""
    key: str = ""              # selector, 8 hex chars
    contract: str = ""
    method: str = ""
    fn_sig: str = ""
    gas_data: list[int] = field(default_factory=list)
    call_data: list[int] = field(default_factory=list)
    intrinsic_data: list[int] = field(default_factory=list)
    number_of_calls: int = 0
    is_call: bool = False      # a sample came from a simulated call

    # Written by the aggregator
    execution_gas_average: int | None = None
    calldata_gas_average: int | None = None
    intrinsic_gas_average: int | None = None
    min: int | None = None
    max: int | None = None
    cost: str | None = None

    @property
    def id(self) -> str:
        return method_id(self.contract, self.key)

    def to_dict(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "contract": self.contract,
            "method": self.method,
            "fnSig": self.fn_sig,
            "gasData": list(self.gas_data),
            "callData": list(self.call_data),
            "intrinsicGas": list(self.intrinsic_data),
            "numberOfCalls": self.number_of_calls,
            "isCall": self.is_call,
            "executionGasAverage": self.execution_gas_average,
            "calldataGasAverage": self.calldata_gas_average,
            "intrinsicGasAverage": self.intrinsic_gas_average,
            "min": self.min,
            "max": self.max,
            "cost": self.cost,
        }


@dataclass
class DeploymentRecord:
    """Gas samples for deployments of one artifact."""
    name: str = ""
    bytecode: str = "0x"
    deployed_bytecode: str = "0x"
    gas_data: list[int] = field(default_factory=list)
    call_data: list[int] = field(default_factory=list)

    # Written by the aggregator
    execution_gas_average: int | None = None
    calldata_gas_average: int | None = None
    min: int | None = None
    max: int | None = None
    percent: float | None = None
    cost: str | None = None

    @property
    def is_interface(self) -> bool:
        return is_empty_code(self.deployed_bytecode)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "gasData": list(self.gas_data),
            "callData": list(self.call_data),
            "executionGasAverage": self.execution_gas_average,
            "calldataGasAverage": self.calldata_gas_average,
            "min": self.min,
            "max": self.max,
            "percent": self.percent,
            "cost": self.cost,
        }


# ── ABI helpers ──────────────────────────────────────────────────────────────

def method_id(contract_name: str, selector_or_input: str) -> str:
    """Ledger key for a method: ``{contract}_{selector}``.

    Accepts either a bare selector or hex calldata (``0x`` + selector + args).
    """
    if selector_or_input.startswith("0x"):
        selector_or_input = selector_or_input[2:10]
    return f"{contract_name}_{selector_or_input}"


def canonical_type(param: dict[str, Any]) -> str:
    """Canonical ABI type, with tuples expanded to their components."""
    type_ = param["type"]
    if type_.startswith("tuple"):
        inner = ",".join(canonical_type(c) for c in param.get("components", []))
        return f"({inner}){type_[len('tuple'):]}"
    return _INT_ALIAS.sub(r"\g<1>256", type_)


def function_signature(entry: dict[str, Any]) -> str:
    inputs = entry.get("inputs") or []
    return f"{entry['name']}({','.join(canonical_type(p) for p in inputs)})"


def get_selector(signature: str) -> str:
    """First 4 bytes of keccak256(signature), as 8 hex chars."""
    return function_signature_to_4byte_selector(signature).hex()


def is_read_only(entry: dict[str, Any]) -> bool:
    return entry.get("stateMutability") in ("view", "pure") or entry.get("constant") is True


def decode_functions(contract: ContractArtifact) -> list[tuple[str, str, dict[str, Any]]]:
    """Return ``(selector, signature, entry)`` for every named ABI function.

    Raises:
        ArtifactDecodeError: if the ABI is malformed
    """
    if not isinstance(contract.abi, list):
        raise ArtifactDecodeError(contract.name, "ABI is not a list")

    functions: list[tuple[str, str, dict[str, Any]]] = []
    try:
        for entry in contract.abi:
            if entry.get("type", "function") != "function" or not entry.get("name"):
                continue
            signature = function_signature(entry)
            functions.append((get_selector(signature), signature, entry))
    except (AttributeError, KeyError, TypeError) as exc:
        raise ArtifactDecodeError(contract.name, f"{type(exc).__name__}: {exc}") from exc
    return functions


def code_hash(code: str | None) -> str | None:
    """Content hash used by the code-hash index. None for empty code."""
    if is_empty_code(code):
        return None
    return hashlib.sha1(code.encode()).hexdigest()  # type: ignore[union-attr]


# ── Ledger ───────────────────────────────────────────────────────────────────

class GasLedger:
    """Data store written by the Collector and read by reporting."""

    def __init__(
        self,
        provider: EthApi | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.provider = provider
        self.settings = settings or get_settings()
        self.methods: dict[str, MethodRecord] = {}
        self.deployments: list[DeploymentRecord] = []
        self.address_cache: dict[str, str] = {}
        self.code_hash_map: dict[str, str] = {}
        self._analyzed = False

    def initialize(
        self,
        contracts: Iterable[ContractArtifact],
        include_read_only: bool = False,
    ) -> None:
        """Register deployments and methods for every known artifact.

        Args:
            contracts: Compiled or remote contract artifacts
            include_read_only: Also register view/pure functions (needed
                when simulated calls are tracked)
        """
        for contract in contracts:
            self.deployments.append(DeploymentRecord(
                name=contract.name,
                bytecode=contract.bytecode,
                deployed_bytecode=contract.deployed_bytecode,
            ))

            if contract.address and contract.bytecode_hash:
                self.track_name_by_preloaded_address(
                    contract.name, contract.address, contract.bytecode_hash,
                )

            try:
                functions = decode_functions(contract)
            except ArtifactDecodeError as exc:
                logger.warning("%s, skipping its methods", exc, extra={"contract": contract.name})
                continue

            if contract.is_interface:
                continue

            for selector, signature, entry in functions:
                if is_read_only(entry) and not include_read_only:
                    continue

                key = method_id(contract.name, selector)
                if key in self.methods:
                    logger.warning(
                        "Duplicate method key %s (%s), keeping the first registration",
                        key, signature,
                        extra={"contract": contract.name, "selector": selector},
                    )
                    continue

                self.methods[key] = MethodRecord(
                    key=selector,
                    contract=contract.name,
                    method=entry["name"],
                    fn_sig=signature,
                )

        logger.debug(
            "Ledger initialized: %d deployments, %d methods",
            len(self.deployments), len(self.methods),
        )

    # ── Address tracking ─────────────────────────────────────────────────────

    def address_is_cached(self, address: str | None) -> bool:
        if not address:
            return False
        return address.lower() in self.address_cache

    def reset_address_cache(self) -> None:
        self.address_cache = {}

    def track_name_by_preloaded_address(
        self,
        name: str,
        address: str,
        hash_: str | None,
    ) -> None:
        """Map an address (and its already-known code hash) to ``name``."""
        if self.address_is_cached(address):
            return
        self.address_cache[address.lower()] = name
        if hash_ is not None:
            self.code_hash_map[hash_] = name

    async def track_name_by_address(self, name: str, address: str) -> None:
        """Map an address and the hash of the code stored there to ``name``.

        Raises:
            RpcError: if the code fetch fails
        """
        if self.address_is_cached(address):
            return
        code = await self._get_code(address)
        self.track_name_by_preloaded_address(name, address, code_hash(code))

    async def get_name_by_address(self, address: str | None) -> str | None:
        """Cached name for ``address``, else a code-hash lookup.

        The code-hash hit is not written back to the address cache.

        Raises:
            RpcError: if the code fetch fails
        """
        if not address:
            return None
        if self.address_is_cached(address):
            return self.address_cache[address.lower()]

        hash_ = code_hash(await self._get_code(address))
        if hash_ is None:
            return None
        return self.code_hash_map.get(hash_)

    async def _get_code(self, address: str) -> str:
        if self.provider is None:
            return "0x"
        return await self.provider.get_code(address)

    # ── Bytecode lookups ─────────────────────────────────────────────────────

    def _match_deployment(self, code: str, attribute: str) -> DeploymentRecord | None:
        candidates = [d for d in self.deployments if matches(code, getattr(d, attribute))]
        for candidate in candidates:
            if not candidate.is_interface:
                return candidate
        return None

    def get_contract_by_deployment_input(self, input_: str | None) -> DeploymentRecord | None:
        """Deployment record whose creation bytecode matches a creation tx input."""
        if not input_:
            return None
        return self._match_deployment(input_, "bytecode")

    def get_contract_by_deployed_bytecode(self, code: str | None) -> DeploymentRecord | None:
        """Deployment record whose runtime bytecode matches code at an address."""
        if not code:
            return None
        return self._match_deployment(code, "deployed_bytecode")

    # ── Method lookups ───────────────────────────────────────────────────────

    def get_method(self, contract_name: str | None, input_: str) -> MethodRecord | None:
        if contract_name is None:
            return None
        return self.methods.get(method_id(contract_name, input_))

    def get_all_contracts_with_method(self, selector: str) -> list[MethodRecord]:
        """Every method record with ``selector``, in registration order."""
        return [m for m in self.methods.values() if m.key == selector]

    # ── Analysis ─────────────────────────────────────────────────────────────

    def run_analysis(
        self,
        block_gas_limit: int,
        token_price: float | str | None = None,
        gas_price: float | None = None,
    ) -> None:
        """Reduce every record's samples to averages, extremes and cost.

        Must run once, after collection has finished.

        Raises:
            AnalysisStateError: if called a second time
        """
        if self._analyzed:
            raise AnalysisStateError("run_analysis has already been run on this ledger")
        self._analyzed = True

        GasAggregator(self.settings, block_gas_limit, token_price, gas_price).run(self)

    @property
    def analyzed(self) -> bool:
        return self._analyzed

    def to_dict(self) -> dict[str, Any]:
        return {
            "methods": {key: m.to_dict() for key, m in self.methods.items()},
            "deployments": [d.to_dict() for d in self.deployments],
        }

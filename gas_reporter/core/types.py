"""Shared types for the gas reporter engine.

Wire models for the JSON-RPC objects handed over by the provider
instrumentation (transactions, receipts, ``eth_call`` arguments) and for
the compiled-artifact records consumed by ``GasLedger.initialize``.
"""

from __future__ import annotations

import enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

EMPTY_CODE = "0x"


def hex_to_int(value: Any) -> int:
    """Convert an RPC quantity (``"0x5208"``, ``"21000"`` or ``21000``) to int."""
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        text = value.strip()
        if text.lower().startswith("0x"):
            return int(text, 16) if len(text) > 2 else 0
        return int(text)
    raise ValueError(f"Not an RPC quantity: {value!r}")


def is_empty_code(code: str | None) -> bool:
    """True for the empty-code marker returned for EOAs and interfaces."""
    return not code or code == EMPTY_CODE


# ── Enums ────────────────────────────────────────────────────────────────────


class HostIntegration(str, enum.Enum):
    """Client library driving the test run.

    Decides which provider request is treated as the point where a
    transaction is final and can be collected.
    """

    ETHERS = "ethers"
    TRUFFLE = "truffle"
    WAFFLE = "waffle"
    VIEM = "viem"


class ProxyFamily(str, enum.Enum):
    """Known proxy-admin plugins with a built-in resolution strategy."""

    OPENZEPPELIN = "openzeppelin"


class L2Network(str, enum.Enum):
    """Layered networks with a calldata (L1 data) fee."""

    OPTIMISM = "optimism"
    ARBITRUM = "arbitrum"


class OptimismHardfork(str, enum.Enum):
    BEDROCK = "bedrock"
    ECOTONE = "ecotone"


class ArbitrumHardfork(str, enum.Enum):
    ARBOS11 = "arbOS11"
    ARBOS20 = "arbOS20"


# ── JSON-RPC payloads ────────────────────────────────────────────────────────


class JsonRpcTransaction(BaseModel):
    """Transaction object as returned by ``eth_getTransactionByHash``."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    hash: str | None = None
    input: str = EMPTY_CODE
    to: str | None = None
    from_: str | None = Field(default=None, alias="from")

    @field_validator("input", mode="before")
    @classmethod
    def _default_input(cls, value: Any) -> str:
        return value or EMPTY_CODE

    @property
    def selector(self) -> str:
        """The 4-byte method selector (8 hex chars, no prefix)."""
        return self.input[2:10]


class TransactionReceipt(BaseModel):
    """Subset of ``eth_getTransactionReceipt`` used for attribution."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    transaction_hash: str | None = Field(default=None, alias="transactionHash")
    contract_address: str | None = Field(default=None, alias="contractAddress")
    status: bool = True
    gas_used: int = Field(default=0, alias="gasUsed")

    @field_validator("gas_used", mode="before")
    @classmethod
    def _parse_gas(cls, value: Any) -> int:
        return hex_to_int(value)

    @field_validator("status", mode="before")
    @classmethod
    def _parse_status(cls, value: Any) -> bool:
        # Pre-Byzantium receipts carry no status
        if value is None:
            return True
        if isinstance(value, bool):
            return value
        return hex_to_int(value) == 1


class CallArgs(BaseModel):
    """First parameter of an ``eth_call`` request."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    to: str | None = None
    data: str = EMPTY_CODE
    from_: str | None = Field(default=None, alias="from")

    @field_validator("data", mode="before")
    @classmethod
    def _default_data(cls, value: Any) -> str:
        return value or EMPTY_CODE

    def as_transaction(self) -> JsonRpcTransaction:
        return JsonRpcTransaction(input=self.data, to=self.to, **{"from": self.from_})


# ── Artifacts ────────────────────────────────────────────────────────────────


class ContractArtifact(BaseModel):
    """A compiled (or remote) contract known to the ledger."""

    name: str
    abi: list[dict[str, Any]] = Field(default_factory=list)
    bytecode: str = EMPTY_CODE
    deployed_bytecode: str = EMPTY_CODE
    address: str | None = None
    bytecode_hash: str | None = None

    @field_validator("bytecode", "deployed_bytecode", mode="before")
    @classmethod
    def _default_code(cls, value: Any) -> str:
        return value or EMPTY_CODE

    @property
    def is_interface(self) -> bool:
        return is_empty_code(self.bytecode)


class RemoteContract(BaseModel):
    """A contract already deployed at a known address (e.g. on a fork)."""

    name: str
    address: str
    abi: list[dict[str, Any]] = Field(default_factory=list)
    bytecode: str | None = None
    deployed_bytecode: str | None = None
    bytecode_hash: str | None = None

    def to_artifact(self) -> ContractArtifact:
        return ContractArtifact(
            name=self.name,
            abi=self.abi,
            bytecode=self.bytecode or EMPTY_CODE,
            deployed_bytecode=self.deployed_bytecode or EMPTY_CODE,
            address=self.address,
            bytecode_hash=self.bytecode_hash,
        )

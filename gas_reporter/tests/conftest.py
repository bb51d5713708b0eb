"""Shared fixtures for the gas reporter test suite."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import pytest

from gas_reporter.attribution.ledger import get_selector
from gas_reporter.core.config import Settings
from gas_reporter.core.errors import RpcError
from gas_reporter.core.types import ContractArtifact
from gas_reporter.ingestion.rpc import EthApi


# ── Fake chain ───────────────────────────────────────────────────────────────


class FakeChain(EthApi):
    """In-memory node answering the JSON-RPC methods the engine uses.

    Unknown ``eth_call`` targets, methods listed in ``failing`` and code
    fetches for addresses in ``unreachable`` raise ``RpcError`` the way a
    real node error would surface.
    """

    def __init__(self) -> None:
        self.code: dict[str, str] = {}
        self.storage: dict[tuple[str, str], str] = {}
        self.calls: dict[tuple[str, str], str] = {}
        self.transactions: dict[str, dict[str, Any]] = {}
        self.receipts: dict[str, dict[str, Any]] = {}
        self.estimates: dict[str, int] = {}
        self.gas_limit = 30_000_000
        self.failing: set[str] = set()
        self.unreachable: set[str] = set()
        self.requests: list[tuple[str, list[Any]]] = []

    def deploy(self, address: str, code: str) -> str:
        self.code[address.lower()] = code
        return address

    def mine(self, tx: dict[str, Any], receipt: dict[str, Any]) -> str:
        tx_hash = tx["hash"]
        self.transactions[tx_hash] = tx
        self.receipts[tx_hash] = {"transactionHash": tx_hash, **receipt}
        return tx_hash

    async def request(self, method: str, params: list[Any] | None = None) -> Any:
        params = params or []
        self.requests.append((method, params))
        if method in self.failing:
            raise RpcError(f"{method}: node unavailable", method=method, code=-32000)

        if method == "eth_getCode":
            if params[0].lower() in self.unreachable:
                raise RpcError(f"{method}: header not found", method=method, code=-32000)
            return self.code.get(params[0].lower(), "0x")
        if method == "eth_getStorageAt":
            return self.storage.get((params[0].lower(), params[1]), "0x" + "0" * 64)
        if method == "eth_call":
            key = (params[0]["to"].lower(), params[0]["data"])
            if key not in self.calls:
                raise RpcError("eth_call: execution reverted", method=method, code=3)
            return self.calls[key]
        if method == "eth_estimateGas":
            return hex(self.estimates.get(params[0].get("data", "0x")[2:10], 30_000))
        if method == "eth_getBlockByNumber":
            return {"number": "0x10", "gasLimit": hex(self.gas_limit)}
        if method == "eth_getTransactionByHash":
            return self.transactions.get(params[0])
        if method == "eth_getTransactionReceipt":
            return self.receipts.get(params[0])
        if method in ("eth_sendRawTransaction", "eth_sendTransaction"):
            return next(reversed(self.transactions))
        raise RpcError(f"{method}: method not found", method=method, code=-32601)


def word(address: str) -> str:
    """Left-pad an address into a 32-byte hex word."""
    return "0x" + address[2:].lower().rjust(64, "0")


# ── Artifacts ────────────────────────────────────────────────────────────────

TOKEN_RUNTIME = "0x60806040526004361061001e57aa01"
TOKEN_CREATION = "0x6080604052348015600f57600080fd5b50" + TOKEN_RUNTIME[2:]

DUPLICATE_A_RUNTIME = "0x6080604052600436106100b1"
DUPLICATE_B_RUNTIME = "0x6080604052600436106100b2"

PROXY_RUNTIME = "0x608060405236601057600e6013565b00cc01"
PROXY_CREATION = "0x608060405234801560105760006000fd5b50" + PROXY_RUNTIME[2:]


@dataclass(frozen=True)
class SampleCode:
    """Creation and runtime bytecode of the sample artifacts."""
    token_runtime: str = TOKEN_RUNTIME
    token_creation: str = TOKEN_CREATION
    duplicate_a_runtime: str = DUPLICATE_A_RUNTIME
    duplicate_b_runtime: str = DUPLICATE_B_RUNTIME
    proxy_runtime: str = PROXY_RUNTIME
    proxy_creation: str = PROXY_CREATION


@pytest.fixture
def sample_code() -> SampleCode:
    return SampleCode()


def fn(name: str, inputs: list[str] | None = None, mutability: str = "nonpayable") -> dict[str, Any]:
    return {
        "type": "function",
        "name": name,
        "inputs": [{"name": f"arg{i}", "type": t} for i, t in enumerate(inputs or [])],
        "outputs": [],
        "stateMutability": mutability,
    }


@pytest.fixture
def token_artifact() -> ContractArtifact:
    return ContractArtifact(
        name="Token",
        abi=[
            {"type": "constructor", "inputs": [], "stateMutability": "nonpayable"},
            fn("transfer", ["address", "uint256"]),
            fn("balanceOf", ["address"], "view"),
            {"type": "event", "name": "Transfer", "inputs": [], "anonymous": False},
        ],
        bytecode=TOKEN_CREATION,
        deployed_bytecode=TOKEN_RUNTIME,
    )


@pytest.fixture
def duplicate_artifacts() -> list[ContractArtifact]:
    return [
        ContractArtifact(
            name="contracts/A.sol:Duplicate",
            abi=[fn("a"), fn("b")],
            bytecode="0x6080604052348015600f57600080fd5b50" + DUPLICATE_A_RUNTIME[2:],
            deployed_bytecode=DUPLICATE_A_RUNTIME,
        ),
        ContractArtifact(
            name="contracts/B.sol:Duplicate",
            abi=[fn("a"), fn("b")],
            bytecode="0x6080604052348015600f57600080fd5b50" + DUPLICATE_B_RUNTIME[2:],
            deployed_bytecode=DUPLICATE_B_RUNTIME,
        ),
    ]


@pytest.fixture
def proxy_artifact() -> ContractArtifact:
    return ContractArtifact(
        name="Proxy",
        abi=[fn("upgradeTo", ["address"])],
        bytecode=PROXY_CREATION,
        deployed_bytecode=PROXY_RUNTIME,
    )


@pytest.fixture
def interface_artifact() -> ContractArtifact:
    return ContractArtifact(
        name="IToken",
        abi=[fn("transfer", ["address", "uint256"])],
        bytecode="0x",
        deployed_bytecode="0x",
    )


@pytest.fixture
def all_artifacts(
    interface_artifact: ContractArtifact,
    token_artifact: ContractArtifact,
    duplicate_artifacts: list[ContractArtifact],
    proxy_artifact: ContractArtifact,
) -> list[ContractArtifact]:
    # Interface first: it must never win a bytecode match
    return [interface_artifact, token_artifact, *duplicate_artifacts, proxy_artifact]


# ── Addresses / calldata ─────────────────────────────────────────────────────

TOKEN_ADDRESS = "0x5fbdb2315678afecb367f032d93f642f64180aa3"
PROXY_ADDRESS = "0xe7f1725e7734ce288f8367e1bb143e90bb3f0512"
DUPLICATE_A_ADDRESS = "0x9fe46736679d2d9a65f0992f2272de9f3c7fa6e0"
DUPLICATE_B_ADDRESS = "0xcf7ed3acca5a467e9e704c703e8d87f634fb0fc9"
USER_ADDRESS = "0xf39fd6e51aad88f6f4ce6ab8827279cfffb92266"


def transfer_input(amount: int = 1) -> str:
    return (
        "0x" + get_selector("transfer(address,uint256)")
        + USER_ADDRESS[2:].rjust(64, "0")
        + hex(amount)[2:].rjust(64, "0")
    )


@pytest.fixture
def addresses() -> dict[str, str]:
    return {
        "token": TOKEN_ADDRESS,
        "proxy": PROXY_ADDRESS,
        "duplicate_a": DUPLICATE_A_ADDRESS,
        "duplicate_b": DUPLICATE_B_ADDRESS,
        "user": USER_ADDRESS,
    }


@pytest.fixture
def make_transfer():
    return transfer_input


@pytest.fixture
def to_word():
    return word


# ── Chain / settings ─────────────────────────────────────────────────────────


@pytest.fixture
def chain() -> FakeChain:
    return FakeChain()


@pytest.fixture
def settings() -> Settings:
    """Hermetic settings: no environment, no .env file."""
    return Settings(_env_file=None)

"""Compiled-artifact loading.

Reads Hardhat (``artifacts/``) and Foundry (``out/``) JSON artifacts into
``ContractArtifact`` records for ``GasLedger.initialize``, and resolves
remote contracts (already deployed, e.g. on a fork) by fetching and
hashing their code.
"""

from __future__ import annotations

import json
import logging
from collections import Counter
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any, Iterable

from gas_reporter.attribution.ledger import code_hash
from gas_reporter.core.errors import RpcError
from gas_reporter.core.types import EMPTY_CODE, ContractArtifact, RemoteContract

if TYPE_CHECKING:
    from gas_reporter.ingestion.rpc import EthApi

logger = logging.getLogger(__name__)

SKIPPED_DIRS = {"build-info", "cache"}


@dataclass
class RawArtifact:
    """One artifact file before name qualification."""
    contract_name: str
    source_name: str
    abi: list[dict[str, Any]]
    bytecode: str
    deployed_bytecode: str

    @property
    def qualified_name(self) -> str:
        return f"{self.source_name}:{self.contract_name}"


def _code(value: Any) -> str:
    # Foundry nests code under {"object": ...}
    if isinstance(value, dict):
        value = value.get("object")
    if not value:
        return EMPTY_CODE
    return value if value.startswith("0x") else "0x" + value


def parse_artifact(path: Path, data: dict[str, Any]) -> RawArtifact | None:
    """Parse a Hardhat or Foundry artifact. None for non-contract JSON."""
    if not isinstance(data, dict) or not isinstance(data.get("abi"), list):
        return None

    contract_name = data.get("contractName") or path.stem.split(".")[0]
    source_name = data.get("sourceName") or path.parent.name
    return RawArtifact(
        contract_name=contract_name,
        source_name=source_name,
        abi=data["abi"],
        bytecode=_code(data.get("bytecode")),
        deployed_bytecode=_code(data.get("deployedBytecode")),
    )


def should_skip(qualified_name: str, exclude: Iterable[str]) -> bool:
    return any(item in qualified_name for item in exclude)


def iter_artifact_files(root: Path) -> list[Path]:
    files = []
    for path in root.rglob("*.json"):
        if path.name.endswith(".dbg.json"):
            continue
        if SKIPPED_DIRS.intersection(path.relative_to(root).parts):
            continue
        files.append(path)
    return sorted(files)


def load_artifacts(
    artifacts_dir: str | Path,
    exclude: Iterable[str] = (),
) -> list[ContractArtifact]:
    """Load every contract artifact under ``artifacts_dir``.

    Contracts are named by their simple name unless several sources
    declare the same one, in which case each gets ``source:Name``.
    Artifacts whose qualified name contains an ``exclude`` item are dropped.
    """
    root = Path(artifacts_dir)
    if not root.is_dir():
        logger.warning("Artifacts directory %s does not exist", root)
        return []

    exclude = list(exclude)
    raw: list[RawArtifact] = []
    for path in iter_artifact_files(root):
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Skipping unreadable artifact %s: %s", path, e)
            continue

        artifact = parse_artifact(path, data)
        if artifact is None or should_skip(artifact.qualified_name, exclude):
            continue
        raw.append(artifact)

    raw.sort(key=lambda a: a.qualified_name)
    name_counts = Counter(a.contract_name for a in raw)

    contracts = []
    for artifact in raw:
        name = artifact.contract_name
        if name_counts[name] > 1:
            name = artifact.qualified_name
        contracts.append(ContractArtifact(
            name=name,
            abi=artifact.abi,
            bytecode=artifact.bytecode,
            deployed_bytecode=artifact.deployed_bytecode,
        ))

    logger.debug("Loaded %d artifacts from %s", len(contracts), root)
    return contracts


async def resolve_remote_contracts(
    provider: EthApi,
    remote_contracts: Iterable[RemoteContract | dict[str, Any]],
) -> list[ContractArtifact]:
    """Fetch and hash the code of contracts already deployed at known addresses.

    A failed fetch is logged; the contract is kept without code.
    """
    resolved = []
    for contract in remote_contracts:
        if isinstance(contract, dict):
            contract = RemoteContract.model_validate(contract)

        try:
            code = await provider.get_code(contract.address)
        except RpcError as e:
            logger.warning(
                "Failed to fetch bytecode for remote contract %s: %s", contract.name, e,
                extra={"contract": contract.name, "address": contract.address},
            )
        else:
            contract.bytecode = code
            contract.deployed_bytecode = code
            contract.bytecode_hash = code_hash(code)

        resolved.append(contract.to_artifact())
    return resolved

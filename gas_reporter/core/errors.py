"""Exception hierarchy for the gas reporter engine.

Attribution misses are not errors: they are counted in
``Resolver.unresolved_calls`` and never raised. The classes below cover
the failures that do surface:

    GasReporterError
     ├─ RpcError             : transport / HTTP / JSON-RPC failure
     ├─ ArtifactDecodeError  : an ABI cannot be turned into signatures
     ├─ ResolverLoadError    : a configured custom resolver cannot be imported
     └─ AnalysisStateError   : the aggregation pass was run twice
"""

from __future__ import annotations

from typing import Any


class GasReporterError(Exception):
    """Base exception for gas reporter errors."""


class RpcError(GasReporterError):
    """A JSON-RPC request failed."""

    def __init__(
        self,
        message: str,
        method: str = "",
        code: int | None = None,
        data: Any = None,
    ) -> None:
        super().__init__(message)
        self.method = method
        self.code = code
        self.data = data


class ArtifactDecodeError(GasReporterError):
    """A contract ABI could not be decoded."""

    def __init__(self, contract: str, reason: str) -> None:
        super().__init__(f"Could not decode ABI for {contract}: {reason}")
        self.contract = contract
        self.reason = reason


class ResolverLoadError(GasReporterError):
    """A custom resolver import path could not be loaded."""


class AnalysisStateError(GasReporterError):
    """The aggregation pass was invoked out of order."""

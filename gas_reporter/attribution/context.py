"""Per-run resolution context.

Built once when a reporting run starts and passed by reference into the
collector, the resolver chain and the instrumented provider. Nothing here
is global or persisted.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from gas_reporter.core.types import HostIntegration, ProxyFamily

if TYPE_CHECKING:
    from gas_reporter.attribution.collector import Collector
    from gas_reporter.core.config import Settings


@dataclass
class ResolutionContext:
    """Flags and the probe ignore-list for one run."""
    collector: Collector | None = None
    track_calls: bool = False
    host: HostIntegration = HostIntegration.ETHERS
    proxy_family: ProxyFamily | None = None
    # Selectors (8 hex chars) of probe calls issued by resolver strategies
    method_ignore_list: set[str] = field(default_factory=set)

    @classmethod
    def from_settings(cls, settings: Settings) -> ResolutionContext:
        return cls(
            track_calls=settings.track_calls,
            host=settings.host_integration,
            proxy_family=settings.proxy_family,
        )

    @property
    def using_viem(self) -> bool:
        return self.host == HostIntegration.VIEM

    def ignore(self, selectors: list[str] | set[str]) -> None:
        """Add probe selectors, with or without a ``0x`` prefix."""
        for selector in selectors:
            selector = selector.lower()
            if selector.startswith("0x"):
                selector = selector[2:]
            self.method_ignore_list.add(selector[:8])

    def can_estimate(self, call_args: dict[str, Any] | None) -> bool:
        """True if an ``eth_call`` should be estimated and attributed.

        Must be consulted before the call enters read-only attribution.
        """
        if not self.track_calls:
            return False
        data = (call_args or {}).get("data")
        if isinstance(data, str) and data[2:10].lower() in self.method_ignore_list:
            return False
        return True

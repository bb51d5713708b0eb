"""Core configuration for the gas reporter engine."""

from __future__ import annotations

from functools import lru_cache
from typing import Any, Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from gas_reporter.core.types import (
    ArbitrumHardfork,
    HostIntegration,
    L2Network,
    OptimismHardfork,
    ProxyFamily,
)


class Settings(BaseSettings):
    """Reporter settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="GAS_REPORTER_",
        case_sensitive=False,
    )

    # ── App ──────────────────────────────────────────────────────────────
    enabled: bool = True
    log_env: Literal["development", "production"] = "development"
    log_level: str = "INFO"

    # ── RPC ──────────────────────────────────────────────────────────────
    rpc_url: str = "http://127.0.0.1:8545"
    rpc_timeout: float = 30.0
    rpc_max_retries: int = 3
    rpc_retry_base_delay: float = 0.25

    # ── Artifacts ────────────────────────────────────────────────────────
    artifacts_dir: str = "artifacts"
    exclude_contracts: list[str] = Field(default_factory=list)
    remote_contracts: list[dict[str, Any]] = Field(default_factory=list)

    # ── Collection ───────────────────────────────────────────────────────
    track_calls: bool = False
    include_intrinsic_gas: bool = True
    host_integration: HostIntegration = HostIntegration.ETHERS
    proxy_family: ProxyFamily | None = None
    proxy_resolver: str | None = None  # "package.module:attribute"

    # ── Pricing ──────────────────────────────────────────────────────────
    block_gas_limit: int | None = None  # None: read from the latest block
    token_price: float | None = None
    gas_price: float | None = None      # gwei
    currency_display_precision: int = 2

    # ── Layered networks ─────────────────────────────────────────────────
    l2: L2Network | None = None
    optimism_hardfork: OptimismHardfork = OptimismHardfork.ECOTONE
    arbitrum_hardfork: ArbitrumHardfork = ArbitrumHardfork.ARBOS11
    base_fee: float | None = None       # gwei
    blob_base_fee: float | None = None  # gwei


@lru_cache
def get_settings() -> Settings:
    """Return cached settings singleton."""
    return Settings()

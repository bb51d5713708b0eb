"""One reporting run, start to finish.

    session = GasReporterSession()
    provider = await session.start()   # hand this provider to the test client
    ...                                 # run the tests
    ledger = await session.stop()      # analysed ledger for reporting
"""

from __future__ import annotations

import logging
from typing import Iterable

from gas_reporter.attribution.collector import Collector
from gas_reporter.attribution.context import ResolutionContext
from gas_reporter.attribution.ledger import GasLedger
from gas_reporter.attribution.resolvers import load_custom_resolver
from gas_reporter.core.config import Settings, get_settings
from gas_reporter.core.errors import AnalysisStateError
from gas_reporter.core.logging import setup_logging
from gas_reporter.core.types import ContractArtifact
from gas_reporter.ingestion.artifacts import load_artifacts, resolve_remote_contracts
from gas_reporter.ingestion.provider import GasReporterProvider
from gas_reporter.ingestion.rpc import EthApi, RpcClient

logger = logging.getLogger(__name__)


class GasReporterSession:
    """Wires settings, RPC client, instrumented provider and collector."""

    def __init__(
        self,
        settings: Settings | None = None,
        rpc: EthApi | None = None,
        contracts: Iterable[ContractArtifact] | None = None,
        configure_logging: bool = True,
    ) -> None:
        self.settings = settings or get_settings()
        self._rpc = rpc
        self._owns_rpc = rpc is None
        self._contracts = list(contracts) if contracts is not None else None
        self._configure_logging = configure_logging

        self.provider: GasReporterProvider | None = None
        self.context: ResolutionContext | None = None
        self.collector: Collector | None = None

    async def start(self) -> GasReporterProvider:
        """Load artifacts and return the provider the test client must use."""
        if self._configure_logging:
            setup_logging(self.settings.log_env, self.settings.log_level)

        # Resolved before the RPC client exists so a bad path leaks nothing
        custom = None
        if self.settings.enabled and self.settings.proxy_resolver:
            custom = load_custom_resolver(self.settings.proxy_resolver)

        if self._rpc is None:
            self._rpc = RpcClient(settings=self.settings)
        self.provider = GasReporterProvider(self._rpc)

        if not self.settings.enabled:
            logger.info("Gas reporter disabled, provider is a pass-through")
            return self.provider

        self.context = ResolutionContext.from_settings(self.settings)
        self.collector = Collector(self.settings, self.provider, self.context, custom)

        contracts = self._contracts
        if contracts is None:
            contracts = load_artifacts(self.settings.artifacts_dir, self.settings.exclude_contracts)
        remote = await resolve_remote_contracts(self._rpc, self.settings.remote_contracts)
        self.collector.initialize([*contracts, *remote])

        self.provider.initialize(self.context)
        logger.info(
            "Gas reporter started: %d contracts, %d methods tracked",
            len(self.collector.data.deployments), len(self.collector.data.methods),
        )
        return self.provider

    async def stop(self) -> GasLedger | None:
        """Run the analysis once and release the RPC client.

        Returns None when reporting is disabled.

        Raises:
            AnalysisStateError: if the session was never started, or stopped twice
        """
        if self.provider is None:
            raise AnalysisStateError("Session was never started")

        try:
            if self.collector is None:
                return None
            return await self.collector.run_analysis()
        finally:
            if self._owns_rpc and self._rpc is not None:
                await self.provider.close()
                self._rpc = None

    async def __aenter__(self) -> GasReporterProvider:
        return await self.start()

    async def __aexit__(self, *exc: object) -> None:
        if self.provider is None:
            return
        if self.collector is None or not self.collector.data.analyzed:
            await self.stop()

"""Statistical reduction of raw gas samples.

Runs once, after collection has finished: sample arrays are sorted in
place to derive min/max, so their observation order is gone afterwards.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from gas_reporter.core.gas import gas_to_cost, gas_to_percent_of_limit, round_half_up

if TYPE_CHECKING:
    from gas_reporter.attribution.ledger import DeploymentRecord, GasLedger, MethodRecord
    from gas_reporter.core.config import Settings

logger = logging.getLogger(__name__)


@dataclass
class SampleSummary:
    """Average / min / max of one sample array."""
    average: int
    minimum: int
    maximum: int


def average(samples: list[int]) -> int:
    if not samples:
        return 0
    return round_half_up(sum(samples) / len(samples))


def summarize(samples: list[int]) -> SampleSummary | None:
    """Reduce a sample array; sorts it in place. None when empty."""
    if not samples:
        return None
    samples.sort()
    return SampleSummary(
        average=average(samples),
        minimum=samples[0],
        maximum=samples[-1],
    )


class GasAggregator:
    """Turns every ledger record's samples into reportable figures."""

    def __init__(
        self,
        settings: Settings,
        block_gas_limit: int,
        token_price: float | str | None = None,
        gas_price: float | None = None,
    ) -> None:
        self._settings = settings
        self._block_gas_limit = block_gas_limit
        self._token_price = float(token_price) if token_price is not None else None
        self._gas_price = gas_price

    @property
    def prices_known(self) -> bool:
        return bool(self._token_price) and bool(self._gas_price)

    def _cost(self, execution_gas: int, calldata_gas: int) -> str | None:
        if not self.prices_known:
            return None
        return gas_to_cost(
            execution_gas,
            calldata_gas,
            self._token_price,  # type: ignore[arg-type]
            self._gas_price,    # type: ignore[arg-type]
            self._settings,
        )

    def reduce_method(self, record: MethodRecord) -> None:
        summary = summarize(record.gas_data)
        if summary is None:
            return

        record.execution_gas_average = summary.average
        record.min = summary.minimum
        record.max = summary.maximum
        record.calldata_gas_average = average(record.call_data)
        record.intrinsic_gas_average = average(record.intrinsic_data)
        record.cost = self._cost(summary.average, record.calldata_gas_average)

    def reduce_deployment(self, record: DeploymentRecord) -> None:
        summary = summarize(record.gas_data)
        if summary is None:
            return

        record.execution_gas_average = summary.average
        record.min = summary.minimum
        record.max = summary.maximum
        record.calldata_gas_average = average(record.call_data)
        record.percent = gas_to_percent_of_limit(summary.average, self._block_gas_limit)
        record.cost = self._cost(summary.average, record.calldata_gas_average)

    def run(self, ledger: GasLedger) -> None:
        methods = 0
        for method in ledger.methods.values():
            if method.gas_data:
                self.reduce_method(method)
                methods += 1

        deployments = 0
        for deployment in ledger.deployments:
            if deployment.gas_data:
                self.reduce_deployment(deployment)
                deployments += 1

        logger.info(
            "Gas analysis complete: %d methods, %d deployments, block limit %d",
            methods,
            deployments,
            self._block_gas_limit,
        )

"""Gas arithmetic: intrinsic cost, L1 data (calldata) gas and cost figures.

L1 data fee formulas for layered networks:

  Optimism Bedrock
      tx_data_gas  = zero_bytes * 4 + non_zero_bytes * 16 (+ 68 signature bytes)
      l1_gas       = (tx_data_gas + fixed_overhead) * dynamic_overhead
      l1_cost      = l1_gas * base_fee

  Optimism Ecotone
      l1_gas       = tx_data_gas / 16                 (compressed size estimate)
      l1_cost      = l1_gas * (16 * base_fee_scalar * base_fee
                               + blob_base_fee_scalar * blob_base_fee)

  Arbitrum OS11 / OS20
      not modelled yet, always 0 per hardfork
"""

from __future__ import annotations

import math
from typing import TYPE_CHECKING

from gas_reporter.core.types import ArbitrumHardfork, L2Network, OptimismHardfork

if TYPE_CHECKING:
    from gas_reporter.core.config import Settings


# ── Constants ────────────────────────────────────────────────────────────────

EVM_BASE_TX_COST = 21_000
TX_DATA_ZERO_GAS = 4
TX_DATA_NON_ZERO_GAS = 16

# Unsigned tx padding: RLP prefixes + V, R, S
UNSIGNED_TX_PADDING_BYTES = 68

OPTIMISM_BEDROCK_FIXED_OVERHEAD = 188
OPTIMISM_BEDROCK_DYNAMIC_OVERHEAD = 0.684

# Operator-configured; suggested defaults
OPTIMISM_ECOTONE_BASE_FEE_SCALAR = 1368
OPTIMISM_ECOTONE_BLOB_BASE_FEE_SCALAR = 810949


def _data_bytes(data: str) -> bytes:
    text = data[2:] if data.lower().startswith("0x") else data
    if len(text) % 2:
        text = text + "0"
    return bytes.fromhex(text)


def round_half_up(value: float) -> int:
    """Round .5 away from zero for positive values (not banker's rounding)."""
    return int(math.floor(value + 0.5))


# ── Intrinsic gas ────────────────────────────────────────────────────────────


def data_gas(data: str) -> int:
    """Calldata cost charged by the EVM before execution starts."""
    payload = _data_bytes(data)
    zeros = payload.count(0)
    return zeros * TX_DATA_ZERO_GAS + (len(payload) - zeros) * TX_DATA_NON_ZERO_GAS


def intrinsic_gas(data: str) -> int:
    """Fixed base transaction cost plus per-byte calldata cost."""
    return EVM_BASE_TX_COST + data_gas(data)


# ── L1 data gas ──────────────────────────────────────────────────────────────


def tx_calldata_gas(tx_input: str) -> int:
    """Calldata gas for an unsigned tx, assuming non-zero signature bytes."""
    return data_gas(tx_input) + UNSIGNED_TX_PADDING_BYTES * TX_DATA_NON_ZERO_GAS


def optimism_bedrock_l1_gas(tx_input: str) -> int:
    return math.floor(
        (tx_calldata_gas(tx_input) + OPTIMISM_BEDROCK_FIXED_OVERHEAD)
        * OPTIMISM_BEDROCK_DYNAMIC_OVERHEAD
    )


def optimism_bedrock_l1_cost(l1_gas: float, base_fee: float) -> float:
    return l1_gas * base_fee


def optimism_ecotone_l1_gas(tx_input: str) -> int:
    return math.floor(tx_calldata_gas(tx_input) / 16)


def optimism_ecotone_l1_cost(
    compressed_size: float,
    base_fee: float,
    blob_base_fee: float,
) -> float:
    weighted_base_fee = 16 * OPTIMISM_ECOTONE_BASE_FEE_SCALAR * base_fee
    weighted_blob_base_fee = OPTIMISM_ECOTONE_BLOB_BASE_FEE_SCALAR * blob_base_fee
    return compressed_size * (weighted_base_fee + weighted_blob_base_fee)


# TODO: model the Arbitrum L1 pricing (brotli-compressed size times the L1
# base fee estimate); both hardforks report 0 until then.
def arbitrum_os11_l1_gas(tx_input: str) -> int:
    return 0


def arbitrum_os20_l1_gas(tx_input: str) -> int:
    return 0


def arbitrum_os11_l1_cost(gas: float) -> float:
    return 0


def arbitrum_os20_l1_cost(gas: float) -> float:
    return 0


def calldata_gas_for_network(settings: Settings, tx_input: str) -> int:
    """L1 data gas for the configured layered network, 0 on L1."""
    if settings.l2 == L2Network.OPTIMISM:
        if settings.optimism_hardfork == OptimismHardfork.BEDROCK:
            return optimism_bedrock_l1_gas(tx_input)
        return optimism_ecotone_l1_gas(tx_input)

    if settings.l2 == L2Network.ARBITRUM:
        if settings.arbitrum_hardfork == ArbitrumHardfork.ARBOS20:
            return arbitrum_os20_l1_gas(tx_input)
        return arbitrum_os11_l1_gas(tx_input)

    return 0


def calldata_cost_for_network(settings: Settings, gas: float) -> float:
    """L1 data cost (gwei-denominated) for an amount of calldata gas."""
    base_fee = settings.base_fee or 0
    blob_base_fee = settings.blob_base_fee or 0

    if settings.l2 == L2Network.OPTIMISM:
        if settings.optimism_hardfork == OptimismHardfork.BEDROCK:
            return optimism_bedrock_l1_cost(gas, base_fee)
        return optimism_ecotone_l1_cost(gas, base_fee, blob_base_fee)

    if settings.l2 == L2Network.ARBITRUM:
        if settings.arbitrum_hardfork == ArbitrumHardfork.ARBOS20:
            return arbitrum_os20_l1_cost(gas)
        return arbitrum_os11_l1_cost(gas)

    return 0


# ── Cost ─────────────────────────────────────────────────────────────────────


def gas_to_cost(
    execution_gas: float,
    calldata_gas: float,
    token_price: float,
    gas_price: float,
    settings: Settings,
) -> str:
    """Express gas usage as a currency amount.

    Args:
        execution_gas: Gas consumed on the execution layer
        calldata_gas: L1 data gas (0 on L1)
        token_price: Native token price in the report currency
        gas_price: Gas price in gwei

    Returns:
        Cost formatted with ``currency_display_precision`` decimals.
    """
    calldata_cost = 0.0
    if settings.l2 is not None:
        cost = calldata_cost_for_network(settings, calldata_gas)
        calldata_cost = (cost / 1e9) * float(token_price)

    execution_cost = (float(gas_price) / 1e9) * execution_gas * float(token_price)
    return f"{execution_cost + calldata_cost:.{settings.currency_display_precision}f}"


def gas_to_percent_of_limit(gas_used: float, block_limit: int) -> float:
    """Gas as a percentage of the block gas limit, one decimal place."""
    if not block_limit:
        return 0.0
    return round_half_up((1000 * gas_used) / block_limit) / 10

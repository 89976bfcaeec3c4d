"""Integer allocation math for the Trade transition and token claims."""

from typing import NamedTuple

from presale.core.splits import WHOLE, Split


class LiquidityAmounts(NamedTuple):
    native: int
    token: int


class VestingTotals(NamedTuple):
    native: int
    token: int


def liquidity_amounts(aggregate: int, total_supply: int, eth_split: Split, token_split: Split) -> LiquidityAmounts:
    """Amounts supplied to the liquidity venue at the Trade transition."""
    return LiquidityAmounts(
        native=eth_split.portion("liquidity", aggregate),
        token=token_split.portion("liquidity", total_supply),
    )


def vesting_totals(aggregate: int, total_supply: int, eth_split: Split, token_split: Split) -> VestingTotals:
    """Allocations of the native and token vesting streams."""
    return VestingTotals(
        native=eth_split.portion("vest", aggregate),
        token=token_split.portion("vest", total_supply),
    )


def token_allocation(contribution: int, aggregate: int, total_supply: int, token_split: Split) -> int:
    """Share of the presale token pool owed to one contributor.

    Multiplies before dividing so the only loss is the final floor, at most
    one base unit per contributor.
    """
    if contribution <= 0 or aggregate <= 0:
        return 0
    return contribution * token_split.percent("presale") * total_supply // (aggregate * WHOLE)

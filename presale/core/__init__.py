"""Pure domain logic: stages, splits, vesting and allocation math."""

from presale.core.allocation import liquidity_amounts, token_allocation, vesting_totals
from presale.core.splits import Split
from presale.core.types import (
    CampaignConfig,
    CampaignParams,
    Stage,
    StreamKind,
    TokenInfo,
    VestingSchedule,
    VestingState,
)
from presale.core.vesting import vested, withdrawable

__all__ = [
    "CampaignConfig",
    "CampaignParams",
    "Split",
    "Stage",
    "StreamKind",
    "TokenInfo",
    "VestingSchedule",
    "VestingState",
    "liquidity_amounts",
    "token_allocation",
    "vested",
    "vesting_totals",
    "withdrawable",
]

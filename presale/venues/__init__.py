"""Liquidity venues that turn pooled funds into a liquidity position."""

from presale.venues.base import LiquidityReceipt, LiquidityVenue
from presale.venues.pool import MINIMUM_LIQUIDITY, ConstantProductVenue

__all__ = [
    "ConstantProductVenue",
    "LiquidityReceipt",
    "LiquidityVenue",
    "MINIMUM_LIQUIDITY",
]

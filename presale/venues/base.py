"""Liquidity venue contract consumed by the stage machine."""

from typing import NamedTuple, Protocol

from sqlalchemy.orm import Session


class LiquidityReceipt(NamedTuple):
    """Outcome of a two-sided deposit."""

    native_used: int
    token_used: int
    liquidity: int  # position units credited to the provider
    position_asset: str  # asset id of the position


class LiquidityVenue(Protocol):
    """External market-making facility.

    ``add_liquidity`` takes ``native_amount`` of ``native_asset`` and
    ``token_amount`` of ``token_asset`` from ``provider`` and credits a
    liquidity position to the same provider. Implementations raise
    ``LiquidityError`` when the deposit cannot be made.
    """

    def add_liquidity(
        self,
        session: Session,
        provider: str,
        native_asset: str,
        token_asset: str,
        native_amount: int,
        token_amount: int,
        now: int,
    ) -> LiquidityReceipt:
        ...

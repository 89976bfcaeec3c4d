"""Local constant-product liquidity venue.

A minimal Uniswap-V2 style pool persisted in ``liquidity_pools``. It only
supports deposits, which is all a campaign needs to obtain its liquidity
position; swaps and withdrawals of liquidity are out of scope.
"""

import math

from sqlalchemy.orm import Session
from web3 import Web3

from presale.db.models import LiquidityPool
from presale.errors import LiquidityError, TransferError
from presale.log import get_logger
from presale.services.ledger import AssetLedger
from presale.venues.base import LiquidityReceipt

logger = get_logger(__name__)

# Shares locked forever on the first deposit so the pool can never be drained to zero supply
MINIMUM_LIQUIDITY = 1000
BURN_HOLDER = "0x000000000000000000000000000000000000dead"


def pool_address(native_asset: str, token_asset: str) -> str:
    """Deterministic address of the pool for a pair."""
    digest = Web3.keccak(text=f"pool:{native_asset}:{token_asset}")
    return Web3.to_hex(digest[-20:])


class ConstantProductVenue:
    """Liquidity venue backed by the asset ledger."""

    def __init__(self, ledger: AssetLedger, minimum_liquidity: int = MINIMUM_LIQUIDITY):
        """Initialize the venue.

        Args:
            ledger: Asset ledger used to move deposits and mint positions
            minimum_liquidity: Shares locked on the first deposit
        """
        self.ledger = ledger
        self.minimum_liquidity = minimum_liquidity

    def get_pool(self, session: Session, native_asset: str, token_asset: str) -> LiquidityPool | None:
        return (
            session.query(LiquidityPool)
            .filter(
                LiquidityPool.native_asset == native_asset,
                LiquidityPool.token_asset == token_asset,
            )
            .first()
        )

    def _get_or_create_pool(self, session: Session, native_asset: str, token_asset: str) -> LiquidityPool:
        pool = self.get_pool(session, native_asset, token_asset)
        if pool is None:
            pool = LiquidityPool(
                address=pool_address(native_asset, token_asset),
                native_asset=native_asset,
                token_asset=token_asset,
                reserve_native=0,
                reserve_token=0,
                total_shares=0,
            )
            session.add(pool)
            session.flush()
            logger.info(f"Created pool {pool.address} for {native_asset}/{token_asset}")
        return pool

    def quote(self, pool: LiquidityPool, native_amount: int, token_amount: int) -> tuple[int, int, int]:
        """Compute (native_used, token_used, shares) for a deposit.

        Follows the router rule: keep the pool ratio and use as much of the
        desired amounts as that ratio allows.
        """
        if pool.total_shares == 0:
            root = math.isqrt(native_amount * token_amount)
            return native_amount, token_amount, root - self.minimum_liquidity

        token_optimal = native_amount * pool.reserve_token // pool.reserve_native
        if token_optimal <= token_amount:
            native_used, token_used = native_amount, token_optimal
        else:
            native_used = token_amount * pool.reserve_native // pool.reserve_token
            token_used = token_amount
        shares = min(
            native_used * pool.total_shares // pool.reserve_native,
            token_used * pool.total_shares // pool.reserve_token,
        )
        return native_used, token_used, shares

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
        """Deposit both sides and credit pool shares to the provider.

        Raises:
            LiquidityError: If either side is empty, the deposit would mint no
                shares, or the provider cannot fund it
        """
        if native_amount <= 0 or token_amount <= 0:
            raise LiquidityError(
                f"both sides must be positive (native={native_amount}, token={token_amount})"
            )

        pool = self._get_or_create_pool(session, native_asset, token_asset)
        first_deposit = pool.total_shares == 0
        native_used, token_used, shares = self.quote(pool, native_amount, token_amount)
        if shares <= 0:
            raise LiquidityError(f"deposit too small to mint shares in pool {pool.address}")

        try:
            self.ledger.transfer(session, native_asset, provider, pool.address, native_used)
            self.ledger.transfer(session, token_asset, provider, pool.address, token_used)
        except TransferError as e:
            raise LiquidityError(f"provider cannot fund deposit: {e.message}") from e

        if first_deposit and self.minimum_liquidity > 0:
            self.ledger.mint(session, pool.address, BURN_HOLDER, self.minimum_liquidity)
            pool.total_shares = pool.total_shares + self.minimum_liquidity
        self.ledger.mint(session, pool.address, provider, shares)

        pool.reserve_native = pool.reserve_native + native_used
        pool.reserve_token = pool.reserve_token + token_used
        pool.total_shares = pool.total_shares + shares

        logger.info(
            f"Added liquidity to {pool.address}: native={native_used}, token={token_used}, shares={shares}"
        )
        return LiquidityReceipt(
            native_used=native_used,
            token_used=token_used,
            liquidity=shares,
            position_asset=pool.address,
        )

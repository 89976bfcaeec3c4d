"""Liquidity venue backed by an on-chain Uniswap-V2 style router.

The router is called with ``amountTokenMin``/``amountETHMin`` equal to the
desired amounts, so any slippage makes the router revert and the deposit is
reported as a ``LiquidityError``. The asset ledger mirrors the deposit: the
campaign's balances move to the pair and the liquidity minted by the mined
transaction is credited as a position in the pair asset.

The provider's mirrored balances are checked before the transaction is sent
and the mirror is written only after it is mined, from the pair's mint
``Transfer`` log rather than the preview.
"""

from typing import Any

from sqlalchemy.orm import Session
from web3 import Web3
from web3.logs import DISCARD
from web3.types import TxReceipt

from presale.errors import LiquidityError
from presale.eth.abi_loader import get_factory_abi, get_pair_abi, get_router_abi
from presale.eth.client import EthereumClient
from presale.log import get_logger
from presale.services.ledger import AssetLedger
from presale.venues.base import LiquidityReceipt

logger = get_logger(__name__)

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


class RouterVenue:
    """Deposits through ``addLiquidityETH`` on a V2 router."""

    def __init__(
        self,
        client: EthereumClient,
        ledger: AssetLedger,
        router_address: str,
        token_address: str,
        operator_address: str,
        deadline_seconds: int = 600,
    ):
        """Initialize router venue.

        Args:
            client: Ethereum client
            ledger: Asset ledger mirroring the deposit
            router_address: Router contract address
            token_address: On-chain ERC-20 of the distributed asset
            operator_address: Unlocked account holding the campaign funds on chain
            deadline_seconds: Router deadline window after ``now``
        """
        self.client = client
        self.ledger = ledger
        self.router = client.contract(router_address, get_router_abi())
        self.token_address = Web3.to_checksum_address(token_address)
        self.operator_address = Web3.to_checksum_address(operator_address)
        self.deadline_seconds = deadline_seconds

    def pair_address(self) -> str:
        """Address of the token/WETH pair (the position asset id)."""
        factory = self.client.contract(self.router.functions.factory().call(), get_factory_abi())
        weth = self.router.functions.WETH().call()
        return str(factory.functions.getPair(self.token_address, weth).call()).lower()

    def minted_liquidity(self, pair_address: str, receipt: TxReceipt) -> int:
        """LP units the pair minted to the operator in ``receipt``."""
        pair = self.client.contract(pair_address, get_pair_abi())
        minted = 0
        for log in pair.events.Transfer().process_receipt(receipt, errors=DISCARD):
            args = log["args"]
            if str(args["from"]).lower() == ZERO_ADDRESS and str(args["to"]).lower() == self.operator_address.lower():
                minted += int(args["value"])
        return minted

    def _call(self, description: str, fn: Any) -> Any:
        try:
            return fn()
        except LiquidityError:
            raise
        except Exception as e:
            logger.error(f"Router {description} failed: {e}")
            raise LiquidityError(f"router {description} failed: {e}") from e

    def _check_funds(self, session: Session, asset: str, provider: str, amount: int) -> None:
        available = self.ledger.balance_of(session, asset, provider)
        if available < amount:
            raise LiquidityError(f"provider cannot fund deposit: {provider} holds {available} {asset}, needs {amount}")

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
        """Supply both sides through the router.

        Raises:
            LiquidityError: If the preview reverts or short-fills, the
                provider's mirrored balance is insufficient, or the
                transaction fails
        """
        if native_amount <= 0 or token_amount <= 0:
            raise LiquidityError(
                f"both sides must be positive (native={native_amount}, token={token_amount})"
            )

        fn = self.router.functions.addLiquidityETH(
            self.token_address,
            token_amount,
            token_amount,  # amountTokenMin: no slippage tolerated
            native_amount,  # amountETHMin
            self.operator_address,
            now + self.deadline_seconds,
        )
        tx_params = {"from": self.operator_address, "value": native_amount}

        amount_token, amount_eth, previewed = self._call("preview", lambda: fn.call(tx_params))
        if amount_token < token_amount or amount_eth < native_amount:
            raise LiquidityError(
                f"router would use native {amount_eth}/{native_amount}, token {amount_token}/{token_amount}"
            )
        if previewed <= 0:
            raise LiquidityError("router preview minted no liquidity")

        position_asset = self._call("getPair", self.pair_address)
        self._check_funds(session, native_asset, provider, amount_eth)
        self._check_funds(session, token_asset, provider, amount_token)

        tx_hash = self._call("addLiquidityETH", lambda: fn.transact(tx_params))
        receipt = self._call("receipt", lambda: self.client.wait_for_receipt(tx_hash))
        if receipt["status"] != 1:
            raise LiquidityError(f"addLiquidityETH transaction {Web3.to_hex(tx_hash)} reverted")

        # From here the deposit is final on chain; record what it minted
        try:
            liquidity = self.minted_liquidity(position_asset, receipt)
        except Exception as e:
            logger.error(f"Could not decode mint log of {Web3.to_hex(tx_hash)}: {e}")
            liquidity = 0
        if liquidity <= 0:
            logger.warning(
                f"No mint Transfer to {self.operator_address} in {Web3.to_hex(tx_hash)}; "
                f"recording previewed liquidity {previewed}"
            )
            liquidity = previewed
        elif liquidity != previewed:
            logger.info(f"Mined liquidity {liquidity} differs from preview {previewed}")

        self.ledger.transfer(session, native_asset, provider, position_asset, amount_eth)
        self.ledger.transfer(session, token_asset, provider, position_asset, amount_token)
        self.ledger.mint(session, position_asset, provider, liquidity)

        logger.info(
            f"Added liquidity via router: pair={position_asset}, native={amount_eth}, "
            f"token={amount_token}, liquidity={liquidity}, tx={Web3.to_hex(tx_hash)}"
        )
        return LiquidityReceipt(
            native_used=amount_eth,
            token_used=amount_token,
            liquidity=liquidity,
            position_asset=position_asset,
        )

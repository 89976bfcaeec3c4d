"""Asset-transfer facility backed by the ``balances`` table.

Balances are updated inside the caller's session, so a transfer belongs to
the surrounding operation: if anything later in that operation fails, the
session rollback undoes the transfer together with every ledger write.
"""

from sqlalchemy.orm import Session

from presale.db.models import Balance
from presale.errors import TransferError
from presale.log import get_logger

logger = get_logger(__name__)


class AssetLedger:
    """Fungible balances keyed by (asset, holder)."""

    def _account(self, session: Session, asset: str, holder: str, create: bool = False) -> Balance | None:
        account = (
            session.query(Balance)
            .filter(Balance.asset == asset, Balance.holder == holder)
            .first()
        )
        if account is None and create:
            account = Balance(asset=asset, holder=holder, amount=0)
            session.add(account)
            session.flush()  # autoflush is off; make the row visible to later queries
        return account

    def balance_of(self, session: Session, asset: str, holder: str) -> int:
        """Get the balance of ``holder`` in ``asset`` (0 if unknown)."""
        account = self._account(session, asset, holder)
        return account.amount if account is not None else 0

    def mint(self, session: Session, asset: str, holder: str, amount: int) -> None:
        """Credit newly created units.

        Args:
            session: Database session
            asset: Asset id
            holder: Receiving identity
            amount: Base units to create

        Raises:
            TransferError: If amount is negative
        """
        if amount < 0:
            raise TransferError(f"cannot mint negative amount {amount} of {asset}")
        if amount == 0:
            return
        account = self._account(session, asset, holder, create=True)
        account.amount = account.amount + amount
        logger.debug(f"Minted {amount} {asset} to {holder}")

    def transfer(self, session: Session, asset: str, sender: str, recipient: str, amount: int) -> None:
        """Move units between holders.

        Args:
            session: Database session
            asset: Asset id
            sender: Debited identity
            recipient: Credited identity
            amount: Base units to move

        Raises:
            TransferError: If amount is negative or the sender's balance is insufficient
        """
        if amount < 0:
            raise TransferError(f"cannot transfer negative amount {amount} of {asset}")
        if amount == 0:
            return

        source = self._account(session, asset, sender)
        available = source.amount if source is not None else 0
        if available < amount:
            raise TransferError(
                f"insufficient {asset} balance for {sender}: has {available}, needs {amount}"
            )

        target = self._account(session, asset, recipient, create=True)
        source.amount = available - amount
        target.amount = target.amount + amount
        logger.debug(f"Transferred {amount} {asset} from {sender} to {recipient}")

"""Withdrawal coordinator - refunds, token claims and vested releases.

Every path marks the claim consumed (entry zeroed, or ``released`` raised)
before moving funds. Should the movement fail, the exception propagates out
of the session and the rollback restores the claim, so a claim is either
fully paid or still claimable.
"""

from sqlalchemy.orm import Session

from presale.core.allocation import token_allocation
from presale.core.types import Stage, StreamKind
from presale.core.vesting import withdrawable
from presale.db.models import Campaign
from presale.errors import ClaimError, StageError
from presale.log import get_campaign_logger
from presale.services.access import require_admin
from presale.services.events import EventName, record_event
from presale.services.ledger import AssetLedger
from presale.services.presale_ledger import get_contribution
from presale.services.stage_machine import StageMachine
from presale.utils.formatting import normalize_identity


def stream_asset(campaign: Campaign, kind: StreamKind) -> str | None:
    """Asset id paid out by a vesting stream."""
    if kind == StreamKind.NATIVE:
        return campaign.native_asset
    if kind == StreamKind.TOKEN:
        return campaign.address
    return campaign.liquidity_pool


def stream_withdrawable(campaign: Campaign, kind: StreamKind, now: int) -> int:
    """Currently withdrawable amount of a stream (0 outside Trade)."""
    if campaign.current_stage != Stage.TRADE:
        return 0
    stream = campaign.stream(kind)
    return withdrawable(stream.schedule, stream.state, campaign.vesting_start, now)


class WithdrawalCoordinator:
    """Orchestrates refund claims, token claims and vested withdrawals."""

    def __init__(self, ledger: AssetLedger, stage_machine: StageMachine):
        """Initialize withdrawal coordinator.

        Args:
            ledger: Asset ledger the payouts are made from
            stage_machine: Stage machine reconciled before every operation
        """
        self.ledger = ledger
        self.stage_machine = stage_machine

    def claim_refund(self, session: Session, campaign: Campaign, caller: str, now: int) -> int:
        """Return a contributor's funds after a failed presale.

        Returns:
            Refunded amount

        Raises:
            StageError: NotRefundable unless the reconciled stage is Refund
            ClaimError: NothingToRefund if the caller has no recorded contribution
            TransferError: If the payment cannot be delivered
        """
        stage = self.stage_machine.reconcile(session, campaign, now)
        if stage != Stage.REFUND:
            raise StageError("NotRefundable", stage, Stage.REFUND, action="claim_refund")

        contributor = normalize_identity(caller)
        entry = get_contribution(session, campaign, contributor)
        amount = entry.amount if entry is not None else 0
        if amount == 0:
            raise ClaimError(f"{contributor} has nothing to refund", "NothingToRefund")

        entry.amount = 0
        campaign.consumed_total = campaign.consumed_total + amount
        self.ledger.transfer(session, campaign.native_asset, campaign.address, contributor, amount)

        record_event(
            session,
            campaign.address,
            EventName.REFUNDED,
            {"contributor": contributor, "amount": amount},
            now,
        )
        get_campaign_logger(__name__, campaign.address).info(f"Refunded {amount} to {contributor}")
        return amount

    def claim_tokens(self, session: Session, campaign: Campaign, caller: str, now: int) -> int:
        """Pay a contributor's proportional share of the presale tokens.

        Returns:
            Token amount transferred

        Raises:
            StageError: NotClaimable unless the reconciled stage is Trade
            ClaimError: NothingToClaim if the caller has no recorded contribution
            TransferError: If the token transfer fails
        """
        stage = self.stage_machine.reconcile(session, campaign, now)
        if stage != Stage.TRADE:
            raise StageError("NotClaimable", stage, Stage.TRADE, action="claim_tokens")

        contributor = normalize_identity(caller)
        entry = get_contribution(session, campaign, contributor)
        contributed = entry.amount if entry is not None else 0
        if contributed == 0:
            raise ClaimError(f"{contributor} has nothing to claim", "NothingToClaim")

        entry.amount = 0
        campaign.consumed_total = campaign.consumed_total + contributed
        allocation = token_allocation(
            contributed,
            campaign.aggregate_contributed,
            campaign.total_supply,
            campaign.token_split_table(),
        )
        self.ledger.transfer(session, campaign.address, campaign.address, contributor, allocation)

        record_event(
            session,
            campaign.address,
            EventName.TOKENS_CLAIMED,
            {"contributor": contributor, "contribution": contributed, "amount": allocation},
            now,
        )
        get_campaign_logger(__name__, campaign.address).info(
            f"{contributor} claimed {allocation} {campaign.token_symbol} for contribution {contributed}"
        )
        return allocation

    def withdraw(self, session: Session, campaign: Campaign, caller: str, kind: StreamKind, now: int) -> int:
        """Release the vested part of a stream to the administrator.

        Returns:
            Amount released

        Raises:
            AuthorizationError: If caller is not the administrator
            StageError: NotClaimable unless the reconciled stage is Trade
            ClaimError: NothingWithdrawable if nothing has vested since the last release
            TransferError: If the payout fails
        """
        require_admin(campaign, caller)
        stage = self.stage_machine.reconcile(session, campaign, now)
        if stage != Stage.TRADE:
            raise StageError("NotClaimable", stage, Stage.TRADE, action=f"withdraw {kind.value} proceeds")

        stream = campaign.stream(kind)
        amount = withdrawable(stream.schedule, stream.state, campaign.vesting_start, now)
        if amount <= 0:
            raise ClaimError(f"no {kind.value} proceeds withdrawable at {now}", "NothingWithdrawable")

        stream.released = stream.released + amount
        self.ledger.transfer(session, stream_asset(campaign, kind), campaign.address, campaign.admin_address, amount)

        record_event(
            session,
            campaign.address,
            EventName.PROCEEDS_WITHDRAWN,
            {
                "stream": kind,
                "amount": amount,
                "released": stream.released,
                "total_allocated": stream.total_allocated,
            },
            now,
        )
        get_campaign_logger(__name__, campaign.address).info(
            f"Released {amount} of {kind.value} stream ({stream.released}/{stream.total_allocated})"
        )
        return amount

"""Presale ledger - campaign start and contribution accounting."""

from sqlalchemy.orm import Session

from presale.core.types import Stage
from presale.db.models import Campaign, Contribution
from presale.errors import LedgerError, StageError
from presale.log import get_campaign_logger
from presale.services.access import require_admin
from presale.services.events import EventName, record_event
from presale.services.ledger import AssetLedger
from presale.services.stage_machine import StageMachine
from presale.utils.formatting import normalize_identity


def get_contribution(session: Session, campaign: Campaign, contributor: str) -> Contribution | None:
    """Get the ledger entry of a contributor (None if never contributed)."""
    return (
        session.query(Contribution)
        .filter(
            Contribution.campaign_address == campaign.address,
            Contribution.contributor == contributor,
        )
        .first()
    )


def contribution_of(session: Session, campaign: Campaign, contributor: str) -> int:
    entry = get_contribution(session, campaign, normalize_identity(contributor))
    return entry.amount if entry is not None else 0


class PresaleLedger:
    """Per-contributor and aggregate contribution accounting."""

    def __init__(self, ledger: AssetLedger, stage_machine: StageMachine):
        """Initialize presale ledger.

        Args:
            ledger: Asset ledger holding contributed funds
            stage_machine: Stage machine reconciled before every contribution
        """
        self.ledger = ledger
        self.stage_machine = stage_machine

    def start(self, session: Session, campaign: Campaign, caller: str, now: int) -> None:
        """Open the contribution window.

        Args:
            session: Database session
            campaign: Campaign row
            caller: Identity requesting the start
            now: Current timestamp (recorded as start time)

        Raises:
            AuthorizationError: If caller is not the administrator
            StageError: AlreadyStarted unless the campaign is in Initial
        """
        require_admin(campaign, caller)
        current = campaign.current_stage
        if current != Stage.INITIAL:
            raise StageError("AlreadyStarted", current, Stage.INITIAL, action="start")

        campaign.start_time = now
        campaign.stage = Stage.PRESALE.value
        record_event(
            session,
            campaign.address,
            EventName.PRESALE_STARTED,
            {"start_time": now, "deadline": campaign.deadline},
            now,
        )
        get_campaign_logger(__name__, campaign.address).info(
            f"Presale started at {now}, closes at {campaign.deadline}"
        )

    def contribute(self, session: Session, campaign: Campaign, caller: str, amount: int, now: int) -> int:
        """Accept a contribution from ``caller``.

        Bounds are cumulative: the caller's total after this call must stay
        within [min_contribution, max_contribution], and the campaign total
        must stay within the hard cap.

        Args:
            session: Database session
            campaign: Campaign row (locked by the caller)
            caller: Contributor identity
            amount: Native base units sent with the call
            now: Current timestamp

        Returns:
            The caller's cumulative contribution after this call

        Raises:
            StageError: CampaignNotOpen unless the reconciled stage is Presale
            LedgerError: InvalidAmount, BelowMinimum, AboveMaximum or HardCapExceeded
            TransferError: If the caller cannot pay ``amount``
        """
        stage = self.stage_machine.reconcile(session, campaign, now)
        if stage != Stage.PRESALE:
            raise StageError("CampaignNotOpen", stage, Stage.PRESALE, action="contribute")

        if not isinstance(amount, int) or isinstance(amount, bool) or amount <= 0:
            raise LedgerError(f"contribution must be a positive integer, got {amount!r}", "InvalidAmount")

        contributor = normalize_identity(caller)
        entry = get_contribution(session, campaign, contributor)
        existing = entry.amount if entry is not None else 0
        new_total = existing + amount

        if new_total < campaign.min_contribution:
            raise LedgerError(
                f"cumulative contribution {new_total} is below minimum {campaign.min_contribution}",
                "BelowMinimum",
            )
        if new_total > campaign.max_contribution:
            raise LedgerError(
                f"cumulative contribution {new_total} exceeds maximum {campaign.max_contribution}",
                "AboveMaximum",
            )
        if campaign.aggregate_contributed + amount > campaign.hard_cap:
            raise LedgerError(
                f"contribution of {amount} would raise total past hard cap {campaign.hard_cap}",
                "HardCapExceeded",
            )

        # Funds are held by the campaign account
        self.ledger.transfer(session, campaign.native_asset, contributor, campaign.address, amount)

        if entry is None:
            entry = Contribution(campaign_address=campaign.address, contributor=contributor, amount=0)
            session.add(entry)
        entry.amount = new_total
        campaign.aggregate_contributed = campaign.aggregate_contributed + amount

        record_event(
            session,
            campaign.address,
            EventName.CONTRIBUTED,
            {
                "contributor": contributor,
                "amount": amount,
                "contributor_total": new_total,
                "aggregate_contributed": campaign.aggregate_contributed,
            },
            now,
        )
        get_campaign_logger(__name__, campaign.address).info(
            f"Contribution of {amount} from {contributor} (total {new_total}, "
            f"raised {campaign.aggregate_contributed}/{campaign.hard_cap})"
        )
        return new_total

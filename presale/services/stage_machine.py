"""Stage machine - lazy, idempotent campaign reconciliation."""

from sqlalchemy.orm import Session

from presale.core.allocation import liquidity_amounts, vesting_totals
from presale.core.types import Stage, StreamKind
from presale.db.models import Campaign
from presale.errors import LiquidityError, StageError, TransferError
from presale.log import get_campaign_logger
from presale.services.events import EventName, record_event
from presale.venues.base import LiquidityReceipt, LiquidityVenue


class StageMachine:
    """Single source of truth for which stage a campaign is in."""

    def __init__(self, venue: LiquidityVenue):
        """Initialize stage machine.

        Args:
            venue: Liquidity venue used on the Trade transition
        """
        self.venue = venue

    def reconcile(self, session: Session, campaign: Campaign, now: int) -> Stage:
        """Apply the time-based transition if it is due.

        If the campaign is in Presale and its window has closed, moves it to
        Refund (aggregate below soft cap) or Trade (otherwise). The Trade
        transition supplies liquidity and fixes the vesting allocations; any
        failure in it propagates and the session rollback discards the whole
        transition. Outside Presale, or before the deadline, nothing changes.

        Args:
            session: Database session
            campaign: Campaign row (locked by the caller)
            now: Current timestamp

        Returns:
            Stage after reconciliation
        """
        stage = campaign.current_stage
        if stage != Stage.PRESALE or now <= campaign.deadline:
            return stage

        if campaign.aggregate_contributed < campaign.soft_cap:
            self._advance(session, campaign, Stage.REFUND, now)
        else:
            self._enter_trade(session, campaign, now)
        return campaign.current_stage

    def _advance(self, session: Session, campaign: Campaign, target: Stage, now: int) -> None:
        current = campaign.current_stage
        if not current.can_advance_to(target):
            raise StageError("IllegalTransition", current, target, action=f"transition to {target.value}")
        campaign.stage = target.value
        record_event(
            session,
            campaign.address,
            EventName.STAGE_CHANGED,
            {
                "from_stage": current,
                "to_stage": target,
                "aggregate_contributed": campaign.aggregate_contributed,
                "soft_cap": campaign.soft_cap,
            },
            now,
        )
        get_campaign_logger(__name__, campaign.address).info(
            f"Stage {current.value} -> {target.value} "
            f"(raised {campaign.aggregate_contributed}, soft cap {campaign.soft_cap})"
        )

    def _enter_trade(self, session: Session, campaign: Campaign, now: int) -> None:
        log = get_campaign_logger(__name__, campaign.address)
        streams = {kind: campaign.stream(kind) for kind in StreamKind}
        if any(stream.allocated_at is not None for stream in streams.values()):
            # Allocation happens exactly once; reaching here means corrupted state
            raise RuntimeError(f"Campaign {campaign.address} vesting already allocated")

        eth_split = campaign.eth_split_table()
        token_split = campaign.token_split_table()
        aggregate = campaign.aggregate_contributed
        supply = campaign.total_supply

        wanted = liquidity_amounts(aggregate, supply, eth_split, token_split)
        receipt = self._supply_liquidity(session, campaign, wanted.native, wanted.token, now)
        totals = vesting_totals(aggregate, supply, eth_split, token_split)

        streams[StreamKind.LIQUIDITY].total_allocated = receipt.liquidity
        streams[StreamKind.NATIVE].total_allocated = totals.native
        streams[StreamKind.TOKEN].total_allocated = totals.token
        for stream in streams.values():
            stream.allocated_at = now
        campaign.liquidity_pool = receipt.position_asset or None

        if receipt.liquidity:
            record_event(
                session,
                campaign.address,
                EventName.LIQUIDITY_ADDED,
                {
                    "pool": receipt.position_asset,
                    "native_amount": receipt.native_used,
                    "token_amount": receipt.token_used,
                    "liquidity": receipt.liquidity,
                },
                now,
            )
        self._advance(session, campaign, Stage.TRADE, now)
        log.info(
            f"Vesting allocated: native={totals.native}, token={totals.token}, liquidity={receipt.liquidity}"
        )

    def _supply_liquidity(
        self,
        session: Session,
        campaign: Campaign,
        native_amount: int,
        token_amount: int,
        now: int,
    ) -> LiquidityReceipt:
        if native_amount == 0 and token_amount == 0:
            return LiquidityReceipt(native_used=0, token_used=0, liquidity=0, position_asset="")

        log = get_campaign_logger(__name__, campaign.address)
        try:
            receipt = self.venue.add_liquidity(
                session,
                provider=campaign.address,
                native_asset=campaign.native_asset,
                token_asset=campaign.address,
                native_amount=native_amount,
                token_amount=token_amount,
                now=now,
            )
        except LiquidityError as e:
            log.error(f"Liquidity venue rejected deposit: {e}")
            raise
        except TransferError as e:
            log.error(f"Liquidity venue transfer failed: {e}")
            raise LiquidityError(e.message) from e

        # A short fill is slippage; abort rather than accept a worse position
        if receipt.native_used < native_amount or receipt.token_used < token_amount:
            log.error(
                f"Liquidity venue short-filled deposit: native {receipt.native_used}/{native_amount}, "
                f"token {receipt.token_used}/{token_amount}"
            )
            raise LiquidityError(
                f"venue used native {receipt.native_used}/{native_amount}, token {receipt.token_used}/{token_amount}"
            )
        if receipt.liquidity <= 0:
            raise LiquidityError("venue returned an empty liquidity position")
        return receipt

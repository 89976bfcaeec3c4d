"""Campaign facade - one object per deployed campaign.

Each public method is one operation: it opens a session, locks the campaign
row, runs the service call and commits. Any exception rolls the operation
back. Mutations first commit a due stage transition on its own; if that
transition fails nothing is committed and the next operation retries it.
"""

from dataclasses import dataclass, field
from typing import Dict, Optional

from sqlalchemy.orm import Session
from web3 import Web3

from presale.clock import Clock, SystemClock
from presale.core.allocation import token_allocation
from presale.core.types import CampaignParams, Stage, StreamKind
from presale.db.models import Campaign, VestingStream
from presale.db.session import get_session
from presale.errors import ConfigurationError
from presale.log import get_campaign_logger
from presale.services.events import EventName, record_event
from presale.services.ledger import AssetLedger
from presale.services.presale_ledger import PresaleLedger, contribution_of
from presale.services.stage_machine import StageMachine
from presale.services.withdrawals import WithdrawalCoordinator, stream_withdrawable
from presale.utils.formatting import normalize_identity
from presale.venues.base import LiquidityVenue


def campaign_address(admin: str, symbol: str, nonce: int) -> str:
    """Deterministic campaign address from deployer, symbol and deploy count."""
    digest = Web3.keccak(text=f"campaign:{admin}:{symbol}:{nonce}")
    return Web3.to_hex(digest[-20:])


def deploy_campaign(
    session: Session,
    params: CampaignParams,
    ledger: AssetLedger,
    now: int,
    native_asset: str = "native",
) -> Campaign:
    """Validate parameters and persist a new campaign in stage Initial.

    The full token supply is minted to the campaign's own account; presale
    claims, the liquidity deposit and the token vesting stream are all paid
    from it.

    Args:
        session: Database session
        params: Campaign parameters
        ledger: Asset ledger
        now: Deployment timestamp
        native_asset: Asset id contributions are paid in

    Returns:
        The new Campaign row

    Raises:
        ConfigurationError: If any parameter is invalid
    """
    params.validate()
    try:
        admin = normalize_identity(params.admin)
    except ValueError as e:
        raise ConfigurationError(str(e)) from e

    config = params.config
    nonce = session.query(Campaign).filter(Campaign.admin_address == admin).count()
    address = campaign_address(admin, params.token.symbol, nonce)

    campaign = Campaign(
        address=address,
        admin_address=admin,
        token_name=params.token.name,
        token_symbol=params.token.symbol,
        total_supply=params.token.total_supply,
        native_asset=native_asset,
        duration=config.duration,
        min_contribution=config.min_contribution,
        max_contribution=config.max_contribution,
        soft_cap=config.soft_cap,
        hard_cap=config.hard_cap,
        eth_split=config.eth_split.to_json(),
        token_split=config.token_split.to_json(),
        stage=Stage.INITIAL.value,
        start_time=None,
        aggregate_contributed=0,
        consumed_total=0,
        deployed_at=now,
    )
    for kind in StreamKind:
        schedule = params.vesting[kind]
        campaign.vesting_streams.append(
            VestingStream(
                kind=kind.value,
                cliff=schedule.cliff,
                duration=schedule.duration,
                total_allocated=0,
                released=0,
            )
        )
    session.add(campaign)
    session.flush()

    ledger.mint(session, address, address, params.token.total_supply)
    record_event(
        session,
        address,
        EventName.CAMPAIGN_DEPLOYED,
        {
            "admin": admin,
            "token_name": params.token.name,
            "token_symbol": params.token.symbol,
            "total_supply": params.token.total_supply,
            "soft_cap": config.soft_cap,
            "hard_cap": config.hard_cap,
        },
        now,
    )
    get_campaign_logger(__name__, address).info(
        f"Deployed {params.token.symbol} campaign for {admin} "
        f"(soft cap {config.soft_cap}, hard cap {config.hard_cap})"
    )
    return campaign


@dataclass
class StreamSummary:
    kind: StreamKind
    cliff: int
    duration: int
    total_allocated: int
    released: int
    withdrawable: int


@dataclass
class CampaignSummary:
    """Read-only snapshot of a campaign."""

    address: str
    admin: str
    token_name: str
    token_symbol: str
    total_supply: int
    native_asset: str
    stage: Stage
    pending_transition: bool
    start_time: Optional[int]
    deadline: Optional[int]
    duration: int
    min_contribution: int
    max_contribution: int
    soft_cap: int
    hard_cap: int
    aggregate_contributed: int
    consumed_total: int
    liquidity_pool: Optional[str]
    eth_split: Dict[str, int] = field(default_factory=dict)
    token_split: Dict[str, int] = field(default_factory=dict)
    streams: Dict[StreamKind, StreamSummary] = field(default_factory=dict)


class PresaleCampaign:
    """Operations on one deployed campaign."""

    def __init__(
        self,
        address: str,
        ledger: AssetLedger,
        venue: LiquidityVenue,
        clock: Optional[Clock] = None,
    ):
        """Initialize campaign facade.

        Args:
            address: Campaign address
            ledger: Asset ledger
            venue: Liquidity venue for the Trade transition
            clock: Time source (defaults to wall clock)
        """
        self.address = address.lower()
        self.ledger = ledger
        self.clock = clock or SystemClock()
        self.stage_machine = StageMachine(venue)
        self.presale_ledger = PresaleLedger(ledger, self.stage_machine)
        self.coordinator = WithdrawalCoordinator(ledger, self.stage_machine)

    @classmethod
    def deploy(
        cls,
        params: CampaignParams,
        ledger: AssetLedger,
        venue: LiquidityVenue,
        clock: Optional[Clock] = None,
        native_asset: str = "native",
    ) -> "PresaleCampaign":
        """Deploy a campaign and return its facade."""
        clock = clock or SystemClock()
        with get_session() as session:
            campaign = deploy_campaign(session, params, ledger, clock(), native_asset)
            address = campaign.address
        return cls(address, ledger, venue, clock)

    def _load(self, session: Session, lock: bool = False) -> Campaign:
        query = session.query(Campaign).filter(Campaign.address == self.address)
        if lock:
            query = query.with_for_update()
        campaign = query.first()
        if campaign is None:
            raise LookupError(f"Campaign not found: {self.address}")
        return campaign

    def _now(self, at: Optional[int]) -> int:
        return int(at) if at is not None else self.clock()

    # Mutating operations
    #
    # A due stage transition is committed in its own transaction before the
    # operation runs. A liquidity deposit sent on chain cannot be rolled back,
    # so it must not share a transaction with an operation that may still be
    # rejected. A failed transition commits nothing and the operation is not
    # attempted.

    def _reconciled(self, at: Optional[int]) -> int:
        now = self._now(at)
        self.reconcile(now)
        return now

    def start(self, caller: str, at: Optional[int] = None) -> None:
        with get_session() as session:
            self.presale_ledger.start(session, self._load(session, lock=True), caller, self._now(at))

    def contribute(self, caller: str, amount: int, at: Optional[int] = None) -> int:
        now = self._reconciled(at)
        with get_session() as session:
            campaign = self._load(session, lock=True)
            return self.presale_ledger.contribute(session, campaign, caller, amount, now)

    def reconcile(self, at: Optional[int] = None) -> Stage:
        with get_session() as session:
            return self.stage_machine.reconcile(session, self._load(session, lock=True), self._now(at))

    def claim_refund(self, caller: str, at: Optional[int] = None) -> int:
        now = self._reconciled(at)
        with get_session() as session:
            return self.coordinator.claim_refund(session, self._load(session, lock=True), caller, now)

    def claim_tokens(self, caller: str, at: Optional[int] = None) -> int:
        now = self._reconciled(at)
        with get_session() as session:
            return self.coordinator.claim_tokens(session, self._load(session, lock=True), caller, now)

    def withdraw(self, caller: str, kind: StreamKind, at: Optional[int] = None) -> int:
        kind = StreamKind(kind)
        now = self._reconciled(at)
        with get_session() as session:
            campaign = self._load(session, lock=True)
            return self.coordinator.withdraw(session, campaign, caller, kind, now)

    def withdraw_native(self, caller: str, at: Optional[int] = None) -> int:
        return self.withdraw(caller, StreamKind.NATIVE, at)

    def withdraw_tokens(self, caller: str, at: Optional[int] = None) -> int:
        return self.withdraw(caller, StreamKind.TOKEN, at)

    def withdraw_liquidity(self, caller: str, at: Optional[int] = None) -> int:
        return self.withdraw(caller, StreamKind.LIQUIDITY, at)

    # Read operations

    def stage(self) -> Stage:
        """Stored stage (a due transition is applied by the next mutation)."""
        with get_session() as session:
            return self._load(session).current_stage

    def contribution_of(self, identity: str) -> int:
        with get_session() as session:
            return contribution_of(session, self._load(session), identity)

    def withdrawable(self, kind: StreamKind, at: Optional[int] = None) -> int:
        with get_session() as session:
            return stream_withdrawable(self._load(session), StreamKind(kind), self._now(at))

    def preview_claim(self, identity: str) -> int:
        """Tokens ``identity`` would receive from a claim once in Trade."""
        with get_session() as session:
            campaign = self._load(session)
            return token_allocation(
                contribution_of(session, campaign, identity),
                campaign.aggregate_contributed,
                campaign.total_supply,
                campaign.token_split_table(),
            )

    def balance_of(self, asset: str, holder: str) -> int:
        with get_session() as session:
            return self.ledger.balance_of(session, asset, normalize_identity(holder))

    def summary(self, at: Optional[int] = None) -> CampaignSummary:
        now = self._now(at)
        with get_session() as session:
            campaign = self._load(session)
            stage = campaign.current_stage
            pending = stage == Stage.PRESALE and now > campaign.deadline
            streams = {}
            for kind in StreamKind:
                stream = campaign.stream(kind)
                streams[kind] = StreamSummary(
                    kind=kind,
                    cliff=stream.cliff,
                    duration=stream.duration,
                    total_allocated=stream.total_allocated,
                    released=stream.released,
                    withdrawable=stream_withdrawable(campaign, kind, now),
                )
            return CampaignSummary(
                address=campaign.address,
                admin=campaign.admin_address,
                token_name=campaign.token_name,
                token_symbol=campaign.token_symbol,
                total_supply=campaign.total_supply,
                native_asset=campaign.native_asset,
                stage=stage,
                pending_transition=pending,
                start_time=campaign.start_time,
                deadline=campaign.deadline if campaign.start_time is not None else None,
                duration=campaign.duration,
                min_contribution=campaign.min_contribution,
                max_contribution=campaign.max_contribution,
                soft_cap=campaign.soft_cap,
                hard_cap=campaign.hard_cap,
                aggregate_contributed=campaign.aggregate_contributed,
                consumed_total=campaign.consumed_total,
                liquidity_pool=campaign.liquidity_pool,
                eth_split=dict(campaign.eth_split_table().items()),
                token_split=dict(campaign.token_split_table().items()),
                streams=streams,
            )

"""SQLAlchemy ORM models for campaign state.

One ``campaigns`` row per deployed campaign. The ledger (contributions),
vesting streams and stage live only here and are mutated only by the
service functions in ``presale.services``.
"""

from datetime import datetime, timezone

from sqlalchemy import (
    BigInteger,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base, relationship

from presale.core.splits import Split
from presale.core.types import CampaignConfig, Stage, StreamKind, VestingSchedule, VestingState
from presale.db.types import Uint256

Base = declarative_base()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Campaign(Base):
    """Campaign model (configuration, stage and aggregate totals)."""

    __tablename__ = "campaigns"

    address = Column(String(42), primary_key=True)  # 0x + 40 hex, also the token asset id
    admin_address = Column(String(255), nullable=False)
    token_name = Column(String(255), nullable=False)
    token_symbol = Column(String(32), nullable=False)
    total_supply = Column(Uint256(), nullable=False)
    native_asset = Column(String(255), nullable=False)  # asset id contributions are paid in

    # Configuration (immutable after deployment)
    duration = Column(BigInteger, nullable=False)  # seconds
    min_contribution = Column(Uint256(), nullable=False)
    max_contribution = Column(Uint256(), nullable=False)
    soft_cap = Column(Uint256(), nullable=False)
    hard_cap = Column(Uint256(), nullable=False)
    eth_split = Column(Text, nullable=False)  # JSON {"liquidity": n, "vest": n}
    token_split = Column(Text, nullable=False)  # JSON {"presale": n, "liquidity": n, "vest": n}

    # Lifecycle
    stage = Column(String(16), nullable=False, default=Stage.INITIAL.value)
    start_time = Column(BigInteger, nullable=True)  # Unix timestamp, set once
    aggregate_contributed = Column(Uint256(), nullable=False, default=0)
    consumed_total = Column(Uint256(), nullable=False, default=0)  # entries zeroed by refunds/claims
    liquidity_pool = Column(String(255), nullable=True)  # LP asset id after Trade
    deployed_at = Column(BigInteger, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)

    # Relationships
    contributions = relationship("Contribution", back_populates="campaign", cascade="all, delete-orphan")
    vesting_streams = relationship("VestingStream", back_populates="campaign", cascade="all, delete-orphan")
    events = relationship("Event", back_populates="campaign")

    @property
    def current_stage(self) -> Stage:
        return Stage(self.stage)

    @property
    def deadline(self) -> int:
        """End of the contribution window (also the vesting start)."""
        if self.start_time is None:
            raise ValueError(f"Campaign {self.address} has not started")
        return self.start_time + self.duration

    @property
    def vesting_start(self) -> int:
        return self.deadline

    def config(self) -> CampaignConfig:
        return CampaignConfig(
            duration=self.duration,
            min_contribution=self.min_contribution,
            max_contribution=self.max_contribution,
            soft_cap=self.soft_cap,
            hard_cap=self.hard_cap,
            eth_split=self.eth_split_table(),
            token_split=self.token_split_table(),
        )

    def eth_split_table(self) -> Split:
        return Split.from_json("eth", self.eth_split)

    def token_split_table(self) -> Split:
        return Split.from_json("token", self.token_split)

    def stream(self, kind: StreamKind) -> "VestingStream":
        for stream in self.vesting_streams:
            if stream.kind == kind.value:
                return stream
        raise LookupError(f"Campaign {self.address} has no {kind.value} stream")


class Contribution(Base):
    """Cumulative contribution of one contributor to one campaign."""

    __tablename__ = "contributions"
    __table_args__ = (
        UniqueConstraint("campaign_address", "contributor", name="uq_contributions_campaign_contributor"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    campaign_address = Column(String(42), ForeignKey("campaigns.address"), nullable=False)
    contributor = Column(String(255), nullable=False)
    amount = Column(Uint256(), nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)

    campaign = relationship("Campaign", back_populates="contributions")


class VestingStream(Base):
    """Schedule and running totals of one payout stream."""

    __tablename__ = "vesting_streams"
    __table_args__ = (
        UniqueConstraint("campaign_address", "kind", name="uq_vesting_streams_campaign_kind"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    campaign_address = Column(String(42), ForeignKey("campaigns.address"), nullable=False)
    kind = Column(String(16), nullable=False)  # native, token, liquidity
    cliff = Column(BigInteger, nullable=False)
    duration = Column(BigInteger, nullable=False)
    total_allocated = Column(Uint256(), nullable=False, default=0)
    released = Column(Uint256(), nullable=False, default=0)
    allocated_at = Column(BigInteger, nullable=True)  # set once at the Trade transition

    campaign = relationship("Campaign", back_populates="vesting_streams")

    @property
    def schedule(self) -> VestingSchedule:
        return VestingSchedule(cliff=self.cliff, duration=self.duration)

    @property
    def state(self) -> VestingState:
        return VestingState(total_allocated=self.total_allocated, released=self.released)


class Balance(Base):
    """Holding of one asset by one identity."""

    __tablename__ = "balances"
    __table_args__ = (UniqueConstraint("asset", "holder", name="uq_balances_asset_holder"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    asset = Column(String(255), nullable=False)
    holder = Column(String(255), nullable=False)
    amount = Column(Uint256(), nullable=False, default=0)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)


class LiquidityPool(Base):
    """Constant-product pool of the local liquidity venue."""

    __tablename__ = "liquidity_pools"
    __table_args__ = (UniqueConstraint("native_asset", "token_asset", name="uq_pools_pair"),)

    address = Column(String(42), primary_key=True)  # also the LP position asset id
    native_asset = Column(String(255), nullable=False)
    token_asset = Column(String(255), nullable=False)
    reserve_native = Column(Uint256(), nullable=False, default=0)
    reserve_token = Column(Uint256(), nullable=False, default=0)
    total_shares = Column(Uint256(), nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)


class Event(Base):
    """Outbox of domain events, published to RabbitMQ by the relay."""

    __tablename__ = "events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    campaign_address = Column(String(42), ForeignKey("campaigns.address"), nullable=False)
    event_name = Column(String(100), nullable=False)  # Contributed, StageChanged, etc.
    event_data = Column(Text, nullable=False)  # JSON string
    timestamp = Column(BigInteger, nullable=False)  # engine clock at the operation
    published = Column(Boolean, nullable=False, default=False)
    published_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    campaign = relationship("Campaign", back_populates="events")

"""Tests for lazy reconciliation and the Trade transition."""

import math

import pytest

from presale.core.types import Stage, StreamKind
from presale.db.models import Event
from presale.db.session import get_session
from presale.errors import LiquidityError
from presale.services.campaign import PresaleCampaign
from presale.tests.factories import (
    ADMIN,
    CONTRIBUTORS,
    DEADLINE,
    ETHER,
    balance,
    close_presale,
    fund,
    make_params,
)
from presale.venues.base import LiquidityReceipt
from presale.venues.pool import MINIMUM_LIQUIDITY, ConstantProductVenue


class CountingVenue:
    """Wraps a venue and counts deposits."""

    def __init__(self, inner):
        self.inner = inner
        self.calls = 0

    def add_liquidity(self, session, **kwargs):
        self.calls += 1
        return self.inner.add_liquidity(session, **kwargs)


class FailingVenue:
    def add_liquidity(self, session, **kwargs):
        raise LiquidityError("venue unavailable")


class ShortFillVenue:
    def add_liquidity(self, session, native_amount, token_amount, **kwargs):
        return LiquidityReceipt(native_amount - 1, token_amount, 10**20, "0xpool")


def fill_to_hard_cap(campaign):
    for contributor in CONTRIBUTORS:
        campaign.contribute(contributor, 2 * ETHER)


def event_names(address):
    with get_session() as session:
        rows = session.query(Event).filter(Event.campaign_address == address).order_by(Event.id).all()
        return [row.event_name for row in rows]


def test_no_transition_before_start(campaign, clock):
    clock.advance(365 * 86400)
    assert campaign.reconcile() == Stage.INITIAL


def test_no_transition_at_deadline(started, clock):
    """The window is closed only strictly after start + duration."""
    clock.timestamp = DEADLINE
    assert started.reconcile() == Stage.PRESALE


def test_presale_to_refund_below_soft_cap(started, clock):
    started.contribute(CONTRIBUTORS[0], 2 * ETHER)
    close_presale(clock)

    assert started.reconcile() == Stage.REFUND
    assert started.stage() == Stage.REFUND
    assert event_names(started.address)[-1] == "StageChanged"


def test_trade_transition_allocates_once(db, ledger, clock, params):
    venue = CountingVenue(ConstantProductVenue(ledger))

    for contributor in CONTRIBUTORS:
        fund(ledger, contributor, 2 * ETHER)
    campaign = PresaleCampaign.deploy(params, ledger, venue, clock)
    campaign.start(ADMIN)
    fill_to_hard_cap(campaign)
    close_presale(clock)

    assert campaign.reconcile() == Stage.TRADE
    assert campaign.reconcile() == Stage.TRADE
    clock.advance(86400)
    assert campaign.reconcile() == Stage.TRADE
    assert venue.calls == 1

    summary = campaign.summary()
    shares = math.isqrt(12 * ETHER * 300_000 * ETHER) - MINIMUM_LIQUIDITY
    assert summary.streams[StreamKind.LIQUIDITY].total_allocated == shares
    assert summary.streams[StreamKind.NATIVE].total_allocated == 8 * ETHER
    assert summary.streams[StreamKind.TOKEN].total_allocated == 200_000 * ETHER
    assert summary.liquidity_pool is not None

    assert balance(ledger, "native", campaign.address) == 8 * ETHER
    assert balance(ledger, campaign.address, campaign.address) == 700_000 * ETHER
    assert balance(ledger, summary.liquidity_pool, campaign.address) == shares
    assert event_names(campaign.address).count("LiquidityAdded") == 1
    assert event_names(campaign.address).count("StageChanged") == 1


def test_venue_failure_aborts_whole_transition(started, ledger, clock):
    fill_to_hard_cap(started)
    close_presale(clock)

    broken = PresaleCampaign(started.address, ledger, FailingVenue(), clock)
    with pytest.raises(LiquidityError):
        broken.reconcile()

    summary = started.summary()
    assert summary.stage == Stage.PRESALE
    assert summary.pending_transition is True
    assert summary.liquidity_pool is None
    assert all(stream.total_allocated == 0 for stream in summary.streams.values())
    assert balance(ledger, "native", started.address) == 20 * ETHER
    assert "StageChanged" not in event_names(started.address)

    # Funds stay escrowed; the next operation with a working venue retries
    assert started.reconcile() == Stage.TRADE


def test_short_fill_is_rejected(started, ledger, clock):
    fill_to_hard_cap(started)
    close_presale(clock)

    short = PresaleCampaign(started.address, ledger, ShortFillVenue(), clock)
    with pytest.raises(LiquidityError, match="venue used native"):
        short.reconcile()
    assert started.stage() == Stage.PRESALE


def test_failed_transition_blocks_dependent_operation(started, ledger, clock):
    fill_to_hard_cap(started)
    close_presale(clock)

    broken = PresaleCampaign(started.address, ledger, FailingVenue(), clock)
    with pytest.raises(LiquidityError):
        broken.claim_tokens(CONTRIBUTORS[0])
    assert started.contribution_of(CONTRIBUTORS[0]) == 2 * ETHER


def test_zero_liquidity_split_skips_venue(db, ledger, clock):
    params = make_params(soft_cap=2 * ETHER, eth_split=(0, 100), token_split=(70, 0, 30))
    venue = CountingVenue(ConstantProductVenue(ledger))

    fund(ledger, CONTRIBUTORS[0], 100 * ETHER)
    campaign = PresaleCampaign.deploy(params, ledger, venue, clock)
    campaign.start(ADMIN)
    campaign.contribute(CONTRIBUTORS[0], 2 * ETHER)
    close_presale(clock)

    assert campaign.reconcile() == Stage.TRADE
    assert venue.calls == 0
    summary = campaign.summary()
    assert summary.liquidity_pool is None
    assert summary.streams[StreamKind.LIQUIDITY].total_allocated == 0
    assert summary.streams[StreamKind.NATIVE].total_allocated == 2 * ETHER


def test_zero_soft_cap_with_no_contributions_cannot_seed_pool(db, ledger, venue, clock):
    """An empty raise has no native side to deposit, so the venue refuses it."""
    campaign = PresaleCampaign.deploy(make_params(soft_cap=0), ledger, venue, clock)
    campaign.start(ADMIN)
    close_presale(clock)

    with pytest.raises(LiquidityError):
        campaign.reconcile()
    assert campaign.stage() == Stage.PRESALE


def test_stage_is_monotonic():
    assert Stage.INITIAL.can_advance_to(Stage.PRESALE)
    assert Stage.PRESALE.can_advance_to(Stage.REFUND)
    assert Stage.PRESALE.can_advance_to(Stage.TRADE)
    assert not Stage.REFUND.can_advance_to(Stage.TRADE)
    assert not Stage.TRADE.can_advance_to(Stage.PRESALE)
    assert not Stage.PRESALE.can_advance_to(Stage.INITIAL)
    assert all(stage.is_terminal for stage in (Stage.REFUND, Stage.TRADE))

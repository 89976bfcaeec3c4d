"""Tests for refunds, token claims and vested withdrawals."""

import pytest

from presale.core.types import Stage, StreamKind
from presale.errors import AuthorizationError, ClaimError, StageError, TransferError
from presale.services.campaign import PresaleCampaign
from presale.services.ledger import AssetLedger
from presale.tests.factories import ADMIN, ALICE, CONTRIBUTORS, DAY, DEADLINE, ETHER, balance, close_presale


class FailingPayoutLedger(AssetLedger):
    """Accepts deposits but fails every payment out of ``payer``."""

    def __init__(self, payer):
        self.payer = payer

    def transfer(self, session, asset, sender, recipient, amount):
        if sender == self.payer:
            raise TransferError(f"payment of {amount} {asset} to {recipient} bounced")
        super().transfer(session, asset, sender, recipient, amount)


@pytest.fixture
def refunding(started, clock):
    for contributor in CONTRIBUTORS[:3]:
        started.contribute(contributor, 2 * ETHER)
    close_presale(clock)
    return started


@pytest.fixture
def trading(started, clock):
    for contributor in CONTRIBUTORS:
        started.contribute(contributor, 2 * ETHER)
    close_presale(clock)
    assert started.reconcile() == Stage.TRADE
    return started


def test_refund_returns_contribution(refunding, ledger):
    assert refunding.claim_refund(CONTRIBUTORS[0]) == 2 * ETHER
    assert balance(ledger, "native", CONTRIBUTORS[0]) == 100 * ETHER
    assert refunding.contribution_of(CONTRIBUTORS[0]) == 0
    summary = refunding.summary()
    assert summary.stage == Stage.REFUND
    assert summary.aggregate_contributed == 6 * ETHER
    assert summary.consumed_total == 2 * ETHER


def test_refund_only_once(refunding):
    refunding.claim_refund(CONTRIBUTORS[0])
    with pytest.raises(ClaimError) as exc_info:
        refunding.claim_refund(CONTRIBUTORS[0])
    assert exc_info.value.code == "NothingToRefund"


def test_refund_for_non_contributor(refunding):
    with pytest.raises(ClaimError) as exc_info:
        refunding.claim_refund(ALICE)
    assert exc_info.value.code == "NothingToRefund"


def test_refund_while_presale_open(started):
    started.contribute(ALICE, ETHER)
    with pytest.raises(StageError) as exc_info:
        started.claim_refund(ALICE)
    assert exc_info.value.code == "NotRefundable"


def test_failed_refund_payment_keeps_claim(refunding, ledger, clock):
    """A bounced payment restores the ledger entry; the claim stays claimable."""
    ledger_out = FailingPayoutLedger(refunding.address)
    bouncing = PresaleCampaign(refunding.address, ledger_out, refunding.stage_machine.venue, clock)
    with pytest.raises(TransferError, match="bounced"):
        bouncing.claim_refund(CONTRIBUTORS[1])

    assert refunding.contribution_of(CONTRIBUTORS[1]) == 2 * ETHER
    assert refunding.summary().consumed_total == 0
    assert balance(ledger, "native", refunding.address) == 6 * ETHER

    assert refunding.claim_refund(CONTRIBUTORS[1]) == 2 * ETHER


def test_claims_and_withdrawals_closed_in_refund(refunding):
    with pytest.raises(StageError) as exc_info:
        refunding.claim_tokens(CONTRIBUTORS[0])
    assert exc_info.value.code == "NotClaimable"
    with pytest.raises(StageError):
        refunding.withdraw_native(ADMIN)


def test_claim_tokens(trading, ledger):
    share = 500_000 * ETHER // 10
    assert trading.preview_claim(CONTRIBUTORS[0]) == share
    assert trading.claim_tokens(CONTRIBUTORS[0]) == share
    assert balance(ledger, trading.address, CONTRIBUTORS[0]) == share
    assert trading.contribution_of(CONTRIBUTORS[0]) == 0

    with pytest.raises(ClaimError) as exc_info:
        trading.claim_tokens(CONTRIBUTORS[0])
    assert exc_info.value.code == "NothingToClaim"


def test_claim_tokens_non_contributor(trading):
    with pytest.raises(ClaimError):
        trading.claim_tokens(ALICE)


def test_refund_closed_in_trade(trading):
    with pytest.raises(StageError) as exc_info:
        trading.claim_refund(CONTRIBUTORS[0])
    assert exc_info.value.code == "NotRefundable"


def test_all_claims_distribute_presale_pool(trading, ledger):
    claimed = sum(trading.claim_tokens(contributor) for contributor in CONTRIBUTORS)
    assert claimed == 500_000 * ETHER
    # Only the token vesting stream remains in the campaign account
    assert balance(ledger, trading.address, trading.address) == 200_000 * ETHER


def test_withdraw_requires_admin(trading, clock):
    clock.timestamp = DEADLINE + 100 * DAY
    with pytest.raises(AuthorizationError):
        trading.withdraw_native(ALICE)


def test_withdraw_before_cliff(trading, clock):
    clock.timestamp = DEADLINE + 29 * DAY
    assert trading.withdrawable(StreamKind.NATIVE) == 0
    with pytest.raises(ClaimError) as exc_info:
        trading.withdraw_native(ADMIN)
    assert exc_info.value.code == "NothingWithdrawable"


def test_withdraw_native_vests_linearly(trading, ledger, clock):
    total = 8 * ETHER
    clock.timestamp = DEADLINE + 30 * DAY
    first = trading.withdraw_native(ADMIN)
    assert first == total * 30 // 365

    with pytest.raises(ClaimError):
        trading.withdraw_native(ADMIN)

    clock.timestamp = DEADLINE + 400 * DAY
    assert trading.withdraw_native(ADMIN) == total - first
    assert balance(ledger, "native", ADMIN) == total
    assert balance(ledger, "native", trading.address) == 0

    stream = trading.summary().streams[StreamKind.NATIVE]
    assert stream.released == stream.total_allocated == total


def test_withdraw_tokens_and_liquidity(trading, ledger, clock):
    clock.timestamp = DEADLINE + 365 * DAY
    assert trading.withdraw_tokens(ADMIN) == 200_000 * ETHER
    assert balance(ledger, trading.address, ADMIN) == 200_000 * ETHER

    summary = trading.summary()
    shares = summary.streams[StreamKind.LIQUIDITY].total_allocated
    assert trading.withdraw_liquidity(ADMIN) == shares
    assert balance(ledger, summary.liquidity_pool, ADMIN) == shares
    assert balance(ledger, summary.liquidity_pool, trading.address) == 0


def test_failed_withdrawal_payment_keeps_release(trading, clock):
    clock.timestamp = DEADLINE + 100 * DAY
    ledger_out = FailingPayoutLedger(trading.address)
    bouncing = PresaleCampaign(trading.address, ledger_out, trading.stage_machine.venue, clock)
    with pytest.raises(TransferError):
        bouncing.withdraw_native(ADMIN)
    assert trading.summary().streams[StreamKind.NATIVE].released == 0
    assert trading.withdraw_native(ADMIN) == 8 * ETHER * 100 // 365

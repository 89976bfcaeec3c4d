"""Tests for the router-backed liquidity venue (web3 mocked)."""

from unittest.mock import Mock

import pytest
from web3 import Web3

from presale.core.types import Stage, StreamKind
from presale.db.session import get_session
from presale.errors import ClaimError, LiquidityError, StageError
from presale.eth.router import RouterVenue
from presale.services.campaign import PresaleCampaign
from presale.tests.factories import ALICE, CONTRIBUTORS, ETHER, balance, close_presale, fund

ROUTER = "0x7a250d5630b4cf539739df2c5dacb4c659f2488d"
FACTORY = "0x5c69bee701ef814a2b6a3edd4b1652cb9cc5aa6f"
WETH = "0xc02aaa39b223fe8d0a0e5c4f27ead9083c756cc2"
PAIR = "0xA478c2975Ab1Ea89e8196811F51A7B7Ade33eB11"
TOKEN = "0x5fbdb2315678afecb367f032d93f642f64180aa3"
OPERATOR = "0x70997970c51812dc3a010c7d01b50e0d17dc79c8"
CAMPAIGN = "0x1111111111111111111111111111111111111111"
TX_HASH = bytes.fromhex("ab" * 32)
ZERO = "0x0000000000000000000000000000000000000000"


def set_minted(pair, *values):
    pair.events.Transfer.return_value.process_receipt.return_value = [
        {"args": {"from": ZERO, "to": Web3.to_checksum_address(OPERATOR), "value": value}} for value in values
    ]


@pytest.fixture
def mock_router():
    """Router contract whose addLiquidityETH fills completely."""
    router = Mock()
    router.functions.factory.return_value.call.return_value = FACTORY
    router.functions.WETH.return_value.call.return_value = WETH
    add_liquidity = router.functions.addLiquidityETH.return_value
    add_liquidity.call.return_value = (300 * ETHER, 12 * ETHER, 60 * ETHER)
    add_liquidity.transact.return_value = TX_HASH
    return router


@pytest.fixture
def mock_pair():
    """Pair contract whose receipt logs mint 60 LP to the operator."""
    pair = Mock()
    set_minted(pair, 60 * ETHER)
    return pair


@pytest.fixture
def mock_eth_client(mock_router, mock_pair):
    """Mock Ethereum client."""
    factory = Mock()
    factory.functions.getPair.return_value.call.return_value = PAIR
    contracts = {ROUTER: mock_router, FACTORY: factory, PAIR.lower(): mock_pair}

    client = Mock()
    client.contract.side_effect = lambda address, abi: contracts[address.lower()]
    client.wait_for_receipt.return_value = {"status": 1, "logs": []}
    return client


@pytest.fixture
def router_venue(mock_eth_client, ledger):
    return RouterVenue(mock_eth_client, ledger, ROUTER, TOKEN, OPERATOR, deadline_seconds=600)


@pytest.fixture
def funded(db, ledger):
    fund(ledger, CAMPAIGN, 12 * ETHER)
    fund(ledger, CAMPAIGN, 300 * ETHER, asset=CAMPAIGN)


def add(venue, native=12 * ETHER, token=300 * ETHER, now=1000):
    with get_session() as session:
        return venue.add_liquidity(session, CAMPAIGN, "native", CAMPAIGN, native, token, now)


def test_add_liquidity_mirrors_deposit(funded, ledger, router_venue, mock_router, mock_eth_client):
    receipt = add(router_venue)

    assert receipt.native_used == 12 * ETHER
    assert receipt.token_used == 300 * ETHER
    assert receipt.liquidity == 60 * ETHER
    assert receipt.position_asset == PAIR.lower()

    assert balance(ledger, "native", CAMPAIGN) == 0
    assert balance(ledger, CAMPAIGN, PAIR.lower()) == 300 * ETHER
    assert balance(ledger, PAIR.lower(), CAMPAIGN) == 60 * ETHER

    args = mock_router.functions.addLiquidityETH.call_args.args
    assert args[1] == args[2] == 300 * ETHER  # no token slippage allowed
    assert args[3] == 12 * ETHER  # no native slippage allowed
    assert args[5] == 1600
    add_liquidity = mock_router.functions.addLiquidityETH.return_value
    add_liquidity.transact.assert_called_once()
    assert add_liquidity.transact.call_args.args[0]["value"] == 12 * ETHER
    mock_eth_client.wait_for_receipt.assert_called_once_with(TX_HASH)


def test_short_fill_preview_aborts_before_sending(funded, ledger, router_venue, mock_router):
    add_liquidity = mock_router.functions.addLiquidityETH.return_value
    add_liquidity.call.return_value = (299 * ETHER, 12 * ETHER, 60 * ETHER)

    with pytest.raises(LiquidityError, match="router would use"):
        add(router_venue)

    add_liquidity.transact.assert_not_called()
    assert balance(ledger, "native", CAMPAIGN) == 12 * ETHER


def test_reverted_preview_becomes_liquidity_error(funded, router_venue, mock_router):
    mock_router.functions.addLiquidityETH.return_value.call.side_effect = ValueError("execution reverted")

    with pytest.raises(LiquidityError, match="preview failed"):
        add(router_venue)


def test_reverted_transaction_leaves_ledger_untouched(funded, ledger, router_venue, mock_eth_client):
    mock_eth_client.wait_for_receipt.return_value = {"status": 0}

    with pytest.raises(LiquidityError, match="reverted"):
        add(router_venue)

    assert balance(ledger, "native", CAMPAIGN) == 12 * ETHER
    assert balance(ledger, PAIR.lower(), CAMPAIGN) == 0


def test_unfunded_campaign_rejected(db, router_venue, mock_router):
    with pytest.raises(LiquidityError, match="cannot fund"):
        add(router_venue)
    mock_router.functions.addLiquidityETH.return_value.transact.assert_not_called()


def test_empty_side_rejected(funded, router_venue):
    with pytest.raises(LiquidityError, match="positive"):
        add(router_venue, token=0)


def test_mined_liquidity_is_recorded_over_preview(funded, ledger, router_venue, mock_pair):
    set_minted(mock_pair, 59 * ETHER)

    receipt = add(router_venue)

    assert receipt.liquidity == 59 * ETHER
    assert balance(ledger, PAIR.lower(), CAMPAIGN) == 59 * ETHER


def test_missing_mint_log_falls_back_to_preview(funded, ledger, router_venue, mock_pair):
    set_minted(mock_pair)

    assert add(router_venue).liquidity == 60 * ETHER
    assert balance(ledger, PAIR.lower(), CAMPAIGN) == 60 * ETHER


def echo_preview(router, liquidity):
    """Make the router preview fill exactly what it is asked for."""
    add_liquidity = router.functions.addLiquidityETH.return_value

    def build(token, amount_token, amount_token_min, amount_eth_min, to, deadline):
        add_liquidity.call.return_value = (amount_token, amount_eth_min, liquidity)
        return add_liquidity

    router.functions.addLiquidityETH.side_effect = build
    return add_liquidity


def test_trade_transition_deposits_once_despite_rejected_calls(started, ledger, clock, router_venue, mock_router):
    for contributor in CONTRIBUTORS:
        started.contribute(contributor, 2 * ETHER)
    close_presale(clock)
    add_liquidity = echo_preview(mock_router, 60 * ETHER)
    campaign = PresaleCampaign(started.address, ledger, router_venue, clock)

    with pytest.raises(StageError):
        campaign.contribute(ALICE, ETHER)
    with pytest.raises(StageError):
        campaign.claim_refund(CONTRIBUTORS[0])
    assert campaign.reconcile() == Stage.TRADE
    campaign.claim_tokens(CONTRIBUTORS[0])
    with pytest.raises(ClaimError):
        campaign.claim_tokens(CONTRIBUTORS[0])

    assert add_liquidity.transact.call_count == 1
    summary = campaign.summary()
    assert summary.liquidity_pool == PAIR.lower()
    assert summary.streams[StreamKind.LIQUIDITY].total_allocated == 60 * ETHER
    assert balance(ledger, PAIR.lower(), campaign.address) == 60 * ETHER

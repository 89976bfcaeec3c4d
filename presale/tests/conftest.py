"""Shared fixtures: in-memory database, fixed clock and a deployed campaign."""

import os

import pytest

from presale.clock import FixedClock
from presale.config import Config
from presale.db.models import Base
from presale.db.session import create_tables, dispose_db, get_engine, init_db
from presale.services.campaign import PresaleCampaign
from presale.services.ledger import AssetLedger
from presale.tests.factories import ADMIN, ALICE, BOB, CONTRIBUTORS, ETHER, START, fund, make_params
from presale.venues.pool import ConstantProductVenue


@pytest.fixture
def test_config():
    """Test configuration."""
    db_url = os.getenv("TEST_DB_URL", "sqlite:///:memory:")
    return Config(db_url=db_url)


@pytest.fixture
def db(test_config):
    """Fresh schema for every test."""
    dispose_db()
    init_db(test_config)
    Base.metadata.drop_all(get_engine())
    create_tables()
    yield
    dispose_db()


@pytest.fixture
def clock():
    return FixedClock(START)


@pytest.fixture
def ledger():
    return AssetLedger()


@pytest.fixture
def venue(ledger):
    return ConstantProductVenue(ledger)


@pytest.fixture
def params():
    return make_params()


@pytest.fixture
def campaign(db, ledger, venue, clock, params):
    """Deployed campaign, not yet started, with funded contributors."""
    for identity in [ALICE, BOB] + CONTRIBUTORS:
        fund(ledger, identity, 100 * ETHER)
    return PresaleCampaign.deploy(params, ledger, venue, clock)


@pytest.fixture
def started(campaign):
    """Campaign in Presale since START."""
    campaign.start(ADMIN)
    return campaign

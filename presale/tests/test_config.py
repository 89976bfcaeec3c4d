"""Tests for environment configuration."""

import pytest

from presale.config import Config


@pytest.fixture
def env(monkeypatch):
    for name in ("CLOCK", "VENUE", "ROUTER_ADDRESS", "TOKEN_ADDRESS", "OPERATOR_ADDRESS", "LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("DB_URL", "sqlite:///:memory:")
    return monkeypatch


def test_defaults(env):
    config = Config.from_env()
    config.validate()
    assert config.clock == "system"
    assert config.venue == "pool"
    assert config.native_asset == "native"
    assert config.rabbitmq_exchange == "presale_events"


def test_db_url_required(env):
    env.delenv("DB_URL")
    with pytest.raises(ValueError, match="DB_URL"):
        Config.from_env()


def test_router_venue_needs_addresses(env):
    env.setenv("VENUE", "Router")
    config = Config.from_env()
    assert config.venue == "router"
    with pytest.raises(ValueError, match="router_address"):
        config.validate()

    env.setenv("ROUTER_ADDRESS", "0x7a250d5630b4cf539739df2c5dacb4c659f2488d")
    env.setenv("TOKEN_ADDRESS", "0x5fbdb2315678afecb367f032d93f642f64180aa3")
    with pytest.raises(ValueError, match="operator_address"):
        Config.from_env().validate()

    env.setenv("OPERATOR_ADDRESS", "0xf39fd6e51aad88f6f4ce6ab8827279cfffb92266")
    Config.from_env().validate()


@pytest.mark.parametrize(
    "field, value",
    [("clock", "sundial"), ("venue", "otc"), ("outbox_batch_size", 0), ("router_deadline_seconds", -1)],
)
def test_invalid_values(field, value):
    config = Config(db_url="sqlite://", **{field: value})
    with pytest.raises(ValueError, match=field):
        config.validate()


def test_rabbitmq_params(env):
    env.setenv("RABBITMQ_HOST", "broker")
    env.setenv("RABBITMQ_PORT", "5673")
    params = Config.from_env().get_rabbitmq_connection_params()
    assert params["host"] == "broker"
    assert params["port"] == 5673

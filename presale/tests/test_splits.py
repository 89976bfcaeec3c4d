"""Tests for split tables and campaign parameter validation."""

import dataclasses

import pytest

from presale.core.splits import Split
from presale.core.types import StreamKind, VestingSchedule
from presale.errors import ConfigurationError
from presale.tests.factories import make_params


def test_split_portion_floors():
    """Portions are floor(amount * percent / 100)."""
    split = Split.eth(liquidity=60, vest=40)
    assert split.portion("liquidity", 999) == 599
    assert split.portion("vest", 999) == 399
    assert split.percent("vest") == 40


def test_split_must_sum_to_whole():
    with pytest.raises(ConfigurationError, match="sum to 100"):
        Split.token(presale=50, liquidity=30, vest=19)
    with pytest.raises(ConfigurationError, match="sum to 100"):
        Split.eth(liquidity=60, vest=41)


def test_split_rejects_out_of_range_and_non_integer_percents():
    with pytest.raises(ConfigurationError):
        Split.eth(liquidity=120, vest=-20)
    with pytest.raises(ConfigurationError):
        Split.eth(liquidity=50.0, vest=50)
    with pytest.raises(ConfigurationError):
        Split.eth(liquidity=True, vest=99)


def test_split_categories_are_fixed():
    """A missing or extra category fails even when the percents sum to 100."""
    with pytest.raises(ConfigurationError, match="mismatch"):
        Split("eth", ("liquidity", "vest"), {"liquidity": 100})
    with pytest.raises(ConfigurationError, match="mismatch"):
        Split("eth", ("liquidity", "vest"), {"liquidity": 50, "vest": 40, "bonus": 10})


def test_split_json_round_trip_preserves_order():
    split = Split.token(presale=50, liquidity=30, vest=20)
    restored = Split.from_json("token", split.to_json())
    assert restored == split
    assert [category for category, _ in restored.items()] == ["presale", "liquidity", "vest"]


def test_zero_percent_category_allowed():
    split = Split.eth(liquidity=0, vest=100)
    assert split.portion("liquidity", 10**18) == 0


def test_valid_params_pass():
    make_params().validate()


@pytest.mark.parametrize(
    "overrides, fragment",
    [
        ({"soft_cap": 30, "hard_cap": 20}, "hard_cap"),
        ({"min_contribution": 0}, "min_contribution"),
        ({"min_contribution": 5, "max_contribution": 4}, "max_contribution"),
        ({"soft_cap": -1}, "soft_cap"),
        ({"duration": 0}, "duration"),
        ({"total_supply": 0}, "total_supply"),
        ({"cliff": 400, "vesting_duration": 300}, "duration must be >= cliff"),
        ({"cliff": -1}, "cliff"),
        ({"admin": "  "}, "admin"),
    ],
)
def test_invalid_params_fail_fast(overrides, fragment):
    """Every violated invariant is reported at deployment time."""
    with pytest.raises(ConfigurationError, match=fragment):
        make_params(**overrides).validate()


def test_soft_cap_zero_allowed():
    make_params(soft_cap=0).validate()


def test_missing_vesting_schedule():
    params = make_params()
    vesting = {StreamKind.NATIVE: VestingSchedule(0, 10), StreamKind.TOKEN: VestingSchedule(0, 10)}
    with pytest.raises(ConfigurationError, match="liquidity"):
        dataclasses.replace(params, vesting=vesting).validate()


def test_swapped_splits_rejected():
    params = make_params()
    config = dataclasses.replace(params.config, eth_split=params.config.token_split)
    with pytest.raises(ConfigurationError, match="eth_split"):
        dataclasses.replace(params, config=config).validate()


def test_error_code_in_str():
    error = ConfigurationError("bad split")
    assert error.code == "InvalidConfiguration"
    assert str(error) == "InvalidConfiguration: bad split"

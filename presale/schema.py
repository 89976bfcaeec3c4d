"""Pydantic model for campaign deployment files.

Example::

    {
      "admin": "0xf39fd6e51aad88f6f4ce6ab8827279cfffb92266",
      "token": {"name": "Example", "symbol": "EXM", "total_supply": "1000000000000000000000000"},
      "duration": 604800,
      "min_contribution": "100000000000000000",
      "max_contribution": "10000000000000000000",
      "soft_cap": "10000000000000000000",
      "hard_cap": "100000000000000000000",
      "eth_split": {"liquidity": 60, "vest": 40},
      "token_split": {"presale": 50, "liquidity": 30, "vest": 20},
      "vesting": {
        "native": {"cliff": 2592000, "duration": 31536000},
        "token": {"cliff": 2592000, "duration": 31536000},
        "liquidity": {"cliff": 2592000, "duration": 31536000}
      }
    }

Amounts may be JSON integers or decimal strings.
"""

import json
from pathlib import Path
from typing import Annotated, Any, Dict, Union

from pydantic import BaseModel, BeforeValidator, ConfigDict, StrictInt, ValidationError

from presale.core.splits import Split
from presale.core.types import CampaignConfig, CampaignParams, StreamKind, TokenInfo, VestingSchedule
from presale.errors import ConfigurationError


def _parse_amount(value: Any) -> int:
    # Floats are rejected: 1e24 is not representable exactly
    if isinstance(value, bool) or not isinstance(value, (int, str)):
        raise ValueError("amount must be a JSON integer or a decimal string")
    if isinstance(value, str):
        if not value.isdigit() or not value.isascii():
            raise ValueError(f"amount string must be decimal digits, got {value!r}")
        return int(value)
    return value


Amount = Annotated[int, BeforeValidator(_parse_amount)]


class TokenSection(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str
    symbol: str
    total_supply: Amount


class EthSplitSection(BaseModel):
    model_config = ConfigDict(extra="forbid")

    liquidity: StrictInt
    vest: StrictInt


class TokenSplitSection(BaseModel):
    model_config = ConfigDict(extra="forbid")

    presale: StrictInt
    liquidity: StrictInt
    vest: StrictInt


class VestingSection(BaseModel):
    model_config = ConfigDict(extra="forbid")

    cliff: StrictInt
    duration: StrictInt


class DeploymentFile(BaseModel):
    """Campaign parameters as written in a deployment file."""

    model_config = ConfigDict(extra="forbid")

    admin: str
    token: TokenSection
    duration: StrictInt
    min_contribution: Amount
    max_contribution: Amount
    soft_cap: Amount
    hard_cap: Amount
    eth_split: EthSplitSection
    token_split: TokenSplitSection
    vesting: Dict[StreamKind, VestingSection]

    def to_params(self) -> CampaignParams:
        """Convert to domain parameters and validate them.

        Raises:
            ConfigurationError: If the parameters violate a campaign invariant
        """
        params = CampaignParams(
            admin=self.admin,
            token=TokenInfo(
                name=self.token.name,
                symbol=self.token.symbol,
                total_supply=self.token.total_supply,
            ),
            config=CampaignConfig(
                duration=self.duration,
                min_contribution=self.min_contribution,
                max_contribution=self.max_contribution,
                soft_cap=self.soft_cap,
                hard_cap=self.hard_cap,
                eth_split=Split.eth(self.eth_split.liquidity, self.eth_split.vest),
                token_split=Split.token(
                    self.token_split.presale,
                    self.token_split.liquidity,
                    self.token_split.vest,
                ),
            ),
            vesting={
                kind: VestingSchedule(cliff=section.cliff, duration=section.duration)
                for kind, section in self.vesting.items()
            },
        )
        params.validate()
        return params


def load_deployment(source: Union[str, Path, dict]) -> CampaignParams:
    """Read a deployment file (path or already-parsed dict).

    Raises:
        ConfigurationError: If the file is unreadable, malformed or invalid
    """
    if isinstance(source, dict):
        raw = source
    else:
        try:
            with open(source, "r") as f:
                raw = json.load(f)
        except OSError as e:
            raise ConfigurationError(f"cannot read deployment file {source}: {e}") from e
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"invalid JSON in deployment file {source}: {e}") from e

    try:
        deployment = DeploymentFile.model_validate(raw)
    except ValidationError as e:
        raise ConfigurationError(f"invalid deployment file: {e}") from e
    return deployment.to_params()

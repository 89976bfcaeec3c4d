"""Domain types for presale campaigns."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict

from presale.core.splits import Split
from presale.errors import ConfigurationError


class Stage(str, Enum):
    """Campaign lifecycle stage. Refund and Trade are terminal."""

    INITIAL = "Initial"
    PRESALE = "Presale"
    REFUND = "Refund"
    TRADE = "Trade"

    @property
    def rank(self) -> int:
        # Refund and Trade share a rank: neither follows the other
        return {"Initial": 0, "Presale": 1, "Refund": 2, "Trade": 2}[self.value]

    @property
    def is_terminal(self) -> bool:
        return self in (Stage.REFUND, Stage.TRADE)

    def can_advance_to(self, target: "Stage") -> bool:
        """Whether ``target`` is a legal next stage."""
        return (self, target) in _TRANSITIONS


_TRANSITIONS = {
    (Stage.INITIAL, Stage.PRESALE),
    (Stage.PRESALE, Stage.REFUND),
    (Stage.PRESALE, Stage.TRADE),
}


class StreamKind(str, Enum):
    """Vesting stream paid out to the administrator."""

    NATIVE = "native"
    TOKEN = "token"
    LIQUIDITY = "liquidity"


def _require_int(name: str, value: object) -> None:
    if not isinstance(value, int) or isinstance(value, bool):
        raise ConfigurationError(f"{name} must be an integer")


@dataclass(frozen=True)
class VestingSchedule:
    """Cliff and total duration of one stream, in seconds."""

    cliff: int
    duration: int

    def validate(self, name: str = "vesting") -> None:
        _require_int(f"{name}.cliff", self.cliff)
        _require_int(f"{name}.duration", self.duration)
        if self.cliff < 0:
            raise ConfigurationError(f"{name}.cliff must be >= 0")
        if self.duration < self.cliff:
            raise ConfigurationError(f"{name}.duration must be >= cliff")


@dataclass(frozen=True)
class VestingState:
    """Allocated and released totals of one stream."""

    total_allocated: int = 0
    released: int = 0


@dataclass(frozen=True)
class CampaignConfig:
    """Contribution window, bounds and splits; immutable after deployment."""

    duration: int
    min_contribution: int
    max_contribution: int
    soft_cap: int
    hard_cap: int
    eth_split: Split
    token_split: Split

    def validate(self) -> None:
        for name in ("duration", "min_contribution", "max_contribution", "soft_cap", "hard_cap"):
            _require_int(name, getattr(self, name))
        if self.duration <= 0:
            raise ConfigurationError("duration must be > 0")
        if self.soft_cap < 0:
            raise ConfigurationError("soft_cap must be >= 0")
        if self.hard_cap < self.soft_cap:
            raise ConfigurationError("hard_cap must be >= soft_cap")
        if self.min_contribution <= 0:
            raise ConfigurationError("min_contribution must be > 0")
        if self.max_contribution < self.min_contribution:
            raise ConfigurationError("max_contribution must be >= min_contribution")
        if not isinstance(self.eth_split, Split) or self.eth_split.name != "eth":
            raise ConfigurationError("eth_split must be an eth Split")
        if not isinstance(self.token_split, Split) or self.token_split.name != "token":
            raise ConfigurationError("token_split must be a token Split")


@dataclass(frozen=True)
class TokenInfo:
    """The distributed asset."""

    name: str
    symbol: str
    total_supply: int

    def validate(self) -> None:
        if not self.name or not self.name.strip():
            raise ConfigurationError("token name is required")
        if not self.symbol or not self.symbol.strip():
            raise ConfigurationError("token symbol is required")
        _require_int("total_supply", self.total_supply)
        if self.total_supply <= 0:
            raise ConfigurationError("total_supply must be > 0")


@dataclass(frozen=True)
class CampaignParams:
    """Everything needed to deploy one campaign."""

    admin: str
    token: TokenInfo
    config: CampaignConfig
    vesting: Dict[StreamKind, VestingSchedule] = field(default_factory=dict)

    def validate(self) -> None:
        """Fail fast on the first violated invariant.

        Raises:
            ConfigurationError: If any parameter is invalid
        """
        if not self.admin or not str(self.admin).strip():
            raise ConfigurationError("admin identity is required")
        self.token.validate()
        self.config.validate()
        missing = [kind.value for kind in StreamKind if kind not in self.vesting]
        if missing:
            raise ConfigurationError(f"vesting schedules missing for: {', '.join(missing)}")
        for kind in StreamKind:
            self.vesting[kind].validate(f"vesting.{kind.value}")

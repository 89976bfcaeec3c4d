"""Percentage splits that must partition the whole."""

import json
from typing import Dict, Iterable, Iterator, Tuple

from presale.errors import ConfigurationError

WHOLE = 100

ETH_SPLIT_CATEGORIES = ("liquidity", "vest")
TOKEN_SPLIT_CATEGORIES = ("presale", "liquidity", "vest")


class Split:
    """Fixed table of (category, percent) pairs summing to exactly 100.

    The set of categories is fixed at construction, so adding a category
    without updating the percentages fails loudly instead of drifting.
    """

    def __init__(self, name: str, categories: Iterable[str], shares: Dict[str, int]):
        self.name = name
        self._categories = tuple(categories)
        self._shares = dict(shares)
        self._check()

    def _check(self) -> None:
        expected = set(self._categories)
        if len(expected) != len(self._categories):
            raise ConfigurationError(f"{self.name} split has duplicate categories")
        given = set(self._shares)
        if given != expected:
            missing = sorted(expected - given)
            extra = sorted(given - expected)
            raise ConfigurationError(
                f"{self.name} split categories mismatch (missing: {missing}, unexpected: {extra})"
            )
        for category, percent in self._shares.items():
            if not isinstance(percent, int) or isinstance(percent, bool):
                raise ConfigurationError(f"{self.name} split {category} must be an integer percent")
            if percent < 0 or percent > WHOLE:
                raise ConfigurationError(f"{self.name} split {category} must be within 0..{WHOLE}")
        total = sum(self._shares.values())
        if total != WHOLE:
            raise ConfigurationError(f"{self.name} split must sum to {WHOLE}, got {total}")

    @classmethod
    def eth(cls, liquidity: int, vest: int) -> "Split":
        return cls("eth", ETH_SPLIT_CATEGORIES, {"liquidity": liquidity, "vest": vest})

    @classmethod
    def token(cls, presale: int, liquidity: int, vest: int) -> "Split":
        return cls(
            "token",
            TOKEN_SPLIT_CATEGORIES,
            {"presale": presale, "liquidity": liquidity, "vest": vest},
        )

    def percent(self, category: str) -> int:
        if category not in self._shares:
            raise KeyError(f"{self.name} split has no category '{category}'")
        return self._shares[category]

    def portion(self, category: str, amount: int) -> int:
        """Floor of ``amount * percent / 100`` for one category."""
        return amount * self.percent(category) // WHOLE

    def items(self) -> Iterator[Tuple[str, int]]:
        for category in self._categories:
            yield category, self._shares[category]

    def to_json(self) -> str:
        return json.dumps(dict(self.items()))

    @classmethod
    def from_json(cls, name: str, raw: str) -> "Split":
        categories = ETH_SPLIT_CATEGORIES if name == "eth" else TOKEN_SPLIT_CATEGORIES
        return cls(name, categories, json.loads(raw))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Split):
            return NotImplemented
        return self.name == other.name and list(self.items()) == list(other.items())

    def __repr__(self) -> str:
        pairs = ", ".join(f"{c}={p}" for c, p in self.items())
        return f"Split({self.name}: {pairs})"

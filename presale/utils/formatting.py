"""Utility functions for identities, amounts and timestamps."""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Optional

from web3 import Web3

# Base units per whole native coin (10^18, as wei per ETH)
BASE_UNITS = Decimal("1000000000000000000")


def normalize_identity(identity: str) -> str:
    """Normalize a contributor/administrator identity.

    Hex addresses are lower-cased so checksummed and plain forms compare
    equal; other identities are only stripped.

    Args:
        identity: Address or opaque identity string

    Returns:
        Normalized identity

    Raises:
        ValueError: If the identity is empty
    """
    if identity is None or not str(identity).strip():
        raise ValueError("identity is required")
    identity = str(identity).strip()
    if Web3.is_address(identity):
        return identity.lower()
    return identity


def to_units(amount: int, decimals: int = 18) -> Decimal:
    """Convert base units to whole units for display.

    Args:
        amount: Amount in base units
        decimals: Number of decimals of the asset

    Returns:
        Decimal amount in whole units
    """
    if amount is None:
        return Decimal("0")
    if decimals == 18:
        return Decimal(amount) / BASE_UNITS
    return Decimal(amount) / (Decimal(10) ** decimals)


def timestamp_to_datetime(ts: Optional[int]) -> Optional[datetime]:
    """Convert Unix timestamp to an aware UTC datetime."""
    if ts is None:
        return None
    return datetime.fromtimestamp(ts, tz=timezone.utc)


def event_data_to_json_safe(event_data: Dict[str, Any]) -> Dict[str, Any]:
    """Make event data JSON-safe.

    Integers are rendered as decimal strings so 256-bit amounts survive
    JavaScript consumers; enums are rendered by value.
    """
    serializable: Dict[str, Any] = {}
    for key, value in event_data.items():
        if isinstance(value, (bool, type(None))):
            serializable[key] = value
        elif isinstance(value, int):
            serializable[key] = str(value)
        elif hasattr(value, "value"):  # Enum
            serializable[key] = value.value
        else:
            serializable[key] = str(value)
    return serializable

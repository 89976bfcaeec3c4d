"""Column types for base-unit amounts."""

from sqlalchemy import String
from sqlalchemy.types import TypeDecorator

UINT256_MAX = (1 << 256) - 1


class Uint256(TypeDecorator):
    """Unsigned 256-bit integer stored as a decimal string.

    BIGINT overflows at 2**63 and SQLite's NUMERIC affinity silently turns
    large values into REAL, so amounts are persisted as text and converted
    back to ``int`` on load. Only equality comparisons are meaningful in SQL.
    """

    impl = String
    cache_ok = True

    def __init__(self) -> None:
        super().__init__(length=78)

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        value = int(value)
        if value < 0 or value > UINT256_MAX:
            raise ValueError(f"amount out of uint256 range: {value}")
        return str(value)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return int(value)

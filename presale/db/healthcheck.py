"""Database health check - verify required tables exist."""

from sqlalchemy import inspect

from presale.db.session import get_engine
from presale.log import get_logger

logger = get_logger(__name__)

# Required tables that must exist
REQUIRED_TABLES = [
    "campaigns",
    "contributions",
    "vesting_streams",
    "balances",
    "liquidity_pools",
    "events",
]


def missing_tables() -> list[str]:
    """List required tables absent from the database."""
    existing = set(inspect(get_engine()).get_table_names())
    return [name for name in REQUIRED_TABLES if name not in existing]


def check_tables_exist() -> None:
    """Verify all required tables exist in the database.

    Raises:
        RuntimeError: If any required table is missing
    """
    logger.info("Checking database schema...")

    missing = missing_tables()
    if missing:
        raise RuntimeError(
            f"DB schema missing. Table '{missing[0]}' does not exist. "
            "Run 'python -m presale db init' first."
        )

    logger.info("All required tables exist")

"""Engine and transaction scope for the presale store.

Every public operation runs inside one ``get_session()`` block; the block
commits on success and rolls back on any exception, which is what makes a
failed contribution, claim or liquidity deposit leave no trace.
"""

from contextlib import contextmanager
from typing import Generator

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from presale.config import Config
from presale.log import get_logger

logger = get_logger(__name__)

_engine: Engine | None = None
_session_factory: sessionmaker[Session] | None = None

_NOT_INITIALIZED = "Database not initialized; call init_db() first"


def _engine_options(db_url: str) -> dict:
    if db_url.startswith("sqlite"):
        # In-memory SQLite lives on a single connection
        return {"poolclass": StaticPool, "connect_args": {"check_same_thread": False}}
    return {"pool_size": 10, "max_overflow": 20, "pool_pre_ping": True}


def init_db(config: Config) -> None:
    """Create the process-wide engine for ``config.db_url``; later calls are no-ops."""
    global _engine, _session_factory

    if _engine is not None:
        return

    _engine = create_engine(config.db_url, **_engine_options(config.db_url))
    # Rows stay readable after commit; the services return them to callers
    _session_factory = sessionmaker(bind=_engine, autoflush=False, expire_on_commit=False)
    logger.debug(f"Database engine ready: {_engine.url.render_as_string(hide_password=True)}")


def get_engine() -> Engine:
    if _engine is None:
        raise RuntimeError(_NOT_INITIALIZED)
    return _engine


def create_tables() -> None:
    from presale.db.models import Base

    Base.metadata.create_all(get_engine())
    logger.info("Database tables created")


def dispose_db() -> None:
    """Drop the engine so the next init_db() connects afresh (tests, CLI reruns)."""
    global _engine, _session_factory

    if _engine is not None:
        _engine.dispose()
    _engine = None
    _session_factory = None


@contextmanager
def get_session() -> Generator[Session, None, None]:
    """Open a session that is one all-or-nothing unit of work.

    Example:
        with get_session() as session:
            ledger.transfer(session, "native", alice, campaign, amount)
    """
    if _session_factory is None:
        raise RuntimeError(_NOT_INITIALIZED)

    session = _session_factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()

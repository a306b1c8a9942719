"""
Module: dues_kernel.db.engine
Responsibility: SQLAlchemy engine construction, session factories and the
    transactional scope helper for the reference credit store.
Architecture position: Kernel > DB.  May import from db/base.py and models/.

Invariants enforced:
    - No module-level engine or session handle.  Every helper takes the
      engine or session factory it works on; callers own their lifetime.
    - ``session_scope`` commits on success and rolls back on any exception.

Failure modes:
    - sqlalchemy.exc.ArgumentError on an unparseable database URL.
    - Exceptions raised inside ``session_scope`` propagate after rollback.
"""

from collections.abc import Generator
from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from dues_kernel.logging_config import get_logger

logger = get_logger("db.engine")


def create_db_engine(database_url: str, echo: bool = False) -> Engine:
    """
    Create an engine for ``database_url``.

    In-memory SQLite shares one connection across sessions so that tables
    created once stay visible.
    """
    in_memory = database_url in ("sqlite://", "sqlite:///:memory:")
    if in_memory:
        engine = create_engine(
            database_url,
            echo=echo,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
    else:
        engine = create_engine(database_url, echo=echo, pool_pre_ping=True)

    logger.info(
        "engine_initialized",
        extra={"dialect": engine.dialect.name, "echo": echo},
    )
    return engine


def make_session_factory(engine: Engine) -> sessionmaker[Session]:
    """Session factory bound to ``engine``."""
    return sessionmaker(bind=engine, expire_on_commit=False)


@contextmanager
def session_scope(factory: sessionmaker[Session]) -> Generator[Session, None, None]:
    """
    Provide a transactional scope around a series of operations.

    Usage:
        with session_scope(factory) as session:
            store = SqlAlchemyCreditBalanceStore(session)
            store.apply_delta(...)
            # Commits on successful exit, rolls back on exception
    """
    session = factory()
    logger.debug("transaction_started")
    try:
        yield session
        session.commit()
        logger.debug("transaction_committed")
    except Exception:
        session.rollback()
        logger.warning("transaction_rolled_back", exc_info=True)
        raise
    finally:
        session.close()


def create_tables(engine: Engine) -> None:
    """Create all credit-ledger tables on ``engine``."""
    import dues_kernel.models  # noqa: F401  (registers models on Base.metadata)
    from dues_kernel.db.base import Base

    Base.metadata.create_all(engine)
    logger.info("tables_created", extra={"table_count": len(Base.metadata.tables)})


def drop_tables(engine: Engine) -> None:
    """Drop all credit-ledger tables on ``engine``."""
    from dues_kernel.db.base import Base

    Base.metadata.drop_all(engine)

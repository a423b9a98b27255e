"""
Module: muster_kernel.db.engine
Responsibility: SQLAlchemy engine initialization, session factories and the
    transactional scope helper.  The single point of database connection
    configuration.
Architecture position: Kernel > DB.  May import from db/base.py.  Imports
    models only inside create_tables/drop_tables so Base.metadata is complete.

Invariants enforced:
    - No module-level engine or session state.  Every helper takes and
      returns explicit handles, so concurrent callers and tests never share
      hidden connection state.
    - PostgreSQL sessions run at READ COMMITTED over a pre-pinged QueuePool.
      Row-level compare-and-set updates provide the stronger guarantees
      needed for invite claims and revert marking.
    - SQLite is accepted for local runs and the default test suite.

Failure modes:
    - OperationalError / InterfaceError from the driver when the store is
      unreachable.  Services translate these to StoreUnavailableError.

Audit relevance:
    session_scope() gives commit-or-rollback semantics: a mutation and its
    audit entry land together or not at all.
"""

from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool

from muster_kernel.logging_config import get_logger

logger = get_logger("db.engine")


def init_engine_from_url(
    database_url: str,
    echo: bool = False,
    pool_size: int = 10,
    max_overflow: int = 10,
    pool_pre_ping: bool = True,
    pool_timeout: int = 30,
    pool_recycle: int = 1800,
) -> Engine:
    """
    Create an engine for the given database URL.

    Args:
        database_url: PostgreSQL URL (postgresql+psycopg://...) or a SQLite
            URL for local runs.
        echo: If True, log all SQL statements.
        pool_size: Connections kept in the pool (PostgreSQL only).
        max_overflow: Connections allowed beyond pool_size (PostgreSQL only).
        pool_pre_ping: Test connections before use (PostgreSQL only).
        pool_timeout: Seconds to wait for a pooled connection.
        pool_recycle: Seconds after which a connection is recycled.

    Returns:
        A new SQLAlchemy Engine.  The caller owns it and disposes it.
    """
    dialect = make_url(database_url).get_backend_name()

    if dialect == "postgresql":
        engine = create_engine(
            database_url,
            echo=echo,
            poolclass=QueuePool,
            pool_size=pool_size,
            max_overflow=max_overflow,
            pool_pre_ping=pool_pre_ping,
            pool_timeout=pool_timeout,
            pool_recycle=pool_recycle,
            isolation_level="READ COMMITTED",
        )
    else:
        engine = create_engine(database_url, echo=echo)

    logger.info(
        "engine_initialized",
        extra={"dialect": dialect, "echo": echo},
    )
    return engine


def make_session_factory(engine: Engine) -> sessionmaker[Session]:
    """Session factory bound to ``engine``; one session per unit of work."""
    return sessionmaker(bind=engine, expire_on_commit=False)


@contextmanager
def session_scope(
    session_factory: sessionmaker[Session],
) -> Generator[Session, None, None]:
    """
    Provide a transactional scope around a series of operations.

    Postconditions: On normal exit the session is committed and closed.
        On exception it is rolled back and closed, and the exception is
        re-raised to the caller.

    Usage:
        with session_scope(factory) as session:
            RuleEngine(session).members.create_member(actor, section, payload)
    """
    session = session_factory()
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
    """Create the five muster tables if they do not exist."""
    from muster_kernel.db.base import Base
    import muster_kernel.models  # noqa: F401  (populates Base.metadata)

    Base.metadata.create_all(engine)
    logger.info(
        "tables_created",
        extra={"tables": sorted(Base.metadata.tables)},
    )


def drop_tables(engine: Engine) -> None:
    """
    Drop all tables. Use with caution - primarily for testing.
    """
    from muster_kernel.db.base import Base
    import muster_kernel.models  # noqa: F401

    Base.metadata.drop_all(engine)


def is_postgres(engine: Engine) -> bool:
    """Check if ``engine`` talks to PostgreSQL."""
    return engine.dialect.name == "postgresql"

"""Database session management with connection pooling.

The engine is built lazily so that importing the package never opens a
connection or loads a database driver; runs receive an explicit session
factory instead of a module-level client.
"""

from contextlib import contextmanager
from typing import Generator, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

from veille.settings import Settings, settings as default_settings

_engine: Optional[Engine] = None
_session_factory: Optional[sessionmaker] = None


def build_engine(
    database_url: str,
    pool_size: int = 5,
    max_overflow: int = 10,
) -> Engine:
    """Create an engine suited to the database behind ``database_url``.

    SQLite URLs (used by tests and local runs) get a single shared connection
    when in-memory; server databases get a pre-pinged connection pool.
    """
    if database_url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
        return create_engine(database_url, echo=False, **kwargs)

    return create_engine(
        database_url,
        poolclass=QueuePool,
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_pre_ping=True,  # Verify connections before use
        pool_recycle=3600,  # Recycle connections after 1 hour
        echo=False,
    )


def make_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=engine, expire_on_commit=False)


def get_engine(config: Optional[Settings] = None) -> Engine:
    """Get the process-wide engine (created on first use)."""
    global _engine
    if _engine is None:
        config = config or default_settings
        _engine = build_engine(
            config.database_url,
            pool_size=config.db_pool_size,
            max_overflow=config.db_pool_max_overflow,
        )
    return _engine


def get_session_factory(config: Optional[Settings] = None) -> sessionmaker:
    """Get the process-wide session factory bound to :func:`get_engine`."""
    global _session_factory
    if _session_factory is None:
        _session_factory = make_session_factory(get_engine(config))
    return _session_factory


@contextmanager
def get_session(
    session_factory: Optional[sessionmaker] = None,
) -> Generator[Session, None, None]:
    """Context manager for database sessions with automatic commit/rollback.

    Usage:
        with get_session() as session:
            session.add(obj)
            # Commits automatically on exit, rollbacks on exception

    Yields:
        Database session
    """
    session = (session_factory or get_session_factory())()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()

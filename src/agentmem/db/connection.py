"""
Database connection management for agentmem.

Provides database session management, connection handling, and transaction support.
"""

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Generator, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import NullPool

from agentmem.config import settings

logger = logging.getLogger(__name__)


def _ensure_sqlite_directory(database_url: str) -> None:
    """Create the parent directory of a file-backed SQLite database."""
    database = make_url(database_url).database
    if database and database != ":memory:":
        Path(database).expanduser().parent.mkdir(parents=True, exist_ok=True)


def create_db_engine(database_url: Optional[str] = None) -> Engine:
    """
    Create an engine for the given URL with settings-driven pool options.

    Args:
        database_url: SQLAlchemy URL (defaults to settings.database_url)

    Returns:
        Engine: A configured SQLAlchemy engine
    """
    url = database_url or settings.database_url

    if url.startswith("sqlite"):
        _ensure_sqlite_directory(url)
        # Threads share the engine; busy connections wait instead of failing
        return create_engine(
            url,
            echo=False,
            connect_args={"check_same_thread": False, "timeout": 30},
            pool_pre_ping=True,
        )

    # Total connections = pool_size + max_overflow per process
    return create_engine(
        url,
        echo=False,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_pool_max_overflow,
        pool_pre_ping=True,
        pool_timeout=settings.db_pool_timeout,
        pool_recycle=settings.db_pool_recycle,
    )


# Create engine instance (singleton pattern)
engine = create_db_engine()

# Background jobs (relevance scoring) use unpooled connections on PostgreSQL
# so they never compete with foreground operations for the pool.
if settings.database_url.startswith("sqlite"):
    background_engine = engine
else:
    background_engine = create_engine(
        settings.database_url,
        echo=False,
        poolclass=NullPool,
    )

# Session factory for foreground operations (uses pooled connections)
SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    expire_on_commit=False,
    bind=engine,
)

# Session factory for background jobs
BackgroundSessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    expire_on_commit=False,
    bind=background_engine,
)


@contextmanager
def session_scope(factory: sessionmaker) -> Generator[Session, None, None]:
    """
    Context manager for a session from an arbitrary factory.

    Commits on success, rolls back on exception, always closes.

    Yields:
        Session: A SQLAlchemy session

    Example:
        >>> with session_scope(SessionLocal) as db:
        >>>     repo = EpisodeRepository(db)
        >>>     repo.get_active("session-1")
    """
    session = factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


@contextmanager
def db_session() -> Generator[Session, None, None]:
    """
    Context manager for database sessions with automatic cleanup.

    Uses the pooled connection engine.

    Yields:
        Session: A SQLAlchemy session

    Example:
        >>> with db_session() as db:
        >>>     episode = db.query(Episode).first()
        >>>     print(episode.name)
    """
    with session_scope(SessionLocal) as session:
        yield session


def init_db(bind: Optional[Engine] = None) -> None:
    """
    Initialize the database by creating all tables and indexes.

    Args:
        bind: Engine to create tables on (defaults to the module engine)
    """
    from agentmem.models.db import Base

    Base.metadata.create_all(bind=bind or engine)
    logger.info("Database schema initialized")

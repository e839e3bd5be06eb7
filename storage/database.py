"""
Storage - Database.

============================================================
RESPONSIBILITY
============================================================
Owns the SQLAlchemy engine and session factory.

- Database URL from WHALE_DATABASE_URL (.env supported)
- SQLite by default, any SQLAlchemy URL otherwise
- session_scope(): commit on success, roll back on any error

Sessions are synchronous; async callers run them in a worker
thread (see storage.sink).

============================================================
"""

import logging
import os
from contextlib import contextmanager
from typing import Generator, Optional

from dotenv import load_dotenv
from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from storage.models.base import Base
from storage.repositories.exceptions import RepositoryException


# Load environment variables
load_dotenv()

logger = logging.getLogger(__name__)


DEFAULT_DATABASE_URL = "sqlite:///whale_watch.db"


class DatabasePersistenceError(Exception):
    """Raised when a transaction cannot be committed."""


class DatabaseConnectionError(DatabasePersistenceError):
    """Raised when the database cannot be reached."""


def get_database_url() -> str:
    """Get database URL from environment."""
    url = os.getenv("WHALE_DATABASE_URL")
    if not url:
        url = DEFAULT_DATABASE_URL
        logger.warning(f"WHALE_DATABASE_URL not set, using default: {url}")
    return url


def create_database_engine(url: Optional[str] = None, echo: bool = False) -> Engine:
    """
    Create SQLAlchemy engine.

    SQLite connections are shared across threads; an in-memory
    SQLite URL uses a single static connection so every session
    sees the same database.
    """
    database_url = url or get_database_url()
    logger.info(f"Creating database engine for: {database_url.split('@')[-1]}")

    if database_url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in database_url or database_url in ("sqlite://", "sqlite+pysqlite://"):
            kwargs["poolclass"] = StaticPool
        engine = create_engine(database_url, echo=echo, **kwargs)

        @event.listens_for(engine, "connect")
        def _enable_foreign_keys(dbapi_conn, connection_record):
            cursor = dbapi_conn.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()
    else:
        engine = create_engine(
            database_url,
            pool_size=5,
            max_overflow=10,
            pool_recycle=1800,
            pool_pre_ping=True,
            echo=echo,
        )

    return engine


class Database:
    """Engine + session factory for one database."""

    def __init__(self, url: Optional[str] = None, engine: Optional[Engine] = None, echo: bool = False):
        self._engine = engine or create_database_engine(url, echo=echo)
        self._session_factory = sessionmaker(
            bind=self._engine,
            autocommit=False,
            autoflush=False,
            expire_on_commit=False,
        )

    @property
    def engine(self) -> Engine:
        return self._engine

    def get_session(self) -> Session:
        """
        Get a new database session.

        Caller is responsible for committing/closing.
        Prefer session_scope().
        """
        return self._session_factory()

    @contextmanager
    def session_scope(self) -> Generator[Session, None, None]:
        """
        Transaction boundary.

        Commits only if no exception occurs. Rolls back on ANY
        exception. Repository exceptions propagate unchanged; raw
        SQLAlchemy errors are wrapped in DatabasePersistenceError.
        """
        session = self.get_session()
        try:
            yield session
            session.commit()
        except RepositoryException:
            session.rollback()
            raise
        except SQLAlchemyError as e:
            logger.error(f"Database transaction failed, rolling back: {e}")
            session.rollback()
            raise DatabasePersistenceError(f"Transaction failed: {e}") from e
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def create_all(self) -> None:
        """Create all tables defined in ORM models."""
        import storage.models  # noqa: F401

        Base.metadata.create_all(bind=self._engine)
        logger.info("Database tables created")

    def verify_connection(self) -> bool:
        """
        Raises:
            DatabaseConnectionError: If the database cannot be reached
        """
        try:
            with self._engine.connect() as conn:
                conn.execute(text("SELECT 1")).fetchone()
            return True
        except OperationalError as e:
            logger.error(f"Database connection failed: {e}")
            raise DatabaseConnectionError(f"Cannot connect to database: {e}") from e

    def dispose(self) -> None:
        self._engine.dispose()

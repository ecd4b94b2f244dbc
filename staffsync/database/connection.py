"""
Database Connection Module
Handles connection pooling and session management using SQLAlchemy.
"""

import os
from contextlib import contextmanager
from typing import Generator, Optional

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

from staffsync.config_manager import ConfigManager
from staffsync.utils.logger import get_logger

logger = get_logger(__name__)


class DatabaseConnection:
    """Manages database connections with connection pooling."""

    def __init__(self, url: Optional[str] = None):
        """
        Initialize the engine.

        Args:
            url: SQLAlchemy URL. Read from configuration when omitted.
        """
        self._engine: Engine = None
        self._session_factory = None
        self._initialize_engine(url)

    def _initialize_engine(self, url: Optional[str]) -> None:
        """Create SQLAlchemy engine with connection pooling."""
        db_config = {}
        if url is None:
            db_config = ConfigManager().get_database_config()
            url = db_config.get('url') or self._build_connection_url(db_config)

        echo = os.getenv('SQL_ECHO', 'false').lower() == 'true'

        if url.startswith('sqlite'):
            # In-memory databases must share one connection across sessions
            self._engine = create_engine(
                url,
                poolclass=StaticPool,
                connect_args={'check_same_thread': False},
                echo=echo
            )
        else:
            self._engine = create_engine(
                url,
                poolclass=QueuePool,
                pool_size=db_config.get('pool_size', 5),
                max_overflow=db_config.get('max_overflow', 10),
                pool_timeout=db_config.get('pool_timeout', 30),
                pool_pre_ping=True,
                echo=echo
            )

        self._session_factory = sessionmaker(bind=self._engine, expire_on_commit=False)

        logger.info(f"Database engine initialized ({self._engine.dialect.name})")

    def _build_connection_url(self, db_config: dict) -> str:
        """Build PostgreSQL connection URL from config."""
        host = db_config.get('host') or 'localhost'
        port = db_config.get('port') or 5432
        name = db_config.get('name') or 'staffsync'
        user = db_config.get('user') or 'staffsync'
        password = db_config.get('password') or ''

        return f"postgresql+psycopg2://{user}:{password}@{host}:{port}/{name}"

    @property
    def engine(self) -> Engine:
        """Get the SQLAlchemy engine."""
        return self._engine

    def get_session(self) -> Session:
        """Create a new database session."""
        return self._session_factory()

    @contextmanager
    def session_scope(self) -> Generator[Session, None, None]:
        """
        Provide a transactional scope around a series of operations.

        Usage:
            with db.session_scope() as session:
                session.query(...)
        """
        session = self.get_session()
        try:
            yield session
            session.commit()
        except Exception as e:
            session.rollback()
            logger.error(f"Database session error: {e}")
            raise
        finally:
            session.close()

    def check_connection(self) -> bool:
        """
        Check if database connection is healthy.

        Returns:
            bool: True if connection is healthy, False otherwise.
        """
        try:
            with self._engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            logger.debug("Database connection health check passed")
            return True
        except Exception as e:
            logger.error(f"Database connection health check failed: {e}")
            return False

    def create_all(self) -> None:
        """Create every table declared on the ORM base."""
        from staffsync.database.models import Base
        Base.metadata.create_all(self._engine)


_db: Optional[DatabaseConnection] = None


def get_db() -> DatabaseConnection:
    """Get the process-wide database connection instance."""
    global _db
    if _db is None:
        _db = DatabaseConnection()
    return _db


@contextmanager
def get_session() -> Generator[Session, None, None]:
    """
    Convenience function to get a database session.

    Usage:
        with get_session() as session:
            session.query(...)
    """
    db = get_db()
    with db.session_scope() as session:
        yield session

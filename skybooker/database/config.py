"""
Database configuration and session management for the booking engine.

Supports SQLite (default, also used in tests with an in-memory URL),
MySQL/MariaDB and PostgreSQL. Sessions are handed out through a context
manager that commits on success and rolls back on error.
"""

import os
import logging
from typing import Optional, Dict, Any
from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool, QueuePool
from sqlalchemy.exc import SQLAlchemyError
from contextlib import contextmanager

from .models import create_all_tables

logger = logging.getLogger(__name__)

DEFAULT_DATABASE_URL = "sqlite:///skybooker.db"


class DatabaseConfig:
    """
    Engine and session factory for one database URL.

    The engine is created lazily on first use so that importing the store
    never opens a connection.
    """

    def __init__(self, database_url: Optional[str] = None, echo: bool = False):
        self.database_url = database_url or os.getenv("DATABASE_URL", DEFAULT_DATABASE_URL)
        self.echo = echo
        self.engine: Optional[Engine] = None
        self.SessionLocal: Optional[sessionmaker] = None
        self._is_initialized = False
        self.db_type = self._detect_database_type()

        logger.info(f"Database configuration initialized for {self.db_type}")

    def _detect_database_type(self) -> str:
        """Detect database type from URL."""
        if self.database_url.startswith('sqlite'):
            return 'sqlite'
        elif self.database_url.startswith('mysql'):
            return 'mysql'
        elif self.database_url.startswith('postgresql'):
            return 'postgresql'
        return 'unknown'

    def _get_engine_kwargs(self) -> Dict[str, Any]:
        kwargs: Dict[str, Any] = {'echo': self.echo}

        if self.db_type == 'sqlite':
            # One shared connection; required for sqlite:///:memory:
            kwargs.update({
                'poolclass': StaticPool,
                'connect_args': {'check_same_thread': False, 'timeout': 30},
            })
        elif self.db_type in ['mysql', 'postgresql']:
            kwargs.update({
                'poolclass': QueuePool,
                'pool_size': int(os.getenv('DB_POOL_SIZE', '10')),
                'max_overflow': int(os.getenv('DB_MAX_OVERFLOW', '20')),
                'pool_recycle': int(os.getenv('DB_POOL_RECYCLE', '3600')),
                'pool_pre_ping': True,
            })
            if self.db_type == 'mysql':
                kwargs['connect_args'] = {'charset': 'utf8mb4', 'connect_timeout': 30}

        return kwargs

    def initialize(self) -> None:
        """
        Create the engine and session factory.

        Raises:
            SQLAlchemyError: If the database cannot be reached
        """
        if self._is_initialized:
            return

        try:
            self.engine = create_engine(self.database_url, **self._get_engine_kwargs())

            if self.db_type == 'sqlite':
                @event.listens_for(self.engine, "connect")
                def enable_sqlite_foreign_keys(dbapi_connection, connection_record):
                    cursor = dbapi_connection.cursor()
                    cursor.execute("PRAGMA foreign_keys=ON")
                    cursor.close()

            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))

            self.SessionLocal = sessionmaker(
                autocommit=False,
                autoflush=False,
                bind=self.engine,
                expire_on_commit=False  # Records are read after commit
            )
            self._is_initialized = True
            logger.info(f"Database engine initialized successfully ({self.db_type})")

        except SQLAlchemyError as e:
            logger.error(f"Failed to initialize database: {e}")
            raise

    def create_tables(self) -> None:
        """Create all tables that don't exist yet."""
        if not self._is_initialized:
            self.initialize()
        create_all_tables(self.engine)
        logger.info("Database tables created successfully")

    def get_session(self) -> Session:
        """Get a new database session."""
        if not self._is_initialized:
            self.initialize()
        return self.SessionLocal()

    @contextmanager
    def get_session_context(self):
        """
        Get a database session with automatic cleanup.

        Usage:
            with db_config.get_session_context() as session:
                session.add(row)

        Yields:
            SQLAlchemy session, committed on exit or rolled back on error
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

    def close(self) -> None:
        """Dispose of pooled connections."""
        if self.engine:
            self.engine.dispose()
            logger.info("Database connections closed")


# Global database configuration instance
_db_config: Optional[DatabaseConfig] = None


def get_database_config(database_url: Optional[str] = None, echo: bool = False) -> DatabaseConfig:
    """Get or create the global database configuration instance."""
    global _db_config

    if _db_config is None:
        _db_config = DatabaseConfig(database_url=database_url, echo=echo)

    return _db_config


def initialize_database(database_url: Optional[str] = None, echo: bool = False, create_tables: bool = True) -> DatabaseConfig:
    """
    Initialize the global database, optionally creating tables.

    Args:
        database_url: Optional database URL override
        echo: Enable SQL query logging
        create_tables: Whether to create tables automatically

    Returns:
        Initialized DatabaseConfig instance
    """
    db_config = get_database_config(database_url=database_url, echo=echo)
    db_config.initialize()

    if create_tables:
        db_config.create_tables()

    return db_config


__all__ = [
    'DEFAULT_DATABASE_URL',
    'DatabaseConfig',
    'get_database_config',
    'initialize_database',
]

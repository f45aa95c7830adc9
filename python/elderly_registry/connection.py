"""
Database Connection Management for the Elderly Persons Registry

This module provides:
- Unit of Work pattern for explicit transaction boundaries
- Session provider with auto-commit/rollback scopes (one transaction per mutation)
- Connection pooling with environment-based configuration
- Retry logic for transient connection failures
- SQLite support for tests and single-user deployments, with foreign keys
  enforced and write transactions serialized (BEGIN IMMEDIATE)

Uses SQLAlchemy 2.0 style with proper typing support.
"""

import os
import logging
from typing import Any, Callable, Generator, Optional
from contextlib import contextmanager
from functools import lru_cache
from dataclasses import dataclass

from sqlalchemy import create_engine, event, text, Engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import QueuePool, StaticPool
from sqlalchemy.exc import SQLAlchemyError, OperationalError
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
    before_sleep_log
)

from elderly_registry.models import Base
from elderly_registry.monitoring import HealthStatus, check_health

logger = logging.getLogger(__name__)


# ============================================
# CONFIGURATION
# ============================================

@dataclass
class DatabaseSettings:
    """Database configuration settings."""
    host: str = "localhost"
    port: int = 5432
    database: str = "comunidad"
    user: str = "postgres"
    password: str = ""
    pool_size: int = 5
    max_overflow: int = 10
    pool_timeout: int = 30
    pool_recycle: int = 1800
    echo: bool = False
    url: Optional[str] = None

    @classmethod
    def from_env(cls) -> 'DatabaseSettings':
        """Create settings from environment variables."""
        return cls(
            host=os.getenv("DB_HOST", "localhost"),
            port=int(os.getenv("DB_PORT", "5432")),
            database=os.getenv("DB_NAME", "comunidad"),
            user=os.getenv("DB_USER", "postgres"),
            password=os.getenv("DB_PASSWORD", ""),
            pool_size=int(os.getenv("DB_POOL_SIZE", "5")),
            max_overflow=int(os.getenv("DB_MAX_OVERFLOW", "10")),
            pool_timeout=int(os.getenv("DB_POOL_TIMEOUT", "30")),
            pool_recycle=int(os.getenv("DB_POOL_RECYCLE", "1800")),
            echo=os.getenv("DB_ECHO", "false").lower() == "true",
            url=os.getenv("DATABASE_URL")
        )

    @classmethod
    def from_config(cls, db_config: Any) -> 'DatabaseSettings':
        """Create settings from the ``database`` section of ConfigManager."""
        return cls(
            host=db_config.host,
            port=db_config.port,
            database=db_config.name,
            user=db_config.user,
            password=db_config.password,
            pool_size=db_config.pool_size,
            max_overflow=db_config.max_overflow,
            echo=db_config.echo,
            url=db_config.url or None
        )

    def get_url(self) -> str:
        """Build database URL; an explicit URL wins."""
        if self.url:
            return self.url
        return f"postgresql+psycopg2://{self.user}:{self.password}@{self.host}:{self.port}/{self.database}"

    def pool_settings(self) -> dict:
        return {
            "pool_size": self.pool_size,
            "max_overflow": self.max_overflow,
            "pool_timeout": self.pool_timeout,
            "pool_recycle": self.pool_recycle,
            "pool_pre_ping": True,
        }


@lru_cache()
def get_settings() -> DatabaseSettings:
    """Get cached database settings."""
    return DatabaseSettings.from_env()


# ============================================
# RETRY LOGIC
# ============================================

def create_retry_decorator(
    max_attempts: int = 3,
    min_wait: float = 1,
    max_wait: float = 10
) -> Callable:
    """
    Create a retry decorator for connection-level operations.

    Only OperationalError (connection refused, server gone) is retried;
    integrity failures are never retried here.
    """
    return retry(
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(multiplier=1, min=min_wait, max=max_wait),
        retry=retry_if_exception_type(OperationalError),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True
    )


db_retry = create_retry_decorator()


# ============================================
# SQLITE SUPPORT
# ============================================

def configure_sqlite_engine(engine: Engine) -> Engine:
    """
    Make a SQLite engine honour the registry's guarantees.

    - PRAGMA foreign_keys=ON so cascades and restricts are enforced
    - BEGIN IMMEDIATE so concurrent writers queue on the database lock
      instead of both passing their uniqueness checks
    """

    @event.listens_for(engine, "connect")
    def on_connect(dbapi_connection, connection_record):
        # Disable pysqlite's own BEGIN handling; we emit BEGIN IMMEDIATE below
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    return engine


def create_sqlite_engine(path: Optional[str] = None, echo: bool = False) -> Engine:
    """
    Create a configured SQLite engine.

    Args:
        path: Database file; None for a private in-memory database
        echo: Log SQL statements
    """
    if path is None:
        engine = create_engine(
            "sqlite://",
            echo=echo,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False}
        )
    else:
        engine = create_engine(
            f"sqlite:///{path}",
            echo=echo,
            connect_args={"check_same_thread": False, "timeout": 30}
        )
    return configure_sqlite_engine(engine)


# ============================================
# UNIT OF WORK PATTERN
# ============================================

class UnitOfWork:
    """
    Unit of Work pattern for explicit transaction management.

    Usage:
        with provider.get_unit_of_work() as uow:
            repo = ElderlyPersonRepository(uow.session)
            person = repo.create(data)
            uow.commit()  # Explicit commit
    """

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory
        self._session: Optional[Session] = None

    def __enter__(self) -> 'UnitOfWork':
        self._session = self._session_factory()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if exc_type is not None:
            self.rollback()
        self.close()

    @property
    def session(self) -> Session:
        if self._session is None:
            raise RuntimeError("UnitOfWork not started. Use as context manager.")
        return self._session

    def commit(self) -> None:
        if self._session:
            self._session.commit()

    def rollback(self) -> None:
        if self._session:
            self._session.rollback()

    def close(self) -> None:
        if self._session:
            self._session.close()
            self._session = None


# ============================================
# DATABASE SESSION PROVIDER
# ============================================

class DatabaseSessionProvider:
    """
    Provides database sessions and transaction scopes.

    Usage:
        provider = DatabaseSessionProvider()
        provider.init()

        with provider.session_scope() as session:
            ElderlyPersonRepository(session).create(data)
            # Auto-commits on exit, rolls back on exception
    """

    def __init__(
        self,
        settings: Optional[DatabaseSettings] = None,
        engine: Optional[Engine] = None
    ):
        """
        Initialize the database session provider.

        Args:
            settings: Database settings (uses env if not provided)
            engine: Pre-created engine (for testing)
        """
        self._settings = settings or get_settings()
        self._engine = engine
        self._session_factory: Optional[sessionmaker] = None
        self._initialized = False

    def init(self, echo: Optional[bool] = None) -> None:
        """
        Initialize the database engine and session factory.

        Args:
            echo: Override echo setting for SQL logging
        """
        if self._initialized:
            return

        if echo is not None:
            self._settings.echo = echo

        if self._engine is None:
            self._engine = self._create_engine_with_retry()

        self._session_factory = sessionmaker(
            bind=self._engine,
            autocommit=False,
            autoflush=False,
            expire_on_commit=False
        )

        self._setup_event_listeners()

        self._initialized = True
        logger.info(f"Database session provider initialized ({self._engine.dialect.name})")

    @db_retry
    def _create_engine_with_retry(self) -> Engine:
        """Create database engine with retry logic."""
        url = self._settings.get_url()

        if url.startswith("sqlite"):
            path = url.split("///", 1)[1] if "///" in url else None
            engine = create_sqlite_engine(path or None, echo=self._settings.echo)
        else:
            engine = create_engine(
                url,
                echo=self._settings.echo,
                poolclass=QueuePool,
                **self._settings.pool_settings()
            )

        # Verify connection
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))

        return engine

    def _setup_event_listeners(self) -> None:
        """Set up SQLAlchemy event listeners for logging and debugging."""

        @event.listens_for(self._engine, "checkout")
        def on_checkout(dbapi_connection, connection_record, connection_proxy):
            logger.debug("Connection checked out from pool")

        @event.listens_for(self._engine, "checkin")
        def on_checkin(dbapi_connection, connection_record):
            logger.debug("Connection returned to pool")

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            raise RuntimeError("Database not initialized. Call init() first.")
        return self._engine

    @property
    def session_factory(self) -> sessionmaker:
        if self._session_factory is None:
            raise RuntimeError("Database not initialized. Call init() first.")
        return self._session_factory

    def get_session(self) -> Generator[Session, None, None]:
        """Generator dependency yielding a plain session (caller manages commits)."""
        if self._session_factory is None:
            self.init()

        session = self._session_factory()
        try:
            yield session
        finally:
            session.close()

    def get_unit_of_work(self) -> UnitOfWork:
        """Get a Unit of Work for explicit transaction management."""
        if self._session_factory is None:
            self.init()
        return UnitOfWork(self._session_factory)

    @contextmanager
    def session_scope(self) -> Generator[Session, None, None]:
        """
        Context manager for session with auto-commit/rollback.

        Everything done inside the block, cascades included, is applied as
        one transaction or not at all.
        """
        if self._session_factory is None:
            self.init()

        session = self._session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def create_tables(self) -> None:
        """Create all database tables."""
        if self._engine is None:
            self.init()
        Base.metadata.create_all(self._engine)
        logger.info("Database tables created")

    def drop_tables(self) -> None:
        """Drop all database tables. USE WITH CAUTION!"""
        if self._engine is None:
            self.init()
        Base.metadata.drop_all(self._engine)
        logger.warning("Database tables dropped")

    @db_retry
    def health_check(self) -> bool:
        """
        Check if database connection is healthy.

        Returns:
            True if connection is healthy, False otherwise
        """
        try:
            with self.session_scope() as session:
                session.execute(text("SELECT 1"))
            return True
        except SQLAlchemyError as e:
            logger.error(f"Database health check failed: {e}")
            return False

    def health_status(self) -> HealthStatus:
        """Detailed health check with latency and pool figures."""
        if self._session_factory is None:
            self.init()
        return check_health(self._engine, self._session_factory)

    def close(self) -> None:
        """Close database connections and clean up."""
        if self._engine:
            self._engine.dispose()
            logger.info("Database engine disposed")
        self._initialized = False


# ============================================
# GLOBAL PROVIDER INSTANCE
# ============================================

_db_provider: Optional[DatabaseSessionProvider] = None


def get_db_provider() -> DatabaseSessionProvider:
    """Get the global database provider instance."""
    global _db_provider
    if _db_provider is None:
        _db_provider = DatabaseSessionProvider()
    return _db_provider


def init_db(echo: bool = False, settings: Optional[DatabaseSettings] = None) -> DatabaseSessionProvider:
    """
    Initialize the global database provider.

    Call this during application startup.

    Args:
        echo: If True, log all SQL statements
        settings: Settings to use instead of the environment
    """
    global _db_provider
    if settings is not None and _db_provider is None:
        _db_provider = DatabaseSessionProvider(settings=settings)
    provider = get_db_provider()
    provider.init(echo=echo)
    return provider


def get_db() -> Generator[Session, None, None]:
    """Yield a session from the global provider."""
    provider = get_db_provider()
    if not provider._initialized:
        provider.init()

    yield from provider.get_session()


def close_db() -> None:
    """
    Close the global database provider.

    Call this during application shutdown.
    """
    global _db_provider
    if _db_provider:
        _db_provider.close()
        _db_provider = None


# ============================================
# PYTEST FIXTURES SUPPORT
# ============================================

def create_test_provider(
    engine: Optional[Engine] = None,
    settings: Optional[DatabaseSettings] = None,
    create_schema: bool = True
) -> DatabaseSessionProvider:
    """
    Create a database provider for testing.

    Args:
        engine: Pre-created engine; defaults to an in-memory SQLite engine
        settings: Custom settings for testing
        create_schema: Create all tables immediately

    Returns:
        Initialized DatabaseSessionProvider
    """
    provider = DatabaseSessionProvider(
        settings=settings or DatabaseSettings(url="sqlite://"),
        engine=engine or create_sqlite_engine()
    )
    provider.init()
    if create_schema:
        provider.create_tables()
    return provider

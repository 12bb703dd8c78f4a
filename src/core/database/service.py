"""
Database Service - Core Infrastructure Layer

Purpose
-------
Centralized async database engine and session management for the economy
engine. Provides atomic transactions, pessimistic locking, schema creation,
and health checks for all database operations.

Responsibilities
----------------
- Initialize and manage a single AsyncEngine instance with connection pooling
- Provide async context managers for read-only sessions and atomic transactions
- Enforce transaction discipline: automatic commit on success, rollback on exception
- Support pessimistic row locking via `with_for_update=True`
- Create the schema from `Base.metadata` for bootstrap and tests
- Configure statement timeouts for PostgreSQL connections
- Provide idempotent initialization with async lock protection

Non-Responsibilities
--------------------
- Versioned migrations (schema is created from model metadata)
- Domain logic or business rules
- Event emission

Architecture Notes
------------------
**Transaction Model**:
- `get_transaction()` is the primary interface for all state mutations
- Automatic commit on success, rollback on any exception
- Never manually call `session.commit()` inside service code
- Use pessimistic locks: `await session.get(Model, pk, with_for_update=True)`

**Connection Pooling**:
- QueuePool for production (configurable pool_size and max_overflow)
- NullPool for testing environments (no connection reuse)

**Rollback Logging**:
- Domain rejections (insufficient funds, listing not live...) are expected
  outcomes and are logged at info level with their error code
- Driver errors are logged at error level with traceback

Usage Example
-------------
>>> async with DatabaseService.get_transaction() as session:
>>>     user = await DatabaseService.get_locked_entity(session, User, user_id)
>>>     user.balance_silver -= 100
>>>     # Automatic commit on exit

>>> async with DatabaseService.get_session() as session:
>>>     result = await session.execute(select(User).where(User.id == user_id))
>>>     user = result.scalar_one_or_none()
"""

from __future__ import annotations

import asyncio
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncGenerator, Dict, Optional, Type, TypeVar

from sqlalchemy import text
from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool, Pool

from src.core.config.config import Config
from src.core.exceptions import (
    DatabaseInitializationError,
    DatabaseNotInitializedError,
    ErrorSeverity,
    get_error_severity,
)
from src.core.logging.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


# ============================================================================
# Configuration Snapshot
# ============================================================================


@dataclass(frozen=True)
class _DatabaseConfigSnapshot:
    """
    Immutable snapshot of database configuration.

    Provides a stable configuration view for the lifetime of the engine.
    """

    url: str
    echo: bool
    use_null_pool: bool
    pool_size: int
    max_overflow: int
    pool_recycle: int
    pool_timeout: int
    statement_timeout_ms: int

    @property
    def is_postgres(self) -> bool:
        return self.url.startswith(("postgresql://", "postgresql+asyncpg://"))

    @property
    def url_scheme(self) -> str:
        return self.url.split(":", 1)[0] if ":" in self.url else "unknown"


# ============================================================================
# DatabaseService - Core Infrastructure
# ============================================================================


class DatabaseService:
    """
    Centralized async database engine and session management.

    Public API
    ----------
    **Lifecycle**:
    - initialize() -> Initialize engine and session factory
    - shutdown() -> Dispose engine and cleanup resources
    - create_schema() -> Create all tables from model metadata

    **Session Management**:
    - get_session() -> Read-only or manual transaction control
    - get_transaction() -> Atomic write transaction (preferred)

    **Utilities**:
    - health_check() -> Fast database reachability check
    - get_pool_metrics() -> Current connection pool statistics
    - get_locked_entity() -> Helper for pessimistic row locking
    """

    _engine: Optional[AsyncEngine] = None
    _session_factory: Optional[async_sessionmaker[AsyncSession]] = None
    _config_snapshot: Optional[_DatabaseConfigSnapshot] = None
    _init_lock: asyncio.Lock = asyncio.Lock()

    # ========================================================================
    # Initialization & Shutdown
    # ========================================================================

    @classmethod
    def _build_config_snapshot(cls) -> _DatabaseConfigSnapshot:
        """
        Build an immutable configuration snapshot from Config.

        Raises
        ------
        DatabaseInitializationError
            If DATABASE_URL is missing or invalid.
        """
        database_url = Config.DATABASE_URL
        if not database_url or not isinstance(database_url, str):
            logger.error("DATABASE_URL is not configured or invalid")
            raise DatabaseInitializationError(
                "DATABASE_URL must be configured as a non-empty string"
            )

        snapshot = _DatabaseConfigSnapshot(
            url=database_url,
            echo=Config.DATABASE_ECHO,
            use_null_pool=Config.is_testing() or database_url.startswith("sqlite"),
            pool_size=Config.DATABASE_POOL_SIZE,
            max_overflow=Config.DATABASE_MAX_OVERFLOW,
            pool_recycle=Config.DATABASE_POOL_RECYCLE,
            pool_timeout=Config.DATABASE_POOL_TIMEOUT,
            statement_timeout_ms=Config.DATABASE_STATEMENT_TIMEOUT_MS,
        )

        logger.debug(
            "Database configuration snapshot created",
            extra={
                "url_scheme": snapshot.url_scheme,
                "null_pool": snapshot.use_null_pool,
                "pool_size": snapshot.pool_size,
                "max_overflow": snapshot.max_overflow,
                "statement_timeout_ms": snapshot.statement_timeout_ms,
            },
        )

        return snapshot

    @classmethod
    async def initialize(cls) -> None:
        """
        Initialize the database engine and session factory.

        Idempotent: returns immediately if already initialized.

        Raises
        ------
        DatabaseInitializationError
            If configuration is invalid or engine creation fails.
        """
        async with cls._init_lock:
            if cls._engine is not None:
                logger.debug("DatabaseService already initialized; skipping")
                return

            logger.info("Initializing DatabaseService")

            try:
                config = cls._build_config_snapshot()
                cls._config_snapshot = config

                engine_kwargs: Dict[str, Any] = {"echo": config.echo}
                if config.use_null_pool:
                    engine_kwargs["poolclass"] = NullPool
                else:
                    engine_kwargs.update(
                        {
                            "pool_size": config.pool_size,
                            "max_overflow": config.max_overflow,
                            "pool_recycle": config.pool_recycle,
                            "pool_timeout": config.pool_timeout,
                            "pool_pre_ping": True,
                        }
                    )

                cls._engine = create_async_engine(config.url, **engine_kwargs)
                cls._session_factory = async_sessionmaker(
                    bind=cls._engine,
                    class_=AsyncSession,
                    expire_on_commit=False,
                )

                logger.info(
                    "DatabaseService initialized successfully",
                    extra={
                        "url_scheme": config.url_scheme,
                        "null_pool": config.use_null_pool,
                    },
                )

            except DatabaseInitializationError:
                raise
            except Exception as exc:
                logger.error(
                    "DatabaseService initialization failed",
                    extra={
                        "error": str(exc),
                        "error_type": type(exc).__name__,
                    },
                    exc_info=True,
                )
                raise DatabaseInitializationError(
                    f"Database initialization failed: {exc}", exc
                ) from exc

    @classmethod
    async def shutdown(cls) -> None:
        """
        Dispose the engine and reset internal state.

        Safe to call multiple times; no-op if already shut down.
        """
        async with cls._init_lock:
            if cls._engine is None:
                logger.debug("DatabaseService not initialized; nothing to shutdown")
                return

            logger.info("Shutting down DatabaseService")

            try:
                await cls._engine.dispose()
                logger.info("DatabaseService shutdown complete")
            finally:
                cls._engine = None
                cls._session_factory = None
                cls._config_snapshot = None

    @classmethod
    async def create_schema(cls) -> None:
        """
        Create every table registered on `Base.metadata` (idempotent).

        Imports the model package so all mappers are registered first.
        """
        cls._ensure_initialized()
        assert cls._engine is not None

        from src.database.models import Base

        async with cls._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

        logger.info(
            "Database schema ensured",
            extra={"table_count": len(Base.metadata.tables)},
        )

    # ========================================================================
    # Health Check
    # ========================================================================

    @classmethod
    async def health_check(cls) -> bool:
        """
        Perform a lightweight `SELECT 1` health check.

        Does not raise on failure; returns False instead.
        """
        if cls._engine is None:
            logger.warning("Health check called on uninitialized DatabaseService")
            return False

        start = time.perf_counter()
        try:
            async with cls._engine.begin() as conn:
                await conn.execute(text("SELECT 1"))
            return True
        except (OperationalError, DBAPIError, OSError) as exc:
            logger.warning(
                "Database health check failed",
                extra={
                    "error": str(exc),
                    "error_type": type(exc).__name__,
                },
            )
            return False
        finally:
            logger.debug(
                "Database health check completed",
                extra={"duration_ms": (time.perf_counter() - start) * 1000.0},
            )

    @classmethod
    def get_pool_metrics(cls) -> Dict[str, int]:
        """
        Current connection pool statistics.

        All values are zero when the engine is not initialized or uses NullPool.
        """
        empty = {
            "pool_size": 0,
            "checked_out": 0,
            "checked_in": 0,
            "overflow": 0,
            "total_connections": 0,
        }
        if cls._engine is None or cls._config_snapshot is None:
            return empty
        if cls._config_snapshot.use_null_pool:
            return empty

        pool: Pool = cls._engine.pool
        checked_out = pool.checkedout()  # type: ignore[attr-defined]
        checked_in = pool.checkedin()  # type: ignore[attr-defined]
        overflow = max(0, pool.overflow())  # type: ignore[attr-defined]

        return {
            "pool_size": cls._config_snapshot.pool_size,
            "checked_out": checked_out,
            "checked_in": checked_in,
            "overflow": overflow,
            "total_connections": checked_out + checked_in,
        }

    # ========================================================================
    # Session & Transaction Context Managers
    # ========================================================================

    @classmethod
    def _ensure_initialized(cls) -> None:
        if cls._session_factory is None or cls._engine is None:
            logger.error("DatabaseService operation attempted before initialization")
            raise DatabaseNotInitializedError()

    @classmethod
    def _get_config_snapshot(cls) -> _DatabaseConfigSnapshot:
        if cls._config_snapshot is None:
            raise DatabaseNotInitializedError()
        return cls._config_snapshot

    @classmethod
    async def _apply_session_settings(cls, session: AsyncSession) -> None:
        config = cls._get_config_snapshot()
        if config.is_postgres:
            await session.execute(
                text(f"SET LOCAL statement_timeout = {int(config.statement_timeout_ms)}")
            )

    @classmethod
    @asynccontextmanager
    async def get_session(cls) -> AsyncGenerator[AsyncSession, None]:
        """
        Create a database session without automatic commit.

        Use for read-only operations. For writes prefer `get_transaction()`.

        Raises
        ------
        DatabaseNotInitializedError
            If DatabaseService has not been initialized.
        """
        cls._ensure_initialized()
        assert cls._session_factory is not None

        async with cls._session_factory() as session:
            await cls._apply_session_settings(session)
            logger.debug("Database session opened (read-only)")
            yield session

    @classmethod
    @asynccontextmanager
    async def get_transaction(cls) -> AsyncGenerator[AsyncSession, None]:
        """
        Create a database session wrapped in an atomic transaction.

        This is the **primary interface for all state mutations**.

        Behavior
        --------
        **On Success**: commits the transaction.

        **On Exception**: rolls back, logs with error context, and re-raises
        the original exception. Nothing done inside the block persists.

        Usage Example
        -------------
        >>> async with DatabaseService.get_transaction() as session:
        >>>     user = await session.get(User, user_id, with_for_update=True)
        >>>     user.balance_silver += 100
        """
        cls._ensure_initialized()
        assert cls._session_factory is not None

        start = time.perf_counter()
        async with cls._session_factory() as session:
            try:
                await cls._apply_session_settings(session)
                logger.debug("Database transaction started")
                yield session

                await session.commit()
                logger.debug(
                    "Database transaction committed",
                    extra={"duration_ms": (time.perf_counter() - start) * 1000.0},
                )

            except (OperationalError, DBAPIError) as exc:
                await session.rollback()
                logger.error(
                    f"{type(exc).__name__} in transaction; rolled back",
                    extra={
                        "error": str(exc),
                        "error_type": type(exc).__name__,
                        "duration_ms": (time.perf_counter() - start) * 1000.0,
                    },
                    exc_info=True,
                )
                raise

            except Exception as exc:
                await session.rollback()
                severity = get_error_severity(exc)
                extra = {
                    "error": str(exc),
                    "error_type": type(exc).__name__,
                    "error_code": getattr(exc, "error_code", None),
                    "duration_ms": (time.perf_counter() - start) * 1000.0,
                }
                if severity in (ErrorSeverity.DEBUG, ErrorSeverity.INFO):
                    logger.info("Transaction rejected; rolled back", extra=extra)
                elif severity is ErrorSeverity.WARNING:
                    logger.warning("Transaction rejected; rolled back", extra=extra)
                else:
                    logger.error(
                        "Error in transaction; rolled back", extra=extra, exc_info=True
                    )
                raise

    # ========================================================================
    # Pessimistic Locking Helper
    # ========================================================================

    @classmethod
    async def get_locked_entity(
        cls,
        session: AsyncSession,
        model: Type[T],
        primary_key: Any,
    ) -> Optional[T]:
        """
        Fetch an entity with a pessimistic row lock (SELECT FOR UPDATE).

        Sugar over `await session.get(Model, pk, with_for_update=True)`.
        The row is re-read from the database even if already in the identity
        map, so the caller sees the committed state it now holds the lock on.
        """
        return await session.get(
            model, primary_key, with_for_update=True, populate_existing=True
        )

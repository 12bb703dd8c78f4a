"""
Database subsystem for the economy engine.

Provides the async SQLAlchemy engine, session and transaction management,
and the ORM base classes and mixins for model definitions.
"""

from src.core.database.base import (
    Base,
    BigIntId,
    IdMixin,
    TimestampMixin,
    utc_now,
)
from src.core.database.service import DatabaseService
from src.core.exceptions import (
    DatabaseInitializationError,
    DatabaseNotInitializedError,
)

__all__ = [
    # ORM Base & Mixins
    "Base",
    "BigIntId",
    "IdMixin",
    "TimestampMixin",
    "utc_now",
    # Main service
    "DatabaseService",
    # Exceptions
    "DatabaseInitializationError",
    "DatabaseNotInitializedError",
]

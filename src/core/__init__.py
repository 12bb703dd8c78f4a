"""
Core infrastructure layer for the economy engine.

Purpose
-------
Provide a single, well-structured import surface for the core infrastructure
subsystems:

- Configuration management (Config, ConfigManager)
- Database subsystem (DatabaseService)
- Logging (structured logging, logger factory)
- Validation utilities (InputValidator)
- Infrastructure exceptions

Responsibilities
----------------
- Re-export commonly used infra primitives for ergonomic imports
- Maintain a stable, intentional public API via __all__

Non-Responsibilities
--------------------
- Implement infra logic (delegated to submodules)
- Economy rules (src.modules)

Feature modules still import from their own subpackages; this surface is for
scripts and tests.
"""

from __future__ import annotations

from src.core.config import Config, ConfigManager
from src.core.database import DatabaseService
from src.core.exceptions import (
    ConfigInitializationError,
    ConfigurationError,
    ConfigWriteError,
    DatabaseInitializationError,
    DatabaseNotInitializedError,
    EconomyInfrastructureException,
    ErrorSeverity,
)
from src.core.logging import get_logger, setup_logging
from src.core.validation import InputValidator

__all__ = [
    # Configuration
    "Config",
    "ConfigManager",
    # Database
    "DatabaseService",
    # Logging
    "setup_logging",
    "get_logger",
    # Validation
    "InputValidator",
    # Infrastructure Exceptions
    "EconomyInfrastructureException",
    "ConfigurationError",
    "ConfigInitializationError",
    "ConfigWriteError",
    "DatabaseInitializationError",
    "DatabaseNotInitializedError",
    "ErrorSeverity",
]

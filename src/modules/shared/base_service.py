"""
Base Service Foundation

Purpose
-------
Provides the foundational class for all economy services. Services implement
the economy rules, own their transactions, and publish domain events once
their work has committed.

Design Notes
------------
This base class provides:
- Structured logging with operation context
- Safe config access with typed fallbacks
- Event emission helpers

What this class does NOT do:
- Manage database transactions (that's DatabaseService's job)
- Hold any per-request state

Usage
-----
    class ShopService(BaseService):
        def __init__(self, config_manager, event_bus, logger, catalog, ...):
            super().__init__(config_manager, event_bus, logger)
            self._catalog = catalog

        async def buy_base_roll(self, user_id: int):
            price = self.get_config_int("economy.shop.base_roll_price", 100)
            ...
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, Optional

from src.core.exceptions import ConfigurationError

if TYPE_CHECKING:
    from logging import Logger

    from src.core.config.manager import ConfigManager
    from src.core.event.bus import EventBus


class BaseService:
    """
    Base class for all economy services.

    Args:
        config_manager: Application configuration manager (class or instance)
        event_bus: Event bus for post-commit notifications
        logger: Structured logger instance
    """

    def __init__(
        self,
        config_manager: ConfigManager,
        event_bus: EventBus,
        logger: Logger,
    ) -> None:
        self._config = config_manager
        self._events = event_bus
        self.log = logger

    # ========================================================================
    # CONFIG ACCESS
    # ========================================================================

    def get_config(
        self, key: str, default: Optional[Any] = None, required: bool = False
    ) -> Any:
        """
        Safely retrieve configuration value.

        Raises:
            ConfigurationError: If required=True and key is missing
        """
        value = self._config.get(key, default)
        if required and value is None:
            raise ConfigurationError(
                key, f"Required configuration key '{key}' is missing"
            )
        return value

    def get_config_int(self, key: str, default: int) -> int:
        value = self.get_config(key, default)
        try:
            return int(value)
        except (TypeError, ValueError) as exc:
            raise ConfigurationError(
                key, f"Configuration key '{key}' must be an integer, got {value!r}"
            ) from exc

    def get_config_float(self, key: str, default: float) -> float:
        value = self.get_config(key, default)
        try:
            return float(value)
        except (TypeError, ValueError) as exc:
            raise ConfigurationError(
                key, f"Configuration key '{key}' must be a number, got {value!r}"
            ) from exc

    # ========================================================================
    # EVENTS
    # ========================================================================

    async def emit_event(
        self,
        event_type: str,
        data: Dict[str, Any],
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        """
        Publish a domain event.

        Callers publish after their transaction has committed. When a service
        joins a caller-supplied session it returns the payload instead and the
        caller publishes once it commits.
        """
        await self._events.publish(event_type, {**data, **(context or {})})

    # ========================================================================
    # LOGGING
    # ========================================================================

    def log_operation(self, operation: str, **context: Any) -> None:
        """Log a service operation with structured context."""
        self.log.info(
            f"Service operation: {operation}",
            extra={"operation": operation, **context},
        )

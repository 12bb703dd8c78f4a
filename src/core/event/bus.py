"""
EventBus: async pub/sub with tiered concurrency.

Purpose
-------
Decouples the economy services from whoever reacts to their outcomes
(analytics, notifications, audit sinks). Services publish after commit;
listeners never run inside an economy transaction.

Responsibilities
----------------
- Register/unregister listeners with priorities
- Publish events to all matching listeners (exact + wildcard patterns
  such as "marketplace.*" or "*")
- Execute listeners via EventScheduler according to their tier
- Isolate listener errors from publishers

Design Decisions
----------------
- **Instance-based**: tests build their own bus; the application shares the
  module-level `event_bus` from `src.core.event`.
- **Config-driven timeouts**: CRITICAL/HIGH timeouts come from
  `core.event.listener_timeout.*` when a ConfigManager is supplied.

Examples
--------
>>> bus = EventBus()
>>> bus.subscribe("marketplace.*", audit_sink, priority=ListenerPriority.LOW)
>>> await bus.publish("marketplace.listing_sold", {"listing_id": 7})
"""

from __future__ import annotations

import inspect
from fnmatch import fnmatchcase
from typing import Any, Dict, List, Optional, Type

from src.core.config.manager import ConfigManager
from src.core.event.scheduler import EventScheduler
from src.core.event.types import (
    CallbackType,
    EventListener,
    EventPayload,
    ListenerPriority,
)
from src.core.logging.logger import get_logger

logger = get_logger(__name__)


class EventBus:
    """
    Async EventBus with tiered listener execution.

    Thread Safety
    -------------
    Designed for single-threaded asyncio usage. Registry mutations are atomic
    between awaits.
    """

    def __init__(
        self,
        config_manager: Optional[Type[ConfigManager]] = None,
        *,
        scheduler: Optional[EventScheduler] = None,
        critical_timeout_seconds: Optional[float] = None,
        high_timeout_seconds: Optional[float] = None,
    ) -> None:
        self._config_manager = config_manager
        self._scheduler = scheduler or EventScheduler()
        self._listeners: Dict[str, List[EventListener]] = {}
        self._published: Dict[str, int] = {}

        self._critical_timeout = self._load_timeout(
            key="core.event.listener_timeout.critical_seconds",
            override=critical_timeout_seconds,
            default=5.0,
        )
        self._high_timeout = self._load_timeout(
            key="core.event.listener_timeout.high_seconds",
            override=high_timeout_seconds,
            default=5.0,
        )

    # ------------------------------------------------------------------ #
    # Configuration Loading
    # ------------------------------------------------------------------ #

    def _load_timeout(self, key: str, override: Optional[float], default: float) -> float:
        """Resolve a timeout: override, then config, then default."""
        if override is not None:
            return float(override)
        if self._config_manager is None:
            return float(default)
        return float(self._config_manager.get(key, default))

    # ------------------------------------------------------------------ #
    # Listener Validation
    # ------------------------------------------------------------------ #

    @staticmethod
    def _validate_callback_signature(callback: CallbackType) -> None:
        """
        Ensure callback accepts exactly one parameter.

        Raises
        ------
        ValueError:
            If callback signature is invalid.
        """
        try:
            sig = inspect.signature(callback)
        except (TypeError, ValueError):
            # Built-ins may not expose a signature
            return

        params = list(sig.parameters.values())
        if len(params) != 1:
            callback_name = getattr(callback, "__qualname__", None) or repr(callback)
            raise ValueError(
                f"Event listener must accept exactly 1 parameter (EventPayload), "
                f"got {len(params)} parameters for '{callback_name}'"
            )

    # ------------------------------------------------------------------ #
    # Subscription API
    # ------------------------------------------------------------------ #

    def subscribe(
        self,
        event_name: str,
        callback: CallbackType,
        *,
        priority: ListenerPriority = ListenerPriority.NORMAL,
        identifier: Optional[str] = None,
        once: bool = False,
    ) -> str:
        """
        Subscribe a callback to an event name or wildcard pattern.

        Returns
        -------
        str:
            The listener identifier (for unsubscribing later). Subscribing the
            same identifier twice to the same key is a no-op.
        """
        self._validate_callback_signature(callback)

        listener = EventListener.from_callback(
            event_name=event_name,
            callback=callback,
            priority=priority,
            identifier=identifier,
            once=once,
        )

        bucket = self._listeners.setdefault(event_name, [])
        if any(existing.identifier == listener.identifier for existing in bucket):
            logger.warning(
                "EventBus: duplicate listener prevented",
                extra={"event_name": event_name, "listener_id": listener.identifier},
            )
            return listener.identifier

        bucket.append(listener)
        bucket.sort(key=lambda lst: lst.priority.value)

        logger.debug(
            "EventBus: subscribed listener",
            extra={
                "event_name": event_name,
                "listener_id": listener.identifier,
                "priority": listener.priority.name,
                "once": listener.once,
            },
        )
        return listener.identifier

    def unsubscribe(self, event_name: str, identifier: str) -> bool:
        bucket = self._listeners.get(event_name, [])
        remaining = [lst for lst in bucket if lst.identifier != identifier]
        removed = len(remaining) != len(bucket)
        if remaining:
            self._listeners[event_name] = remaining
        else:
            self._listeners.pop(event_name, None)

        if removed:
            logger.debug(
                "EventBus: unsubscribed listener",
                extra={"event_name": event_name, "listener_id": identifier},
            )
        return removed

    def clear(self) -> None:
        """Remove all listeners. Intended for tests or full reinit."""
        total = self.get_listener_count()
        self._listeners.clear()
        logger.info(
            "EventBus: cleared all listeners",
            extra={"previous_listener_count": total},
        )

    def _extract_listeners_for_event(self, event_name: str) -> List[EventListener]:
        matched: List[EventListener] = []
        for key in list(self._listeners):
            if key != event_name and not fnmatchcase(event_name, key):
                continue
            bucket = self._listeners[key]
            matched.extend(bucket)
            keep = [lst for lst in bucket if not lst.once]
            if keep:
                self._listeners[key] = keep
            else:
                del self._listeners[key]
        matched.sort(key=lambda lst: lst.priority.value)
        return matched

    # ------------------------------------------------------------------ #
    # Publish API
    # ------------------------------------------------------------------ #

    async def publish(self, event_name: str, data: EventPayload) -> List[Any]:
        """
        Publish an event to all subscribed listeners.

        Returns
        -------
        List[Any]:
            Results from CRITICAL/HIGH/NORMAL listeners.
        """
        self._published[event_name] = self._published.get(event_name, 0) + 1

        listeners = self._extract_listeners_for_event(event_name)
        if not listeners:
            logger.debug(
                "EventBus: no listeners for event",
                extra={"event_name": event_name},
            )
            return []

        logger.debug(
            "EventBus: executing listeners",
            extra={"event_name": event_name, "listener_count": len(listeners)},
        )

        return await self._scheduler.execute(
            event_name=event_name,
            payload=data,
            listeners=listeners,
            logger=logger,
            critical_timeout=self._critical_timeout,
            high_timeout=self._high_timeout,
        )

    async def drain(self) -> None:
        """Await fire-and-forget listeners still running."""
        await self._scheduler.drain()

    # ------------------------------------------------------------------ #
    # Introspection
    # ------------------------------------------------------------------ #

    def get_listener_count(self, event_name: Optional[str] = None) -> int:
        if event_name is None:
            return sum(len(bucket) for bucket in self._listeners.values())
        return sum(
            len(bucket)
            for key, bucket in self._listeners.items()
            if key == event_name or fnmatchcase(event_name, key)
        )

    def get_publish_counts(self) -> Dict[str, int]:
        return dict(self._published)

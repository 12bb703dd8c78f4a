"""
Core event types for the economy EventBus.

Purpose
-------
Type definitions for the event system: event payloads, listener priorities,
callback types, and the listener record.

Priority Levels
---------------
- CRITICAL (0): Sequential, awaited, timeout-protected.
- HIGH (10): Sequential, awaited, timeout-protected.
- NORMAL (50): Concurrent, awaited.
- LOW (100): Fire-and-forget. Use for logging and analytics.

Economy operations publish after their transaction commits, so no listener
can observe or influence uncommitted state.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, Union

# JSON-serializable dict for best observability
EventPayload = Dict[str, Any]


class ListenerPriority(Enum):
    """
    Priority levels for event listeners (lower value runs earlier).

    Examples
    --------
    >>> ListenerPriority.CRITICAL.value
    0
    """

    CRITICAL = 0
    HIGH = 10
    NORMAL = 50
    LOW = 100


CallbackType = Union[
    Callable[[EventPayload], Any],
    Callable[[EventPayload], Awaitable[Any]],
]


@dataclass(slots=True, frozen=True)
class EventListener:
    """
    A registered event listener.

    Attributes
    ----------
    callback:
        Async or sync callable invoked with the event payload.
    priority:
        Determines execution order and concurrency.
    identifier:
        Unique string identifier for deduplication and unsubscription.
    once:
        If True, the listener is removed before its first execution.
    """

    callback: CallbackType
    priority: ListenerPriority
    identifier: str
    once: bool = False

    @classmethod
    def from_callback(
        cls,
        event_name: str,
        callback: CallbackType,
        priority: ListenerPriority,
        identifier: Optional[str],
        once: bool,
    ) -> EventListener:
        """
        Create an EventListener, generating `module.qualname@event` when no
        identifier is given.

        Examples
        --------
        >>> EventListener.from_callback(
        ...     "marketplace.listing_sold", on_sold, ListenerPriority.LOW, None, False
        ... ).identifier
        'analytics.on_sold@marketplace.listing_sold'
        """
        if identifier is None:
            module = getattr(callback, "__module__", "unknown")
            qualname = getattr(
                callback, "__qualname__", getattr(callback, "__name__", "callback")
            )
            identifier = f"{module}.{qualname}@{event_name}"

        return cls(
            callback=callback,
            priority=priority,
            identifier=identifier,
            once=once,
        )

"""
Event system for the economy engine.

Provides the EventBus and a global singleton used by the service container.
"""

from src.core.config.manager import ConfigManager

from .bus import EventBus
from .types import (
    CallbackType,
    EventListener,
    EventPayload,
    ListenerPriority,
)

# Global runtime singleton EventBus
event_bus = EventBus(ConfigManager)

__all__ = [
    "event_bus",
    "EventBus",
    "EventPayload",
    "ListenerPriority",
    "EventListener",
    "CallbackType",
]

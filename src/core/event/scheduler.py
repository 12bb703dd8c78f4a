"""
EventScheduler: tiered listener execution for the EventBus.

Tiers
-----
- CRITICAL / HIGH: sequential, ordered, awaited with timeout
- NORMAL: concurrent (asyncio.gather), awaited
- LOW: fire-and-forget background tasks (tracked until done)

A failing or timed-out listener is logged and yields None; it never
propagates to the publisher or blocks other listeners.
"""

from __future__ import annotations

import asyncio
import inspect
from logging import Logger
from typing import Any, List, Optional, Set

from src.core.event.types import EventListener, EventPayload, ListenerPriority


class EventScheduler:
    """Executes event listeners according to the tiered concurrency model."""

    def __init__(self) -> None:
        # Strong references so LOW-tier tasks are not garbage collected
        self._background_tasks: Set[asyncio.Task[Any]] = set()

    async def execute(
        self,
        *,
        event_name: str,
        payload: EventPayload,
        listeners: List[EventListener],
        logger: Logger,
        critical_timeout: Optional[float],
        high_timeout: Optional[float],
    ) -> List[Any]:
        """
        Execute listeners with tiered concurrency.

        Returns
        -------
        List[Any]
            Results from CRITICAL/HIGH/NORMAL listeners in execution order.
            LOW-tier results are not collected.
        """
        by_tier = {priority: [] for priority in ListenerPriority}
        for listener in listeners:
            by_tier[listener.priority].append(listener)

        results: List[Any] = []

        for priority, timeout in (
            (ListenerPriority.CRITICAL, critical_timeout),
            (ListenerPriority.HIGH, high_timeout),
        ):
            for listener in by_tier[priority]:
                results.append(
                    await self._run_with_timeout(
                        listener=listener,
                        event_name=event_name,
                        payload=payload,
                        logger=logger,
                        timeout=timeout,
                    )
                )

        normal = by_tier[ListenerPriority.NORMAL]
        if normal:
            results.extend(
                await asyncio.gather(
                    *[
                        self._run_listener(
                            listener=lst,
                            event_name=event_name,
                            payload=payload,
                            logger=logger,
                        )
                        for lst in normal
                    ]
                )
            )

        for listener in by_tier[ListenerPriority.LOW]:
            task = asyncio.get_running_loop().create_task(
                self._run_listener(
                    listener=listener,
                    event_name=event_name,
                    payload=payload,
                    logger=logger,
                ),
                name=f"eventbus-low-{event_name}-{listener.identifier}",
            )
            self._background_tasks.add(task)
            task.add_done_callback(self._background_tasks.discard)

        return results

    async def _run_with_timeout(
        self,
        *,
        listener: EventListener,
        event_name: str,
        payload: EventPayload,
        logger: Logger,
        timeout: Optional[float],
    ) -> Any:
        coro = self._run_listener(
            listener=listener,
            event_name=event_name,
            payload=payload,
            logger=logger,
        )
        if timeout is None or timeout <= 0:
            return await coro

        try:
            return await asyncio.wait_for(coro, timeout=timeout)
        except asyncio.TimeoutError:
            logger.error(
                "EventBus listener timeout",
                extra={
                    "event_name": event_name,
                    "listener_id": listener.identifier,
                    "priority": listener.priority.name,
                    "timeout_seconds": timeout,
                },
            )
            return None

    async def _run_listener(
        self,
        *,
        listener: EventListener,
        event_name: str,
        payload: EventPayload,
        logger: Logger,
    ) -> Any:
        """
        Run a single listener with error isolation.

        Sync callbacks run in the default executor to keep the loop free.
        """
        try:
            if inspect.iscoroutinefunction(listener.callback):
                return await listener.callback(payload)

            loop = asyncio.get_running_loop()
            return await loop.run_in_executor(None, listener.callback, payload)

        except Exception as exc:
            logger.error(
                "EventBus listener failed",
                extra={
                    "event_name": event_name,
                    "listener_id": listener.identifier,
                    "priority": listener.priority.name,
                    "error": str(exc),
                    "error_type": type(exc).__name__,
                },
                exc_info=True,
            )
            return None

    async def drain(self) -> None:
        """Wait for outstanding LOW-tier tasks (shutdown and tests)."""
        if self._background_tasks:
            await asyncio.gather(*list(self._background_tasks), return_exceptions=True)

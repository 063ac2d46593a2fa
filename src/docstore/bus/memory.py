"""In-process change bus.

Fans low-level storage notifications out to subscribers living in the same
process. One bus is owned by each storage connection.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import threading
from collections import defaultdict
from collections.abc import Awaitable, Callable
from typing import Any

from docstore.observability import (
    ATTR_CHANNEL,
    ATTR_HANDLER_COUNT,
    Tracer,
    create_tracer,
)

logger = logging.getLogger(__name__)

Handler = Callable[[Any], Awaitable[None] | None]
"""A bus handler: a sync callable, or one returning an awaitable."""

Unsubscribe = Callable[[], None]
"""Closure returned by ``listen``; removes exactly one registration."""


class _Registration:
    """One handler registered on one channel."""

    __slots__ = ("channel", "handler", "name")

    def __init__(self, channel: str, handler: Handler) -> None:
        self.channel = channel
        self.handler = handler
        self.name = getattr(handler, "__qualname__", None) or repr(handler)


class ChangeBus:
    """
    Publish/subscribe registry keyed by channel name.

    Features:
    - Synchronous dispatch in registration order
    - Handlers registered during a publication only see later publications
    - Error isolation (a failing handler never stops its siblings)
    - Awaitables returned by handlers run as tracked background tasks
    - Optional OpenTelemetry tracing

    Example:
        >>> bus = ChangeBus()
        >>> unsubscribe = bus.listen("change", print)
        >>> bus.publish("change", event)
        >>> unsubscribe()

    Thread Safety:
        ``listen`` and unsubscribe closures may be called from any thread.
        ``publish`` should be called from the event loop thread when handlers
        return awaitables.
    """

    def __init__(
        self,
        *,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        """
        Initialize the bus with an empty registry.

        Args:
            tracer: Optional custom Tracer instance
            enable_tracing: If True and OpenTelemetry is available, emit traces.
                Ignored if tracer is explicitly provided.
        """
        self._registrations: dict[str, list[_Registration]] = defaultdict(list)
        self._lock = threading.RLock()
        # Track background tasks to prevent orphaned coroutines
        self._background_tasks: set[asyncio.Future[Any]] = set()
        self._stats = {
            "events_published": 0,
            "handlers_invoked": 0,
            "handler_errors": 0,
        }
        self._tracer = tracer or create_tracer(__name__, enable_tracing)

    def listen(self, channel: str, handler: Handler) -> Unsubscribe:
        """
        Register a handler on a channel.

        The same callable may be registered more than once; every registration
        is independent and has its own unsubscribe closure.

        Args:
            channel: Channel name (e.g., "change")
            handler: Callable invoked with each published payload

        Returns:
            Closure removing this registration. Calling it again is a no-op.
        """
        registration = _Registration(channel, handler)
        with self._lock:
            self._registrations[channel].append(registration)

        logger.debug(
            "Registered handler %s on %s",
            registration.name,
            channel,
            extra={"handler": registration.name, "channel": channel},
        )

        def unsubscribe() -> None:
            self._remove(registration)

        return unsubscribe

    def _remove(self, registration: _Registration) -> bool:
        with self._lock:
            registrations = self._registrations.get(registration.channel, [])
            for i, candidate in enumerate(registrations):
                if candidate is registration:
                    registrations.pop(i)
                    logger.debug(
                        "Unsubscribed handler %s from %s",
                        registration.name,
                        registration.channel,
                        extra={"handler": registration.name, "channel": registration.channel},
                    )
                    return True
        return False

    def publish(self, channel: str, payload: Any) -> None:
        """
        Invoke every handler currently registered on a channel.

        Handlers run synchronously in registration order. Exceptions are
        logged and counted per handler; they never reach sibling handlers or
        the publisher.

        Args:
            channel: Channel name
            payload: Object passed to each handler
        """
        with self._lock:
            registrations = list(self._registrations.get(channel, []))
        self._stats["events_published"] += 1

        if not registrations:
            return

        with self._tracer.span(
            "docstore.change_bus.dispatch",
            {
                ATTR_CHANNEL: channel,
                ATTR_HANDLER_COUNT: len(registrations),
            },
        ):
            for registration in registrations:
                self._invoke(registration, payload)

    def _invoke(self, registration: _Registration, payload: Any) -> None:
        try:
            result = registration.handler(payload)
        except Exception as e:
            self._stats["handler_errors"] += 1
            logger.error(
                f"Handler {registration.name} failed on {registration.channel}: {e}",
                exc_info=True,
                extra={"handler": registration.name, "channel": registration.channel},
            )
            return

        self._stats["handlers_invoked"] += 1
        if inspect.isawaitable(result):
            self._schedule(registration, result)

    def _schedule(self, registration: _Registration, awaitable: Awaitable[Any]) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No running event loop to own the work
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            self._stats["handler_errors"] += 1
            logger.error(
                f"Handler {registration.name} returned an awaitable outside an event loop",
                extra={"handler": registration.name, "channel": registration.channel},
            )
            return

        task = asyncio.ensure_future(awaitable, loop=loop)
        self._background_tasks.add(task)
        task.add_done_callback(lambda t: self._on_task_done(registration, t))

    def _on_task_done(self, registration: _Registration, task: asyncio.Future[Any]) -> None:
        """Callback when a handler's background task completes."""
        self._background_tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc:
            self._stats["handler_errors"] += 1
            logger.error(
                f"Handler {registration.name} failed on {registration.channel}: {exc}",
                exc_info=exc,
                extra={"handler": registration.name, "channel": registration.channel},
            )

    async def drain(self) -> None:
        """
        Wait until all in-flight handler tasks have finished.

        Tasks spawned while draining are awaited too. Handler failures are
        already logged and are not re-raised here.
        """
        while self._background_tasks:
            await asyncio.gather(*list(self._background_tasks), return_exceptions=True)

    def clear(self) -> None:
        """Remove every registration on every channel."""
        with self._lock:
            self._registrations.clear()

    def handler_count(self, channel: str) -> int:
        """Number of registrations on a channel."""
        with self._lock:
            return len(self._registrations.get(channel, []))

    @property
    def pending_tasks(self) -> int:
        """Number of handler tasks that have not finished yet."""
        return len(self._background_tasks)

    @property
    def stats(self) -> dict[str, int]:
        """Snapshot of dispatch counters."""
        return dict(self._stats)


__all__ = ["ChangeBus", "Handler", "Unsubscribe"]

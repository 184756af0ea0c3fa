"""
Event Bus - Fire-and-forget notification infrastructure.

This module implements two primitives:
1. Consumer: receives every matching event (subscribers cannot stop dispatch)
2. Interceptor: runs before consumers and may block the event

Both primitives support:
- Priority-based execution (higher priority = earlier execution)
- Exact event IDs or glob patterns ('module.*')
- Failure isolation: a raising subscriber is logged, dispatch continues
"""

import inspect
import logging
import re
import threading
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from modhub.core.utils import (
    InterceptorContext,
    _reset_interceptor_context,
    _set_interceptor_context,
)

logger = logging.getLogger(__name__)


class EventBusError(Exception):
    """Base exception for event bus errors."""

    pass


class RegistrationError(EventBusError):
    """Raised when handler registration fails."""

    pass


@dataclass
class Handler:
    """
    A registered consumer or interceptor.

    Attributes:
        callback: The handler function
        priority: Higher priority executes first
        registration_order: Tie-breaker for same priority (lower = earlier)
        requires_src: Whether handler expects the event ID as first argument
    """

    callback: Callable
    priority: int
    registration_order: int
    requires_src: bool = False

    def __call__(self, event_id: str, payload: Any) -> None:
        if self.requires_src:
            self.callback(event_id, payload)
        else:
            self.callback(payload)


class EventBus:
    """
    Registry and dispatcher for consumers and interceptors.
    """

    def __init__(self):
        self._consumer_routes: dict[str, list[Handler]] = {}
        self._interceptor_routes: dict[str, list[Handler]] = {}
        self._consumer_patterns: list[tuple[re.Pattern, Handler]] = []
        self._interceptor_patterns: list[tuple[re.Pattern, Handler]] = []
        self._registration_counter = 0
        self._lock = threading.Lock()

    def _next_registration_order(self) -> int:
        order = self._registration_counter
        self._registration_counter += 1
        return order

    def _glob_to_regex(self, pattern: str) -> re.Pattern:
        """
        Convert a glob pattern to a compiled regex.

        ``*`` matches within one dot-separated segment only, so
        'module.*' matches 'module.install' but not 'module.install.post'.
        """
        escaped = re.escape(pattern)
        regex_pattern = escaped.replace(r"\*", "[^.]*")
        return re.compile(f"^{regex_pattern}$")

    def _require_src(self, callback: Callable, kind: str) -> None:
        params = list(inspect.signature(callback).parameters.keys())
        if len(params) < 1 or params[0] != "src":
            raise RegistrationError(
                f"Pattern-based {kind} must have 'src' as first parameter. "
                f"Got: {params}"
            )

    def _make_handler(self, callback: Callable, priority: int, requires_src: bool) -> Handler:
        return Handler(
            callback=callback,
            priority=priority,
            registration_order=self._next_registration_order(),
            requires_src=requires_src,
        )

    def register_consumer(self, event_id: str, callback: Callable, priority: int = 0) -> None:
        """
        Register a consumer for an exact event ID.

        Args:
            event_id: Exact event ID to match
            callback: Handler taking (payload)
            priority: Execution priority (higher = earlier)
        """
        with self._lock:
            handler = self._make_handler(callback, priority, requires_src=False)
            self._consumer_routes.setdefault(event_id, []).append(handler)

    def register_consumer_re(self, pattern: str, callback: Callable, priority: int = 0) -> None:
        """
        Register a consumer for a glob pattern.

        Args:
            pattern: Glob pattern matched against event IDs
            callback: Handler taking (src, payload)
            priority: Execution priority (higher = earlier)

        Raises:
            RegistrationError: If callback doesn't take 'src' first
        """
        self._require_src(callback, "consumer")
        with self._lock:
            handler = self._make_handler(callback, priority, requires_src=True)
            self._consumer_patterns.append((self._glob_to_regex(pattern), handler))

    def register_interceptor(self, event_id: str, callback: Callable, priority: int = 0) -> None:
        """Register an interceptor for an exact event ID."""
        with self._lock:
            handler = self._make_handler(callback, priority, requires_src=False)
            self._interceptor_routes.setdefault(event_id, []).append(handler)

    def register_interceptor_re(self, pattern: str, callback: Callable, priority: int = 0) -> None:
        """Register an interceptor for a glob pattern."""
        self._require_src(callback, "interceptor")
        with self._lock:
            handler = self._make_handler(callback, priority, requires_src=True)
            self._interceptor_patterns.append((self._glob_to_regex(pattern), handler))

    def _find(
        self,
        event_id: str,
        exact_routes: dict[str, list[Handler]],
        pattern_routes: list[tuple[re.Pattern, Handler]],
    ) -> list[Handler]:
        """Collect exact and pattern matches, sorted by priority then registration order."""
        with self._lock:
            handlers = list(exact_routes.get(event_id, []))
            handlers.extend(h for pattern, h in pattern_routes if pattern.match(event_id))
        return sorted(handlers, key=lambda h: (-h.priority, h.registration_order))

    def _execute_interceptors(self, event_id: str, payload: Any) -> bool:
        """
        Run interceptors for the event.

        Returns:
            True if the event was intercepted (blocked)
        """
        interceptors = self._find(event_id, self._interceptor_routes, self._interceptor_patterns)
        if not interceptors:
            return False

        ctx = InterceptorContext()
        token = _set_interceptor_context(ctx)
        try:
            for interceptor in interceptors:
                try:
                    interceptor(event_id, payload)
                except Exception:
                    logger.exception(
                        "Event interceptor %s failed for '%s'",
                        getattr(interceptor.callback, "__qualname__", interceptor.callback),
                        event_id,
                    )
                    continue
                if ctx.should_intercept:
                    logger.debug("Event '%s' intercepted", event_id)
                    return True
            return False
        finally:
            _reset_interceptor_context(token)

    def dispatch(self, event_id: str, payload: Any) -> None:
        """
        Dispatch an event to every matching consumer.

        Consumers run in priority order. A consumer raising an exception is
        logged and does not stop the remaining consumers.

        Args:
            event_id: The event identifier
            payload: The event payload
        """
        if self._execute_interceptors(event_id, payload):
            return

        for handler in self._find(event_id, self._consumer_routes, self._consumer_patterns):
            try:
                handler(event_id, payload)
            except Exception:
                logger.exception(
                    "Event handler %s failed for '%s'",
                    getattr(handler.callback, "__qualname__", handler.callback),
                    event_id,
                )

    def clear(self) -> None:
        """Remove every registered consumer and interceptor."""
        with self._lock:
            self._consumer_routes.clear()
            self._interceptor_routes.clear()
            self._consumer_patterns.clear()
            self._interceptor_patterns.clear()


# Global event bus instance
_global_event_bus = EventBus()


def get_event_bus() -> EventBus:
    """Return the process-wide event bus."""
    return _global_event_bus


def consumer(event_id: str, priority: int = 0):
    """
    Decorator to register a consumer on the global bus.

    Example:
        @modhub.events.consumer('module.install', priority=10)
        def announce(descriptor):
            print(f"installed {descriptor.name}")
    """

    def decorator(func: Callable) -> Callable:
        _global_event_bus.register_consumer(event_id, func, priority)
        return func

    return decorator


def consumer_re(pattern: str, priority: int = 0):
    """
    Decorator to register a pattern consumer on the global bus.

    Example:
        @modhub.events.consumer_re('module.*')
        def audit(src: str, descriptor):
            audit_log.append((src, descriptor.name))
    """

    def decorator(func: Callable) -> Callable:
        _global_event_bus.register_consumer_re(pattern, func, priority)
        return func

    return decorator


def interceptor(event_id: str, priority: int = 0):
    """Decorator to register an interceptor on the global bus."""

    def decorator(func: Callable) -> Callable:
        _global_event_bus.register_interceptor(event_id, func, priority)
        return func

    return decorator


def interceptor_re(pattern: str, priority: int = 0):
    """Decorator to register a pattern interceptor on the global bus."""

    def decorator(func: Callable) -> Callable:
        _global_event_bus.register_interceptor_re(pattern, func, priority)
        return func

    return decorator


def start(id: str, payload: Any) -> None:
    """
    Dispatch an event on the global bus.

    Example:
        modhub.events.start('module.install', descriptor)
    """
    _global_event_bus.dispatch(id, payload)

"""
Capability lifecycle events with filtered listeners.

Events are purely observational: listeners are called synchronously after
the state change they describe, and a failing listener is logged and never
affects the caller.

Usage::

    registry = get_listener_registry()
    registry.register(print, signals=["capability.*"])
"""

from __future__ import annotations

import fnmatch
import logging
from contextvars import ContextVar
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Callable

logger = logging.getLogger("cqrs_ddd.capabilities.events")

CAPABILITY_ADDED = "capability.added"
CAPABILITY_REMOVED = "capability.removed"
CAPABILITY_NOT_FOUND = "capability.not_found"
FACTORY_CREATED = "factory.created"
EXECUTOR_CREATED = "executor.created"

_MATCH_CACHE_MAX_SIZE = 2048


@dataclass(frozen=True)
class CapabilityEvent:
    """One emitted signal with its structured fields."""

    signal: str
    table: str
    capability: str | None = None
    type: str | None = None

    def attributes(self) -> dict[str, Any]:
        fields = {"table": self.table, "capability": self.capability, "type": self.type}
        return {k: v for k, v in fields.items() if v is not None}


@runtime_checkable
class EventListener(Protocol):
    """Protocol for event listeners."""

    def __call__(self, event: CapabilityEvent) -> None: ...


class ListenerRegistration:
    """A registered listener with optional signal filtering."""

    def __init__(
        self,
        listener: EventListener,
        *,
        signals: list[str] | None = None,
        predicate: Callable[[CapabilityEvent], bool] | None = None,
        enabled: bool = True,
    ) -> None:
        self.listener = listener
        self.signals = signals or []
        self.predicate = predicate
        self.enabled = enabled
        self._match_cache: dict[str, bool] = {}

    def matches(self, event: CapabilityEvent) -> bool:
        if not self.enabled:
            return False
        if self.predicate is not None and not self.predicate(event):
            return False
        return self._matches_signal(event.signal)

    def _matches_signal(self, signal: str) -> bool:
        if not self.signals:
            return True
        if signal in self._match_cache:
            return self._match_cache[signal]
        matched = any(fnmatch.fnmatch(signal, pattern) for pattern in self.signals)
        if len(self._match_cache) >= _MATCH_CACHE_MAX_SIZE:
            self._match_cache.clear()
        self._match_cache[signal] = matched
        return matched


class ListenerRegistry:
    """Registry of event listeners."""

    def __init__(self) -> None:
        self._registrations: list[ListenerRegistration] = []

    def register(
        self,
        listener: EventListener,
        *,
        signals: list[str] | None = None,
        predicate: Callable[[CapabilityEvent], bool] | None = None,
        enabled: bool = True,
    ) -> ListenerRegistration:
        """Register a listener; ``signals`` accepts fnmatch patterns."""
        registration = ListenerRegistration(
            listener, signals=signals, predicate=predicate, enabled=enabled
        )
        self._registrations.append(registration)
        return registration

    def unregister(self, registration: ListenerRegistration) -> None:
        if registration in self._registrations:
            self._registrations.remove(registration)

    def emit(self, event: CapabilityEvent) -> None:
        """Deliver *event* to every matching listener, logging failures."""
        logger.debug("Event %s %s", event.signal, event.attributes())
        for registration in list(self._registrations):
            if not registration.matches(event):
                continue
            try:
                registration.listener(event)
            except Exception as exc:  # noqa: BLE001
                logger.warning(
                    "Event listener failed for %s: %s",
                    event.signal,
                    exc,
                    exc_info=exc,
                )

    def clear(self) -> None:
        self._registrations.clear()

    def __len__(self) -> int:
        return len(self._registrations)


_listener_registry_var: ContextVar[ListenerRegistry | None] = ContextVar(
    "capability_listener_registry", default=None
)


def get_listener_registry() -> ListenerRegistry:
    """Get the listener registry for the current context.

    Creates a fresh ``ListenerRegistry`` on first access within each
    context, so listeners never leak across tests.
    """
    registry = _listener_registry_var.get()
    if registry is None:
        registry = ListenerRegistry()
        _listener_registry_var.set(registry)
    return registry


def set_listener_registry(registry: ListenerRegistry) -> None:
    """Set a custom listener registry in the current context."""
    _listener_registry_var.set(registry)


def emit(
    signal: str,
    table: str,
    *,
    capability: str | None = None,
    type: str | None = None,  # noqa: A002
) -> None:
    """Build and emit one event on the current context's registry."""
    get_listener_registry().emit(
        CapabilityEvent(signal=signal, table=table, capability=capability, type=type)
    )

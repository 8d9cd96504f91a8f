"""
Test helpers: event captures, catalog lookups and parameter building.

Usage::

    capture = CapabilityCapture()
    capture.install()
    factory.add_query(QueryCapability(name="adults"))
    capture.assert_captured("added", "adults")
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, ClassVar

from .events import (
    CAPABILITY_ADDED,
    CAPABILITY_NOT_FOUND,
    CAPABILITY_REMOVED,
    FACTORY_CREATED,
    CapabilityEvent,
    ListenerRegistration,
    get_listener_registry,
)

if TYPE_CHECKING:
    from .capability import FactorySpec, QueryCapability, SelectCapability
    from .events import ListenerRegistry

_ACTIONS = {
    CAPABILITY_ADDED: "added",
    CAPABILITY_REMOVED: "removed",
    CAPABILITY_NOT_FOUND: "not_found",
}


@dataclass(frozen=True)
class RenderedQuery:
    """One rendered statement recorded by :class:`QueryCapture`."""

    capability: str
    query_type: str
    sql: str
    params: dict[str, Any]


class QueryCapture:
    """Records rendered SQL for later assertions."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._queries: list[RenderedQuery] = []

    def capture(
        self,
        capability: str,
        query_type: str,
        sql: str,
        params: dict[str, Any] | None = None,
    ) -> None:
        with self._lock:
            self._queries.append(
                RenderedQuery(capability, query_type, sql, dict(params or {}))
            )

    @property
    def queries(self) -> list[RenderedQuery]:
        with self._lock:
            return list(self._queries)

    def last(self) -> RenderedQuery | None:
        with self._lock:
            return self._queries[-1] if self._queries else None

    def by_type(self, query_type: str) -> list[RenderedQuery]:
        return [q for q in self.queries if q.query_type == query_type]

    def by_capability(self, capability: str) -> list[RenderedQuery]:
        return [q for q in self.queries if q.capability == capability]

    def clear(self) -> None:
        with self._lock:
            self._queries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._queries)


@dataclass(frozen=True)
class CapturedCapability:
    """A capability lifecycle event seen by :class:`CapabilityCapture`."""

    action: str
    table: str
    capability: str
    type: str


class _EventCapture(ABC):
    signals: ClassVar[tuple[str, ...]] = ()

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._registration: ListenerRegistration | None = None
        self._registry: ListenerRegistry | None = None

    def install(self, registry: ListenerRegistry | None = None) -> None:
        """Start listening on *registry* (the context's registry by default)."""
        self._registry = registry or get_listener_registry()
        self._registration = self._registry.register(self, signals=list(self.signals))

    def uninstall(self) -> None:
        if self._registry is not None and self._registration is not None:
            self._registry.unregister(self._registration)
        self._registration = None

    @abstractmethod
    def __call__(self, event: CapabilityEvent) -> None:
        """Record *event* if it is one this capture keeps."""
        ...


class CapabilityCapture(_EventCapture):
    """Records added / removed / not_found capability events."""

    signals = ("capability.*",)

    def __init__(self) -> None:
        super().__init__()
        self._captured: list[CapturedCapability] = []

    def __call__(self, event: CapabilityEvent) -> None:
        action = _ACTIONS.get(event.signal)
        if action is None:
            return
        with self._lock:
            self._captured.append(
                CapturedCapability(
                    action=action,
                    table=event.table,
                    capability=event.capability or "",
                    type=event.type or "",
                )
            )

    @property
    def captured(self) -> list[CapturedCapability]:
        with self._lock:
            return list(self._captured)

    def by_action(self, action: str) -> list[CapturedCapability]:
        return [c for c in self.captured if c.action == action]

    def by_table(self, table: str) -> list[CapturedCapability]:
        return [c for c in self.captured if c.table == table]

    def assert_captured(self, action: str, capability: str, count: int = 1) -> None:
        """Helper for test assertions."""
        matches = [c for c in self.by_action(action) if c.capability == capability]
        if len(matches) != count:
            raise AssertionError(
                f"Expected {count} {action!r} events for {capability!r}, "
                f"but found {len(matches)}."
            )

    def clear(self) -> None:
        with self._lock:
            self._captured.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._captured)


class FactoryEventCapture(_EventCapture):
    """Records the tables for which a factory was created."""

    signals = (FACTORY_CREATED,)

    def __init__(self) -> None:
        super().__init__()
        self._tables: list[str] = []

    def __call__(self, event: CapabilityEvent) -> None:
        with self._lock:
            self._tables.append(event.table)

    @property
    def tables(self) -> list[str]:
        with self._lock:
            return list(self._tables)

    def clear(self) -> None:
        with self._lock:
            self._tables.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._tables)


class SpecValidator:
    """Lookups over a :class:`FactorySpec` catalog."""

    @staticmethod
    def has_query(spec: FactorySpec, name: str) -> bool:
        return any(c.name == name for c in spec.queries)

    @staticmethod
    def has_select(spec: FactorySpec, name: str) -> bool:
        return any(c.name == name for c in spec.selects)

    @staticmethod
    def has_update(spec: FactorySpec, name: str) -> bool:
        return any(c.name == name for c in spec.updates)

    @staticmethod
    def has_delete(spec: FactorySpec, name: str) -> bool:
        return any(c.name == name for c in spec.deletes)

    @staticmethod
    def has_aggregate(spec: FactorySpec, name: str) -> bool:
        return any(c.name == name for c in spec.aggregates)

    @staticmethod
    def query_by_name(spec: FactorySpec, name: str) -> QueryCapability | None:
        return next((c for c in spec.queries if c.name == name), None)

    @staticmethod
    def select_by_name(spec: FactorySpec, name: str) -> SelectCapability | None:
        return next((c for c in spec.selects if c.name == name), None)

    @staticmethod
    def count_capabilities(spec: FactorySpec) -> int:
        return spec.capability_count()


class ParamBuilder:
    """Fluent builder for execution parameter maps."""

    def __init__(self) -> None:
        self._params: dict[str, Any] = {}

    def set(self, key: str, value: Any) -> ParamBuilder:
        self._params[key] = value
        return self

    def build(self) -> dict[str, Any]:
        """Return a copy, so the builder can keep being reused."""
        return dict(self._params)

    def reset(self) -> ParamBuilder:
        self._params.clear()
        return self

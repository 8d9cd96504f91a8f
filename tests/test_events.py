from __future__ import annotations

import logging

from cqrs_ddd_capabilities import (
    CAPABILITY_ADDED,
    CAPABILITY_REMOVED,
    FACTORY_CREATED,
    CapabilityEvent,
    ListenerRegistry,
    QueryCapability,
    get_listener_registry,
)
from cqrs_ddd_capabilities.events import emit


def test_registry_is_per_context(listener_registry):
    assert get_listener_registry() is listener_registry


def test_signal_patterns_filter_delivery():
    registry = ListenerRegistry()
    added: list[CapabilityEvent] = []
    everything: list[CapabilityEvent] = []
    registry.register(added.append, signals=[CAPABILITY_ADDED])
    registry.register(everything.append)

    registry.emit(CapabilityEvent(CAPABILITY_ADDED, "users", "a", "query"))
    registry.emit(CapabilityEvent(FACTORY_CREATED, "users"))

    assert [e.signal for e in added] == [CAPABILITY_ADDED]
    assert [e.signal for e in everything] == [CAPABILITY_ADDED, FACTORY_CREATED]


def test_wildcard_and_predicate():
    registry = ListenerRegistry()
    seen: list[CapabilityEvent] = []
    registry.register(
        seen.append,
        signals=["capability.*"],
        predicate=lambda e: e.table == "orders",
    )

    registry.emit(CapabilityEvent(CAPABILITY_REMOVED, "orders", "x", "delete"))
    registry.emit(CapabilityEvent(CAPABILITY_REMOVED, "users", "x", "delete"))
    registry.emit(CapabilityEvent(FACTORY_CREATED, "orders"))

    assert [(e.signal, e.table) for e in seen] == [(CAPABILITY_REMOVED, "orders")]


def test_disabled_and_unregistered_listeners_are_skipped():
    registry = ListenerRegistry()
    seen: list[CapabilityEvent] = []
    registration = registry.register(seen.append, enabled=False)

    registry.emit(CapabilityEvent(FACTORY_CREATED, "users"))
    registration.enabled = True
    registry.unregister(registration)
    registry.emit(CapabilityEvent(FACTORY_CREATED, "users"))

    assert seen == []
    assert len(registry) == 0


def test_failing_listener_is_logged_not_raised(caplog):
    registry = ListenerRegistry()
    seen: list[CapabilityEvent] = []

    def broken(event: CapabilityEvent) -> None:
        raise RuntimeError("listener exploded")

    registry.register(broken)
    registry.register(seen.append)

    with caplog.at_level(logging.WARNING, logger="cqrs_ddd.capabilities.events"):
        registry.emit(CapabilityEvent(FACTORY_CREATED, "users"))

    assert len(seen) == 1
    assert "listener exploded" in caplog.text


def test_factory_keeps_working_when_listener_fails(factory, listener_registry):
    def broken(event: CapabilityEvent) -> None:
        raise RuntimeError("boom")

    listener_registry.register(broken)

    factory.add_query(QueryCapability(name="everything"))
    assert factory.has_query("everything")


def test_event_attributes_omit_unset_fields():
    event = CapabilityEvent(FACTORY_CREATED, "users")
    assert event.attributes() == {"table": "users"}


def test_module_emit_uses_context_registry(listener_registry):
    seen: list[CapabilityEvent] = []
    listener_registry.register(seen.append)

    emit(CAPABILITY_ADDED, "users", capability="adults", type="query")

    assert seen == [CapabilityEvent(CAPABILITY_ADDED, "users", "adults", "query")]


def test_add_and_remove_emit_events(factory, listener_registry):
    seen: list[CapabilityEvent] = []
    listener_registry.register(seen.append, signals=["capability.*"])

    factory.add_query(QueryCapability(name="everything"))
    factory.remove_query("everything")
    factory.remove_query("everything")

    assert [(e.signal, e.capability, e.type) for e in seen] == [
        (CAPABILITY_ADDED, "everything", "query"),
        (CAPABILITY_REMOVED, "everything", "query"),
    ]

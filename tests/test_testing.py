from __future__ import annotations

import pytest

from cqrs_ddd_capabilities import (
    CapabilityFactory,
    CapabilityNotFoundError,
    QueryCapability,
    SelectCapability,
    SelectSpec,
    SimpleCondition,
)
from cqrs_ddd_capabilities.testing import (
    CapabilityCapture,
    FactoryEventCapture,
    ParamBuilder,
    QueryCapture,
    SpecValidator,
    _EventCapture,
)


class TestCapabilityCapture:
    def test_records_lifecycle(self, factory):
        capture = CapabilityCapture()
        capture.install()

        factory.add_query(QueryCapability(name="everything"))
        factory.remove_query("everything")
        with pytest.raises(CapabilityNotFoundError):
            factory.select("missing")

        capture.assert_captured("added", "everything")
        capture.assert_captured("removed", "everything")
        capture.assert_captured("not_found", "missing")
        assert len(capture) == 3
        assert {c.table for c in capture.captured} == {"users"}
        assert capture.by_action("not_found")[0].type == "select"

    def test_assert_captured_counts(self, factory):
        capture = CapabilityCapture()
        capture.install()
        factory.add_query(QueryCapability(name="everything"))

        with pytest.raises(AssertionError, match="Expected 2"):
            capture.assert_captured("added", "everything", count=2)

    def test_uninstall_and_clear(self, factory):
        capture = CapabilityCapture()
        capture.install()
        factory.add_query(QueryCapability(name="a"))
        capture.uninstall()
        factory.add_query(QueryCapability(name="b"))

        assert [c.capability for c in capture.captured] == ["a"]
        capture.clear()
        assert len(capture) == 0

    def test_by_table(self, factory):
        capture = CapabilityCapture()
        capture.install()
        factory.add_query(QueryCapability(name="a"))
        assert len(capture.by_table("users")) == 1
        assert capture.by_table("orders") == []


def test_event_capture_base_is_abstract():
    with pytest.raises(TypeError):
        _EventCapture()  # type: ignore[abstract]


def test_factory_event_capture(users):
    capture = FactoryEventCapture()
    capture.install()

    CapabilityFactory(users)
    CapabilityFactory(users)

    assert capture.tables == ["users", "users"]
    capture.clear()
    assert len(capture) == 0


def test_query_capture(factory):
    capture = QueryCapture()
    capture.capture("select", "select", factory.render_select("select"), {"id": 1})
    capture.capture("count", "aggregate", factory.render_aggregate("count"))

    assert len(capture) == 2
    assert capture.last().capability == "count"
    assert capture.by_type("select")[0].params == {"id": 1}
    assert capture.by_capability("count")[0].params == {}

    capture.clear()
    assert capture.last() is None


def test_spec_validator(factory):
    factory.add_select(
        SelectCapability(
            name="by_email",
            spec=SelectSpec(
                where=(SimpleCondition(field="email", operator="=", param="email"),)
            ),
        )
    )
    spec = factory.spec()

    assert SpecValidator.has_select(spec, "by_email")
    assert SpecValidator.has_delete(spec, "delete")
    assert SpecValidator.has_aggregate(spec, "count")
    assert not SpecValidator.has_update(spec, "anything")
    assert SpecValidator.select_by_name(spec, "by_email").params[0].type == "text"
    assert SpecValidator.query_by_name(spec, "missing") is None
    assert SpecValidator.count_capabilities(spec) == 5


def test_param_builder():
    builder = ParamBuilder().set("min_age", 18).set("status", "active")

    first = builder.build()
    first["min_age"] = 99

    assert builder.build() == {"min_age": 18, "status": "active"}
    assert builder.reset().build() == {}

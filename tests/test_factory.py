from __future__ import annotations

import json
import threading

import pytest
from sqlalchemy import Column, MetaData, String, Table

from cqrs_ddd_capabilities import (
    CAPABILITY_NOT_FOUND,
    AggregateCapability,
    AggregateFunc,
    AggregateSpec,
    CapabilityFactory,
    CapabilityNotFoundError,
    CompoundQueryError,
    CompoundQuerySpec,
    ConditionDepthExceededError,
    ConditionGroup,
    DeleteCapability,
    DeleteSpec,
    FactorySpec,
    InvalidLockModeError,
    ParamSpec,
    PrimaryKeyNotFoundError,
    QueryCapability,
    QuerySpec,
    SelectCapability,
    SelectSpec,
    SetOperandSpec,
    SimpleCondition,
    UpdateCapability,
    UpdateSpec,
)
from cqrs_ddd_capabilities.testing import CapabilityCapture, SpecValidator


def _adults() -> QueryCapability:
    return QueryCapability(
        name="adults",
        spec=QuerySpec(
            where=(SimpleCondition(field="age", operator=">=", param="min_age"),)
        ),
    )


def _nested(levels: int) -> ConditionGroup:
    node = ConditionGroup(
        group=(SimpleCondition(field="age", operator="=", param="age"),)
    )
    for _ in range(levels - 1):
        node = ConditionGroup(group=(node,))
    return node


class TestConstruction:
    def test_defaults_are_registered(self, factory):
        assert factory.table_name == "users"
        assert factory.primary_key == "id"
        assert factory.list_selects() == ["select"]
        assert factory.list_deletes() == ["delete"]
        assert factory.list_queries() == ["query"]
        assert factory.list_aggregates() == ["count"]
        assert factory.list_updates() == []

    def test_primary_key_defaults_take_id(self, factory):
        for cap in (factory.get_select("select"), factory.get_delete("delete")):
            assert cap is not None
            assert len(cap.params) == 1
            assert cap.params[0].name == "id"
            assert cap.params[0].required
            assert cap.params[0].type == "integer"

    def test_default_renders(self, factory):
        assert factory.render_select("select").endswith("WHERE users.id = %(id)s")
        assert factory.render_delete("delete") == (
            "DELETE FROM users WHERE users.id = %(id)s"
        )
        assert "count(*)" in factory.render_aggregate("count")
        assert "WHERE" not in factory.render_query("query")

    def test_table_without_primary_key_fails(self, audit):
        with pytest.raises(PrimaryKeyNotFoundError) as exc_info:
            CapabilityFactory(audit)
        assert exc_info.value.table == "audit_log"

    def test_primary_key_from_column_info(self):
        tagged = Table(
            "tagged",
            MetaData(),
            Column("code", String, info={"constraints": "primarykey"}),
            Column("label", String),
        )
        assert CapabilityFactory(tagged).primary_key == "code"

    def test_negative_depth_rejected(self, users):
        with pytest.raises(ValueError):
            CapabilityFactory(users, max_condition_depth=-1)

    def test_default_registration_emits_no_added_events(self, users):
        capture = CapabilityCapture()
        capture.install()
        CapabilityFactory(users)
        assert capture.by_action("added") == []


class TestRegistration:
    def test_add_derives_params(self, factory):
        cap = factory.add_query(_adults())

        assert [p.name for p in cap.params] == ["min_age"]
        assert factory.has_query("adults")
        assert factory.get_query("adults") == cap

    def test_explicit_params_are_kept(self, factory):
        explicit = (ParamSpec(name="min_age", type="int", description="Lower bound"),)
        cap = factory.add_query(_adults().model_copy(update={"params": explicit}))
        assert cap.params == explicit

    def test_render_contains_where(self, factory):
        factory.add_query(_adults())
        sql = factory.render_query("adults")
        assert "WHERE users.age >= %(min_age)s" in sql

    def test_add_replaces_same_name(self, factory):
        factory.add_query(_adults())
        factory.add_query(QueryCapability(name="adults", spec=QuerySpec(limit=5)))
        assert factory.list_queries() == ["adults", "query"]
        assert factory.get_query("adults").params == ()

    def test_remove(self, factory):
        factory.add_update(
            UpdateCapability(name="rename", spec=UpdateSpec(set={"name": "name"}))
        )

        assert factory.remove_update("rename") is True
        assert factory.remove_update("rename") is False
        assert not factory.has_update("rename")
        assert factory.get_update("rename") is None

    def test_defaults_can_be_removed(self, factory):
        assert factory.remove_select("select")
        assert factory.remove_delete("delete")
        assert factory.remove_query("query")
        assert factory.remove_aggregate("count")
        assert factory.spec().capability_count() == 0

    def test_lists_are_sorted(self, factory):
        for name in ("zeta", "alpha", "mid"):
            factory.add_select(SelectCapability(name=name, spec=SelectSpec()))
        assert factory.list_selects() == ["alpha", "mid", "select", "zeta"]

    def test_add_rejects_deep_conditions(self, users):
        factory = CapabilityFactory(users, max_condition_depth=2)
        cap = DeleteCapability(name="deep", spec=DeleteSpec(where=(_nested(3),)))

        with pytest.raises(ConditionDepthExceededError):
            factory.add_delete(cap)
        assert not factory.has_delete("deep")

    def test_set_max_condition_depth(self, factory):
        factory.set_max_condition_depth(1)
        assert factory.max_condition_depth == 1
        with pytest.raises(ConditionDepthExceededError):
            factory.add_query(
                QueryCapability(name="deep", spec=QuerySpec(where=(_nested(2),)))
            )

        factory.set_max_condition_depth(0)
        factory.add_query(
            QueryCapability(name="deep", spec=QuerySpec(where=(_nested(20),)))
        )
        assert factory.has_query("deep")

    def test_depth_change_swaps_the_compiler(self, factory):
        factory.set_max_condition_depth(0)
        factory.add_query(
            QueryCapability(name="deep", spec=QuerySpec(where=(_nested(3),)))
        )
        before = factory.compiler
        factory.query("deep")

        factory.set_max_condition_depth(2)

        assert before.max_depth == 0
        assert factory.compiler is not before
        assert factory.compiler.max_depth == 2
        with pytest.raises(ConditionDepthExceededError):
            factory.query("deep")

    def test_aggregate_with_unknown_func_degrades(self, factory):
        cap = factory.add_aggregate(
            AggregateCapability(
                name="median_age", spec=AggregateSpec(field="age"), func="median"
            )
        )
        assert cap.func is AggregateFunc.COUNT
        assert "count(*)" in factory.render_aggregate("median_age")

    def test_sum_aggregate(self, factory):
        factory.add_aggregate(
            AggregateCapability(
                name="total_score", spec=AggregateSpec(field="score"), func="sum"
            )
        )
        assert "sum(users.score) AS result" in factory.render_aggregate("total_score")


class TestLookupFailures:
    def test_missing_capability_raises_and_emits(self, factory, listener_registry):
        seen = []
        listener_registry.register(seen.append, signals=[CAPABILITY_NOT_FOUND])

        with pytest.raises(CapabilityNotFoundError) as exc_info:
            factory.query("nope")

        assert exc_info.value.kind == "query"
        assert exc_info.value.name == "nope"
        assert exc_info.value.table == "users"
        assert [(e.capability, e.type) for e in seen] == [("nope", "query")]

    @pytest.mark.parametrize(
        "call",
        [
            lambda f: f.render_query("nope"),
            lambda f: f.render_select("nope"),
            lambda f: f.render_update("nope"),
            lambda f: f.render_delete("nope"),
            lambda f: f.render_aggregate("nope"),
            lambda f: f.update("nope"),
            lambda f: f.delete("nope"),
            lambda f: f.aggregate("nope"),
            lambda f: f.select("nope"),
        ],
    )
    def test_every_lookup_raises(self, factory, call):
        with pytest.raises(CapabilityNotFoundError):
            call(factory)

    def test_invalid_lock_mode_raises_at_build(self, factory):
        factory.add_select(
            SelectCapability(name="locked", spec=SelectSpec(for_locking="exclusive"))
        )
        with pytest.raises(InvalidLockModeError):
            factory.select("locked")


class TestRenderCache:
    def test_render_is_idempotent(self, factory):
        factory.add_query(_adults())
        assert factory.render_query("adults") == factory.render_query("adults")

    def test_replacing_capability_invalidates(self, factory):
        factory.add_query(_adults())
        before = factory.render_query("adults")

        factory.add_query(
            QueryCapability(
                name="adults",
                spec=QuerySpec(
                    where=(SimpleCondition(field="age", operator=">", param="min_age"),)
                ),
            )
        )
        after = factory.render_query("adults")

        assert before != after
        assert "users.age > %(min_age)s" in after

    def test_removal_invalidates(self, factory):
        factory.add_query(_adults())
        factory.render_query("adults")
        factory.remove_query("adults")

        with pytest.raises(CapabilityNotFoundError):
            factory.render_query("adults")

    def test_kinds_have_separate_entries(self, factory):
        factory.add_delete(
            DeleteCapability(
                name="select",
                spec=DeleteSpec(
                    where=(SimpleCondition(field="status", operator="=", param="s"),)
                ),
            )
        )
        assert factory.render_select("select").startswith("SELECT")
        assert factory.render_delete("select").startswith("DELETE")

    def test_concurrent_renders_agree(self, factory):
        factory.add_query(_adults())
        results: list[str] = []
        lock = threading.Lock()

        def worker() -> None:
            sql = factory.render_query("adults")
            with lock:
                results.append(sql)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(set(results)) == 1

    def test_update_renders_without_values(self, factory):
        factory.add_update(
            UpdateCapability(
                name="rename",
                spec=UpdateSpec(
                    set={"name": "new_name"},
                    where=(SimpleCondition(field="id", operator="=", param="id"),),
                ),
            )
        )
        assert factory.render_update("rename") == (
            "UPDATE users SET name=%(new_name)s WHERE users.id = %(id)s"
        )


class TestCompound:
    def test_render_compound(self, factory):
        spec = CompoundQuerySpec(
            base=QuerySpec(fields=("id",)),
            operands=(
                SetOperandSpec(operation="union_all", query=QuerySpec(fields=("id",))),
            ),
        )
        assert "UNION ALL" in factory.render_compound(spec)

    def test_compound_without_operands(self, factory):
        with pytest.raises(CompoundQueryError):
            factory.compound(CompoundQuerySpec(base=QuerySpec()))


class TestCatalog:
    def test_spec_lists_everything_sorted(self, factory):
        factory.add_query(_adults())

        spec = factory.spec()

        assert isinstance(spec, FactorySpec)
        assert spec.table == "users"
        assert spec.primary_key == "id"
        assert [c.name for c in spec.queries] == ["adults", "query"]
        assert spec.capability_count() == 5
        assert SpecValidator.has_query(spec, "adults")
        assert SpecValidator.query_by_name(spec, "adults").params[0].name == "min_age"

    def test_spec_json_round_trips(self, factory):
        factory.add_query(_adults())

        data = json.loads(factory.spec_json(indent=2))
        restored = FactorySpec.model_validate(data)

        assert data["table"] == "users"
        assert restored == factory.spec()

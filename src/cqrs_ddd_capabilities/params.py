"""
Derive the named parameters an operation spec requires.

Traversal order is fixed so derivation is deterministic:

- query/select: WHERE, HAVING, HAVING aggregates, ORDER BY expressions,
  select expressions (params, then their FILTER tree), LIMIT/OFFSET params
- update: SET values, then WHERE
- delete/aggregate: WHERE

The first occurrence of a name wins; later occurrences are skipped without
re-checking their type. Field names and operators are not validated here.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from .capability import UNTYPED, ParamSpec
from .conditions import (
    BetweenCondition,
    ConditionGroup,
    NotBetweenCondition,
    SimpleCondition,
)
from .translator import check_condition_depth

if TYPE_CHECKING:
    from collections.abc import Sequence

    from .conditions import ConditionSpec
    from .schema import ModelMetadata
    from .specs import AggregateSpec, DeleteSpec, UpdateSpec, _ReadSpec

DEFAULT_MAX_CONDITION_DEPTH = 10


class ParamCollector:
    """Ordered, de-duplicating accumulator of ``ParamSpec`` entries."""

    def __init__(
        self,
        metadata: ModelMetadata | None = None,
        max_depth: int = DEFAULT_MAX_CONDITION_DEPTH,
    ) -> None:
        self.metadata = metadata
        self.max_depth = max_depth
        self._params: dict[str, ParamSpec] = {}

    def field_type(self, field: str | None) -> str:
        if self.metadata is None:
            return UNTYPED
        return self.metadata.field_type(field)

    def add(
        self, name: str | None, type_: str = UNTYPED, *, required: bool = True
    ) -> None:
        if not name or name in self._params:
            return
        self._params[name] = ParamSpec(name=name, type=type_, required=required)

    def add_conditions(self, conditions: Sequence[ConditionSpec], path: str) -> None:
        """Depth-check *conditions*, then collect their parameters."""
        check_condition_depth(conditions, self.max_depth, path=path)
        self._walk(conditions)

    def _walk(self, conditions: Sequence[ConditionSpec]) -> None:
        for cond in conditions:
            if isinstance(cond, ConditionGroup):
                self._walk(cond.group)
            elif isinstance(cond, (BetweenCondition, NotBetweenCondition)):
                type_ = self.field_type(cond.field)
                self.add(cond.low_param, type_)
                self.add(cond.high_param, type_)
            elif isinstance(cond, SimpleCondition):
                self.add(cond.param, self.field_type(cond.field))
            # null tests and field comparisons bind nothing

    def result(self) -> tuple[ParamSpec, ...]:
        return tuple(self._params.values())


def derive_read_params(
    spec: _ReadSpec,
    metadata: ModelMetadata | None = None,
    max_depth: int = DEFAULT_MAX_CONDITION_DEPTH,
) -> tuple[ParamSpec, ...]:
    """Parameters of a ``QuerySpec`` or ``SelectSpec``."""
    collector = ParamCollector(metadata, max_depth)
    collector.add_conditions(spec.where, "where")
    collector.add_conditions(spec.having, "having")

    for agg in spec.having_agg:
        collector.add(agg.param, UNTYPED)

    for ob in spec.order_by:
        if ob.is_expression:
            collector.add(ob.param, collector.field_type(ob.field))

    for i, expr in enumerate(spec.select_exprs):
        for name in expr.params:
            collector.add(name, UNTYPED)
        if expr.filter is not None:
            collector.add_conditions((expr.filter,), f"select_exprs[{i}].filter")

    collector.add(spec.limit_param, "integer", required=False)
    collector.add(spec.offset_param, "integer", required=False)
    return collector.result()


derive_query_params = derive_read_params
derive_select_params = derive_read_params


def derive_update_params(
    spec: UpdateSpec,
    metadata: ModelMetadata | None = None,
    max_depth: int = DEFAULT_MAX_CONDITION_DEPTH,
) -> tuple[ParamSpec, ...]:
    collector = ParamCollector(metadata, max_depth)
    for field, param in spec.set.items():
        collector.add(param, collector.field_type(field))
    collector.add_conditions(spec.where, "where")
    return collector.result()


def derive_delete_params(
    spec: DeleteSpec,
    metadata: ModelMetadata | None = None,
    max_depth: int = DEFAULT_MAX_CONDITION_DEPTH,
) -> tuple[ParamSpec, ...]:
    collector = ParamCollector(metadata, max_depth)
    collector.add_conditions(spec.where, "where")
    return collector.result()


def derive_aggregate_params(
    spec: AggregateSpec,
    metadata: ModelMetadata | None = None,
    max_depth: int = DEFAULT_MAX_CONDITION_DEPTH,
) -> tuple[ParamSpec, ...]:
    collector = ParamCollector(metadata, max_depth)
    collector.add_conditions(spec.where, "where")
    return collector.result()

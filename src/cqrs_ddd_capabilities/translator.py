"""
Translate condition trees into SQLAlchemy boolean expressions.

The translator walks a WHERE or HAVING tree level by level. Leaf nodes
are compiled through the operator registry; groups are compiled
recursively and combined with ``and_`` / ``or_`` so the nesting of the
input survives into the rendered SQL.

Depth is counted in group-nesting levels: a group at the top of the tree
sits at depth 1, a group inside it at depth 2, and so on. Each tree is
counted on its own.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from sqlalchemy import and_, bindparam, or_

from .conditions import (
    BetweenCondition,
    ConditionGroup,
    FieldComparison,
    NotBetweenCondition,
    NullCondition,
)
from .exceptions import ConditionDepthExceededError, ValidationError
from .operators import DEFAULT_REGISTRY

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from sqlalchemy import ColumnElement, Table
    from sqlalchemy.sql.elements import BindParameter

    from .conditions import ConditionSpec
    from .operators import ConditionOperatorRegistry
    from .schema import ModelMetadata


def check_condition_depth(
    conditions: Sequence[ConditionSpec],
    max_depth: int,
    *,
    path: str = "where",
    depth: int = 1,
) -> None:
    """
    Raise ``ConditionDepthExceededError`` if any group in *conditions*
    nests deeper than *max_depth*. ``max_depth == 0`` disables the check.
    """
    for i, cond in enumerate(conditions):
        if not isinstance(cond, ConditionGroup):
            continue
        here = f"{path}[{i}]"
        if max_depth and depth > max_depth:
            raise ConditionDepthExceededError(depth, max_depth, path=here)
        check_condition_depth(
            cond.group, max_depth, path=f"{here}.group", depth=depth + 1
        )


class ConditionTranslator:
    """
    Compile ``ConditionSpec`` trees against one table.

    Args:
        table: The table whose columns the conditions reference.
        metadata: Column metadata used to validate field names.
        registry: Operator registry. Falls back to ``DEFAULT_REGISTRY``.
        max_depth: Maximum group nesting (``0`` disables the check).
        values: When given, bind parameters carry their value from this
            mapping instead of being left for execution time.
    """

    def __init__(
        self,
        table: Table,
        metadata: ModelMetadata,
        *,
        registry: ConditionOperatorRegistry | None = None,
        max_depth: int = 0,
        values: Mapping[str, Any] | None = None,
    ) -> None:
        self.table = table
        self.metadata = metadata
        self.registry = registry or DEFAULT_REGISTRY
        self.max_depth = max_depth
        self.values = values
        self.missing: list[str] = []

    # -- helpers ------------------------------------------------------------

    def column(self, name: str) -> Any:
        """Resolve *name* to a column, raising ``FieldNotFoundError``."""
        self.metadata.require(name)
        return self.table.c[name]

    def bind(
        self,
        name: str,
        *,
        expanding: bool = False,
        required: bool = True,
    ) -> BindParameter[Any]:
        """
        Named bind parameter, pre-valued when ``values`` was supplied.

        A name absent from ``values`` is recorded in ``missing``; call
        ``require_values`` once the statement is built.
        """
        if self.values is not None:
            if required and name not in self.values and name not in self.missing:
                self.missing.append(name)
            return bindparam(name, value=self.values.get(name), expanding=expanding)
        return bindparam(name, expanding=expanding, required=required)

    def require_values(self, *, path: str = "params") -> None:
        """Raise ``ValidationError`` naming every bound parameter without a value."""
        if self.missing:
            raise ValidationError(
                f"missing value for parameter(s): {', '.join(self.missing)}",
                path=path,
            )

    # -- translation --------------------------------------------------------

    def translate(
        self,
        conditions: Sequence[ConditionSpec],
        *,
        path: str = "where",
    ) -> ColumnElement[bool] | None:
        """
        AND together every top-level condition.

        Returns ``None`` when the tree contributes no predicate.
        """
        clauses = self._translate_level(conditions, depth=1, path=path)
        if not clauses:
            return None
        if len(clauses) == 1:
            return clauses[0]
        return and_(*clauses)

    def _translate_level(
        self,
        conditions: Sequence[ConditionSpec],
        *,
        depth: int,
        path: str,
    ) -> list[ColumnElement[bool]]:
        clauses: list[ColumnElement[bool]] = []
        for i, cond in enumerate(conditions):
            clause = self._translate_node(cond, depth=depth, path=f"{path}[{i}]")
            if clause is not None:
                clauses.append(clause)
        return clauses

    def _translate_node(
        self,
        cond: ConditionSpec,
        *,
        depth: int,
        path: str,
    ) -> ColumnElement[bool] | None:
        if isinstance(cond, ConditionGroup):
            return self._translate_group(cond, depth=depth, path=path)

        if isinstance(cond, BetweenCondition):
            return self.column(cond.field).between(
                self.bind(cond.low_param), self.bind(cond.high_param)
            )

        if isinstance(cond, NotBetweenCondition):
            return ~self.column(cond.field).between(
                self.bind(cond.low_param), self.bind(cond.high_param)
            )

        if isinstance(cond, FieldComparison):
            return self.registry.apply(
                cond.operator, self.column(cond.field), self.column(cond.right_field)
            )

        if isinstance(cond, NullCondition):
            col = self.column(cond.field)
            return col.is_not(None) if cond.negated else col.is_(None)

        op = self.registry.resolve(cond.operator)
        return op.apply(
            self.column(cond.field), self.bind(cond.param, expanding=op.expanding)
        )

    def _translate_group(
        self,
        group: ConditionGroup,
        *,
        depth: int,
        path: str,
    ) -> ColumnElement[bool] | None:
        if self.max_depth and depth > self.max_depth:
            raise ConditionDepthExceededError(depth, self.max_depth, path=path)

        children = self._translate_level(
            group.group, depth=depth + 1, path=f"{path}.group"
        )
        if not children:
            return None
        if len(children) == 1:
            return children[0]
        if group.is_or:
            return or_(*children)
        return and_(*children)

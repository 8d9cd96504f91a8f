"""
pgvector distance operators.

These produce a distance value rather than a predicate and are meant for
``ORDER BY embedding <-> :query_vec`` style expression ordering.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, cast

from .strategy import ConditionOperator

if TYPE_CHECKING:
    from sqlalchemy.sql.elements import ColumnElement


class _DistanceOperator(ConditionOperator):
    symbol: str = ""

    @property
    def name(self) -> str:
        return self.symbol

    def apply(self, column: Any, value: Any) -> ColumnElement[Any]:
        return cast("ColumnElement[Any]", column.op(self.symbol)(value))


class L2DistanceOperator(_DistanceOperator):
    symbol = "<->"


class InnerProductOperator(_DistanceOperator):
    symbol = "<#>"


class CosineDistanceOperator(_DistanceOperator):
    symbol = "<=>"


class L1DistanceOperator(_DistanceOperator):
    symbol = "<+>"

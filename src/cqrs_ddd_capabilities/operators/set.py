"""Set membership operators: IN, NOT IN."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, cast

from .strategy import ConditionOperator

if TYPE_CHECKING:
    from sqlalchemy.sql.elements import ColumnElement


class InOperator(ConditionOperator):
    expanding = True

    @property
    def name(self) -> str:
        return "IN"

    def apply(self, column: Any, value: Any) -> ColumnElement[bool]:
        return cast("ColumnElement[bool]", column.in_(value))


class NotInOperator(ConditionOperator):
    expanding = True

    @property
    def name(self) -> str:
        return "NOT IN"

    def apply(self, column: Any, value: Any) -> ColumnElement[bool]:
        return cast("ColumnElement[bool]", column.not_in(value))

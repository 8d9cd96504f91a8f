"""Pattern and regular-expression operators."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, cast

from .strategy import ConditionOperator

if TYPE_CHECKING:
    from sqlalchemy.sql.elements import ColumnElement


class LikeOperator(ConditionOperator):
    @property
    def name(self) -> str:
        return "LIKE"

    def apply(self, column: Any, value: Any) -> ColumnElement[bool]:
        return cast("ColumnElement[bool]", column.like(value))


class NotLikeOperator(ConditionOperator):
    @property
    def name(self) -> str:
        return "NOT LIKE"

    def apply(self, column: Any, value: Any) -> ColumnElement[bool]:
        return cast("ColumnElement[bool]", column.not_like(value))


class ILikeOperator(ConditionOperator):
    @property
    def name(self) -> str:
        return "ILIKE"

    def apply(self, column: Any, value: Any) -> ColumnElement[bool]:
        return cast("ColumnElement[bool]", column.ilike(value))


class NotILikeOperator(ConditionOperator):
    @property
    def name(self) -> str:
        return "NOT ILIKE"

    def apply(self, column: Any, value: Any) -> ColumnElement[bool]:
        return cast("ColumnElement[bool]", column.not_ilike(value))


class RegexOperator(ConditionOperator):
    @property
    def name(self) -> str:
        return "~"

    def apply(self, column: Any, value: Any) -> ColumnElement[bool]:
        return cast("ColumnElement[bool]", column.regexp_match(value))


class IRegexOperator(ConditionOperator):
    @property
    def name(self) -> str:
        return "~*"

    def apply(self, column: Any, value: Any) -> ColumnElement[bool]:
        return cast("ColumnElement[bool]", column.regexp_match(value, flags="i"))


class NotRegexOperator(ConditionOperator):
    @property
    def name(self) -> str:
        return "!~"

    def apply(self, column: Any, value: Any) -> ColumnElement[bool]:
        return cast("ColumnElement[bool]", ~column.regexp_match(value))


class NotIRegexOperator(ConditionOperator):
    @property
    def name(self) -> str:
        return "!~*"

    def apply(self, column: Any, value: Any) -> ColumnElement[bool]:
        return cast("ColumnElement[bool]", ~column.regexp_match(value, flags="i"))

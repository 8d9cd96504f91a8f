"""Standard comparison operators, one strategy per row of ``COMPARISONS``."""

from __future__ import annotations

import operator
from typing import TYPE_CHECKING, Any, cast

from .strategy import ConditionOperator

if TYPE_CHECKING:
    from collections.abc import Callable

    from sqlalchemy.sql.elements import ColumnElement


class ComparisonOperator(ConditionOperator):
    """Binary comparison driven by a Python ``operator`` function."""

    def __init__(
        self,
        symbol: str,
        compare: Callable[[Any, Any], Any],
        aliases: tuple[str, ...] = (),
    ) -> None:
        self._symbol = symbol
        self._compare = compare
        self._aliases = aliases

    @property
    def name(self) -> str:
        return self._symbol

    @property
    def aliases(self) -> tuple[str, ...]:
        return self._aliases

    def apply(self, column: Any, value: Any) -> ColumnElement[bool]:
        return cast("ColumnElement[bool]", self._compare(column, value))

    def __repr__(self) -> str:
        return f"ComparisonOperator({self._symbol!r})"


#: (symbol, column operator, aliases)
COMPARISONS = (
    ("=", operator.eq, ()),
    ("!=", operator.ne, ("<>",)),
    (">", operator.gt, ()),
    (">=", operator.ge, ()),
    ("<", operator.lt, ()),
    ("<=", operator.le, ()),
)


def comparison_operators() -> list[ComparisonOperator]:
    return [ComparisonOperator(sym, fn, aliases) for sym, fn, aliases in COMPARISONS]

"""
Condition specifications: the recursive WHERE/HAVING predicate tree.

A condition is exactly one of six variants. On the wire they keep the flat
JSON shape external callers already produce; the variant is recognised from
the keys present, in this order:

- ``{"logic": "OR", "group": [...]}``                          → ConditionGroup
- ``{"field": "age", "between": true, "low_param": .., "high_param": ..}``
                                                                → BetweenCondition
- ``{"field": "age", "not_between": true, ...}``               → NotBetweenCondition
- ``{"field": "a", "operator": "<", "right_field": "b"}``      → FieldComparison
- ``{"field": "email", "is_null": true, "operator": "IS NOT NULL"}``
                                                                → NullCondition
- ``{"field": "age", "operator": ">=", "param": "min_age"}``   → SimpleCondition
"""

from __future__ import annotations

from typing import Annotated, Any, ClassVar, Literal, Union

from pydantic import BaseModel, ConfigDict, Discriminator, Field, Tag

LOGIC_AND = "AND"
LOGIC_OR = "OR"
OP_IS_NULL = "IS NULL"
OP_IS_NOT_NULL = "IS NOT NULL"


class _ConditionBase(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: ClassVar[str]


class SimpleCondition(_ConditionBase):
    """``field <operator> :param``."""

    kind: ClassVar[str] = "simple"

    field: str
    operator: str
    param: str


class NullCondition(_ConditionBase):
    """``field IS NULL`` / ``field IS NOT NULL``; binds no parameter."""

    kind: ClassVar[str] = "null"

    field: str
    is_null: Literal[True] = True
    operator: str = OP_IS_NULL

    @property
    def negated(self) -> bool:
        return " ".join(self.operator.split()).upper() == OP_IS_NOT_NULL


class BetweenCondition(_ConditionBase):
    """``field BETWEEN :low_param AND :high_param``."""

    kind: ClassVar[str] = "between"

    field: str
    low_param: str
    high_param: str
    between: Literal[True] = True


class NotBetweenCondition(_ConditionBase):
    """``field NOT BETWEEN :low_param AND :high_param``."""

    kind: ClassVar[str] = "not_between"

    field: str
    low_param: str
    high_param: str
    not_between: Literal[True] = True


class FieldComparison(_ConditionBase):
    """``field <operator> right_field``, where the right side is a column."""

    kind: ClassVar[str] = "field_comparison"

    field: str
    operator: str
    right_field: str


class ConditionGroup(_ConditionBase):
    """
    Children combined with AND or OR.

    ``logic`` is compared case-insensitively against ``OR``; any other
    value (including the default) combines with AND.
    """

    kind: ClassVar[str] = "group"

    logic: str = LOGIC_AND
    group: tuple[ConditionSpec, ...] = Field(default_factory=tuple)

    @property
    def is_or(self) -> bool:
        return self.logic.strip().upper() == LOGIC_OR


def _condition_tag(value: Any) -> str | None:
    if isinstance(value, dict):
        if "group" in value or "logic" in value:
            return ConditionGroup.kind
        if value.get("between"):
            return BetweenCondition.kind
        if value.get("not_between"):
            return NotBetweenCondition.kind
        if value.get("right_field"):
            return FieldComparison.kind
        if value.get("is_null"):
            return NullCondition.kind
        return SimpleCondition.kind
    return getattr(value, "kind", None)


ConditionSpec = Annotated[
    Union[
        Annotated[SimpleCondition, Tag(SimpleCondition.kind)],
        Annotated[NullCondition, Tag(NullCondition.kind)],
        Annotated[BetweenCondition, Tag(BetweenCondition.kind)],
        Annotated[NotBetweenCondition, Tag(NotBetweenCondition.kind)],
        Annotated[FieldComparison, Tag(FieldComparison.kind)],
        Annotated[ConditionGroup, Tag(ConditionGroup.kind)],
    ],
    Discriminator(_condition_tag),
]

ConditionGroup.model_rebuild()

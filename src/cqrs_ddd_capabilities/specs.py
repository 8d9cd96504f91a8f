"""
Serializable operation specifications.

Each spec describes the *shape* of one SQL operation independent of any
table binding; a :class:`~cqrs_ddd_capabilities.builders.SpecCompiler`
turns it into a SQLAlchemy statement for a concrete table.

Example (``QuerySpec`` as JSON)::

    {
      "fields": ["id", "email", "name"],
      "where": [
        {"field": "age", "operator": ">=", "param": "min_age"},
        {"logic": "OR", "group": [
          {"field": "status", "operator": "=", "param": "active"},
          {"field": "status", "operator": "=", "param": "pending"}
        ]}
      ],
      "order_by": [{"field": "name", "direction": "asc", "nulls": "last"}],
      "limit_param": "page_size",
      "for_locking": "update"
    }
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .conditions import ConditionSpec  # noqa: TC001


class _Spec(BaseModel):
    model_config = ConfigDict(frozen=True)

    def to_dict(self) -> dict[str, Any]:
        """Serialise to the JSON wire shape (unset optionals omitted)."""
        return self.model_dump(mode="json", exclude_none=True)


class OrderBySpec(_Spec):
    """
    One ORDER BY entry.

    ``{"field": "embedding", "operator": "<->", "param": "query_vec"}``
    orders by an expression (e.g. pgvector distance) instead of a column.
    """

    field: str
    direction: str = "asc"
    nulls: str | None = None
    operator: str | None = None
    param: str | None = None

    @property
    def has_nulls(self) -> bool:
        return bool(self.nulls)

    @property
    def is_expression(self) -> bool:
        return bool(self.operator) and bool(self.param)


class HavingAggSpec(_Spec):
    """``HAVING <func>(<field>|*) <operator> :param``."""

    func: str
    field: str | None = None
    operator: str
    param: str


class SelectExprSpec(_Spec):
    """A computed SELECT column such as ``UPPER(name) AS upper_name``."""

    func: str
    alias: str
    field: str | None = None
    fields: tuple[str, ...] = ()
    params: tuple[str, ...] = ()
    cast_type: str | None = None
    filter: ConditionSpec | None = None


class _ReadSpec(_Spec):
    fields: tuple[str, ...] = ()
    select_exprs: tuple[SelectExprSpec, ...] = ()
    where: tuple[ConditionSpec, ...] = ()
    order_by: tuple[OrderBySpec, ...] = ()
    group_by: tuple[str, ...] = ()
    having: tuple[ConditionSpec, ...] = ()
    having_agg: tuple[HavingAggSpec, ...] = ()
    limit: int | None = Field(default=None, ge=0)
    limit_param: str | None = None
    offset: int | None = Field(default=None, ge=0)
    offset_param: str | None = None
    distinct: bool = False
    distinct_on: tuple[str, ...] = ()
    for_locking: str | None = None

    @model_validator(mode="after")
    def _check_pagination(self) -> _ReadSpec:
        if self.limit is not None and self.limit_param:
            raise ValueError("limit and limit_param are mutually exclusive")
        if self.offset is not None and self.offset_param:
            raise ValueError("offset and offset_param are mutually exclusive")
        return self


class QuerySpec(_ReadSpec):
    """A SELECT returning many rows."""


class SelectSpec(_ReadSpec):
    """A SELECT returning a single row."""


class UpdateSpec(_Spec):
    """``UPDATE ... SET field = :param WHERE ...``; ``set`` maps field → param."""

    set: dict[str, str] = Field(default_factory=dict)
    where: tuple[ConditionSpec, ...] = ()


class DeleteSpec(_Spec):
    where: tuple[ConditionSpec, ...] = ()


class AggregateSpec(_Spec):
    """Aggregate target; ``field`` is required for SUM/AVG/MIN/MAX, ignored by COUNT."""

    field: str | None = None
    where: tuple[ConditionSpec, ...] = ()


class CreateSpec(_Spec):
    """
    INSERT with optional ON CONFLICT handling.

    ``{"on_conflict": ["email"], "conflict_action": "update",
    "conflict_set": {"name": "updated_name"}}``
    """

    on_conflict: tuple[str, ...] = ()
    conflict_action: str | None = None
    conflict_set: dict[str, str] = Field(default_factory=dict)


class SetOperandSpec(_Spec):
    """One operand of a compound query: the set operation and its query."""

    operation: str
    query: QuerySpec


class CompoundQuerySpec(_Spec):
    """
    A base query combined with operands via UNION/INTERSECT/EXCEPT.

    ``order_by``/``limit``/``offset`` apply to the combined result.
    """

    base: QuerySpec
    operands: tuple[SetOperandSpec, ...] = ()
    order_by: tuple[OrderBySpec, ...] = ()
    limit: int | None = Field(default=None, ge=0)
    offset: int | None = Field(default=None, ge=0)

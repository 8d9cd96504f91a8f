"""Capability records: named, registered operation specs."""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .specs import AggregateSpec, DeleteSpec, QuerySpec, SelectSpec, UpdateSpec

UNTYPED = "any"


class CapabilityKind(str, Enum):
    """The five registrable operation kinds."""

    QUERY = "query"
    SELECT = "select"
    UPDATE = "update"
    DELETE = "delete"
    AGGREGATE = "aggregate"


class AggregateFunc(str, Enum):
    """Aggregate function applied by an aggregate capability."""

    COUNT = "COUNT"
    SUM = "SUM"
    AVG = "AVG"
    MIN = "MIN"
    MAX = "MAX"


# Any tag outside the enum builds a COUNT.
DEFAULT_AGGREGATE_FUNC = AggregateFunc.COUNT


def resolve_aggregate_func(value: AggregateFunc | str | None) -> AggregateFunc:
    """Map a tag to an :class:`AggregateFunc`, degrading unknown tags to COUNT."""
    if isinstance(value, AggregateFunc):
        return value
    try:
        return AggregateFunc(str(value).upper())
    except ValueError:
        return DEFAULT_AGGREGATE_FUNC


class ParamSpec(BaseModel):
    """A parameter required to execute a capability."""

    model_config = ConfigDict(frozen=True)

    name: str
    type: str = UNTYPED
    required: bool = True
    default: Any = None
    description: str | None = None


class _Capability(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    description: str = ""
    params: tuple[ParamSpec, ...] = ()
    tags: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)


class QueryCapability(_Capability):
    """Named SELECT returning many records."""

    spec: QuerySpec = Field(default_factory=QuerySpec)


class SelectCapability(_Capability):
    """Named SELECT returning a single record."""

    spec: SelectSpec = Field(default_factory=SelectSpec)


class UpdateCapability(_Capability):
    """Named UPDATE mutation."""

    spec: UpdateSpec = Field(default_factory=UpdateSpec)


class DeleteCapability(_Capability):
    """Named DELETE mutation."""

    spec: DeleteSpec = Field(default_factory=DeleteSpec)


class AggregateCapability(_Capability):
    """Named aggregate (COUNT, SUM, AVG, MIN, MAX)."""

    spec: AggregateSpec = Field(default_factory=AggregateSpec)
    func: AggregateFunc = DEFAULT_AGGREGATE_FUNC

    @field_validator("func", mode="before")
    @classmethod
    def _degrade_unknown_func(cls, value: Any) -> AggregateFunc:
        return resolve_aggregate_func(value)


class FactorySpec(BaseModel):
    """Catalog of every capability registered for one table."""

    model_config = ConfigDict(frozen=True)

    table: str
    primary_key: str
    queries: tuple[QueryCapability, ...] = ()
    selects: tuple[SelectCapability, ...] = ()
    updates: tuple[UpdateCapability, ...] = ()
    deletes: tuple[DeleteCapability, ...] = ()
    aggregates: tuple[AggregateCapability, ...] = ()

    def capability_count(self) -> int:
        return (
            len(self.queries)
            + len(self.selects)
            + len(self.updates)
            + len(self.deletes)
            + len(self.aggregates)
        )

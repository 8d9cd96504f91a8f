"""
Schema metadata extracted from a SQLAlchemy ``Table`` or declarative model.

Column ``info`` may carry overrides, mirroring struct-tag style metadata::

    Column("age", Integer, info={"type": "integer", "constraints": "notnull"})
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import Table

from .capability import UNTYPED
from .exceptions import FieldNotFoundError, PrimaryKeyNotFoundError

_PRIMARY_KEY_MARKERS = ("primarykey", "primary_key")


@dataclass(frozen=True)
class FieldMetadata:
    """Metadata for one column."""

    name: str
    type: str
    constraints: tuple[str, ...] = ()
    nullable: bool = True

    @property
    def is_primary_key(self) -> bool:
        return any(c in _PRIMARY_KEY_MARKERS for c in self.constraints)


@dataclass(frozen=True)
class ModelMetadata:
    """Column metadata for one table, in declaration order."""

    table_name: str
    fields: tuple[FieldMetadata, ...] = field(default_factory=tuple)

    @classmethod
    def from_model(cls, model: Any) -> ModelMetadata:
        table = resolve_table(model)
        return cls(
            table_name=table.name,
            fields=tuple(_field_from_column(col) for col in table.columns),
        )

    @property
    def field_names(self) -> list[str]:
        return [f.name for f in self.fields]

    def get(self, name: str) -> FieldMetadata | None:
        for f in self.fields:
            if f.name == name:
                return f
        return None

    def require(self, name: str) -> FieldMetadata:
        meta = self.get(name)
        if meta is None:
            raise FieldNotFoundError(name, self.table_name, self.field_names)
        return meta

    def field_type(self, name: str | None) -> str:
        """Semantic type of *name*, or ``"any"`` when unknown."""
        if not name:
            return UNTYPED
        meta = self.get(name)
        if meta is None or not meta.type:
            return UNTYPED
        return meta.type

    def primary_key(self) -> str:
        for f in self.fields:
            if f.is_primary_key:
                return f.name
        raise PrimaryKeyNotFoundError(self.table_name)


def resolve_table(model: Any) -> Table:
    """Accept a ``Table`` or a declarative class and return its ``Table``."""
    if isinstance(model, Table):
        return model
    table = getattr(model, "__table__", None)
    if isinstance(table, Table):
        return table
    raise TypeError(
        f"Expected a SQLAlchemy Table or declarative model, got {model!r}"
    )


def _field_from_column(column: Any) -> FieldMetadata:
    info = column.info or {}
    declared = info.get("constraints", "")
    constraints = [c.strip().lower() for c in str(declared).split(",") if c.strip()]
    if column.primary_key and "primarykey" not in constraints:
        constraints.insert(0, "primarykey")
    if not column.nullable and "notnull" not in constraints:
        constraints.append("notnull")
    if column.unique and "unique" not in constraints:
        constraints.append("unique")

    type_name = info.get("type") or getattr(column.type, "__visit_name__", "")
    return FieldMetadata(
        name=column.name,
        type=str(type_name).lower() or UNTYPED,
        constraints=tuple(constraints),
        nullable=bool(column.nullable),
    )

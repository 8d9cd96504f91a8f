"""
Typed statement handles and a registry-free executor.

Statements are immutable values, usually declared at module level, and
passed straight to a ``StatementExecutor``::

    BY_EMAIL = SelectStatement(
        name="by-email",
        description="Select user by email",
        spec=SelectSpec(
            where=(SimpleCondition(field="email", operator="=", param="email"),)
        ),
    )

    executor = StatementExecutor(User, engine=engine)
    user = await executor.exec_select(BY_EMAIL, {"email": "a@example.com"})

Parameters are derived when the statement is created. Statements are not
bound to a table, so every derived parameter is typed ``"any"``.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, ClassVar
from uuid import UUID, uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)

from .builders import SpecCompiler, default_dialect
from .capability import (
    DEFAULT_AGGREGATE_FUNC,
    AggregateFunc,
    ParamSpec,
    resolve_aggregate_func,
)
from .events import EXECUTOR_CREATED, emit
from .execution import (
    Record,
    connection_scope,
    execute_count,
    fetch_all,
    fetch_float,
    fetch_one,
)
from .params import (
    DEFAULT_MAX_CONDITION_DEPTH,
    derive_aggregate_params,
    derive_delete_params,
    derive_read_params,
    derive_update_params,
)
from .render import render
from .schema import resolve_table
from .specs import (
    AggregateSpec,
    CreateSpec,
    DeleteSpec,
    QuerySpec,
    SelectSpec,
    UpdateSpec,
)

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from sqlalchemy.engine import Dialect
    from sqlalchemy.ext.asyncio import AsyncEngine

    from .execution import Connectable
    from .operators import ConditionOperatorRegistry
    from .specs import CompoundQuerySpec

logger = logging.getLogger("cqrs_ddd.capabilities.statement")


class _Statement(BaseModel):
    model_config = ConfigDict(frozen=True)

    spec_type: ClassVar[type[BaseModel]]
    derive: ClassVar[Any]

    id: UUID = Field(default_factory=uuid4)
    name: str
    description: str = ""
    params: tuple[ParamSpec, ...] = ()
    tags: tuple[str, ...] = ()

    @model_validator(mode="before")
    @classmethod
    def _derive_params(cls, data: Any) -> Any:
        if not isinstance(data, dict) or data.get("params"):
            return data
        spec = data.get("spec")
        if not isinstance(spec, cls.spec_type):
            spec = cls.spec_type.model_validate(spec or {})
        return {**data, "spec": spec, "params": cls.derive(spec)}


class QueryStatement(_Statement):
    """A SELECT returning many rows."""

    spec_type: ClassVar[type[BaseModel]] = QuerySpec
    derive: ClassVar[Any] = staticmethod(derive_read_params)

    spec: QuerySpec = Field(default_factory=QuerySpec)


class SelectStatement(_Statement):
    """A SELECT returning one row."""

    spec_type: ClassVar[type[BaseModel]] = SelectSpec
    derive: ClassVar[Any] = staticmethod(derive_read_params)

    spec: SelectSpec = Field(default_factory=SelectSpec)


class UpdateStatement(_Statement):
    spec_type: ClassVar[type[BaseModel]] = UpdateSpec
    derive: ClassVar[Any] = staticmethod(derive_update_params)

    spec: UpdateSpec = Field(default_factory=UpdateSpec)


class DeleteStatement(_Statement):
    spec_type: ClassVar[type[BaseModel]] = DeleteSpec
    derive: ClassVar[Any] = staticmethod(derive_delete_params)

    spec: DeleteSpec = Field(default_factory=DeleteSpec)


class AggregateStatement(_Statement):
    """An aggregate; unknown function tags degrade to COUNT."""

    spec_type: ClassVar[type[BaseModel]] = AggregateSpec
    derive: ClassVar[Any] = staticmethod(derive_aggregate_params)

    spec: AggregateSpec = Field(default_factory=AggregateSpec)
    func: AggregateFunc = DEFAULT_AGGREGATE_FUNC

    @field_validator("func", mode="before")
    @classmethod
    def _degrade_unknown_func(cls, value: Any) -> AggregateFunc:
        return resolve_aggregate_func(value)


class StatementExecutor:
    """
    Build, render and execute typed statements against one table.

    Unlike :class:`~cqrs_ddd_capabilities.factory.CapabilityFactory` there
    is no registry and no render cache: the statement is the capability.
    """

    def __init__(
        self,
        model: Any,
        *,
        engine: AsyncEngine | None = None,
        dialect: Dialect | None = None,
        max_condition_depth: int = DEFAULT_MAX_CONDITION_DEPTH,
        operators: ConditionOperatorRegistry | None = None,
    ) -> None:
        self._table = resolve_table(model)
        self._engine = engine
        self._dialect = dialect or default_dialect()
        self._compiler = SpecCompiler(
            self._table,
            registry=operators,
            max_depth=max_condition_depth,
            dialect=self._dialect,
        )
        logger.debug("Statement executor created for %s", self.table_name)
        emit(EXECUTOR_CREATED, self.table_name)

    @property
    def table_name(self) -> str:
        return self._table.name

    @property
    def compiler(self) -> SpecCompiler:
        return self._compiler

    # -- rendering ------------------------------------------------------------

    def render_query(self, stmt: QueryStatement) -> str:
        return render(self._compiler.query_from_spec(stmt.spec), self._dialect).sql

    def render_select(self, stmt: SelectStatement) -> str:
        return render(self._compiler.select_from_spec(stmt.spec), self._dialect).sql

    def render_update(self, stmt: UpdateStatement) -> str:
        return render(self._compiler.update_from_spec(stmt.spec), self._dialect).sql

    def render_delete(self, stmt: DeleteStatement) -> str:
        return render(self._compiler.delete_from_spec(stmt.spec), self._dialect).sql

    def render_aggregate(self, stmt: AggregateStatement) -> str:
        built = self._compiler.aggregate_from_spec(stmt.spec, stmt.func)
        return render(built, self._dialect).sql

    def render_compound(self, spec: CompoundQuerySpec) -> str:
        return render(self._compiler.compound_from_spec(spec), self._dialect).sql

    # -- execution ------------------------------------------------------------

    async def exec_query(
        self,
        stmt: QueryStatement,
        params: Mapping[str, Any] | None = None,
        *,
        conn: Connectable | None = None,
    ) -> list[Record]:
        built = self._compiler.query_from_spec(stmt.spec, params or {})
        async with connection_scope(self._engine, conn) as c:
            return await fetch_all(c, built, params)

    async def exec_select(
        self,
        stmt: SelectStatement,
        params: Mapping[str, Any] | None = None,
        *,
        conn: Connectable | None = None,
    ) -> Record | None:
        built = self._compiler.select_from_spec(stmt.spec, params or {})
        async with connection_scope(self._engine, conn) as c:
            return await fetch_one(c, built, params)

    async def exec_update(
        self,
        stmt: UpdateStatement,
        params: Mapping[str, Any] | None = None,
        *,
        conn: Connectable | None = None,
    ) -> Record | None:
        built = self._compiler.update_from_spec(stmt.spec, params or {})
        async with connection_scope(self._engine, conn) as c:
            return await fetch_one(c, built.returning(*self._table.c))

    async def exec_delete(
        self,
        stmt: DeleteStatement,
        params: Mapping[str, Any] | None = None,
        *,
        conn: Connectable | None = None,
    ) -> int:
        built = self._compiler.delete_from_spec(stmt.spec)
        async with connection_scope(self._engine, conn) as c:
            return await execute_count(c, built, params)

    async def exec_aggregate(
        self,
        stmt: AggregateStatement,
        params: Mapping[str, Any] | None = None,
        *,
        conn: Connectable | None = None,
    ) -> float:
        built = self._compiler.aggregate_from_spec(stmt.spec, stmt.func)
        async with connection_scope(self._engine, conn) as c:
            return await fetch_float(c, built, params)

    async def exec_compound(
        self,
        spec: CompoundQuerySpec,
        params: Mapping[str, Any] | None = None,
        *,
        conn: Connectable | None = None,
    ) -> list[Record]:
        built = self._compiler.compound_from_spec(spec, params or {})
        async with connection_scope(self._engine, conn) as c:
            return await fetch_all(c, built, params)

    async def exec_insert(
        self,
        record: Mapping[str, Any],
        spec: CreateSpec | None = None,
        params: Mapping[str, Any] | None = None,
        *,
        conn: Connectable | None = None,
    ) -> Record | None:
        built = self._compiler.insert_from_spec(
            spec or CreateSpec(), record, params or {}
        )
        async with connection_scope(self._engine, conn) as c:
            return await fetch_one(c, built.returning(*self._table.c))

    async def exec_update_batch(
        self,
        stmt: UpdateStatement,
        batch_params: Sequence[Mapping[str, Any]],
        *,
        conn: Connectable | None = None,
    ) -> int:
        total = 0
        async with connection_scope(self._engine, conn) as c:
            for params in batch_params:
                built = self._compiler.update_from_spec(stmt.spec, params)
                total += await execute_count(c, built)
        return total

    async def exec_delete_batch(
        self,
        stmt: DeleteStatement,
        batch_params: Sequence[Mapping[str, Any]],
        *,
        conn: Connectable | None = None,
    ) -> int:
        built = self._compiler.delete_from_spec(stmt.spec)
        total = 0
        async with connection_scope(self._engine, conn) as c:
            for params in batch_params:
                total += await execute_count(c, built, params)
        return total

"""
Per-table capability registry.

A ``CapabilityFactory`` owns the named query/select/update/delete/aggregate
capabilities of one table, builds SQLAlchemy statements from them, renders
them (memoized per ``"<kind>:<name>"``) and executes them asynchronously.

Usage::

    factory = CapabilityFactory(User, engine=engine)
    factory.add_query(
        QueryCapability(
            name="adults",
            spec=QuerySpec(where=(SimpleCondition(field="age", operator=">=",
                                                  param="min_age"),)),
        )
    )
    rows = await factory.exec_query("adults", {"min_age": 18})

Four capabilities exist from construction: ``select`` and ``delete`` (by
primary key), ``query`` (every row) and ``count``.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, TypeVar

from .builders import SpecCompiler, default_dialect
from .capability import (
    AggregateCapability,
    AggregateFunc,
    CapabilityKind,
    DeleteCapability,
    FactorySpec,
    ParamSpec,
    QueryCapability,
    SelectCapability,
    UpdateCapability,
)
from .conditions import SimpleCondition
from .events import (
    CAPABILITY_ADDED,
    CAPABILITY_NOT_FOUND,
    CAPABILITY_REMOVED,
    FACTORY_CREATED,
    emit,
)
from .exceptions import CapabilityNotFoundError
from .execution import (
    Record,
    connection_scope,
    execute_count,
    fetch_all,
    fetch_float,
    fetch_one,
)
from .locking import ReadWriteLock
from .params import (
    DEFAULT_MAX_CONDITION_DEPTH,
    derive_aggregate_params,
    derive_delete_params,
    derive_read_params,
    derive_update_params,
)
from .render import RenderCache, cache_key, render
from .schema import ModelMetadata, resolve_table
from .specs import AggregateSpec, CreateSpec, DeleteSpec, QuerySpec, SelectSpec

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping, Sequence

    from sqlalchemy import CompoundSelect, Delete, Insert, Select, Update
    from sqlalchemy.engine import Dialect
    from sqlalchemy.ext.asyncio import AsyncEngine
    from sqlalchemy.sql import ClauseElement

    from .capability import _Capability
    from .execution import Connectable
    from .operators import ConditionOperatorRegistry
    from .specs import CompoundQuerySpec

logger = logging.getLogger("cqrs_ddd.capabilities")

CapT = TypeVar("CapT", bound="_Capability")


class CapabilityFactory:
    """
    Registry of named capabilities for one table.

    Args:
        model: A SQLAlchemy ``Table`` or declarative class.
        engine: Optional ``AsyncEngine`` used by ``exec_*`` when no
            ``conn`` is passed.
        dialect: Render dialect. Defaults to PostgreSQL.
        max_condition_depth: Maximum group nesting per condition tree
            (``0`` disables the check).
        operators: Custom operator registry.

    Raises:
        PrimaryKeyNotFoundError: If the table declares no primary key.
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
        if max_condition_depth < 0:
            raise ValueError("max_condition_depth must be >= 0")

        self._table = resolve_table(model)
        self._metadata = ModelMetadata.from_model(self._table)
        self._primary_key = self._metadata.primary_key()
        self._engine = engine
        self._dialect = dialect or default_dialect()
        self._max_depth = max_condition_depth
        self._compiler = SpecCompiler(
            self._table,
            self._metadata,
            registry=operators,
            max_depth=max_condition_depth,
            dialect=self._dialect,
        )

        self._lock = ReadWriteLock()
        self._cache = RenderCache()
        self._capabilities: dict[CapabilityKind, dict[str, Any]] = {
            kind: {} for kind in CapabilityKind
        }

        self._register_defaults()
        logger.debug(
            "Capability factory created for %s (primary key %s)",
            self.table_name,
            self._primary_key,
        )
        emit(FACTORY_CREATED, self.table_name)

    # -- properties -----------------------------------------------------------

    @property
    def table_name(self) -> str:
        return self._table.name

    @property
    def primary_key(self) -> str:
        return self._primary_key

    @property
    def metadata(self) -> ModelMetadata:
        return self._metadata

    @property
    def compiler(self) -> SpecCompiler:
        with self._lock.read_locked():
            return self._compiler

    @property
    def engine(self) -> AsyncEngine | None:
        return self._engine

    @property
    def dialect(self) -> Dialect:
        return self._dialect

    @property
    def max_condition_depth(self) -> int:
        with self._lock.read_locked():
            return self._max_depth

    def set_max_condition_depth(self, depth: int) -> None:
        """Set the per-tree nesting limit; ``0`` disables the check."""
        if depth < 0:
            raise ValueError("max_condition_depth must be >= 0")
        with self._lock.write_locked():
            self._max_depth = depth
            self._compiler = self._compiler.with_max_depth(depth)

    # -- defaults -------------------------------------------------------------

    def _register_defaults(self) -> None:
        pk = self._primary_key
        table = self.table_name
        by_pk = (SimpleCondition(field=pk, operator="=", param=pk),)
        pk_param = ParamSpec(
            name=pk,
            type=self._metadata.field_type(pk),
            required=True,
            description="Primary key value",
        )

        defaults: list[tuple[CapabilityKind, Any]] = [
            (
                CapabilityKind.SELECT,
                SelectCapability(
                    name="select",
                    description=f"Select a single {table} by primary key",
                    spec=SelectSpec(where=by_pk),
                    params=(pk_param,),
                    tags=("crud", "read"),
                ),
            ),
            (
                CapabilityKind.QUERY,
                QueryCapability(
                    name="query",
                    description=f"Query all {table} records",
                    spec=QuerySpec(),
                    tags=("crud", "read"),
                ),
            ),
            (
                CapabilityKind.DELETE,
                DeleteCapability(
                    name="delete",
                    description=f"Delete a {table} by primary key",
                    spec=DeleteSpec(where=by_pk),
                    params=(pk_param,),
                    tags=("crud", "write"),
                ),
            ),
            (
                CapabilityKind.AGGREGATE,
                AggregateCapability(
                    name="count",
                    description=f"Count all {table} records",
                    spec=AggregateSpec(),
                    func=AggregateFunc.COUNT,
                    tags=("crud", "read", "aggregate"),
                ),
            ),
        ]
        for kind, cap in defaults:
            self._capabilities[kind][cap.name] = cap

    # -- registration ---------------------------------------------------------

    def _add(
        self,
        kind: CapabilityKind,
        cap: CapT,
        derive: Callable[[Any, ModelMetadata, int], tuple[ParamSpec, ...]],
    ) -> CapT:
        with self._lock.write_locked():
            if not cap.params:
                spec = cap.spec  # type: ignore[attr-defined]
                params = derive(spec, self._metadata, self._max_depth)
                cap = cap.model_copy(update={"params": params})
            self._capabilities[kind][cap.name] = cap
            self._cache.invalidate(cache_key(kind.value, cap.name))
        logger.debug(
            "Added %s capability %s on %s", kind.value, cap.name, self.table_name
        )
        emit(CAPABILITY_ADDED, self.table_name, capability=cap.name, type=kind.value)
        return cap

    def _remove(self, kind: CapabilityKind, name: str) -> bool:
        with self._lock.write_locked():
            existed = self._capabilities[kind].pop(name, None) is not None
            self._cache.invalidate(cache_key(kind.value, name))
        if existed:
            logger.debug(
                "Removed %s capability %s on %s", kind.value, name, self.table_name
            )
            emit(CAPABILITY_REMOVED, self.table_name, capability=name, type=kind.value)
        return existed

    def add_query(self, cap: QueryCapability) -> QueryCapability:
        """Register (or replace) a query capability.

        Parameters are derived from ``cap.spec`` when ``cap.params`` is empty.

        Raises:
            ConditionDepthExceededError: If a condition tree nests too deep.
        """
        return self._add(CapabilityKind.QUERY, cap, derive_read_params)

    def add_select(self, cap: SelectCapability) -> SelectCapability:
        return self._add(CapabilityKind.SELECT, cap, derive_read_params)

    def add_update(self, cap: UpdateCapability) -> UpdateCapability:
        return self._add(CapabilityKind.UPDATE, cap, derive_update_params)

    def add_delete(self, cap: DeleteCapability) -> DeleteCapability:
        return self._add(CapabilityKind.DELETE, cap, derive_delete_params)

    def add_aggregate(self, cap: AggregateCapability) -> AggregateCapability:
        return self._add(CapabilityKind.AGGREGATE, cap, derive_aggregate_params)

    def remove_query(self, name: str) -> bool:
        return self._remove(CapabilityKind.QUERY, name)

    def remove_select(self, name: str) -> bool:
        return self._remove(CapabilityKind.SELECT, name)

    def remove_update(self, name: str) -> bool:
        return self._remove(CapabilityKind.UPDATE, name)

    def remove_delete(self, name: str) -> bool:
        return self._remove(CapabilityKind.DELETE, name)

    def remove_aggregate(self, name: str) -> bool:
        return self._remove(CapabilityKind.AGGREGATE, name)

    # -- lookup ---------------------------------------------------------------

    def _get(self, kind: CapabilityKind, name: str) -> Any:
        with self._lock.read_locked():
            return self._capabilities[kind].get(name)

    def _list(self, kind: CapabilityKind) -> list[str]:
        with self._lock.read_locked():
            return sorted(self._capabilities[kind])

    def has_query(self, name: str) -> bool:
        return self._get(CapabilityKind.QUERY, name) is not None

    def has_select(self, name: str) -> bool:
        return self._get(CapabilityKind.SELECT, name) is not None

    def has_update(self, name: str) -> bool:
        return self._get(CapabilityKind.UPDATE, name) is not None

    def has_delete(self, name: str) -> bool:
        return self._get(CapabilityKind.DELETE, name) is not None

    def has_aggregate(self, name: str) -> bool:
        return self._get(CapabilityKind.AGGREGATE, name) is not None

    def get_query(self, name: str) -> QueryCapability | None:
        return self._get(CapabilityKind.QUERY, name)  # type: ignore[no-any-return]

    def get_select(self, name: str) -> SelectCapability | None:
        return self._get(CapabilityKind.SELECT, name)  # type: ignore[no-any-return]

    def get_update(self, name: str) -> UpdateCapability | None:
        return self._get(CapabilityKind.UPDATE, name)  # type: ignore[no-any-return]

    def get_delete(self, name: str) -> DeleteCapability | None:
        return self._get(CapabilityKind.DELETE, name)  # type: ignore[no-any-return]

    def get_aggregate(self, name: str) -> AggregateCapability | None:
        return self._get(CapabilityKind.AGGREGATE, name)  # type: ignore[no-any-return]

    def list_queries(self) -> list[str]:
        return self._list(CapabilityKind.QUERY)

    def list_selects(self) -> list[str]:
        return self._list(CapabilityKind.SELECT)

    def list_updates(self) -> list[str]:
        return self._list(CapabilityKind.UPDATE)

    def list_deletes(self) -> list[str]:
        return self._list(CapabilityKind.DELETE)

    def list_aggregates(self) -> list[str]:
        return self._list(CapabilityKind.AGGREGATE)

    def _require(
        self, kind: CapabilityKind, name: str
    ) -> tuple[Any, SpecCompiler]:
        """The capability and the compiler in effect, read under one lock."""
        with self._lock.read_locked():
            cap = self._capabilities[kind].get(name)
            compiler = self._compiler
        if cap is None:
            logger.debug(
                "%s capability %s not found on %s", kind.value, name, self.table_name
            )
            emit(
                CAPABILITY_NOT_FOUND,
                self.table_name,
                capability=name,
                type=kind.value,
            )
            raise CapabilityNotFoundError(kind.value, name, self.table_name)
        return cap, compiler

    # -- builders -------------------------------------------------------------

    def query(
        self, name: str, params: Mapping[str, Any] | None = None
    ) -> Select[Any]:
        """Build the named query capability.

        With *params*, an optional LIMIT/OFFSET parameter that is not
        supplied drops its clause.

        Raises:
            CapabilityNotFoundError: If no query is registered under *name*.
            InvalidLockModeError: If ``for_locking`` names an unknown mode.
        """
        cap, compiler = self._require(CapabilityKind.QUERY, name)
        return compiler.query_from_spec(cap.spec, params)

    def select(
        self, name: str, params: Mapping[str, Any] | None = None
    ) -> Select[Any]:
        cap, compiler = self._require(CapabilityKind.SELECT, name)
        return compiler.select_from_spec(cap.spec, params)

    def update(
        self, name: str, values: Mapping[str, Any] | None = None
    ) -> Update:
        """Build the named update.

        Raises:
            ValidationError: If *values* is given but lacks a bound parameter.
        """
        cap, compiler = self._require(CapabilityKind.UPDATE, name)
        return compiler.update_from_spec(cap.spec, values)

    def delete(self, name: str) -> Delete:
        cap, compiler = self._require(CapabilityKind.DELETE, name)
        return compiler.delete_from_spec(cap.spec)

    def aggregate(self, name: str) -> Select[Any]:
        cap, compiler = self._require(CapabilityKind.AGGREGATE, name)
        return compiler.aggregate_from_spec(cap.spec, cap.func)

    def insert(
        self,
        spec: CreateSpec | None = None,
        record: Mapping[str, Any] | None = None,
        params: Mapping[str, Any] | None = None,
    ) -> Insert:
        return self.compiler.insert_from_spec(spec or CreateSpec(), record, params)

    def compound(
        self,
        spec: CompoundQuerySpec,
        params: Mapping[str, Any] | None = None,
    ) -> CompoundSelect:
        return self.compiler.compound_from_spec(spec, params)

    # -- rendering ------------------------------------------------------------

    def _render_cached(
        self,
        kind: CapabilityKind,
        name: str,
        build: Callable[[Any, SpecCompiler], ClauseElement],
    ) -> str:
        key = cache_key(kind.value, name)
        with self._lock.read_locked():
            sql = self._cache.get(key)
            cap = self._capabilities[kind].get(name)
            compiler = self._compiler
        if sql is not None:
            return sql
        if cap is None:
            cap, compiler = self._require(kind, name)

        logger.debug("Render cache miss: %s", key)
        sql = render(build(cap, compiler), self._dialect).sql
        with self._lock.write_locked():
            # A concurrent add/remove may have replaced the capability.
            if self._capabilities[kind].get(name) is cap:
                self._cache.put(key, sql)
        return sql

    def render_query(self, name: str) -> str:
        """Rendered SQL of the named query, memoized until it changes."""
        return self._render_cached(
            CapabilityKind.QUERY,
            name,
            lambda cap, compiler: compiler.query_from_spec(cap.spec),
        )

    def render_select(self, name: str) -> str:
        return self._render_cached(
            CapabilityKind.SELECT,
            name,
            lambda cap, compiler: compiler.select_from_spec(cap.spec),
        )

    def render_update(self, name: str) -> str:
        return self._render_cached(
            CapabilityKind.UPDATE,
            name,
            lambda cap, compiler: compiler.update_from_spec(cap.spec),
        )

    def render_delete(self, name: str) -> str:
        return self._render_cached(
            CapabilityKind.DELETE,
            name,
            lambda cap, compiler: compiler.delete_from_spec(cap.spec),
        )

    def render_aggregate(self, name: str) -> str:
        return self._render_cached(
            CapabilityKind.AGGREGATE,
            name,
            lambda cap, compiler: compiler.aggregate_from_spec(cap.spec, cap.func),
        )

    def render_compound(self, spec: CompoundQuerySpec) -> str:
        """Render a compound query. Compound queries are never cached."""
        return render(self.compound(spec), self._dialect).sql

    # -- catalog --------------------------------------------------------------

    def spec(self) -> FactorySpec:
        """Catalog of every registered capability, sorted by name."""
        with self._lock.read_locked():
            snapshot = {
                kind: tuple(caps[n] for n in sorted(caps))
                for kind, caps in self._capabilities.items()
            }
        return FactorySpec(
            table=self.table_name,
            primary_key=self._primary_key,
            queries=snapshot[CapabilityKind.QUERY],
            selects=snapshot[CapabilityKind.SELECT],
            updates=snapshot[CapabilityKind.UPDATE],
            deletes=snapshot[CapabilityKind.DELETE],
            aggregates=snapshot[CapabilityKind.AGGREGATE],
        )

    def spec_json(self, *, indent: int | None = None) -> str:
        return self.spec().model_dump_json(exclude_none=True, indent=indent)

    # -- execution ------------------------------------------------------------

    async def exec_query(
        self,
        name: str,
        params: Mapping[str, Any] | None = None,
        *,
        conn: Connectable | None = None,
    ) -> list[Record]:
        stmt = self.query(name, params or {})
        async with connection_scope(self._engine, conn) as c:
            return await fetch_all(c, stmt, params)

    async def exec_select(
        self,
        name: str,
        params: Mapping[str, Any] | None = None,
        *,
        conn: Connectable | None = None,
    ) -> Record | None:
        """Execute the named select; ``None`` when no row matches."""
        stmt = self.select(name, params or {})
        async with connection_scope(self._engine, conn) as c:
            return await fetch_one(c, stmt, params)

    async def exec_update(
        self,
        name: str,
        params: Mapping[str, Any] | None = None,
        *,
        conn: Connectable | None = None,
    ) -> Record | None:
        """Execute the named update; returns the first updated row."""
        stmt = self.update(name, params or {}).returning(*self._table.c)
        async with connection_scope(self._engine, conn) as c:
            return await fetch_one(c, stmt)

    async def exec_delete(
        self,
        name: str,
        params: Mapping[str, Any] | None = None,
        *,
        conn: Connectable | None = None,
    ) -> int:
        stmt = self.delete(name)
        async with connection_scope(self._engine, conn) as c:
            return await execute_count(c, stmt, params)

    async def exec_aggregate(
        self,
        name: str,
        params: Mapping[str, Any] | None = None,
        *,
        conn: Connectable | None = None,
    ) -> float:
        stmt = self.aggregate(name)
        async with connection_scope(self._engine, conn) as c:
            return await fetch_float(c, stmt, params)

    async def exec_insert(
        self,
        record: Mapping[str, Any],
        spec: CreateSpec | None = None,
        params: Mapping[str, Any] | None = None,
        *,
        conn: Connectable | None = None,
    ) -> Record | None:
        """Insert one record; returns the stored row (``None`` on DO NOTHING)."""
        stmt = self.insert(spec, record, params or {}).returning(*self._table.c)
        async with connection_scope(self._engine, conn) as c:
            return await fetch_one(c, stmt)

    async def exec_insert_batch(
        self,
        records: Sequence[Mapping[str, Any]],
        spec: CreateSpec | None = None,
        params: Mapping[str, Any] | None = None,
        *,
        conn: Connectable | None = None,
    ) -> int:
        total = 0
        async with connection_scope(self._engine, conn) as c:
            for record in records:
                total += await execute_count(c, self.insert(spec, record, params or {}))
        return total

    async def exec_compound(
        self,
        spec: CompoundQuerySpec,
        params: Mapping[str, Any] | None = None,
        *,
        conn: Connectable | None = None,
    ) -> list[Record]:
        stmt = self.compound(spec, params or {})
        async with connection_scope(self._engine, conn) as c:
            return await fetch_all(c, stmt, params)

    async def exec_update_batch(
        self,
        name: str,
        batch_params: Sequence[Mapping[str, Any]],
        *,
        conn: Connectable | None = None,
    ) -> int:
        """Run the named update once per parameter map; summed row count."""
        cap, compiler = self._require(CapabilityKind.UPDATE, name)
        total = 0
        async with connection_scope(self._engine, conn) as c:
            for params in batch_params:
                stmt = compiler.update_from_spec(cap.spec, params)
                total += await execute_count(c, stmt)
        return total

    async def exec_delete_batch(
        self,
        name: str,
        batch_params: Sequence[Mapping[str, Any]],
        *,
        conn: Connectable | None = None,
    ) -> int:
        stmt = self.delete(name)
        total = 0
        async with connection_scope(self._engine, conn) as c:
            for params in batch_params:
                total += await execute_count(c, stmt, params)
        return total

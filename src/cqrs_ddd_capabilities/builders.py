"""
Build SQLAlchemy Core statements from operation specs.

``SpecCompiler`` is bound to one table. Each ``*_from_spec`` method returns
a fresh, generative SQLAlchemy statement; nothing is executed here.

Query Options
-------------
Read specs carry the full SELECT vocabulary: projection (columns or
computed select expressions), WHERE/HAVING trees, HAVING aggregates,
ORDER BY (plain, NULLS placement, or operator expression), GROUP BY,
LIMIT/OFFSET (literal or parameterized), DISTINCT / DISTINCT ON and row
locking.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from sqlalchemy import (
    BigInteger,
    Boolean,
    Date,
    DateTime,
    Float,
    Integer,
    Numeric,
    Text,
    Time,
    asc,
    bindparam,
    cast,
    delete,
    desc,
    distinct,
    except_,
    except_all,
    func,
    insert,
    intersect,
    intersect_all,
    literal,
    select,
    union,
    union_all,
    update,
)
from sqlalchemy.dialects import postgresql, sqlite

from .capability import AggregateFunc, resolve_aggregate_func
from .exceptions import (
    CompoundQueryError,
    FieldNotFoundError,
    InvalidConflictActionError,
    InvalidLockModeError,
    InvalidSetOperationError,
    SelectExpressionError,
    SpecificationError,
    ValidationError,
)
from .params import DEFAULT_MAX_CONDITION_DEPTH
from .schema import ModelMetadata, resolve_table
from .translator import ConditionTranslator

if TYPE_CHECKING:
    from collections.abc import Mapping

    from sqlalchemy import (
        ColumnElement,
        CompoundSelect,
        Delete,
        Insert,
        Select,
        Update,
    )
    from sqlalchemy.engine import Dialect

    from .operators import ConditionOperatorRegistry
    from .specs import (
        AggregateSpec,
        CompoundQuerySpec,
        CreateSpec,
        DeleteSpec,
        HavingAggSpec,
        OrderBySpec,
        SelectExprSpec,
        UpdateSpec,
        _ReadSpec,
    )

logger = logging.getLogger("cqrs_ddd.capabilities.builders")

# ---------------------------------------------------------------------------
# Lookup tables
# ---------------------------------------------------------------------------

_LOCK_MODES: dict[str, dict[str, bool]] = {
    "update": {},
    "no_key_update": {"key_share": True},
    "share": {"read": True},
    "key_share": {"read": True, "key_share": True},
}

_SET_OPERATIONS: dict[str, Any] = {
    "union": union,
    "union_all": union_all,
    "intersect": intersect,
    "intersect_all": intersect_all,
    "except": except_,
    "except_all": except_all,
}

_CAST_TYPES: dict[str, Any] = {
    "text": Text,
    "varchar": Text,
    "integer": Integer,
    "int": Integer,
    "bigint": BigInteger,
    "float": Float,
    "real": Float,
    "double": Float,
    "numeric": Numeric,
    "decimal": Numeric,
    "boolean": Boolean,
    "bool": Boolean,
    "date": Date,
    "timestamp": DateTime,
    "time": Time,
}

_UNARY_FUNCS: dict[str, Any] = {
    "upper": func.upper,
    "lower": func.lower,
    "length": func.length,
    "trim": func.trim,
    "ltrim": func.ltrim,
    "rtrim": func.rtrim,
    "abs": func.abs,
    "ceil": func.ceil,
    "floor": func.floor,
    "round": func.round,
    "sqrt": func.sqrt,
}

_NILADIC_FUNCS: dict[str, Any] = {
    "now": func.now,
    "current_date": func.current_date,
    "current_time": func.current_time,
    "current_timestamp": func.current_timestamp,
}

_AGGREGATE_FUNCS: dict[str, Any] = {
    "count": func.count,
    "sum": func.sum,
    "avg": func.avg,
    "min": func.min,
    "max": func.max,
}

_CONFLICT_DIALECTS: dict[str, Any] = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}

#: Dialects that cannot parse `(SELECT ... UNION SELECT ...) INTERSECT ...`.
_FLAT_COMPOUND_DIALECTS = frozenset({"sqlite"})


def default_dialect() -> Dialect:
    return postgresql.dialect()  # type: ignore[no-any-return]


def apply_for_locking(stmt: Select[Any], mode: str | None) -> Select[Any]:
    """
    Apply a row-locking mode.

    ``""``/``None`` means no locking; anything outside
    ``update``, ``no_key_update``, ``share``, ``key_share`` raises
    ``InvalidLockModeError``.
    """
    if not mode:
        return stmt
    kwargs = _LOCK_MODES.get(mode.strip().lower())
    if kwargs is None:
        raise InvalidLockModeError(mode)
    return stmt.with_for_update(**kwargs)


class SpecCompiler:
    """
    Compile operation specs into SQLAlchemy statements for one table.

    Args:
        model: A ``Table`` or declarative class.
        metadata: Column metadata; introspected from *model* when omitted.
        registry: Operator registry used for every comparison.
        max_depth: Maximum condition-group nesting (``0`` disables).
        dialect: Dialect consulted for ON CONFLICT support.
    """

    def __init__(
        self,
        model: Any,
        metadata: ModelMetadata | None = None,
        *,
        registry: ConditionOperatorRegistry | None = None,
        max_depth: int = DEFAULT_MAX_CONDITION_DEPTH,
        dialect: Dialect | None = None,
    ) -> None:
        self.table = resolve_table(model)
        self.metadata = metadata or ModelMetadata.from_model(self.table)
        self.registry = registry
        self.max_depth = max_depth
        self.dialect = dialect or default_dialect()

    def with_max_depth(self, max_depth: int) -> SpecCompiler:
        """A copy of this compiler with a different nesting limit."""
        return SpecCompiler(
            self.table,
            self.metadata,
            registry=self.registry,
            max_depth=max_depth,
            dialect=self.dialect,
        )

    def translator(
        self, values: Mapping[str, Any] | None = None
    ) -> ConditionTranslator:
        return ConditionTranslator(
            self.table,
            self.metadata,
            registry=self.registry,
            max_depth=self.max_depth,
            values=values,
        )

    # -----------------------------------------------------------------------
    # Read statements
    # -----------------------------------------------------------------------

    def query_from_spec(
        self, spec: _ReadSpec, params: Mapping[str, Any] | None = None
    ) -> Select[Any]:
        """
        Build a multi-row SELECT. Raises on an invalid lock mode.

        When the execution *params* are given, a parameterized LIMIT or
        OFFSET whose parameter is absent is left out of the statement.
        """
        tr = self.translator()
        stmt = select(*self._projection(spec, tr)).select_from(self.table)

        where = tr.translate(spec.where, path="where")
        if where is not None:
            stmt = stmt.where(where)

        if spec.order_by:
            stmt = stmt.order_by(
                *(self._order_clause(ob, tr) for ob in spec.order_by)
            )

        if spec.group_by:
            stmt = stmt.group_by(*(tr.column(f) for f in spec.group_by))

        having = tr.translate(spec.having, path="having")
        if having is not None:
            stmt = stmt.having(having)
        for agg in spec.having_agg:
            stmt = stmt.having(self._having_agg_clause(agg, tr))

        if spec.limit is not None:
            stmt = stmt.limit(spec.limit)
        elif spec.limit_param and _supplied(spec.limit_param, params):
            stmt = stmt.limit(
                bindparam(spec.limit_param, type_=Integer, required=False)
            )

        if spec.offset is not None:
            stmt = stmt.offset(spec.offset)
        elif spec.offset_param and _supplied(spec.offset_param, params):
            stmt = stmt.offset(
                bindparam(spec.offset_param, type_=Integer, required=False)
            )

        if spec.distinct_on:
            stmt = stmt.distinct(*(tr.column(f) for f in spec.distinct_on))
        elif spec.distinct:
            stmt = stmt.distinct()

        return apply_for_locking(stmt, spec.for_locking)

    def select_from_spec(
        self, spec: _ReadSpec, params: Mapping[str, Any] | None = None
    ) -> Select[Any]:
        """Build a single-row SELECT; same shape as a query."""
        return self.query_from_spec(spec, params)

    def _projection(
        self, spec: _ReadSpec, tr: ConditionTranslator
    ) -> list[Any]:
        columns: list[Any] = [tr.column(f) for f in spec.fields]
        columns.extend(self.select_expression(e, tr) for e in spec.select_exprs)
        if not columns:
            return [self.table]
        return columns

    def _order_clause(self, ob: OrderBySpec, tr: ConditionTranslator) -> Any:
        expr: Any = tr.column(ob.field)
        if ob.is_expression:
            expr = tr.registry.apply(str(ob.operator), expr, tr.bind(str(ob.param)))
        return _directed(expr, ob.direction, ob.nulls)

    def _having_agg_clause(
        self, agg: HavingAggSpec, tr: ConditionTranslator
    ) -> ColumnElement[bool]:
        name = agg.func.strip().lower()
        if name == "count" and not agg.field:
            target: Any = func.count()
        elif name == "count_distinct":
            column = tr.column(self._need_field(agg.field, name))
            target = func.count(distinct(column))
        elif name in _AGGREGATE_FUNCS:
            column = tr.column(self._need_field(agg.field, name))
            target = _AGGREGATE_FUNCS[name](column)
        else:
            raise ValidationError(
                f"invalid HAVING aggregate function {agg.func!r}: must be one of "
                "count, count_distinct, sum, avg, min, max",
                path="having_agg",
            )
        return tr.registry.apply(agg.operator, target, tr.bind(agg.param))

    @staticmethod
    def _need_field(field: str | None, func_name: str) -> str:
        if not field:
            raise ValidationError(f"{func_name} requires a field", path="field")
        return field

    # -----------------------------------------------------------------------
    # Select expressions
    # -----------------------------------------------------------------------

    def select_expression(
        self, expr: SelectExprSpec, tr: ConditionTranslator | None = None
    ) -> Any:
        """Compile one computed column, labelled with its alias."""
        tr = tr or self.translator()
        name = expr.func.strip().lower()

        if name in _UNARY_FUNCS:
            value: Any = _UNARY_FUNCS[name](tr.column(self._expr_field(expr)))
        elif name in _NILADIC_FUNCS:
            value = _NILADIC_FUNCS[name]()
        elif name == "substring":
            args = [tr.bind(p) for p in expr.params]
            value = func.substr(tr.column(self._expr_field(expr)), *args)
        elif name == "replace":
            if len(expr.params) != 2:
                raise SelectExpressionError(
                    "replace requires search and replacement params",
                    path="select_exprs",
                )
            value = func.replace(
                tr.column(self._expr_field(expr)),
                tr.bind(expr.params[0]),
                tr.bind(expr.params[1]),
            )
        elif name == "concat":
            if not expr.fields:
                raise SelectExpressionError(
                    "concat requires fields", path="select_exprs"
                )
            value = func.concat(*(tr.column(f) for f in expr.fields))
        elif name == "power":
            if len(expr.params) != 1:
                raise SelectExpressionError(
                    "power requires one exponent param", path="select_exprs"
                )
            value = func.power(
                tr.column(self._expr_field(expr)), tr.bind(expr.params[0])
            )
        elif name == "cast":
            target = _CAST_TYPES.get((expr.cast_type or "").strip().lower())
            if target is None:
                raise SelectExpressionError(
                    f"invalid cast type {expr.cast_type!r}: must be one of "
                    f"{', '.join(sorted(_CAST_TYPES))}",
                    path="select_exprs.cast_type",
                )
            value = cast(tr.column(self._expr_field(expr)), target)
        elif name in ("coalesce", "nullif"):
            args = [tr.column(expr.field)] if expr.field else []
            args.extend(tr.bind(p) for p in expr.params)
            if name == "nullif" and len(args) != 2:
                raise SelectExpressionError(
                    "nullif requires exactly two arguments", path="select_exprs"
                )
            if name == "coalesce" and not args:
                raise SelectExpressionError(
                    "coalesce requires at least one argument", path="select_exprs"
                )
            value = getattr(func, name)(*args)
        else:
            value = self._aggregate_expression(name, expr, tr)

        return value.label(expr.alias)

    def _aggregate_expression(
        self, name: str, expr: SelectExprSpec, tr: ConditionTranslator
    ) -> Any:
        if name == "count_star":
            value: Any = func.count()
        elif name == "count_distinct":
            value = func.count(distinct(tr.column(self._expr_field(expr))))
        elif name in _AGGREGATE_FUNCS:
            value = _AGGREGATE_FUNCS[name](tr.column(self._expr_field(expr)))
        else:
            raise SelectExpressionError(
                f"unknown select expression function {expr.func!r}",
                path="select_exprs.func",
            )
        if expr.filter is not None:
            clause = tr.translate((expr.filter,), path="select_exprs.filter")
            if clause is not None:
                value = value.filter(clause)
        return value

    @staticmethod
    def _expr_field(expr: SelectExprSpec) -> str:
        if not expr.field:
            raise SelectExpressionError(
                f"{expr.func} requires a field", path="select_exprs.field"
            )
        return expr.field

    # -----------------------------------------------------------------------
    # Write statements
    # -----------------------------------------------------------------------

    def update_from_spec(
        self, spec: UpdateSpec, values: Mapping[str, Any] | None = None
    ) -> Update:
        """
        Build an UPDATE.

        With *values*, every bind parameter carries its value so the
        statement executes without a parameter map.
        """
        tr = self.translator(values)
        assignments = {tr.column(f): tr.bind(p) for f, p in spec.set.items()}
        stmt = update(self.table).values(assignments)
        where = tr.translate(spec.where, path="where")
        if where is not None:
            stmt = stmt.where(where)
        tr.require_values()
        return stmt

    def delete_from_spec(self, spec: DeleteSpec) -> Delete:
        tr = self.translator()
        stmt = delete(self.table)
        where = tr.translate(spec.where, path="where")
        if where is not None:
            stmt = stmt.where(where)
        return stmt

    def aggregate_from_spec(
        self,
        spec: AggregateSpec,
        agg_func: AggregateFunc | str | None = AggregateFunc.COUNT,
    ) -> Select[Any]:
        """Build ``SELECT <func>(field) FROM table WHERE ...``.

        Unknown function tags build a COUNT.
        """
        resolved = resolve_aggregate_func(agg_func)
        tr = self.translator()
        if resolved is AggregateFunc.COUNT:
            target: Any = func.count()
        else:
            field = self._need_field(spec.field, resolved.value)
            target = _AGGREGATE_FUNCS[resolved.value.lower()](tr.column(field))

        stmt = select(target.label("result")).select_from(self.table)
        where = tr.translate(spec.where, path="where")
        if where is not None:
            stmt = stmt.where(where)
        return stmt

    def count_from_spec(self, spec: AggregateSpec) -> Select[Any]:
        return self.aggregate_from_spec(spec, AggregateFunc.COUNT)

    def sum_from_spec(self, spec: AggregateSpec) -> Select[Any]:
        return self.aggregate_from_spec(spec, AggregateFunc.SUM)

    def avg_from_spec(self, spec: AggregateSpec) -> Select[Any]:
        return self.aggregate_from_spec(spec, AggregateFunc.AVG)

    def min_from_spec(self, spec: AggregateSpec) -> Select[Any]:
        return self.aggregate_from_spec(spec, AggregateFunc.MIN)

    def max_from_spec(self, spec: AggregateSpec) -> Select[Any]:
        return self.aggregate_from_spec(spec, AggregateFunc.MAX)

    def insert_from_spec(
        self,
        spec: CreateSpec,
        record: Mapping[str, Any] | None = None,
        params: Mapping[str, Any] | None = None,
    ) -> Insert:
        """
        Build an INSERT, optionally with ON CONFLICT handling.

        *record* supplies the inserted column values; *params* supplies the
        values bound by ``conflict_set``.
        """
        tr = self.translator(params)
        action = (spec.conflict_action or "").strip().lower()

        if not spec.on_conflict:
            stmt: Any = insert(self.table)
        else:
            if action not in InvalidConflictActionError.VALID_ACTIONS:
                raise InvalidConflictActionError(spec.conflict_action or "")
            factory = _CONFLICT_DIALECTS.get(self.dialect.name)
            if factory is None:
                raise ValidationError(
                    f"ON CONFLICT is not supported for dialect {self.dialect.name!r}",
                    path="on_conflict",
                )
            stmt = factory(self.table)

        if record is not None:
            stmt = stmt.values(
                {
                    tr.column(k): literal(v, type_=self.table.c[k].type)
                    for k, v in record.items()
                }
            )

        if not spec.on_conflict:
            return stmt  # type: ignore[no-any-return]

        index_elements = [tr.column(c) for c in spec.on_conflict]
        if action == "nothing":
            return stmt.on_conflict_do_nothing(  # type: ignore[no-any-return]
                index_elements=index_elements
            )
        set_ = {
            tr.column(f).name: tr.bind(p) for f, p in spec.conflict_set.items()
        }
        tr.require_values(path="conflict_set")
        return stmt.on_conflict_do_update(  # type: ignore[no-any-return]
            index_elements=index_elements, set_=set_
        )

    # -----------------------------------------------------------------------
    # Compound statements
    # -----------------------------------------------------------------------

    def compound_from_spec(
        self,
        spec: CompoundQuerySpec,
        params: Mapping[str, Any] | None = None,
    ) -> CompoundSelect:
        """
        Combine the base query and operands with set operations.

        Consecutive operands sharing one operation are combined in a single
        call; a change of operation nests everything built so far. Dialects
        that reject a parenthesised compound (SQLite) get the nested part as
        a subquery in FROM instead.
        """
        if not spec.operands:
            raise CompoundQueryError("compound query requires at least one operand")

        base = self._compound_part(spec.base, "base", params)
        operations: list[str] = []
        queries: list[Select[Any]] = []
        for i, operand in enumerate(spec.operands):
            operations.append(self._set_operation(operand.operation, i))
            queries.append(self._compound_part(operand.query, i, params))

        current: Any = base
        i = 0
        while i < len(queries):
            op = operations[i]
            run = [queries[i]]
            i += 1
            while i < len(queries) and operations[i] == op:
                run.append(queries[i])
                i += 1
            if current is not base and self.dialect.name in _FLAT_COMPOUND_DIALECTS:
                nested = current.subquery()
                current = select(*nested.c).select_from(nested)
            logger.debug("Compound %s over %d operand(s)", op, len(run))
            current = _SET_OPERATIONS[op](current, *run)

        if spec.order_by:
            current = current.order_by(
                *(self._compound_order_clause(current, ob) for ob in spec.order_by)
            )
        if spec.limit is not None:
            current = current.limit(spec.limit)
        if spec.offset is not None:
            current = current.offset(spec.offset)
        return current  # type: ignore[no-any-return]

    def _compound_part(
        self,
        spec: _ReadSpec,
        index: int | str,
        params: Mapping[str, Any] | None = None,
    ) -> Select[Any]:
        try:
            return self.query_from_spec(spec, params)
        except SpecificationError as exc:
            label = "base query" if index == "base" else f"operand {index}"
            raise CompoundQueryError(f"{label}: {exc}", index=index) from exc

    @staticmethod
    def _set_operation(operation: str, index: int) -> str:
        key = operation.strip().lower()
        if key not in _SET_OPERATIONS:
            raise InvalidSetOperationError(operation, index)
        return key

    def _compound_order_clause(self, compound: Any, ob: OrderBySpec) -> Any:
        columns = compound.selected_columns
        if ob.field not in columns:
            raise FieldNotFoundError(
                ob.field, self.metadata.table_name, list(columns.keys())
            )
        return _directed(columns[ob.field], ob.direction, ob.nulls)


def _supplied(name: str, params: Mapping[str, Any] | None) -> bool:
    return params is None or params.get(name) is not None


def _directed(expr: Any, direction: str | None, nulls: str | None) -> Any:
    key = (direction or "asc").strip().lower()
    if key not in ("asc", "desc"):
        raise ValidationError(
            f"invalid order direction {direction!r}: must be asc or desc",
            path="order_by.direction",
        )
    clause = desc(expr) if key == "desc" else asc(expr)
    if not nulls:
        return clause
    placement = nulls.strip().lower()
    if placement == "first":
        return clause.nulls_first()
    if placement == "last":
        return clause.nulls_last()
    raise ValidationError(
        f"invalid nulls placement {nulls!r}: must be first or last",
        path="order_by.nulls",
    )

"""
Named, serializable SQL capabilities over SQLAlchemy Core.

Public API:
    - ``CapabilityFactory``: per-table registry of query/select/update/
      delete/aggregate capabilities with cached rendering and async
      execution
    - ``StatementExecutor`` and the ``*Statement`` handles: the same
      operations without a registry
    - ``SpecCompiler``: spec → SQLAlchemy statement compilation
    - spec models (``QuerySpec``, ``UpdateSpec``, ``CompoundQuerySpec``, ...)
      and the ``ConditionSpec`` tree variants
    - ``DEFAULT_REGISTRY`` / ``ConditionOperator``: extension points for
      custom operators
"""

from .builders import SpecCompiler, apply_for_locking
from .capability import (
    DEFAULT_AGGREGATE_FUNC,
    UNTYPED,
    AggregateCapability,
    AggregateFunc,
    CapabilityKind,
    DeleteCapability,
    FactorySpec,
    ParamSpec,
    QueryCapability,
    SelectCapability,
    UpdateCapability,
    resolve_aggregate_func,
)
from .conditions import (
    BetweenCondition,
    ConditionGroup,
    ConditionSpec,
    FieldComparison,
    NotBetweenCondition,
    NullCondition,
    SimpleCondition,
)
from .events import (
    CAPABILITY_ADDED,
    CAPABILITY_NOT_FOUND,
    CAPABILITY_REMOVED,
    EXECUTOR_CREATED,
    FACTORY_CREATED,
    CapabilityEvent,
    ListenerRegistry,
    get_listener_registry,
    set_listener_registry,
)
from .exceptions import (
    CapabilityNotFoundError,
    CompoundQueryError,
    ConditionDepthExceededError,
    FieldNotFoundError,
    InvalidConflictActionError,
    InvalidLockModeError,
    InvalidSetOperationError,
    OperatorNotFoundError,
    PrimaryKeyNotFoundError,
    SelectExpressionError,
    SpecificationError,
    ValidationError,
)
from .factory import CapabilityFactory
from .operators import (
    DEFAULT_REGISTRY,
    ConditionOperator,
    ConditionOperatorRegistry,
    build_default_registry,
)
from .params import (
    DEFAULT_MAX_CONDITION_DEPTH,
    derive_aggregate_params,
    derive_delete_params,
    derive_query_params,
    derive_select_params,
    derive_update_params,
)
from .render import RenderedStatement, render
from .schema import FieldMetadata, ModelMetadata
from .specs import (
    AggregateSpec,
    CompoundQuerySpec,
    CreateSpec,
    DeleteSpec,
    HavingAggSpec,
    OrderBySpec,
    QuerySpec,
    SelectExprSpec,
    SelectSpec,
    SetOperandSpec,
    UpdateSpec,
)
from .statement import (
    AggregateStatement,
    DeleteStatement,
    QueryStatement,
    SelectStatement,
    StatementExecutor,
    UpdateStatement,
)
from .translator import ConditionTranslator, check_condition_depth

__all__ = [
    # Factory / executor
    "CapabilityFactory",
    "StatementExecutor",
    "SpecCompiler",
    "ConditionTranslator",
    "apply_for_locking",
    "check_condition_depth",
    "render",
    "RenderedStatement",
    # Capabilities
    "CapabilityKind",
    "AggregateFunc",
    "DEFAULT_AGGREGATE_FUNC",
    "resolve_aggregate_func",
    "UNTYPED",
    "ParamSpec",
    "QueryCapability",
    "SelectCapability",
    "UpdateCapability",
    "DeleteCapability",
    "AggregateCapability",
    "FactorySpec",
    # Statements
    "QueryStatement",
    "SelectStatement",
    "UpdateStatement",
    "DeleteStatement",
    "AggregateStatement",
    # Specs
    "ConditionSpec",
    "SimpleCondition",
    "NullCondition",
    "BetweenCondition",
    "NotBetweenCondition",
    "FieldComparison",
    "ConditionGroup",
    "OrderBySpec",
    "HavingAggSpec",
    "SelectExprSpec",
    "QuerySpec",
    "SelectSpec",
    "UpdateSpec",
    "DeleteSpec",
    "AggregateSpec",
    "CreateSpec",
    "SetOperandSpec",
    "CompoundQuerySpec",
    # Params
    "DEFAULT_MAX_CONDITION_DEPTH",
    "derive_query_params",
    "derive_select_params",
    "derive_update_params",
    "derive_delete_params",
    "derive_aggregate_params",
    # Schema
    "FieldMetadata",
    "ModelMetadata",
    # Operators
    "DEFAULT_REGISTRY",
    "ConditionOperator",
    "ConditionOperatorRegistry",
    "build_default_registry",
    # Events
    "CAPABILITY_ADDED",
    "CAPABILITY_REMOVED",
    "CAPABILITY_NOT_FOUND",
    "FACTORY_CREATED",
    "EXECUTOR_CREATED",
    "CapabilityEvent",
    "ListenerRegistry",
    "get_listener_registry",
    "set_listener_registry",
    # Exceptions
    "SpecificationError",
    "ValidationError",
    "ConditionDepthExceededError",
    "InvalidLockModeError",
    "InvalidConflictActionError",
    "SelectExpressionError",
    "OperatorNotFoundError",
    "FieldNotFoundError",
    "CompoundQueryError",
    "InvalidSetOperationError",
    "CapabilityNotFoundError",
    "PrimaryKeyNotFoundError",
]

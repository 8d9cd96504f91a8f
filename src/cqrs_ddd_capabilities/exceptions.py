"""
Capability exception hierarchy with fuzzy-match suggestions.

All exceptions inherit from ``SpecificationError`` and provide
``to_dict()`` for API-friendly error responses. Messages never contain
rendered SQL or bound values, so they are safe to surface to callers.
"""

from __future__ import annotations

from difflib import get_close_matches
from typing import Any


class SpecificationError(Exception):
    """Base exception for all capability and specification errors."""

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": self.__class__.__name__,
            "message": str(self),
        }


class ValidationError(SpecificationError):
    """Specification structure validation failed."""

    def __init__(self, message: str, path: str | None = None) -> None:
        self.message = message
        self.path = path
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": "VALIDATION_ERROR",
            "message": self.message,
            "path": self.path,
        }


class ConditionDepthExceededError(ValidationError):
    """A WHERE/HAVING tree nests groups deeper than the configured maximum."""

    def __init__(self, depth: int, max_depth: int, path: str | None = None) -> None:
        self.depth = depth
        self.max_depth = max_depth
        super().__init__(
            f"maximum condition depth exceeded: depth {depth} > max {max_depth}",
            path=path,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": "CONDITION_DEPTH_EXCEEDED",
            "depth": self.depth,
            "max_depth": self.max_depth,
            "path": self.path,
        }


class InvalidLockModeError(ValidationError):
    """Unrecognized row-locking mode on a query or select spec."""

    VALID_MODES = ("update", "no_key_update", "share", "key_share")

    def __init__(self, mode: str) -> None:
        self.mode = mode
        super().__init__(
            f"invalid lock mode {mode!r}: must be one of "
            f"{', '.join(self.VALID_MODES)}",
            path="for_locking",
        )


class InvalidConflictActionError(ValidationError):
    """Missing or unrecognized ON CONFLICT action on an insert spec."""

    VALID_ACTIONS = ("nothing", "update")

    def __init__(self, action: str) -> None:
        self.action = action
        if action:
            message = (
                f"invalid conflict action {action!r}: must be one of "
                f"{', '.join(self.VALID_ACTIONS)}"
            )
        else:
            message = (
                "conflict action required when on_conflict columns specified: "
                f"must be one of {', '.join(self.VALID_ACTIONS)}"
            )
        super().__init__(message, path="conflict_action")


class SelectExpressionError(ValidationError):
    """A computed select expression names an unknown function or cast type."""


class OperatorNotFoundError(SpecificationError):
    """
    Unknown operator specified.

    Provides fuzzy-matched suggestions for likely intended operators.
    """

    def __init__(self, operator: str, valid_operators: list[str]) -> None:
        self.operator = operator
        self.valid_operators = valid_operators
        self.suggestions = get_close_matches(operator, valid_operators, n=3, cutoff=0.6)

        message = f"Unknown operator: '{operator}'."
        if self.suggestions:
            message += f" Did you mean: {', '.join(self.suggestions)}?"
        message += f" Valid operators: {', '.join(sorted(valid_operators)[:10])}..."
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": "OPERATOR_NOT_FOUND",
            "operator": self.operator,
            "suggestions": self.suggestions,
            "valid_operators": sorted(self.valid_operators),
        }


class FieldNotFoundError(SpecificationError):
    """
    Invalid field name with helpful suggestions.

    Example error message::

        Invalid field 'emial' on 'users'.
        Did you mean one of these?
          • email

        Available fields: age, email, id, name
    """

    def __init__(
        self,
        invalid_field: str,
        table_name: str,
        available_fields: list[str],
        cutoff: float = 0.6,
    ) -> None:
        self.invalid_field = invalid_field
        self.table_name = table_name
        self.available_fields = available_fields

        self.suggestions = get_close_matches(
            invalid_field, available_fields, n=5, cutoff=cutoff
        )

        message = self._build_message()
        super().__init__(message)

    def _build_message(self) -> str:
        lines = [f"Invalid field '{self.invalid_field}' on '{self.table_name}'."]
        if self.suggestions:
            lines.append("Did you mean one of these?")
            for s in self.suggestions:
                lines.append(f"  • {s}")

        sorted_fields = sorted(self.available_fields)
        preview = ", ".join(sorted_fields[:15])
        if len(sorted_fields) > 15:
            preview += ", ..."
        lines.append(f"Available fields: {preview}")
        return "\n".join(lines)

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": "FIELD_NOT_FOUND",
            "field": self.invalid_field,
            "table": self.table_name,
            "suggestions": self.suggestions,
            "available_fields": sorted(self.available_fields),
        }


class CompoundQueryError(SpecificationError):
    """Compound (set-operation) query assembly failed.

    ``index`` is the offending operand position, ``"base"`` for the base
    query, or ``None`` when the compound query as a whole is malformed.
    """

    def __init__(self, message: str, index: int | str | None = None) -> None:
        self.index = index
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": "COMPOUND_QUERY_ERROR",
            "message": str(self),
            "index": self.index,
        }


class InvalidSetOperationError(CompoundQueryError):
    """Unrecognized set-operation tag on a compound operand."""

    VALID_OPERATIONS = (
        "union",
        "union_all",
        "intersect",
        "intersect_all",
        "except",
        "except_all",
    )

    def __init__(self, operation: str, index: int) -> None:
        self.operation = operation
        super().__init__(
            f"invalid set operation {operation!r} at index {index}, must be one of: "
            f"{', '.join(self.VALID_OPERATIONS)}",
            index=index,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": "INVALID_SET_OPERATION",
            "operation": self.operation,
            "index": self.index,
            "valid_operations": list(self.VALID_OPERATIONS),
        }


class CapabilityNotFoundError(SpecificationError):
    """No capability of the requested kind is registered under that name."""

    def __init__(self, kind: str, name: str, table: str | None = None) -> None:
        self.kind = kind
        self.name = name
        self.table = table
        super().__init__(f"{kind} capability {name!r} not found")

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": "CAPABILITY_NOT_FOUND",
            "kind": self.kind,
            "name": self.name,
            "table": self.table,
        }


class PrimaryKeyNotFoundError(SpecificationError):
    """The bound table declares no primary key."""

    def __init__(self, table: str) -> None:
        self.table = table
        super().__init__(
            f"no primary key constraint found for table {table!r}: declare a "
            "primary_key column or add 'primarykey' to column.info['constraints']"
        )

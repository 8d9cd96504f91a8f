"""
Operator compilation strategy.

Provides the ``ConditionOperator`` interface and a registry keyed by the
normalised operator text (``"not   like"`` and ``"NOT LIKE"`` are the same
key). The translator resolves every operator through a registry so new
operators can be added without touching the translator.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

from ..exceptions import OperatorNotFoundError

if TYPE_CHECKING:
    from sqlalchemy import ColumnElement


def normalize_operator(operator: str) -> str:
    """Upper-case *operator* and collapse inner whitespace."""
    return " ".join(operator.split()).upper()


class ConditionOperator(ABC):
    """
    Strategy interface for compiling an operator into a SQLAlchemy
    expression.
    """

    #: Bind the right-hand parameter as an expanding (list) parameter.
    expanding: bool = False

    @property
    @abstractmethod
    def name(self) -> str:
        """The operator text this strategy handles."""
        ...

    @property
    def aliases(self) -> tuple[str, ...]:
        """Alternative spellings registered for the same strategy."""
        return ()

    @abstractmethod
    def apply(self, column: Any, value: Any) -> ColumnElement[Any]:
        """
        Build a SQLAlchemy expression.

        Args:
            column: The left-hand column.
            value: A bound parameter or, for field comparisons, a column.

        Returns:
            A SQLAlchemy expression (boolean for predicates).
        """
        ...


class ConditionOperatorRegistry:
    """Registry of ``ConditionOperator`` instances keyed by operator text."""

    def __init__(self) -> None:
        self._operators: dict[str, ConditionOperator] = {}

    def register(self, operator: ConditionOperator) -> None:
        for key in (operator.name, *operator.aliases):
            self._operators[normalize_operator(key)] = operator

    def register_all(self, *operators: ConditionOperator) -> None:
        for op in operators:
            self.register(op)

    def unregister(self, name: str) -> None:
        self._operators.pop(normalize_operator(name), None)

    def get(self, name: str) -> ConditionOperator | None:
        return self._operators.get(normalize_operator(name))

    def has(self, name: str) -> bool:
        return normalize_operator(name) in self._operators

    @property
    def supported_operators(self) -> set[str]:
        return set(self._operators.keys())

    def resolve(self, name: str) -> ConditionOperator:
        """
        Look up the operator.

        Raises:
            OperatorNotFoundError: If the operator is not registered.
        """
        op = self.get(name)
        if op is None:
            raise OperatorNotFoundError(name, sorted(self._operators))
        return op

    def apply(self, name: str, column: Any, value: Any) -> ColumnElement[Any]:
        return self.resolve(name).apply(column, value)

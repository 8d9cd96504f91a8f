"""
Operator implementations and default registry.

Usage::

    from cqrs_ddd_capabilities.operators import DEFAULT_REGISTRY

    expr = DEFAULT_REGISTRY.apply(">=", table.c.age, bindparam("min_age"))
"""

from __future__ import annotations

from .set import InOperator, NotInOperator
from .standard import ComparisonOperator, comparison_operators
from .strategy import ConditionOperator, ConditionOperatorRegistry, normalize_operator
from .string import (
    ILikeOperator,
    IRegexOperator,
    LikeOperator,
    NotILikeOperator,
    NotIRegexOperator,
    NotLikeOperator,
    NotRegexOperator,
    RegexOperator,
)
from .vector import (
    CosineDistanceOperator,
    InnerProductOperator,
    L1DistanceOperator,
    L2DistanceOperator,
)


def build_default_registry() -> ConditionOperatorRegistry:
    """Create a registry with all built-in operators."""
    registry = ConditionOperatorRegistry()
    registry.register_all(
        # Standard comparison
        *comparison_operators(),
        # Set
        InOperator(),
        NotInOperator(),
        # Pattern
        LikeOperator(),
        NotLikeOperator(),
        ILikeOperator(),
        NotILikeOperator(),
        RegexOperator(),
        IRegexOperator(),
        NotRegexOperator(),
        NotIRegexOperator(),
        # Vector distance
        L2DistanceOperator(),
        InnerProductOperator(),
        CosineDistanceOperator(),
        L1DistanceOperator(),
    )
    return registry


DEFAULT_REGISTRY: ConditionOperatorRegistry = build_default_registry()

__all__ = [
    "DEFAULT_REGISTRY",
    "ComparisonOperator",
    "ConditionOperator",
    "ConditionOperatorRegistry",
    "build_default_registry",
    "normalize_operator",
]

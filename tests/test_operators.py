from __future__ import annotations

from typing import Any

import pytest
from sqlalchemy import bindparam
from sqlalchemy.dialects import postgresql

from cqrs_ddd_capabilities import (
    ConditionOperator,
    OperatorNotFoundError,
    build_default_registry,
)
from cqrs_ddd_capabilities.operators import ComparisonOperator, normalize_operator


def _pg(expr: Any) -> str:
    return str(expr.compile(dialect=postgresql.dialect()))


@pytest.fixture
def registry():
    return build_default_registry()


@pytest.mark.parametrize(
    ("operator", "expected"),
    [
        ("=", "users.age = %(v)s"),
        ("!=", "users.age != %(v)s"),
        ("<>", "users.age != %(v)s"),
        (">", "users.age > %(v)s"),
        (">=", "users.age >= %(v)s"),
        ("<", "users.age < %(v)s"),
        ("<=", "users.age <= %(v)s"),
    ],
)
def test_comparison_operators(registry, users, operator, expected):
    assert _pg(registry.apply(operator, users.c.age, bindparam("v"))) == expected


def test_not_equal_alias_shares_one_strategy(registry):
    ne = registry.resolve("!=")
    assert isinstance(ne, ComparisonOperator)
    assert registry.resolve("<>") is ne
    assert ne.aliases == ("<>",)
    assert repr(ne) == "ComparisonOperator('!=')"


def test_comparison_between_columns(users):
    gt = ComparisonOperator(">", lambda a, b: a > b)
    assert _pg(gt.apply(users.c.age, users.c.score)) == "users.age > users.score"


@pytest.mark.parametrize(
    ("operator", "expected"),
    [
        ("LIKE", "users.name LIKE %(v)s"),
        ("not like", "users.name NOT LIKE %(v)s"),
        ("ILIKE", "users.name ILIKE %(v)s"),
        ("NOT  ILIKE", "users.name NOT ILIKE %(v)s"),
        ("~", "users.name ~ %(v)s"),
        ("~*", "users.name ~* %(v)s"),
        ("!~", "users.name !~ %(v)s"),
        ("!~*", "users.name !~* %(v)s"),
    ],
)
def test_pattern_operators(registry, users, operator, expected):
    assert _pg(registry.apply(operator, users.c.name, bindparam("v"))) == expected


def test_in_operators_expand(registry, users):
    assert registry.resolve("IN").expanding
    assert registry.resolve("not in").expanding

    expr = registry.apply("IN", users.c.status, bindparam("statuses", expanding=True))
    assert "users.status IN (__[POSTCOMPILE_statuses])" in _pg(expr)


@pytest.mark.parametrize("symbol", ["<->", "<#>", "<=>", "<+>"])
def test_vector_distance_operators(registry, users, symbol):
    expr = registry.apply(symbol, users.c.score, bindparam("q"))
    assert _pg(expr) == f"users.score {symbol} %(q)s"


def test_normalize_operator():
    assert normalize_operator("  not   like ") == "NOT LIKE"
    assert normalize_operator("ilike") == "ILIKE"


def test_unknown_operator_suggests_close_matches(registry):
    with pytest.raises(OperatorNotFoundError) as exc_info:
        registry.resolve("LIKEE")

    assert "LIKE" in exc_info.value.suggestions
    assert exc_info.value.to_dict()["error"] == "OPERATOR_NOT_FOUND"


def test_custom_operator_registration(registry, users):
    class MatchOperator(ConditionOperator):
        @property
        def name(self) -> str:
            return "@@"

        def apply(self, column: Any, value: Any) -> Any:
            return column.op("@@")(value)

    assert not registry.has("@@")
    registry.register(MatchOperator())

    assert registry.has("@@")
    assert "@@" in registry.supported_operators
    assert _pg(registry.apply("@@", users.c.name, bindparam("v"))) == (
        "users.name @@ %(v)s"
    )

    registry.unregister("@@")
    assert registry.get("@@") is None

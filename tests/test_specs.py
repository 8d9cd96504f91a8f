from __future__ import annotations

import pytest
from pydantic import ValidationError

from cqrs_ddd_capabilities import (
    CompoundQuerySpec,
    CreateSpec,
    OrderBySpec,
    QuerySpec,
    UpdateSpec,
)


def test_query_spec_from_json():
    spec = QuerySpec.model_validate_json(
        """
        {
          "fields": ["id", "email"],
          "where": [{"field": "age", "operator": ">=", "param": "min_age"}],
          "order_by": [{"field": "name", "direction": "desc", "nulls": "last"}],
          "limit_param": "page_size",
          "for_locking": "share"
        }
        """
    )

    assert spec.fields == ("id", "email")
    assert spec.order_by[0].has_nulls
    assert spec.limit_param == "page_size"
    assert spec.for_locking == "share"


def test_limit_and_limit_param_are_exclusive():
    with pytest.raises(ValidationError, match="mutually exclusive"):
        QuerySpec(limit=10, limit_param="page_size")


def test_offset_and_offset_param_are_exclusive():
    with pytest.raises(ValidationError, match="mutually exclusive"):
        QuerySpec(offset=10, offset_param="skip")


def test_negative_limit_rejected():
    with pytest.raises(ValidationError):
        QuerySpec(limit=-1)


def test_order_by_expression_detection():
    assert OrderBySpec(field="embedding", operator="<->", param="q").is_expression
    assert not OrderBySpec(field="embedding", operator="<->").is_expression
    assert not OrderBySpec(field="name").has_nulls


def test_to_dict_omits_unset_optionals():
    data = QuerySpec(fields=("id",)).to_dict()

    assert data["fields"] == ["id"]
    assert "limit" not in data
    assert "for_locking" not in data


def test_update_spec_preserves_set_order():
    spec = UpdateSpec.model_validate(
        {"set": {"name": "new_name", "status": "new_status"}}
    )
    assert list(spec.set) == ["name", "status"]


def test_create_spec_defaults():
    spec = CreateSpec()
    assert spec.on_conflict == ()
    assert spec.conflict_action is None
    assert spec.conflict_set == {}


def test_compound_spec_parses_operands():
    spec = CompoundQuerySpec.model_validate(
        {
            "base": {"where": [{"field": "status", "operator": "=", "param": "a"}]},
            "operands": [
                {
                    "operation": "union",
                    "query": {
                        "where": [{"field": "status", "operator": "=", "param": "b"}]
                    },
                }
            ],
            "limit": 5,
        }
    )

    assert spec.operands[0].operation == "union"
    assert spec.limit == 5

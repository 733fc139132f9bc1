"""Tests for the condition evaluator."""

from __future__ import annotations

import pytest

from ability_pipelines.conditions import compare, evaluate_condition
from ability_pipelines.context import PipelineContext
from ability_pipelines.errors import ConditionError, ConfigurationError


class CountingContext(PipelineContext):
    """Counts resolve() calls so short-circuiting can be observed."""

    def __init__(self, initial=None):
        super().__init__(initial)
        self.resolved: list[object] = []

    def resolve(self, reference):
        self.resolved.append(reference)
        return super().resolve(reference)


# ── compare ──────────────────────────────────────────────────────


@pytest.mark.parametrize(
    "left, operator, right, expected",
    [
        ("a", "equals", "a", True),
        ("a", "==", "b", False),
        (1, "===", 1, True),
        (1, "equals", "1", False),
        (1, "equals", True, False),
        (1, "not_equals", "1", True),
        (5, ">", 3, True),
        (5, "less_than", 3, False),
        (3, ">=", 3, True),
        (2, "<=", 1, False),
        ("hello world", "contains", "world", True),
        ("hello", "starts_with", "he", True),
        ("hello", "ends_with", "x", False),
        (["a"], "contains", "a", False),
        ("b", "in", ["a", "b"], True),
        ("c", "not_in", ["a", "b"], True),
        ("a", "in", "abc", False),
        ("", "empty", None, True),
        ([], "empty", None, True),
        ([0], "not_empty", None, True),
        (None, "null", None, True),
        (0, "not_null", None, True),
    ],
)
def test_compare(left, operator, right, expected):
    assert compare(left, operator, right) is expected


def test_ordering_incomparable_types_raises():
    with pytest.raises(ConditionError):
        compare("a", ">", 1)


def test_unknown_operator_raises():
    with pytest.raises(ConfigurationError, match="Unknown operator: resembles"):
        compare(1, "resembles", 1)


# ── evaluate_condition ───────────────────────────────────────────


def test_leaf_resolves_field_and_value():
    ctx = PipelineContext({"post": {"status": "draft"}, "wanted": "draft"})
    condition = {"field": "$post.status", "operator": "equals", "value": "$wanted"}
    assert evaluate_condition(condition, ctx) is True


def test_missing_operator_defaults_to_equals():
    ctx = PipelineContext({"n": 3})
    assert evaluate_condition({"field": "$n", "value": 3}, ctx) is True


def test_and_short_circuits():
    ctx = CountingContext({"a": 1})
    condition = {
        "operator": "and",
        "conditions": [
            {"field": "$a", "operator": "equals", "value": 2},
            {"field": "$unbound", "operator": "equals", "value": 1},
        ],
    }
    assert evaluate_condition(condition, ctx) is False
    assert "$unbound" not in ctx.resolved


def test_or_short_circuits():
    ctx = CountingContext({"a": 1})
    condition = {
        "operator": "or",
        "conditions": [
            {"field": "$a", "operator": "equals", "value": 1},
            {"field": "$unbound", "operator": "equals", "value": 1},
        ],
    }
    assert evaluate_condition(condition, ctx) is True
    assert "$unbound" not in ctx.resolved


def test_nested_composites():
    ctx = PipelineContext({"n": 5, "s": "draft"})
    condition = {
        "operator": "and",
        "conditions": [
            {"field": "$n", "operator": ">", "value": 1},
            {
                "operator": "or",
                "conditions": [
                    {"field": "$s", "operator": "equals", "value": "publish"},
                    {"field": "$s", "operator": "in", "value": ["draft", "pending"]},
                ],
            },
        ],
    }
    assert evaluate_condition(condition, ctx) is True


def test_empty_and_is_true_empty_or_is_false():
    ctx = PipelineContext()
    assert evaluate_condition({"operator": "and", "conditions": []}, ctx) is True
    assert evaluate_condition({"operator": "or", "conditions": []}, ctx) is False


def test_composite_without_conditions_list_raises():
    with pytest.raises(ConfigurationError, match="conditions"):
        evaluate_condition({"operator": "and"}, PipelineContext())


def test_leaf_without_field_raises():
    with pytest.raises(ConfigurationError, match="field"):
        evaluate_condition({"operator": "equals", "value": 1}, PipelineContext())


def test_non_mapping_condition_raises():
    with pytest.raises(ConfigurationError, match="mapping"):
        evaluate_condition(["field"], PipelineContext())

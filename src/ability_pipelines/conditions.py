"""Condition evaluation for conditional steps and filter transformations.

A condition is either a leaf ``{"field", "operator", "value"}`` or a
composite ``{"operator": "and"|"or", "conditions": [...]}``. Composites
short-circuit: sub-conditions after the deciding one are never evaluated,
so their ``$`` references are never resolved.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from ability_pipelines.context import PipelineContext
from ability_pipelines.errors import ConditionError, ConfigurationError

OPERATORS: dict[str, list[str]] = {
    "equality": ["equals", "==", "===", "not_equals", "!=", "!=="],
    "numeric": [
        "greater_than", ">", "less_than", "<",
        "greater_than_or_equal", ">=", "less_than_or_equal", "<=",
    ],
    "string": ["contains", "starts_with", "ends_with"],
    "membership": ["in", "not_in"],
    "state": ["empty", "not_empty", "null", "not_null"],
    "logical": ["and", "or"],
}

LOGICAL_OPERATORS = frozenset(OPERATORS["logical"])
LEAF_OPERATORS = frozenset(
    op for group, ops in OPERATORS.items() if group != "logical" for op in ops
)


def _strict_equals(left: Any, right: Any) -> bool:
    # 1 == True and 1 == 1.0 in Python; neither counts as equal here.
    return type(left) is type(right) and left == right


def _ordered(left: Any, right: Any, operator: str) -> bool:
    try:
        if operator in ("greater_than", ">"):
            return left > right
        if operator in ("less_than", "<"):
            return left < right
        if operator in ("greater_than_or_equal", ">="):
            return left >= right
        return left <= right
    except TypeError:
        raise ConditionError(
            f"Cannot compare {type(left).__name__} with {type(right).__name__} "
            f"using '{operator}'"
        ) from None


def compare(left: Any, operator: str, right: Any) -> bool:
    """Apply a leaf operator to already-resolved operands."""
    if operator in ("equals", "==", "==="):
        return _strict_equals(left, right)
    if operator in ("not_equals", "!=", "!=="):
        return not _strict_equals(left, right)
    if operator in ("greater_than", ">", "less_than", "<",
                    "greater_than_or_equal", ">=", "less_than_or_equal", "<="):
        return _ordered(left, right, operator)
    if operator == "contains":
        return isinstance(left, str) and isinstance(right, str) and right in left
    if operator == "starts_with":
        return isinstance(left, str) and isinstance(right, str) and left.startswith(right)
    if operator == "ends_with":
        return isinstance(left, str) and isinstance(right, str) and left.endswith(right)
    if operator == "in":
        return isinstance(right, (list, tuple)) and any(_strict_equals(left, v) for v in right)
    if operator == "not_in":
        return isinstance(right, (list, tuple)) and not any(_strict_equals(left, v) for v in right)
    if operator == "empty":
        return not left
    if operator == "not_empty":
        return bool(left)
    if operator == "null":
        return left is None
    if operator == "not_null":
        return left is not None
    raise ConfigurationError(f"Unknown operator: {operator}")


def evaluate_condition(condition: Any, context: PipelineContext) -> bool:
    """Evaluate a condition tree against the context.

    Raises:
        ConfigurationError: Unknown operator, leaf without ``field``, or
            composite without a ``conditions`` list.
        ConditionError: Ordering operator applied to incomparable values.
    """
    if not isinstance(condition, Mapping):
        raise ConfigurationError(
            f"Condition must be a mapping, got {type(condition).__name__}"
        )

    operator = condition.get("operator", "equals")

    if operator in LOGICAL_OPERATORS:
        subconditions = condition.get("conditions")
        if not isinstance(subconditions, list):
            raise ConfigurationError(
                f"'{operator}' operator requires a \"conditions\" list"
            )
        if operator == "and":
            return all(evaluate_condition(c, context) for c in subconditions)
        return any(evaluate_condition(c, context) for c in subconditions)

    if operator not in LEAF_OPERATORS:
        raise ConfigurationError(f"Unknown operator: {operator}")
    if "field" not in condition:
        raise ConfigurationError(f"Condition with operator '{operator}' requires \"field\"")

    field = context.resolve_value(condition["field"])
    value = context.resolve_value(condition.get("value"))
    return compare(field, operator, value)

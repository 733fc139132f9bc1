"""Transformation registry: named, pure data-shaping operations.

Every operation has the signature ``fn(data, params) -> value`` and is
looked up by name from a transform step. Operations raise
TransformationError when their input or params are the wrong shape.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import Any

import jinja2

from ability_pipelines.conditions import compare
from ability_pipelines.errors import ConfigurationError, TransformationError
from ability_pipelines.expressions import evaluate as evaluate_expression
from ability_pipelines.templates import render_template

TransformFn = Callable[[Any, Mapping[str, Any]], Any]

CATEGORIES: dict[str, tuple[str, ...]] = {
    "array_operations": (
        "filter", "map", "pluck", "unique", "sort", "reverse",
        "slice", "chunk", "flatten", "merge",
    ),
    "aggregations": ("count", "sum", "average", "min", "max"),
    "string_operations": ("join", "split", "trim", "uppercase", "lowercase"),
    "expressions": ("identity", "jsonata", "template"),
}


class TransformationRegistry:
    """Lookup from operation name to transformation function."""

    def __init__(self) -> None:
        self._operations: dict[str, TransformFn] = {}

    def register(self, name: str, fn: TransformFn) -> None:
        self._operations[name] = fn

    def has(self, name: str) -> bool:
        return name in self._operations

    def __contains__(self, name: object) -> bool:
        return name in self._operations

    def names(self) -> list[str]:
        return sorted(self._operations)

    def apply(self, operation: str, data: Any, params: Mapping[str, Any] | None = None) -> Any:
        """Run *operation* on *data*.

        Raises:
            ConfigurationError: If no operation is registered under that name.
            TransformationError: If the operation rejects its input or params.
        """
        fn = self._operations.get(operation)
        if fn is None:
            raise ConfigurationError(f"Unknown transformation: {operation}")
        return fn(data, params or {})


# ── Helpers ───────────────────────────────────────────────────────


def _require_list(data: Any, operation: str) -> list[Any]:
    if not isinstance(data, (list, tuple)):
        raise TransformationError(
            f"{operation} requires list input, got {type(data).__name__}"
        )
    return list(data)


def _require_str(data: Any, operation: str) -> str:
    if not isinstance(data, str):
        raise TransformationError(
            f"{operation} requires string input, got {type(data).__name__}"
        )
    return data


def get_field(item: Any, field: str, default: Any = None) -> Any:
    """Read a dotted field path (``"meta.author"``) from a mapping or object."""
    value = item
    for key in field.split("."):
        if isinstance(value, Mapping):
            if key not in value:
                return default
            value = value[key]
        elif value is not None and hasattr(value, key):
            value = getattr(value, key)
        else:
            return default
    return value


def _has_field(item: Any, field: str) -> bool:
    marker = object()
    return get_field(item, field, marker) is not marker


def _values(data: list[Any], params: Mapping[str, Any], default: Any = None) -> list[Any]:
    field = params.get("field")
    if not field:
        return data
    return [get_field(item, field, default) for item in data]


def _numbers(values: list[Any], operation: str) -> list[int | float]:
    for v in values:
        if isinstance(v, bool) or not isinstance(v, (int, float)):
            raise TransformationError(
                f"{operation} requires numeric values, got {type(v).__name__}"
            )
    return values


# ── Array operations ──────────────────────────────────────────────


def identity(data: Any, params: Mapping[str, Any]) -> Any:
    return data


def filter_items(data: Any, params: Mapping[str, Any]) -> list[Any]:
    """Keep items matching ``params.condition``; without one, drop empty items."""
    items = _require_list(data, "filter")
    condition = params.get("condition")
    if condition is None:
        return [item for item in items if item]
    if not isinstance(condition, Mapping):
        raise TransformationError("filter 'condition' must be a mapping")

    field = condition.get("field")
    operator = condition.get("operator", "equals")
    value = condition.get("value")
    return [
        item for item in items
        if compare(get_field(item, field) if field else item, operator, value)
    ]


def map_items(data: Any, params: Mapping[str, Any]) -> list[Any]:
    items = _require_list(data, "map")
    field = params.get("field")
    if not field:
        raise TransformationError("map requires \"field\" parameter")
    return [get_field(item, field) for item in items]


def pluck(data: Any, params: Mapping[str, Any]) -> list[Any]:
    """Like map, but items lacking the field are skipped rather than None."""
    items = _require_list(data, "pluck")
    field = params.get("field")
    if not field:
        raise TransformationError("pluck requires \"field\" parameter")
    return [get_field(item, field) for item in items if _has_field(item, field)]


def unique(data: Any, params: Mapping[str, Any]) -> list[Any]:
    # Items may be unhashable dicts, so dedupe by equality.
    result: list[Any] = []
    for item in _require_list(data, "unique"):
        if item not in result:
            result.append(item)
    return result


def sort_items(data: Any, params: Mapping[str, Any]) -> list[Any]:
    items = _require_list(data, "sort")
    field = params.get("field")
    reverse = params.get("direction", "asc") == "desc"

    def key(item: Any) -> tuple[bool, Any]:
        value = get_field(item, field) if field else item
        return (value is None, value)

    try:
        return sorted(items, key=key, reverse=reverse)
    except TypeError as e:
        raise TransformationError(f"sort could not order items: {e}") from e


def reverse_items(data: Any, params: Mapping[str, Any]) -> list[Any]:
    return list(reversed(_require_list(data, "reverse")))


def slice_items(data: Any, params: Mapping[str, Any]) -> list[Any]:
    items = _require_list(data, "slice")
    offset = int(params.get("offset", 0))
    length = params.get("length")
    if length is None:
        return items[offset:]
    length = int(length)
    start = offset if offset >= 0 else max(len(items) + offset, 0)
    if length < 0:
        return items[start:length]
    return items[start:start + length]


def chunk_items(data: Any, params: Mapping[str, Any]) -> list[list[Any]]:
    items = _require_list(data, "chunk")
    size = params.get("size")
    if not isinstance(size, int) or isinstance(size, bool) or size < 1:
        raise TransformationError("chunk requires positive \"size\" parameter")
    return [items[i:i + size] for i in range(0, len(items), size)]


def _flatten(items: list[Any], depth: int | None, current: int = 0) -> list[Any]:
    result: list[Any] = []
    for value in items:
        if isinstance(value, (list, tuple)) and (depth is None or current < depth):
            result.extend(_flatten(list(value), depth, current + 1))
        else:
            result.append(value)
    return result


def flatten(data: Any, params: Mapping[str, Any]) -> list[Any]:
    return _flatten(_require_list(data, "flatten"), params.get("depth"))


def merge(data: Any, params: Mapping[str, Any]) -> Any:
    other = params.get("with", [])
    if isinstance(data, Mapping):
        if not isinstance(other, Mapping):
            raise TransformationError("merge of a mapping requires \"with\" to be a mapping")
        return {**data, **other}
    items = _require_list(data, "merge")
    if not isinstance(other, (list, tuple)):
        raise TransformationError("merge requires \"with\" parameter as a list")
    return items + list(other)


# ── Aggregations ──────────────────────────────────────────────────


def count(data: Any, params: Mapping[str, Any]) -> int:
    if isinstance(data, (list, tuple, Mapping)):
        return len(data)
    return 0


def sum_values(data: Any, params: Mapping[str, Any]) -> int | float:
    items = _require_list(data, "sum")
    return sum(_numbers(_values(items, params, default=0), "sum"))


def average(data: Any, params: Mapping[str, Any]) -> float:
    if not isinstance(data, (list, tuple)) or not data:
        return 0.0
    return sum_values(data, params) / len(data)


def _extreme(data: Any, params: Mapping[str, Any], pick: Callable[..., Any], name: str) -> Any:
    if not isinstance(data, (list, tuple)) or not data:
        return None
    values = [v for v in _values(list(data), params) if v is not None]
    if not values:
        return None
    try:
        return pick(values)
    except TypeError as e:
        raise TransformationError(f"{name} could not compare values: {e}") from e


def min_value(data: Any, params: Mapping[str, Any]) -> Any:
    return _extreme(data, params, min, "min")


def max_value(data: Any, params: Mapping[str, Any]) -> Any:
    return _extreme(data, params, max, "max")


# ── String operations ─────────────────────────────────────────────


def join(data: Any, params: Mapping[str, Any]) -> str:
    items = _require_list(data, "join")
    separator = params.get("separator", ", ")
    return separator.join("" if v is None else str(v) for v in items)


def split(data: Any, params: Mapping[str, Any]) -> list[str]:
    return _require_str(data, "split").split(params.get("separator", ","))


def trim(data: Any, params: Mapping[str, Any]) -> str:
    return _require_str(data, "trim").strip()


def uppercase(data: Any, params: Mapping[str, Any]) -> str:
    return _require_str(data, "uppercase").upper()


def lowercase(data: Any, params: Mapping[str, Any]) -> str:
    return _require_str(data, "lowercase").lower()


# ── Expressions ───────────────────────────────────────────────────


def jsonata_expression(data: Any, params: Mapping[str, Any]) -> Any:
    """Evaluate ``params.expression`` with the input as the JSONata root."""
    expression = params.get("expression")
    if not isinstance(expression, str) or not expression:
        raise TransformationError("jsonata requires \"expression\" parameter")
    return evaluate_expression(expression, data)


def template(data: Any, params: Mapping[str, Any]) -> str:
    """Render ``params.template`` with the input bound to ``args``."""
    source = params.get("template")
    if not isinstance(source, str):
        raise TransformationError("template requires \"template\" parameter")
    try:
        return render_template(source, data)
    except jinja2.TemplateError as e:
        raise TransformationError(f"template failed: {e}") from e


_DEFAULTS: dict[str, TransformFn] = {
    "identity": identity,
    "filter": filter_items,
    "map": map_items,
    "pluck": pluck,
    "unique": unique,
    "sort": sort_items,
    "reverse": reverse_items,
    "slice": slice_items,
    "chunk": chunk_items,
    "flatten": flatten,
    "merge": merge,
    "count": count,
    "sum": sum_values,
    "average": average,
    "min": min_value,
    "max": max_value,
    "join": join,
    "split": split,
    "trim": trim,
    "uppercase": uppercase,
    "lowercase": lowercase,
    "jsonata": jsonata_expression,
    "template": template,
}


def default_transformations() -> TransformationRegistry:
    """Build a registry holding every built-in operation."""
    registry = TransformationRegistry()
    for name, fn in _DEFAULTS.items():
        registry.register(name, fn)
    return registry

"""JSONata expression evaluator for the ``jsonata`` transformation.

Thin wrapper over jsonata-python. Lets a transform step filter, project
and reshape its input with a single expression instead of chaining
several built-in operations.
"""

from __future__ import annotations

from typing import Any

import jsonata

from ability_pipelines.errors import ExpressionError


def compile_expression(expression: str) -> jsonata.Jsonata:
    """Parse a JSONata expression.

    Raises:
        ExpressionError: If the expression syntax is invalid.
    """
    try:
        return jsonata.Jsonata(expression)
    except Exception as e:
        raise ExpressionError(f"Invalid JSONata expression '{expression}': {e}") from e


def evaluate(expression: str, data: Any) -> Any:
    """Evaluate a JSONata expression against *data*.

    Args:
        expression: JSONata expression string (e.g. ``"$[status='publish'].title"``).
        data: Any JSON-compatible value; it becomes the expression's root.

    Returns:
        The resolved value, or None for paths that don't exist
        (JSONata's undefined).

    Raises:
        ExpressionError: If the expression is invalid or evaluation fails.
    """
    expr = compile_expression(expression)
    try:
        return expr.evaluate(data)
    except Exception as e:
        raise ExpressionError(
            f"Expression '{expression}' failed: {e}"
        ) from e

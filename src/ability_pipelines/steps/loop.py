"""loop step: run nested steps once per item of a list.

Each iteration gets its own child scope holding the item and index
variables, so anything the body binds is gone by the next iteration.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from ability_pipelines.context import PipelineContext
from ability_pipelines.errors import ConfigurationError
from ability_pipelines.models import LoopStep

if TYPE_CHECKING:
    from ability_pipelines.executor import PipelineExecutor


async def execute_loop(
    step: LoopStep,
    context: PipelineContext,
    *,
    executor: PipelineExecutor,
    path: str,
) -> list[Any]:
    """Iterate over the resolved input, executing the body for each item.

    For each item:
    1. Push a child scope with ``item_var`` and ``index_var`` bound.
    2. Execute the body steps sequentially in that scope.
    3. Collect the body's last result and pop the scope.

    The scope is popped even when the body raises; the error then stops
    the loop.

    Returns:
        List of results, one per iteration.
    """
    items = context.resolve_value(step.input)

    if not isinstance(items, (list, tuple)):
        raise ConfigurationError(
            f"Loop input must resolve to a list, got {type(items).__name__}"
        )

    results: list[Any] = []

    for index, item in enumerate(items):
        with context.scope({step.item_var: item, step.index_var: index}):
            results.append(
                await executor.execute_steps(step.steps, context, f"{path}.steps")
            )

    return results

"""transform step: apply a named transformation to resolved data."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from ability_pipelines.context import PipelineContext
from ability_pipelines.models import TransformStep

if TYPE_CHECKING:
    from ability_pipelines.executor import PipelineExecutor


async def execute_transform(
    step: TransformStep,
    context: PipelineContext,
    *,
    executor: PipelineExecutor,
    path: str,
) -> Any:
    """Resolve ``input`` and ``params``, then run the operation.

    This is the simplest step: look up the operation in the executor's
    transformation registry and hand it the data. Use it to filter,
    reshape, aggregate, or format whatever earlier steps produced.
    """
    data = context.resolve_value(step.input)
    params = context.resolve_value(step.params)
    return executor.transformations.apply(step.operation, data, params)

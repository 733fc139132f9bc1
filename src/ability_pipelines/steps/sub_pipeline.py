"""sub_pipeline step: run an inline pipeline in a child scope."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from ability_pipelines.context import PipelineContext
from ability_pipelines.models import SubPipelineStep

if TYPE_CHECKING:
    from ability_pipelines.executor import PipelineExecutor


async def execute_sub_pipeline(
    step: SubPipelineStep,
    context: PipelineContext,
    *,
    executor: PipelineExecutor,
    path: str,
) -> Any:
    """Bind ``inputs`` in a child scope and run the nested steps there.

    Input references are resolved against the caller's scopes before the
    child scope is pushed. The child can still read the caller's
    variables; nothing it binds survives the call except its return
    value, which the executor stores under this step's ``output``.
    """
    inputs = context.resolve_value(step.inputs) if step.inputs else {}

    with context.scope(inputs):
        return await executor.execute_steps(
            step.pipeline.steps, context, f"{path}.pipeline.steps"
        )

"""conditional step: run ``then`` or ``else`` based on a condition."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from ability_pipelines.conditions import evaluate_condition
from ability_pipelines.context import PipelineContext
from ability_pipelines.models import ConditionalStep

if TYPE_CHECKING:
    from ability_pipelines.executor import PipelineExecutor


async def execute_conditional(
    step: ConditionalStep,
    context: PipelineContext,
    *,
    executor: PipelineExecutor,
    path: str,
) -> Any:
    """Evaluate the condition and run the matching branch.

    Returns the last result of the branch that ran, or None when the
    chosen branch is absent.
    """
    if evaluate_condition(step.condition, context):
        if step.then is not None:
            return await executor.execute_steps(step.then, context, f"{path}.then")
    elif step.else_ is not None:
        return await executor.execute_steps(step.else_, context, f"{path}.else")
    return None

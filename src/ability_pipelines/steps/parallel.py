"""parallel step: run independent branches, collecting each outcome.

Branches run one after another in declaration order against the shared
context. A branch failure is recorded as data under the branch's key and
the remaining branches still run.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from ability_pipelines import pipeline_logger
from ability_pipelines.context import PipelineContext
from ability_pipelines.errors import StepExecutionError
from ability_pipelines.models import ParallelStep

if TYPE_CHECKING:
    from ability_pipelines.executor import PipelineExecutor


async def execute_parallel(
    step: ParallelStep,
    context: PipelineContext,
    *,
    executor: PipelineExecutor,
    path: str,
) -> dict[Any, Any]:
    """Execute every branch and return a mapping of outcomes.

    A successful branch is keyed by its own ``output`` name when it has
    one, otherwise by its list index (or mapping key). A failed branch is
    keyed positionally and holds ``{"error", "code", "step"}``.

    Limit violations are contained like any other failure; once a limit
    is hit every later branch fails the same check.
    """
    if isinstance(step.steps, dict):
        branches = [(key, config, f"{path}.steps.{key}") for key, config in step.steps.items()]
    else:
        branches = [(i, config, f"{path}.steps[{i}]") for i, config in enumerate(step.steps)]

    results: dict[Any, Any] = {}

    for key, config, branch_path in branches:
        try:
            result = await executor.execute_step(config, context, branch_path)
        except StepExecutionError as e:
            pipeline_logger.log_branch_error(branch_path, str(e))
            results[key] = {"error": str(e), "code": e.code, "step": config}
            continue

        output = config.get("output")
        results[output if isinstance(output, str) and output else key] = result

    return results

"""try_catch step: error recovery with optional catch and finally blocks.

try runs first. If it fails, the error is bound to ``error`` and catch
runs when configured. Once a catch block is configured the error counts as
handled: a failure inside catch rebinds ``error`` and is logged, but does
not propagate. finally always runs last, and its own failures are logged
and dropped so they never mask the outcome of try/catch.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from ability_pipelines import pipeline_logger
from ability_pipelines.context import PipelineContext
from ability_pipelines.errors import StepExecutionError
from ability_pipelines.models import TryCatchStep

if TYPE_CHECKING:
    from ability_pipelines.executor import PipelineExecutor


async def execute_try_catch(
    step: TryCatchStep,
    context: PipelineContext,
    *,
    executor: PipelineExecutor,
    path: str,
) -> Any:
    """Run try, then catch on failure, then finally.

    Returns:
        The last result of try, or of catch when it handled an error. None
        when catch itself failed.

    Raises:
        StepExecutionError: The try error when no catch is configured (or
            catch is empty). Raised after finally.
    """
    try:
        result, error = await _run_try_catch(step, context, executor, path)
    finally:
        await _run_finally(step, context, executor, path)

    if error is not None:
        raise error
    return result


async def _run_try_catch(
    step: TryCatchStep,
    context: PipelineContext,
    executor: PipelineExecutor,
    path: str,
) -> tuple[Any, StepExecutionError | None]:
    try:
        return await executor.execute_steps(step.try_, context, f"{path}.try"), None
    except StepExecutionError as e:
        context.set("error", e.to_dict())
        if not step.catch:
            return None, e

    try:
        return await executor.execute_steps(step.catch, context, f"{path}.catch"), None
    except StepExecutionError as e:
        context.set("error", e.to_dict())
        pipeline_logger.log_catch_error(e.path or f"{path}.catch", str(e))
        return None, None


async def _run_finally(
    step: TryCatchStep,
    context: PipelineContext,
    executor: PipelineExecutor,
    path: str,
) -> None:
    for i, config in enumerate(step.finally_ or []):
        finally_path = f"{path}.finally[{i}]"
        try:
            await executor.execute_step(config, context, finally_path)
        except StepExecutionError as e:
            pipeline_logger.log_finally_error(finally_path, str(e))

"""Pipeline executor: the main orchestrator.

Holds the step-type dispatch table, validates each step config right
before it runs, enforces resource limits, and threads a single
PipelineContext through every step. Control-flow steps receive the
executor so they can run their nested step lists through it.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Coroutine, Mapping, Sequence
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from ability_pipelines import pipeline_logger
from ability_pipelines.capabilities import CapabilityRegistry
from ability_pipelines.context import PipelineContext
from ability_pipelines.errors import (
    ConfigurationError,
    LimitExceededError,
    StepExecutionError,
)
from ability_pipelines.loader import parse_pipeline, validate_input
from ability_pipelines.models import (
    AbilityStep,
    ConditionalStep,
    ExecutionLimits,
    ExecutionStats,
    LoopStep,
    ParallelStep,
    PipelineDefinition,
    PipelineResult,
    StepConfig,
    StepResult,
    SubPipelineStep,
    TransformStep,
    TryCatchStep,
)
from ability_pipelines.steps.ability import execute_ability
from ability_pipelines.steps.conditional import execute_conditional
from ability_pipelines.steps.loop import execute_loop
from ability_pipelines.steps.parallel import execute_parallel
from ability_pipelines.steps.sub_pipeline import execute_sub_pipeline
from ability_pipelines.steps.transform import execute_transform
from ability_pipelines.steps.try_catch import execute_try_catch
from ability_pipelines.tokenizer import DataTokenizer
from ability_pipelines.transformations import TransformationRegistry, default_transformations

# Handlers are called as handler(step, context, executor=..., path=...)
StepHandler = Callable[..., Coroutine[Any, Any, Any]]

DEFAULT_STEPS: dict[str, tuple[type[StepConfig], StepHandler]] = {
    "ability": (AbilityStep, execute_ability),
    "transform": (TransformStep, execute_transform),
    "conditional": (ConditionalStep, execute_conditional),
    "loop": (LoopStep, execute_loop),
    "parallel": (ParallelStep, execute_parallel),
    "sub_pipeline": (SubPipelineStep, execute_sub_pipeline),
    "try_catch": (TryCatchStep, execute_try_catch),
}


def describe_config_errors(step_type: str, error: PydanticValidationError) -> str:
    """Turn a pydantic error into a missing/unknown/invalid key summary."""
    missing: list[str] = []
    unknown: list[str] = []
    invalid: list[str] = []

    for detail in error.errors():
        loc = ".".join(str(part) for part in detail["loc"])
        if detail["type"] == "missing" and len(detail["loc"]) == 1:
            missing.append(loc)
        elif detail["type"] == "extra_forbidden" and len(detail["loc"]) == 1:
            unknown.append(loc)
        else:
            invalid.append(f"{loc} ({detail['msg']})")

    parts: list[str] = []
    if missing:
        parts.append(f'Step type "{step_type}" missing required keys: {", ".join(missing)}')
    if unknown:
        parts.append(f'Step type "{step_type}" has unknown keys: {", ".join(unknown)}')
    if invalid:
        parts.append(f'Step type "{step_type}" has invalid values: {"; ".join(invalid)}')
    return ". ".join(parts)


class PipelineExecutor:
    """Runs pipelines against a capability and a transformation registry.

    An executor tracks per-run stats and limits, so concurrent runs should
    each use their own executor (``run_pipeline`` does this).
    """

    def __init__(
        self,
        capabilities: CapabilityRegistry | None = None,
        transformations: TransformationRegistry | None = None,
        limits: ExecutionLimits | None = None,
    ) -> None:
        self.capabilities = capabilities
        self.transformations = (
            transformations if transformations is not None else default_transformations()
        )
        self.limits = limits or ExecutionLimits()
        self._steps: dict[str, tuple[type[StepConfig], StepHandler]] = dict(DEFAULT_STEPS)
        self.reset()

    def reset(self) -> None:
        """Clear stats and restart the timeout clock."""
        self.stats = ExecutionStats()
        self._depth = 0
        self._started = time.monotonic()

    # ── Dispatch table ────────────────────────────────────────────

    def register_step(
        self, step_type: str, model: type[StepConfig], handler: StepHandler
    ) -> None:
        self._steps[step_type] = (model, handler)

    @property
    def step_types(self) -> list[str]:
        return list(self._steps)

    def step_model(self, step_type: str) -> type[StepConfig] | None:
        entry = self._steps.get(step_type)
        return entry[0] if entry else None

    def validate_step(self, config: Any) -> StepConfig:
        """Check a raw step config against its step type's model.

        Raises:
            ConfigurationError: Not a mapping, missing/unknown ``type``,
                missing required keys, unknown keys, or bad values.
        """
        if not isinstance(config, Mapping):
            raise ConfigurationError(f"Step must be a mapping, got {type(config).__name__}")

        step_type = config.get("type")
        if step_type is None:
            raise ConfigurationError('Step must have "type" field')
        if not isinstance(step_type, str) or step_type not in self._steps:
            raise ConfigurationError(f"Unknown step type: {step_type}")

        model, _ = self._steps[step_type]
        try:
            return model.model_validate(dict(config))
        except PydanticValidationError as e:
            raise ConfigurationError(describe_config_errors(step_type, e)) from e

    # ── Execution ─────────────────────────────────────────────────

    def _check_limits(self) -> None:
        if self.stats.steps_executed >= self.limits.max_steps:
            raise LimitExceededError(
                f"Pipeline exceeded maximum step count ({self.limits.max_steps})"
            )
        if self._depth >= self.limits.max_depth:
            raise LimitExceededError(
                f"Pipeline exceeded maximum depth ({self.limits.max_depth})"
            )
        elapsed = time.monotonic() - self._started
        if elapsed >= self.limits.timeout:
            raise LimitExceededError(
                f"Pipeline exceeded timeout ({self.limits.timeout:.2f} seconds)"
            )

    async def execute_step(
        self, config: Any, context: PipelineContext, path: str = "steps[0]"
    ) -> Any:
        """Validate and run one step, storing its result under ``output``.

        Errors raised by the step get its type and path attached (if an
        inner step hasn't already claimed them). Anything that isn't a
        StepExecutionError is wrapped in one.
        """
        step_type = str(config.get("type", "unknown")) if isinstance(config, Mapping) else "unknown"

        try:
            self._check_limits()
        except LimitExceededError as e:
            e.step_type, e.path = step_type, path
            self._record_error(e)
            raise

        self.stats.steps_executed += 1
        self.stats.steps_by_type[step_type] = self.stats.steps_by_type.get(step_type, 0) + 1
        pipeline_logger.log_step_start(path, step_type, self._depth)
        start = time.monotonic()

        self._depth += 1
        try:
            step = self.validate_step(config)
            _, handler = self._steps[step.type]
            result = await handler(step, context, executor=self, path=path)
        except StepExecutionError as e:
            if e.step_type is None:
                e.step_type, e.path = step_type, path
                self._record_error(e)
            raise
        except Exception as e:
            error = StepExecutionError(str(e), step_type=step_type, path=path, cause=e)
            self._record_error(error)
            raise error from e
        finally:
            self._depth -= 1

        if step.output:
            context.set(step.output, result)

        pipeline_logger.log_step_complete(path, step_type, (time.monotonic() - start) * 1000)
        return result

    async def execute_steps(
        self, configs: Sequence[Any], context: PipelineContext, path: str = "steps"
    ) -> Any:
        """Run a step list in order and return the last step's result."""
        result: Any = None
        for i, config in enumerate(configs):
            result = await self.execute_step(config, context, f"{path}[{i}]")
        return result

    def _record_error(self, error: StepExecutionError) -> None:
        self.stats.errors.append(error.to_dict())
        pipeline_logger.log_step_error(
            error.path or "", error.step_type or "unknown", error.message, error.code
        )

    async def run(
        self,
        definition: PipelineDefinition | Mapping[str, Any] | list[Any],
        initial_context: Mapping[str, Any] | None = None,
    ) -> PipelineResult:
        """Execute a pipeline definition with the given initial variables.

        1. Validates the initial context against the pipeline's ``input``
           schema, if it declares one.
        2. Creates a fresh PipelineContext holding the initial variables.
        3. Executes each top-level step in sequence.
        4. Returns the PipelineResult.

        Raises:
            PipelineLoadError: If *definition* isn't a pipeline.
            ValidationError: If the initial context doesn't match the schema.
            StepExecutionError: The first error no step contained.
        """
        definition = parse_pipeline(definition)
        initial = dict(initial_context or {})
        if definition.input is not None:
            validate_input(definition.input, initial)

        self.reset()
        context = PipelineContext(initial)
        step_results: list[StepResult] = []
        output: Any = None

        try:
            for i, config in enumerate(definition.steps):
                step_start = time.monotonic()
                output = await self.execute_step(config, context, f"steps[{i}]")
                step_results.append(
                    StepResult(
                        index=i,
                        step_type=str(config.get("type")),
                        value=output,
                        duration_ms=(time.monotonic() - step_start) * 1000,
                    )
                )
        except StepExecutionError as e:
            self._finish(success=False, error=e.to_dict())
            raise

        self._finish(success=True)
        return PipelineResult(
            success=True,
            output=output,
            context=context.get_all(),
            step_results=step_results,
            stats=self.stats.model_copy(deep=True),
        )

    def _finish(self, success: bool, error: dict[str, Any] | None = None) -> None:
        self.stats.duration_ms = (time.monotonic() - self._started) * 1000
        self.stats.success = success
        self.stats.error = error
        pipeline_logger.log_pipeline_complete(
            success, self.stats.steps_executed, self.stats.duration_ms
        )


async def run_pipeline(
    definition: PipelineDefinition | Mapping[str, Any] | list[Any],
    initial_context: Mapping[str, Any] | None = None,
    *,
    capabilities: CapabilityRegistry | None = None,
    transformations: TransformationRegistry | None = None,
    limits: ExecutionLimits | None = None,
    tokenize: bool = False,
) -> PipelineResult:
    """Run a pipeline on a fresh executor.

    With ``tokenize=True``, sensitive fields in the initial context are
    swapped for opaque tokens before the run and restored in the output
    and final context afterwards.

    Raises:
        ValidationError: If input doesn't match the pipeline's schema.
        StepExecutionError: If a step fails and nothing contains it.
    """
    executor = PipelineExecutor(capabilities, transformations, limits)
    tokenizer = DataTokenizer() if tokenize else None
    initial = dict(initial_context or {})
    if tokenizer is not None:
        initial = tokenizer.tokenize(initial)

    result = await executor.run(definition, initial)

    if tokenizer is not None:
        result.output = tokenizer.detokenize(result.output)
        result.context = tokenizer.detokenize(result.context)
        result.stats.tokens_used = tokenizer.token_count
        pipeline_logger.log_tokens_restored(tokenizer.token_count)
    return result

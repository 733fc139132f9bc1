"""Pydantic models for pipeline definitions, step configs and results.

All data structures live here. No business logic, just shapes.
Step configs forbid unknown keys so a typo is a configuration error
instead of a silently ignored setting. Nested step lists stay as raw
mappings; each nested step is validated against its own model right
before it runs.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

StepList = list[dict[str, Any]]


# ── Step configs ──────────────────────────────────────────────────


class StepConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    type: str
    output: str | None = None
    description: str | None = None


class AbilityStep(StepConfig):
    type: Literal["ability"]
    ability: str
    input: dict[str, Any] | str | None = None


class TransformStep(StepConfig):
    type: Literal["transform"]
    operation: str
    input: Any
    params: dict[str, Any] = Field(default_factory=dict)


class ConditionalStep(StepConfig):
    type: Literal["conditional"]
    condition: dict[str, Any]
    then: StepList | None = None
    else_: StepList | None = Field(None, alias="else")


class LoopStep(StepConfig):
    type: Literal["loop"]
    input: Any
    steps: StepList
    item_var: str = Field("item", alias="itemVar")
    index_var: str = Field("index", alias="indexVar")


class ParallelStep(StepConfig):
    type: Literal["parallel"]
    steps: StepList | dict[str, dict[str, Any]]


class NestedPipeline(BaseModel):
    model_config = ConfigDict(extra="forbid")

    steps: StepList = Field(default_factory=list)
    description: str | None = None


class SubPipelineStep(StepConfig):
    type: Literal["sub_pipeline"]
    pipeline: NestedPipeline
    inputs: dict[str, Any] | None = None


class TryCatchStep(StepConfig):
    type: Literal["try_catch"]
    try_: StepList = Field(alias="try")
    catch: StepList | None = None
    finally_: StepList | None = Field(None, alias="finally")


# ── Pipeline definition ──────────────────────────────────────────


class PipelineDefinition(BaseModel):
    steps: StepList
    name: str | None = None
    description: str | None = None
    # JSON Schema for the initial context variables
    input: dict[str, Any] | None = None


class ExecutionLimits(BaseModel):
    model_config = ConfigDict(extra="forbid")

    max_steps: int = Field(1000, gt=0)
    max_depth: int = Field(10, gt=0)
    timeout: float = Field(300, gt=0)


# ── Runtime results ──────────────────────────────────────────────


class ExecutionStats(BaseModel):
    steps_executed: int = 0
    steps_by_type: dict[str, int] = Field(default_factory=dict)
    errors: list[dict[str, Any]] = Field(default_factory=list)
    duration_ms: float | None = None
    success: bool | None = None
    error: dict[str, Any] | None = None
    tokens_used: int | None = None


class StepResult(BaseModel):
    index: int
    step_type: str
    value: Any
    duration_ms: float


class PipelineResult(BaseModel):
    success: bool
    output: Any
    context: dict[str, Any]
    step_results: list[StepResult]
    stats: ExecutionStats

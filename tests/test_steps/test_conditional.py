"""Tests for the conditional step."""

from __future__ import annotations

import pytest

from ability_pipelines.context import PipelineContext
from ability_pipelines.errors import ConfigurationError, VariableReferenceError


def _step(**overrides):
    step = {
        "type": "conditional",
        "condition": {"field": "$status", "operator": "equals", "value": "draft"},
        "then": [{"type": "transform", "operation": "identity", "input": "then-branch"}],
        "else": [{"type": "transform", "operation": "identity", "input": "else-branch"}],
    }
    step.update(overrides)
    return step


@pytest.mark.asyncio
async def test_then_branch(executor):
    ctx = PipelineContext({"status": "draft"})
    assert await executor.execute_step(_step(), ctx) == "then-branch"


@pytest.mark.asyncio
async def test_else_branch(executor):
    ctx = PipelineContext({"status": "publish"})
    assert await executor.execute_step(_step(), ctx) == "else-branch"


@pytest.mark.asyncio
async def test_absent_branch_returns_none(executor):
    ctx = PipelineContext({"status": "publish"})
    step = _step()
    del step["else"]
    assert await executor.execute_step(step, ctx) is None


@pytest.mark.asyncio
async def test_branch_returns_last_result(executor):
    ctx = PipelineContext({"status": "draft"})
    step = _step(then=[
        {"type": "transform", "operation": "identity", "input": [1, 2], "output": "nums"},
        {"type": "transform", "operation": "sum", "input": "$nums"},
    ])
    assert await executor.execute_step(step, ctx) == 3
    assert ctx.get("nums") == [1, 2]


@pytest.mark.asyncio
async def test_untaken_branch_is_not_validated(executor):
    ctx = PipelineContext({"status": "draft"})
    step = _step(**{"else": [{"type": "bogus"}]})
    assert await executor.execute_step(step, ctx) == "then-branch"


@pytest.mark.asyncio
async def test_nested_error_path(executor):
    ctx = PipelineContext({"status": "draft"})
    step = _step(then=[{"type": "transform", "operation": "count", "input": "$missing"}])
    with pytest.raises(VariableReferenceError) as exc_info:
        await executor.execute_step(step, ctx, "steps[2]")
    assert exc_info.value.path == "steps[2].then[0]"
    assert exc_info.value.code == "reference"


@pytest.mark.asyncio
async def test_unknown_operator(executor):
    step = _step(condition={"field": "$status", "operator": "approximately"})
    with pytest.raises(ConfigurationError, match="Unknown operator"):
        await executor.execute_step(step, PipelineContext({"status": "x"}))

"""Tests for the parallel step."""

from __future__ import annotations

import pytest

from ability_pipelines.context import PipelineContext
from ability_pipelines.executor import PipelineExecutor
from ability_pipelines.models import ExecutionLimits

FAILING = {"type": "ability", "ability": "content/get-post", "input": {"post_id": 404}}


@pytest.mark.asyncio
async def test_keys_by_output_or_index(executor):
    ctx = PipelineContext({"posts": [1, 2, 3]})
    step = {
        "type": "parallel",
        "steps": [
            {"type": "transform", "operation": "count", "input": "$posts", "output": "total"},
            {"type": "transform", "operation": "sum", "input": "$posts"},
        ],
    }
    assert await executor.execute_step(step, ctx) == {"total": 3, 1: 6}
    assert ctx.get("total") == 3


@pytest.mark.asyncio
async def test_failed_branch_is_recorded_and_others_run(executor, calls):
    step = {
        "type": "parallel",
        "steps": [
            FAILING,
            {"type": "ability", "ability": "system/echo", "input": {"x": 1}, "output": "echoed"},
        ],
    }
    result = await executor.execute_step(step, PipelineContext(), "steps[0]")
    assert result["echoed"] == {"x": 1}
    assert result[0]["code"] == "capability"
    assert "Post not found" in result[0]["error"]
    assert result[0]["step"] == FAILING
    assert [name for name, _ in calls] == ["content/get-post", "system/echo"]


@pytest.mark.asyncio
async def test_mapping_branches(executor):
    step = {
        "type": "parallel",
        "steps": {
            "upper": {"type": "transform", "operation": "uppercase", "input": "a"},
            "broken": FAILING,
        },
    }
    result = await executor.execute_step(step, PipelineContext())
    assert result["upper"] == "A"
    assert result["broken"]["code"] == "capability"


@pytest.mark.asyncio
async def test_invalid_branch_config_is_contained(executor):
    step = {"type": "parallel", "steps": [{"type": "bogus"}]}
    result = await executor.execute_step(step, PipelineContext())
    assert result[0]["code"] == "configuration"


@pytest.mark.asyncio
async def test_errors_are_counted_in_stats(executor):
    await executor.execute_step({"type": "parallel", "steps": [FAILING]}, PipelineContext())
    assert executor.stats.errors[0]["capability"] == "content/get-post"


@pytest.mark.asyncio
async def test_limit_errors_are_contained_per_branch(registry):
    executor = PipelineExecutor(registry, limits=ExecutionLimits(max_steps=2))
    step = {
        "type": "parallel",
        "steps": [{"type": "transform", "operation": "count", "input": []} for _ in range(3)],
    }
    result = await executor.execute_step(step, PipelineContext(), "steps[0]")
    assert result[0] == 0
    assert result[1]["code"] == "limit"
    assert result[2]["code"] == "limit"
    assert "maximum step count (2)" in result[1]["error"]

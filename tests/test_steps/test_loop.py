"""Tests for the loop step."""

from __future__ import annotations

import pytest

from ability_pipelines.context import PipelineContext
from ability_pipelines.errors import ConfigurationError, StepExecutionError


@pytest.mark.asyncio
async def test_collects_last_result_per_item(executor):
    ctx = PipelineContext({"words": ["a", "b"]})
    step = {
        "type": "loop",
        "input": "$words",
        "steps": [{"type": "transform", "operation": "uppercase", "input": "$item"}],
        "output": "upper",
    }
    assert await executor.execute_step(step, ctx) == ["A", "B"]
    assert ctx.get("upper") == ["A", "B"]


@pytest.mark.asyncio
async def test_custom_item_and_index_vars(executor):
    ctx = PipelineContext({"posts": [{"id": 5}, {"id": 6}]})
    step = {
        "type": "loop",
        "input": "$posts",
        "itemVar": "post",
        "indexVar": "i",
        "steps": [
            {"type": "transform", "operation": "identity", "input": {"id": "$post.id", "pos": "$i"}},
        ],
    }
    assert await executor.execute_step(step, ctx) == [{"id": 5, "pos": 0}, {"id": 6, "pos": 1}]


@pytest.mark.asyncio
async def test_bindings_do_not_leak(executor):
    ctx = PipelineContext({"nums": [1, 2]})
    step = {
        "type": "loop",
        "input": "$nums",
        "steps": [{"type": "transform", "operation": "identity", "input": "$item", "output": "inner"}],
    }
    await executor.execute_step(step, ctx)
    assert not ctx.has("item")
    assert not ctx.has("index")
    assert not ctx.has("inner")
    assert ctx.depth == 0


@pytest.mark.asyncio
async def test_empty_input(executor):
    step = {"type": "loop", "input": [], "steps": [{"type": "bogus"}]}
    assert await executor.execute_step(step, PipelineContext()) == []


@pytest.mark.asyncio
async def test_non_list_input(executor):
    step = {"type": "loop", "input": "$n", "steps": []}
    with pytest.raises(ConfigurationError, match="must resolve to a list"):
        await executor.execute_step(step, PipelineContext({"n": 3}))


@pytest.mark.asyncio
async def test_scope_popped_when_body_fails(executor):
    ctx = PipelineContext({"nums": [1, 0, 2]})
    step = {
        "type": "loop",
        "input": "$nums",
        "steps": [
            {
                "type": "conditional",
                "condition": {"field": "$item", "operator": "equals", "value": 0},
                "then": [{"type": "ability", "ability": "content/get-post", "input": {"post_id": 0}}],
            },
        ],
    }
    with pytest.raises(StepExecutionError) as exc_info:
        await executor.execute_step(step, ctx, "steps[0]")
    assert ctx.depth == 0
    assert not ctx.has("item")
    assert exc_info.value.path == "steps[0].steps[0].then[0]"

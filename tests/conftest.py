"""Shared fixtures: an in-memory content store exposed as capabilities."""

from __future__ import annotations

import logging
from typing import Any

import pytest

from ability_pipelines.capabilities import CapabilityFailure, CapabilityRegistry
from ability_pipelines.executor import PipelineExecutor

POSTS = [
    {"id": 1, "title": "Hello", "status": "publish", "author": 7, "meta": {}},
    {"id": 2, "title": "Draft one", "status": "draft", "author": 7, "meta": {}},
    {"id": 3, "title": "World", "status": "publish", "author": 9, "meta": {"analyzed": True}},
]


@pytest.fixture
def calls() -> list[tuple[str, dict[str, Any]]]:
    """Every capability call made through the ``registry`` fixture."""
    return []


@pytest.fixture
def registry(calls) -> CapabilityRegistry:
    reg = CapabilityRegistry()

    @reg.capability("content/list-posts", category="content")
    def list_posts(input_data):
        calls.append(("content/list-posts", input_data))
        status = input_data.get("status")
        posts = [dict(p) for p in POSTS if status is None or p["status"] == status]
        return posts[: input_data.get("per_page", len(posts))]

    @reg.capability("content/get-post", category="content")
    def get_post(input_data):
        calls.append(("content/get-post", input_data))
        for post in POSTS:
            if post["id"] == input_data.get("post_id"):
                return dict(post)
        return CapabilityFailure("not_found", "Post not found")

    @reg.capability("content/update-post-meta", category="content")
    async def update_post_meta(input_data):
        calls.append(("content/update-post-meta", input_data))
        return {"updated": True, "post_id": input_data["post_id"]}

    @reg.capability("system/echo", category="system")
    def echo(input_data):
        calls.append(("system/echo", input_data))
        return input_data

    return reg


@pytest.fixture
def executor(registry) -> PipelineExecutor:
    return PipelineExecutor(registry)


@pytest.fixture(autouse=True)
def _detach_log_handlers():
    """Drop file handlers added by configure_logging during a test."""
    logger = logging.getLogger("ability_pipelines")
    level = logger.level
    yield
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.setLevel(level)

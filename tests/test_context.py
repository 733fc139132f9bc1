"""Tests for PipelineContext.

Validates scope stacking, reference resolution, and that every push is
matched by a pop.
"""

from __future__ import annotations

import pytest

from ability_pipelines.context import PipelineContext, is_reference, parse_reference
from ability_pipelines.errors import VariableReferenceError


def test_initial_variables_are_visible():
    ctx = PipelineContext({"key": "value"})
    assert ctx.get("key") == "value"
    assert ctx.depth == 0


def test_set_writes_innermost_scope():
    ctx = PipelineContext({"a": 1})
    ctx.push_scope()
    ctx.set("b", 2)
    assert ctx.get("b") == 2
    ctx.pop_scope()
    assert not ctx.has("b")


def test_set_strips_sigil():
    ctx = PipelineContext()
    ctx.set("$posts", [1])
    assert ctx.get("posts") == [1]


def test_child_scope_shadows_parent():
    ctx = PipelineContext({"x": "outer"})
    with ctx.scope({"x": "inner"}):
        assert ctx.resolve("$x") == "inner"
    assert ctx.resolve("$x") == "outer"


def test_child_sees_parent_variables():
    ctx = PipelineContext({"site": "example"})
    with ctx.scope({"item": 1}):
        assert ctx.get_all() == {"site": "example", "item": 1}
        assert ctx.get_all(include_parent=False) == {"item": 1}


def test_scope_pops_on_error():
    ctx = PipelineContext()
    with pytest.raises(ValueError):
        with ctx.scope({"item": 1}):
            assert ctx.depth == 1
            raise ValueError("boom")
    assert ctx.depth == 0
    assert not ctx.has("item")


def test_cannot_pop_root_scope():
    ctx = PipelineContext()
    with pytest.raises(RuntimeError, match="root scope"):
        ctx.pop_scope()


# ── Reference resolution ─────────────────────────────────────────


def test_literals_returned_unchanged():
    ctx = PipelineContext()
    assert ctx.resolve("plain") == "plain"
    assert ctx.resolve(42) == 42
    assert ctx.resolve(None) is None


def test_resolve_nested_path():
    ctx = PipelineContext({"post": {"meta": [{"value": "x"}]}})
    assert ctx.resolve("$post.meta[0].value") == "x"
    assert ctx.resolve("$post['meta'][0]") == {"value": "x"}


def test_resolve_attribute_access():
    class Post:
        title = "Hello"

    ctx = PipelineContext({"post": Post()})
    assert ctx.resolve("$post.title") == "Hello"


def test_undefined_root_raises():
    ctx = PipelineContext()
    with pytest.raises(VariableReferenceError, match=r"Undefined variable: \$missing"):
        ctx.resolve("$missing")


def test_missing_intermediate_key_raises():
    ctx = PipelineContext({"post": {"meta": {}}})
    with pytest.raises(VariableReferenceError, match="Undefined key 'author'"):
        ctx.resolve("$post.meta.author.name")


def test_index_out_of_range_raises():
    ctx = PipelineContext({"items": [1]})
    with pytest.raises(VariableReferenceError, match="out of range"):
        ctx.resolve("$items[3]")


def test_indexing_scalar_raises():
    ctx = PipelineContext({"n": 5})
    with pytest.raises(VariableReferenceError, match="Cannot access"):
        ctx.resolve("$n.value")


def test_resolve_value_recurses():
    ctx = PipelineContext({"post": {"id": 9}, "tags": ["a"]})
    value = {"post_id": "$post.id", "list": ["$tags", 3], "flag": True}
    assert ctx.resolve_value(value) == {"post_id": 9, "list": [["a"], 3], "flag": True}


def test_jsonata_like_strings_are_literals():
    ctx = PipelineContext()
    assert ctx.resolve("$sum(items.price)") == "$sum(items.price)"
    assert ctx.resolve("$[status='publish']") == "$[status='publish']"
    assert ctx.resolve("$5.00") == "$5.00"


def test_set_then_resolve_round_trip():
    ctx = PipelineContext()
    for value in (1, "text", [1, 2], {"a": {"b": None}}, None):
        ctx.set("v", value)
        assert ctx.resolve("$v") == value


# ── Parsing ──────────────────────────────────────────────────────


def test_parse_reference_segments():
    assert parse_reference("$post.meta[0].value") == ["post", "meta", "0", "value"]
    assert parse_reference("$a['b c']") == ["a", "b c"]


def test_parse_reference_unclosed_bracket():
    with pytest.raises(VariableReferenceError, match="Unclosed bracket"):
        parse_reference("$a[0")


def test_is_reference():
    assert is_reference("$posts")
    assert is_reference("$post.meta[0]")
    assert not is_reference("posts")
    assert not is_reference("$count(x)")
    assert not is_reference(3)

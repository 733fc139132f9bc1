"""Tests for the pre-flight pipeline validator.

Every test validates a real pipeline document against real registries.
Nothing is executed and no capability is ever called.
"""

from __future__ import annotations

import json

import pytest

from ability_pipelines.errors import PipelineLoadError
from ability_pipelines.transformations import default_transformations
from ability_pipelines.validator import (
    Diagnostic,
    Severity,
    ValidationResult,
    load_and_validate_pipeline,
    validate_pipeline,
)


def _validate(steps, registry=None, **kwargs):
    return validate_pipeline(
        {"steps": steps},
        capabilities=registry,
        transformations=default_transformations(),
        **kwargs,
    )


def _messages(result):
    return [f"{d.path}: {d.message}" for d in result.errors]


# ─────────────────────────────────────────────────────────────────────────
# ValidationResult
# ─────────────────────────────────────────────────────────────────────────


def test_validation_result_ok_with_no_diagnostics():
    r = ValidationResult(diagnostics=[])
    assert r.ok is True
    assert r.errors == []
    assert r.warnings == []


def test_validation_result_ok_with_only_warnings():
    r = ValidationResult(
        diagnostics=[Diagnostic(Severity.WARNING, "steps[0]", "unbound", "input")]
    )
    assert r.ok is True
    assert len(r.warnings) == 1


def test_validation_result_not_ok_with_errors():
    r = ValidationResult(
        diagnostics=[
            Diagnostic(Severity.ERROR, "steps[0]", "bad type", "type"),
            Diagnostic(Severity.WARNING, "steps[0]", "unbound", "input"),
        ]
    )
    assert r.ok is False
    assert len(r.errors) == 1
    assert len(r.warnings) == 1


# ─────────────────────────────────────────────────────────────────────────
# Structure
# ─────────────────────────────────────────────────────────────────────────


def test_valid_pipeline(registry):
    result = _validate(
        [
            {"type": "ability", "ability": "content/list-posts", "input": {"status": "publish"}, "output": "posts"},
            {"type": "transform", "operation": "count", "input": "$posts", "output": "total"},
        ],
        registry,
    )
    assert result.ok
    assert result.diagnostics == []


def test_empty_pipeline():
    result = _validate([])
    assert _messages(result) == ["steps: Pipeline must have at least one step"]


def test_unknown_step_type_nested():
    result = _validate([
        {"type": "try_catch", "try": [{"type": "teleport"}]},
    ])
    assert _messages(result) == ["steps[0].try[0]: Unknown step type: teleport"]


def test_missing_type():
    result = _validate([{"operation": "count"}])
    assert _messages(result) == ['steps[0]: Step must have "type" field']


def test_missing_and_unknown_keys():
    result = _validate([{"type": "transform", "input": [], "param": {}}])
    [error] = result.errors
    assert 'missing required keys: operation' in error.message
    assert 'has unknown keys: param' in error.message
    assert error.field == "type"


def test_every_error_is_reported():
    result = _validate([
        {"type": "teleport"},
        {"type": "transform", "operation": "explode", "input": []},
        {"type": "conditional", "condition": {"field": 1, "operator": "approximately"}},
    ])
    assert _messages(result) == [
        "steps[0]: Unknown step type: teleport",
        "steps[1]: Unknown transformation: explode",
        "steps[2]: Unknown operator: approximately",
    ]


def test_non_pipeline_raises():
    with pytest.raises(PipelineLoadError):
        validate_pipeline({"steps": "nope"})


# ─────────────────────────────────────────────────────────────────────────
# Capabilities, conditions, and transforms
# ─────────────────────────────────────────────────────────────────────────


def test_unknown_capability(registry):
    result = _validate([{"type": "ability", "ability": "content/delete-everything"}], registry)
    [error] = result.errors
    assert error.message == "Capability not found: content/delete-everything"
    assert error.field == "ability"


def test_capabilities_unchecked_without_registry():
    assert _validate([{"type": "ability", "ability": "anything/goes"}]).ok


def test_composite_condition_checks_children():
    result = _validate([
        {
            "type": "conditional",
            "condition": {
                "operator": "and",
                "conditions": [
                    {"field": 1, "operator": "equals", "value": 1},
                    {"operator": "greater_than", "value": 1},
                ],
            },
        },
    ])
    assert _messages(result) == [
        "steps[0].conditions[1]: Condition with operator 'greater_than' requires \"field\"",
    ]


def test_composite_condition_needs_list():
    result = _validate([{"type": "conditional", "condition": {"operator": "or"}}])
    assert "requires a \"conditions\" list" in result.errors[0].message


def test_invalid_jsonata_expression():
    result = _validate([
        {"type": "transform", "operation": "jsonata", "input": [], "params": {"expression": "$sum("}},
    ])
    [error] = result.errors
    assert error.field == "params"


def test_jsonata_expression_required():
    result = _validate([{"type": "transform", "operation": "jsonata", "input": []}])
    assert _messages(result) == ['steps[0]: jsonata requires "expression" parameter']


def test_invalid_template():
    result = _validate([
        {"type": "transform", "operation": "template", "input": {}, "params": {"template": "{{ name "}},
    ])
    assert result.errors[0].message.startswith("Invalid Jinja2 template:")


def test_filter_condition_may_omit_field():
    result = _validate([
        {
            "type": "transform",
            "operation": "filter",
            "input": [],
            "params": {"condition": {"operator": "greater_than", "value": 1}},
        },
    ])
    assert result.ok


def test_filter_condition_unknown_operator():
    result = _validate([
        {
            "type": "transform",
            "operation": "filter",
            "input": [],
            "params": {"condition": {"field": "x", "operator": "nearly"}},
        },
    ])
    assert _messages(result) == ["steps[0].params: Unknown operator: nearly"]


# ─────────────────────────────────────────────────────────────────────────
# References
# ─────────────────────────────────────────────────────────────────────────


def test_forward_reference_warns():
    result = _validate([
        {"type": "transform", "operation": "count", "input": "$posts"},
        {"type": "transform", "operation": "identity", "input": [], "output": "posts"},
    ])
    assert result.ok
    [warning] = result.warnings
    assert warning.path == "steps[0]"
    assert warning.field == "input"
    assert "$posts" in warning.message


def test_context_names_are_bound():
    result = _validate(
        [{"type": "transform", "operation": "count", "input": "$posts"}],
        context_names=["posts"],
    )
    assert result.warnings == []


def test_input_schema_properties_are_bound():
    result = validate_pipeline({
        "input": {"type": "object", "properties": {"limit": {"type": "integer"}}},
        "steps": [{"type": "transform", "operation": "identity", "input": "$limit"}],
    })
    assert result.diagnostics == []


def test_loop_binds_item_and_index_inside_body_only():
    result = _validate([
        {
            "type": "loop",
            "input": [1, 2],
            "itemVar": "n",
            "steps": [{"type": "transform", "operation": "identity", "input": ["$n", "$index"]}],
        },
        {"type": "transform", "operation": "identity", "input": "$n"},
    ])
    assert [(w.path, w.message) for w in result.warnings] == [
        ("steps[1]", "Reference '$n' is not bound by the initial context or any earlier step"),
    ]


def test_sub_pipeline_inputs_bound_inside():
    result = _validate([
        {
            "type": "sub_pipeline",
            "inputs": {"rows": [1]},
            "pipeline": {"steps": [{"type": "transform", "operation": "count", "input": "$rows"}]},
        },
    ])
    assert result.diagnostics == []


def test_catch_binds_error():
    result = _validate([
        {
            "type": "try_catch",
            "try": [{"type": "transform", "operation": "identity", "input": 1}],
            "catch": [{"type": "transform", "operation": "identity", "input": "$error.message"}],
        },
    ])
    assert result.diagnostics == []


def test_jsonata_in_params_is_not_a_reference():
    result = _validate([
        {"type": "transform", "operation": "jsonata", "input": [], "params": {"expression": "$count($)"}},
    ])
    assert result.diagnostics == []


# ─────────────────────────────────────────────────────────────────────────
# Circular dependencies
# ─────────────────────────────────────────────────────────────────────────


def test_circular_dependency():
    result = _validate([
        {"type": "transform", "operation": "identity", "input": "$b", "output": "a"},
        {"type": "transform", "operation": "identity", "input": "$a", "output": "b"},
    ])
    assert [d.message for d in result.errors] == [
        "Circular dependency detected involving variable: $a",
        "Circular dependency detected involving variable: $b",
    ]


def test_self_dependency_in_nested_step():
    result = _validate([
        {
            "type": "conditional",
            "condition": {"field": 1, "operator": "equals", "value": 1},
            "then": [{"type": "transform", "operation": "count", "input": "$total", "output": "total"}],
        },
    ])
    assert "Circular dependency detected involving variable: $total" in [
        d.message for d in result.errors
    ]


def test_rebinding_initial_name_is_not_circular():
    result = _validate(
        [{"type": "transform", "operation": "count", "input": "$total", "output": "total"}],
        context_names=["total"],
    )
    assert result.diagnostics == []


# ─────────────────────────────────────────────────────────────────────────
# Loading
# ─────────────────────────────────────────────────────────────────────────


def test_load_and_validate_yaml(tmp_path):
    path = tmp_path / "pipeline.yaml"
    path.write_text(
        "name: counter\n"
        "steps:\n"
        "  - type: transform\n"
        "    operation: count\n"
        "    input: [1, 2, 3]\n"
    )
    definition, result = load_and_validate_pipeline(path)
    assert definition.name == "counter"
    assert result.ok


def test_load_and_validate_forwards_kwargs(tmp_path, registry):
    path = tmp_path / "pipeline.json"
    path.write_text(json.dumps({"steps": [{"type": "ability", "ability": "nope/nope"}]}))
    _, result = load_and_validate_pipeline(path, capabilities=registry)
    assert not result.ok


def test_load_and_validate_missing_file(tmp_path):
    with pytest.raises(PipelineLoadError, match="not found"):
        load_and_validate_pipeline(tmp_path / "missing.yaml")

"""Pre-flight pipeline validator.

Statically validates a pipeline definition without executing it.
Catches malformed step configs, unknown capabilities and operations,
bad expressions and templates, unbound references, and circular output
dependencies before any capability gets called.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from ability_pipelines.capabilities import CapabilityRegistry
from ability_pipelines.conditions import LEAF_OPERATORS, LOGICAL_OPERATORS
from ability_pipelines.context import is_reference, parse_reference
from ability_pipelines.errors import ExpressionError
from ability_pipelines.executor import DEFAULT_STEPS, describe_config_errors
from ability_pipelines.expressions import compile_expression
from ability_pipelines.loader import load_pipeline, parse_pipeline
from ability_pipelines.models import (
    AbilityStep,
    ConditionalStep,
    LoopStep,
    ParallelStep,
    PipelineDefinition,
    StepConfig,
    SubPipelineStep,
    TransformStep,
    TryCatchStep,
)
from ability_pipelines.templates import check_template_syntax
from ability_pipelines.transformations import TransformationRegistry

# ---------------------------------------------------------------------------
# Data types
# ---------------------------------------------------------------------------


class Severity(str, Enum):
    ERROR = "error"
    WARNING = "warning"


@dataclass(frozen=True)
class Diagnostic:
    """A single validation finding."""

    severity: Severity
    path: str  # "steps[1].try[0]"
    message: str
    field: str  # "type", "ability", "params", "output", ...


@dataclass(frozen=True)
class ValidationResult:
    """Aggregate result of pipeline validation."""

    diagnostics: list[Diagnostic]

    @property
    def ok(self) -> bool:
        """True when there are no error-severity diagnostics."""
        return not any(d.severity == Severity.ERROR for d in self.diagnostics)

    @property
    def errors(self) -> list[Diagnostic]:
        return [d for d in self.diagnostics if d.severity == Severity.ERROR]

    @property
    def warnings(self) -> list[Diagnostic]:
        return [d for d in self.diagnostics if d.severity == Severity.WARNING]


# Keys holding nested step lists; their references are checked per nested step.
NESTED_KEYS: frozenset[str] = frozenset(
    {"then", "else", "steps", "try", "catch", "finally", "pipeline"}
)


@dataclass
class _Registries:
    models: Mapping[str, type[StepConfig]]
    capabilities: CapabilityRegistry | None
    transformations: TransformationRegistry | None


def _error(path: str, message: str, field: str) -> Diagnostic:
    return Diagnostic(severity=Severity.ERROR, path=path, message=message, field=field)


def _warning(path: str, message: str, field: str) -> Diagnostic:
    return Diagnostic(severity=Severity.WARNING, path=path, message=message, field=field)


# ---------------------------------------------------------------------------
# 1. Reference extraction
# ---------------------------------------------------------------------------


def _reference_roots(value: Any) -> set[str]:
    """Collect the root names of every ``$`` reference inside *value*."""
    if is_reference(value):
        return {parse_reference(value)[0]}
    if isinstance(value, Mapping):
        return set().union(*(_reference_roots(v) for v in value.values()))
    if isinstance(value, (list, tuple)):
        return set().union(*(_reference_roots(v) for v in value))
    return set()


def _check_unbound(
    config: Mapping[str, Any], path: str, available: set[str]
) -> list[Diagnostic]:
    """Warn about references in a step's own keys that nothing binds."""
    diagnostics: list[Diagnostic] = []
    for key, value in config.items():
        if key in NESTED_KEYS:
            continue
        for root in sorted(_reference_roots(value) - available):
            diagnostics.append(
                _warning(
                    path,
                    f"Reference '${root}' is not bound by the initial context "
                    f"or any earlier step",
                    str(key),
                )
            )
    return diagnostics


# ---------------------------------------------------------------------------
# 2. Conditions
# ---------------------------------------------------------------------------


def _check_condition(condition: Any, path: str, *, require_field: bool = True) -> list[Diagnostic]:
    if not isinstance(condition, Mapping):
        return [_error(path, "Condition must be a mapping", "condition")]

    operator = condition.get("operator", "equals")

    if operator in LOGICAL_OPERATORS:
        subconditions = condition.get("conditions")
        if not isinstance(subconditions, list):
            return [_error(path, f"'{operator}' operator requires a \"conditions\" list", "condition")]
        diagnostics: list[Diagnostic] = []
        for i, sub in enumerate(subconditions):
            diagnostics.extend(_check_condition(sub, f"{path}.conditions[{i}]"))
        return diagnostics

    if operator not in LEAF_OPERATORS:
        return [_error(path, f"Unknown operator: {operator}", "condition")]
    if require_field and "field" not in condition:
        return [_error(path, f"Condition with operator '{operator}' requires \"field\"", "condition")]
    return []


# ---------------------------------------------------------------------------
# 3. Transform params (JSONata / Jinja2 syntax)
# ---------------------------------------------------------------------------


def _check_transform(
    step: TransformStep, path: str, registries: _Registries
) -> list[Diagnostic]:
    diagnostics: list[Diagnostic] = []

    if registries.transformations is not None and step.operation not in registries.transformations:
        diagnostics.append(_error(path, f"Unknown transformation: {step.operation}", "operation"))

    if step.operation == "jsonata":
        expression = step.params.get("expression")
        if not isinstance(expression, str):
            diagnostics.append(_error(path, 'jsonata requires "expression" parameter', "params"))
        elif not is_reference(expression):
            try:
                compile_expression(expression)
            except ExpressionError as e:
                diagnostics.append(_error(path, e.message, "params"))

    elif step.operation == "template":
        source = step.params.get("template")
        if not isinstance(source, str):
            diagnostics.append(_error(path, 'template requires "template" parameter', "params"))
        elif not is_reference(source):
            problem = check_template_syntax(source)
            if problem is not None:
                diagnostics.append(_error(path, f"Invalid Jinja2 template: {problem}", "params"))

    elif step.operation == "filter" and "condition" in step.params:
        diagnostics.extend(
            _check_condition(step.params["condition"], f"{path}.params", require_field=False)
        )

    return diagnostics


# ---------------------------------------------------------------------------
# 4. Step walk
# ---------------------------------------------------------------------------


def _check_steps(
    steps: Any, path: str, available: set[str], registries: _Registries
) -> list[Diagnostic]:
    """Check a step list, adding each step's ``output`` to *available*."""
    if not isinstance(steps, list):
        return [_error(path, "Step list must be an array", "steps")]

    diagnostics: list[Diagnostic] = []
    for i, config in enumerate(steps):
        diagnostics.extend(_check_step(config, f"{path}[{i}]", available, registries))
    return diagnostics


def _check_step(
    config: Any, path: str, available: set[str], registries: _Registries
) -> list[Diagnostic]:
    if not isinstance(config, Mapping):
        return [_error(path, "Step must be a mapping", "type")]

    step_type = config.get("type")
    if step_type is None:
        return [_error(path, 'Step must have "type" field', "type")]
    model = registries.models.get(step_type) if isinstance(step_type, str) else None
    if model is None:
        return [_error(path, f"Unknown step type: {step_type}", "type")]

    try:
        step = model.model_validate(dict(config))
    except PydanticValidationError as e:
        return [_error(path, describe_config_errors(step_type, e), "type")]

    diagnostics = _check_unbound(config, path, available)

    if isinstance(step, AbilityStep):
        if registries.capabilities is not None and step.ability not in registries.capabilities:
            diagnostics.append(_error(path, f"Capability not found: {step.ability}", "ability"))

    elif isinstance(step, TransformStep):
        diagnostics.extend(_check_transform(step, path, registries))

    elif isinstance(step, ConditionalStep):
        diagnostics.extend(_check_condition(step.condition, path))
        if step.then is not None:
            diagnostics.extend(_check_steps(step.then, f"{path}.then", available, registries))
        if step.else_ is not None:
            diagnostics.extend(_check_steps(step.else_, f"{path}.else", available, registries))

    elif isinstance(step, LoopStep):
        inner = available | {step.item_var, step.index_var}
        diagnostics.extend(_check_steps(step.steps, f"{path}.steps", inner, registries))

    elif isinstance(step, ParallelStep):
        if isinstance(step.steps, dict):
            for key, branch in step.steps.items():
                diagnostics.extend(_check_step(branch, f"{path}.steps.{key}", available, registries))
        else:
            diagnostics.extend(_check_steps(step.steps, f"{path}.steps", available, registries))

    elif isinstance(step, SubPipelineStep):
        inner = available | set(step.inputs or {})
        diagnostics.extend(
            _check_steps(step.pipeline.steps, f"{path}.pipeline.steps", inner, registries)
        )

    elif isinstance(step, TryCatchStep):
        diagnostics.extend(_check_steps(step.try_, f"{path}.try", available, registries))
        if step.catch is not None:
            available.add("error")
            diagnostics.extend(_check_steps(step.catch, f"{path}.catch", available, registries))
        if step.finally_ is not None:
            diagnostics.extend(_check_steps(step.finally_, f"{path}.finally", available, registries))

    if step.output:
        available.add(step.output.lstrip("$"))
    return diagnostics


# ---------------------------------------------------------------------------
# 5. Circular output dependencies
# ---------------------------------------------------------------------------


def _build_dependency_graph(steps: Any, graph: dict[str, set[str]]) -> None:
    """Map every ``output`` name to the roots its step references."""
    if not isinstance(steps, list):
        return
    for config in steps:
        if not isinstance(config, Mapping):
            continue
        output = config.get("output")
        if isinstance(output, str) and output:
            graph.setdefault(output.lstrip("$"), set()).update(_reference_roots(config))

        for key in ("then", "else", "try", "catch", "finally"):
            _build_dependency_graph(config.get(key), graph)
        nested = config.get("steps")
        _build_dependency_graph(
            list(nested.values()) if isinstance(nested, Mapping) else nested, graph
        )
        pipeline = config.get("pipeline")
        if isinstance(pipeline, Mapping):
            _build_dependency_graph(pipeline.get("steps"), graph)


def _reaches(start: str, target: str, graph: dict[str, set[str]]) -> bool:
    seen: set[str] = set()
    stack = list(graph.get(start, ()))
    while stack:
        name = stack.pop()
        if name == target:
            return True
        if name in seen:
            continue
        seen.add(name)
        stack.extend(graph.get(name, ()))
    return False


def _check_circular_dependencies(
    steps: list[Any], initial_names: set[str]
) -> list[Diagnostic]:
    """Error on every output that (transitively) depends on itself.

    Names bound in the initial context are rebinds, not cycles: a step may
    compute ``total`` from an initial ``$total``.
    """
    graph: dict[str, set[str]] = {}
    _build_dependency_graph(steps, graph)
    graph = {name: deps - initial_names for name, deps in graph.items()}

    return [
        _error(
            "steps",
            f"Circular dependency detected involving variable: ${name}",
            "output",
        )
        for name in sorted(graph)
        if _reaches(name, name, graph)
    ]


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def validate_pipeline(
    definition: PipelineDefinition | Mapping[str, Any] | list[Any],
    *,
    capabilities: CapabilityRegistry | None = None,
    transformations: TransformationRegistry | None = None,
    context_names: Iterable[str] = (),
    step_models: Mapping[str, type[StepConfig]] | None = None,
) -> ValidationResult:
    """Statically validate a pipeline definition without executing it.

    Checks:
    - At least one step
    - Every step (nested ones included) is a mapping with a known ``type``
      and passes its config model
    - Condition operators and composite structure
    - Capability and transformation names (when registries are given)
    - JSONata expression and Jinja2 template syntax
    - References to names never bound (warning)
    - Circular output dependencies

    Names declared in the pipeline's ``input`` schema count as bound, as do
    *context_names*.

    Raises:
        PipelineLoadError: If *definition* doesn't have a pipeline's shape.
    """
    definition = parse_pipeline(definition)

    if not definition.steps:
        return ValidationResult(
            diagnostics=[_error("steps", "Pipeline must have at least one step", "steps")]
        )

    initial = set(context_names)
    if definition.input:
        initial |= set(definition.input.get("properties", {}))

    registries = _Registries(
        models=step_models
        if step_models is not None
        else {name: model for name, (model, _) in DEFAULT_STEPS.items()},
        capabilities=capabilities,
        transformations=transformations,
    )

    diagnostics: list[Diagnostic] = []
    diagnostics.extend(_check_steps(definition.steps, "steps", set(initial), registries))
    diagnostics.extend(_check_circular_dependencies(definition.steps, initial))
    return ValidationResult(diagnostics=diagnostics)


def load_and_validate_pipeline(
    path: str | Path, **kwargs: Any
) -> tuple[PipelineDefinition, ValidationResult]:
    """Load a pipeline from JSON/YAML and validate it.

    Convenience wrapper: calls ``load_pipeline`` then ``validate_pipeline``.
    Raises ``PipelineLoadError`` if the file can't be read or parsed.
    """
    definition = load_pipeline(path)
    result = validate_pipeline(definition, **kwargs)
    return definition, result

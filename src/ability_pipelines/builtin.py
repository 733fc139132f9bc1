"""Pipeline meta-capabilities.

Registers three capabilities that expose the engine itself through a
CapabilityRegistry, so a client that can only call capabilities can still
discover, validate and run pipelines:

- ``pipeline/execute``: validate and run a pipeline definition.
- ``pipeline/get-capabilities``: step types, transforms, operators, and a
  summary of registered capabilities.
- ``pipeline/examples``: complete example pipelines to start from.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from ability_pipelines.capabilities import Capability, CapabilityFailure, CapabilityRegistry
from ability_pipelines.conditions import OPERATORS
from ability_pipelines.errors import PipelineLoadError, StepExecutionError, ValidationError
from ability_pipelines.executor import PipelineExecutor
from ability_pipelines.models import ExecutionLimits
from ability_pipelines.tokenizer import DataTokenizer
from ability_pipelines.transformations import (
    CATEGORIES,
    TransformationRegistry,
    default_transformations,
)
from ability_pipelines.validator import validate_pipeline

SECTIONS = ("step_types", "transforms", "operators", "abilities", "examples")

STEP_TYPES: list[dict[str, Any]] = [
    {
        "type": "ability",
        "description": "Execute a registered capability",
        "required": ["ability"],
        "optional": ["input", "output"],
        "example": '{"type":"ability","ability":"content/list-posts","input":{"per_page":10},"output":"posts"}',
    },
    {
        "type": "transform",
        "description": "Apply data transformation (filter, map, count, etc.)",
        "required": ["operation", "input"],
        "optional": ["params", "output"],
        "example": '{"type":"transform","operation":"count","input":"$posts","output":"total"}',
    },
    {
        "type": "loop",
        "description": "Iterate over an array executing steps for each item",
        "required": ["input", "steps"],
        "optional": ["itemVar", "indexVar", "output"],
        "example": '{"type":"loop","input":"$posts","itemVar":"post","steps":[...]}',
    },
    {
        "type": "conditional",
        "description": "Execute different steps based on a condition",
        "required": ["condition"],
        "optional": ["then", "else", "output"],
        "example": '{"type":"conditional","condition":{"field":"$post.status","operator":"equals","value":"draft"},"then":[...]}',
    },
    {
        "type": "parallel",
        "description": "Execute independent steps, recording failures instead of stopping",
        "required": ["steps"],
        "optional": ["output"],
        "example": '{"type":"parallel","steps":[...]}',
    },
    {
        "type": "try_catch",
        "description": "Execute steps with error handling",
        "required": ["try"],
        "optional": ["catch", "finally", "output"],
        "example": '{"type":"try_catch","try":[...],"catch":[...],"finally":[...]}',
    },
    {
        "type": "sub_pipeline",
        "description": "Execute a nested pipeline in its own scope",
        "required": ["pipeline"],
        "optional": ["inputs", "output"],
        "example": '{"type":"sub_pipeline","pipeline":{"steps":[...]},"inputs":{"var":"$value"}}',
    },
]

QUICK_EXAMPLES: list[dict[str, Any]] = [
    {
        "name": "Simple list and count",
        "pipeline": {
            "steps": [
                {"type": "ability", "ability": "content/list-posts", "input": {"per_page": 10}, "output": "posts"},
                {"type": "transform", "operation": "count", "input": "$posts", "output": "total"},
            ],
        },
    },
    {
        "name": "Loop through posts",
        "pipeline": {
            "steps": [
                {"type": "ability", "ability": "content/list-posts", "output": "posts"},
                {
                    "type": "loop",
                    "input": "$posts",
                    "itemVar": "post",
                    "steps": [
                        {
                            "type": "ability",
                            "ability": "content/update-post-meta",
                            "input": {"post_id": "$post.id", "meta_key": "processed", "meta_value": True},
                        },
                    ],
                },
            ],
        },
    },
    {
        "name": "Filter and transform",
        "pipeline": {
            "steps": [
                {"type": "ability", "ability": "content/list-posts", "output": "posts"},
                {
                    "type": "transform",
                    "operation": "filter",
                    "input": "$posts",
                    "params": {"condition": {"field": "status", "operator": "equals", "value": "publish"}},
                    "output": "published",
                },
                {
                    "type": "transform",
                    "operation": "pluck",
                    "input": "$published",
                    "params": {"field": "title"},
                    "output": "titles",
                },
            ],
        },
    },
]

EXAMPLES: list[dict[str, Any]] = [
    {
        "name": "content-processing",
        "description": "Batch process content: find unanalyzed published posts and mark them",
        "use_case": "Content analytics and bulk metadata updates",
        "pipeline": {
            "steps": [
                {
                    "type": "ability",
                    "ability": "content/list-posts",
                    "input": {"status": "publish", "per_page": 50},
                    "output": "posts",
                    "description": "Fetch all published posts",
                },
                {
                    "type": "transform",
                    "operation": "filter",
                    "input": "$posts",
                    "params": {"condition": {"field": "meta.analyzed", "operator": "empty"}},
                    "output": "unanalyzed_posts",
                    "description": "Filter posts that haven't been analyzed",
                },
                {
                    "type": "loop",
                    "input": "$unanalyzed_posts",
                    "itemVar": "post",
                    "steps": [
                        {
                            "type": "ability",
                            "ability": "content/update-post-meta",
                            "input": {"post_id": "$post.id", "meta_key": "analyzed", "meta_value": True},
                            "description": "Mark post as analyzed",
                        },
                    ],
                    "output": "processed_posts",
                },
            ],
        },
    },
    {
        "name": "error-handling",
        "description": "Recover from a failed lookup with try/catch",
        "use_case": "Robust workflows that handle failures gracefully",
        "pipeline": {
            "steps": [
                {
                    "type": "try_catch",
                    "try": [
                        {"type": "ability", "ability": "content/get-post", "input": {"post_id": 999999}, "output": "post"},
                    ],
                    "catch": [
                        {
                            "type": "ability",
                            "ability": "content/create-post",
                            "input": {"title": "Fallback Post", "content": "Created as fallback", "status": "draft"},
                            "output": "fallback_post",
                        },
                    ],
                    "output": "result",
                },
            ],
        },
    },
    {
        "name": "data-aggregation",
        "description": "Extract and aggregate data using transformations",
        "use_case": "Reporting without passing raw records back to the caller",
        "pipeline": {
            "steps": [
                {"type": "ability", "ability": "content/list-posts", "input": {"per_page": 100}, "output": "posts"},
                {
                    "type": "parallel",
                    "steps": [
                        {"type": "transform", "operation": "count", "input": "$posts", "output": "total_posts"},
                        {
                            "type": "transform",
                            "operation": "pluck",
                            "input": "$posts",
                            "params": {"field": "author"},
                            "output": "author_ids",
                        },
                    ],
                    "output": "stats",
                },
                {"type": "transform", "operation": "unique", "input": "$stats.author_ids", "output": "unique_authors"},
            ],
        },
    },
    {
        "name": "conditional-workflow",
        "description": "Use conditional logic to handle different scenarios",
        "use_case": "Branch logic based on data conditions",
        "pipeline": {
            "steps": [
                {"type": "ability", "ability": "content/list-posts", "input": {"per_page": 10}, "output": "posts"},
                {
                    "type": "loop",
                    "input": "$posts",
                    "itemVar": "post",
                    "steps": [
                        {
                            "type": "conditional",
                            "condition": {"field": "$post.status", "operator": "equals", "value": "draft"},
                            "then": [
                                {
                                    "type": "ability",
                                    "ability": "content/update-post",
                                    "input": {"post_id": "$post.id", "status": "pending"},
                                },
                            ],
                            "else": [
                                {
                                    "type": "ability",
                                    "ability": "content/update-post-meta",
                                    "input": {"post_id": "$post.id", "meta_key": "reviewed", "meta_value": True},
                                },
                            ],
                        },
                    ],
                },
            ],
        },
    },
]

EXECUTE_INPUT_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "pipeline": {
            "type": ["object", "array"],
            "description": "Pipeline definition ({\"steps\": [...]}) or a bare list of steps",
        },
        "context": {
            "type": "object",
            "description": "Initial context variables",
            "additionalProperties": True,
        },
        "tokenize_sensitive": {
            "type": "boolean",
            "description": "Whether to tokenize sensitive data (default: true)",
            "default": True,
        },
        "validate_only": {
            "type": "boolean",
            "description": "Only validate the pipeline without executing it (dry run)",
            "default": False,
        },
        "limits": {
            "type": "object",
            "description": "Resource limits for pipeline execution",
            "properties": {
                "max_steps": {"type": "integer", "default": 1000},
                "max_depth": {"type": "integer", "default": 10},
                "timeout": {"type": "number", "default": 300},
            },
        },
    },
    "required": ["pipeline"],
}

GET_CAPABILITIES_INPUT_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "include": {
            "type": "array",
            "description": "Which sections to include (default: all)",
            "items": {"type": "string", "enum": list(SECTIONS)},
        },
    },
}


def describe_capabilities(
    registry: CapabilityRegistry,
    transformations: TransformationRegistry,
    include: list[str] | None = None,
) -> dict[str, Any]:
    """Build the ``pipeline/get-capabilities`` payload."""
    include = list(SECTIONS) if include is None else include
    result: dict[str, Any] = {}

    if "step_types" in include:
        result["step_types"] = STEP_TYPES

    if "transforms" in include:
        names = transformations.names()
        transforms: dict[str, Any] = {
            category: {"operations": [op for op in operations if op in names]}
            for category, operations in CATEGORIES.items()
        }
        transforms["total"] = len(names)
        result["transforms"] = transforms

    if "operators" in include:
        result["operators"] = OPERATORS

    if "abilities" in include:
        result["abilities"] = {
            "total": len(registry),
            "by_namespace": registry.by_namespace(),
            "note": 'Use capability names in the format "namespace/name", e.g. "content/list-posts"',
        }

    if "examples" in include:
        result["examples"] = QUICK_EXAMPLES

    return result


def register_pipeline_capabilities(
    registry: CapabilityRegistry,
    *,
    transformations: TransformationRegistry | None = None,
    permission_callback: Callable[[dict[str, Any]], bool] | None = None,
) -> None:
    """Register the pipeline meta-capabilities on *registry*.

    Args:
        registry: Registry to add to. Pipelines run by ``pipeline/execute``
            call capabilities from this same registry.
        transformations: Operations available to those pipelines
            (default: the built-in set).
        permission_callback: Gate for ``pipeline/execute``; discovery and
            examples are always allowed.
    """
    transformations = transformations if transformations is not None else default_transformations()

    async def execute(input_data: dict[str, Any]) -> Any:
        pipeline = input_data.get("pipeline", {})
        context = input_data.get("context") or {}
        tokenize = input_data.get("tokenize_sensitive", True)

        try:
            limits = ExecutionLimits.model_validate(input_data.get("limits") or {})
        except PydanticValidationError as e:
            return CapabilityFailure("invalid_input", f"Invalid limits: {e}")

        try:
            validation = validate_pipeline(
                pipeline,
                capabilities=registry,
                transformations=transformations,
                context_names=context,
            )
        except PipelineLoadError as e:
            return {"success": False, "validation_errors": [str(e)], "message": "Pipeline validation failed"}

        if not validation.ok:
            return {
                "success": False,
                "validation_errors": [f"{d.path}: {d.message}" for d in validation.errors],
                "message": "Pipeline validation failed",
            }
        if input_data.get("validate_only", False):
            return {"success": True, "validation_errors": [], "message": "Pipeline is valid"}

        executor = PipelineExecutor(registry, transformations, limits)
        tokenizer = DataTokenizer() if tokenize else None
        if tokenizer is not None:
            context = tokenizer.tokenize(context)

        try:
            result = await executor.run(pipeline, context)
        except (StepExecutionError, ValidationError) as e:
            error = e.to_dict() if isinstance(e, StepExecutionError) else {
                "message": str(e),
                "code": "invalid_input",
                "type": type(e).__name__,
            }
            return {
                "success": False,
                "error": error,
                "stats": executor.stats.model_dump(exclude_none=True),
            }

        output, final_context = result.output, result.context
        if tokenizer is not None:
            output = tokenizer.detokenize(output)
            final_context = tokenizer.detokenize(final_context)
            result.stats.tokens_used = tokenizer.token_count

        return {
            "success": True,
            "result": output,
            "context": final_context,
            "stats": result.stats.model_dump(exclude_none=True),
        }

    registry.register(
        Capability(
            name="pipeline/execute",
            execute_callback=execute,
            label="Execute Pipeline",
            description=(
                "Execute a declarative pipeline of steps (ability, transform, "
                "conditional, loop, parallel, try_catch, sub_pipeline). Steps "
                "reference earlier outputs with $variable syntax, e.g. \"$posts\" "
                "or \"$post.id\"."
            ),
            category="system",
            input_schema=EXECUTE_INPUT_SCHEMA,
            permission_callback=permission_callback,
            meta={"annotations": {"readOnlyHint": False, "idempotentHint": False}},
        )
    )

    registry.register(
        Capability(
            name="pipeline/get-capabilities",
            execute_callback=lambda input_data: describe_capabilities(
                registry, transformations, input_data.get("include")
            ),
            label="Get Pipeline Capabilities",
            description=(
                "List what pipelines can use: step types, transform operations, "
                "comparison operators, and registered capabilities."
            ),
            category="system",
            input_schema=GET_CAPABILITIES_INPUT_SCHEMA,
            meta={"annotations": {"readOnlyHint": True}},
        )
    )

    registry.register(
        Capability(
            name="pipeline/examples",
            execute_callback=lambda input_data: {"examples": EXAMPLES},
            label="Pipeline Examples",
            description="Example pipeline definitions to use as templates.",
            category="system",
            meta={"annotations": {"readOnlyHint": True}},
        )
    )

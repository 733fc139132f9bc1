"""Pipeline loading (JSON or YAML) and JSON Schema validation."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import jsonschema
import yaml
from pydantic import ValidationError as PydanticValidationError

from ability_pipelines.errors import PipelineLoadError, ValidationError
from ability_pipelines.models import PipelineDefinition


def parse_pipeline(raw: Any) -> PipelineDefinition:
    """Build a PipelineDefinition from an already-decoded document.

    Accepts ``{"steps": [...]}`` or a bare list of steps.

    Raises:
        PipelineLoadError: If the document doesn't have a pipeline's shape.
    """
    if isinstance(raw, PipelineDefinition):
        return raw
    if isinstance(raw, list):
        raw = {"steps": raw}
    if not isinstance(raw, dict):
        raise PipelineLoadError(
            f"Pipeline must be a mapping or a list of steps, got {type(raw).__name__}"
        )

    try:
        return PipelineDefinition.model_validate(raw)
    except PydanticValidationError as e:
        raise PipelineLoadError(
            f"Pipeline structure invalid: {e}"
        ) from e


def load_pipeline(path: str | Path) -> PipelineDefinition:
    """Load a pipeline definition from a JSON or YAML file.

    JSON is valid YAML, so both go through the YAML parser. Step configs
    are not checked here; each one is validated right before it runs
    (or up front by ``validate_pipeline``).

    Raises:
        PipelineLoadError: If the file doesn't exist, can't be parsed,
            or the top-level structure is wrong.
    """
    path = Path(path)
    if not path.is_file():
        raise PipelineLoadError(f"Pipeline file not found: {path}")

    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        raise PipelineLoadError(f"Invalid JSON/YAML in {path}: {e}") from e

    return parse_pipeline(raw)


def validate_schema(data: Any, schema: dict[str, Any], what: str = "Data") -> None:
    """Validate *data* against a JSON Schema.

    Raises:
        ValidationError: If data doesn't match schema.
    """
    try:
        jsonschema.validate(instance=data, schema=schema)
    except jsonschema.ValidationError as e:
        location = "/".join(str(p) for p in e.absolute_path)
        suffix = f" (at {location})" if location else ""
        raise ValidationError(f"{what} validation failed: {e.message}{suffix}") from e


def validate_input(schema: dict[str, Any], data: dict[str, Any]) -> None:
    """Validate a run's initial context against the pipeline's input schema.

    Raises:
        ValidationError: If data doesn't match schema.
    """
    validate_schema(data, schema, "Input")

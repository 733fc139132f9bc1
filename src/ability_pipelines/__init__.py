"""ability-pipelines: declarative pipeline executor for capability workflows."""

from ability_pipelines.builtin import register_pipeline_capabilities
from ability_pipelines.capabilities import Capability, CapabilityFailure, CapabilityRegistry
from ability_pipelines.context import PipelineContext
from ability_pipelines.errors import (
    CapabilityError,
    ConditionError,
    ConfigurationError,
    ExpressionError,
    LimitExceededError,
    PipelineError,
    PipelineLoadError,
    StepExecutionError,
    TransformationError,
    ValidationError,
    VariableReferenceError,
)
from ability_pipelines.executor import PipelineExecutor, run_pipeline
from ability_pipelines.loader import load_pipeline, parse_pipeline, validate_input
from ability_pipelines.models import (
    ExecutionLimits,
    ExecutionStats,
    PipelineDefinition,
    PipelineResult,
    StepResult,
)
from ability_pipelines.pipeline_logger import configure_logging
from ability_pipelines.tokenizer import DataTokenizer
from ability_pipelines.transformations import TransformationRegistry, default_transformations
from ability_pipelines.validator import (
    Diagnostic,
    Severity,
    ValidationResult,
    load_and_validate_pipeline,
    validate_pipeline,
)

__all__ = [
    "configure_logging",
    "default_transformations",
    "Diagnostic",
    "load_and_validate_pipeline",
    "load_pipeline",
    "parse_pipeline",
    "register_pipeline_capabilities",
    "run_pipeline",
    "Severity",
    "validate_input",
    "validate_pipeline",
    "ValidationResult",
    "Capability",
    "CapabilityError",
    "CapabilityFailure",
    "CapabilityRegistry",
    "ConditionError",
    "ConfigurationError",
    "DataTokenizer",
    "ExecutionLimits",
    "ExecutionStats",
    "ExpressionError",
    "LimitExceededError",
    "PipelineContext",
    "PipelineDefinition",
    "PipelineError",
    "PipelineExecutor",
    "PipelineLoadError",
    "PipelineResult",
    "StepExecutionError",
    "StepResult",
    "TransformationError",
    "TransformationRegistry",
    "ValidationError",
    "VariableReferenceError",
]

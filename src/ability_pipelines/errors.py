"""Custom exception hierarchy for ability-pipelines.

All exceptions inherit from PipelineError so callers can catch broadly
or narrowly as needed. Everything raised while a step runs is a
StepExecutionError; its ``code`` classifies the failure and is what a
``catch`` block sees under ``$error.code``.
"""

from __future__ import annotations

from typing import Any


class PipelineError(Exception):
    """Base for all ability-pipelines errors."""


class PipelineLoadError(PipelineError):
    """Pipeline file or document could not be read or parsed."""


class ValidationError(PipelineError):
    """Data failed validation against a JSON Schema."""


class StepExecutionError(PipelineError):
    """A step failed during execution.

    ``step_type`` and ``path`` locate the failing step. They are filled in
    by the executor for the innermost step that raised, so an error bubbling
    up through nested control flow still points at its origin.
    """

    code = "runtime"

    def __init__(
        self,
        message: str,
        *,
        step_type: str | None = None,
        path: str | None = None,
        code: str | None = None,
        cause: BaseException | None = None,
    ) -> None:
        self.message = message
        self.step_type = step_type
        self.path = path
        self.cause = cause
        if code is not None:
            self.code = code
        super().__init__(message)

    def __str__(self) -> str:
        if self.step_type is None:
            return self.message
        where = f" at {self.path}" if self.path else ""
        return f"Error in {self.step_type} step{where}: {self.message}"

    def to_dict(self) -> dict[str, Any]:
        """Shape stored in the context under ``error`` for catch blocks."""
        return {
            "message": self.message,
            "code": self.code,
            "type": type(self).__name__,
            "step_type": self.step_type,
            "path": self.path,
        }


class ConfigurationError(StepExecutionError):
    """A step config is malformed: missing/unknown keys, bad operator, etc."""

    code = "configuration"


class VariableReferenceError(StepExecutionError):
    """A ``$variable`` reference could not be resolved."""

    code = "reference"


class ConditionError(StepExecutionError):
    """A condition could not be evaluated (e.g. incomparable operands)."""

    code = "condition"


class CapabilityError(StepExecutionError):
    """A capability was missing, unavailable, or reported a failure."""

    code = "capability"

    def __init__(self, capability: str, message: str, **kwargs: Any) -> None:
        self.capability = capability
        super().__init__(message, **kwargs)

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["capability"] = self.capability
        return data


class TransformationError(StepExecutionError):
    """A transformation operation rejected its input or params."""

    code = "transformation"


class ExpressionError(StepExecutionError):
    """JSONata expression evaluation failed."""

    code = "expression"


class LimitExceededError(StepExecutionError):
    """The run exceeded its step count, nesting depth, or time budget."""

    code = "limit"

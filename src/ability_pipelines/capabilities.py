"""Capability registry: named operations invoked by ``ability`` steps.

A capability declares JSON Schemas for its input and output, an optional
permission check, and an execute callback (sync or async). Failures are
reported as CapabilityFailure values rather than raised, so the calling
step decides how to surface them.
"""

from __future__ import annotations

import inspect
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from ability_pipelines import pipeline_logger
from ability_pipelines.errors import ValidationError
from ability_pipelines.loader import validate_schema


@dataclass(frozen=True)
class CapabilityFailure:
    """Structured failure returned by a capability."""

    code: str
    message: str
    data: Any = None


@dataclass
class Capability:
    """A named, schema-annotated, permission-gated operation."""

    name: str
    execute_callback: Callable[[dict[str, Any]], Any]
    label: str = ""
    description: str = ""
    category: str | None = None
    input_schema: dict[str, Any] | None = None
    output_schema: dict[str, Any] | None = None
    permission_callback: Callable[[dict[str, Any]], bool] | None = None
    meta: dict[str, Any] = field(default_factory=dict)

    @property
    def namespace(self) -> str:
        return self.name.split("/", 1)[0]

    def has_permission(self, input_data: dict[str, Any]) -> bool:
        if self.permission_callback is None:
            return True
        return bool(self.permission_callback(input_data))

    async def execute(self, input_data: dict[str, Any] | None = None) -> Any:
        """Validate, authorize, run, and validate the output.

        Returns the callback's result, or a CapabilityFailure when the input
        or output violates its schema, permission is denied, or the callback
        itself returns a failure.
        """
        input_data = {} if input_data is None else input_data

        if self.input_schema:
            try:
                validate_schema(input_data, self.input_schema, "Input")
            except ValidationError as e:
                return CapabilityFailure("invalid_input", str(e))

        if not self.has_permission(input_data):
            return CapabilityFailure(
                "forbidden",
                f'Capability "{self.name}" does not have necessary permission',
            )

        result = self.execute_callback(input_data)
        if inspect.isawaitable(result):
            result = await result

        if isinstance(result, CapabilityFailure):
            return result

        if self.output_schema:
            try:
                validate_schema(result, self.output_schema, "Output")
            except ValidationError as e:
                return CapabilityFailure("invalid_output", str(e))

        return result


class CapabilityRegistry:
    """Name -> Capability lookup."""

    def __init__(self) -> None:
        self._capabilities: dict[str, Capability] = {}

    def register(self, capability: Capability) -> Capability:
        if capability.name in self._capabilities:
            pipeline_logger.log_capability_replaced(capability.name)
        self._capabilities[capability.name] = capability
        return capability

    def capability(
        self, name: str, **properties: Any
    ) -> Callable[[Callable[[dict[str, Any]], Any]], Callable[[dict[str, Any]], Any]]:
        """Decorator form of ``register`` for plain callbacks."""

        def decorator(fn: Callable[[dict[str, Any]], Any]) -> Callable[[dict[str, Any]], Any]:
            self.register(Capability(name=name, execute_callback=fn, **properties))
            return fn

        return decorator

    def unregister(self, name: str) -> None:
        self._capabilities.pop(name, None)

    def get(self, name: str) -> Capability | None:
        return self._capabilities.get(name)

    def __contains__(self, name: object) -> bool:
        return name in self._capabilities

    def __len__(self) -> int:
        return len(self._capabilities)

    def names(self) -> list[str]:
        return sorted(self._capabilities)

    def by_namespace(self) -> dict[str, int]:
        counts: dict[str, int] = {}
        for capability in self._capabilities.values():
            counts[capability.namespace] = counts.get(capability.namespace, 0) + 1
        return counts

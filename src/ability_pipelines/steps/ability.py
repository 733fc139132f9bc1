"""ability step: invoke a registered capability with resolved input."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from ability_pipelines.capabilities import CapabilityFailure
from ability_pipelines.context import PipelineContext
from ability_pipelines.errors import CapabilityError, ConfigurationError
from ability_pipelines.models import AbilityStep

if TYPE_CHECKING:
    from ability_pipelines.executor import PipelineExecutor


async def execute_ability(
    step: AbilityStep,
    context: PipelineContext,
    *,
    executor: PipelineExecutor,
    path: str,
) -> Any:
    """Call the named capability and return its result.

    References anywhere in ``input`` are resolved first. A missing
    ``input`` calls the capability with an empty mapping.

    Raises:
        CapabilityError: No registry, unknown capability, or the capability
            returned a failure (bad input, forbidden, its own error).
        ConfigurationError: If ``input`` doesn't resolve to a mapping.
    """
    registry = executor.capabilities
    if registry is None:
        raise CapabilityError(step.ability, "Capability registry not available")

    capability = registry.get(step.ability)
    if capability is None:
        raise CapabilityError(step.ability, f"Capability not found: {step.ability}")

    input_data = context.resolve_value(step.input) if step.input is not None else {}
    if not isinstance(input_data, dict):
        raise ConfigurationError(
            f"Capability input must resolve to a mapping, got {type(input_data).__name__}"
        )

    result = await capability.execute(input_data)
    if isinstance(result, CapabilityFailure):
        raise CapabilityError(
            step.ability, f'Capability "{step.ability}" failed: {result.message}'
        )
    return result

"""Structural and handler-level validation of workflow definitions."""

from __future__ import annotations

from .exceptions import ConfigurationError
from .handlers.registry import StepHandlerRegistry
from .models import WorkflowDefinition


def _blank(value: str | None) -> bool:
    return value is None or not value.strip()


class DefinitionValidator:
    """Checks a workflow definition before it is persisted.

    Validation stops at the first problem and reports it as a
    :class:`ConfigurationError`.
    """

    def __init__(self, registry: StepHandlerRegistry) -> None:
        self._registry = registry

    def validate(self, definition: WorkflowDefinition) -> None:
        if _blank(definition.name):
            raise ConfigurationError("workflow name cannot be empty")
        if _blank(definition.form_id):
            raise ConfigurationError("workflow must be associated with a form")
        if not definition.steps:
            raise ConfigurationError("workflow must contain at least one step")

        for index, step in enumerate(definition.steps):
            if step.order != index + 1:
                raise ConfigurationError("steps must be in sequential order")

            if _blank(step.type):
                raise ConfigurationError("step type cannot be empty")
            handler = self._registry.get(step.type)
            if handler is None:
                raise ConfigurationError(f"unsupported step type: {step.type}")

            try:
                handler.validate_step_configuration(step.config)
            except ConfigurationError:
                raise
            except Exception as e:
                raise ConfigurationError(
                    f"invalid configuration for step {step.order} ({step.type}): {e}"
                ) from e

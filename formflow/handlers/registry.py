"""Table of step handlers keyed by step type."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any, Dict, Iterator, Optional

from pydantic import TypeAdapter

from ..context import ExecutionContext
from ..exceptions import ExecutionError
from ..models import WorkflowStep
from .base import StepHandler

logger = logging.getLogger(__name__)

# step results end up in JSON columns
_result_adapter = TypeAdapter(Dict[str, Any])


class StepHandlerRegistry:
    """Named table of step handlers.

    The table is built once at startup and handed to the validator and the
    engine. Handlers are never discovered at runtime.
    """

    def __init__(self, handlers: Optional[Dict[str, StepHandler]] = None) -> None:
        self._handlers: Dict[str, StepHandler] = {}
        for step_type, handler in (handlers or {}).items():
            self.register(step_type, handler)

    def register(self, step_type: str, handler: StepHandler) -> None:
        """Register ``handler`` for ``step_type``.

        Raises:
            ValueError: If the type is blank or already registered.
        """
        if not step_type or not step_type.strip():
            raise ValueError("step type must be a non-empty string")
        if step_type in self._handlers:
            raise ValueError(f"Step type '{step_type}' is already registered")
        self._handlers[step_type] = handler

    def get(self, step_type: str) -> Optional[StepHandler]:
        return self._handlers.get(step_type)

    def __contains__(self, step_type: object) -> bool:
        return step_type in self._handlers

    def __iter__(self) -> Iterator[str]:
        return iter(self._handlers)

    def __len__(self) -> int:
        return len(self._handlers)

    def types(self) -> list[str]:
        """Registered step types in registration order."""
        return list(self._handlers)

    def dispatch(self, step: WorkflowStep, context: ExecutionContext) -> Dict[str, Any]:
        """Execute ``step`` with its registered handler.

        Raises:
            ExecutionError: If no handler is registered for the step type or
                the handler returns a result without a ``status`` or with
                values that cannot be stored as JSON.
        """
        handler = self.get(step.type)
        if handler is None:
            raise ExecutionError(f"no handler found for step type: {step.type}")

        logger.debug(f"Dispatching step {step.order} to '{step.type}' handler")
        result = handler.execute_step(step.config, context)
        if not isinstance(result, Mapping):
            raise ExecutionError(
                f"handler for step type {step.type} returned {type(result).__name__}, "
                "expected a mapping"
            )
        if "status" not in result:
            raise ExecutionError(
                f"handler for step type {step.type} returned a result without status"
            )
        try:
            return _result_adapter.dump_python(dict(result), mode="json")
        except ValueError as e:
            raise ExecutionError(
                f"handler for step type {step.type} returned an unstorable result: {e}"
            ) from e

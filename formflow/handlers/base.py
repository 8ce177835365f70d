"""Base interface for workflow step handlers."""

from __future__ import annotations

import abc
from typing import Any, Dict, Mapping

from ..context import ExecutionContext


class StepHandler(metaclass=abc.ABCMeta):
    """Validates and executes one kind of workflow step.

    Handlers are registered under a step ``type`` in a
    :class:`~formflow.handlers.registry.StepHandlerRegistry`.
    """

    @abc.abstractmethod
    def validate_step_configuration(self, config: Mapping[str, Any]) -> None:
        """Check the step configuration.

        Raises:
            ConfigurationError: If the configuration is invalid.
        """
        raise NotImplementedError

    @abc.abstractmethod
    def execute_step(
        self, config: Mapping[str, Any], context: ExecutionContext
    ) -> Dict[str, Any]:
        """Run the step and return its result.

        The result must contain a ``status`` entry; later steps can make
        themselves conditional on it. Exceptions fail the step.
        """
        raise NotImplementedError

"""Exception hierarchy for formflow."""

from __future__ import annotations


class FormflowError(Exception):
    """Base class for all errors raised by formflow."""


class WorkflowException(FormflowError):
    """A workflow could not be started or run."""


class ConfigurationError(WorkflowException):
    """A workflow definition or step configuration is invalid."""


class ExecutionError(WorkflowException):
    """A step could not be dispatched or returned an unusable result."""


class NotFoundError(FormflowError):
    """A submission, execution or workflow definition does not exist."""

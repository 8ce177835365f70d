"""formflow: workflow execution engine for form submissions."""

from .conditions import ConditionEvaluator
from .context import ExecutionContext
from .engine import WorkflowEngine, create_engine
from .exceptions import (
    ConfigurationError,
    ExecutionError,
    FormflowError,
    NotFoundError,
    WorkflowException,
)
from .handlers import StepHandler, StepHandlerRegistry, build_default_registry
from .models import FormSubmission, WorkflowDefinition, WorkflowExecution, WorkflowStep
from .persistence import get_repository
from .recorder import ExecutionRecorder
from .validator import DefinitionValidator

__version__ = "0.1.0"
__all__ = [
    "ConditionEvaluator",
    "ConfigurationError",
    "DefinitionValidator",
    "ExecutionContext",
    "ExecutionError",
    "ExecutionRecorder",
    "FormSubmission",
    "FormflowError",
    "NotFoundError",
    "StepHandler",
    "StepHandlerRegistry",
    "WorkflowDefinition",
    "WorkflowEngine",
    "WorkflowException",
    "WorkflowExecution",
    "WorkflowStep",
    "build_default_registry",
    "create_engine",
    "get_repository",
]

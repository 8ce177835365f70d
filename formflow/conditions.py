"""Step condition evaluation.

A step may carry a ``conditions`` map of condition kind to parameters::

    {"fieldEquals": {"country": "DE"}, "previousStepStatus": "SUCCESS"}

Every present kind must hold for the step to run. Unknown kinds are ignored.
When a condition cannot be parsed or evaluated, the evaluator fails open and
lets the step run.
"""

from __future__ import annotations

import logging
from typing import Annotated, Any, Dict, List, Literal, Mapping, Union

from pydantic import BaseModel, Field, TypeAdapter

from .context import ExecutionContext
from .models import WorkflowStep

logger = logging.getLogger(__name__)


def _as_text(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


class FieldEquals(BaseModel):
    """Submission fields must equal the expected string values."""

    kind: Literal["fieldEquals"] = "fieldEquals"
    fields: Dict[str, str]

    def is_met(self, step: WorkflowStep, context: ExecutionContext) -> bool:
        data = context.submission.data
        for name, expected in self.fields.items():
            actual = data.get(name)
            if actual is None or _as_text(actual) != expected:
                return False
        return True


class PreviousStepStatus(BaseModel):
    """The immediately preceding step must have reported ``status``."""

    kind: Literal["previousStepStatus"] = "previousStepStatus"
    status: str

    def is_met(self, step: WorkflowStep, context: ExecutionContext) -> bool:
        previous = context.step_result(step.order - 1)
        return previous is not None and previous.get("status") == self.status


StepCondition = Annotated[
    Union[FieldEquals, PreviousStepStatus], Field(discriminator="kind")
]

_condition_adapter = TypeAdapter(StepCondition)

# condition kind -> name of the model field holding its parameters
_PARAMETER_FIELDS = {
    "fieldEquals": "fields",
    "previousStepStatus": "status",
}


def parse_conditions(raw: Mapping[str, Any]) -> List[StepCondition]:
    """Convert a raw ``conditions`` map into typed conditions.

    Raises:
        pydantic.ValidationError: If the parameters of a known kind are
            malformed.
    """
    conditions: List[StepCondition] = []
    for kind, params in raw.items():
        field = _PARAMETER_FIELDS.get(kind)
        if field is None:
            logger.debug(f"Ignoring unknown condition kind {kind!r}")
            continue
        conditions.append(_condition_adapter.validate_python({"kind": kind, field: params}))
    return conditions


class ConditionEvaluator:
    """Decides whether a step should run given the current context."""

    def should_run(self, step: WorkflowStep, context: ExecutionContext) -> bool:
        if not step.conditions:
            return True
        try:
            return all(
                condition.is_met(step, context)
                for condition in parse_conditions(step.conditions)
            )
        except Exception as e:
            logger.warning(
                f"Error evaluating conditions for step {step.order}: {e}. "
                "Executing step anyway."
            )
            return True

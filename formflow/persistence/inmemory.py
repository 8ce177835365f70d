"""In-memory implementation of the workflow repository."""

from __future__ import annotations

from typing import Dict, Optional

from ..models import FormSubmission, WorkflowDefinition, WorkflowExecution
from .repository import WorkflowRepository


class InMemoryWorkflowRepository(WorkflowRepository):
    """Store definitions, submissions and executions in local memory.

    Useful for tests or when no database is configured. Data is not
    persisted across process restarts. Records are copied on the way in and
    out, so callers only see what was last saved.
    """

    def __init__(self) -> None:
        self._definitions: Dict[str, WorkflowDefinition] = {}
        self._submissions: Dict[str, FormSubmission] = {}
        self._executions: Dict[str, WorkflowExecution] = {}

    # ------------------------------------------------------------------
    # Definitions
    async def save_definition(self, definition: WorkflowDefinition) -> WorkflowDefinition:
        self._definitions[definition.id] = definition.model_copy(deep=True)
        return definition

    async def get_definition(self, definition_id: str) -> WorkflowDefinition | None:
        wf = self._definitions.get(definition_id)
        return wf.model_copy(deep=True) if wf else None

    async def list_definitions(self) -> list[WorkflowDefinition]:
        return [wf.model_copy(deep=True) for wf in self._definitions.values()]

    async def find_definitions(
        self, form_id: str, active: Optional[bool] = None
    ) -> list[WorkflowDefinition]:
        return [
            wf.model_copy(deep=True)
            for wf in self._definitions.values()
            if wf.form_id == form_id and (active is None or wf.active == active)
        ]

    async def delete_definition(self, definition_id: str) -> None:
        self._definitions.pop(definition_id, None)

    # ------------------------------------------------------------------
    # Submissions
    async def save_submission(self, submission: FormSubmission) -> FormSubmission:
        self._submissions[submission.id] = submission.model_copy(deep=True)
        return submission

    async def get_submission(self, submission_id: str) -> FormSubmission | None:
        sub = self._submissions.get(submission_id)
        return sub.model_copy(deep=True) if sub else None

    # ------------------------------------------------------------------
    # Executions
    async def save_execution(self, execution: WorkflowExecution) -> WorkflowExecution:
        self._executions[execution.id] = execution.model_copy(deep=True)
        return execution

    async def get_execution(self, execution_id: str) -> WorkflowExecution | None:
        ex = self._executions.get(execution_id)
        return ex.model_copy(deep=True) if ex else None

    async def list_executions(self, submission_id: str) -> list[WorkflowExecution]:
        # newest first; equal start times keep the later-created record first
        executions = [
            ex.model_copy(deep=True)
            for ex in reversed(self._executions.values())
            if ex.submission_id == submission_id
        ]
        return sorted(executions, key=lambda ex: ex.start_time, reverse=True)

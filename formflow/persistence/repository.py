"""Repository abstractions for definitions, submissions and executions."""

from __future__ import annotations

from typing import Optional, Protocol

from ..models import FormSubmission, WorkflowDefinition, WorkflowExecution


class DefinitionStore(Protocol):
    """Protocol for workflow definition storage."""

    async def save_definition(self, definition: WorkflowDefinition) -> WorkflowDefinition:
        """Insert or replace a definition."""

    async def get_definition(self, definition_id: str) -> WorkflowDefinition | None:
        """Retrieve a definition by id."""

    async def list_definitions(self) -> list[WorkflowDefinition]:
        """Return all definitions in storage order."""

    async def find_definitions(
        self, form_id: str, active: Optional[bool] = None
    ) -> list[WorkflowDefinition]:
        """Return definitions bound to ``form_id`` in storage order.

        When ``active`` is given only definitions with that flag are returned.
        """

    async def delete_definition(self, definition_id: str) -> None:
        """Remove a definition."""


class SubmissionStore(Protocol):
    """Protocol for form submission storage."""

    async def save_submission(self, submission: FormSubmission) -> FormSubmission:
        """Insert or replace a submission."""

    async def get_submission(self, submission_id: str) -> FormSubmission | None:
        """Retrieve a submission by id."""


class ExecutionStore(Protocol):
    """Protocol for workflow execution storage."""

    async def save_execution(self, execution: WorkflowExecution) -> WorkflowExecution:
        """Insert or replace an execution record."""

    async def get_execution(self, execution_id: str) -> WorkflowExecution | None:
        """Retrieve an execution by id."""

    async def list_executions(self, submission_id: str) -> list[WorkflowExecution]:
        """Return executions of a submission, most recently started first."""


class WorkflowRepository(DefinitionStore, SubmissionStore, ExecutionStore, Protocol):
    """All storage the workflow engine needs, provided by one backend."""

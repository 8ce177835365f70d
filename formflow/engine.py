"""Workflow execution engine for form submissions."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator, Callable, Dict, Optional

from .conditions import ConditionEvaluator
from .config import FormflowConfig, load_config
from .context import ExecutionContext
from .exceptions import NotFoundError, WorkflowException
from .handlers import StepHandlerRegistry, build_default_registry
from .models import (
    PROCESSED,
    FormSubmission,
    WorkflowDefinition,
    WorkflowExecution,
    utcnow,
)
from .persistence import WorkflowRepository, get_repository
from .recorder import ExecutionRecorder
from .validator import DefinitionValidator

logger = logging.getLogger(__name__)


class StepFailed(WorkflowException):
    """Raised inside the step loop once a failing step has been recorded."""

    def __init__(self, order: int, message: str) -> None:
        super().__init__(f"Error in workflow step {order}: {message}")
        self.order = order


class WorkflowEngine:
    """Runs workflow definitions against form submissions.

    One call to :meth:`execute_workflow` selects the first active definition
    for the submission's form, runs its steps in order and records every step
    outcome on a :class:`WorkflowExecution`. A failing step halts the run;
    there is no retry and no compensation of earlier steps.

    Concurrent runs for the same submission are not coordinated unless
    ``serialize_submissions`` is set, in which case they queue on a
    per-submission lock.
    """

    def __init__(
        self,
        repository: WorkflowRepository,
        registry: StepHandlerRegistry,
        *,
        evaluator: Optional[ConditionEvaluator] = None,
        serialize_submissions: bool = False,
        checkpoint_steps: bool = False,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._repository = repository
        self._registry = registry
        self._validator = DefinitionValidator(registry)
        self._evaluator = evaluator or ConditionEvaluator()
        self._serialize_submissions = serialize_submissions
        self._checkpoint_steps = checkpoint_steps
        self._clock = clock
        self._submission_locks: Dict[str, asyncio.Lock] = {}
        self._lock_users: Dict[str, int] = {}

    @property
    def registry(self) -> StepHandlerRegistry:
        return self._registry

    @property
    def validator(self) -> DefinitionValidator:
        return self._validator

    @property
    def serialize_submissions(self) -> bool:
        return self._serialize_submissions

    @property
    def checkpoint_steps(self) -> bool:
        return self._checkpoint_steps

    # ------------------------------------------------------------------
    # Execution
    async def execute_workflow(self, submission_id: str) -> WorkflowExecution:
        """Run the active workflow of the submission's form.

        Returns:
            The persisted execution record, ``COMPLETED`` or ``FAILED``.

        Raises:
            NotFoundError: If the submission does not exist.
            WorkflowException: If no active workflow exists for its form.
        """
        async with self._submission_guard(submission_id):
            return await self._execute(submission_id)

    @asynccontextmanager
    async def _submission_guard(self, submission_id: str) -> AsyncIterator[None]:
        if not self._serialize_submissions:
            yield
            return
        lock = self._submission_locks.setdefault(submission_id, asyncio.Lock())
        self._lock_users[submission_id] = self._lock_users.get(submission_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            # drop the lock once no run holds or awaits it
            self._lock_users[submission_id] -= 1
            if not self._lock_users[submission_id]:
                del self._lock_users[submission_id]
                del self._submission_locks[submission_id]

    async def _execute(self, submission_id: str) -> WorkflowExecution:
        logger.info(f"Executing workflow for submission_id={submission_id}")

        submission = await self._repository.get_submission(submission_id)
        if submission is None:
            raise NotFoundError(f"Form submission not found with ID: {submission_id}")

        workflow = await self._select_workflow(submission)

        execution = WorkflowExecution(
            workflow_id=workflow.id,
            submission_id=submission.id,
            user_id=submission.user_id,
            start_time=self._clock(),
        )
        await self._repository.save_execution(execution)

        recorder = ExecutionRecorder(
            execution,
            repository=self._repository if self._checkpoint_steps else None,
            clock=self._clock,
        )
        try:
            await self._process_steps(workflow, submission, recorder)
            submission.status = PROCESSED
            submission.processed_at = self._clock()
            await self._repository.save_submission(submission)
        except Exception as e:
            recorder.fail(str(e))
            logger.error(
                f"Workflow execution {execution.id} failed for submission_id={submission_id}: {e}",
                exc_info=not isinstance(e, StepFailed),
            )
        else:
            recorder.complete()
            logger.info(
                f"Workflow execution {execution.id} completed for submission_id={submission_id}"
            )

        return await self._repository.save_execution(execution)

    async def _select_workflow(self, submission: FormSubmission) -> WorkflowDefinition:
        workflows = await self._repository.find_definitions(submission.form_id, active=True)
        if not workflows:
            logger.warning(f"No active workflow found for form_id={submission.form_id}")
            raise WorkflowException("No active workflow found for this form submission")
        if len(workflows) > 1:
            logger.debug(
                f"{len(workflows)} active workflows for form_id={submission.form_id}, "
                f"using {workflows[0].id}"
            )
        return workflows[0]

    async def _process_steps(
        self,
        workflow: WorkflowDefinition,
        submission: FormSubmission,
        recorder: ExecutionRecorder,
    ) -> None:
        context = ExecutionContext(submission)

        for step in sorted(workflow.steps, key=lambda s: s.order):
            logger.debug(f"Processing workflow step {step.order} (type: {step.type})")

            if not self._evaluator.should_run(step, context):
                logger.debug(f"Skipping step {step.order}: conditions not met")
                recorder.record_skipped(step.order)
                await recorder.checkpoint()
                continue

            try:
                result = self._registry.dispatch(step, context)
            except Exception as e:
                logger.error(
                    f"Error executing workflow step {step.order}: {e}", exc_info=True
                )
                recorder.record_error(step.order, str(e))
                await recorder.checkpoint()
                raise StepFailed(step.order, str(e)) from e

            recorder.record_result(step.order, result)
            context.add_step_result(step.order, result)
            await recorder.checkpoint()

    # ------------------------------------------------------------------
    # Execution queries
    async def get_execution(self, execution_id: str) -> WorkflowExecution:
        execution = await self._repository.get_execution(execution_id)
        if execution is None:
            raise NotFoundError(f"Workflow execution not found with ID: {execution_id}")
        return execution

    async def get_execution_history(self, submission_id: str) -> list[WorkflowExecution]:
        """Executions of a submission, most recently started first."""
        return await self._repository.list_executions(submission_id)

    # ------------------------------------------------------------------
    # Definition administration
    async def get_definition(self, definition_id: str) -> WorkflowDefinition:
        definition = await self._repository.get_definition(definition_id)
        if definition is None:
            raise NotFoundError(f"Workflow not found with ID: {definition_id}")
        return definition

    async def list_definitions(self, form_id: Optional[str] = None) -> list[WorkflowDefinition]:
        if form_id is None:
            return await self._repository.list_definitions()
        return await self._repository.find_definitions(form_id)

    async def create_definition(self, definition: WorkflowDefinition) -> WorkflowDefinition:
        logger.info(f"Creating workflow '{definition.name}'")
        now = self._clock()
        candidate = definition.model_copy(update={"created_at": now, "updated_at": now})
        self._validator.validate(candidate)
        return await self._repository.save_definition(candidate)

    async def update_definition(
        self, definition_id: str, definition: WorkflowDefinition
    ) -> WorkflowDefinition:
        logger.info(f"Updating workflow {definition_id}")
        existing = await self.get_definition(definition_id)
        candidate = existing.model_copy(
            update={
                "name": definition.name,
                "description": definition.description,
                "form_id": definition.form_id,
                "steps": definition.steps,
                "active": definition.active,
                "updated_at": self._clock(),
            }
        )
        self._validator.validate(candidate)
        return await self._repository.save_definition(candidate)

    async def delete_definition(self, definition_id: str) -> None:
        logger.info(f"Deleting workflow {definition_id}")
        await self.get_definition(definition_id)
        await self._repository.delete_definition(definition_id)

    async def set_definition_active(
        self, definition_id: str, active: bool
    ) -> WorkflowDefinition:
        """Activate or deactivate a definition.

        Activation re-validates the definition against the current registry;
        deactivation always succeeds.
        """
        logger.info(f"Setting workflow {definition_id} active status to {active}")
        existing = await self.get_definition(definition_id)
        candidate = existing.model_copy(
            update={"active": active, "updated_at": self._clock()}
        )
        if active:
            self._validator.validate(candidate)
        return await self._repository.save_definition(candidate)


def create_engine(
    repository: Optional[WorkflowRepository] = None,
    registry: Optional[StepHandlerRegistry] = None,
    config: Optional[FormflowConfig] = None,
) -> WorkflowEngine:
    """Build an engine wired from configuration."""

    config = config or load_config()
    return WorkflowEngine(
        repository or get_repository(),
        registry or build_default_registry(config),
        serialize_submissions=config.engine.serialize_submissions,
        checkpoint_steps=config.engine.checkpoint_steps,
    )

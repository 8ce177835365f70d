"""Append-only ledger of step results inside one execution."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING, Any, Callable, Dict, Mapping, Optional

from .exceptions import ExecutionError
from .models import COMPLETED, ERROR, FAILED, SKIPPED, WorkflowExecution, utcnow

if TYPE_CHECKING:
    from .persistence import WorkflowRepository

logger = logging.getLogger(__name__)


class ExecutionRecorder:
    """Records step outcomes on a :class:`WorkflowExecution`.

    Each step order can be recorded once and an execution can be finalized
    once. When a repository is given, :meth:`checkpoint` persists the record
    after every step.
    """

    def __init__(
        self,
        execution: WorkflowExecution,
        repository: Optional["WorkflowRepository"] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.execution = execution
        self._repository = repository
        self._clock = clock

    def _record(self, order: int, result: Mapping[str, Any]) -> Dict[str, Any]:
        if self.execution.is_finished:
            raise ExecutionError(f"execution {self.execution.id} is already finalized")
        key = str(order)
        if key in self.execution.step_results:
            raise ExecutionError(f"result for step {order} is already recorded")
        entry = dict(result)
        self.execution.step_results[key] = entry
        return entry

    def record_result(self, order: int, result: Mapping[str, Any]) -> Dict[str, Any]:
        return self._record(order, result)

    def record_skipped(self, order: int) -> Dict[str, Any]:
        return self._record(order, {"status": SKIPPED})

    def record_error(self, order: int, message: str) -> Dict[str, Any]:
        return self._record(order, {"status": ERROR, "message": message})

    async def checkpoint(self) -> None:
        if self._repository is not None:
            await self._repository.save_execution(self.execution)

    def complete(self) -> WorkflowExecution:
        self._finalize(COMPLETED)
        return self.execution

    def fail(self, message: str) -> WorkflowExecution:
        self._finalize(FAILED)
        self.execution.error_message = message
        return self.execution

    def _finalize(self, status: str) -> None:
        if self.execution.is_finished:
            raise ExecutionError(
                f"execution {self.execution.id} is already {self.execution.status}"
            )
        self.execution.status = status
        self.execution.end_time = self._clock()
        logger.debug(f"Execution {self.execution.id} finalized as {status}")

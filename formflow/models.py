"""Data models for workflow definitions, submissions and executions."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

ExecutionStatus = Literal["RUNNING", "COMPLETED", "FAILED"]

RUNNING = "RUNNING"
COMPLETED = "COMPLETED"
FAILED = "FAILED"

SUBMITTED = "SUBMITTED"
PROCESSED = "PROCESSED"

SKIPPED = "SKIPPED"
ERROR = "ERROR"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


class WorkflowStep(BaseModel):
    """One unit of work in a workflow definition."""

    order: int
    type: str
    config: Dict[str, Any] = Field(default_factory=dict)
    conditions: Optional[Dict[str, Any]] = None


class WorkflowDefinition(BaseModel):
    """Ordered, named set of steps bound to a form."""

    id: str = Field(default_factory=new_id)
    name: str
    description: Optional[str] = None
    form_id: str
    steps: List[WorkflowStep] = Field(default_factory=list)
    active: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    created_by: Optional[str] = None

    @property
    def is_executable(self) -> bool:
        """``True`` when the definition is active and has at least one step."""
        return self.active and bool(self.steps)


class FormSubmission(BaseModel):
    """Data a user submitted through a form."""

    id: str = Field(default_factory=new_id)
    form_id: str
    user_id: Optional[str] = None
    data: Dict[str, Any] = Field(default_factory=dict)
    # DRAFT, SUBMITTED, PROCESSING, PROCESSED, REJECTED or ERROR
    status: str = SUBMITTED
    submitted_at: datetime = Field(default_factory=utcnow)
    processed_at: Optional[datetime] = None


class WorkflowExecution(BaseModel):
    """One run of a workflow definition against one submission."""

    id: str = Field(default_factory=new_id)
    workflow_id: str
    submission_id: str
    user_id: Optional[str] = None
    status: ExecutionStatus = RUNNING
    step_results: Dict[str, Dict[str, Any]] = Field(default_factory=dict)
    start_time: datetime = Field(default_factory=utcnow)
    end_time: Optional[datetime] = None
    error_message: Optional[str] = None

    @property
    def is_finished(self) -> bool:
        return self.status != RUNNING

"""PostgreSQL implementation of the workflow repository."""

from __future__ import annotations

import json
from typing import Any, Optional

import asyncpg

from ..models import FormSubmission, WorkflowDefinition, WorkflowExecution
from .repository import WorkflowRepository


def _json(value: Any) -> Any:
    # asyncpg hands JSONB columns back as text unless a codec is registered
    return json.loads(value) if isinstance(value, str) else value


class PostgresWorkflowRepository(WorkflowRepository):
    """Persist workflow state using PostgreSQL."""

    def __init__(self, dsn: str):
        self._dsn = dsn
        self._initialized = False

    async def _connect(self) -> asyncpg.Connection:
        conn = await asyncpg.connect(self._dsn)
        if not self._initialized:
            await self._ensure_schema(conn)
            self._initialized = True
        return conn

    async def _ensure_schema(self, conn: asyncpg.Connection) -> None:
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS workflow_definitions (
                seq BIGSERIAL PRIMARY KEY,
                id TEXT NOT NULL UNIQUE,
                name TEXT NOT NULL,
                description TEXT,
                form_id TEXT NOT NULL,
                steps JSONB NOT NULL,
                active BOOLEAN NOT NULL,
                created_at TIMESTAMPTZ,
                updated_at TIMESTAMPTZ,
                created_by TEXT
            )
            """
        )
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS form_submissions (
                id TEXT PRIMARY KEY,
                form_id TEXT NOT NULL,
                user_id TEXT,
                data JSONB NOT NULL,
                status TEXT NOT NULL,
                submitted_at TIMESTAMPTZ NOT NULL,
                processed_at TIMESTAMPTZ
            )
            """
        )
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS workflow_executions (
                seq BIGSERIAL PRIMARY KEY,
                id TEXT NOT NULL UNIQUE,
                workflow_id TEXT NOT NULL,
                submission_id TEXT NOT NULL,
                user_id TEXT,
                status TEXT NOT NULL,
                step_results JSONB NOT NULL,
                start_time TIMESTAMPTZ NOT NULL,
                end_time TIMESTAMPTZ,
                error_message TEXT
            )
            """
        )

    @staticmethod
    def _to_definition(row: asyncpg.Record) -> WorkflowDefinition:
        return WorkflowDefinition(
            id=row["id"],
            name=row["name"],
            description=row["description"],
            form_id=row["form_id"],
            steps=_json(row["steps"]),
            active=row["active"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            created_by=row["created_by"],
        )

    @staticmethod
    def _to_submission(row: asyncpg.Record) -> FormSubmission:
        return FormSubmission(
            id=row["id"],
            form_id=row["form_id"],
            user_id=row["user_id"],
            data=_json(row["data"]),
            status=row["status"],
            submitted_at=row["submitted_at"],
            processed_at=row["processed_at"],
        )

    @staticmethod
    def _to_execution(row: asyncpg.Record) -> WorkflowExecution:
        return WorkflowExecution(
            id=row["id"],
            workflow_id=row["workflow_id"],
            submission_id=row["submission_id"],
            user_id=row["user_id"],
            status=row["status"],
            step_results=_json(row["step_results"]),
            start_time=row["start_time"],
            end_time=row["end_time"],
            error_message=row["error_message"],
        )

    # ------------------------------------------------------------------
    # Definitions
    async def save_definition(self, definition: WorkflowDefinition) -> WorkflowDefinition:
        dumped = definition.model_dump(mode="json")
        conn = await self._connect()
        try:
            await conn.execute(
                """
                INSERT INTO workflow_definitions
                    (id, name, description, form_id, steps, active, created_at, updated_at, created_by)
                VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9)
                ON CONFLICT (id) DO UPDATE SET
                    name = EXCLUDED.name,
                    description = EXCLUDED.description,
                    form_id = EXCLUDED.form_id,
                    steps = EXCLUDED.steps,
                    active = EXCLUDED.active,
                    created_at = EXCLUDED.created_at,
                    updated_at = EXCLUDED.updated_at,
                    created_by = EXCLUDED.created_by
                """,
                definition.id,
                definition.name,
                definition.description,
                definition.form_id,
                json.dumps(dumped["steps"]),
                definition.active,
                definition.created_at,
                definition.updated_at,
                definition.created_by,
            )
        finally:
            await conn.close()
        return definition

    async def get_definition(self, definition_id: str) -> WorkflowDefinition | None:
        conn = await self._connect()
        try:
            row = await conn.fetchrow(
                "SELECT * FROM workflow_definitions WHERE id = $1", definition_id
            )
        finally:
            await conn.close()
        return self._to_definition(row) if row else None

    async def list_definitions(self) -> list[WorkflowDefinition]:
        conn = await self._connect()
        try:
            rows = await conn.fetch("SELECT * FROM workflow_definitions ORDER BY seq")
        finally:
            await conn.close()
        return [self._to_definition(r) for r in rows]

    async def find_definitions(
        self, form_id: str, active: Optional[bool] = None
    ) -> list[WorkflowDefinition]:
        conn = await self._connect()
        try:
            if active is None:
                rows = await conn.fetch(
                    "SELECT * FROM workflow_definitions WHERE form_id = $1 ORDER BY seq",
                    form_id,
                )
            else:
                rows = await conn.fetch(
                    "SELECT * FROM workflow_definitions WHERE form_id = $1 AND active = $2 ORDER BY seq",
                    form_id,
                    active,
                )
        finally:
            await conn.close()
        return [self._to_definition(r) for r in rows]

    async def delete_definition(self, definition_id: str) -> None:
        conn = await self._connect()
        try:
            await conn.execute(
                "DELETE FROM workflow_definitions WHERE id = $1", definition_id
            )
        finally:
            await conn.close()

    # ------------------------------------------------------------------
    # Submissions
    async def save_submission(self, submission: FormSubmission) -> FormSubmission:
        dumped = submission.model_dump(mode="json")
        conn = await self._connect()
        try:
            await conn.execute(
                """
                INSERT INTO form_submissions
                    (id, form_id, user_id, data, status, submitted_at, processed_at)
                VALUES ($1, $2, $3, $4, $5, $6, $7)
                ON CONFLICT (id) DO UPDATE SET
                    form_id = EXCLUDED.form_id,
                    user_id = EXCLUDED.user_id,
                    data = EXCLUDED.data,
                    status = EXCLUDED.status,
                    submitted_at = EXCLUDED.submitted_at,
                    processed_at = EXCLUDED.processed_at
                """,
                submission.id,
                submission.form_id,
                submission.user_id,
                json.dumps(dumped["data"]),
                submission.status,
                submission.submitted_at,
                submission.processed_at,
            )
        finally:
            await conn.close()
        return submission

    async def get_submission(self, submission_id: str) -> FormSubmission | None:
        conn = await self._connect()
        try:
            row = await conn.fetchrow(
                "SELECT * FROM form_submissions WHERE id = $1", submission_id
            )
        finally:
            await conn.close()
        return self._to_submission(row) if row else None

    # ------------------------------------------------------------------
    # Executions
    async def save_execution(self, execution: WorkflowExecution) -> WorkflowExecution:
        dumped = execution.model_dump(mode="json")
        conn = await self._connect()
        try:
            await conn.execute(
                """
                INSERT INTO workflow_executions
                    (id, workflow_id, submission_id, user_id, status, step_results,
                     start_time, end_time, error_message)
                VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9)
                ON CONFLICT (id) DO UPDATE SET
                    status = EXCLUDED.status,
                    step_results = EXCLUDED.step_results,
                    end_time = EXCLUDED.end_time,
                    error_message = EXCLUDED.error_message
                """,
                execution.id,
                execution.workflow_id,
                execution.submission_id,
                execution.user_id,
                execution.status,
                json.dumps(dumped["step_results"]),
                execution.start_time,
                execution.end_time,
                execution.error_message,
            )
        finally:
            await conn.close()
        return execution

    async def get_execution(self, execution_id: str) -> WorkflowExecution | None:
        conn = await self._connect()
        try:
            row = await conn.fetchrow(
                "SELECT * FROM workflow_executions WHERE id = $1", execution_id
            )
        finally:
            await conn.close()
        return self._to_execution(row) if row else None

    async def list_executions(self, submission_id: str) -> list[WorkflowExecution]:
        conn = await self._connect()
        try:
            rows = await conn.fetch(
                "SELECT * FROM workflow_executions WHERE submission_id = $1 ORDER BY start_time DESC, seq DESC",
                submission_id,
            )
        finally:
            await conn.close()
        return [self._to_execution(r) for r in rows]

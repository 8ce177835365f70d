"""SQLite implementation of the workflow repository."""

from __future__ import annotations

import asyncio
import json
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from ..models import FormSubmission, WorkflowDefinition, WorkflowExecution
from .repository import WorkflowRepository


def _iso(value: Optional[datetime]) -> Optional[str]:
    # UTC with a fixed width so that text order matches time order
    if value is None:
        return None
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc)
    return value.isoformat(timespec="microseconds")


class SQLiteWorkflowRepository(WorkflowRepository):
    """Persist workflow state using SQLite."""

    def __init__(self, db_path: str | Path):
        self.db_path = str(db_path)
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._ensure_schema()

    # ------------------------------------------------------------------
    # Schema management
    def _ensure_schema(self) -> None:
        cur = self._conn.cursor()
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS workflow_definitions (
                seq INTEGER PRIMARY KEY AUTOINCREMENT,
                id TEXT NOT NULL UNIQUE,
                name TEXT NOT NULL,
                description TEXT,
                form_id TEXT NOT NULL,
                steps TEXT NOT NULL,
                active INTEGER NOT NULL,
                created_at TEXT,
                updated_at TEXT,
                created_by TEXT
            )
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS form_submissions (
                id TEXT PRIMARY KEY,
                form_id TEXT NOT NULL,
                user_id TEXT,
                data TEXT NOT NULL,
                status TEXT NOT NULL,
                submitted_at TEXT NOT NULL,
                processed_at TEXT
            )
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS workflow_executions (
                seq INTEGER PRIMARY KEY AUTOINCREMENT,
                id TEXT NOT NULL UNIQUE,
                workflow_id TEXT NOT NULL,
                submission_id TEXT NOT NULL,
                user_id TEXT,
                status TEXT NOT NULL,
                step_results TEXT NOT NULL,
                start_time TEXT NOT NULL,
                end_time TEXT,
                error_message TEXT
            )
            """
        )
        self._conn.commit()

    # ------------------------------------------------------------------
    # Helper methods
    def _execute(self, query: str, *params: Any) -> None:
        cur = self._conn.cursor()
        cur.execute(query, params)
        self._conn.commit()

    def _fetchone(self, query: str, *params: Any) -> sqlite3.Row | None:
        cur = self._conn.cursor()
        cur.execute(query, params)
        return cur.fetchone()

    def _fetchall(self, query: str, *params: Any) -> list[sqlite3.Row]:
        cur = self._conn.cursor()
        cur.execute(query, params)
        return cur.fetchall()

    @staticmethod
    def _to_definition(row: sqlite3.Row) -> WorkflowDefinition:
        return WorkflowDefinition(
            id=row["id"],
            name=row["name"],
            description=row["description"],
            form_id=row["form_id"],
            steps=json.loads(row["steps"]),
            active=bool(row["active"]),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            created_by=row["created_by"],
        )

    @staticmethod
    def _to_submission(row: sqlite3.Row) -> FormSubmission:
        return FormSubmission(
            id=row["id"],
            form_id=row["form_id"],
            user_id=row["user_id"],
            data=json.loads(row["data"]),
            status=row["status"],
            submitted_at=row["submitted_at"],
            processed_at=row["processed_at"],
        )

    @staticmethod
    def _to_execution(row: sqlite3.Row) -> WorkflowExecution:
        return WorkflowExecution(
            id=row["id"],
            workflow_id=row["workflow_id"],
            submission_id=row["submission_id"],
            user_id=row["user_id"],
            status=row["status"],
            step_results=json.loads(row["step_results"]),
            start_time=row["start_time"],
            end_time=row["end_time"],
            error_message=row["error_message"],
        )

    # ------------------------------------------------------------------
    # Definitions
    async def save_definition(self, definition: WorkflowDefinition) -> WorkflowDefinition:
        dumped = definition.model_dump(mode="json")
        await asyncio.to_thread(
            self._execute,
            """
            INSERT INTO workflow_definitions
                (id, name, description, form_id, steps, active, created_at, updated_at, created_by)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                name = excluded.name,
                description = excluded.description,
                form_id = excluded.form_id,
                steps = excluded.steps,
                active = excluded.active,
                created_at = excluded.created_at,
                updated_at = excluded.updated_at,
                created_by = excluded.created_by
            """,
            definition.id,
            definition.name,
            definition.description,
            definition.form_id,
            json.dumps(dumped["steps"]),
            int(definition.active),
            _iso(definition.created_at),
            _iso(definition.updated_at),
            definition.created_by,
        )
        return definition

    async def get_definition(self, definition_id: str) -> WorkflowDefinition | None:
        row = await asyncio.to_thread(
            self._fetchone,
            "SELECT * FROM workflow_definitions WHERE id = ?",
            definition_id,
        )
        return self._to_definition(row) if row else None

    async def list_definitions(self) -> list[WorkflowDefinition]:
        rows = await asyncio.to_thread(
            self._fetchall, "SELECT * FROM workflow_definitions ORDER BY seq"
        )
        return [self._to_definition(r) for r in rows]

    async def find_definitions(
        self, form_id: str, active: Optional[bool] = None
    ) -> list[WorkflowDefinition]:
        if active is None:
            rows = await asyncio.to_thread(
                self._fetchall,
                "SELECT * FROM workflow_definitions WHERE form_id = ? ORDER BY seq",
                form_id,
            )
        else:
            rows = await asyncio.to_thread(
                self._fetchall,
                "SELECT * FROM workflow_definitions WHERE form_id = ? AND active = ? ORDER BY seq",
                form_id,
                int(active),
            )
        return [self._to_definition(r) for r in rows]

    async def delete_definition(self, definition_id: str) -> None:
        await asyncio.to_thread(
            self._execute,
            "DELETE FROM workflow_definitions WHERE id = ?",
            definition_id,
        )

    # ------------------------------------------------------------------
    # Submissions
    async def save_submission(self, submission: FormSubmission) -> FormSubmission:
        dumped = submission.model_dump(mode="json")
        await asyncio.to_thread(
            self._execute,
            """
            INSERT OR REPLACE INTO form_submissions
                (id, form_id, user_id, data, status, submitted_at, processed_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            submission.id,
            submission.form_id,
            submission.user_id,
            json.dumps(dumped["data"]),
            submission.status,
            _iso(submission.submitted_at),
            _iso(submission.processed_at),
        )
        return submission

    async def get_submission(self, submission_id: str) -> FormSubmission | None:
        row = await asyncio.to_thread(
            self._fetchone,
            "SELECT * FROM form_submissions WHERE id = ?",
            submission_id,
        )
        return self._to_submission(row) if row else None

    # ------------------------------------------------------------------
    # Executions
    async def save_execution(self, execution: WorkflowExecution) -> WorkflowExecution:
        dumped = execution.model_dump(mode="json")
        await asyncio.to_thread(
            self._execute,
            """
            INSERT INTO workflow_executions
                (id, workflow_id, submission_id, user_id, status, step_results,
                 start_time, end_time, error_message)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                status = excluded.status,
                step_results = excluded.step_results,
                end_time = excluded.end_time,
                error_message = excluded.error_message
            """,
            execution.id,
            execution.workflow_id,
            execution.submission_id,
            execution.user_id,
            execution.status,
            json.dumps(dumped["step_results"]),
            _iso(execution.start_time),
            _iso(execution.end_time),
            execution.error_message,
        )
        return execution

    async def get_execution(self, execution_id: str) -> WorkflowExecution | None:
        row = await asyncio.to_thread(
            self._fetchone,
            "SELECT * FROM workflow_executions WHERE id = ?",
            execution_id,
        )
        return self._to_execution(row) if row else None

    async def list_executions(self, submission_id: str) -> list[WorkflowExecution]:
        rows = await asyncio.to_thread(
            self._fetchall,
            """
            SELECT * FROM workflow_executions WHERE submission_id = ?
            ORDER BY start_time DESC, seq DESC
            """,
            submission_id,
        )
        return [self._to_execution(r) for r in rows]

"""Storage backends for workflow definitions, submissions and executions.

The backend is chosen from a database URL::

    (none)                      in-memory, lost on exit
    sqlite://<path>             SQLite file
    postgresql://user@host/db   PostgreSQL (``postgres://`` works too)
"""

from __future__ import annotations

import logging
from typing import Optional

from ..config import FormflowConfig, load_config
from .inmemory import InMemoryWorkflowRepository
from .postgres import PostgresWorkflowRepository
from .repository import (
    DefinitionStore,
    ExecutionStore,
    SubmissionStore,
    WorkflowRepository,
)
from .sqlite import SQLiteWorkflowRepository

logger = logging.getLogger(__name__)

_repository_instance: WorkflowRepository | None = None


def open_repository(database_url: Optional[str]) -> WorkflowRepository:
    """Create a new repository for ``database_url``.

    Raises:
        ValueError: If the URL names an unsupported backend or no SQLite path.
    """
    if not database_url:
        return InMemoryWorkflowRepository()

    scheme, _, location = database_url.partition("://")
    if scheme == "sqlite" and location:
        return SQLiteWorkflowRepository(location)
    if scheme in ("postgres", "postgresql"):
        return PostgresWorkflowRepository(database_url)
    raise ValueError(f"Unsupported database URL: {database_url}")


def get_repository(
    database_url: Optional[str] = None, config: Optional[FormflowConfig] = None
) -> WorkflowRepository:
    """Return the repository shared by the CLI and :func:`create_engine`.

    The first call without arguments opens the repository configured through
    :func:`~formflow.config.load_config`, including its ``FORMFLOW_DATABASE_URL``
    / ``DATABASE_URL`` overrides, and later calls reuse it. Passing
    ``database_url`` or ``config`` opens a new repository that replaces the
    shared one.
    """

    global _repository_instance
    if _repository_instance is not None and database_url is None and config is None:
        return _repository_instance

    if database_url is None:
        database_url = (config or load_config()).database_url
    _repository_instance = open_repository(database_url)
    logger.info(f"Using {type(_repository_instance).__name__} for workflow storage")
    return _repository_instance


__all__ = [
    "DefinitionStore",
    "SubmissionStore",
    "ExecutionStore",
    "WorkflowRepository",
    "InMemoryWorkflowRepository",
    "SQLiteWorkflowRepository",
    "PostgresWorkflowRepository",
    "get_repository",
    "open_repository",
]

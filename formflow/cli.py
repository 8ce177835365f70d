"""Command line interface for managing and running form workflows."""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import NoReturn, Optional

import typer
import yaml
from pydantic import ValidationError

from formflow.config import load_config
from formflow.engine import WorkflowEngine, create_engine
from formflow.exceptions import FormflowError
from formflow.models import COMPLETED, FormSubmission, WorkflowDefinition, WorkflowExecution
from formflow.persistence import get_repository

app = typer.Typer(help="CLI for formflow workflows")

# Command groups
workflow_app = typer.Typer(help="Commands for managing workflow definitions")
submission_app = typer.Typer(help="Commands for managing form submissions")
execution_app = typer.Typer(help="Commands for running and inspecting executions")

app.add_typer(workflow_app, name="workflow")
app.add_typer(submission_app, name="submission")
app.add_typer(execution_app, name="execution")


@app.callback()
def main() -> None:
    """formflow CLI entry point."""
    config = load_config()
    logging.basicConfig(
        level=config.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _engine() -> WorkflowEngine:
    return create_engine()


def _fail(message: str) -> NoReturn:
    typer.secho(message, fg=typer.colors.RED)
    raise typer.Exit(code=1)


def _load_definition(path: Path) -> WorkflowDefinition:
    if not path.exists():
        _fail(f"File not found: {path}")
    try:
        data = yaml.safe_load(path.read_text()) or {}
        return WorkflowDefinition.model_validate(data)
    except (yaml.YAMLError, ValidationError) as exc:
        _fail(f"Invalid workflow file {path}: {exc}")


def _echo_definition(definition: WorkflowDefinition) -> None:
    state = "active" if definition.active else "inactive"
    typer.echo(f"Workflow {definition.id}: {definition.name} ({state})")
    typer.echo(f"Form: {definition.form_id}")
    if definition.description:
        typer.echo(f"Description: {definition.description}")
    for step in definition.steps:
        line = f"  {step.order}. {step.type}"
        if step.conditions:
            line += f" if {json.dumps(step.conditions)}"
        typer.echo(line)


def _echo_execution(execution: WorkflowExecution) -> None:
    typer.echo(f"Execution {execution.id}: {execution.status}")
    typer.echo(f"Workflow: {execution.workflow_id}")
    typer.echo(f"Submission: {execution.submission_id}")
    typer.echo(f"Started: {execution.start_time}")
    if execution.end_time:
        typer.echo(f"Finished: {execution.end_time}")
    if execution.error_message:
        typer.echo(f"Error: {execution.error_message}")
    for order, result in execution.step_results.items():
        typer.echo(f"- step {order}: {json.dumps(result, default=str)}")


@workflow_app.command("validate")
def workflow_validate(path: Path) -> None:
    """
    Validate a workflow definition file without storing it.

    Example:
        formflow workflow validate ./workflows/order.yaml
    """
    definition = _load_definition(path)
    try:
        _engine().validator.validate(definition)
    except FormflowError as exc:
        _fail(f"Invalid workflow: {exc}")
    typer.echo(f"Workflow '{definition.name}' is valid")


@workflow_app.command("create")
def workflow_create(
    path: Path,
    activate: bool = typer.Option(False, help="Activate the workflow after creating it"),
) -> None:
    """
    Create a workflow definition from a YAML or JSON file.

    Example:
        formflow workflow create ./workflows/order.yaml --activate
    """
    definition = _load_definition(path)
    if activate:
        definition.active = True
    try:
        created = asyncio.run(_engine().create_definition(definition))
    except FormflowError as exc:
        _fail(f"Invalid workflow: {exc}")
    typer.echo(f"Created workflow {created.id}")


@workflow_app.command("update")
def workflow_update(definition_id: str, path: Path) -> None:
    """Replace a workflow definition with the contents of a file."""
    definition = _load_definition(path)
    try:
        updated = asyncio.run(_engine().update_definition(definition_id, definition))
    except FormflowError as exc:
        _fail(str(exc))
    typer.echo(f"Updated workflow {updated.id}")


@workflow_app.command("list")
def workflow_list(form_id: Optional[str] = typer.Option(None, help="Only this form")) -> None:
    """
    List workflow definitions.

    Example:
        formflow workflow list --form-id order-form
        # Output: 3f1c...    order-form    active    Order processing
    """
    definitions = asyncio.run(_engine().list_definitions(form_id))
    if not definitions:
        typer.echo("No workflows found")
        return
    for wf in definitions:
        state = "active" if wf.active else "inactive"
        typer.echo(f"{wf.id}\t{wf.form_id}\t{state}\t{wf.name}")


@workflow_app.command("show")
def workflow_show(definition_id: str) -> None:
    """Show a workflow definition and its steps."""
    try:
        definition = asyncio.run(_engine().get_definition(definition_id))
    except FormflowError:
        _fail("Workflow not found")
    _echo_definition(definition)


def _set_active(definition_id: str, active: bool) -> None:
    try:
        definition = asyncio.run(_engine().set_definition_active(definition_id, active))
    except FormflowError as exc:
        _fail(str(exc))
    state = "activated" if definition.active else "deactivated"
    typer.echo(f"Workflow {definition.id} {state}")


@workflow_app.command("activate")
def workflow_activate(definition_id: str) -> None:
    """Activate a workflow definition."""
    _set_active(definition_id, True)


@workflow_app.command("deactivate")
def workflow_deactivate(definition_id: str) -> None:
    """Deactivate a workflow definition."""
    _set_active(definition_id, False)


@workflow_app.command("delete")
def workflow_delete(definition_id: str) -> None:
    """Delete a workflow definition."""
    try:
        asyncio.run(_engine().delete_definition(definition_id))
    except FormflowError as exc:
        _fail(str(exc))
    typer.echo(f"Deleted workflow {definition_id}")


@submission_app.command("create")
def submission_create(
    form_id: str,
    user_id: Optional[str] = typer.Option(None, help="Submitting user"),
    data: str = typer.Option("{}", help="Submission data as a JSON object"),
) -> None:
    """
    Store a form submission so a workflow can be run for it.

    Example:
        formflow submission create order-form --user-id u1 --data '{"email": "a@b.c"}'
    """
    try:
        payload = json.loads(data)
    except json.JSONDecodeError as exc:
        _fail(f"Invalid JSON data: {exc}")
    if not isinstance(payload, dict):
        _fail("Submission data must be a JSON object")

    submission = FormSubmission(form_id=form_id, user_id=user_id, data=payload)
    asyncio.run(get_repository().save_submission(submission))
    typer.echo(f"Created submission {submission.id}")


@submission_app.command("show")
def submission_show(submission_id: str) -> None:
    """Show a stored form submission."""
    submission = asyncio.run(get_repository().get_submission(submission_id))
    if submission is None:
        _fail("Submission not found")
    typer.echo(f"Submission {submission.id}: {submission.status}")
    typer.echo(f"Form: {submission.form_id}")
    typer.echo(f"Data: {json.dumps(submission.data, default=str)}")
    if submission.processed_at:
        typer.echo(f"Processed: {submission.processed_at}")


@execution_app.command("run")
def execution_run(submission_id: str) -> None:
    """
    Run the active workflow for a submission and print the execution.

    Exits with code 1 when the submission or an active workflow is missing,
    or when the execution fails.

    Example:
        formflow execution run 9b2e...
        # Output: Execution 41d0...: COMPLETED
    """
    try:
        execution = asyncio.run(_engine().execute_workflow(submission_id))
    except FormflowError as exc:
        _fail(str(exc))
    _echo_execution(execution)
    if execution.status != COMPLETED:
        raise typer.Exit(code=1)


@execution_app.command("show")
def execution_show(execution_id: str) -> None:
    """Show an execution with its step results."""
    try:
        execution = asyncio.run(_engine().get_execution(execution_id))
    except FormflowError:
        _fail("Execution not found")
    _echo_execution(execution)


@execution_app.command("history")
def execution_history(submission_id: str) -> None:
    """List executions of a submission, most recent first."""
    executions = asyncio.run(_engine().get_execution_history(submission_id))
    if not executions:
        typer.echo("No executions found")
        return
    for ex in executions:
        typer.echo(f"{ex.id}\t{ex.status}\t{ex.start_time}")


@app.command("handlers")
def handlers_list() -> None:
    """List the registered step types."""
    for step_type in _engine().registry.types():
        typer.echo(step_type)


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    app()

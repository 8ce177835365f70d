import asyncio

from typer.testing import CliRunner

import formflow.persistence as persistence
from formflow.cli import app
from formflow.models import FormSubmission, WorkflowDefinition, WorkflowStep
from formflow.persistence import InMemoryWorkflowRepository

WORKFLOW_YAML = """
name: Order intake
form_id: order-form
description: Validate and tag incoming orders
steps:
  - order: 1
    type: validation
    config:
      requiredFields: [email]
  - order: 2
    type: transform
    config:
      set: {source: web}
    conditions:
      previousStepStatus: SUCCESS
"""


def _setup_repo(monkeypatch, tmp_path) -> InMemoryWorkflowRepository:
    monkeypatch.setenv("FORMFLOW_CONFIG", str(tmp_path / "absent.yaml"))
    repo = InMemoryWorkflowRepository()
    monkeypatch.setattr(persistence, "_repository_instance", repo)
    return repo


def _seed_workflow(repo: InMemoryWorkflowRepository) -> WorkflowDefinition:
    definition = WorkflowDefinition(
        name="Order intake",
        form_id="order-form",
        active=True,
        steps=[
            WorkflowStep(order=1, type="validation", config={"requiredFields": ["email"]}),
            WorkflowStep(order=2, type="transform", config={"set": {"source": "web"}}),
        ],
    )
    asyncio.run(repo.save_definition(definition))
    return definition


def test_workflow_create_and_list(monkeypatch, tmp_path):
    repo = _setup_repo(monkeypatch, tmp_path)
    path = tmp_path / "order.yaml"
    path.write_text(WORKFLOW_YAML)

    runner = CliRunner()
    result = runner.invoke(app, ["workflow", "create", str(path), "--activate"])
    assert (
        result.exit_code == 0
    ), f"Command failed with exit code {result.exit_code}. Output: {result.stdout}"
    [stored] = asyncio.run(repo.list_definitions())
    assert stored.active is True
    assert stored.id in result.stdout

    result = runner.invoke(app, ["workflow", "list", "--form-id", "order-form"])
    assert result.exit_code == 0
    assert stored.id in result.stdout
    assert "active" in result.stdout


def test_workflow_create_rejects_invalid_definition(monkeypatch, tmp_path):
    repo = _setup_repo(monkeypatch, tmp_path)
    path = tmp_path / "bad.yaml"
    path.write_text(WORKFLOW_YAML.replace("order: 2", "order: 3"))

    result = CliRunner().invoke(app, ["workflow", "create", str(path)])

    assert result.exit_code == 1
    assert "steps must be in sequential order" in result.stdout
    assert asyncio.run(repo.list_definitions()) == []


def test_workflow_validate_file(monkeypatch, tmp_path):
    _setup_repo(monkeypatch, tmp_path)
    path = tmp_path / "order.yaml"
    path.write_text(WORKFLOW_YAML)

    result = CliRunner().invoke(app, ["workflow", "validate", str(path)])

    assert result.exit_code == 0
    assert "is valid" in result.stdout


def test_workflow_show_details_and_missing(monkeypatch, tmp_path):
    repo = _setup_repo(monkeypatch, tmp_path)
    definition = _seed_workflow(repo)

    runner = CliRunner()
    result = runner.invoke(app, ["workflow", "show", definition.id])
    assert result.exit_code == 0
    assert "Order intake" in result.stdout
    assert "2. transform" in result.stdout

    result_missing = runner.invoke(app, ["workflow", "show", "missing-id"])
    assert result_missing.exit_code == 1
    assert "Workflow not found" in result_missing.stdout


def test_workflow_deactivate(monkeypatch, tmp_path):
    repo = _setup_repo(monkeypatch, tmp_path)
    definition = _seed_workflow(repo)

    result = CliRunner().invoke(app, ["workflow", "deactivate", definition.id])

    assert result.exit_code == 0
    assert asyncio.run(repo.get_definition(definition.id)).active is False


def test_submission_create_and_execution_run(monkeypatch, tmp_path):
    repo = _setup_repo(monkeypatch, tmp_path)
    _seed_workflow(repo)

    runner = CliRunner()
    result = runner.invoke(
        app,
        ["submission", "create", "order-form", "--user-id", "u1", "--data", '{"email": "a@b.c"}'],
    )
    assert result.exit_code == 0
    submission_id = result.stdout.strip().split()[-1]

    result = runner.invoke(app, ["execution", "run", submission_id])
    assert (
        result.exit_code == 0
    ), f"Command failed with exit code {result.exit_code}. Output: {result.stdout}"
    assert "COMPLETED" in result.stdout
    assert '"source": "web"' in result.stdout

    submission = asyncio.run(repo.get_submission(submission_id))
    assert submission.status == "PROCESSED"

    result = runner.invoke(app, ["execution", "history", submission_id])
    assert result.exit_code == 0
    assert "COMPLETED" in result.stdout


def test_execution_run_reports_failure(monkeypatch, tmp_path):
    repo = _setup_repo(monkeypatch, tmp_path)
    asyncio.run(
        repo.save_definition(
            WorkflowDefinition(
                name="broken",
                form_id="order-form",
                active=True,
                steps=[WorkflowStep(order=1, type="retired")],
            )
        )
    )
    submission = FormSubmission(form_id="order-form")
    asyncio.run(repo.save_submission(submission))

    result = CliRunner().invoke(app, ["execution", "run", submission.id])

    assert result.exit_code == 1
    assert "FAILED" in result.stdout
    assert "Error in workflow step 1: no handler found for step type: retired" in result.stdout


def test_execution_run_without_active_workflow(monkeypatch, tmp_path):
    repo = _setup_repo(monkeypatch, tmp_path)
    submission = FormSubmission(form_id="order-form")
    asyncio.run(repo.save_submission(submission))

    result = CliRunner().invoke(app, ["execution", "run", submission.id])

    assert result.exit_code == 1
    assert "No active workflow found" in result.stdout


def test_handlers_command_lists_step_types(monkeypatch, tmp_path):
    _setup_repo(monkeypatch, tmp_path)

    result = CliRunner().invoke(app, ["handlers"])

    assert result.exit_code == 0
    for step_type in ("validation", "notification", "webhook", "transform"):
        assert step_type in result.stdout

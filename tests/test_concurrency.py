"""Concurrent runs and interrupted runs."""

import asyncio

import pytest

from formflow import WorkflowEngine
from formflow.exceptions import NotFoundError
from formflow.persistence import InMemoryWorkflowRepository
from tests.fixtures.handlers import (
    CrashingHandler,
    ProcessCrash,
    StaticHandler,
    make_definition,
    make_registry,
    make_step,
    make_submission,
)


class YieldingRepository(InMemoryWorkflowRepository):
    """Yields to the event loop on reads and tracks overlapping runs."""

    def __init__(self) -> None:
        super().__init__()
        self.in_flight = 0
        self.max_in_flight = 0
        self.submission_writes = 0

    async def get_submission(self, submission_id):
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        await asyncio.sleep(0)
        return await super().get_submission(submission_id)

    async def save_submission(self, submission):
        self.submission_writes += 1
        return await super().save_submission(submission)

    async def save_execution(self, execution):
        if execution.is_finished:
            self.in_flight -= 1
        await asyncio.sleep(0)
        return await super().save_execution(execution)


async def _run_twice(serialize: bool):
    repo = YieldingRepository()
    handler = StaticHandler()
    engine = WorkflowEngine(
        repo, make_registry(ok=handler), serialize_submissions=serialize
    )
    await repo.save_definition(make_definition(make_step(1)))
    submission = make_submission()
    await repo.save_submission(submission)
    repo.submission_writes = 0

    results = await asyncio.gather(
        engine.execute_workflow(submission.id),
        engine.execute_workflow(submission.id),
    )
    return repo, handler, results


@pytest.mark.asyncio
async def test_same_submission_runs_overlap_without_lock():
    repo, handler, results = await _run_twice(serialize=False)

    assert repo.max_in_flight == 2
    assert [r.status for r in results] == ["COMPLETED", "COMPLETED"]
    assert len(handler.calls) == 2
    assert repo.submission_writes == 2


@pytest.mark.asyncio
async def test_same_submission_runs_are_serialized_with_lock():
    repo, handler, results = await _run_twice(serialize=True)

    assert repo.max_in_flight == 1
    assert [r.status for r in results] == ["COMPLETED", "COMPLETED"]
    assert len(handler.calls) == 2


@pytest.mark.asyncio
@pytest.mark.parametrize("checkpoint, expected_results", [(False, {}), (True, {"1": {"status": "SUCCESS"}})])
async def test_crash_mid_run_leaves_running_record(checkpoint, expected_results):
    repo = InMemoryWorkflowRepository()
    engine = WorkflowEngine(
        repo,
        make_registry(ok=StaticHandler(), crash=CrashingHandler()),
        checkpoint_steps=checkpoint,
    )
    await repo.save_definition(make_definition(make_step(1), make_step(2, "crash")))
    submission = make_submission()
    await repo.save_submission(submission)

    with pytest.raises(ProcessCrash):
        await engine.execute_workflow(submission.id)

    [stuck] = await engine.get_execution_history(submission.id)
    assert stuck.status == "RUNNING"
    assert stuck.end_time is None
    assert stuck.step_results == expected_results
    assert (await repo.get_submission(submission.id)).status == "SUBMITTED"


@pytest.mark.asyncio
async def test_submission_locks_are_released_after_runs():
    repo = InMemoryWorkflowRepository()
    engine = WorkflowEngine(
        repo, make_registry(ok=StaticHandler()), serialize_submissions=True
    )
    await repo.save_definition(make_definition(make_step(1)))
    submissions = [make_submission() for _ in range(5)]
    for submission in submissions:
        await repo.save_submission(submission)

    runs = [engine.execute_workflow(s.id) for s in submissions]
    runs += [engine.execute_workflow(submissions[0].id) for _ in range(3)]
    results = await asyncio.gather(*runs)

    assert all(r.status == "COMPLETED" for r in results)
    assert engine._submission_locks == {}
    assert engine._lock_users == {}


@pytest.mark.asyncio
async def test_submission_lock_released_when_run_raises():
    engine = WorkflowEngine(
        InMemoryWorkflowRepository(), make_registry(), serialize_submissions=True
    )

    with pytest.raises(NotFoundError):
        await engine.execute_workflow("missing")

    assert engine._submission_locks == {}

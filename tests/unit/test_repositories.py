import os
import uuid
from datetime import datetime, timedelta, timezone

import pytest

import genflow.persistence as persistence
from genflow.constants import JobStatus, TaskStatus
from genflow.persistence import (
    InMemoryJobRepository,
    JobRecord,
    PostgresJobRepository,
    SQLiteJobRepository,
    TaskRecord,
    get_repository,
)

PG_DSN = os.getenv("TEST_PG_DSN")


@pytest.fixture(params=["memory", "sqlite", "postgres"])
def repo(request, tmp_path):
    if request.param == "memory":
        yield InMemoryJobRepository()
    elif request.param == "sqlite":
        repository = SQLiteJobRepository(tmp_path / "jobs.db")
        yield repository
        repository.close()
    else:
        if not PG_DSN:
            pytest.skip("TEST_PG_DSN not set")
        yield PostgresJobRepository(PG_DSN)


def _job(steps=2, owner_id="user-1", workflow_type="script_and_characters", **kwargs):
    job = JobRecord(
        id=str(uuid.uuid4()),
        owner_id=owner_id,
        workflow_type=workflow_type,
        total_steps=steps,
        input_params={"textModel": "DeepSeek Chat", "title": "Dawn"},
        **kwargs,
    )
    tasks = [
        TaskRecord(
            id=str(uuid.uuid4()),
            job_id=job.id,
            step_index=i,
            step_type=f"step{i}",
            target_type="script",
        )
        for i in range(steps)
    ]
    return job, tasks


@pytest.mark.asyncio
async def test_create_and_read_back(repo):
    job, tasks = _job()
    await repo.create_job(job, tasks)

    stored = await repo.get_job(job.id)
    assert stored.status == JobStatus.PENDING
    assert stored.input_params == {"textModel": "DeepSeek Chat", "title": "Dawn"}
    assert stored.total_steps == 2
    assert stored.consumed is False

    stored_tasks = await repo.get_tasks(job.id)
    assert [t.step_index for t in stored_tasks] == [0, 1]
    assert all(t.status == TaskStatus.PENDING and t.progress == 0 for t in stored_tasks)
    assert await repo.get_job("missing") is None


@pytest.mark.asyncio
async def test_step_lifecycle(repo):
    job, tasks = _job()
    await repo.create_job(job, tasks)

    first = await repo.next_pending_task(job.id)
    assert first.id == tasks[0].id
    assert await repo.mark_job_running(job.id, 0)
    assert await repo.claim_task(first.id, {"textModel": "m"}, "m")
    assert not await repo.claim_task(first.id, {"textModel": "m"}, "m")

    assert await repo.update_task_progress(first.id, 150)
    processing = (await repo.get_tasks(job.id))[0]
    assert processing.status == TaskStatus.PROCESSING
    assert processing.progress == 100
    assert processing.input_params == {"textModel": "m"}
    assert processing.model_name == "m"
    assert processing.started_at is not None

    assert await repo.complete_task(first.id, {"content": "text"}, {"events": []})
    assert not await repo.complete_task(first.id, {"content": "again"})
    assert not await repo.update_task_progress(first.id, 10)
    assert await repo.completed_results(job.id) == {0: {"content": "text"}}

    second = await repo.next_pending_task(job.id)
    assert second.step_index == 1
    running = await repo.get_job(job.id)
    assert running.status == JobStatus.RUNNING
    assert running.started_at is not None


@pytest.mark.asyncio
async def test_failure_and_reopen(repo):
    job, tasks = _job()
    await repo.create_job(job, tasks)
    await repo.mark_job_running(job.id, 0)
    await repo.claim_task(tasks[0].id, {}, None)

    assert await repo.fail_task(tasks[0].id, "boom", {"events": [{"event": "task.failed"}]})
    assert await repo.mark_job_failed(job.id, "boom")
    assert not await repo.mark_job_completed(job.id)
    failed = await repo.get_job(job.id)
    assert failed.status == JobStatus.FAILED
    assert failed.error_message == "boom"
    assert failed.completed_at is not None

    assert await repo.reopen_job(job.id)
    assert not await repo.reopen_job(job.id)
    assert await repo.reset_failed_tasks(job.id) == 1
    reopened = await repo.get_job(job.id)
    assert reopened.status == JobStatus.RUNNING
    assert reopened.error_message is None
    assert reopened.completed_at is None
    task = (await repo.get_tasks(job.id))[0]
    assert task.status == TaskStatus.PENDING
    assert task.error_message is None
    assert task.progress == 0


@pytest.mark.asyncio
async def test_fail_task_respects_expected_status(repo):
    job, tasks = _job(steps=1)
    await repo.create_job(job, tasks)
    assert not await repo.fail_task(tasks[0].id, "not running yet")
    assert await repo.fail_task(tasks[0].id, "bad input", expected=(TaskStatus.PENDING,))
    assert (await repo.get_tasks(job.id))[0].error_message == "bad input"


@pytest.mark.asyncio
async def test_cancel_fences_open_work(repo):
    job, tasks = _job(steps=3)
    await repo.create_job(job, tasks)
    await repo.mark_job_running(job.id, 0)
    await repo.claim_task(tasks[0].id, {}, None)
    await repo.complete_task(tasks[0].id, {"ok": True})
    await repo.claim_task(tasks[1].id, {}, None)

    assert await repo.mark_job_cancelled(job.id, "cancelled by user")
    assert await repo.cancel_open_tasks(job.id, "workflow cancelled") == 2
    assert not await repo.complete_task(tasks[1].id, {"late": True})
    assert not await repo.mark_job_running(job.id, 1)
    assert not await repo.mark_job_cancelled(job.id, "again")

    statuses = [t.status for t in await repo.get_tasks(job.id)]
    assert statuses == [TaskStatus.COMPLETED, TaskStatus.FAILED, TaskStatus.FAILED]
    cancelled = await repo.get_job(job.id)
    assert cancelled.status == JobStatus.CANCELLED
    assert cancelled.error_message == "cancelled by user"


@pytest.mark.asyncio
async def test_completed_jobs_cannot_be_cancelled(repo):
    job, tasks = _job(steps=1)
    await repo.create_job(job, tasks)
    assert await repo.mark_job_completed(job.id)
    assert not await repo.mark_job_cancelled(job.id, "too late")


@pytest.mark.asyncio
async def test_mark_consumed(repo):
    job, tasks = _job(steps=1)
    await repo.create_job(job, tasks)
    assert not await repo.mark_consumed(job.id)
    await repo.mark_job_completed(job.id)
    assert not await repo.mark_consumed(job.id, "someone-else")
    assert await repo.mark_consumed(job.id, "user-1")
    assert not await repo.mark_consumed(job.id, "user-1")
    assert (await repo.get_job(job.id)).consumed is True


@pytest.mark.asyncio
async def test_list_jobs_filters_newest_first(repo):
    owner = f"owner-{uuid.uuid4()}"
    base = datetime(2026, 1, 1, tzinfo=timezone.utc)
    ids = []
    for i, workflow in enumerate(["script_only", "scene_video", "script_only"]):
        job, tasks = _job(
            steps=1, owner_id=owner, workflow_type=workflow, created_at=base + timedelta(minutes=i)
        )
        await repo.create_job(job, tasks)
        ids.append(job.id)
    await repo.mark_job_failed(ids[0], "x")

    assert [j.id for j in await repo.list_jobs(owner_id=owner)] == list(reversed(ids))
    assert [j.id for j in await repo.list_jobs(owner_id=owner, workflow_type="script_only")] == [
        ids[2],
        ids[0],
    ]
    assert [j.id for j in await repo.list_jobs(owner_id=owner, statuses=["failed"])] == [ids[0]]
    assert [
        j.id for j in await repo.list_jobs(owner_id=owner, statuses=[JobStatus.PENDING])
    ] == [ids[2], ids[1]]
    assert len(await repo.list_jobs(owner_id=owner, limit=1)) == 1


@pytest.mark.asyncio
async def test_memory_repository_returns_copies():
    repo = InMemoryJobRepository()
    job, tasks = _job(steps=1)
    await repo.create_job(job, tasks)
    fetched = await repo.get_job(job.id)
    fetched.input_params["title"] = "changed"
    assert (await repo.get_job(job.id)).input_params["title"] == "Dawn"
    with pytest.raises(ValueError):
        await repo.create_job(job, tasks)


def test_get_repository_selects_backend(tmp_path, monkeypatch):
    assert isinstance(get_repository(), InMemoryJobRepository)
    assert get_repository() is get_repository()

    persistence.reset_repository()
    monkeypatch.setenv("GENFLOW_DATABASE_URL", f"sqlite://{tmp_path / 'env.db'}")
    repository = get_repository()
    assert isinstance(repository, SQLiteJobRepository)
    repository.close()

    assert isinstance(get_repository("postgresql://u:p@localhost/db"), PostgresJobRepository)
    with pytest.raises(ValueError):
        get_repository("mysql://localhost/db")

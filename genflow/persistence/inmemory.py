"""In-memory implementation of the job repository."""

from __future__ import annotations

from typing import Any, Dict, Iterable, Optional, Sequence

from ..constants import JobStatus, TaskStatus
from .models import JobRecord, TaskRecord, utcnow
from .repository import (
    ACTIVE_JOB_STATUSES,
    CANCELLABLE_JOB_STATUSES,
    OPEN_TASK_STATUSES,
    JobRepository,
    clamp_progress,
)


class InMemoryJobRepository(JobRepository):
    """Store job state in local memory.

    Useful for tests or when no database is configured. Data is not
    persisted across process restarts. Records are copied on the way in and
    out so callers never mutate stored state by accident.
    """

    def __init__(self) -> None:
        self._jobs: Dict[str, JobRecord] = {}
        self._tasks: Dict[str, TaskRecord] = {}

    def _job_tasks(self, job_id: str) -> list[TaskRecord]:
        return sorted(
            (t for t in self._tasks.values() if t.job_id == job_id),
            key=lambda t: t.step_index,
        )

    # ------------------------------------------------------------------
    async def create_job(self, job: JobRecord, tasks: Sequence[TaskRecord]) -> None:
        if job.id in self._jobs:
            raise ValueError(f"job {job.id} already exists")
        self._jobs[job.id] = job.model_copy(deep=True)
        for task in tasks:
            self._tasks[task.id] = task.model_copy(deep=True)

    async def get_job(self, job_id: str) -> JobRecord | None:
        job = self._jobs.get(job_id)
        return job.model_copy(deep=True) if job else None

    async def list_jobs(
        self,
        owner_id: Optional[str] = None,
        project_id: Optional[str] = None,
        workflow_type: Optional[str] = None,
        statuses: Optional[Iterable[str]] = None,
        limit: int = 50,
    ) -> list[JobRecord]:
        wanted = {getattr(s, "value", s) for s in statuses} if statuses else None
        jobs = [
            j
            for j in self._jobs.values()
            if (owner_id is None or j.owner_id == owner_id)
            and (project_id is None or j.project_id == project_id)
            and (workflow_type is None or j.workflow_type == workflow_type)
            and (wanted is None or j.status.value in wanted)
        ]
        jobs.sort(key=lambda j: j.created_at, reverse=True)
        return [j.model_copy(deep=True) for j in jobs[:limit]]

    async def get_tasks(self, job_id: str) -> list[TaskRecord]:
        return [t.model_copy(deep=True) for t in self._job_tasks(job_id)]

    async def next_pending_task(self, job_id: str) -> TaskRecord | None:
        for task in self._job_tasks(job_id):
            if task.status == TaskStatus.PENDING:
                return task.model_copy(deep=True)
        return None

    async def completed_results(self, job_id: str) -> Dict[int, Dict[str, Any]]:
        return {
            t.step_index: dict(t.result_data or {})
            for t in self._job_tasks(job_id)
            if t.status == TaskStatus.COMPLETED
        }

    # ------------------------------------------------------------------
    def _transition_job(self, job_id: str, allowed: Iterable[JobStatus], **changes: Any) -> bool:
        job = self._jobs.get(job_id)
        if job is None or job.status not in tuple(allowed):
            return False
        for key, value in changes.items():
            setattr(job, key, value)
        return True

    async def mark_job_running(self, job_id: str, step_index: int) -> bool:
        job = self._jobs.get(job_id)
        if job is None or job.status not in ACTIVE_JOB_STATUSES:
            return False
        job.status = JobStatus.RUNNING
        job.current_step_index = step_index
        job.started_at = job.started_at or utcnow()
        return True

    async def mark_job_completed(self, job_id: str) -> bool:
        return self._transition_job(
            job_id,
            ACTIVE_JOB_STATUSES,
            status=JobStatus.COMPLETED,
            completed_at=utcnow(),
        )

    async def mark_job_failed(self, job_id: str, error: str) -> bool:
        return self._transition_job(
            job_id,
            ACTIVE_JOB_STATUSES,
            status=JobStatus.FAILED,
            error_message=error,
            completed_at=utcnow(),
        )

    async def mark_job_cancelled(self, job_id: str, reason: str) -> bool:
        return self._transition_job(
            job_id,
            CANCELLABLE_JOB_STATUSES,
            status=JobStatus.CANCELLED,
            error_message=reason,
            completed_at=utcnow(),
        )

    async def reopen_job(self, job_id: str) -> bool:
        return self._transition_job(
            job_id,
            (JobStatus.FAILED,),
            status=JobStatus.RUNNING,
            error_message=None,
            completed_at=None,
        )

    async def reset_failed_tasks(self, job_id: str) -> int:
        count = 0
        for task in self._job_tasks(job_id):
            if task.status == TaskStatus.FAILED:
                task.status = TaskStatus.PENDING
                task.progress = 0
                task.error_message = None
                task.result_data = None
                task.started_at = None
                task.completed_at = None
                count += 1
        return count

    async def cancel_open_tasks(self, job_id: str, message: str) -> int:
        count = 0
        now = utcnow()
        for task in self._job_tasks(job_id):
            if task.status in OPEN_TASK_STATUSES:
                task.status = TaskStatus.FAILED
                task.error_message = message
                task.completed_at = now
                count += 1
        return count

    # ------------------------------------------------------------------
    async def claim_task(
        self,
        task_id: str,
        input_params: Dict[str, Any],
        model_name: Optional[str] = None,
    ) -> bool:
        task = self._tasks.get(task_id)
        if task is None or task.status != TaskStatus.PENDING:
            return False
        task.status = TaskStatus.PROCESSING
        task.progress = 0
        task.input_params = dict(input_params)
        task.model_name = model_name
        task.started_at = utcnow()
        return True

    async def update_task_progress(self, task_id: str, progress: int) -> bool:
        task = self._tasks.get(task_id)
        if task is None or task.status != TaskStatus.PROCESSING:
            return False
        task.progress = clamp_progress(progress)
        return True

    async def complete_task(
        self,
        task_id: str,
        result: Dict[str, Any],
        trace: Optional[Dict[str, Any]] = None,
    ) -> bool:
        task = self._tasks.get(task_id)
        if task is None or task.status != TaskStatus.PROCESSING:
            return False
        task.status = TaskStatus.COMPLETED
        task.progress = 100
        task.result_data = dict(result)
        task.error_message = None
        task.trace = trace
        task.completed_at = utcnow()
        return True

    async def fail_task(
        self,
        task_id: str,
        error: str,
        trace: Optional[Dict[str, Any]] = None,
        expected: Sequence[TaskStatus] = (TaskStatus.PROCESSING,),
    ) -> bool:
        task = self._tasks.get(task_id)
        if task is None or task.status not in tuple(expected):
            return False
        task.status = TaskStatus.FAILED
        task.error_message = error
        if trace is not None:
            task.trace = trace
        task.completed_at = utcnow()
        return True

    async def mark_consumed(self, job_id: str, owner_id: Optional[str] = None) -> bool:
        job = self._jobs.get(job_id)
        if (
            job is None
            or job.status != JobStatus.COMPLETED
            or job.consumed
            or (owner_id is not None and job.owner_id != owner_id)
        ):
            return False
        job.consumed = True
        return True

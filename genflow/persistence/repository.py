"""Repository abstraction for job and task state persistence.

Every status transition is conditional: it only applies when the row is in
one of the expected source states and reports whether it did. The engine
relies on this to fence late writes from cancelled jobs and to let exactly
one caller claim a pending task.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, Optional, Protocol, Sequence

from ..constants import JobStatus, TaskStatus
from .models import JobRecord, TaskRecord

ACTIVE_JOB_STATUSES = (JobStatus.PENDING, JobStatus.RUNNING)
CANCELLABLE_JOB_STATUSES = (JobStatus.PENDING, JobStatus.RUNNING, JobStatus.FAILED)
OPEN_TASK_STATUSES = (TaskStatus.PENDING, TaskStatus.PROCESSING)


class JobRepository(Protocol):
    """Protocol for job/task persistence backends."""

    async def create_job(self, job: JobRecord, tasks: Sequence[TaskRecord]) -> None:
        """Persist a job together with all of its tasks, atomically."""

    async def get_job(self, job_id: str) -> JobRecord | None:
        """Retrieve a job by id."""

    async def list_jobs(
        self,
        owner_id: Optional[str] = None,
        project_id: Optional[str] = None,
        workflow_type: Optional[str] = None,
        statuses: Optional[Iterable[str]] = None,
        limit: int = 50,
    ) -> list[JobRecord]:
        """Return matching jobs, newest first."""

    async def get_tasks(self, job_id: str) -> list[TaskRecord]:
        """Return the job's tasks ordered by step index."""

    async def next_pending_task(self, job_id: str) -> TaskRecord | None:
        """Return the pending task with the lowest step index."""

    async def completed_results(self, job_id: str) -> Dict[int, Dict[str, Any]]:
        """Map step index to result data for every completed task."""

    async def mark_job_running(self, job_id: str, step_index: int) -> bool:
        """pending/running -> running at ``step_index``."""

    async def mark_job_completed(self, job_id: str) -> bool:
        """pending/running -> completed."""

    async def mark_job_failed(self, job_id: str, error: str) -> bool:
        """pending/running -> failed with ``error``."""

    async def mark_job_cancelled(self, job_id: str, reason: str) -> bool:
        """pending/running/failed -> cancelled."""

    async def reopen_job(self, job_id: str) -> bool:
        """failed -> running, clearing the error."""

    async def reset_failed_tasks(self, job_id: str) -> int:
        """failed -> pending with progress 0; returns the number reset."""

    async def cancel_open_tasks(self, job_id: str, message: str) -> int:
        """pending/processing -> failed with ``message``; returns the number changed."""

    async def claim_task(
        self,
        task_id: str,
        input_params: Dict[str, Any],
        model_name: Optional[str] = None,
    ) -> bool:
        """pending -> processing, recording the resolved input."""

    async def update_task_progress(self, task_id: str, progress: int) -> bool:
        """Set progress on a processing task."""

    async def complete_task(
        self,
        task_id: str,
        result: Dict[str, Any],
        trace: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """processing -> completed with ``result``."""

    async def fail_task(
        self,
        task_id: str,
        error: str,
        trace: Optional[Dict[str, Any]] = None,
        expected: Sequence[TaskStatus] = (TaskStatus.PROCESSING,),
    ) -> bool:
        """``expected`` -> failed with ``error``."""

    async def mark_consumed(self, job_id: str, owner_id: Optional[str] = None) -> bool:
        """Flag a completed job's results as processed by a collaborator."""


def clamp_progress(progress: int) -> int:
    return max(0, min(100, int(progress)))

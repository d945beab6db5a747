"""Workflow engine: sequential, resumable execution of multi-step jobs."""

from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Any, Dict, List, Mapping, Optional

from ..constants import (
    JOB_CANCELLED_MESSAGE,
    TASK_CANCELLED_MESSAGE,
    TERMINAL_JOB_STATUSES,
    JobStatus,
    TaskStatus,
)
from ..contracts import (
    JobAck,
    JobStatusView,
    ProgressCallback,
    StartResult,
    TaskRuntime,
    TaskSummary,
    WorkflowDefinition,
)
from ..definitions import WORKFLOW_DEFINITIONS
from ..exceptions import (
    GenflowError,
    InputBuildFailed,
    InvalidJobState,
    JobNotFound,
    StepDefinitionMissing,
    UnknownWorkflow,
)
from ..persistence.models import JobRecord, TaskRecord
from ..persistence.repository import JobRepository
from ..providers.adapter import ProviderAdapter
from ..tracing import GenerationTrace
from .context import build_context

logger = logging.getLogger(__name__)

MODEL_FIELDS = ("textModel", "imageModel", "videoModel", "audioModel")


def _new_id() -> str:
    return str(uuid.uuid4())


def _model_name(params: Mapping[str, Any]) -> Optional[str]:
    return next((str(params[k]) for k in MODEL_FIELDS if params.get(k)), None)


class WorkflowEngine:
    """Runs workflow jobs one step at a time against a job repository.

    Each job's steps run in a background ``asyncio`` task; different jobs
    progress concurrently. All state lives in the repository, so a job can
    be inspected, resumed or cancelled from any engine sharing it.
    """

    def __init__(
        self,
        repository: JobRepository,
        adapter: ProviderAdapter,
        definitions: Mapping[str, WorkflowDefinition] = WORKFLOW_DEFINITIONS,
    ) -> None:
        self._repository = repository
        self._adapter = adapter
        self._definitions = definitions
        self._runs: Dict[str, asyncio.Task] = {}

    @property
    def repository(self) -> JobRepository:
        return self._repository

    @property
    def adapter(self) -> ProviderAdapter:
        return self._adapter

    def available_workflows(self) -> List[Dict[str, Any]]:
        return [d.describe() for d in self._definitions.values()]

    # ------------------------------------------------------------------
    # Public operations
    async def start(
        self,
        workflow_type: str,
        owner_id: Optional[str],
        project_id: Optional[str] = None,
        params: Optional[Dict[str, Any]] = None,
        *,
        background: bool = True,
    ) -> StartResult:
        """Create a job with all of its tasks and begin executing it.

        Returns as soon as the rows exist; steps run in the background
        unless ``background`` is false, in which case the caller drives
        the job with :meth:`advance`.
        """
        definition = self._definitions.get(workflow_type)
        if definition is None:
            raise UnknownWorkflow(workflow_type)

        job = JobRecord(
            id=_new_id(),
            owner_id=owner_id,
            project_id=project_id,
            workflow_type=workflow_type,
            status=JobStatus.PENDING,
            current_step_index=0,
            total_steps=len(definition.steps),
            input_params=dict(params or {}),
        )
        tasks = [
            TaskRecord(
                id=_new_id(),
                job_id=job.id,
                step_index=index,
                step_type=step.type,
                target_type=step.target_type,
            )
            for index, step in enumerate(definition.steps)
        ]
        await self._repository.create_job(job, tasks)
        logger.info(
            f"Job {job.id} created: workflow={workflow_type} steps={len(tasks)} owner={owner_id}"
        )

        if background:
            self._schedule(job.id)
        return StartResult(
            job_id=job.id,
            tasks=[
                TaskSummary(
                    id=t.id, step_index=t.step_index, type=t.step_type, status=t.status.value
                )
                for t in tasks
            ],
        )

    async def advance(self, job_id: str) -> None:
        """Run pending steps of ``job_id`` until it finishes, fails or blocks.

        Safe to call repeatedly: terminal jobs are left alone and a job whose
        tasks have all completed is simply marked completed.
        """
        while await self._run_next_step(job_id):
            pass

    async def resume(self, job_id: str, owner_id: Optional[str] = None) -> JobAck:
        """Re-run the failed steps of a job; completed steps are kept."""
        job = await self._get_owned_job(job_id, owner_id)
        if job.status in (JobStatus.COMPLETED, JobStatus.CANCELLED):
            raise InvalidJobState(
                f"job {job_id} is {job.status.value} and cannot be resumed"
            )
        if job.status == JobStatus.FAILED:
            if not await self._repository.reopen_job(job_id):
                raise InvalidJobState(f"job {job_id} changed state while resuming")
            reset = await self._repository.reset_failed_tasks(job_id)
            logger.info(f"Job {job_id} resumed: {reset} failed task(s) reset")
        self._schedule(job_id)
        return JobAck(job_id=job_id, status="resuming")

    async def cancel(self, job_id: str, owner_id: Optional[str]) -> JobAck:
        """Stop a job. In-flight provider calls finish but their results are dropped."""
        job = await self._get_owned_job(job_id, owner_id)
        if job.status == JobStatus.COMPLETED:
            raise InvalidJobState(f"job {job_id} is already completed")
        if job.status != JobStatus.CANCELLED:
            if not await self._repository.mark_job_cancelled(job_id, JOB_CANCELLED_MESSAGE):
                current = await self._repository.get_job(job_id)
                if current is not None and current.status == JobStatus.COMPLETED:
                    raise InvalidJobState(f"job {job_id} is already completed")
            count = await self._repository.cancel_open_tasks(job_id, TASK_CANCELLED_MESSAGE)
            logger.info(f"Job {job_id} cancelled: {count} open task(s) failed")
        return JobAck(job_id=job_id, status="cancelled")

    async def get_status(self, job_id: str, owner_id: Optional[str] = None) -> JobStatusView:
        job = await self._get_owned_job(job_id, owner_id)
        tasks = await self._repository.get_tasks(job_id)
        definition = self._definitions.get(job.workflow_type)
        return JobStatusView(
            job=job,
            workflow_name=definition.name if definition else job.workflow_type,
            tasks=tasks,
        )

    async def list_jobs(
        self,
        owner_id: Optional[str] = None,
        project_id: Optional[str] = None,
        workflow_type: Optional[str] = None,
        status: Optional[str] = None,
        limit: int = 50,
    ) -> List[JobRecord]:
        """List jobs newest first; ``status`` is a comma separated filter."""
        statuses = [s.strip() for s in status.split(",") if s.strip()] if status else None
        return await self._repository.list_jobs(
            owner_id=owner_id,
            project_id=project_id,
            workflow_type=workflow_type,
            statuses=statuses,
            limit=limit,
        )

    async def mark_consumed(self, job_id: str, owner_id: Optional[str] = None) -> bool:
        return await self._repository.mark_consumed(job_id, owner_id)

    async def wait(self, job_id: str, timeout: Optional[float] = None) -> JobStatusView:
        """Wait for the background run of ``job_id`` and return its status."""
        run = self._runs.get(job_id)
        if run is not None:
            await asyncio.wait_for(asyncio.shield(run), timeout)
        return await self.get_status(job_id)

    async def aclose(self) -> None:
        """Cancel background runs and release the adapter's HTTP client."""
        runs = list(self._runs.values())
        for run in runs:
            run.cancel()
        if runs:
            await asyncio.gather(*runs, return_exceptions=True)
        self._runs.clear()
        await self._adapter.aclose()

    # ------------------------------------------------------------------
    # Execution
    def _schedule(self, job_id: str) -> asyncio.Task:
        previous = self._runs.get(job_id)

        async def run() -> None:
            if previous is not None and not previous.done():
                await asyncio.wait([previous])
            try:
                await self.advance(job_id)
            except Exception:
                logger.exception(f"Job {job_id} advance crashed")

        task = asyncio.create_task(run(), name=f"genflow-job-{job_id}")
        self._runs[job_id] = task

        def _forget(done: asyncio.Task) -> None:
            if self._runs.get(job_id) is done:
                del self._runs[job_id]

        task.add_done_callback(_forget)
        return task

    async def _get_owned_job(self, job_id: str, owner_id: Optional[str]) -> JobRecord:
        job = await self._repository.get_job(job_id)
        if job is None or (owner_id is not None and job.owner_id != owner_id):
            raise JobNotFound(job_id)
        return job

    def _progress_reporter(self, task_id: str) -> ProgressCallback:
        async def report(progress: int) -> None:
            await self._repository.update_task_progress(task_id, progress)

        return report

    async def _fail_step(
        self,
        job_id: str,
        task: TaskRecord,
        error: str,
        trace: Optional[Dict[str, Any]] = None,
        expected: tuple = (TaskStatus.PROCESSING,),
    ) -> None:
        await self._repository.fail_task(task.id, error, trace, expected)
        if await self._repository.mark_job_failed(job_id, error):
            logger.info(f"Job {job_id} failed at step {task.step_index}: {error}")

    async def _run_next_step(self, job_id: str) -> bool:
        """Execute one step; return whether the job may have more to do."""
        job = await self._repository.get_job(job_id)
        if job is None:
            raise JobNotFound(job_id)
        if job.status in TERMINAL_JOB_STATUSES:
            return False

        definition = self._definitions.get(job.workflow_type)
        if definition is None:
            await self._repository.mark_job_failed(
                job_id, str(UnknownWorkflow(job.workflow_type))
            )
            return False

        task = await self._repository.next_pending_task(job_id)
        previous_results = await self._repository.completed_results(job_id)
        if task is None:
            if len(previous_results) < job.total_steps:
                # The last step is still processing in another run.
                return False
            if await self._repository.mark_job_completed(job_id):
                logger.info(f"Job {job_id} completed")
            return False

        if any(i not in previous_results for i in range(task.step_index)):
            # An earlier step is still processing elsewhere.
            logger.debug(f"Job {job_id} step {task.step_index} waits on an earlier step")
            return False

        if not await self._repository.mark_job_running(job_id, task.step_index):
            return False

        step = definition.step_at(task.step_index)
        if step is None:
            error = StepDefinitionMissing(job.workflow_type, task.step_index)
            await self._fail_step(job_id, task, str(error), expected=(TaskStatus.PENDING,))
            return False

        context = build_context(job, previous_results)
        try:
            params = step.build_input(context)
        except Exception as exc:
            error = InputBuildFailed(task.step_index, exc)
            await self._fail_step(job_id, task, str(error), expected=(TaskStatus.PENDING,))
            return False

        if not await self._repository.claim_task(task.id, params, _model_name(params)):
            logger.info(f"Task {task.id} of job {job_id} was claimed by another run")
            return False

        logger.info(f"Job {job_id} step {task.step_index} ({step.type}) started")
        runtime = TaskRuntime(
            self._adapter, self._progress_reporter(task.id), task.id, step.type
        )
        trace = GenerationTrace(task_id=task.id, step_type=step.type)
        try:
            with trace:
                result = await step.handler(params, runtime)
        except Exception as exc:
            error_message = str(exc) or exc.__class__.__name__
            if not isinstance(exc, GenflowError):
                logger.exception(f"Step {task.step_index} of job {job_id} raised")
            await self._fail_step(job_id, task, error_message, trace.to_dict())
            return False

        if not await self._repository.complete_task(task.id, dict(result or {}), trace.to_dict()):
            logger.warning(
                f"Discarding result of task {task.id}: job {job_id} moved on while it ran"
            )
            return False
        logger.info(f"Job {job_id} step {task.step_index} ({step.type}) completed")
        return True

"""PostgreSQL implementation of the job repository."""

from __future__ import annotations

import json
from typing import Any, Dict, Iterable, Optional, Sequence

import asyncpg

from ..constants import JobStatus, TaskStatus
from .models import JobRecord, TaskRecord, utcnow
from .repository import (
    ACTIVE_JOB_STATUSES,
    CANCELLABLE_JOB_STATUSES,
    OPEN_TASK_STATUSES,
    JobRepository,
    clamp_progress,
)

JOB_COLUMNS = (
    "id, owner_id, project_id, workflow_type, status, current_step_index, "
    "total_steps, input_params, error_message, consumed, created_at, "
    "started_at, completed_at"
)
TASK_COLUMNS = (
    "id, job_id, step_index, step_type, target_type, status, progress, "
    "model_name, input_params, result_data, error_message, trace, "
    "created_at, started_at, completed_at"
)


def _dumps(value: Any) -> Optional[str]:
    return None if value is None else json.dumps(value, ensure_ascii=False, default=str)


def _loads(value: Any) -> Any:
    # asyncpg hands JSONB back as text unless a codec is registered.
    if isinstance(value, str):
        return json.loads(value) if value else None
    return value


def _values(statuses: Iterable[Any]) -> list[str]:
    return [s.value if hasattr(s, "value") else str(s) for s in statuses]


def _rowcount(result: str) -> int:
    try:
        return int(result.split()[-1])
    except (IndexError, ValueError):
        return 0


class PostgresJobRepository(JobRepository):
    """Persist job state using PostgreSQL."""

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
            CREATE TABLE IF NOT EXISTS workflow_jobs (
                id TEXT PRIMARY KEY,
                owner_id TEXT,
                project_id TEXT,
                workflow_type TEXT NOT NULL,
                status TEXT NOT NULL,
                current_step_index INTEGER NOT NULL DEFAULT 0,
                total_steps INTEGER NOT NULL DEFAULT 0,
                input_params JSONB,
                error_message TEXT,
                consumed BOOLEAN NOT NULL DEFAULT FALSE,
                created_at TIMESTAMPTZ NOT NULL,
                started_at TIMESTAMPTZ,
                completed_at TIMESTAMPTZ
            )
            """
        )
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS generation_tasks (
                id TEXT PRIMARY KEY,
                job_id TEXT NOT NULL REFERENCES workflow_jobs(id),
                step_index INTEGER NOT NULL,
                step_type TEXT NOT NULL,
                target_type TEXT NOT NULL,
                status TEXT NOT NULL,
                progress INTEGER NOT NULL DEFAULT 0,
                model_name TEXT,
                input_params JSONB,
                result_data JSONB,
                error_message TEXT,
                trace JSONB,
                created_at TIMESTAMPTZ NOT NULL,
                started_at TIMESTAMPTZ,
                completed_at TIMESTAMPTZ,
                UNIQUE (job_id, step_index)
            )
            """
        )

    async def _execute(self, query: str, *params: Any) -> int:
        conn = await self._connect()
        try:
            return _rowcount(await conn.execute(query, *params))
        finally:
            await conn.close()

    async def _fetch(self, query: str, *params: Any) -> list[asyncpg.Record]:
        conn = await self._connect()
        try:
            return await conn.fetch(query, *params)
        finally:
            await conn.close()

    @staticmethod
    def _job_from_row(row: asyncpg.Record) -> JobRecord:
        data = dict(row)
        data["input_params"] = _loads(data["input_params"]) or {}
        return JobRecord.model_validate(data)

    @staticmethod
    def _task_from_row(row: asyncpg.Record) -> TaskRecord:
        data = dict(row)
        for key in ("input_params", "result_data", "trace"):
            data[key] = _loads(data[key])
        return TaskRecord.model_validate(data)

    # ------------------------------------------------------------------
    async def create_job(self, job: JobRecord, tasks: Sequence[TaskRecord]) -> None:
        conn = await self._connect()
        try:
            async with conn.transaction():
                await conn.execute(
                    f"INSERT INTO workflow_jobs ({JOB_COLUMNS}) "
                    "VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13)",
                    job.id,
                    job.owner_id,
                    job.project_id,
                    job.workflow_type,
                    job.status.value,
                    job.current_step_index,
                    job.total_steps,
                    _dumps(job.input_params),
                    job.error_message,
                    job.consumed,
                    job.created_at,
                    job.started_at,
                    job.completed_at,
                )
                await conn.executemany(
                    f"INSERT INTO generation_tasks ({TASK_COLUMNS}) "
                    "VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13, $14, $15)",
                    [
                        (
                            t.id,
                            t.job_id,
                            t.step_index,
                            t.step_type,
                            t.target_type,
                            t.status.value,
                            t.progress,
                            t.model_name,
                            _dumps(t.input_params),
                            _dumps(t.result_data),
                            t.error_message,
                            _dumps(t.trace),
                            t.created_at,
                            t.started_at,
                            t.completed_at,
                        )
                        for t in tasks
                    ],
                )
        finally:
            await conn.close()

    async def get_job(self, job_id: str) -> JobRecord | None:
        rows = await self._fetch(
            f"SELECT {JOB_COLUMNS} FROM workflow_jobs WHERE id = $1", job_id
        )
        return self._job_from_row(rows[0]) if rows else None

    async def list_jobs(
        self,
        owner_id: Optional[str] = None,
        project_id: Optional[str] = None,
        workflow_type: Optional[str] = None,
        statuses: Optional[Iterable[str]] = None,
        limit: int = 50,
    ) -> list[JobRecord]:
        clauses: list[str] = []
        params: list[Any] = []
        for column, value in (
            ("owner_id", owner_id),
            ("project_id", project_id),
            ("workflow_type", workflow_type),
        ):
            if value is not None:
                params.append(value)
                clauses.append(f"{column} = ${len(params)}")
        if statuses:
            params.append(_values(statuses))
            clauses.append(f"status = ANY(${len(params)}::text[])")
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        params.append(limit)
        rows = await self._fetch(
            f"SELECT {JOB_COLUMNS} FROM workflow_jobs {where} "
            f"ORDER BY created_at DESC LIMIT ${len(params)}",
            *params,
        )
        return [self._job_from_row(r) for r in rows]

    async def get_tasks(self, job_id: str) -> list[TaskRecord]:
        rows = await self._fetch(
            f"SELECT {TASK_COLUMNS} FROM generation_tasks WHERE job_id = $1 ORDER BY step_index",
            job_id,
        )
        return [self._task_from_row(r) for r in rows]

    async def next_pending_task(self, job_id: str) -> TaskRecord | None:
        rows = await self._fetch(
            f"SELECT {TASK_COLUMNS} FROM generation_tasks "
            "WHERE job_id = $1 AND status = $2 ORDER BY step_index LIMIT 1",
            job_id,
            TaskStatus.PENDING.value,
        )
        return self._task_from_row(rows[0]) if rows else None

    async def completed_results(self, job_id: str) -> Dict[int, Dict[str, Any]]:
        rows = await self._fetch(
            "SELECT step_index, result_data FROM generation_tasks "
            "WHERE job_id = $1 AND status = $2 ORDER BY step_index",
            job_id,
            TaskStatus.COMPLETED.value,
        )
        return {r["step_index"]: _loads(r["result_data"]) or {} for r in rows}

    # ------------------------------------------------------------------
    async def mark_job_running(self, job_id: str, step_index: int) -> bool:
        count = await self._execute(
            """
            UPDATE workflow_jobs
            SET status = $1, current_step_index = $2, started_at = COALESCE(started_at, $3)
            WHERE id = $4 AND status = ANY($5::text[])
            """,
            JobStatus.RUNNING.value,
            step_index,
            utcnow(),
            job_id,
            _values(ACTIVE_JOB_STATUSES),
        )
        return count == 1

    async def _finish_job(
        self,
        job_id: str,
        status: JobStatus,
        allowed: Iterable[JobStatus],
        error: Optional[str] = None,
    ) -> bool:
        count = await self._execute(
            """
            UPDATE workflow_jobs
            SET status = $1, error_message = COALESCE($2, error_message), completed_at = $3
            WHERE id = $4 AND status = ANY($5::text[])
            """,
            status.value,
            error,
            utcnow(),
            job_id,
            _values(allowed),
        )
        return count == 1

    async def mark_job_completed(self, job_id: str) -> bool:
        return await self._finish_job(job_id, JobStatus.COMPLETED, ACTIVE_JOB_STATUSES)

    async def mark_job_failed(self, job_id: str, error: str) -> bool:
        return await self._finish_job(job_id, JobStatus.FAILED, ACTIVE_JOB_STATUSES, error)

    async def mark_job_cancelled(self, job_id: str, reason: str) -> bool:
        return await self._finish_job(
            job_id, JobStatus.CANCELLED, CANCELLABLE_JOB_STATUSES, reason
        )

    async def reopen_job(self, job_id: str) -> bool:
        count = await self._execute(
            """
            UPDATE workflow_jobs
            SET status = $1, error_message = NULL, completed_at = NULL
            WHERE id = $2 AND status = $3
            """,
            JobStatus.RUNNING.value,
            job_id,
            JobStatus.FAILED.value,
        )
        return count == 1

    async def reset_failed_tasks(self, job_id: str) -> int:
        return await self._execute(
            """
            UPDATE generation_tasks
            SET status = $1, progress = 0, error_message = NULL, result_data = NULL,
                started_at = NULL, completed_at = NULL
            WHERE job_id = $2 AND status = $3
            """,
            TaskStatus.PENDING.value,
            job_id,
            TaskStatus.FAILED.value,
        )

    async def cancel_open_tasks(self, job_id: str, message: str) -> int:
        return await self._execute(
            """
            UPDATE generation_tasks
            SET status = $1, error_message = $2, completed_at = $3
            WHERE job_id = $4 AND status = ANY($5::text[])
            """,
            TaskStatus.FAILED.value,
            message,
            utcnow(),
            job_id,
            _values(OPEN_TASK_STATUSES),
        )

    # ------------------------------------------------------------------
    async def claim_task(
        self,
        task_id: str,
        input_params: Dict[str, Any],
        model_name: Optional[str] = None,
    ) -> bool:
        count = await self._execute(
            """
            UPDATE generation_tasks
            SET status = $1, progress = 0, input_params = $2, model_name = $3, started_at = $4
            WHERE id = $5 AND status = $6
            """,
            TaskStatus.PROCESSING.value,
            _dumps(input_params),
            model_name,
            utcnow(),
            task_id,
            TaskStatus.PENDING.value,
        )
        return count == 1

    async def update_task_progress(self, task_id: str, progress: int) -> bool:
        count = await self._execute(
            "UPDATE generation_tasks SET progress = $1 WHERE id = $2 AND status = $3",
            clamp_progress(progress),
            task_id,
            TaskStatus.PROCESSING.value,
        )
        return count == 1

    async def complete_task(
        self,
        task_id: str,
        result: Dict[str, Any],
        trace: Optional[Dict[str, Any]] = None,
    ) -> bool:
        count = await self._execute(
            """
            UPDATE generation_tasks
            SET status = $1, progress = 100, result_data = $2, error_message = NULL,
                trace = $3, completed_at = $4
            WHERE id = $5 AND status = $6
            """,
            TaskStatus.COMPLETED.value,
            _dumps(result),
            _dumps(trace),
            utcnow(),
            task_id,
            TaskStatus.PROCESSING.value,
        )
        return count == 1

    async def fail_task(
        self,
        task_id: str,
        error: str,
        trace: Optional[Dict[str, Any]] = None,
        expected: Sequence[TaskStatus] = (TaskStatus.PROCESSING,),
    ) -> bool:
        count = await self._execute(
            """
            UPDATE generation_tasks
            SET status = $1, error_message = $2, trace = COALESCE($3::jsonb, trace), completed_at = $4
            WHERE id = $5 AND status = ANY($6::text[])
            """,
            TaskStatus.FAILED.value,
            error,
            _dumps(trace),
            utcnow(),
            task_id,
            _values(expected),
        )
        return count == 1

    async def mark_consumed(self, job_id: str, owner_id: Optional[str] = None) -> bool:
        count = await self._execute(
            """
            UPDATE workflow_jobs SET consumed = TRUE
            WHERE id = $1 AND status = $2 AND consumed = FALSE
              AND ($3::text IS NULL OR owner_id = $3)
            """,
            job_id,
            JobStatus.COMPLETED.value,
            owner_id,
        )
        return count == 1

"""SQLite implementation of the job repository."""

from __future__ import annotations

import asyncio
import json
import sqlite3
import threading
from pathlib import Path
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


def _loads(value: Optional[str]) -> Any:
    return json.loads(value) if value else None


def _iso(value: Any) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _in(values: Iterable[Any]) -> tuple[str, list[str]]:
    items = [v.value if hasattr(v, "value") else str(v) for v in values]
    return ", ".join("?" for _ in items), items


class SQLiteJobRepository(JobRepository):
    """Persist job state using SQLite."""

    def __init__(self, db_path: str | Path):
        self.db_path = str(db_path)
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._lock = threading.Lock()
        self._ensure_schema()

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    # ------------------------------------------------------------------
    # Schema management
    def _ensure_schema(self) -> None:
        cur = self._conn.cursor()
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS workflow_jobs (
                id TEXT PRIMARY KEY,
                owner_id TEXT,
                project_id TEXT,
                workflow_type TEXT NOT NULL,
                status TEXT NOT NULL,
                current_step_index INTEGER NOT NULL DEFAULT 0,
                total_steps INTEGER NOT NULL DEFAULT 0,
                input_params TEXT,
                error_message TEXT,
                consumed INTEGER NOT NULL DEFAULT 0,
                created_at TEXT NOT NULL,
                started_at TEXT,
                completed_at TEXT
            )
            """
        )
        cur.execute(
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
                input_params TEXT,
                result_data TEXT,
                error_message TEXT,
                trace TEXT,
                created_at TEXT NOT NULL,
                started_at TEXT,
                completed_at TEXT,
                UNIQUE (job_id, step_index)
            )
            """
        )
        cur.execute(
            "CREATE INDEX IF NOT EXISTS idx_workflow_jobs_owner ON workflow_jobs (owner_id, created_at)"
        )
        self._conn.commit()

    # ------------------------------------------------------------------
    # Helper methods
    def _execute(self, query: str, *params: Any) -> int:
        with self._lock:
            cur = self._conn.cursor()
            cur.execute(query, params)
            self._conn.commit()
            return cur.rowcount

    def _execute_many(self, statements: Sequence[tuple[str, tuple]]) -> None:
        with self._lock:
            cur = self._conn.cursor()
            try:
                for query, params in statements:
                    cur.execute(query, params)
            except Exception:
                self._conn.rollback()
                raise
            self._conn.commit()

    def _fetchone(self, query: str, *params: Any) -> sqlite3.Row | None:
        with self._lock:
            cur = self._conn.cursor()
            cur.execute(query, params)
            return cur.fetchone()

    def _fetchall(self, query: str, *params: Any) -> list[sqlite3.Row]:
        with self._lock:
            cur = self._conn.cursor()
            cur.execute(query, params)
            return cur.fetchall()

    @staticmethod
    def _job_from_row(row: sqlite3.Row) -> JobRecord:
        data = dict(row)
        data["input_params"] = _loads(data["input_params"]) or {}
        data["consumed"] = bool(data["consumed"])
        return JobRecord.model_validate(data)

    @staticmethod
    def _task_from_row(row: sqlite3.Row) -> TaskRecord:
        data = dict(row)
        for key in ("input_params", "result_data", "trace"):
            data[key] = _loads(data[key])
        return TaskRecord.model_validate(data)

    # ------------------------------------------------------------------
    # Repository API
    async def create_job(self, job: JobRecord, tasks: Sequence[TaskRecord]) -> None:
        statements: list[tuple[str, tuple]] = [
            (
                f"INSERT INTO workflow_jobs ({JOB_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    job.id,
                    job.owner_id,
                    job.project_id,
                    job.workflow_type,
                    job.status.value,
                    job.current_step_index,
                    job.total_steps,
                    _dumps(job.input_params),
                    job.error_message,
                    int(job.consumed),
                    _iso(job.created_at),
                    _iso(job.started_at),
                    _iso(job.completed_at),
                ),
            )
        ]
        for task in tasks:
            statements.append(
                (
                    f"INSERT INTO generation_tasks ({TASK_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                    (
                        task.id,
                        task.job_id,
                        task.step_index,
                        task.step_type,
                        task.target_type,
                        task.status.value,
                        task.progress,
                        task.model_name,
                        _dumps(task.input_params),
                        _dumps(task.result_data),
                        task.error_message,
                        _dumps(task.trace),
                        _iso(task.created_at),
                        _iso(task.started_at),
                        _iso(task.completed_at),
                    ),
                )
            )
        await asyncio.to_thread(self._execute_many, statements)

    async def get_job(self, job_id: str) -> JobRecord | None:
        row = await asyncio.to_thread(
            self._fetchone,
            f"SELECT {JOB_COLUMNS} FROM workflow_jobs WHERE id = ?",
            job_id,
        )
        return self._job_from_row(row) if row else None

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
                clauses.append(f"{column} = ?")
                params.append(value)
        if statuses:
            marks, values = _in(statuses)
            clauses.append(f"status IN ({marks})")
            params.extend(values)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        rows = await asyncio.to_thread(
            self._fetchall,
            f"SELECT {JOB_COLUMNS} FROM workflow_jobs {where} ORDER BY created_at DESC LIMIT ?",
            *params,
            limit,
        )
        return [self._job_from_row(r) for r in rows]

    async def get_tasks(self, job_id: str) -> list[TaskRecord]:
        rows = await asyncio.to_thread(
            self._fetchall,
            f"SELECT {TASK_COLUMNS} FROM generation_tasks WHERE job_id = ? ORDER BY step_index",
            job_id,
        )
        return [self._task_from_row(r) for r in rows]

    async def next_pending_task(self, job_id: str) -> TaskRecord | None:
        row = await asyncio.to_thread(
            self._fetchone,
            f"SELECT {TASK_COLUMNS} FROM generation_tasks WHERE job_id = ? AND status = ? ORDER BY step_index LIMIT 1",
            job_id,
            TaskStatus.PENDING.value,
        )
        return self._task_from_row(row) if row else None

    async def completed_results(self, job_id: str) -> Dict[int, Dict[str, Any]]:
        rows = await asyncio.to_thread(
            self._fetchall,
            "SELECT step_index, result_data FROM generation_tasks WHERE job_id = ? AND status = ? ORDER BY step_index",
            job_id,
            TaskStatus.COMPLETED.value,
        )
        return {r["step_index"]: _loads(r["result_data"]) or {} for r in rows}

    # ------------------------------------------------------------------
    async def mark_job_running(self, job_id: str, step_index: int) -> bool:
        marks, values = _in(ACTIVE_JOB_STATUSES)
        count = await asyncio.to_thread(
            self._execute,
            f"""
            UPDATE workflow_jobs
            SET status = ?, current_step_index = ?, started_at = COALESCE(started_at, ?)
            WHERE id = ? AND status IN ({marks})
            """,
            JobStatus.RUNNING.value,
            step_index,
            _iso(utcnow()),
            job_id,
            *values,
        )
        return count == 1

    async def _finish_job(
        self,
        job_id: str,
        status: JobStatus,
        allowed: Iterable[JobStatus],
        error: Optional[str] = None,
    ) -> bool:
        marks, values = _in(allowed)
        count = await asyncio.to_thread(
            self._execute,
            f"""
            UPDATE workflow_jobs
            SET status = ?, error_message = COALESCE(?, error_message), completed_at = ?
            WHERE id = ? AND status IN ({marks})
            """,
            status.value,
            error,
            _iso(utcnow()),
            job_id,
            *values,
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
        count = await asyncio.to_thread(
            self._execute,
            """
            UPDATE workflow_jobs
            SET status = ?, error_message = NULL, completed_at = NULL
            WHERE id = ? AND status = ?
            """,
            JobStatus.RUNNING.value,
            job_id,
            JobStatus.FAILED.value,
        )
        return count == 1

    async def reset_failed_tasks(self, job_id: str) -> int:
        return await asyncio.to_thread(
            self._execute,
            """
            UPDATE generation_tasks
            SET status = ?, progress = 0, error_message = NULL, result_data = NULL,
                started_at = NULL, completed_at = NULL
            WHERE job_id = ? AND status = ?
            """,
            TaskStatus.PENDING.value,
            job_id,
            TaskStatus.FAILED.value,
        )

    async def cancel_open_tasks(self, job_id: str, message: str) -> int:
        marks, values = _in(OPEN_TASK_STATUSES)
        return await asyncio.to_thread(
            self._execute,
            f"""
            UPDATE generation_tasks
            SET status = ?, error_message = ?, completed_at = ?
            WHERE job_id = ? AND status IN ({marks})
            """,
            TaskStatus.FAILED.value,
            message,
            _iso(utcnow()),
            job_id,
            *values,
        )

    # ------------------------------------------------------------------
    async def claim_task(
        self,
        task_id: str,
        input_params: Dict[str, Any],
        model_name: Optional[str] = None,
    ) -> bool:
        count = await asyncio.to_thread(
            self._execute,
            """
            UPDATE generation_tasks
            SET status = ?, progress = 0, input_params = ?, model_name = ?, started_at = ?
            WHERE id = ? AND status = ?
            """,
            TaskStatus.PROCESSING.value,
            _dumps(input_params),
            model_name,
            _iso(utcnow()),
            task_id,
            TaskStatus.PENDING.value,
        )
        return count == 1

    async def update_task_progress(self, task_id: str, progress: int) -> bool:
        count = await asyncio.to_thread(
            self._execute,
            "UPDATE generation_tasks SET progress = ? WHERE id = ? AND status = ?",
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
        count = await asyncio.to_thread(
            self._execute,
            """
            UPDATE generation_tasks
            SET status = ?, progress = 100, result_data = ?, error_message = NULL,
                trace = ?, completed_at = ?
            WHERE id = ? AND status = ?
            """,
            TaskStatus.COMPLETED.value,
            _dumps(result),
            _dumps(trace),
            _iso(utcnow()),
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
        marks, values = _in(expected)
        count = await asyncio.to_thread(
            self._execute,
            f"""
            UPDATE generation_tasks
            SET status = ?, error_message = ?, trace = COALESCE(?, trace), completed_at = ?
            WHERE id = ? AND status IN ({marks})
            """,
            TaskStatus.FAILED.value,
            error,
            _dumps(trace),
            _iso(utcnow()),
            task_id,
            *values,
        )
        return count == 1

    async def mark_consumed(self, job_id: str, owner_id: Optional[str] = None) -> bool:
        query = "UPDATE workflow_jobs SET consumed = 1 WHERE id = ? AND status = ? AND consumed = 0"
        params: list[Any] = [job_id, JobStatus.COMPLETED.value]
        if owner_id is not None:
            query += " AND owner_id = ?"
            params.append(owner_id)
        count = await asyncio.to_thread(self._execute, query, *params)
        return count == 1

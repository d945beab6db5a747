"""Data models for persisted job and task state."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, Field

from ..constants import JobStatus, TaskStatus


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class JobRecord(BaseModel):
    """One pipeline run."""

    id: str
    owner_id: Optional[str] = None
    project_id: Optional[str] = None
    workflow_type: str
    status: JobStatus = JobStatus.PENDING
    current_step_index: int = 0
    total_steps: int = 0
    input_params: dict[str, Any] = Field(default_factory=dict)
    error_message: Optional[str] = None
    consumed: bool = False
    created_at: datetime = Field(default_factory=utcnow)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class TaskRecord(BaseModel):
    """Execution record of a single workflow step."""

    id: str
    job_id: str
    step_index: int
    step_type: str
    target_type: str
    status: TaskStatus = TaskStatus.PENDING
    progress: int = 0
    model_name: Optional[str] = None
    input_params: Optional[dict[str, Any]] = None
    result_data: Optional[dict[str, Any]] = None
    error_message: Optional[str] = None
    trace: Optional[dict[str, Any]] = None
    created_at: datetime = Field(default_factory=utcnow)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

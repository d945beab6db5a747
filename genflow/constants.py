"""Shared constants for genflow."""

from __future__ import annotations

from enum import Enum


class JobStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class TaskStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_JOB_STATUSES = frozenset(
    {JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED}
)

DEFAULT_POLL_INTERVAL_MS = 3000
DEFAULT_POLL_MAX_DURATION_MS = 300_000
DEFAULT_MAX_NETWORK_ERRORS = 5
DEFAULT_HTTP_TIMEOUT_S = 120.0

DEFAULT_PROGRESS_START = 30
DEFAULT_PROGRESS_END = 90

TASK_CANCELLED_MESSAGE = "workflow cancelled"
JOB_CANCELLED_MESSAGE = "cancelled by user"

BUILTIN_HANDLERS = ("deepseek", "kling_video", "kling_video_query")

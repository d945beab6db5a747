"""Persistence layer for genflow jobs and tasks."""

from __future__ import annotations

from typing import Optional

from ..config import GenflowConfig, load_config
from .inmemory import InMemoryJobRepository
from .models import JobRecord, TaskRecord, utcnow
from .postgres import PostgresJobRepository
from .repository import JobRepository
from .sqlite import SQLiteJobRepository

_repository_instance: JobRepository | None = None


def get_repository(
    database_url: Optional[str] = None, config: Optional[GenflowConfig] = None
) -> JobRepository:
    """Factory function to obtain a job repository.

    The backend is selected from ``database_url`` which can be provided
    explicitly, via the ``GENFLOW_DATABASE_URL`` or ``DATABASE_URL``
    environment variables (applied by :func:`load_config`), or from loaded
    configuration. Without a database an in-memory repository is returned.
    """

    global _repository_instance
    if _repository_instance is not None and database_url is None and config is None:
        return _repository_instance

    config = config or load_config()
    database_url = database_url or config.database_url

    if not database_url:
        _repository_instance = InMemoryJobRepository()
        return _repository_instance

    if database_url.startswith("sqlite://"):
        path = database_url.replace("sqlite://", "", 1)
        _repository_instance = SQLiteJobRepository(path)
    elif database_url.startswith("postgres://") or database_url.startswith(
        "postgresql://"
    ):
        _repository_instance = PostgresJobRepository(database_url)
    else:
        raise ValueError(f"Unsupported database backend: {database_url}")

    return _repository_instance


def reset_repository() -> None:
    """Forget the cached repository instance."""
    global _repository_instance
    _repository_instance = None


__all__ = [
    "InMemoryJobRepository",
    "JobRecord",
    "JobRepository",
    "PostgresJobRepository",
    "SQLiteJobRepository",
    "TaskRecord",
    "get_repository",
    "reset_repository",
    "utcnow",
]

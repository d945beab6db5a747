"""Workflow engine and its assembly from configuration."""

from __future__ import annotations

from typing import Optional

import httpx

from ..config import GenflowConfig, load_config
from ..handlers import HandlerRegistry
from ..persistence import JobRepository, get_repository
from ..providers import ProviderAdapter, ProviderStore, store_from_file
from .context import build_context
from .workflow import WorkflowEngine


def create_engine(
    config: Optional[GenflowConfig] = None,
    *,
    repository: Optional[JobRepository] = None,
    store: Optional[ProviderStore] = None,
    handlers: Optional[HandlerRegistry] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> WorkflowEngine:
    """Build a :class:`WorkflowEngine` wired from ``config``.

    Every collaborator can be injected, which is how tests substitute a
    fake handler registry or a mocked HTTP transport.
    """
    config = config or load_config()
    repository = repository or get_repository(config=config)
    store = store or store_from_file(config.providers_file)
    handlers = handlers or HandlerRegistry(config.handlers).init()
    adapter = ProviderAdapter(
        store, handlers, client=client, poll=config.poll, http=config.http
    )
    return WorkflowEngine(repository, adapter)


__all__ = ["WorkflowEngine", "build_context", "create_engine"]

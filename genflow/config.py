from __future__ import annotations

import os
from typing import List, Optional

import yaml
from pydantic import BaseModel, Field

from .constants import (
    BUILTIN_HANDLERS,
    DEFAULT_HTTP_TIMEOUT_S,
    DEFAULT_MAX_NETWORK_ERRORS,
    DEFAULT_POLL_INTERVAL_MS,
    DEFAULT_POLL_MAX_DURATION_MS,
)


class PollConfig(BaseModel):
    """Defaults for submit-and-poll provider calls."""

    interval_ms: int = DEFAULT_POLL_INTERVAL_MS
    max_duration_ms: int = DEFAULT_POLL_MAX_DURATION_MS
    max_network_errors: int = DEFAULT_MAX_NETWORK_ERRORS


class HttpConfig(BaseModel):
    """Outbound HTTP client settings."""

    timeout_s: float = DEFAULT_HTTP_TIMEOUT_S


class GenflowConfig(BaseModel):
    """Top-level configuration model."""

    database_url: Optional[str] = None
    providers_file: Optional[str] = None
    poll: PollConfig = PollConfig()
    http: HttpConfig = HttpConfig()
    handlers: List[str] = Field(default_factory=lambda: list(BUILTIN_HANDLERS))


def load_config(path: Optional[str] = None) -> GenflowConfig:
    """Load configuration from YAML file.

    Args:
        path: Optional path to config file. Falls back to GENFLOW_CONFIG env
            variable or 'genflow.yaml' in the current directory.
    """

    config_path = path or os.getenv("GENFLOW_CONFIG", "genflow.yaml")
    if os.path.exists(config_path):
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
        config = GenflowConfig(**data)
    else:
        config = GenflowConfig()

    env_db_url = os.getenv("GENFLOW_DATABASE_URL") or os.getenv("DATABASE_URL")
    if env_db_url:
        config.database_url = env_db_url
    env_providers = os.getenv("GENFLOW_PROVIDERS_FILE")
    if env_providers:
        config.providers_file = env_providers
    return config

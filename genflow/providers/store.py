"""Read-only sources of Provider Configuration records."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Protocol

import yaml

from .models import ProviderConfig

logger = logging.getLogger(__name__)


class ProviderStore(Protocol):
    """Lookup interface for provider configurations."""

    async def get(self, name: str) -> ProviderConfig | None:
        """Return the active configuration called ``name``."""

    async def list(self, category: Optional[str] = None) -> list[ProviderConfig]:
        """Return active configurations, optionally filtered by category."""


class InMemoryProviderStore(ProviderStore):
    """Keep provider configurations in a dictionary keyed by name."""

    def __init__(self, configs: Iterable[ProviderConfig | Dict[str, Any]] = ()) -> None:
        self._configs: Dict[str, ProviderConfig] = {}
        for config in configs:
            self.add(config)

    def add(self, config: ProviderConfig | Dict[str, Any]) -> ProviderConfig:
        if not isinstance(config, ProviderConfig):
            config = ProviderConfig.model_validate(config)
        self._configs[config.name] = config
        return config

    async def get(self, name: str) -> ProviderConfig | None:
        config = self._configs.get(name)
        if config is None or not config.is_active:
            return None
        return config

    async def list(self, category: Optional[str] = None) -> list[ProviderConfig]:
        return [
            c
            for c in self._configs.values()
            if c.is_active and (category is None or c.category == category)
        ]


def load_providers(path: str | Path) -> List[ProviderConfig]:
    """Read provider records from a YAML or JSON file.

    The file holds either a list of records or a mapping with a
    ``providers`` list.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or []
    if isinstance(data, dict):
        data = data.get("providers") or []
    if not isinstance(data, list):
        raise ValueError(f"{path}: expected a list of provider records")
    configs = [ProviderConfig.model_validate(item) for item in data]
    logger.debug(f"Loaded {len(configs)} provider configurations from {path}")
    return configs


def store_from_file(path: str | Path | None) -> InMemoryProviderStore:
    if not path:
        return InMemoryProviderStore()
    return InMemoryProviderStore(load_providers(path))

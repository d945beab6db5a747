"""Custom handler registry.

A custom handler is a module under :mod:`genflow.handlers` (or any object
registered explicitly) exposing ``call`` and/or ``query`` coroutines. The
provider adapter hands it the fully rendered request whenever a provider
configuration names it in ``custom_handler`` or ``custom_query_handler``.
"""

from __future__ import annotations

import importlib
import logging
from typing import Any, Dict, Iterable, List, Optional

from ..constants import BUILTIN_HANDLERS
from ..exceptions import IllegalHandlerName

logger = logging.getLogger(__name__)

_FORBIDDEN = ("..", "/", "\\", ".", "\x00")


def validate_handler_name(name: str) -> str:
    if not name or any(part in name for part in _FORBIDDEN):
        raise IllegalHandlerName(name)
    return name


class HandlerRegistry:
    """Process-wide, lazily populated cache of custom handlers.

    Handlers are imported at most once; a name that resolves to no module is
    cached as missing too, so lookups never hit the import system twice.
    """

    def __init__(
        self,
        names: Iterable[str] = BUILTIN_HANDLERS,
        package: str = __name__,
    ) -> None:
        self._names = list(names)
        self._package = package
        self._cache: Dict[str, Optional[Any]] = {}
        self._initialized = False

    def init(self) -> "HandlerRegistry":
        """Load the configured handler names eagerly."""
        if self._initialized:
            return self
        for name in self._names:
            if self.get(name) is None:
                logger.warning(f"Custom handler '{name}' could not be loaded")
        self._initialized = True
        logger.debug(f"Custom handlers loaded: {', '.join(self.loaded())}")
        return self

    def get(self, name: str) -> Optional[Any]:
        """Return the handler called ``name`` or ``None`` when it does not exist."""
        validate_handler_name(name)
        if name in self._cache:
            return self._cache[name]
        module_name = f"{self._package}.{name}"
        try:
            handler = importlib.import_module(module_name)
        except ModuleNotFoundError as exc:
            # Only a missing handler module means "not found"; a handler
            # whose own imports are broken must surface.
            if exc.name != module_name:
                raise
            handler = None
        if handler is not None and not (
            hasattr(handler, "call") or hasattr(handler, "query")
        ):
            handler = None
        self._cache[name] = handler
        return handler

    def register(self, name: str, handler: Any) -> None:
        """Install ``handler`` under ``name``, replacing any cached entry."""
        validate_handler_name(name)
        self._cache[name] = handler

    def loaded(self) -> List[str]:
        return sorted(name for name, handler in self._cache.items() if handler is not None)


__all__ = ["HandlerRegistry", "validate_handler_name"]

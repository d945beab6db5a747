"""Per-task generation traces.

The engine opens a :class:`GenerationTrace` around every task execution.
Code running inside it (task handlers, the provider adapter, custom
handlers) appends events with :func:`trace_step` without having the trace
passed in explicitly; the current trace travels in a ``ContextVar`` so
concurrent jobs never share one.
"""

from __future__ import annotations

import functools
import time
from contextvars import ContextVar, Token
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, TypeVar

_current_trace: ContextVar[Optional["GenerationTrace"]] = ContextVar(
    "genflow_trace", default=None
)

F = TypeVar("F", bound=Callable[..., Awaitable[Any]])

_MAX_TEXT = 500


def _compact(value: Any) -> Any:
    if isinstance(value, str) and len(value) > _MAX_TEXT:
        return value[:_MAX_TEXT] + "..."
    if isinstance(value, dict):
        return {str(k): _compact(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_compact(v) for v in value]
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    return str(value)


class GenerationTrace:
    """Ordered events recorded while one task executes."""

    def __init__(self, task_id: str = "", step_type: str = "") -> None:
        self.task_id = task_id
        self.step_type = step_type
        self.started_at = datetime.now(timezone.utc)
        self._started = time.monotonic()
        self.events: List[Dict[str, Any]] = []
        self.error: Optional[str] = None
        self._token: Optional[Token] = None

    def elapsed_ms(self) -> int:
        return int((time.monotonic() - self._started) * 1000)

    def add(self, name: str, **data: Any) -> None:
        event: Dict[str, Any] = {"event": name, "elapsed_ms": self.elapsed_ms()}
        if data:
            event["data"] = _compact(data)
        self.events.append(event)

    def __enter__(self) -> "GenerationTrace":
        self._token = _current_trace.set(self)
        self.add("task.start", step_type=self.step_type)
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        if exc is not None:
            self.error = str(exc)
            self.add("task.failed", error=self.error, error_type=exc_type.__name__)
        else:
            self.add("task.completed")
        if self._token is not None:
            _current_trace.reset(self._token)
            self._token = None
        return False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "task_id": self.task_id,
            "step_type": self.step_type,
            "started_at": self.started_at.isoformat(),
            "duration_ms": self.elapsed_ms(),
            "error": self.error,
            "events": list(self.events),
        }


def current_trace() -> Optional[GenerationTrace]:
    return _current_trace.get()


def trace_step(name: str, **data: Any) -> None:
    """Append an event to the current trace; a no-op outside a task."""
    trace = _current_trace.get()
    if trace is not None:
        trace.add(name, **data)


def traced(name: str) -> Callable[[F], F]:
    """Record start and end events around an async callable."""

    def decorator(func: F) -> F:
        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            trace = _current_trace.get()
            if trace is None:
                return await func(*args, **kwargs)
            started = time.monotonic()
            trace.add(f"{name}.start")
            try:
                result = await func(*args, **kwargs)
            except Exception as exc:
                trace.add(
                    f"{name}.error",
                    error=str(exc),
                    duration_ms=int((time.monotonic() - started) * 1000),
                )
                raise
            trace.add(f"{name}.end", duration_ms=int((time.monotonic() - started) * 1000))
            return result

        return wrapper  # type: ignore[return-value]

    return decorator

"""Shared pieces for custom handler modules."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, Protocol

if TYPE_CHECKING:
    import httpx

    from ..providers.http import RenderedRequest
    from ..providers.models import ProviderConfig


class CustomHandler(Protocol):
    """What a handler module may export. Both members are optional."""

    async def call(
        self,
        config: "ProviderConfig",
        params: Dict[str, Any],
        rendered: "RenderedRequest",
        *,
        client: "httpx.AsyncClient",
    ) -> Any:
        """Send the submit request and return the raw vendor body."""

    async def query(
        self,
        config: "ProviderConfig",
        params: Dict[str, Any],
        rendered: "RenderedRequest",
        *,
        client: "httpx.AsyncClient",
    ) -> Any:
        """Send one poll request and return the raw vendor body."""


def set_header(rendered: "RenderedRequest", name: str, value: str) -> None:
    """Set ``name`` after dropping every case variant already present."""
    lowered = name.lower()
    for key in [k for k in rendered.headers if k.lower() == lowered]:
        del rendered.headers[key]
    rendered.headers[name] = value


def is_truthy(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return value is True

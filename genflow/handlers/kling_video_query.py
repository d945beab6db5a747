"""Kling task status query: the templated request plus JWT auth."""

from __future__ import annotations

from typing import Any, Dict

import httpx

from ..providers.http import RenderedRequest, send_request
from ..providers.models import ProviderConfig
from ._kling import authorize


async def query(
    config: ProviderConfig,
    params: Dict[str, Any],
    rendered: RenderedRequest,
    *,
    client: httpx.AsyncClient,
) -> Any:
    authorize(rendered, config.resolve_api_key())
    return await send_request(client, rendered)

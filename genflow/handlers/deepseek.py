"""DeepSeek chat completions with optional thinking mode.

When ``think`` is set the request enables ``thinking`` and drops the
sampling parameters the reasoning mode rejects.
"""

from __future__ import annotations

import logging
from typing import Any, Dict

import httpx

from ..providers.http import RenderedRequest, send_request
from ..providers.models import ProviderConfig
from ..tracing import trace_step
from .base import is_truthy

logger = logging.getLogger(__name__)

THINKING_INCOMPATIBLE = ("temperature", "top_p", "presence_penalty", "frequency_penalty")
THINKING_TIMEOUT_S = 1200.0


def apply_thinking(params: Dict[str, Any], body: Dict[str, Any]) -> bool:
    enabled = is_truthy(params.get("think"))
    body.pop("think", None)
    if enabled:
        body["thinking"] = {"type": "enabled"}
        for key in THINKING_INCOMPATIBLE:
            body.pop(key, None)
    return enabled


async def call(
    config: ProviderConfig,
    params: Dict[str, Any],
    rendered: RenderedRequest,
    *,
    client: httpx.AsyncClient,
) -> Any:
    body = rendered.body if isinstance(rendered.body, dict) else {}
    thinking = apply_thinking(params, body)
    rendered.body = body
    trace_step("deepseek.submit", thinking=thinking, model=body.get("model"))
    if thinking:
        logger.debug("DeepSeek thinking mode enabled")
        return await send_request(client, rendered, timeout=THINKING_TIMEOUT_S)
    return await send_request(client, rendered)

"""Kling image-to-video submission.

Signs a short-lived JWT from the ``access_key+secret_key`` API key and
reshapes the generic ``imageUrls`` parameter into Kling's ``image`` (first
frame) and ``image_tail`` (last frame) fields.
"""

from __future__ import annotations

import logging
from typing import Any, Dict

import httpx

from ..providers.http import RenderedRequest, send_request
from ..providers.models import ProviderConfig
from ..tracing import trace_step
from ._kling import authorize

logger = logging.getLogger(__name__)

VALID_DURATIONS = (5, 10)
DEFAULT_DURATION = 5


def _normalize_duration(value: Any) -> Any:
    try:
        if float(value) in VALID_DURATIONS:
            return value
    except (TypeError, ValueError):
        pass
    return DEFAULT_DURATION


def reshape_body(params: Dict[str, Any], body: Dict[str, Any]) -> Dict[str, Any]:
    image_urls = params.get("imageUrls") or []
    if isinstance(image_urls, str):
        image_urls = [image_urls]
    if len(image_urls) > 0:
        body["image"] = image_urls[0]
    if len(image_urls) > 1:
        body["image_tail"] = image_urls[1]
    if not body.get("image") and params.get("imageUrl"):
        body["image"] = params["imageUrl"]
    for key in ("imageUrl", "imageUrls", "image_urls"):
        body.pop(key, None)
    body["duration"] = _normalize_duration(body.get("duration"))
    return body


async def call(
    config: ProviderConfig,
    params: Dict[str, Any],
    rendered: RenderedRequest,
    *,
    client: httpx.AsyncClient,
) -> Any:
    authorize(rendered, config.resolve_api_key())
    body = rendered.body if isinstance(rendered.body, dict) else {}
    rendered.body = reshape_body(params, body)
    trace_step(
        "kling.submit",
        has_image=bool(rendered.body.get("image")),
        has_tail=bool(rendered.body.get("image_tail")),
    )
    logger.debug(f"Kling submit {rendered.redacted_url()}")
    return await send_request(client, rendered)

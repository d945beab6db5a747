"""Helpers shared by the task handlers."""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional

from ..contracts import TaskRuntime
from ..exceptions import ProviderError, TaskInputError
from ..utils.text import wash_for_text

logger = logging.getLogger(__name__)

IMAGE_POLL = {"interval_ms": 3000, "max_duration_ms": 300_000}
VIDEO_POLL = {"interval_ms": 5000, "max_duration_ms": 600_000}


def require(params: Dict[str, Any], key: str) -> Any:
    value = params.get(key)
    if value is None or value == "":
        raise TaskInputError(f"{key} is required")
    return value


def first_present(result: Dict[str, Any], keys: Iterable[str]) -> Optional[Any]:
    return next((result[k] for k in keys if result.get(k)), None)


def reference_images(params: Dict[str, Any]) -> Dict[str, Any]:
    """``imageUrl``/``imageUrls`` entries to forward, when present."""
    refs: Dict[str, Any] = {}
    if params.get("imageUrl"):
        refs["imageUrl"] = params["imageUrl"]
    urls = params.get("imageUrls")
    if urls:
        refs["imageUrls"] = [urls] if isinstance(urls, str) else list(urls)
    return refs


async def call_text_model(
    runtime: TaskRuntime,
    model_name: str,
    messages: List[Dict[str, str]],
    *,
    max_tokens: int,
    temperature: float,
    **extra: Any,
) -> Dict[str, Any]:
    """Send a chat request and return the adapter result with cleaned ``content``."""
    user_prompt = messages[-1]["content"] if messages else ""
    request = {
        "messages": messages,
        "prompt": user_prompt,
        "message": user_prompt,
        "maxTokens": max_tokens,
        "temperature": temperature,
        **extra,
    }
    logger.debug(f"Calling text model '{model_name}' ({len(user_prompt)} chars)")
    result = await runtime.adapter.execute(model_name, request)
    result["content"] = wash_for_text(result.get("content"))
    return result


async def call_image_model(
    runtime: TaskRuntime,
    model_name: str,
    request: Dict[str, Any],
    *,
    report: bool = True,
) -> Dict[str, Any]:
    result = await runtime.adapter.execute(
        model_name,
        request,
        on_progress=runtime.report_progress if report else None,
        progress_start=30,
        progress_end=90,
        **IMAGE_POLL,
    )
    image_url = first_present(result, ("image_url", "url", "imageUrl"))
    if not image_url:
        raise ProviderError(f"model '{model_name}' finished without an image URL")
    result["image_url"] = image_url
    return result

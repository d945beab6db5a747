"""Video generation, text-to-video or from reference frames."""

from __future__ import annotations

import logging
from typing import Any, Dict

from ..contracts import TaskRuntime
from .base import VIDEO_POLL, first_present, reference_images, require

logger = logging.getLogger(__name__)


async def generate_video(params: Dict[str, Any], runtime: TaskRuntime) -> Dict[str, Any]:
    model_name = require(params, "videoModel")
    await runtime.report_progress(10)
    request: Dict[str, Any] = {
        "prompt": params.get("prompt") or "",
        "duration": params.get("duration") or 5,
        **reference_images(params),
    }
    if params.get("aspectRatio"):
        request["aspectRatio"] = params["aspectRatio"]

    result = await runtime.adapter.execute(
        model_name,
        request,
        on_progress=runtime.report_progress,
        progress_start=20,
        progress_end=90,
        **VIDEO_POLL,
    )
    video_url = first_present(result, ("video_url", "videoUrl", "url"))
    if not video_url:
        logger.warning(f"Video model '{model_name}' succeeded without a video URL")
    return {
        "video_url": video_url,
        "task_id": result.get("taskId") or result.get("task_id"),
        "model_name": model_name,
    }

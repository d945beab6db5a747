"""First/last frame generation for a storyboard shot.

Two image calls: the opening frame of the action and the closing frame,
which a video model can then interpolate between.
"""

from __future__ import annotations

from typing import Any, Dict

from ..contracts import TaskRuntime
from .base import call_image_model, require

START_SUFFIX = ", opening moment of the shot, the action just beginning"
END_SUFFIX = (
    ", closing moment of the shot, the action completed, "
    "same scene and characters as the previous frame"
)


async def generate_frames(params: Dict[str, Any], runtime: TaskRuntime) -> Dict[str, Any]:
    model_name = require(params, "imageModel")
    prompt = params.get("prompt") or ""
    width = params.get("width") or 1024
    height = params.get("height") or 576
    request = {
        "width": width,
        "height": height,
        "imageSize": f"{width}x{height}",
        "aspectRatio": params.get("aspectRatio") or "16:9",
    }

    await runtime.report_progress(10)
    start = await call_image_model(
        runtime, model_name, {**request, "prompt": prompt + START_SUFFIX}, report=False
    )
    await runtime.report_progress(50)
    end = await call_image_model(
        runtime, model_name, {**request, "prompt": prompt + END_SUFFIX}, report=False
    )
    return {
        "startFrame": start["image_url"],
        "endFrame": end["image_url"],
        "model_name": model_name,
    }

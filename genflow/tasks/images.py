"""Image generation (characters, scenes)."""

from __future__ import annotations

from typing import Any, Dict

from ..contracts import TaskRuntime
from .base import call_image_model, reference_images, require


async def generate_image(params: Dict[str, Any], runtime: TaskRuntime) -> Dict[str, Any]:
    model_name = require(params, "imageModel")
    await runtime.report_progress(10)
    request = {
        "prompt": params.get("prompt") or "",
        "width": params.get("width") or 1024,
        "height": params.get("height") or 1024,
        **reference_images(params),
    }
    result = await call_image_model(runtime, model_name, request)
    return {
        "image_url": result["image_url"],
        "task_id": result.get("taskId") or result.get("task_id"),
        "model_name": model_name,
    }

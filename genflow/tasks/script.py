"""Script generation with a text model."""

from __future__ import annotations

from typing import Any, Dict

from ..contracts import TaskRuntime
from ..tracing import trace_step
from .base import call_text_model, require

SYSTEM_PROMPT = "You are a professional screenwriter for short-form video."


def build_prompt(params: Dict[str, Any]) -> str:
    return (
        f"Write a {params.get('length') or 'short'} video script in a "
        f"{params.get('style') or 'cinematic'} style.\n"
        f"Title: {params.get('title') or 'Untitled'}\n"
        f"Description: {params.get('description') or ''}\n\n"
        "Requirements:\n"
        "1. Split the story into self-contained scenes.\n"
        "2. Give every scene a visual description and its dialogue.\n"
        "3. Keep it suitable for video production."
    )


async def generate_script(params: Dict[str, Any], runtime: TaskRuntime) -> Dict[str, Any]:
    model_name = require(params, "textModel")
    prompt = build_prompt(params)
    trace_step("script.prompt", length=len(prompt))
    await runtime.report_progress(30)
    result = await call_text_model(
        runtime,
        model_name,
        [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": prompt},
        ],
        max_tokens=4000,
        temperature=0.7,
        think=params.get("think", False),
    )
    await runtime.report_progress(90)
    return {
        "content": result["content"],
        "tokens": result.get("tokens") or 0,
        "model_name": model_name,
    }

"""Character extraction from a generated script."""

from __future__ import annotations

from typing import Any, Dict, List

from ..contracts import TaskRuntime
from ..exceptions import TaskInputError
from ..utils.text import wash_for_json
from .base import call_text_model, require

SYSTEM_PROMPT = (
    "You are a professional script analyst. Reply with JSON only, no other text."
)


def build_prompt(script_content: str) -> str:
    return (
        "Extract every character from the script below and return a JSON array.\n\n"
        f"Script:\n{script_content}\n\n"
        "Use exactly this format:\n"
        '[{"name": "...", "appearance": "...", "personality": "...", "description": "..."}]'
    )


def parse_characters(content: str) -> List[Dict[str, Any]]:
    """Tolerant parse of the model reply into a list of character dicts."""
    parsed = wash_for_json(content)
    if isinstance(parsed, list):
        return [c for c in parsed if isinstance(c, dict)]
    if isinstance(parsed, dict):
        characters = parsed.get("characters")
        if isinstance(characters, list):
            return [c for c in characters if isinstance(c, dict)]
        return [parsed]
    return [{"name": "unparsed", "description": content}]


async def extract_characters(params: Dict[str, Any], runtime: TaskRuntime) -> Dict[str, Any]:
    model_name = require(params, "textModel")
    script_content = params.get("scriptContent") or ""
    if not script_content.strip():
        raise TaskInputError("scriptContent is empty")
    await runtime.report_progress(30)
    result = await call_text_model(
        runtime,
        model_name,
        [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": build_prompt(script_content)},
        ],
        max_tokens=2000,
        temperature=0.3,
    )
    await runtime.report_progress(90)
    return {
        "characters": parse_characters(result["content"]),
        "tokens": result.get("tokens") or 0,
        "model_name": model_name,
    }

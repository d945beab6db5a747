"""Cleaning helpers for text-model output."""

from __future__ import annotations

import json
import re
from typing import Any, Optional

_THINK = re.compile(r"<think>[\s\S]*?</think>")
_CODE_BLOCK = re.compile(r"```(?:\w*)\s*\n?([\s\S]*?)```")
_OBJECT = re.compile(r"\{[\s\S]*\}")
_ARRAY = re.compile(r"\[[\s\S]*\]")
_INVISIBLE = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]")


def strip_think_tags(text: Any) -> str:
    """Remove every ``<think>...</think>`` section."""
    if not text or not isinstance(text, str):
        return ""
    return _THINK.sub("", text).strip()


def extract_code_block(text: Any) -> str:
    """Return the body of the first fenced code block, else the trimmed text."""
    if not text or not isinstance(text, str):
        return ""
    match = _CODE_BLOCK.search(text)
    return match.group(1).strip() if match else text.strip()


def extract_json(text: Any) -> Optional[str]:
    """Return the first ``{...}`` or ``[...]`` span, whichever starts earlier."""
    if not text or not isinstance(text, str):
        return None
    obj = _OBJECT.search(text)
    arr = _ARRAY.search(text)
    if obj and arr:
        return obj.group(0) if obj.start() <= arr.start() else arr.group(0)
    match = obj or arr
    return match.group(0) if match else None


def strip_invisible(text: Any) -> str:
    if not text or not isinstance(text, str):
        return ""
    text = _INVISIBLE.sub("", text).replace("\r\n", "\n").replace("\r", "\n")
    return text.lstrip("\ufeff")


def safe_parse_json(text: Any) -> Any:
    """Parse JSON, retrying once without control characters; ``None`` on failure."""
    if not text or not isinstance(text, str):
        return None
    cleaned = text.strip()
    if not cleaned:
        return None
    for candidate in (cleaned, strip_invisible(cleaned)):
        try:
            return json.loads(candidate)
        except ValueError:
            continue
    return None


def wash_for_json(raw: Any) -> Any:
    """Strip reasoning and fences from model output and parse the JSON in it."""
    if not raw or not isinstance(raw, str):
        return None
    text = extract_code_block(strip_think_tags(raw))
    parsed = safe_parse_json(text)
    if parsed is not None:
        return parsed
    fragment = extract_json(text)
    return safe_parse_json(fragment) if fragment else None


def wash_for_text(raw: Any) -> str:
    if not raw or not isinstance(raw, str):
        return ""
    return extract_code_block(strip_think_tags(raw)).strip()

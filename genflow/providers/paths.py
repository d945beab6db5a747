"""Dot-path extraction over decoded JSON trees."""

from __future__ import annotations

import re
from typing import Any, Dict, List, Mapping

_BRACKET = re.compile(r"^([^\[\]]*)\[(\d+)\]$")


class _Missing:
    """Typed "not found" marker returned by :func:`extract_path`."""

    _instance = None

    def __new__(cls) -> "_Missing":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "MISSING"


MISSING: Any = _Missing()


def split_path(path: str) -> List[str]:
    """Split ``"choices.0.message"`` or ``"images[0].url"`` into segments."""
    segments: List[str] = []
    for part in path.split("."):
        match = _BRACKET.match(part)
        if match:
            if match.group(1):
                segments.append(match.group(1))
            segments.append(match.group(2))
        elif part:
            segments.append(part)
    return segments


def extract_path(data: Any, path: str) -> Any:
    """Walk ``path`` through ``data``; return :data:`MISSING` if any hop fails."""
    if not path:
        return MISSING
    current = data
    for segment in split_path(path):
        if isinstance(current, Mapping):
            if segment not in current:
                return MISSING
            current = current[segment]
        elif isinstance(current, list):
            if not segment.isdigit():
                return MISSING
            index = int(segment)
            if index >= len(current):
                return MISSING
            current = current[index]
        else:
            return MISSING
    return current


def map_response(data: Any, mapping: Mapping[str, str] | None) -> Dict[str, Any]:
    """Extract every ``name -> path`` of ``mapping``; missing paths become ``None``."""
    result: Dict[str, Any] = {}
    for name, path in (mapping or {}).items():
        value = extract_path(data, path)
        result[name] = None if value is MISSING else value
    return result

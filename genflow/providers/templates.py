"""``{{placeholder}}`` rendering for provider request templates."""

from __future__ import annotations

import json
import re
from typing import Any, Mapping
from urllib.parse import quote

_PLACEHOLDER = re.compile(r"\{\{(\w+)\}\}")
_URL_HINT = re.compile(r"^https?://")


def _scalar_text(value: Any) -> str:
    """Text for a value substituted inside a larger string."""
    if isinstance(value, (list, tuple)):
        for item in value:
            if item is not None and not isinstance(item, (list, tuple, dict)):
                return _scalar_text(item)
        return ""
    if isinstance(value, dict):
        return json.dumps(value, ensure_ascii=False)
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def render_string(template: str | None, params: Mapping[str, Any]) -> str | None:
    """Substitute placeholders in a string template.

    URL templates (``http(s)://`` prefix or a query string) get their values
    percent-encoded. Unknown placeholders are left untouched.
    """
    if not template:
        return template
    is_url = bool(_URL_HINT.match(template)) or "?" in template

    def _sub(match: re.Match[str]) -> str:
        key = match.group(1)
        if key not in params:
            return match.group(0)
        if params[key] is None:
            return ""
        text = _scalar_text(params[key])
        return quote(text, safe="") if is_url else text

    return _PLACEHOLDER.sub(_sub, template)


def render_json_template(template: Any, params: Mapping[str, Any]) -> Any:
    """Render a JSON-like template tree.

    A string that is exactly one placeholder is replaced by the raw value so
    arrays and objects keep their shape; placeholders embedded in longer
    strings are replaced by text.
    """
    if isinstance(template, dict):
        return {k: render_json_template(v, params) for k, v in template.items()}
    if isinstance(template, list):
        return [render_json_template(v, params) for v in template]
    if isinstance(template, str):
        whole = _PLACEHOLDER.fullmatch(template)
        if whole:
            key = whole.group(1)
            if key in params:
                return params[key]
            return template

        def _sub(match: re.Match[str]) -> str:
            key = match.group(1)
            if key not in params:
                return match.group(0)
            if params[key] is None:
                return ""
            return _scalar_text(params[key])

        return _PLACEHOLDER.sub(_sub, template)
    return template


def render_headers(template: Mapping[str, Any] | None, params: Mapping[str, Any]) -> dict[str, str]:
    rendered = render_json_template(dict(template or {}), params)
    return {str(k): _scalar_text(v) for k, v in rendered.items() if v is not None}

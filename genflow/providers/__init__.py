"""Provider configuration and the submit-and-poll adapter."""

from __future__ import annotations

from .adapter import ProviderAdapter, scale_progress
from .conditions import evaluate_condition
from .http import RenderedRequest, decode_body, send_request
from .models import ProviderConfig
from .paths import MISSING, extract_path, map_response
from .store import InMemoryProviderStore, ProviderStore, load_providers, store_from_file
from .templates import render_json_template, render_string

__all__ = [
    "MISSING",
    "InMemoryProviderStore",
    "ProviderAdapter",
    "ProviderConfig",
    "ProviderStore",
    "RenderedRequest",
    "decode_body",
    "evaluate_condition",
    "extract_path",
    "load_providers",
    "map_response",
    "render_json_template",
    "render_string",
    "scale_progress",
    "send_request",
    "store_from_file",
]

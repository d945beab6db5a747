"""Request rendering and HTTP exchange with providers."""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Mapping, Optional
from urllib.parse import parse_qsl, urlsplit, urlunsplit

import httpx
from pydantic import BaseModel, Field

from ..exceptions import MalformedResponse, ProviderHTTPError, ProviderNetworkError
from .models import ProviderConfig
from .templates import render_headers, render_json_template, render_string

logger = logging.getLogger(__name__)

_BODY_METHODS = {"POST", "PUT", "PATCH"}
FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"


class RenderedRequest(BaseModel):
    """A fully rendered provider request.

    Custom handlers receive this object and may rewrite ``headers`` and
    ``body`` in place before sending it.
    """

    url: str
    method: str = "POST"
    headers: Dict[str, str] = Field(default_factory=dict)
    body: Optional[Any] = None

    def content_type(self) -> str:
        for key, value in self.headers.items():
            if key.lower() == "content-type":
                return value
        return ""

    def redacted_url(self) -> str:
        """``url`` with query-string values masked, for logs, errors and traces."""
        parts = urlsplit(self.url)
        if not parts.query:
            return self.url
        query = "&".join(
            f"{key}=***" for key, _ in parse_qsl(parts.query, keep_blank_values=True)
        )
        return urlunsplit(parts._replace(query=query))


def render_submit_request(config: ProviderConfig, params: Mapping[str, Any]) -> RenderedRequest:
    body = None
    if config.body_template is not None and config.request_method in _BODY_METHODS:
        body = render_json_template(config.body_template, params)
    return RenderedRequest(
        url=render_string(config.url_template, params),
        method=config.request_method,
        headers=render_headers(config.headers_template, params),
        body=body,
    )


def render_query_request(config: ProviderConfig, params: Mapping[str, Any]) -> RenderedRequest:
    body = None
    if config.query_body_template is not None and config.query_method in _BODY_METHODS:
        body = render_json_template(config.query_body_template, params)
    headers_template = (
        config.query_headers_template
        if config.query_headers_template is not None
        else config.headers_template
    )
    return RenderedRequest(
        url=render_string(config.query_url_template, params),
        method=config.query_method,
        headers=render_headers(headers_template, params),
        body=body,
    )


def decode_body(text: str) -> Any:
    """Decode a provider response: JSON first, form-urlencoded as fallback."""
    try:
        return json.loads(text)
    except ValueError:
        pass
    try:
        pairs = parse_qsl(text.strip(), keep_blank_values=True, strict_parsing=True)
    except ValueError:
        raise MalformedResponse(text) from None
    if not pairs:
        raise MalformedResponse(text)
    return dict(pairs)


def error_message(text: str) -> str:
    """Best-effort vendor error message from an error response body."""
    try:
        data = decode_body(text)
    except MalformedResponse:
        return text[:300] or "empty response"
    if isinstance(data, dict):
        error = data.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if isinstance(error, str) and error:
            return error
        for key in ("message", "msg", "detail"):
            if data.get(key):
                return str(data[key])
    return json.dumps(data, ensure_ascii=False)[:300]


def _form_value(value: Any) -> str:
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False)
    if isinstance(value, bool):
        return "true" if value else "false"
    return "" if value is None else str(value)


async def send_request(
    client: httpx.AsyncClient,
    request: RenderedRequest,
    *,
    timeout: Optional[float] = None,
) -> Any:
    """Send ``request`` and return the decoded response body.

    Raises:
        ProviderNetworkError: the request never produced a response.
        ProviderHTTPError: the provider answered with a non-2xx status.
        MalformedResponse: the body is neither JSON nor form-encoded.
    """
    kwargs: Dict[str, Any] = {"headers": request.headers}
    if request.body is not None and request.method in _BODY_METHODS:
        if FORM_CONTENT_TYPE in request.content_type().lower() and isinstance(request.body, dict):
            kwargs["data"] = {k: _form_value(v) for k, v in request.body.items()}
        else:
            kwargs["json"] = request.body
    if timeout is not None:
        kwargs["timeout"] = timeout

    shown = request.redacted_url()
    logger.debug(f"{request.method} {shown}")
    try:
        response = await client.request(request.method, request.url, **kwargs)
    except httpx.TransportError as exc:
        raise ProviderNetworkError(
            f"{request.method} {shown} failed: {exc!r}"
        ) from exc

    logger.debug(f"{request.method} {shown} -> {response.status_code}")
    if not response.is_success:
        raise ProviderHTTPError(response.status_code, error_message(response.text))
    return decode_body(response.text)

"""Uniform submit-and-poll access to configured AI providers."""

from __future__ import annotations

import asyncio
import json
import logging
import time
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional

import httpx

from ..config import HttpConfig, PollConfig
from ..constants import DEFAULT_PROGRESS_END, DEFAULT_PROGRESS_START
from ..contracts import ProgressCallback
from ..exceptions import (
    HandlerNotFound,
    ModelNotFound,
    ProviderConfigError,
    ProviderNetworkError,
    ProviderTaskFailed,
    ProviderTimeout,
)
from ..handlers import HandlerRegistry
from ..tracing import trace_step, traced
from .conditions import evaluate_condition
from .http import render_query_request, render_submit_request, send_request
from .models import ProviderConfig
from .paths import map_response
from .store import ProviderStore

logger = logging.getLogger(__name__)

_FAIL_MESSAGE_KEYS = ("error", "message", "fail_reason", "reason")


def _present(values: Mapping[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in values.items() if v is not None}


def _references_api_key(config: ProviderConfig) -> bool:
    templates = (
        config.url_template,
        config.headers_template,
        config.body_template,
        config.query_url_template,
        config.query_headers_template,
        config.query_body_template,
    )
    return any("{{apiKey}}" in json.dumps(t) for t in templates if t is not None)


def scale_progress(elapsed_ms: int, max_duration_ms: int, start: int, end: int) -> int:
    if max_duration_ms <= 0:
        return end
    ratio = min(max(elapsed_ms / max_duration_ms, 0.0), 1.0)
    return int(start + (end - start) * ratio)


class ProviderAdapter:
    """Execute provider calls described by :class:`ProviderConfig` rows.

    One adapter serves every job in the process; it owns the shared
    ``httpx.AsyncClient`` unless one is injected.
    """

    def __init__(
        self,
        store: ProviderStore,
        handlers: Optional[HandlerRegistry] = None,
        *,
        client: Optional[httpx.AsyncClient] = None,
        poll: Optional[PollConfig] = None,
        http: Optional[HttpConfig] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.store = store
        self.handlers = handlers if handlers is not None else HandlerRegistry()
        self.poll = poll or PollConfig()
        http = http or HttpConfig()
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(timeout=http.timeout_s)
        self._clock = clock
        self._sleep = sleep

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    async def __aenter__(self) -> "ProviderAdapter":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    # ------------------------------------------------------------------
    async def get_config(self, model_name: str) -> ProviderConfig:
        config = await self.store.get(model_name)
        if config is None:
            raise ModelNotFound(model_name)
        return config

    async def list_models(self, category: Optional[str] = None) -> list[ProviderConfig]:
        return await self.store.list(category)

    def _request_params(self, config: ProviderConfig, params: Mapping[str, Any]) -> Dict[str, Any]:
        merged = {**config.default_params, **_present(params)}
        api_key = config.resolve_api_key()
        if api_key:
            merged.setdefault("apiKey", api_key)
        elif not merged.get("apiKey") and _references_api_key(config):
            raise ProviderConfigError(
                f"no API key for model '{config.name}' "
                f"(set api_key or {config.provider.upper()}_API_KEY)"
            )
        return merged

    def _handler_function(self, name: Optional[str], attr: str) -> Optional[Callable[..., Any]]:
        if not name:
            return None
        handler = self.handlers.get(name)
        if handler is None:
            raise HandlerNotFound(name)
        return getattr(handler, attr, None)

    # ------------------------------------------------------------------
    @traced("provider")
    async def execute(
        self,
        model_name: str,
        params: Mapping[str, Any],
        *,
        interval_ms: Optional[int] = None,
        max_duration_ms: Optional[int] = None,
        on_progress: Optional[ProgressCallback] = None,
        progress_start: int = DEFAULT_PROGRESS_START,
        progress_end: int = DEFAULT_PROGRESS_END,
    ) -> Dict[str, Any]:
        """Call ``model_name`` and return its mapped result fields.

        Synchronous providers return the ``response_mapping`` extraction of
        the submit response. Asynchronous providers are polled until their
        success or fail condition holds.

        Raises:
            ModelNotFound: no active configuration called ``model_name``.
            ProviderHTTPError: the vendor answered with a non-2xx status.
            MalformedResponse: the vendor body could not be decoded.
            ProviderTaskFailed: the fail condition held.
            ProviderTimeout: polling exceeded ``max_duration_ms``.
        """
        config = await self.get_config(model_name)
        request_params = self._request_params(config, params)

        rendered = render_submit_request(config, request_params)
        trace_step(
            "provider.submit",
            model=config.name,
            provider=config.provider,
            url=rendered.redacted_url(),
        )
        call = self._handler_function(config.custom_handler, "call")
        if call is not None:
            raw = await call(config, dict(params), rendered, client=self.client)
        else:
            raw = await send_request(self.client, rendered)

        fields = map_response(raw, config.response_mapping)
        trace_step("provider.submitted", fields=fields)
        if not config.is_async:
            logger.info(f"Model '{config.name}' returned synchronously")
            return fields

        return await self._poll(
            config,
            params,
            {**request_params, **_present(fields)},
            fields,
            interval_ms=self.poll.interval_ms if interval_ms is None else interval_ms,
            max_duration_ms=(
                self.poll.max_duration_ms if max_duration_ms is None else max_duration_ms
            ),
            on_progress=on_progress,
            progress_start=progress_start,
            progress_end=progress_end,
        )

    async def _poll(
        self,
        config: ProviderConfig,
        params: Mapping[str, Any],
        query_params: Dict[str, Any],
        submit_fields: Dict[str, Any],
        *,
        interval_ms: int,
        max_duration_ms: int,
        on_progress: Optional[ProgressCallback],
        progress_start: int,
        progress_end: int,
    ) -> Dict[str, Any]:
        if not (config.query_success_condition or config.query_fail_condition):
            raise ProviderConfigError(
                f"model '{config.name}' polls but has no success or fail condition"
            )
        query = self._handler_function(
            config.custom_query_handler or config.custom_handler, "query"
        )
        task_ref = next((str(v) for v in submit_fields.values() if v is not None), None)
        started = self._clock()
        attempt = 0
        network_errors = 0

        while True:
            elapsed_ms = int((self._clock() - started) * 1000)
            if elapsed_ms >= max_duration_ms and attempt:
                trace_step("provider.timeout", elapsed_ms=elapsed_ms, attempts=attempt)
                logger.info(f"Model '{config.name}' timed out after {elapsed_ms} ms")
                raise ProviderTimeout(elapsed_ms, task_ref)
            # The last wait never runs past the polling budget.
            remaining_ms = max(max_duration_ms - elapsed_ms, 0)
            await self._sleep(min(interval_ms, remaining_ms) / 1000)
            elapsed_ms = int((self._clock() - started) * 1000)

            attempt += 1
            if on_progress is not None:
                await on_progress(
                    scale_progress(elapsed_ms, max_duration_ms, progress_start, progress_end)
                )

            rendered = render_query_request(config, query_params)
            try:
                if query is not None:
                    raw = await query(config, dict(params), rendered, client=self.client)
                else:
                    raw = await send_request(self.client, rendered)
            except ProviderNetworkError as exc:
                network_errors += 1
                if network_errors > self.poll.max_network_errors:
                    raise
                logger.warning(
                    f"Poll {attempt} for '{config.name}' failed "
                    f"({network_errors}/{self.poll.max_network_errors}): {exc}"
                )
                trace_step("provider.poll_network_error", attempt=attempt, error=str(exc))
                continue
            network_errors = 0

            status_fields = map_response(raw, config.query_response_mapping)
            logger.debug(f"Poll {attempt} for '{config.name}': {status_fields}")
            trace_step("provider.poll", attempt=attempt, fields=status_fields)

            if evaluate_condition(config.query_success_condition, status_fields):
                result = (
                    map_response(raw, config.query_success_mapping)
                    if config.query_success_mapping
                    else {**submit_fields, **status_fields}
                )
                trace_step("provider.result", attempts=attempt, fields=result)
                logger.info(f"Model '{config.name}' succeeded after {attempt} polls")
                return result

            if evaluate_condition(config.query_fail_condition, status_fields):
                details = (
                    map_response(raw, config.query_fail_mapping)
                    if config.query_fail_mapping
                    else status_fields
                )
                message = next(
                    (str(details[k]) for k in _FAIL_MESSAGE_KEYS if details.get(k)),
                    f"model '{config.name}' reported task failure",
                )
                trace_step("provider.failed", attempts=attempt, details=details)
                raise ProviderTaskFailed(message, details)

import asyncio
from typing import Any, Callable, Dict, Iterable, List

import httpx
import pytest

import genflow.persistence as persistence
from genflow.handlers import HandlerRegistry
from genflow.providers import InMemoryProviderStore, ProviderAdapter, ProviderConfig


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch, tmp_path):
    """Keep tests away from real config files, databases and API keys."""
    monkeypatch.setenv("GENFLOW_CONFIG", str(tmp_path / "absent.yaml"))
    for name in ("GENFLOW_DATABASE_URL", "DATABASE_URL", "GENFLOW_PROVIDERS_FILE"):
        monkeypatch.delenv(name, raising=False)
    persistence.reset_repository()
    yield
    persistence.reset_repository()


async def no_sleep(seconds: float) -> None:
    await asyncio.sleep(0)


@pytest.fixture
def make_adapter() -> Callable[..., ProviderAdapter]:
    """Build an adapter whose HTTP traffic goes to ``responder``."""

    def factory(
        responder: Callable[[httpx.Request], httpx.Response],
        configs: Iterable[ProviderConfig | Dict[str, Any]] = (),
        registry: HandlerRegistry | None = None,
        **kwargs: Any,
    ) -> ProviderAdapter:
        client = httpx.AsyncClient(transport=httpx.MockTransport(responder))
        return ProviderAdapter(
            InMemoryProviderStore(configs),
            registry if registry is not None else HandlerRegistry(names=()),
            client=client,
            **kwargs,
        )

    return factory


@pytest.fixture
def fast_sleep():
    return no_sleep


class Recorder:
    """Collects requests seen by a mock transport."""

    def __init__(self, responses: List[httpx.Response | Exception]) -> None:
        self.responses = list(responses)
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, Exception):
            raise response
        return response


@pytest.fixture
def recorder() -> Callable[..., Recorder]:
    return Recorder

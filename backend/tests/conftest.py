"""pytest fixtures for the integrations backend tests."""

from typing import Callable, Dict, List, Optional, Tuple, Union

import httpx
import pytest
from core.config import Settings
from core.stores import KeyValueCredentialStore, KeyValueItemStore

from integrations.adapters import build_registry
from integrations.base import transport
from integrations.core import IntegrationConfig
from integrations.manager import IntegrationManager

Reply = Union[httpx.Response, Callable[[httpx.Request], httpx.Response]]


class MemoryStore:
    """In-memory stand-in for the Redis key/value store."""

    def __init__(self):
        self.data: Dict[str, str] = {}
        self.expiries: Dict[str, int] = {}
        self.published: List[Tuple[str, str]] = []

    async def set(self, key: str, value: str, expire: Optional[int] = None) -> None:
        self.data[key] = value
        if expire:
            self.expiries[key] = expire

    async def get(self, key: str):
        return self.data.get(key)

    async def delete(self, key: str) -> None:
        self.data.pop(key, None)

    async def publish(self, channel: str, message: str) -> None:
        self.published.append((channel, message))


class FakeProvider:
    """Route table behind ``httpx.MockTransport``.

    Routes match on method plus scheme/host/path; the query string is ignored.
    Queued replies are consumed in order and the last one repeats.
    """

    def __init__(self):
        self.routes: Dict[Tuple[str, str], List[Reply]] = {}
        self.requests: List[httpx.Request] = []

    def add(self, method: str, url: str, *replies: Reply) -> None:
        self.routes[(method.upper(), url)] = list(replies)

    def calls(self, method: str, url: str) -> List[httpx.Request]:
        return [
            r for r in self.requests if r.method == method.upper() and self._url(r) == url
        ]

    @staticmethod
    def _url(request: httpx.Request) -> str:
        return f"{request.url.scheme}://{request.url.host}{request.url.path}"

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        replies = self.routes.get((request.method, self._url(request)))
        if not replies:
            return httpx.Response(404, json={"error": "no route"})
        reply = replies.pop(0) if len(replies) > 1 else replies[0]
        return reply(request) if callable(reply) else reply


@pytest.fixture
def sleeps(monkeypatch):
    """Record backoff sleeps instead of waiting."""
    calls: List[float] = []

    async def fake_backoff(seconds: float) -> None:
        calls.append(seconds)

    monkeypatch.setattr(transport, "backoff", fake_backoff)
    return calls


@pytest.fixture
def settings(sleeps):
    return Settings(
        _env_file=None,
        todoist_client_id="todoist-client",
        todoist_client_secret="todoist-secret",
        google_client_id="google-client",
        google_client_secret="google-secret",
        microsoft_client_id="ms-client",
        microsoft_client_secret="",
        notion_client_id="notion-client",
        notion_client_secret="notion-secret",
        youtube_api_key="yt-key",
        batch_pause_seconds=0,
        default_retry_after_seconds=0,
    )


@pytest.fixture
def api():
    return FakeProvider()


@pytest.fixture
def http(api):
    return httpx.AsyncClient(transport=httpx.MockTransport(api))


@pytest.fixture
def kv():
    return MemoryStore()


@pytest.fixture
def credential_store(kv, settings):
    return KeyValueCredentialStore(
        kv, settings.user_id, skew_seconds=settings.token_refresh_skew_seconds
    )


@pytest.fixture
def item_store(kv, settings):
    return KeyValueItemStore(kv, settings.user_id)


@pytest.fixture
def registry():
    return build_registry()


@pytest.fixture
def manager(registry, http, settings, item_store, credential_store, kv):
    return IntegrationManager(
        registry,
        http,
        settings,
        item_store=item_store,
        credential_store=credential_store,
        kv_store=kv,
    )


@pytest.fixture
def make_adapter(http, settings, credential_store):
    def build(adapter_cls, access_token: Optional[str] = "token", refresh_token: Optional[str] = None):
        config = IntegrationConfig(
            id=f"{adapter_cls.provider.value}-test",
            provider=adapter_cls.provider.value,
            name=adapter_cls.provider.value,
        )
        adapter = adapter_cls(config, http, settings, credential_store)
        adapter.set_tokens(access_token, refresh_token)
        return adapter

    return build

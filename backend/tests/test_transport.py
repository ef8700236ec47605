"""Tests for the shared request, retry and helper layer."""

from datetime import datetime, timedelta, timezone
from email.utils import format_datetime

import httpx
import pytest
from core.errors import (
    InvalidCredentialError,
    RateLimitedError,
    RequestFailedError,
    TokenRefreshFailedError,
)

from integrations.adapters.google_calendar import (
    GOOGLE_CALENDAR_API_URL,
    GOOGLE_TOKEN_URL,
    GoogleCalendarAdapter,
)
from integrations.adapters.notion import NOTION_API_URL, NotionAdapter
from integrations.adapters.todoist import TODOIST_API_URL, TodoistAdapter
from integrations.base import transport
from integrations.core import IntegrationStatus, NormalizedItem, Page

CALENDAR_LIST = f"{GOOGLE_CALENDAR_API_URL}/users/me/calendarList"
PROJECTS = f"{TODOIST_API_URL}/projects"


def item(item_id: str, title: str, source: str = "todoist", original_id: str = None):
    return NormalizedItem(
        id=item_id,
        title=title,
        metadata={"source": source, "originalId": original_id or item_id.split("-")[-1]},
    )


class TestAuthenticatedRequest:
    """Retry, refresh and error mapping of BaseAdapter.authenticated_request."""

    @pytest.mark.asyncio
    async def test_429_then_success_retries_once(self, api, make_adapter, sleeps):
        api.add(
            "GET",
            PROJECTS,
            httpx.Response(429, headers={"Retry-After": "1"}),
            httpx.Response(200, json=[]),
        )
        adapter = make_adapter(TodoistAdapter)

        response = await adapter.authenticated_request("GET", PROJECTS)

        assert response.status_code == 200
        assert len(api.calls("GET", PROJECTS)) == 2
        assert sleeps == [1.0]

    @pytest.mark.asyncio
    async def test_429_exhausts_retry_budget(self, api, make_adapter, settings, sleeps):
        api.add("GET", PROJECTS, httpx.Response(429))
        adapter = make_adapter(TodoistAdapter)

        with pytest.raises(RateLimitedError) as exc_info:
            await adapter.authenticated_request("GET", PROJECTS)

        assert exc_info.value.retryable is True
        assert len(api.calls("GET", PROJECTS)) == settings.max_request_retries + 1
        assert len(sleeps) == settings.max_request_retries

    @pytest.mark.asyncio
    async def test_401_refreshes_once_and_retries(self, api, make_adapter, credential_store):
        api.add(
            "GET",
            CALENDAR_LIST,
            httpx.Response(401),
            httpx.Response(200, json={"items": []}),
        )
        api.add(
            "POST",
            GOOGLE_TOKEN_URL,
            httpx.Response(200, json={"access_token": "fresh", "expires_in": 3600}),
        )
        adapter = make_adapter(GoogleCalendarAdapter, access_token="stale", refresh_token="refresh")

        response = await adapter.authenticated_request("GET", CALENDAR_LIST)

        assert response.status_code == 200
        assert len(api.calls("POST", GOOGLE_TOKEN_URL)) == 1
        retried = api.calls("GET", CALENDAR_LIST)
        assert len(retried) == 2
        assert retried[1].headers["Authorization"] == "Bearer fresh"

        stored = await credential_store.get_token("google_calendar")
        assert stored.access_token == "fresh"
        assert stored.refresh_token == "refresh"

    @pytest.mark.asyncio
    async def test_failed_refresh_raises_and_sets_error(self, api, make_adapter):
        api.add("GET", CALENDAR_LIST, httpx.Response(401))
        api.add("POST", GOOGLE_TOKEN_URL, httpx.Response(400, json={"error": "invalid_grant"}))
        adapter = make_adapter(GoogleCalendarAdapter, access_token="stale", refresh_token="refresh")

        with pytest.raises(TokenRefreshFailedError):
            await adapter.authenticated_request("GET", CALENDAR_LIST)

        assert adapter.status == IntegrationStatus.ERROR
        assert len(api.calls("GET", CALENDAR_LIST)) == 1

    @pytest.mark.asyncio
    async def test_401_without_refresh_token_fails(self, api, make_adapter):
        api.add("GET", PROJECTS, httpx.Response(401))
        adapter = make_adapter(TodoistAdapter)

        with pytest.raises(RequestFailedError) as exc_info:
            await adapter.authenticated_request("GET", PROJECTS)

        assert exc_info.value.code == 401

    @pytest.mark.asyncio
    async def test_server_error_is_request_failed(self, api, make_adapter):
        api.add("GET", PROJECTS, httpx.Response(503, text="down"))
        adapter = make_adapter(TodoistAdapter)

        with pytest.raises(RequestFailedError) as exc_info:
            await adapter.authenticated_request("GET", PROJECTS)

        assert exc_info.value.code == 503
        assert exc_info.value.provider == "todoist"
        assert exc_info.value.to_dict()["error"] == "request_failed"

    @pytest.mark.asyncio
    async def test_network_error_is_retryable_request_failed(self, api, make_adapter):
        def boom(request):
            raise httpx.ConnectError("refused", request=request)

        api.add("GET", PROJECTS, boom)
        adapter = make_adapter(TodoistAdapter)

        with pytest.raises(RequestFailedError) as exc_info:
            await adapter.authenticated_request("GET", PROJECTS)

        assert exc_info.value.retryable is True

    @pytest.mark.asyncio
    async def test_request_json_handles_no_content(self, api, make_adapter):
        api.add("DELETE", f"{TODOIST_API_URL}/tasks/1", httpx.Response(204))
        adapter = make_adapter(TodoistAdapter)

        assert await adapter.request_json("DELETE", f"{TODOIST_API_URL}/tasks/1") == {}


class TestStaticCredentialRefresh:
    """Non-expiring tokens re-probe on 401 instead of running a refresh grant."""

    @pytest.mark.asyncio
    async def test_todoist_dead_token_fails_after_one_reprobe(self, api, make_adapter):
        api.add("GET", PROJECTS, httpx.Response(401))
        adapter = make_adapter(TodoistAdapter, access_token="t", refresh_token="r")

        with pytest.raises(TokenRefreshFailedError):
            await adapter.authenticated_request("GET", PROJECTS)

        assert len(api.calls("GET", PROJECTS)) == 2
        assert adapter.status == IntegrationStatus.ERROR

    @pytest.mark.asyncio
    async def test_todoist_transient_401_retries_after_reprobe(self, api, make_adapter):
        api.add(
            "GET",
            PROJECTS,
            httpx.Response(401),
            httpx.Response(200, json=[]),
            httpx.Response(200, json=[{"id": "p1"}]),
        )
        adapter = make_adapter(TodoistAdapter, access_token="t", refresh_token="r")

        response = await adapter.authenticated_request("GET", PROJECTS)

        assert response.json() == [{"id": "p1"}]
        assert len(api.calls("GET", PROJECTS)) == 3

    @pytest.mark.asyncio
    async def test_notion_authenticate_with_dead_token_terminates(self, api, make_adapter):
        users_me = f"{NOTION_API_URL}/users/me"
        api.add("GET", users_me, httpx.Response(401))
        adapter = make_adapter(NotionAdapter, access_token="n", refresh_token="r")

        with pytest.raises(InvalidCredentialError):
            await adapter.authenticate()

        assert len(api.calls("GET", users_me)) == 2
        assert adapter.status == IntegrationStatus.ERROR


class TestRetryAfter:
    def test_delta_seconds(self):
        assert transport.parse_retry_after("2") == 2.0

    def test_missing_or_garbage_uses_default(self):
        assert transport.parse_retry_after(None, 1.5) == 1.5
        assert transport.parse_retry_after("soon", 1.5) == 1.5

    def test_http_date(self):
        when = datetime.now(timezone.utc) + timedelta(seconds=30)
        delay = transport.parse_retry_after(format_datetime(when, usegmt=True))
        assert 25 <= delay <= 30


class TestPaginate:
    @pytest.mark.asyncio
    async def test_follows_cursor_until_exhausted(self):
        pages = {None: Page(items=[1, 2], next_cursor="b"), "b": Page(items=[3])}
        seen = []

        async def fetch_page(cursor):
            seen.append(cursor)
            return pages[cursor]

        assert await transport.paginate(fetch_page) == [1, 2, 3]
        assert seen == [None, "b"]

    @pytest.mark.asyncio
    async def test_stops_at_max_pages(self):
        calls = []

        async def fetch_page(cursor):
            calls.append(cursor)
            return Page(items=[len(calls)], next_cursor="again")

        assert await transport.paginate(fetch_page, max_pages=3) == [1, 2, 3]
        assert len(calls) == 3


class TestProcessInBatches:
    @pytest.mark.asyncio
    async def test_sequential_batches_preserve_order(self, sleeps):
        chunks = []

        async def worker(chunk):
            chunks.append(chunk)
            return [n * 10 for n in chunk]

        result = await transport.process_in_batches([1, 2, 3, 4, 5], 2, worker, 0.1)

        assert result == [10, 20, 30, 40, 50]
        assert chunks == [[1, 2], [3, 4], [5]]
        assert sleeps == [0.1, 0.1]

    @pytest.mark.asyncio
    async def test_rejects_empty_batches(self):
        async def worker(chunk):
            return chunk

        with pytest.raises(ValueError):
            await transport.process_in_batches([1], 0, worker)


class TestDeduplicate:
    def test_skips_known_source_and_original_id(self):
        existing = [item("todoist-1", "Buy milk")]
        incoming = [item("todoist-1", "Buy milk"), item("todoist-2", "Call mum")]

        fresh, skipped = transport.deduplicate(incoming, existing)

        assert [i.id for i in fresh] == ["todoist-2"]
        assert skipped == 1

    def test_title_match_only_when_enabled(self):
        existing = [item("manual-9", "Buy Milk ", source="manual", original_id="9")]
        incoming = [item("todoist-3", "buy milk")]

        assert transport.deduplicate(incoming, existing)[1] == 0
        assert transport.deduplicate(incoming, existing, by_title=True)[1] == 1

    def test_drops_duplicates_within_batch(self):
        incoming = [item("todoist-4", "A"), item("todoist-4", "A")]

        fresh, skipped = transport.deduplicate(incoming, [])

        assert len(fresh) == 1
        assert skipped == 1

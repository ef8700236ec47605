"""Tests for OAuth state handling, PKCE and code exchange."""

import base64
from urllib.parse import parse_qs, urlparse

import httpx
import pytest
from core.errors import OAuthConfigurationError, OAuthStateError, RequestFailedError

from integrations.adapters.graph import MICROSOFT_TOKEN_URL
from integrations.adapters.microsoft_calendar import MicrosoftCalendarAdapter
from integrations.adapters.notion import NOTION_TOKEN_URL, NotionAdapter
from integrations.adapters.todoist import TodoistAdapter
from integrations.base import (
    PKCEOAuthStrategy,
    StandardOAuthStrategy,
    code_challenge_s256,
    exchange_code,
    generate_code_verifier,
)

TOKEN_URL = "https://auth.example.com/token"


def form(request: httpx.Request) -> dict:
    return {k: v[0] for k, v in parse_qs(request.content.decode()).items()}


def pkce_endpoint(expected_challenge: str):
    """Token endpoint that only accepts a verifier matching the challenge."""

    def handle(request: httpx.Request) -> httpx.Response:
        body = form(request)
        if "client_secret" in body:
            return httpx.Response(400, json={"error": "unexpected_secret"})
        if code_challenge_s256(body.get("code_verifier", "")) != expected_challenge:
            return httpx.Response(400, json={"error": "invalid_grant"})
        return httpx.Response(
            200,
            json={"access_token": "ms-access", "refresh_token": "ms-refresh", "expires_in": 3600},
        )

    return handle


class TestPKCE:
    def test_challenge_matches_rfc_example(self):
        verifier = "dBjftJeZ4CVP-mB92K27uhbUJU1p1r_wW1gFWFOEjXk"
        assert code_challenge_s256(verifier) == "E9Melhoa2OwvFrEMTJguCHaoeK1t8URWbuGJSstw-cM"

    def test_verifier_length_is_clamped(self):
        assert len(generate_code_verifier(10)) == 43
        assert len(generate_code_verifier(128)) == 128
        assert len(generate_code_verifier(500)) == 128

    @pytest.mark.asyncio
    async def test_pkce_exchange_against_validating_endpoint(self, api, http, kv, settings):
        strategy = PKCEOAuthStrategy("microsoft-calendar", kv, verifier_length=128)
        authorized = await strategy.authorize("user-1", "user-1", 600)
        api.add("POST", MICROSOFT_TOKEN_URL, pkce_endpoint(authorized["code_challenge"]))

        verified = await strategy.callback(
            {"code": "auth-code", "state": authorized["encoded_state"]}
        )
        tokens = await MicrosoftCalendarAdapter.exchange_code(
            http, settings, verified["code"], verified["code_verifier"]
        )

        assert tokens["access_token"] == "ms-access"
        body = form(api.calls("POST", MICROSOFT_TOKEN_URL)[0])
        assert body["grant_type"] == "authorization_code"
        assert len(body["code_verifier"]) == 128
        assert "client_secret" not in body

    @pytest.mark.asyncio
    async def test_wrong_verifier_is_rejected(self, api, http):
        api.add("POST", TOKEN_URL, pkce_endpoint(code_challenge_s256(generate_code_verifier())))

        with pytest.raises(RequestFailedError) as exc_info:
            await exchange_code(
                http,
                TOKEN_URL,
                code="c",
                client_id="id",
                redirect_uri="https://app/cb",
                code_verifier=generate_code_verifier(),
            )

        assert exc_info.value.code == 400


class TestExchangeCode:
    @pytest.mark.asyncio
    async def test_neither_secret_nor_verifier_fails_before_network(self, api, http):
        with pytest.raises(OAuthConfigurationError):
            await exchange_code(
                http, TOKEN_URL, code="c", client_id="id", redirect_uri="https://app/cb"
            )
        assert api.requests == []

    @pytest.mark.asyncio
    async def test_both_secret_and_verifier_fails(self, api, http):
        with pytest.raises(OAuthConfigurationError):
            await exchange_code(
                http,
                TOKEN_URL,
                code="c",
                client_id="id",
                redirect_uri="https://app/cb",
                client_secret="s",
                code_verifier=generate_code_verifier(),
            )
        assert api.requests == []

    @pytest.mark.asyncio
    async def test_client_secret_posted_in_form(self, api, http):
        api.add("POST", TOKEN_URL, httpx.Response(200, json={"access_token": "a"}))

        await exchange_code(
            http,
            TOKEN_URL,
            code="c",
            client_id="id",
            redirect_uri="https://app/cb",
            client_secret="s",
        )

        body = form(api.requests[0])
        assert body["client_secret"] == "s"
        assert body["grant_type"] == "authorization_code"

    @pytest.mark.asyncio
    async def test_notion_uses_basic_auth_and_json(self, api, http, settings):
        api.add("POST", NOTION_TOKEN_URL, httpx.Response(200, json={"access_token": "n"}))

        await NotionAdapter.exchange_code(http, settings, "code")

        request = api.requests[0]
        expected = base64.b64encode(b"notion-client:notion-secret").decode()
        assert request.headers["Authorization"] == f"Basic {expected}"
        assert request.headers["content-type"] == "application/json"


class TestStandardStrategy:
    @pytest.mark.asyncio
    async def test_state_round_trip_is_single_use(self, kv):
        strategy = StandardOAuthStrategy("todoist", kv)
        authorized = await strategy.authorize("user-1", "org-1", 600)
        params = {"code": "xyz", "state": authorized["encoded_state"]}

        result = await strategy.callback(params)

        assert result == {"code": "xyz", "user_id": "user-1", "org_id": "org-1"}
        assert kv.expiries["todoist_state:org-1:user-1"] == 600
        with pytest.raises(OAuthStateError):
            await strategy.callback(params)

    @pytest.mark.asyncio
    async def test_state_mismatch_is_rejected(self, kv):
        strategy = StandardOAuthStrategy("todoist", kv)
        superseded = await strategy.authorize("user-1", "org-1", 600)
        await strategy.authorize("user-1", "org-1", 600)

        with pytest.raises(OAuthStateError) as exc_info:
            await strategy.callback({"code": "xyz", "state": superseded["encoded_state"]})

        assert exc_info.value.message == "State mismatch"

    @pytest.mark.asyncio
    async def test_provider_error_is_reported(self, kv):
        strategy = StandardOAuthStrategy("todoist", kv)

        with pytest.raises(OAuthStateError) as exc_info:
            await strategy.callback({"error": "access_denied"})

        assert exc_info.value.message == "access_denied"

    def test_authorization_url_carries_state(self, settings):
        url = urlparse(TodoistAdapter.authorization_url(settings, "opaque"))
        query = parse_qs(url.query)

        assert url.netloc == "todoist.com"
        assert query["state"] == ["opaque"]
        assert query["client_id"] == ["todoist-client"]
        assert query["scope"] == ["data:read_write"]

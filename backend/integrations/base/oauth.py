# backend/integrations/base/oauth.py
from __future__ import annotations

import base64
import hashlib
import logging
import secrets
import string
from abc import ABC, abstractmethod
from typing import Any, Dict, Mapping, Optional
from urllib.parse import urlencode

import httpx
from core.contracts import KeyValueStore
from core.errors import (
    OAuthConfigurationError,
    OAuthStateError,
    RequestFailedError,
    TokenRefreshFailedError,
)
from fastapi.responses import HTMLResponse

from integrations.core.models import OAuthState

logger = logging.getLogger(__name__)

_VERIFIER_ALPHABET = string.ascii_letters + string.digits + "-._~"


def generate_code_verifier(length: int = 64) -> str:
    """Random PKCE verifier; RFC 7636 allows 43 to 128 characters."""
    length = max(43, min(128, length))
    return "".join(secrets.choice(_VERIFIER_ALPHABET) for _ in range(length))


def code_challenge_s256(code_verifier: str) -> str:
    digest = hashlib.sha256(code_verifier.encode("utf-8")).digest()
    return base64.urlsafe_b64encode(digest).decode("utf-8").replace("=", "")


def build_authorization_url(base_url: str, params: Mapping[str, Any]) -> str:
    query = urlencode({k: v for k, v in params.items() if v is not None})
    return f"{base_url}?{query}"


def basic_auth_header(client_id: str, client_secret: str) -> str:
    encoded = base64.b64encode(f"{client_id}:{client_secret}".encode()).decode()
    return f"Basic {encoded}"


async def exchange_code(
    http: httpx.AsyncClient,
    token_url: str,
    *,
    code: str,
    client_id: str,
    redirect_uri: str,
    client_secret: Optional[str] = None,
    code_verifier: Optional[str] = None,
    basic_auth: bool = False,
    as_json: bool = False,
    extra: Optional[Mapping[str, str]] = None,
    provider: Optional[str] = None,
) -> Dict[str, Any]:
    """Trade an authorization code for tokens.

    Exactly one of ``code_verifier`` (PKCE public client) or ``client_secret``
    (confidential client) must be given. With ``basic_auth`` the secret travels
    in the Authorization header instead of the body.
    """
    if bool(client_secret) == bool(code_verifier):
        raise OAuthConfigurationError(
            "Either code_verifier (for PKCE) or client_secret must be provided, not both",
            provider=provider,
        )

    body: Dict[str, str] = {
        "grant_type": "authorization_code",
        "code": code,
        "redirect_uri": redirect_uri,
        "client_id": client_id,
    }
    headers: Dict[str, str] = {"Accept": "application/json"}
    if code_verifier:
        body["code_verifier"] = code_verifier
    elif basic_auth:
        headers["Authorization"] = basic_auth_header(client_id, client_secret)
    else:
        body["client_secret"] = client_secret
    if extra:
        body.update(extra)

    if as_json:
        response = await http.post(token_url, json=body, headers=headers)
    else:
        response = await http.post(token_url, data=body, headers=headers)

    if not response.is_success:
        logger.error(
            f"Failed to exchange code for token: provider={provider} status={response.status_code}"
        )
        raise RequestFailedError(
            "Failed to exchange code for token.",
            provider=provider,
            code=response.status_code,
            details={"body": response.text[:500]},
        )
    return response.json()


async def refresh_token_grant(
    http: httpx.AsyncClient,
    token_url: str,
    *,
    refresh_token: str,
    client_id: str,
    client_secret: Optional[str] = None,
    scope: Optional[str] = None,
    provider: Optional[str] = None,
) -> Dict[str, Any]:
    body = {
        "grant_type": "refresh_token",
        "refresh_token": refresh_token,
        "client_id": client_id,
    }
    if client_secret:
        body["client_secret"] = client_secret
    if scope:
        body["scope"] = scope

    try:
        response = await http.post(
            token_url, data=body, headers={"Accept": "application/json"}
        )
    except httpx.HTTPError as err:
        raise TokenRefreshFailedError(
            f"Token refresh request failed: {err}", provider=provider
        ) from err

    if not response.is_success:
        logger.error(
            f"Failed to refresh access token: provider={provider} status={response.status_code}"
        )
        raise TokenRefreshFailedError(
            "Failed to refresh access token",
            provider=provider,
            code=response.status_code,
            details={"body": response.text[:500]},
        )
    return response.json()


class OAuthStrategy(ABC):
    def __init__(self, provider: str, kv_store: KeyValueStore):
        self.provider = provider
        self.kv_store = kv_store

    def _state_key(self, org_id: str, user_id: str) -> str:
        return f"{self.provider}_state:{org_id}:{user_id}"

    @abstractmethod
    async def authorize(self, user_id: str, org_id: str, expiry_seconds: int) -> dict:
        """Generate OAuth authorization data."""
        pass

    @abstractmethod
    async def callback(self, params: Mapping[str, str]) -> dict:
        """Handle OAuth callback using query params and return verification data."""
        pass


class StandardOAuthStrategy(OAuthStrategy):
    async def authorize(self, user_id: str, org_id: str, expiry_seconds: int) -> dict:
        """Standard OAuth 2.0 authorize flow - returns state data and encoded state."""
        state_data = OAuthState(
            state=secrets.token_urlsafe(32), user_id=user_id, org_id=org_id
        )
        encoded_state = base64.urlsafe_b64encode(
            state_data.model_dump_json().encode("utf-8")
        ).decode("utf-8")
        await self.kv_store.set(
            self._state_key(org_id, user_id),
            state_data.model_dump_json(),
            expire=expiry_seconds,
        )
        return {"state_data": state_data, "encoded_state": encoded_state}

    async def callback(self, params: Mapping[str, str]) -> dict:
        """Verify the callback's state against the stored one - returns code, user_id, org_id."""
        if params.get("error"):
            raise OAuthStateError(
                params.get("error_description") or params["error"],
                provider=self.provider,
            )

        code = params.get("code")
        if not code:
            raise OAuthStateError(
                "Authorization code not provided", provider=self.provider
            )

        encoded_state = params.get("state")
        if not encoded_state:
            raise OAuthStateError(
                "State parameter not provided", provider=self.provider
            )

        try:
            received_state_data = OAuthState.model_validate_json(
                base64.urlsafe_b64decode(encoded_state).decode("utf-8")
            )
        except ValueError as e:
            raise OAuthStateError(
                f"Invalid state parameter: {e}", provider=self.provider
            ) from e

        user_id = received_state_data.user_id
        org_id = received_state_data.org_id

        saved_state_json = await self.kv_store.get(self._state_key(org_id, user_id))
        if not saved_state_json:
            raise OAuthStateError("State not found or expired", provider=self.provider)

        saved_state_data = OAuthState.model_validate_json(saved_state_json)
        if saved_state_data.state != received_state_data.state:
            raise OAuthStateError("State mismatch", provider=self.provider)

        await self.kv_store.delete(self._state_key(org_id, user_id))
        return {"code": code, "user_id": user_id, "org_id": org_id}


class PKCEOAuthStrategy(OAuthStrategy):
    def __init__(
        self, provider: str, kv_store: KeyValueStore, verifier_length: int = 64
    ):
        super().__init__(provider, kv_store)
        self.verifier_length = verifier_length

    def _verifier_key(self, org_id: str, user_id: str) -> str:
        return f"{self.provider}_verifier:{org_id}:{user_id}"

    async def authorize(self, user_id: str, org_id: str, expiry_seconds: int) -> dict:
        """PKCE OAuth 2.0 authorize flow - returns state data, encoded state, and code challenge."""
        result = await StandardOAuthStrategy(self.provider, self.kv_store).authorize(
            user_id, org_id, expiry_seconds
        )

        code_verifier = generate_code_verifier(self.verifier_length)
        await self.kv_store.set(
            self._verifier_key(org_id, user_id),
            code_verifier,
            expire=expiry_seconds,
        )

        result["code_challenge"] = code_challenge_s256(code_verifier)
        return result

    async def callback(self, params: Mapping[str, str]) -> dict:
        """PKCE OAuth 2.0 callback verification - returns code, user_id, org_id, and code_verifier."""
        standard_strategy = StandardOAuthStrategy(self.provider, self.kv_store)
        result = await standard_strategy.callback(params)
        user_id, org_id = result["user_id"], result["org_id"]

        code_verifier = await self.kv_store.get(self._verifier_key(org_id, user_id))
        if not code_verifier:
            raise OAuthStateError(
                "Code verifier not found or expired", provider=self.provider
            )

        await self.kv_store.delete(self._verifier_key(org_id, user_id))
        if isinstance(code_verifier, bytes):
            code_verifier = code_verifier.decode("utf-8")
        return {**result, "code_verifier": code_verifier}


def oauth_close_window():
    """Standard OAuth close window response."""
    return HTMLResponse(
        content="""
    <html>
        <script>
            window.close();
        </script>
    </html>
    """
    )

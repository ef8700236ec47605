# graph.py
"""Microsoft identity platform endpoints shared by the Outlook calendar and
OneNote adapters."""

from typing import Any, Dict, Optional

import httpx

from integrations.base import build_authorization_url, exchange_code

GRAPH_API_URL = "https://graph.microsoft.com/v1.0"
MICROSOFT_AUTHORIZE_URL = "https://login.microsoftonline.com/common/oauth2/v2.0/authorize"
MICROSOFT_TOKEN_URL = "https://login.microsoftonline.com/common/oauth2/v2.0/token"


def graph_authorization_url(
    client_id: str,
    redirect_uri: str,
    scope: str,
    code_challenge: str,
    state: Optional[str] = None,
) -> str:
    return build_authorization_url(
        MICROSOFT_AUTHORIZE_URL,
        {
            "client_id": client_id,
            "response_type": "code",
            "redirect_uri": redirect_uri,
            "scope": scope,
            "response_mode": "query",
            "prompt": "consent",
            "code_challenge": code_challenge,
            "code_challenge_method": "S256",
            "state": state,
        },
    )


async def graph_exchange_code(
    http: httpx.AsyncClient,
    *,
    code: str,
    client_id: str,
    redirect_uri: str,
    scope: str,
    provider: str,
    code_verifier: Optional[str] = None,
    client_secret: Optional[str] = None,
) -> Dict[str, Any]:
    """PKCE exchange when a verifier is at hand, confidential-client otherwise."""
    return await exchange_code(
        http,
        MICROSOFT_TOKEN_URL,
        code=code,
        client_id=client_id,
        redirect_uri=redirect_uri,
        code_verifier=code_verifier,
        client_secret=None if code_verifier else (client_secret or "").strip() or None,
        extra={"scope": scope},
        provider=provider,
    )

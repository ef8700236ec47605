# backend/integrations/base/adapter.py
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence

import httpx
from core.config import Settings
from core.contracts import CredentialStore
from core.errors import (
    IntegrationError,
    InvalidCredentialError,
    NoCredentialError,
    RateLimitedError,
    RequestFailedError,
    SyncInProgressError,
    TokenRefreshFailedError,
    UnsupportedOperationError,
)

from integrations.base import transport
from integrations.base.oauth import refresh_token_grant
from integrations.core.integration_item import NormalizedItem
from integrations.core.item_types import IntegrationStatus, ItemType, Provider
from integrations.core.models import (
    Category,
    ExportOptions,
    ExportResult,
    ImportBatch,
    IntegrationCapabilities,
    IntegrationConfig,
    TokenRecord,
    utcnow,
)
from integrations.core.providers import default_category

logger = logging.getLogger(__name__)


class BaseAdapter(ABC):
    """Shared lifecycle and transport for provider adapters.

    Subclasses supply the probe request, the import conversion and, for
    expiring OAuth tokens, ``refresh_access_token``. Adapters never touch the
    item store; they return items and leave persistence to the manager.
    """

    provider: Provider
    capabilities = IntegrationCapabilities()
    dedupe_by_title = False

    def __init__(
        self,
        config: IntegrationConfig,
        http: httpx.AsyncClient,
        settings: Settings,
        credential_store: Optional[CredentialStore] = None,
    ):
        self.config = config
        self.http = http
        self.settings = settings
        self.credential_store = credential_store
        self.access_token: Optional[str] = None
        self.refresh_token: Optional[str] = None
        self.token_record: Optional[TokenRecord] = None
        self._refreshing = False

    @property
    def status(self) -> IntegrationStatus:
        return self.config.status

    def _set_status(self, status: IntegrationStatus) -> None:
        self.config.status = status

    def set_tokens(self, access_token: Optional[str], refresh_token: Optional[str] = None) -> None:
        self.access_token = access_token
        self.refresh_token = refresh_token

    def auth_headers(self) -> Dict[str, str]:
        if not self.access_token:
            return {}
        return {"Authorization": f"Bearer {self.access_token}"}

    @property
    def default_category(self) -> Category:
        return default_category(self.provider.value)

    # Authentication

    async def load_credentials(self) -> None:
        """Pull the persisted credential record into memory, if there is one."""
        if self.credential_store is None:
            return
        record = await self.credential_store.get_token(self.provider.storage_name)
        if record is None:
            return
        self.token_record = record
        self.set_tokens(record.access_token, record.refresh_token)

    async def authenticate(self) -> bool:
        self._set_status(IntegrationStatus.CONNECTING)
        try:
            if not self.access_token:
                await self.load_credentials()
            if not self.access_token:
                raise NoCredentialError(
                    f"No credential available for {self.provider.value}",
                    provider=self.provider.value,
                )
            if not await self.test_connection():
                raise InvalidCredentialError(
                    f"{self.provider.value} rejected the stored credential",
                    provider=self.provider.value,
                )
        except Exception:
            self._set_status(IntegrationStatus.ERROR)
            raise

        self._set_status(IntegrationStatus.CONNECTED)
        self.config.connected_at = utcnow()
        logger.info(f"Authenticated {self.provider.value} integration {self.config.id}")
        return True

    @abstractmethod
    async def probe(self) -> None:
        """Cheapest authenticated request that proves the credential works."""

    async def test_connection(self) -> bool:
        try:
            await self.probe()
            return True
        except IntegrationError as err:
            logger.warning(
                f"Connection test failed for {self.provider.value}: {err.kind.value} {err.message}"
            )
            return False

    async def refresh_access_token(self) -> None:
        raise TokenRefreshFailedError(
            f"{self.provider.value} does not support token refresh",
            provider=self.provider.value,
        )

    async def _verify_static_credential(self, message: str) -> None:
        """Re-probe a non-expiring credential; a 401 here must not refresh again."""
        self._refreshing = True
        try:
            valid = await self.test_connection()
        finally:
            self._refreshing = False
        if not valid:
            raise TokenRefreshFailedError(message, provider=self.provider.value)

    async def _refresh_oauth_token(
        self,
        token_url: str,
        client_id: str,
        client_secret: Optional[str] = None,
        scope: Optional[str] = None,
    ) -> None:
        """Refresh-token grant with rotation; upserts the credential record."""
        if not self.refresh_token:
            raise TokenRefreshFailedError(
                "No refresh token available", provider=self.provider.value
            )
        payload = await refresh_token_grant(
            self.http,
            token_url,
            refresh_token=self.refresh_token,
            client_id=client_id,
            client_secret=client_secret,
            scope=scope,
            provider=self.provider.value,
        )
        self.set_tokens(
            payload["access_token"], payload.get("refresh_token") or self.refresh_token
        )
        refreshed = TokenRecord.from_token_response(
            self.settings.user_id, self.provider.storage_name, payload
        )
        refreshed.refresh_token = self.refresh_token
        if self.token_record is not None:
            refreshed = self.token_record.model_copy(
                update={
                    "access_token": refreshed.access_token,
                    "refresh_token": refreshed.refresh_token,
                    "expires_at": refreshed.expires_at,
                    "scope": refreshed.scope or self.token_record.scope,
                    "updated_at": utcnow(),
                }
            )
        self.token_record = refreshed
        if self.credential_store is not None:
            await self.credential_store.store_token(self.provider.storage_name, refreshed)
        logger.info(f"Refreshed access token for {self.provider.value}")

    async def disconnect(self) -> None:
        self.set_tokens(None, None)
        self.token_record = None
        self._set_status(IntegrationStatus.DISCONNECTED)

    # Transport

    async def authenticated_request(
        self,
        method: str,
        url: str,
        *,
        retries_remaining: Optional[int] = None,
        headers: Optional[Dict[str, str]] = None,
        _allow_refresh: bool = True,
        **kwargs: Any,
    ) -> httpx.Response:
        """Issue a request with provider auth, bounded 429 backoff and one 401 refresh."""
        if retries_remaining is None:
            retries_remaining = self.settings.max_request_retries
        request_headers = {**self.auth_headers(), **(headers or {})}

        try:
            response = await self.http.request(
                method, url, headers=request_headers, **kwargs
            )
        except httpx.HTTPError as err:
            raise RequestFailedError(
                f"{method} {url} failed: {err}",
                provider=self.provider.value,
                retryable=True,
            ) from err

        if response.status_code == 429:
            if retries_remaining <= 0:
                raise RateLimitedError(
                    "Rate limit exceeded and retries exhausted",
                    provider=self.provider.value,
                    code=429,
                )
            delay = transport.parse_retry_after(
                response.headers.get("Retry-After"),
                self.settings.default_retry_after_seconds,
            )
            logger.warning(
                f"Rate limited by {self.provider.value}, retrying in {delay}s ({retries_remaining} left)"
            )
            await transport.backoff(delay)
            return await self.authenticated_request(
                method,
                url,
                retries_remaining=retries_remaining - 1,
                headers=headers,
                _allow_refresh=_allow_refresh,
                **kwargs,
            )

        if (
            response.status_code == 401
            and self.refresh_token
            and retries_remaining > 0
            and _allow_refresh
            and not self._refreshing
        ):
            try:
                await self.refresh_access_token()
            except IntegrationError as err:
                self._set_status(IntegrationStatus.ERROR)
                if isinstance(err, TokenRefreshFailedError):
                    raise
                raise TokenRefreshFailedError(
                    err.message, provider=self.provider.value, code=err.code
                ) from err
            return await self.authenticated_request(
                method,
                url,
                retries_remaining=retries_remaining - 1,
                headers=headers,
                _allow_refresh=False,
                **kwargs,
            )

        if not response.is_success:
            logger.error(
                f"{self.provider.value} request failed: {method} {url} status={response.status_code}"
            )
            raise RequestFailedError(
                f"{self.provider.value} API error: {response.status_code} {response.reason_phrase}",
                provider=self.provider.value,
                code=response.status_code,
                details={"url": url, "body": response.text[:500]},
            )
        return response

    async def request_json(self, method: str, url: str, **kwargs: Any) -> Any:
        response = await self.authenticated_request(method, url, **kwargs)
        if response.status_code == 204 or not response.content:
            return {}
        return response.json()

    async def paginate(self, fetch_page) -> List[Any]:
        return await transport.paginate(fetch_page, self.settings.max_pages)

    async def process_in_batches(self, items: Sequence[Any], worker, batch_size: Optional[int] = None) -> List[Any]:
        return await transport.process_in_batches(
            items,
            batch_size or self.settings.batch_size,
            worker,
            self.settings.batch_pause_seconds,
        )

    def deduplicate(self, items, existing):
        return transport.deduplicate(items, existing, by_title=self.dedupe_by_title)

    # Import / export

    @asynccontextmanager
    async def syncing(self) -> AsyncIterator["BaseAdapter"]:
        """Hold ``syncing`` for the duration of an import; not re-entrant."""
        if self.status == IntegrationStatus.SYNCING:
            raise SyncInProgressError(
                f"Import already running for {self.config.id}",
                provider=self.provider.value,
            )
        self._set_status(IntegrationStatus.SYNCING)
        try:
            yield self
        except Exception:
            self._set_status(IntegrationStatus.ERROR)
            raise
        self._set_status(IntegrationStatus.CONNECTED)
        self.config.last_sync_at = utcnow()

    def make_item(
        self,
        external_id: Any,
        title: str,
        item_type: ItemType,
        category_id: str,
        *,
        text: str = "",
        completed: bool = False,
        due_date: Optional[datetime] = None,
        date_time: Optional[datetime] = None,
        created_at: Optional[datetime] = None,
        updated_at: Optional[datetime] = None,
        **metadata: Any,
    ) -> NormalizedItem:
        """Build a NormalizedItem carrying ``source`` and ``originalId``."""
        now = utcnow()
        return NormalizedItem(
            id=f"{self.provider.value}-{external_id}",
            title=title,
            type=item_type,
            text=text,
            category_id=category_id,
            completed=completed,
            due_date=due_date,
            date_time=date_time,
            created_at=created_at or now,
            updated_at=updated_at or now,
            metadata={
                **metadata,
                "source": self.provider.value,
                "originalId": str(external_id),
            },
        )

    @abstractmethod
    async def import_data(self, category_id: Optional[str] = None) -> ImportBatch:
        ...

    async def export_data(
        self, items: Sequence[NormalizedItem], options: ExportOptions
    ) -> ExportResult:
        raise UnsupportedOperationError(
            f"{self.provider.value} does not support export",
            provider=self.provider.value,
        )

    async def export_each(
        self, items: Sequence[NormalizedItem], send
    ) -> ExportResult:
        """Push items one by one in paced batches; per-item failures are collected."""
        result = ExportResult(provider=self.provider.value)

        async def push(chunk: List[NormalizedItem]) -> List[bool]:
            outcomes = []
            for item in chunk:
                try:
                    await send(item)
                    outcomes.append(True)
                except IntegrationError as err:
                    result.errors.append(f"{item.title}: {err.message}")
                    outcomes.append(False)
            return outcomes

        outcomes = await self.process_in_batches(list(items), push)
        result.exported_items = sum(outcomes)
        result.failed_items = len(outcomes) - result.exported_items
        return result

    async def handle_webhook(self, payload: Dict[str, Any]) -> None:
        logger.info(f"Ignoring {self.provider.value} webhook: {list(payload.keys())}")


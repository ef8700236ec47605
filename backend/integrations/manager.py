# backend/integrations/manager.py
from __future__ import annotations

import logging
import uuid
from typing import Any, Dict, List, Mapping, Optional, Sequence

import httpx
from core.config import Settings
from core.contracts import CredentialStore, ItemStore, KeyValueStore
from core.errors import (
    IntegrationError,
    NotConnectedError,
    NotFoundError,
    OAuthConfigurationError,
    UnsupportedOperationError,
    UnsupportedProviderError,
)

from integrations.base.oauth import OAuthStrategy, PKCEOAuthStrategy, StandardOAuthStrategy
from integrations.base.protocols import IntegrationAdapter
from integrations.core import (
    PLANNED_PROVIDERS,
    PROVIDERS,
    AdapterRegistry,
    AuthType,
    ExportOptions,
    ExportResult,
    ImportBatch,
    ImportResult,
    ImportSummary,
    IntegrationConfig,
    IntegrationStatus,
    IntegrationSummary,
    NormalizedItem,
    Provider,
    ProviderInfo,
    TokenRecord,
    get_provider_info,
)

logger = logging.getLogger(__name__)


def _provider(name: str) -> Provider:
    try:
        return Provider.normalize(name)
    except ValueError:
        raise UnsupportedProviderError(name)


def select_for_export(
    items: Sequence[NormalizedItem], options: ExportOptions, provider: str
) -> List[NormalizedItem]:
    """Items matching the export options, never including the provider's own imports."""
    selected = []
    for item in items:
        if item.source == provider:
            continue
        if options.categories is not None and item.category_id not in options.categories:
            continue
        if item.completed and not options.include_completed:
            continue
        if item.metadata.get("archived") and not options.include_archived:
            continue
        if options.date_range is not None:
            when = item.date_time or item.due_date
            if when is None or not options.date_range.start <= when <= options.date_range.end:
                continue
        selected.append(item)
    return selected


class IntegrationManager:
    """Owns the live integrations and every persistence call made on their behalf.

    One instance per application (or per test); there is no module-level
    registry. Adapters are built through ``registry`` so call sites never
    branch on the provider.
    """

    def __init__(
        self,
        registry: AdapterRegistry,
        http: httpx.AsyncClient,
        settings: Settings,
        item_store: ItemStore,
        credential_store: Optional[CredentialStore] = None,
        kv_store: Optional[KeyValueStore] = None,
    ):
        self.registry = registry
        self.http = http
        self.settings = settings
        self.item_store = item_store
        self.credential_store = credential_store
        self.kv_store = kv_store
        self._integrations: Dict[str, IntegrationAdapter] = {}
        self._initialized = False

        set_refresher = getattr(credential_store, "set_refresher", None)
        if set_refresher is not None:
            set_refresher(self.refresh_stored_token)

    # Providers

    def get_available_providers(self) -> List[ProviderInfo]:
        providers = [
            info.model_copy(update={"is_implemented": self.registry.supports(name)})
            for name, info in PROVIDERS.items()
        ]
        return providers + list(PLANNED_PROVIDERS)

    def _build_adapter(
        self, provider: Provider, integration_id: str, config: Optional[Dict[str, Any]] = None
    ) -> IntegrationAdapter:
        info = get_provider_info(provider.value)
        integration_config = IntegrationConfig(
            id=integration_id,
            provider=provider.value,
            name=info.name,
            description=info.description,
            icon=info.icon,
            config=config or {},
        )
        return self.registry.create(
            provider.value, integration_config, self.http, self.settings, self.credential_store
        )

    # Registry

    def create_integration(
        self,
        provider: str,
        config: Optional[Dict[str, Any]] = None,
        credentials: Optional[Mapping[str, str]] = None,
    ) -> str:
        resolved = _provider(provider)
        if not self.registry.supports(resolved.value):
            raise UnsupportedProviderError(provider)

        integration_id = f"{resolved.value}-{uuid.uuid4().hex}"
        adapter = self._build_adapter(resolved, integration_id, config)
        if credentials:
            token = credentials.get("api_key") or credentials.get("access_token")
            adapter.set_tokens(token, credentials.get("refresh_token"))

        self._integrations[integration_id] = adapter
        logger.info(f"Created {resolved.value} integration {integration_id}")
        return integration_id

    def get_integration(self, integration_id: str) -> Optional[IntegrationAdapter]:
        return self._integrations.get(integration_id)

    def _require(self, integration_id: str) -> IntegrationAdapter:
        adapter = self._integrations.get(integration_id)
        if adapter is None:
            raise NotFoundError(integration_id)
        return adapter

    def get_all_integrations(self) -> List[IntegrationAdapter]:
        return list(self._integrations.values())

    def get_integrations_by_provider(self, provider: str) -> List[IntegrationAdapter]:
        resolved = _provider(provider)
        return [a for a in self._integrations.values() if a.provider == resolved]

    def get_connected_integrations(self) -> List[IntegrationAdapter]:
        return [
            a for a in self._integrations.values() if a.status == IntegrationStatus.CONNECTED
        ]

    def update_integration_status(self, integration_id: str, status: IntegrationStatus) -> None:
        self._require(integration_id).config.status = IntegrationStatus(status)

    async def remove_integration(
        self,
        integration_id: str,
        purge_credentials: bool = False,
        purge_items: bool = False,
    ) -> None:
        """Disconnect and forget an integration.

        ``purge_items`` deletes previously imported items from the item store
        so the next import of the provider starts from scratch.
        """
        adapter = self._require(integration_id)
        await adapter.disconnect()
        del self._integrations[integration_id]

        if purge_credentials and self.credential_store is not None:
            await self.credential_store.delete_token(adapter.provider.storage_name)

        delete_items = getattr(self.item_store, "delete_items", None)
        if purge_items and delete_items is not None:
            items = await self.item_store.get_all_items()
            doomed = [item.id for item in items if item.source == adapter.provider.value]
            removed = await delete_items(doomed)
            logger.info(f"Removed {removed} {adapter.provider.value} items")
        logger.info(f"Removed integration {integration_id}")

    def get_integration_summary(self) -> IntegrationSummary:
        summary = IntegrationSummary(total=len(self._integrations))
        for adapter in self._integrations.values():
            status = adapter.status.value
            provider = adapter.provider.value
            summary.by_status[status] = summary.by_status.get(status, 0) + 1
            summary.by_provider[provider] = summary.by_provider.get(provider, 0) + 1
        summary.connected = summary.by_status.get(IntegrationStatus.CONNECTED.value, 0)
        return summary

    # Authentication

    async def authenticate_integration(self, integration_id: str) -> bool:
        adapter = self._require(integration_id)
        seeded = adapter.access_token is not None and adapter.token_record is None
        await adapter.authenticate()

        if seeded and self.credential_store is not None and adapter.provider != Provider.YOUTUBE:
            record = TokenRecord(
                user_id=self.settings.user_id,
                provider=adapter.provider.storage_name,
                access_token=adapter.access_token,
                refresh_token=adapter.refresh_token,
            )
            adapter.token_record = await self.credential_store.store_token(
                adapter.provider.storage_name, record
            )
        return True

    async def test_connection(self, integration_id: str) -> bool:
        adapter = self._require(integration_id)
        try:
            return await adapter.test_connection()
        except IntegrationError as err:
            logger.warning(f"Connection test for {integration_id} failed: {err.message}")
            return False

    async def refresh_stored_token(self, provider: str, record: TokenRecord) -> Optional[TokenRecord]:
        """Refresh an expired credential record through a throwaway adapter."""
        resolved = _provider(provider)
        adapter = self._build_adapter(resolved, f"{resolved.value}-refresh")
        adapter.token_record = record
        adapter.set_tokens(record.access_token, record.refresh_token)
        await adapter.refresh_access_token()
        return adapter.token_record

    async def initialize(self) -> None:
        """Reconnect every provider with a stored credential; drop the ones that fail."""
        if self._initialized:
            return

        for name in self.registry.list_providers():
            try:
                await self._restore(name)
            except IntegrationError as err:
                logger.warning(
                    f"Dropping {name} integration, re-authentication failed: {err.message}"
                )
            except Exception:
                logger.exception(f"Dropping {name} integration, restore failed")
        self._initialized = True

    async def _restore(self, name: str) -> None:
        provider = Provider(name)
        info = PROVIDERS.get(name)
        if info is None or not info.is_implemented:
            return
        if provider == Provider.YOUTUBE:
            if not self.settings.youtube_api_key:
                return
        elif self.credential_store is None:
            return
        elif await self.credential_store.get_token(provider.storage_name) is None:
            return

        for stale in self.get_integrations_by_provider(name):
            del self._integrations[stale.config.id]

        integration_id = self.create_integration(name)
        try:
            await self.authenticate_integration(integration_id)
        except Exception:
            self._integrations.pop(integration_id, None)
            raise
        logger.info(f"Restored {name} integration {integration_id}")

    # Import / export

    def _require_connected(self, adapter: IntegrationAdapter) -> None:
        if adapter.status not in (IntegrationStatus.CONNECTED, IntegrationStatus.SYNCING):
            raise NotConnectedError(
                f"Integration {adapter.config.id} is not connected (status: {adapter.status.value})",
                provider=adapter.provider.value,
            )

    async def _persist(
        self, adapter: IntegrationAdapter, batch: ImportBatch, category_id: Optional[str]
    ) -> ImportResult:
        if category_id is None:
            await self.item_store.ensure_category(adapter.default_category)

        existing = await self.item_store.get_all_items()
        fresh, skipped = adapter.deduplicate(batch.items, existing)
        created = await self.item_store.bulk_create_items(fresh) if fresh else []

        errors = list(batch.errors)
        if skipped:
            errors.append(f"{skipped} items already exist (duplicates skipped)")
        logger.info(
            f"Imported {len(created)} of {batch.total_items} {adapter.provider.value} items"
            f" ({skipped} duplicates, {len(batch.errors)} errors)"
        )
        return ImportResult(
            provider=adapter.provider.value,
            total_items=batch.total_items,
            imported_items=len(created),
            errors=errors,
            summary=ImportSummary.from_items(created),
        )

    async def import_data(
        self, integration_id: str, category_id: Optional[str] = None
    ) -> ImportResult:
        adapter = self._require(integration_id)
        self._require_connected(adapter)
        async with adapter.syncing():
            batch = await adapter.import_data(category_id)
            return await self._persist(adapter, batch, category_id)

    async def export_data(self, integration_id: str, options: ExportOptions) -> ExportResult:
        adapter = self._require(integration_id)
        if adapter.status != IntegrationStatus.CONNECTED:
            raise NotConnectedError(
                f"Integration {integration_id} is not connected",
                provider=adapter.provider.value,
            )
        if not adapter.capabilities.can_export:
            raise UnsupportedOperationError(
                f"{adapter.provider.value} does not support export",
                provider=adapter.provider.value,
            )
        items = select_for_export(
            await self.item_store.get_all_items(), options, adapter.provider.value
        )
        return await adapter.export_data(items, options)

    async def bulk_import(self, integration_ids: Sequence[str]) -> List[ImportResult]:
        """One result per id, in input order; a failing id yields an empty result."""
        results: List[ImportResult] = []
        for integration_id in integration_ids:
            adapter = self._integrations.get(integration_id)
            provider = adapter.provider.value if adapter is not None else "unknown"
            try:
                results.append(await self.import_data(integration_id))
            except IntegrationError as err:
                logger.error(f"Bulk import of {integration_id} failed: {err.message}")
                results.append(ImportResult.empty(provider, err.message))
            except Exception as err:
                logger.exception(f"Bulk import of {integration_id} crashed")
                results.append(ImportResult.empty(provider, str(err) or type(err).__name__))
        return results

    # YouTube

    def _require_youtube(self, integration_id: str) -> IntegrationAdapter:
        adapter = self._require(integration_id)
        if adapter.provider != Provider.YOUTUBE:
            raise UnsupportedOperationError(
                f"Integration {integration_id} is not a YouTube integration",
                provider=adapter.provider.value,
            )
        self._require_connected(adapter)
        return adapter

    async def import_youtube_transcript(
        self, integration_id: str, video_url: str, category_id: Optional[str] = None
    ) -> ImportResult:
        adapter = self._require_youtube(integration_id)
        async with adapter.syncing():
            item = await adapter.import_video_transcript(video_url, category_id)
            return await self._persist(
                adapter, ImportBatch(items=[item], total_items=1), category_id
            )

    async def import_youtube_videos(
        self, integration_id: str, video_urls: List[str], category_id: Optional[str] = None
    ) -> ImportResult:
        adapter = self._require_youtube(integration_id)
        async with adapter.syncing():
            batch = await adapter.import_multiple_videos(video_urls, category_id)
            return await self._persist(adapter, batch, category_id)

    async def search_youtube_videos(
        self, integration_id: str, query: str, max_results: int = 10
    ) -> List[Dict[str, Any]]:
        adapter = self._require_youtube(integration_id)
        return await adapter.search_videos(query, max_results)

    # OAuth

    def _oauth_strategy(self, provider: Provider) -> OAuthStrategy:
        if self.kv_store is None:
            raise OAuthConfigurationError(
                "OAuth flows need a key/value store for state", provider=provider.value
            )
        adapter_cls = self.registry.factory(provider.value)
        if not hasattr(adapter_cls, "authorization_url"):
            raise UnsupportedOperationError(
                f"{provider.value} does not use OAuth", provider=provider.value
            )
        if PROVIDERS[provider.value].auth_type == AuthType.OAUTH_PKCE:
            return PKCEOAuthStrategy(
                provider.value,
                self.kv_store,
                verifier_length=getattr(adapter_cls, "verifier_length", 64),
            )
        return StandardOAuthStrategy(provider.value, self.kv_store)

    async def get_authorization_url(self, provider: str, user_id: str) -> str:
        resolved = _provider(provider)
        strategy = self._oauth_strategy(resolved)
        result = await strategy.authorize(
            user_id, user_id, self.settings.oauth_state_expiry_seconds
        )
        adapter_cls = self.registry.factory(resolved.value)
        return adapter_cls.authorization_url(
            self.settings, result["encoded_state"], result.get("code_challenge")
        )

    async def complete_oauth(self, provider: str, params: Mapping[str, str]) -> str:
        """Finish the redirect leg: verify state, exchange the code, connect."""
        resolved = _provider(provider)
        strategy = self._oauth_strategy(resolved)
        result = await strategy.callback(params)

        adapter_cls = self.registry.factory(resolved.value)
        payload = await adapter_cls.exchange_code(
            self.http, self.settings, result["code"], result.get("code_verifier")
        )
        record = TokenRecord.from_token_response(
            result["user_id"], resolved.storage_name, payload
        )
        if self.credential_store is not None:
            record = await self.credential_store.store_token(resolved.storage_name, record)

        integration_id = self.create_integration(resolved.value)
        adapter = self._integrations[integration_id]
        adapter.token_record = record
        adapter.set_tokens(record.access_token, record.refresh_token)
        await self.authenticate_integration(integration_id)
        return integration_id

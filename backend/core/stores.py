# backend/core/stores.py
from __future__ import annotations

import json
import logging
from typing import Awaitable, Callable, Dict, List, Optional, Sequence

from pydantic import TypeAdapter

from integrations.core.integration_item import NormalizedItem
from integrations.core.models import Category, TokenRecord

from .contracts import CredentialStore, ItemStore, KeyValueStore
from .errors import IntegrationError

logger = logging.getLogger(__name__)

ITEMS_CHANNEL = "items-modified"

TokenRefresher = Callable[[str, TokenRecord], Awaitable[Optional[TokenRecord]]]

_items_adapter = TypeAdapter(List[NormalizedItem])
_categories_adapter = TypeAdapter(List[Category])
_providers_adapter = TypeAdapter(List[str])


class KeyValueCredentialStore(CredentialStore):
    """Credential records as JSON under ``integration_tokens:{user_id}:{provider}``.

    An expired record is handed to the registered refresher before it is
    returned; if the refresh fails the record is treated as absent.
    """

    def __init__(
        self,
        kv: KeyValueStore,
        user_id: str,
        skew_seconds: int = 0,
        refresher: Optional[TokenRefresher] = None,
    ):
        self.kv = kv
        self.user_id = user_id
        self.skew_seconds = skew_seconds
        self.refresher = refresher

    def set_refresher(self, refresher: Optional[TokenRefresher]) -> None:
        self.refresher = refresher

    def _key(self, provider: str) -> str:
        return f"integration_tokens:{self.user_id}:{provider}"

    def _index_key(self) -> str:
        return f"integration_tokens:{self.user_id}"

    async def _providers(self) -> List[str]:
        raw = await self.kv.get(self._index_key())
        return _providers_adapter.validate_json(raw) if raw else []

    async def _save_providers(self, providers: List[str]) -> None:
        await self.kv.set(self._index_key(), _providers_adapter.dump_json(providers).decode())

    async def _load(self, provider: str) -> Optional[TokenRecord]:
        raw = await self.kv.get(self._key(provider))
        return TokenRecord.model_validate_json(raw) if raw else None

    async def get_token(self, provider: str) -> Optional[TokenRecord]:
        record = await self._load(provider)
        if record is None or not record.is_expired(self.skew_seconds):
            return record
        if self.refresher is None or not record.refresh_token:
            logger.warning(f"Stored {provider} token expired and cannot be refreshed")
            return None
        try:
            return await self.refresher(provider, record)
        except IntegrationError as err:
            logger.warning(f"Refreshing stored {provider} token failed: {err.message}")
            return None

    async def store_token(self, provider: str, record: TokenRecord) -> TokenRecord:
        existing = await self._load(provider)
        if existing is not None:
            record = record.model_copy(update={"created_at": existing.created_at})
        record = record.model_copy(update={"user_id": self.user_id, "provider": provider})
        await self.kv.set(self._key(provider), record.model_dump_json())

        providers = await self._providers()
        if provider not in providers:
            await self._save_providers(providers + [provider])
        logger.info(f"Stored {provider} credential for user {self.user_id}")
        return record

    async def delete_token(self, provider: str) -> bool:
        providers = await self._providers()
        existed = await self.kv.get(self._key(provider)) is not None
        await self.kv.delete(self._key(provider))
        if provider in providers:
            await self._save_providers([p for p in providers if p != provider])
        return existed

    async def get_all_tokens(self) -> Dict[str, TokenRecord]:
        tokens: Dict[str, TokenRecord] = {}
        for provider in await self._providers():
            record = await self._load(provider)
            if record is not None:
                tokens[provider] = record
        return tokens


class KeyValueItemStore(ItemStore):
    """The user's item list as one JSON document, plus its categories.

    Writes publish on ``items-modified`` when the backing store can publish.
    """

    def __init__(self, kv: KeyValueStore, user_id: str):
        self.kv = kv
        self.user_id = user_id

    @property
    def items_key(self) -> str:
        return f"lifeStructureItems:{self.user_id}"

    @property
    def categories_key(self) -> str:
        return f"lifeStructureCategories:{self.user_id}"

    async def get_all_items(self) -> List[NormalizedItem]:
        raw = await self.kv.get(self.items_key)
        return _items_adapter.validate_json(raw) if raw else []

    async def _save_items(self, items: List[NormalizedItem]) -> None:
        await self.kv.set(self.items_key, _items_adapter.dump_json(items).decode())

    async def bulk_create_items(self, items: Sequence[NormalizedItem]) -> List[NormalizedItem]:
        existing = await self.get_all_items()
        known = {item.id for item in existing}
        created: List[NormalizedItem] = []
        for item in items:
            if item.id in known:
                continue
            known.add(item.id)
            created.append(item)

        if created:
            await self._save_items(existing + created)
            await self._notify("created", [item.id for item in created])
        return created

    async def delete_items(self, item_ids: Sequence[str]) -> int:
        doomed = set(item_ids)
        existing = await self.get_all_items()
        kept = [item for item in existing if item.id not in doomed]
        removed = len(existing) - len(kept)
        if removed:
            await self._save_items(kept)
            await self._notify("deleted", [item.id for item in existing if item.id in doomed])
        return removed

    async def get_categories(self) -> List[Category]:
        raw = await self.kv.get(self.categories_key)
        return _categories_adapter.validate_json(raw) if raw else []

    async def ensure_category(self, category: Category) -> Category:
        categories = await self.get_categories()
        for existing in categories:
            if existing.id == category.id:
                return existing
        categories.append(category)
        await self.kv.set(self.categories_key, _categories_adapter.dump_json(categories).decode())
        logger.info(f"Created category {category.id}")
        return category

    async def _notify(self, action: str, item_ids: List[str]) -> None:
        publish = getattr(self.kv, "publish", None)
        if publish is None:
            logger.info(f"Items {action}: {len(item_ids)}")
            return
        await publish(
            ITEMS_CHANNEL,
            json.dumps({"userId": self.user_id, "action": action, "itemIds": item_ids}),
        )

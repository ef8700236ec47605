from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, List, Optional, Protocol, Sequence

if TYPE_CHECKING:
    from integrations.core.integration_item import NormalizedItem
    from integrations.core.models import Category, TokenRecord


class KeyValueStore(Protocol):
    async def set(self, key: str, value: str, expire: Optional[int] = None) -> None: ...

    async def get(self, key: str) -> Optional[bytes]: ...

    async def delete(self, key: str) -> None: ...


class CredentialStore(Protocol):
    """Per-user persistence of provider credential records."""

    async def get_token(self, provider: str) -> Optional["TokenRecord"]: ...

    async def store_token(self, provider: str, record: "TokenRecord") -> "TokenRecord":
        """Upsert keyed on (user_id, provider)."""
        ...

    async def delete_token(self, provider: str) -> bool: ...

    async def get_all_tokens(self) -> Dict[str, "TokenRecord"]: ...


class ItemStore(Protocol):
    """The app's local item list that imports merge into."""

    async def get_all_items(self) -> List["NormalizedItem"]: ...

    async def bulk_create_items(
        self, items: Sequence["NormalizedItem"]
    ) -> List["NormalizedItem"]:
        """Persist items and return the subset actually created."""
        ...

    async def ensure_category(self, category: "Category") -> Any: ...

    async def delete_items(self, item_ids: Sequence[str]) -> int: ...

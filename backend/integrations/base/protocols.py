# backend/integrations/base/protocols.py
from __future__ import annotations

from typing import Any, AsyncContextManager, Dict, List, Optional, Protocol, Sequence, Tuple

from integrations.core.integration_item import NormalizedItem
from integrations.core.item_types import IntegrationStatus, Provider
from integrations.core.models import (
    Category,
    ExportOptions,
    ExportResult,
    ImportBatch,
    IntegrationCapabilities,
    IntegrationConfig,
    TokenRecord,
)


class IntegrationAdapter(Protocol):
    provider: Provider
    config: IntegrationConfig
    capabilities: IntegrationCapabilities
    access_token: Optional[str]
    refresh_token: Optional[str]
    token_record: Optional[TokenRecord]

    @property
    def default_category(self) -> Category: ...

    def set_tokens(self, access_token: Optional[str], refresh_token: Optional[str] = None) -> None: ...

    @property
    def status(self) -> IntegrationStatus: ...

    async def authenticate(self) -> bool:
        """Load or validate tokens; leaves status ``connected`` or ``error``."""
        ...

    async def test_connection(self) -> bool:
        """Lightweight authenticated probe; never raises for auth failures."""
        ...

    async def refresh_access_token(self) -> None: ...

    async def import_data(self, category_id: Optional[str] = None) -> ImportBatch:
        """Fetch and convert upstream content without persisting it."""
        ...

    async def export_data(
        self, items: Sequence[NormalizedItem], options: ExportOptions
    ) -> ExportResult: ...

    async def handle_webhook(self, payload: Dict[str, Any]) -> None: ...

    async def disconnect(self) -> None: ...

    def syncing(self) -> AsyncContextManager[Any]:
        """Hold ``syncing`` status around an import; rejects re-entry."""
        ...

    def deduplicate(
        self, items: Sequence[NormalizedItem], existing: Sequence[NormalizedItem]
    ) -> Tuple[List[NormalizedItem], int]: ...

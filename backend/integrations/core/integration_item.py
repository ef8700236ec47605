# backend/integrations/core/integration_item.py
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pydantic import Field
from pydantic.dataclasses import dataclass

from integrations.core.item_types import ItemType


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class NormalizedItem:
    """Provider-agnostic projection of one piece of external content.

    ``id`` is ``"{provider}-{externalId}"``; ``metadata`` always carries
    ``source`` (provider name) and ``originalId`` (external id) so a re-import
    can recognise what it already brought in.
    """

    id: str
    title: str
    type: ItemType = ItemType.NOTE
    text: str = ""
    category_id: str = ""
    completed: bool = False
    due_date: Optional[datetime] = None
    date_time: Optional[datetime] = None
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @property
    def source(self) -> Optional[str]:
        return self.metadata.get("source")

    @property
    def original_id(self) -> Optional[str]:
        value = self.metadata.get("originalId")
        return None if value is None else str(value)

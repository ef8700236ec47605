# backend/integrations/adapters/__init__.py
from integrations.core.item_types import Provider
from integrations.core.registry import AdapterRegistry

from .google_calendar import GoogleCalendarAdapter
from .microsoft_calendar import MicrosoftCalendarAdapter
from .notion import NotionAdapter
from .onenote import OneNoteAdapter
from .todoist import TodoistAdapter
from .youtube import YouTubeAdapter

ADAPTERS = {
    Provider.TODOIST: TodoistAdapter,
    Provider.GOOGLE_CALENDAR: GoogleCalendarAdapter,
    Provider.MICROSOFT_CALENDAR: MicrosoftCalendarAdapter,
    Provider.NOTION: NotionAdapter,
    Provider.ONENOTE: OneNoteAdapter,
    Provider.YOUTUBE: YouTubeAdapter,
}


def build_registry() -> AdapterRegistry:
    """Registry with every shipped adapter, checked for missing providers."""
    registry = AdapterRegistry()
    for provider, adapter_cls in ADAPTERS.items():
        registry.register(provider.value, adapter_cls)
    registry.validate()
    return registry


__all__ = [
    "ADAPTERS",
    "build_registry",
    "GoogleCalendarAdapter",
    "MicrosoftCalendarAdapter",
    "NotionAdapter",
    "OneNoteAdapter",
    "TodoistAdapter",
    "YouTubeAdapter",
]

# backend/integrations/core/item_types.py
from enum import Enum


class ItemType(str, Enum):
    TASK = "todo"
    EVENT = "event"
    NOTE = "note"
    GOAL = "goal"
    ROUTINE = "routine"


class Provider(str, Enum):
    TODOIST = "todoist"
    GOOGLE_CALENDAR = "google-calendar"
    MICROSOFT_CALENDAR = "microsoft-calendar"
    NOTION = "notion"
    ONENOTE = "onenote"
    YOUTUBE = "youtube"

    @property
    def storage_name(self) -> str:
        """Name used for credential records, e.g. ``google_calendar``."""
        return self.value.replace("-", "_")

    @classmethod
    def normalize(cls, name: str) -> "Provider":
        """Accept both ``google-calendar`` and ``google_calendar``; ValueError otherwise."""
        return cls(name.strip().lower().replace("_", "-"))


class IntegrationStatus(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    SYNCING = "syncing"
    ERROR = "error"


class AuthType(str, Enum):
    API_KEY = "api_key"
    OAUTH = "oauth"
    OAUTH_PKCE = "oauth_pkce"
    API_KEY_CONFIG = "api_key_config"


class ExportFormat(str, Enum):
    JSON = "json"
    CSV = "csv"
    MARKDOWN = "markdown"
    ICS = "ics"
    NATIVE = "native"

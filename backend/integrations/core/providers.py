# backend/integrations/core/providers.py
from typing import Dict, List

from integrations.core.item_types import AuthType, Provider
from integrations.core.models import Category, ProviderInfo

PROVIDERS: Dict[str, ProviderInfo] = {
    Provider.TODOIST.value: ProviderInfo(
        provider=Provider.TODOIST.value,
        name="Todoist",
        description="Import tasks and projects from Todoist",
        icon="/todoist.svg",
        auth_type=AuthType.API_KEY,
        website="https://todoist.com",
        setup_instructions=[
            "Go to Todoist Settings > Integrations > Developer",
            "Copy your API token",
            "Paste it when creating the integration",
        ],
        is_implemented=True,
        default_category=Category(
            id="imported-todoist",
            name="Todoist Import",
            icon="✅",
            color="#e44332",
            purpose="Tasks imported from Todoist",
        ),
    ),
    Provider.GOOGLE_CALENDAR.value: ProviderInfo(
        provider=Provider.GOOGLE_CALENDAR.value,
        name="Google Calendar",
        description="Import events from your Google calendars",
        icon="/google-calendar.svg",
        auth_type=AuthType.OAUTH,
        website="https://calendar.google.com",
        setup_instructions=[
            "Click connect and sign in with your Google account",
            "Grant calendar access",
        ],
        is_implemented=True,
        default_category=Category(
            id="imported-google-calendar",
            name="Google Calendar",
            icon="📅",
            color="#4285f4",
            purpose="Events imported from Google Calendar",
        ),
    ),
    Provider.MICROSOFT_CALENDAR.value: ProviderInfo(
        provider=Provider.MICROSOFT_CALENDAR.value,
        name="Microsoft Calendar",
        description="Import events from Outlook / Microsoft 365 calendars",
        icon="/microsoft-calendar.svg",
        auth_type=AuthType.OAUTH_PKCE,
        website="https://outlook.live.com/calendar",
        setup_instructions=[
            "Click connect and sign in with your Microsoft account",
            "Grant calendar read/write access",
        ],
        is_implemented=True,
        default_category=Category(
            id="imported-microsoft-calendar",
            name="Microsoft Calendar",
            icon="📆",
            color="#0078d4",
            purpose="Events imported from Microsoft Calendar",
        ),
    ),
    Provider.NOTION.value: ProviderInfo(
        provider=Provider.NOTION.value,
        name="Notion",
        description="Import pages and databases from Notion",
        icon="/notion.svg",
        auth_type=AuthType.OAUTH,
        website="https://notion.so",
        setup_instructions=[
            "Click connect and authorize the Lifely integration",
            "Select the pages and databases to share",
        ],
        is_implemented=True,
        default_category=Category(
            id="imported-notion",
            name="Notion Import",
            icon="📝",
            color="#000000",
            purpose="Pages and database entries imported from Notion",
        ),
    ),
    Provider.ONENOTE.value: ProviderInfo(
        provider=Provider.ONENOTE.value,
        name="OneNote",
        description="Import notebooks, sections and pages from OneNote",
        icon="/onenote.svg",
        auth_type=AuthType.OAUTH_PKCE,
        website="https://www.onenote.com",
        setup_instructions=[
            "Click connect and sign in with your Microsoft account",
            "Grant notebook access",
        ],
        is_implemented=True,
        default_category=Category(
            id="imported-onenote",
            name="OneNote",
            icon="📝",
            color="#7719aa",
            purpose="Notes imported from OneNote",
        ),
    ),
    Provider.YOUTUBE.value: ProviderInfo(
        provider=Provider.YOUTUBE.value,
        name="YouTube",
        description="Import video transcripts as notes",
        icon="/youtube.svg",
        auth_type=AuthType.API_KEY_CONFIG,
        website="https://youtube.com",
        setup_instructions=["No key needed, paste a video URL to import its transcript"],
        is_implemented=True,
        default_category=Category(
            id="imported-youtube",
            name="YouTube",
            icon="🎬",
            color="#ff0000",
            purpose="Video transcripts imported from YouTube",
        ),
    ),
}

# Listed for discovery only; no adapter exists for these yet.
PLANNED_PROVIDERS: List[ProviderInfo] = [
    ProviderInfo(
        provider="apple-calendar",
        name="Apple Calendar",
        description="Import events from iCloud calendars",
        icon="/apple-calendar.svg",
        auth_type=AuthType.API_KEY,
        website="https://www.icloud.com/calendar",
    ),
    ProviderInfo(
        provider="evernote",
        name="Evernote",
        description="Import notes and notebooks from Evernote",
        icon="/evernote.svg",
        auth_type=AuthType.OAUTH,
        website="https://evernote.com",
    ),
    ProviderInfo(
        provider="apple-notes",
        name="Apple Notes",
        description="Import notes from Apple Notes",
        icon="/apple-notes.svg",
        auth_type=AuthType.API_KEY,
        website="https://www.icloud.com/notes",
    ),
    ProviderInfo(
        provider="google-drive",
        name="Google Drive",
        description="Import documents from Google Drive",
        icon="/google-drive.svg",
        auth_type=AuthType.OAUTH,
        website="https://drive.google.com",
    ),
]


def get_provider_info(provider: str) -> ProviderInfo:
    return PROVIDERS[Provider.normalize(provider).value]


def default_category(provider: str) -> Category:
    return get_provider_info(provider).default_category

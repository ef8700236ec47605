# backend/core/config.py
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Todoist Configuration
    todoist_client_id: str = ""
    todoist_client_secret: str = ""
    todoist_redirect_uri: str = "http://localhost:8000/integrations/todoist/oauth2callback"
    todoist_scope: str = "data:read_write"

    # Google Calendar Configuration
    google_client_id: str = ""
    google_client_secret: str = ""
    google_redirect_uri: str = "http://localhost:8000/integrations/google-calendar/oauth2callback"
    google_calendar_scope: str = "https://www.googleapis.com/auth/calendar"

    # Microsoft Graph Configuration (calendar + OneNote)
    microsoft_client_id: str = ""
    microsoft_client_secret: str = ""
    microsoft_redirect_uri: str = "http://localhost:8000/integrations/microsoft-calendar/oauth2callback"
    onenote_redirect_uri: str = "http://localhost:8000/integrations/onenote/oauth2callback"
    microsoft_calendar_scope: str = "https://graph.microsoft.com/calendars.readwrite offline_access"
    onenote_scope: str = "https://graph.microsoft.com/Notes.ReadWrite offline_access"

    # Notion Configuration
    notion_client_id: str = ""
    notion_client_secret: str = ""
    notion_redirect_uri: str = "http://localhost:8000/integrations/notion/oauth2callback"

    # YouTube Configuration
    youtube_api_key: str = ""

    # Redis Configuration
    redis_url: str = "redis://localhost:6379/0"

    # Single-user service: every credential record belongs to this user
    user_id: str = "default"

    # OAuth Configuration
    oauth_state_expiry_seconds: int = 600
    token_refresh_skew_seconds: int = 60

    # Transport Configuration
    http_timeout_seconds: float = 10.0
    max_request_retries: int = 3
    default_retry_after_seconds: float = 1.0
    max_pages: int = 100
    batch_size: int = 10
    batch_pause_seconds: float = 0.1
    calendar_window_days: int = 30

    cors_origins: List[str] = ["http://localhost:3000"]

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


settings = Settings()

# backend/integrations/core/models.py
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, computed_field, field_validator

from integrations.core.item_types import (
    AuthType,
    ExportFormat,
    IntegrationStatus,
    ItemType,
)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OAuthState(BaseModel):
    state: str
    user_id: str
    org_id: str


class TokenRecord(BaseModel):
    """Credential record persisted per (user_id, provider)."""

    user_id: str
    provider: str
    access_token: str
    refresh_token: Optional[str] = None
    token_type: str = "Bearer"
    expires_at: Optional[datetime] = None
    scope: Optional[str] = None
    workspace_id: Optional[str] = None
    workspace_name: Optional[str] = None
    bot_id: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    def is_expired(self, skew_seconds: int = 0) -> bool:
        if self.expires_at is None:
            return False
        return self.expires_at <= utcnow() + timedelta(seconds=skew_seconds)

    @classmethod
    def from_token_response(
        cls, user_id: str, provider: str, payload: Dict[str, Any]
    ) -> "TokenRecord":
        expires_in = payload.get("expires_in")
        return cls(
            user_id=user_id,
            provider=provider,
            access_token=payload["access_token"],
            refresh_token=payload.get("refresh_token"),
            token_type=payload.get("token_type") or "Bearer",
            expires_at=utcnow() + timedelta(seconds=int(expires_in))
            if expires_in
            else None,
            scope=payload.get("scope"),
            workspace_id=payload.get("workspace_id"),
            workspace_name=payload.get("workspace_name"),
            bot_id=payload.get("bot_id"),
        )


class IntegrationConfig(BaseModel):
    id: str
    provider: str
    name: str
    description: str = ""
    icon: str = ""
    status: IntegrationStatus = IntegrationStatus.DISCONNECTED
    connected_at: Optional[datetime] = None
    last_sync_at: Optional[datetime] = None
    config: Dict[str, Any] = Field(default_factory=dict)


class ImportSummary(BaseModel):
    todos: int = 0
    events: int = 0
    notes: int = 0
    routines: int = 0
    goals: int = 0

    @classmethod
    def from_items(cls, items) -> "ImportSummary":
        field_for = {
            ItemType.TASK: "todos",
            ItemType.EVENT: "events",
            ItemType.NOTE: "notes",
            ItemType.ROUTINE: "routines",
            ItemType.GOAL: "goals",
        }
        counts: Dict[str, int] = {}
        for item in items:
            key = field_for[ItemType(item.type)]
            counts[key] = counts.get(key, 0) + 1
        return cls(**counts)


class ImportResult(BaseModel):
    provider: str
    total_items: int = 0
    imported_items: int = 0
    errors: List[str] = Field(default_factory=list)
    summary: ImportSummary = Field(default_factory=ImportSummary)

    @computed_field
    @property
    def failed_items(self) -> int:
        return self.total_items - self.imported_items

    @classmethod
    def empty(cls, provider: str, error: Optional[str] = None) -> "ImportResult":
        return cls(provider=provider, errors=[error] if error else [])


class ImportBatch(BaseModel):
    """What an adapter hands back from a fetch; persistence happens above it."""

    items: List[Any] = Field(default_factory=list)
    total_items: int = 0
    errors: List[str] = Field(default_factory=list)


class IntegrationSummary(BaseModel):
    total: int = 0
    connected: int = 0
    by_status: Dict[str, int] = Field(default_factory=dict)
    by_provider: Dict[str, int] = Field(default_factory=dict)


class DateRange(BaseModel):
    start: datetime
    end: datetime

    @field_validator("start", "end")
    @classmethod
    def assume_utc(cls, value: datetime) -> datetime:
        # item timestamps are always aware
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value


class ExportOptions(BaseModel):
    format: ExportFormat = ExportFormat.NATIVE
    categories: Optional[List[str]] = None
    date_range: Optional[DateRange] = None
    include_completed: bool = False
    include_archived: bool = False


class ExportResult(BaseModel):
    provider: str
    exported_items: int = 0
    failed_items: int = 0
    errors: List[str] = Field(default_factory=list)


class RateLimits(BaseModel):
    requests_per_minute: Optional[int] = None
    requests_per_hour: Optional[int] = None
    requests_per_day: Optional[int] = None


class IntegrationCapabilities(BaseModel):
    can_import: bool = True
    can_export: bool = False
    can_sync: bool = False
    supports_realtime: bool = False
    supported_item_types: List[ItemType] = Field(default_factory=list)
    max_batch_size: Optional[int] = None
    rate_limits: Optional[RateLimits] = None


class Category(BaseModel):
    id: str
    name: str
    icon: str = ""
    color: str = "#6b7280"
    priority: int = 999
    purpose: str = ""


class ProviderInfo(BaseModel):
    provider: str
    name: str
    description: str
    icon: str
    auth_type: AuthType
    website: str
    setup_instructions: List[str] = Field(default_factory=list)
    is_implemented: bool = False
    default_category: Optional[Category] = None


class Page(BaseModel):
    """One page of a cursor-paginated listing."""

    items: List[Any] = Field(default_factory=list)
    next_cursor: Optional[str] = None


def parse_datetime(value: Optional[str]) -> Optional[datetime]:
    """ISO-8601 timestamp or date from a provider payload; None when absent or malformed."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value)
    except (TypeError, ValueError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed

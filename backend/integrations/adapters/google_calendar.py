# google_calendar.py
import logging
from datetime import timedelta
from typing import Any, Dict, List, Optional, Sequence
from urllib.parse import quote

import httpx
from core.config import Settings
from core.errors import IntegrationError

from integrations.base import BaseAdapter, build_authorization_url, exchange_code
from integrations.core import (
    ExportOptions,
    ExportResult,
    ImportBatch,
    IntegrationCapabilities,
    ItemType,
    NormalizedItem,
    Page,
    Provider,
    RateLimits,
)
from integrations.core.models import parse_datetime, utcnow

logger = logging.getLogger(__name__)

GOOGLE_CALENDAR_API_URL = "https://www.googleapis.com/calendar/v3"
GOOGLE_AUTHORIZE_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"


def _event_time(value: Dict[str, Any]) -> Optional[str]:
    return (value or {}).get("dateTime") or (value or {}).get("date")


class GoogleCalendarAdapter(BaseAdapter):
    provider = Provider.GOOGLE_CALENDAR
    capabilities = IntegrationCapabilities(
        can_import=True,
        can_export=True,
        can_sync=True,
        supports_realtime=True,
        supported_item_types=[ItemType.EVENT],
        max_batch_size=1000,
        rate_limits=RateLimits(
            requests_per_minute=1000,
            requests_per_hour=1000000,
            requests_per_day=1000000000,
        ),
    )

    async def probe(self) -> None:
        await self.authenticated_request(
            "GET", f"{GOOGLE_CALENDAR_API_URL}/users/me/calendarList"
        )

    async def refresh_access_token(self) -> None:
        await self._refresh_oauth_token(
            GOOGLE_TOKEN_URL,
            self.settings.google_client_id,
            self.settings.google_client_secret,
        )

    async def list_calendars(self) -> List[Dict[str, Any]]:
        data = await self.request_json(
            "GET", f"{GOOGLE_CALENDAR_API_URL}/users/me/calendarList"
        )
        return data.get("items", [])

    async def list_events(self, calendar_id: str) -> List[Dict[str, Any]]:
        """Events within the configured window around now, recurring ones expanded."""
        now = utcnow()
        window = timedelta(days=self.settings.calendar_window_days)
        params = {
            "timeMin": (now - window).isoformat(),
            "timeMax": (now + window).isoformat(),
            "singleEvents": "true",
            "orderBy": "startTime",
            "maxResults": "2500",
        }
        url = f"{GOOGLE_CALENDAR_API_URL}/calendars/{quote(calendar_id, safe='')}/events"

        async def fetch_page(page_token: Optional[str]) -> Page:
            page_params = dict(params)
            if page_token:
                page_params["pageToken"] = page_token
            data = await self.request_json("GET", url, params=page_params)
            return Page(items=data.get("items", []), next_cursor=data.get("nextPageToken"))

        return await self.paginate(fetch_page)

    async def import_data(self, category_id: Optional[str] = None) -> ImportBatch:
        category = category_id or self.default_category.id
        batch = ImportBatch()
        for calendar in await self.list_calendars():
            try:
                events = await self.list_events(calendar["id"])
            except IntegrationError as err:
                logger.error(f"Failed to import calendar {calendar.get('summary')}: {err.message}")
                batch.errors.append(
                    f"Failed to import calendar {calendar.get('summary')}: {err.message}"
                )
                continue
            batch.total_items += len(events)
            batch.items.extend(self._to_item(event, calendar, category) for event in events)
        return batch

    def _to_item(
        self, event: Dict[str, Any], calendar: Dict[str, Any], category_id: str
    ) -> NormalizedItem:
        start = event.get("start") or {}
        return self.make_item(
            event["id"],
            event.get("summary") or "Untitled Event",
            ItemType.EVENT,
            category_id,
            text=event.get("description") or "",
            date_time=parse_datetime(_event_time(start)),
            created_at=parse_datetime(event.get("created")),
            updated_at=parse_datetime(event.get("updated")),
            endDate=_event_time(event.get("end")),
            location=event.get("location") or "",
            isAllDay=bool(start.get("date")),
            attendees=[a.get("email") for a in event.get("attendees", []) if a.get("email")],
            recurrence=event.get("recurrence") or [],
            calendarName=calendar.get("summary"),
            calendarId=calendar.get("id"),
            isPrimaryCalendar=bool(calendar.get("primary")),
        )

    # Events

    def _events_url(self, calendar_id: str) -> str:
        return f"{GOOGLE_CALENDAR_API_URL}/calendars/{quote(calendar_id, safe='')}/events"

    async def create_event(self, calendar_id: str, event: Dict[str, Any]) -> Dict[str, Any]:
        return await self.request_json("POST", self._events_url(calendar_id), json=event)

    async def export_data(
        self, items: Sequence[NormalizedItem], options: ExportOptions
    ) -> ExportResult:
        """Create events in the primary calendar."""

        async def send(item: NormalizedItem) -> None:
            await self.create_event("primary", self._to_event(item))

        events = [item for item in items if item.date_time is not None]
        return await self.export_each(events, send)

    @staticmethod
    def _to_event(item: NormalizedItem) -> Dict[str, Any]:
        start = item.date_time
        end = parse_datetime(item.metadata.get("endDate")) or start + timedelta(hours=1)
        if item.metadata.get("isAllDay"):
            return {
                "summary": item.title,
                "description": item.text,
                "start": {"date": start.date().isoformat()},
                "end": {"date": (end.date() if end.date() > start.date() else start.date() + timedelta(days=1)).isoformat()},
            }
        return {
            "summary": item.title,
            "description": item.text,
            "start": {"dateTime": start.isoformat()},
            "end": {"dateTime": end.isoformat()},
        }

    # OAuth

    @staticmethod
    def authorization_url(
        settings: Settings, state: str, code_challenge: Optional[str] = None
    ) -> str:
        return build_authorization_url(
            GOOGLE_AUTHORIZE_URL,
            {
                "client_id": settings.google_client_id,
                "redirect_uri": settings.google_redirect_uri,
                "response_type": "code",
                "scope": settings.google_calendar_scope,
                "access_type": "offline",
                "prompt": "consent",
                "state": state,
            },
        )

    @staticmethod
    async def exchange_code(
        http: httpx.AsyncClient, settings: Settings, code: str, code_verifier: Optional[str] = None
    ) -> Dict[str, Any]:
        return await exchange_code(
            http,
            GOOGLE_TOKEN_URL,
            code=code,
            client_id=settings.google_client_id,
            redirect_uri=settings.google_redirect_uri,
            client_secret=settings.google_client_secret,
            provider=Provider.GOOGLE_CALENDAR.value,
        )

# microsoft_calendar.py
import logging
from datetime import timedelta, timezone
from typing import Any, Dict, List, Optional, Sequence
from urllib.parse import quote

import httpx
from core.config import Settings
from core.errors import IntegrationError

from integrations.adapters.graph import (
    GRAPH_API_URL,
    MICROSOFT_TOKEN_URL,
    graph_authorization_url,
    graph_exchange_code,
)
from integrations.base import BaseAdapter
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


def _graph_timestamp(value) -> str:
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.000Z")


class MicrosoftCalendarAdapter(BaseAdapter):
    """Outlook / Microsoft 365 calendars through Microsoft Graph.

    Access tokens expire hourly; refresh rotates the refresh token and the
    new pair is written back to the credential store.
    """

    provider = Provider.MICROSOFT_CALENDAR
    capabilities = IntegrationCapabilities(
        can_import=True,
        can_export=True,
        can_sync=True,
        supports_realtime=True,
        supported_item_types=[ItemType.EVENT],
        max_batch_size=1000,
        rate_limits=RateLimits(
            requests_per_minute=10000,
            requests_per_hour=600000,
            requests_per_day=14400000,
        ),
    )

    async def probe(self) -> None:
        await self.authenticated_request("GET", f"{GRAPH_API_URL}/me/calendars")

    async def refresh_access_token(self) -> None:
        await self._refresh_oauth_token(
            MICROSOFT_TOKEN_URL,
            self.settings.microsoft_client_id,
            self.settings.microsoft_client_secret or None,
            scope=self.settings.microsoft_calendar_scope,
        )

    async def list_calendars(self) -> List[Dict[str, Any]]:
        data = await self.request_json("GET", f"{GRAPH_API_URL}/me/calendars")
        return data.get("value", [])

    async def list_events(self, calendar_id: str) -> List[Dict[str, Any]]:
        now = utcnow()
        window = timedelta(days=self.settings.calendar_window_days)
        first_url = f"{GRAPH_API_URL}/me/calendars/{quote(calendar_id, safe='')}/events"
        first_params = {
            "$filter": (
                f"start/dateTime ge '{_graph_timestamp(now - window)}' "
                f"and end/dateTime le '{_graph_timestamp(now + window)}'"
            ),
            "$orderby": "start/dateTime",
            "$top": "1000",
        }

        async def fetch_page(next_link: Optional[str]) -> Page:
            # nextLink already embeds the query
            if next_link:
                data = await self.request_json("GET", next_link)
            else:
                data = await self.request_json("GET", first_url, params=first_params)
            return Page(items=data.get("value", []), next_cursor=data.get("@odata.nextLink"))

        return await self.paginate(fetch_page)

    async def import_data(self, category_id: Optional[str] = None) -> ImportBatch:
        category = category_id or self.default_category.id
        batch = ImportBatch()
        for calendar in await self.list_calendars():
            try:
                events = await self.list_events(calendar["id"])
            except IntegrationError as err:
                logger.error(f"Failed to import calendar {calendar.get('name')}: {err.message}")
                batch.errors.append(
                    f"Failed to import calendar {calendar.get('name')}: {err.message}"
                )
                continue
            batch.total_items += len(events)
            batch.items.extend(self._to_item(event, calendar, category) for event in events)
        return batch

    def _to_item(
        self, event: Dict[str, Any], calendar: Dict[str, Any], category_id: str
    ) -> NormalizedItem:
        start = event.get("start") or {}
        end = event.get("end") or {}
        end_at = parse_datetime(end.get("dateTime") or end.get("date"))
        body = event.get("body") or {}
        organizer = (event.get("organizer") or {}).get("emailAddress") or {}
        attendees = [
            (a.get("emailAddress") or {}).get("address")
            for a in event.get("attendees", [])
        ]
        return self.make_item(
            event["id"],
            event.get("subject") or "Untitled Event",
            ItemType.EVENT,
            category_id,
            text=body.get("content") or "",
            date_time=parse_datetime(start.get("dateTime") or start.get("date")),
            created_at=parse_datetime(event.get("createdDateTime")),
            updated_at=parse_datetime(event.get("lastModifiedDateTime")),
            endDate=end_at.isoformat() if end_at else None,
            calendarName=calendar.get("name"),
            calendarId=calendar.get("id"),
            isDefaultCalendar=bool(calendar.get("isDefault")),
            location=(event.get("location") or {}).get("displayName") or "",
            isAllDay=bool(event.get("isAllDay")),
            organizer=organizer.get("address") or "",
            attendees=[a for a in attendees if a],
            importance=event.get("importance") or "normal",
            sensitivity=event.get("sensitivity") or "normal",
            showAs=event.get("showAs") or "busy",
            webLink=event.get("webLink"),
            bodyType=body.get("contentType") or "text",
        )

    # Events

    def _events_url(self, calendar_id: str) -> str:
        return f"{GRAPH_API_URL}/me/calendars/{quote(calendar_id, safe='')}/events"

    async def create_event(self, calendar_id: str, event: Dict[str, Any]) -> Dict[str, Any]:
        return await self.request_json("POST", self._events_url(calendar_id), json=event)

    async def export_data(
        self, items: Sequence[NormalizedItem], options: ExportOptions
    ) -> ExportResult:
        """Create events in the user's default calendar."""
        calendars = await self.list_calendars()
        target = next((c for c in calendars if c.get("isDefault")), None) or (
            calendars[0] if calendars else None
        )
        events = [item for item in items if item.date_time is not None]
        if target is None:
            return ExportResult(
                provider=self.provider.value,
                failed_items=len(events),
                errors=["No Microsoft calendar available to export into"],
            )

        async def send(item: NormalizedItem) -> None:
            await self.create_event(target["id"], self._to_event(item))

        return await self.export_each(events, send)

    @staticmethod
    def _to_event(item: NormalizedItem) -> Dict[str, Any]:
        start = item.date_time.astimezone(timezone.utc)
        end = parse_datetime(item.metadata.get("endDate")) or start + timedelta(hours=1)
        end = end.astimezone(timezone.utc)
        return {
            "subject": item.title,
            "body": {"contentType": "text", "content": item.text},
            "start": {"dateTime": start.strftime("%Y-%m-%dT%H:%M:%S"), "timeZone": "UTC"},
            "end": {"dateTime": end.strftime("%Y-%m-%dT%H:%M:%S"), "timeZone": "UTC"},
            "isAllDay": bool(item.metadata.get("isAllDay")),
        }

    # OAuth

    @staticmethod
    def authorization_url(
        settings: Settings, state: str, code_challenge: Optional[str] = None
    ) -> str:
        return graph_authorization_url(
            settings.microsoft_client_id,
            settings.microsoft_redirect_uri,
            settings.microsoft_calendar_scope,
            code_challenge,
            state,
        )

    @staticmethod
    async def exchange_code(
        http: httpx.AsyncClient, settings: Settings, code: str, code_verifier: Optional[str] = None
    ) -> Dict[str, Any]:
        return await graph_exchange_code(
            http,
            code=code,
            client_id=settings.microsoft_client_id,
            redirect_uri=settings.microsoft_redirect_uri,
            scope=settings.microsoft_calendar_scope,
            provider=Provider.MICROSOFT_CALENDAR.value,
            code_verifier=code_verifier,
            client_secret=settings.microsoft_client_secret,
        )

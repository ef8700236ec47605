# notion.py
import logging
from typing import Any, Dict, List, Optional

import httpx
from core.config import Settings
from core.errors import IntegrationError

from integrations.base import BaseAdapter, build_authorization_url, exchange_code
from integrations.core import (
    ImportBatch,
    IntegrationCapabilities,
    ItemType,
    NormalizedItem,
    Page,
    Provider,
    RateLimits,
)
from integrations.core.models import parse_datetime

logger = logging.getLogger(__name__)

NOTION_API_URL = "https://api.notion.com/v1"
NOTION_VERSION = "2022-06-28"
NOTION_AUTHORIZE_URL = f"{NOTION_API_URL}/oauth/authorize"
NOTION_TOKEN_URL = f"{NOTION_API_URL}/oauth/token"

GOAL_KEYWORDS = ["goal", "objective", "target", "progress", "milestone", "achievement"]
DONE_STATUSES = {"done", "completed", "finished"}


def extract_plain_text(rich_text: List[Dict[str, Any]]) -> str:
    return "".join(part.get("plain_text", "") for part in rich_text or [])


def extract_rich_text(rich_text: List[Dict[str, Any]]) -> str:
    """Render Notion rich text as markdown, keeping annotations and links."""
    rendered = []
    for part in rich_text or []:
        content = part.get("plain_text", "")
        annotations = part.get("annotations") or {}
        if annotations.get("bold"):
            content = f"**{content}**"
        if annotations.get("italic"):
            content = f"*{content}*"
        if annotations.get("strikethrough"):
            content = f"~~{content}~~"
        if annotations.get("underline"):
            content = f"__{content}__"
        if annotations.get("code"):
            content = f"`{content}`"
        if part.get("href"):
            content = f"[{content}]({part['href']})"
        rendered.append(content)
    return "".join(rendered)


def _file_url(payload: Dict[str, Any]) -> str:
    return (
        (payload.get("file") or {}).get("url")
        or (payload.get("external") or {}).get("url")
        or "Unknown"
    )


def render_block(block: Dict[str, Any]) -> str:
    block_type = block.get("type", "")
    body = block.get(block_type) or {}
    text = extract_rich_text(body.get("rich_text", []))

    if block_type == "paragraph":
        return text
    if block_type == "heading_1":
        return f"# {text}"
    if block_type == "heading_2":
        return f"## {text}"
    if block_type == "heading_3":
        return f"### {text}"
    if block_type == "bulleted_list_item":
        return f"- {text}"
    if block_type == "numbered_list_item":
        return f"1. {text}"
    if block_type == "to_do":
        return f"{'[x]' if body.get('checked') else '[ ]'} {text}"
    if block_type == "code":
        return f"```{body.get('language', '')}\n{text}\n```"
    if block_type == "quote":
        return f"> {text}"
    if block_type == "callout":
        emoji = (body.get("icon") or {}).get("emoji") or "💡"
        return f"{emoji} {text}"
    if block_type == "toggle":
        return f"▶ {text}"
    if block_type == "divider":
        return "---"
    if block_type == "table_row":
        return " | ".join(extract_rich_text(cell) for cell in body.get("cells", []))
    if block_type == "equation":
        return f"$${body.get('expression', '')}$$"
    if block_type == "embed":
        return f"[Embed: {body.get('url') or 'Unknown'}]"
    if block_type == "bookmark":
        return f"[Bookmark: {body.get('url') or 'Unknown'}]"
    if block_type == "image":
        return f"[Image: {_file_url(body)}]"
    if block_type == "video":
        return f"[Video: {_file_url(body)}]"
    if block_type == "file":
        return f"[File: {body.get('name') or 'Unknown file'} - {_file_url(body)}]"
    return text


def page_title(page: Dict[str, Any]) -> str:
    for prop in (page.get("properties") or {}).values():
        if isinstance(prop, dict) and prop.get("type") == "title":
            title = extract_plain_text(prop.get("title", []))
            if title:
                return title
    if page.get("object") == "database":
        return extract_plain_text(page.get("title", [])) or "Untitled"
    return "Untitled"


def determine_item_type(properties: Dict[str, Any], title: str, content: str) -> ItemType:
    """Checkbox/status properties mean a task; a date means a goal or an event."""
    prop_types = {prop.get("type") for prop in properties.values() if isinstance(prop, dict)}
    if prop_types & {"checkbox", "status"}:
        return ItemType.TASK
    if "date" in prop_types:
        text = f"{title} {content}".lower()
        if any(keyword in text for keyword in GOAL_KEYWORDS):
            return ItemType.GOAL
        return ItemType.EVENT
    return ItemType.NOTE


def extract_completion(properties: Dict[str, Any]) -> bool:
    for prop in properties.values():
        if not isinstance(prop, dict):
            continue
        if prop.get("type") == "checkbox":
            return bool(prop.get("checkbox"))
        if prop.get("type") == "status":
            name = ((prop.get("status") or {}).get("name") or "").lower()
            return name in DONE_STATUSES
    return False


def extract_date(properties: Dict[str, Any]) -> Optional[str]:
    for prop in properties.values():
        if isinstance(prop, dict) and prop.get("type") == "date":
            return (prop.get("date") or {}).get("start")
    return None


class NotionAdapter(BaseAdapter):
    """Notion workspace pages and database rows.

    Tokens issued by Notion's public OAuth do not expire, so refresh just
    re-checks the token.
    """

    provider = Provider.NOTION
    dedupe_by_title = True
    capabilities = IntegrationCapabilities(
        can_import=True,
        can_export=False,
        can_sync=True,
        supported_item_types=[ItemType.NOTE, ItemType.TASK, ItemType.GOAL],
        max_batch_size=100,
        rate_limits=RateLimits(
            requests_per_minute=180,
            requests_per_hour=10800,
            requests_per_day=259200,
        ),
    )

    def auth_headers(self) -> Dict[str, str]:
        headers = super().auth_headers()
        headers["Notion-Version"] = NOTION_VERSION
        return headers

    async def probe(self) -> None:
        await self.authenticated_request("GET", f"{NOTION_API_URL}/users/me")

    async def refresh_access_token(self) -> None:
        await self._verify_static_credential("Notion integration token is no longer valid")

    async def search(self, object_type: str) -> List[Dict[str, Any]]:
        """All shared objects of ``object_type`` (``page`` or ``database``)."""

        async def fetch_page(cursor: Optional[str]) -> Page:
            body: Dict[str, Any] = {
                "filter": {"value": object_type, "property": "object"},
                "page_size": 100,
            }
            if cursor:
                body["start_cursor"] = cursor
            data = await self.request_json("POST", f"{NOTION_API_URL}/search", json=body)
            return Page(
                items=data.get("results", []),
                next_cursor=data.get("next_cursor") if data.get("has_more") else None,
            )

        return await self.paginate(fetch_page)

    async def query_database(self, database_id: str) -> List[Dict[str, Any]]:
        async def fetch_page(cursor: Optional[str]) -> Page:
            body: Dict[str, Any] = {"page_size": 100}
            if cursor:
                body["start_cursor"] = cursor
            data = await self.request_json(
                "POST", f"{NOTION_API_URL}/databases/{database_id}/query", json=body
            )
            return Page(
                items=data.get("results", []),
                next_cursor=data.get("next_cursor") if data.get("has_more") else None,
            )

        return await self.paginate(fetch_page)

    async def get_page_content(self, page_id: str) -> str:
        try:
            data = await self.request_json(
                "GET", f"{NOTION_API_URL}/blocks/{page_id}/children"
            )
        except IntegrationError as err:
            logger.warning(f"Failed to fetch Notion page content {page_id}: {err.message}")
            return ""
        lines = (render_block(block) for block in data.get("results", []))
        return "\n".join(line for line in lines if line)

    async def import_data(self, category_id: Optional[str] = None) -> ImportBatch:
        category = category_id or self.default_category.id
        batch = ImportBatch()
        sourced: List[tuple] = []

        for database in await self.search("database"):
            try:
                rows = await self.query_database(database["id"])
            except IntegrationError as err:
                batch.errors.append(
                    f"Failed to import database {page_title(database)}: {err.message}"
                )
                continue
            sourced.extend((row, "database") for row in rows)

        pages = await self.search("page")
        sourced.extend((page, "page") for page in pages)
        batch.total_items = len(sourced)

        async def convert(chunk: List[tuple]) -> List[NormalizedItem]:
            return [
                await self._to_item(page, source_type, category)
                for page, source_type in chunk
            ]

        batch.items = await self.process_in_batches(sourced, convert)
        return batch

    async def _to_item(
        self, page: Dict[str, Any], source_type: str, category_id: str
    ) -> NormalizedItem:
        properties = page.get("properties") or {}
        title = page_title(page)
        content = await self.get_page_content(page["id"])
        item_type = determine_item_type(properties, title, content)
        date = parse_datetime(extract_date(properties))
        return self.make_item(
            page["id"],
            title,
            item_type,
            category_id,
            text=content,
            completed=extract_completion(properties),
            date_time=date if item_type == ItemType.EVENT else None,
            due_date=date if item_type in (ItemType.TASK, ItemType.GOAL) else None,
            created_at=parse_datetime(page.get("created_time")),
            updated_at=parse_datetime(page.get("last_edited_time")),
            notionUrl=page.get("url"),
            archived=bool(page.get("archived")),
            sourceType=source_type,
        )

    # OAuth

    @staticmethod
    def authorization_url(
        settings: Settings, state: str, code_challenge: Optional[str] = None
    ) -> str:
        return build_authorization_url(
            NOTION_AUTHORIZE_URL,
            {
                "client_id": settings.notion_client_id,
                "response_type": "code",
                "owner": "user",
                "redirect_uri": settings.notion_redirect_uri,
                "state": state,
            },
        )

    @staticmethod
    async def exchange_code(
        http: httpx.AsyncClient, settings: Settings, code: str, code_verifier: Optional[str] = None
    ) -> Dict[str, Any]:
        """Notion wants JSON and the client secret as HTTP Basic credentials."""
        return await exchange_code(
            http,
            NOTION_TOKEN_URL,
            code=code,
            client_id=settings.notion_client_id,
            redirect_uri=settings.notion_redirect_uri,
            client_secret=settings.notion_client_secret,
            basic_auth=True,
            as_json=True,
            provider=Provider.NOTION.value,
        )

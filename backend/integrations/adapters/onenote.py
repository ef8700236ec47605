# onenote.py
import logging
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx
from bs4 import BeautifulSoup
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

DESCRIPTION_LIMIT = 500
# Pages read straight from a notebook have no section of their own.
NOTEBOOK_SECTION = {"id": "notebook-pages", "displayName": "All Pages"}


def html_to_text(html: str) -> str:
    if not html:
        return ""
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(["script", "style"]):
        tag.decompose()
    lines = (line.strip() for line in soup.get_text("\n").splitlines())
    return "\n".join(line for line in lines if line)


def summarize(content: str, limit: int = DESCRIPTION_LIMIT) -> str:
    if len(content) <= limit:
        return content
    return content[:limit] + "..."


class OneNoteAdapter(BaseAdapter):
    provider = Provider.ONENOTE
    capabilities = IntegrationCapabilities(
        can_import=True,
        can_export=False,
        can_sync=True,
        supported_item_types=[ItemType.NOTE],
        max_batch_size=100,
        rate_limits=RateLimits(
            requests_per_minute=600,
            requests_per_hour=36000,
            requests_per_day=864000,
        ),
    )

    async def probe(self) -> None:
        await self.authenticated_request("GET", f"{GRAPH_API_URL}/me/onenote/notebooks")

    async def refresh_access_token(self) -> None:
        await self._refresh_oauth_token(
            MICROSOFT_TOKEN_URL,
            self.settings.microsoft_client_id,
            self.settings.microsoft_client_secret or None,
            scope=self.settings.onenote_scope,
        )

    async def _follow_next_links(self, first_url: str) -> List[Dict[str, Any]]:
        async def fetch_page(next_link: Optional[str]) -> Page:
            data = await self.request_json("GET", next_link or first_url)
            return Page(items=data.get("value", []), next_cursor=data.get("@odata.nextLink"))

        return await self.paginate(fetch_page)

    async def list_notebooks(self) -> List[Dict[str, Any]]:
        data = await self.request_json("GET", f"{GRAPH_API_URL}/me/onenote/notebooks")
        return data.get("value", [])

    async def list_sections(self, notebook_id: str) -> List[Dict[str, Any]]:
        data = await self.request_json(
            "GET",
            f"{GRAPH_API_URL}/me/onenote/notebooks/{quote(notebook_id, safe='')}/sections",
        )
        return data.get("value", [])

    async def list_notebook_pages(self, notebook_id: str) -> List[Dict[str, Any]]:
        """Pages read at notebook level; Graph rejects this for some accounts, so errors mean none."""
        try:
            return await self._follow_next_links(
                f"{GRAPH_API_URL}/me/onenote/notebooks/{quote(notebook_id, safe='')}/pages"
            )
        except IntegrationError as err:
            logger.info(f"Notebook-level page listing unavailable for {notebook_id}: {err.message}")
            return []

    async def list_section_pages(self, section_id: str) -> List[Dict[str, Any]]:
        return await self._follow_next_links(
            f"{GRAPH_API_URL}/me/onenote/sections/{quote(section_id, safe='')}/pages"
        )

    async def get_page_content(self, content_url: Optional[str]) -> str:
        if not content_url:
            return ""
        try:
            response = await self.authenticated_request(
                "GET", content_url, headers={"Accept": "text/html"}
            )
        except IntegrationError as err:
            logger.warning(f"Failed to fetch OneNote page content: {err.message}")
            return ""
        return html_to_text(response.text)

    async def import_data(self, category_id: Optional[str] = None) -> ImportBatch:
        category = category_id or self.default_category.id
        batch = ImportBatch()

        for notebook in await self.list_notebooks():
            try:
                await self._import_notebook(notebook, category, batch)
            except IntegrationError as err:
                batch.errors.append(
                    f"Failed to import notebook {notebook.get('displayName')}: {err.message}"
                )
        return batch

    async def _import_notebook(
        self, notebook: Dict[str, Any], category_id: str, batch: ImportBatch
    ) -> None:
        pages = await self.list_notebook_pages(notebook["id"])
        if pages:
            await self._add_pages(pages, notebook, NOTEBOOK_SECTION, category_id, batch)
            return

        for section in await self.list_sections(notebook["id"]):
            try:
                section_pages = await self.list_section_pages(section["id"])
            except IntegrationError as err:
                batch.errors.append(
                    f"Failed to import section {section.get('displayName')}: {err.message}"
                )
                continue
            await self._add_pages(section_pages, notebook, section, category_id, batch)

    async def _add_pages(
        self,
        pages: List[Dict[str, Any]],
        notebook: Dict[str, Any],
        section: Dict[str, Any],
        category_id: str,
        batch: ImportBatch,
    ) -> None:
        async def convert(chunk: List[Dict[str, Any]]) -> List[NormalizedItem]:
            return [await self._to_item(page, notebook, section, category_id) for page in chunk]

        batch.total_items += len(pages)
        batch.items.extend(await self.process_in_batches(pages, convert))

    async def _to_item(
        self,
        page: Dict[str, Any],
        notebook: Dict[str, Any],
        section: Dict[str, Any],
        category_id: str,
    ) -> NormalizedItem:
        content = await self.get_page_content(page.get("contentUrl"))
        links = page.get("links") or {}
        return self.make_item(
            page["id"],
            page.get("title") or "Untitled Note",
            ItemType.NOTE,
            category_id,
            text=summarize(content),
            created_at=parse_datetime(page.get("createdDateTime")),
            updated_at=parse_datetime(page.get("lastModifiedDateTime")),
            notebookId=notebook.get("id"),
            notebookName=notebook.get("displayName"),
            sectionId=section.get("id"),
            sectionName=section.get("displayName"),
            pageUrl=page.get("pageUrl"),
            oneNoteClientUrl=(links.get("oneNoteClientUrl") or {}).get("href"),
            oneNoteWebUrl=(links.get("oneNoteWebUrl") or {}).get("href"),
            fullContent=content,
        )

    # OAuth

    verifier_length = 128

    @staticmethod
    def authorization_url(
        settings: Settings, state: str, code_challenge: Optional[str] = None
    ) -> str:
        return graph_authorization_url(
            settings.microsoft_client_id,
            settings.onenote_redirect_uri,
            settings.onenote_scope,
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
            redirect_uri=settings.onenote_redirect_uri,
            scope=settings.onenote_scope,
            provider=Provider.ONENOTE.value,
            code_verifier=code_verifier,
            client_secret=settings.microsoft_client_secret,
        )

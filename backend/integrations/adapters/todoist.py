# todoist.py
import logging
from typing import Any, Dict, Optional, Sequence

import httpx
from core.config import Settings

from integrations.base import BaseAdapter, build_authorization_url, exchange_code
from integrations.core import (
    ExportOptions,
    ExportResult,
    ImportBatch,
    IntegrationCapabilities,
    ItemType,
    NormalizedItem,
    Provider,
    RateLimits,
)
from integrations.core.models import parse_datetime

logger = logging.getLogger(__name__)

TODOIST_API_URL = "https://api.todoist.com/rest/v2"
TODOIST_AUTHORIZE_URL = "https://todoist.com/oauth/authorize"
TODOIST_TOKEN_URL = "https://todoist.com/oauth/access_token"

# Onboarding tasks Todoist seeds into new accounts.
TUTORIAL_KEYWORDS = [
    "Add your first task",
    "Check off tasks",
    "Add your first Project",
    "Download Todoist",
    "Subscribe for monthly",
    "Explore our templates",
    "Connect your calendar",
    "Add Todoist to your email",
    "Set aside 5 minutes",
    "Go to your `Upcoming`",
    "Type **`q`**",
    "Switching from written lists",
    "Add tasks as soon as they come to mind",
    "curated templates",
    "productivity inspiration",
    "first task",
    "first Project",
]

PRIORITY_NAMES = {4: "urgent", 3: "high", 2: "medium"}
PRIORITY_VALUES = {"urgent": 4, "high": 3, "medium": 2, "low": 1}


def is_tutorial_task(content: str) -> bool:
    lowered = (content or "").lower()
    return any(keyword.lower() in lowered for keyword in TUTORIAL_KEYWORDS)


def map_priority(priority: Optional[int]) -> str:
    return PRIORITY_NAMES.get(priority, "low")


class TodoistAdapter(BaseAdapter):
    """Static API token; tokens never expire so refresh only re-probes."""

    provider = Provider.TODOIST
    dedupe_by_title = True
    capabilities = IntegrationCapabilities(
        can_import=True,
        can_export=True,
        can_sync=True,
        supported_item_types=[ItemType.TASK],
        max_batch_size=100,
        rate_limits=RateLimits(
            requests_per_minute=450,
            requests_per_hour=450 * 60,
            requests_per_day=450 * 60 * 24,
        ),
    )

    async def probe(self) -> None:
        await self.authenticated_request("GET", f"{TODOIST_API_URL}/projects")

    async def refresh_access_token(self) -> None:
        await self._verify_static_credential("Todoist API token is no longer valid")

    async def import_data(self, category_id: Optional[str] = None) -> ImportBatch:
        tasks = await self.request_json("GET", f"{TODOIST_API_URL}/tasks")
        projects = await self.request_json("GET", f"{TODOIST_API_URL}/projects")
        logger.info(
            f"Fetched {len(tasks)} tasks and {len(projects)} projects from Todoist"
        )

        active = [task for task in tasks if self._is_importable(task)]
        project_map = {str(project["id"]): project for project in projects}
        category = category_id or self.default_category.id
        items = [self._to_item(task, project_map, category) for task in active]
        return ImportBatch(items=items, total_items=len(active))

    def _is_importable(self, task: Dict[str, Any]) -> bool:
        if task.get("is_completed") or task.get("completed"):
            return False
        if is_tutorial_task(task.get("content", "")):
            logger.info(f"Skipping tutorial task: {task.get('content')!r}")
            return False
        return True

    def _to_item(
        self, task: Dict[str, Any], project_map: Dict[str, Dict[str, Any]], category_id: str
    ) -> NormalizedItem:
        project = project_map.get(str(task.get("project_id")), {})
        due = task.get("due") or {}
        return self.make_item(
            task["id"],
            task.get("content", ""),
            ItemType.TASK,
            category_id,
            text=task.get("description") or "",
            completed=bool(task.get("is_completed")),
            due_date=parse_datetime(due.get("datetime") or due.get("date")),
            created_at=parse_datetime(task.get("created_at")),
            priority=map_priority(task.get("priority")),
            projectName=project.get("name"),
            projectColor=project.get("color"),
            tags=task.get("labels") or [],
        )

    async def export_data(
        self, items: Sequence[NormalizedItem], options: ExportOptions
    ) -> ExportResult:
        """Create one Todoist task per task item."""

        async def send(item: NormalizedItem) -> None:
            await self.authenticated_request(
                "POST", f"{TODOIST_API_URL}/tasks", json=self._to_task(item)
            )

        tasks = [item for item in items if item.type == ItemType.TASK]
        return await self.export_each(tasks, send)

    @staticmethod
    def _to_task(item: NormalizedItem) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "content": item.title,
            "description": item.text,
            "priority": PRIORITY_VALUES.get(item.metadata.get("priority"), 1),
        }
        if item.due_date is not None:
            body["due_datetime"] = item.due_date.isoformat()
        if item.metadata.get("tags"):
            body["labels"] = list(item.metadata["tags"])
        return body

    # OAuth

    @staticmethod
    def authorization_url(
        settings: Settings, state: str, code_challenge: Optional[str] = None
    ) -> str:
        return build_authorization_url(
            TODOIST_AUTHORIZE_URL,
            {
                "client_id": settings.todoist_client_id,
                "scope": settings.todoist_scope,
                "state": state,
                "response_type": "code",
            },
        )

    @staticmethod
    async def exchange_code(
        http: httpx.AsyncClient, settings: Settings, code: str, code_verifier: Optional[str] = None
    ) -> Dict[str, Any]:
        return await exchange_code(
            http,
            TODOIST_TOKEN_URL,
            code=code,
            client_id=settings.todoist_client_id,
            redirect_uri=settings.todoist_redirect_uri,
            client_secret=settings.todoist_client_secret,
            provider=Provider.TODOIST.value,
        )

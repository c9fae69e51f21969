"""
Notion API client for a user's tasks database.

API limitations (https://developers.notion.com/reference/request-limits):
1. Timestamps have minute precision.
2. ~3 requests per second per integration.
3. 100 results per page; only the first page is fetched.
4. Queries never return archived pages, so a page missing from a full
   listing is how an archive/delete is detected.
"""

import logging
from typing import Any, Dict, List, Optional

import httpx

from lib.config import SyncConfig
from lib.models import (
    GoogleTask,
    NotionPropsMap,
    NotionSnapshot,
    NotionTask,
    notion_status_for,
    parse_date,
    parse_timestamp,
)
from lib.utils import retry_on_error

logger = logging.getLogger("NotionClient")


class NotionPropertyBuilder:
    """Builds Notion property values for page create/update."""

    @staticmethod
    def title(value: str) -> Dict:
        return {"title": [{"text": {"content": value or ""}}]}

    @staticmethod
    def status(value: str) -> Dict:
        return {"status": {"name": value}}

    @staticmethod
    def date(value: Optional[str]) -> Dict:
        if not value:
            return {"date": None}
        return {"date": {"start": value}}


def properties_from_google(google_task: GoogleTask, props_map: NotionPropsMap) -> Dict[str, Any]:
    """Notion properties mirroring a Google task. A missing due date clears the Notion date."""
    return {
        props_map.title.name: NotionPropertyBuilder.title(google_task.title),
        props_map.due.name: NotionPropertyBuilder.date(
            google_task.due.isoformat() if google_task.due else None
        ),
        props_map.status.name: NotionPropertyBuilder.status(notion_status_for(google_task).value),
    }


def parse_notion_page(
    page: Dict[str, Any],
    props_map: NotionPropsMap,
    bot_id: Optional[str] = None
) -> NotionTask:
    """
    Convert a database page into a NotionTask.

    The last edit counts as the sync bot's when the editor id matches
    `bot_id`, or, without a known bot id, when the editor is any bot.
    """
    props = page.get("properties", {})

    title_parts = props.get(props_map.title.name, {}).get("title", [])
    status = (props.get(props_map.status.name, {}).get("status") or {}).get("name", "")
    due = props.get(props_map.due.name, {}).get("date")
    last_edited = (
        props.get(props_map.last_edited.name, {}).get("last_edited_time")
        or page.get("last_edited_time")
    )
    editor = (
        props.get(props_map.last_edited_by.name, {}).get("last_edited_by")
        or page.get("last_edited_by")
        or {}
    )

    if bot_id:
        edited_by_bot = editor.get("id") == bot_id
    else:
        edited_by_bot = editor.get("type") == "bot"

    return NotionTask(
        id=page["id"],
        title="".join(part.get("plain_text", "") for part in title_parts),
        status=status,
        due=parse_date(due.get("start")) if due else None,
        last_edited=parse_timestamp(last_edited),
        last_edited_by_bot=edited_by_bot,
    )


class NotionTasksClient:
    def __init__(
        self,
        access_token: str,
        config: SyncConfig,
        bot_id: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None
    ):
        self.config = config
        self.bot_id = bot_id
        self.base_url = config.notion_api_base
        self.headers = {
            "Authorization": f"Bearer {access_token}",
            "Notion-Version": config.notion_version,
            "Content-Type": "application/json",
        }
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(timeout=config.http_timeout)

    async def aclose(self):
        if self._owns_client:
            await self.client.aclose()

    async def __aenter__(self) -> "NotionTasksClient":
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.aclose()

    @retry_on_error()
    async def fetch_database(self, database_id: str) -> Dict[str, Any]:
        """Database object including its property schema."""
        response = await self.client.get(f"{self.base_url}/databases/{database_id}", headers=self.headers)
        response.raise_for_status()
        return response.json()

    @retry_on_error()
    async def fetch_tasks(self, database_id: str, props_map: NotionPropsMap) -> NotionSnapshot:
        """
        Non-archived pages, most recently edited first. Single page of results;
        `has_more` on the snapshot says whether the listing was cut off.
        """
        body = {
            "page_size": self.config.notion_page_size,
            "sorts": [{"property": props_map.last_edited.name, "direction": "descending"}],
        }
        response = await self.client.post(
            f"{self.base_url}/databases/{database_id}/query",
            headers=self.headers,
            params=[("filter_properties", prop_id) for prop_id in props_map.ids()],
            json=body
        )
        response.raise_for_status()
        data = response.json()

        tasks = [parse_notion_page(page, props_map, self.bot_id) for page in data.get("results", [])]
        return NotionSnapshot(tasks=tasks, has_more=bool(data.get("has_more")))

    @retry_on_error()
    async def create_task(self, database_id: str, google_task: GoogleTask, props_map: NotionPropsMap) -> NotionTask:
        logger.info(f"Creating Notion page for Google task {google_task.id}")
        response = await self.client.post(
            f"{self.base_url}/pages",
            headers=self.headers,
            json={
                "parent": {"database_id": database_id},
                "properties": properties_from_google(google_task, props_map),
            }
        )
        response.raise_for_status()
        return parse_notion_page(response.json(), props_map, self.bot_id)

    @retry_on_error()
    async def update_task(self, page_id: str, google_task: GoogleTask, props_map: NotionPropsMap) -> NotionTask:
        logger.info(f"Updating Notion page {page_id}")
        response = await self.client.patch(
            f"{self.base_url}/pages/{page_id}",
            headers=self.headers,
            json={"properties": properties_from_google(google_task, props_map)}
        )
        response.raise_for_status()
        return parse_notion_page(response.json(), props_map, self.bot_id)

    async def archive_task(self, page_id: str) -> Dict[str, Any]:
        """
        Archive a page. A page that is already gone (400/404) counts as archived.
        """
        logger.info(f"Archiving Notion page {page_id} (deleted in Google)")
        try:
            return await self._archive(page_id)
        except httpx.HTTPStatusError as e:
            if e.response.status_code in (400, 404):
                logger.info(f"Page {page_id} archive failed ({e.response.status_code}) - treating as archived")
                return {"id": page_id, "already_archived": True, "archived": True}
            raise

    @retry_on_error()
    async def _archive(self, page_id: str) -> Dict[str, Any]:
        response = await self.client.patch(
            f"{self.base_url}/pages/{page_id}",
            headers=self.headers,
            json={"archived": True}
        )
        response.raise_for_status()
        return response.json()

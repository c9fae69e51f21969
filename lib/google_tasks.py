"""
Google Tasks API client.

API docs: https://developers.google.com/tasks/reference/rest
Limitations:
1. Due dates have day precision. The time portion can't be read or written
   and always comes back as 00:00:00.000Z.
2. `updated` timestamps have millisecond precision.
3. maxResults caps at 100; only the first page is fetched.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

import httpx

from lib.config import SyncConfig
from lib.models import (
    GoogleStatus,
    GoogleTask,
    NotionTask,
    format_timestamp,
    google_status_for,
    parse_date,
    parse_timestamp,
)
from lib.utils import retry_on_error

logger = logging.getLogger("GoogleTasksClient")

# Google returns tasks updated exactly at updatedMin; skip past the watermark
UPDATED_MIN_OFFSET = timedelta(milliseconds=300)


def parse_google_task(item: Dict[str, Any]) -> GoogleTask:
    return GoogleTask(
        id=item["id"],
        title=item.get("title", ""),
        status=GoogleStatus(item.get("status", GoogleStatus.NEEDS_ACTION.value)),
        updated=parse_timestamp(item["updated"]),
        due=parse_date(item.get("due")),
        completed=parse_timestamp(item.get("completed")),
        deleted=bool(item.get("deleted", False)),
        hidden=bool(item.get("hidden", False)),
    )


def task_body_from_notion(notion_task: NotionTask) -> Dict[str, Any]:
    """Google task fields mirroring a Notion task. A missing due date is sent as null to clear it."""
    return {
        "title": notion_task.title,
        "due": f"{notion_task.due.isoformat()}T00:00:00.000Z" if notion_task.due else None,
        "status": google_status_for(notion_task).value,
    }


class GoogleTasksClient:
    """Access to a single task list with an already refreshed access token."""

    def __init__(
        self,
        access_token: str,
        tasklist_id: str,
        config: SyncConfig,
        client: Optional[httpx.AsyncClient] = None
    ):
        self.tasklist_id = tasklist_id
        self.config = config
        self.base_url = f"{config.google_tasks_api_base}/lists/{tasklist_id}/tasks"
        self.headers = {
            "Authorization": f"Bearer {access_token}",
            "Accept": "application/json",
        }
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(timeout=config.http_timeout)

    async def aclose(self):
        if self._owns_client:
            await self.client.aclose()

    async def __aenter__(self) -> "GoogleTasksClient":
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.aclose()

    @retry_on_error()
    async def fetch_tasks(self, updated_min: Optional[datetime]) -> List[GoogleTask]:
        """
        Tasks updated after `updated_min`, including completed, hidden and
        deleted ones. Single page only.
        """
        params = {
            "showCompleted": "true",
            "showHidden": "true",
            "showDeleted": "true",
            "maxResults": str(self.config.google_max_tasks),
        }
        if updated_min is not None:
            params["updatedMin"] = format_timestamp(updated_min + UPDATED_MIN_OFFSET)

        response = await self.client.get(self.base_url, headers=self.headers, params=params)
        response.raise_for_status()
        items = response.json().get("items", [])
        return [parse_google_task(item) for item in items]

    @retry_on_error()
    async def create_task(self, notion_task: NotionTask) -> GoogleTask:
        logger.info(f"Creating Google task for Notion page {notion_task.id}")
        response = await self.client.post(
            self.base_url,
            headers=self.headers,
            json=task_body_from_notion(notion_task)
        )
        response.raise_for_status()
        return parse_google_task(response.json())

    @retry_on_error()
    async def update_task(self, task_id: str, notion_task: NotionTask) -> GoogleTask:
        logger.info(f"Updating Google task {task_id}")
        response = await self.client.patch(
            f"{self.base_url}/{task_id}",
            headers=self.headers,
            json=task_body_from_notion(notion_task)
        )
        response.raise_for_status()
        return parse_google_task(response.json())

    async def complete_task(self, task_id: str) -> Optional[GoogleTask]:
        """
        Stands in for delete: Google tasks are never removed, only marked
        completed. Returns None when the task no longer exists.
        """
        logger.info(f"Completing Google task {task_id} (deleted in Notion)")
        try:
            return await self._complete(task_id)
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 404:
                logger.info(f"Google task {task_id} not found - treating as completed")
                return None
            raise

    @retry_on_error()
    async def _complete(self, task_id: str) -> GoogleTask:
        response = await self.client.patch(
            f"{self.base_url}/{task_id}",
            headers=self.headers,
            json={"status": GoogleStatus.COMPLETED.value}
        )
        response.raise_for_status()
        return parse_google_task(response.json())

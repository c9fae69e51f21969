"""
Reconciliation passes between Notion and Google Tasks.

Each pass mirrors one side's changes onto the other and returns a
MappingDelta. Per-task API calls run concurrently; deletes are awaited as a
batch before creates/updates start. A failing call is reported in
`delta.errors` and its task is left out of the delta, the rest of the pass
carries on.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Awaitable, Iterable, List, Optional

from lib.google_tasks import GoogleTasksClient
from lib.models import (
    GoogleTask,
    MappingDelta,
    MappingEntry,
    NotionPropsMap,
    NotionSnapshot,
    NotionTask,
    TaskError,
)
from lib.notion_client import NotionTasksClient
from syncs.conflict_filter import (
    google_tasks_updated_since,
    notion_tasks_updated_since,
    resolve_google_conflicts,
    resolve_notion_conflicts,
)

logger = logging.getLogger("Reconciler")

CREATE = "create"
UPDATE = "update"
DELETE = "delete"


@dataclass(frozen=True)
class Outcome:
    """Result of one API call: a value on success, an error message on failure."""
    task_id: str
    operation: str
    value: Any = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_error(self) -> TaskError:
        return TaskError(task_id=self.task_id, operation=self.operation, message=self.error or "")


async def attempt(task_id: str, operation: str, call: Awaitable[Any]) -> Outcome:
    try:
        return Outcome(task_id, operation, value=await call)
    except Exception as e:
        logger.error(f"{operation} failed for task {task_id}: {e}")
        return Outcome(task_id, operation, error=f"{type(e).__name__}: {e}")


async def run_batch(calls: Iterable[Awaitable[Outcome]]) -> List[Outcome]:
    return list(await asyncio.gather(*calls))


def completion_date(is_completed: bool, today: date) -> Optional[date]:
    return today if is_completed else None


# ============================================================================
# PASS 1: NOTION → GOOGLE
# ============================================================================

async def sync_google_with_notion(
    notion_snapshot: NotionSnapshot,
    google_tasks: List[GoogleTask],
    mapping: List[MappingEntry],
    watermark: Optional[datetime],
    google: GoogleTasksClient,
    today: date
) -> MappingDelta:
    """
    Apply Notion changes to Google.

    `notion_snapshot` must be the full Notion listing: a mapped page missing
    from it was archived, so its Google task gets completed. `google_tasks`
    are the Google tasks changed since the watermark, used for conflicts.
    """
    delta = MappingDelta()
    notion_to_google = {entry.notion_id: entry.google_id for entry in mapping}

    # Deleted in Notion -> complete in Google
    if notion_snapshot.has_more:
        logger.warning("Notion listing is truncated; skipping deletion detection this cycle")
    else:
        present = {task.id for task in notion_snapshot.tasks}
        gone = [entry for entry in mapping if entry.notion_id not in present]
        outcomes = await run_batch(
            attempt(entry.google_id, DELETE, google.complete_task(entry.google_id))
            for entry in gone
        )
        for outcome in outcomes:
            if outcome.ok:
                delta.deleted.append(outcome.task_id)
            else:
                delta.errors.append(outcome.to_error())

    notion_updated = notion_tasks_updated_since(notion_snapshot.tasks, watermark)
    google_updated = google_tasks_updated_since(google_tasks, watermark)
    notion_tasks = resolve_notion_conflicts(notion_updated, google_updated, mapping)

    def push(notion_task: NotionTask) -> Awaitable[Outcome]:
        google_id = notion_to_google.get(notion_task.id)
        if google_id is None:
            return attempt(notion_task.id, CREATE, google.create_task(notion_task))
        return attempt(google_id, UPDATE, google.update_task(google_id, notion_task))

    outcomes = await run_batch(push(task) for task in notion_tasks)
    for notion_task, outcome in zip(notion_tasks, outcomes):
        if not outcome.ok:
            delta.errors.append(outcome.to_error())
            continue
        completed_at = completion_date(notion_task.is_done, today)
        if outcome.operation == CREATE:
            delta.created.append(MappingEntry(outcome.value.id, notion_task.id, completed_at))
        else:
            delta.updated.append((outcome.task_id, completed_at))

    return delta


# ============================================================================
# PASS 2: GOOGLE → NOTION
# ============================================================================

async def sync_notion_with_google(
    google_tasks: List[GoogleTask],
    notion_tasks: List[NotionTask],
    mapping: List[MappingEntry],
    watermark: Optional[datetime],
    notion: NotionTasksClient,
    database_id: str,
    props_map: NotionPropsMap,
    today: date
) -> MappingDelta:
    """
    Apply Google changes to Notion.

    `google_tasks` must not contain tasks completed by pass 1 because their
    Notion page was deleted; their mapping entries are already gone and
    they would come back as new pages.
    """
    delta = MappingDelta()
    google_to_notion = {entry.google_id: entry.notion_id for entry in mapping}

    google_updated = google_tasks_updated_since(google_tasks, watermark)
    notion_updated = notion_tasks_updated_since(notion_tasks, watermark)
    changed = resolve_google_conflicts(google_updated, notion_updated, mapping)

    # Deleted in Google -> archive in Notion. Unmapped deleted tasks never reached Notion.
    to_archive = [task for task in changed if task.deleted and task.id in google_to_notion]
    outcomes = await run_batch(
        attempt(task.id, DELETE, notion.archive_task(google_to_notion[task.id]))
        for task in to_archive
    )
    for outcome in outcomes:
        if outcome.ok:
            delta.deleted.append(outcome.task_id)
        else:
            delta.errors.append(outcome.to_error())

    to_push = [task for task in changed if not task.deleted]

    def push(google_task: GoogleTask) -> Awaitable[Outcome]:
        notion_id = google_to_notion.get(google_task.id)
        if notion_id is None:
            return attempt(google_task.id, CREATE, notion.create_task(database_id, google_task, props_map))
        return attempt(google_task.id, UPDATE, notion.update_task(notion_id, google_task, props_map))

    outcomes = await run_batch(push(task) for task in to_push)
    for google_task, outcome in zip(to_push, outcomes):
        if not outcome.ok:
            delta.errors.append(outcome.to_error())
            continue
        completed_at = completion_date(google_task.is_completed, today)
        if outcome.operation == CREATE:
            delta.created.append(MappingEntry(google_task.id, outcome.value.id, completed_at))
        else:
            delta.updated.append((google_task.id, completed_at))

    return delta

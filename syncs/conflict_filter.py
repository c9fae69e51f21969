"""
Decides which changed tasks should drive an update on the other side.

Two filters run before each reconciliation pass:

1. Updated-since: drop tasks not edited since the watermark. On Notion this
   also drops pages last edited by the sync bot, otherwise every change the
   bot writes would be synced straight back.
2. Conflicts (last writer wins): when both a task and its counterpart
   changed since the watermark, only the newer edit survives. Raw timestamps
   are compared and a tie goes to Notion. A Google deletion always wins: it
   is only reported once, so it can never lose to a later Notion edit.
"""

from datetime import datetime
from typing import Dict, List, Optional

from lib.models import GoogleTask, MappingEntry, NotionTask


def truncate_to_minute(value: datetime) -> datetime:
    return value.replace(second=0, microsecond=0)


def notion_tasks_updated_since(tasks: List[NotionTask], watermark: Optional[datetime]) -> List[NotionTask]:
    """
    Notion tasks edited by a person at or after the watermark.

    Notion's last_edited_time is whole minutes, so the watermark is truncated
    to the minute and compared with >=: a page edited in the same minute the
    last sync finished is still picked up.
    """
    human_edited = [task for task in tasks if not task.last_edited_by_bot]
    if watermark is None:
        return human_edited

    since = truncate_to_minute(watermark)
    return [task for task in human_edited if task.last_edited >= since]


def google_tasks_updated_since(tasks: List[GoogleTask], watermark: Optional[datetime]) -> List[GoogleTask]:
    """Google tasks updated at or after the watermark."""
    if watermark is None:
        return list(tasks)
    return [task for task in tasks if task.updated >= watermark]


def resolve_notion_conflicts(
    notion_updated: List[NotionTask],
    google_updated: List[GoogleTask],
    mapping: List[MappingEntry]
) -> List[NotionTask]:
    """Drop Notion tasks whose Google counterpart was edited later or deleted."""
    notion_to_google = {entry.notion_id: entry.google_id for entry in mapping}
    google_by_id: Dict[str, GoogleTask] = {task.id: task for task in google_updated}

    kept = []
    for notion_task in notion_updated:
        google_id = notion_to_google.get(notion_task.id)
        google_task = google_by_id.get(google_id) if google_id else None
        if google_task is None:
            # New in Notion, or Google side untouched since last sync
            kept.append(notion_task)
        elif google_task.deleted:
            continue
        elif notion_task.last_edited >= google_task.updated:
            kept.append(notion_task)
    return kept


def resolve_google_conflicts(
    google_updated: List[GoogleTask],
    notion_updated: List[NotionTask],
    mapping: List[MappingEntry]
) -> List[GoogleTask]:
    """
    Drop Google tasks whose Notion counterpart was edited at the same time or
    later. Deletions are always kept.
    """
    google_to_notion = {entry.google_id: entry.notion_id for entry in mapping}
    notion_by_id: Dict[str, NotionTask] = {task.id: task for task in notion_updated}

    kept = []
    for google_task in google_updated:
        notion_id = google_to_notion.get(google_task.id)
        notion_task = notion_by_id.get(notion_id) if notion_id else None
        if notion_task is None or google_task.deleted:
            kept.append(google_task)
        elif google_task.updated > notion_task.last_edited:
            kept.append(google_task)
    return kept

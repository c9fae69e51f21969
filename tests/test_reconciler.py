import asyncio
from datetime import date, datetime
from typing import Dict, List, Optional, Set
from unittest import IsolatedAsyncioTestCase

import httpx

from lib.models import (
    GoogleStatus,
    GoogleTask,
    MappingEntry,
    NotionProperty,
    NotionPropsMap,
    NotionSnapshot,
    NotionTask,
    parse_timestamp,
)
from syncs.mapping import apply_delta
from syncs.reconciler import CREATE, DELETE, UPDATE, sync_google_with_notion, sync_notion_with_google

TODAY = date(2024, 3, 1)
WATERMARK = parse_timestamp("2024-03-01T10:00:00Z")

PROPS_MAP = NotionPropsMap(
    title=NotionProperty("title", "Name", "title"),
    status=NotionProperty("st", "Status", "status"),
    due=NotionProperty("du", "Due", "date"),
    last_edited=NotionProperty("le", "Edited", "last_edited_time"),
    last_edited_by=NotionProperty("lb", "Edited by", "last_edited_by"),
)


def ts(value: str) -> datetime:
    return parse_timestamp(value)


def notion_task(page_id: str, last_edited: str = "2024-03-01T10:05:00Z", status: str = "To Do",
                by_bot: bool = False) -> NotionTask:
    return NotionTask(id=page_id, title=f"Task {page_id}", status=status,
                      last_edited=ts(last_edited), last_edited_by_bot=by_bot)


def google_task(task_id: str, updated: str = "2024-03-01T10:05:30Z",
                status: GoogleStatus = GoogleStatus.NEEDS_ACTION, deleted: bool = False) -> GoogleTask:
    return GoogleTask(id=task_id, title=f"Task {task_id}", status=status,
                      updated=ts(updated), deleted=deleted)


class FakeGoogle:
    def __init__(self, events: Optional[List[str]] = None, failing: Optional[Set[str]] = None):
        self.events = events if events is not None else []
        self.failing = failing or set()
        self.created: List[NotionTask] = []
        self.updated: List[str] = []
        self.completed: List[str] = []
        self._next_id = 0

    def _maybe_fail(self, key: str) -> None:
        if key in self.failing:
            raise httpx.ConnectError(f"boom {key}")

    async def create_task(self, notion_task: NotionTask) -> GoogleTask:
        await asyncio.sleep(0)
        self._maybe_fail(notion_task.id)
        self.events.append(f"create:{notion_task.id}")
        self.created.append(notion_task)
        self._next_id += 1
        return google_task(f"new-g{self._next_id}")

    async def update_task(self, task_id: str, notion_task: NotionTask) -> GoogleTask:
        self._maybe_fail(task_id)
        self.events.append(f"update:{task_id}")
        self.updated.append(task_id)
        return google_task(task_id)

    async def complete_task(self, task_id: str) -> Optional[GoogleTask]:
        await asyncio.sleep(0)
        await asyncio.sleep(0)
        self._maybe_fail(task_id)
        self.events.append(f"complete:{task_id}")
        self.completed.append(task_id)
        return google_task(task_id, status=GoogleStatus.COMPLETED)


class FakeNotion:
    def __init__(self, failing: Optional[Set[str]] = None):
        self.failing = failing or set()
        self.created: List[GoogleTask] = []
        self.updated: Dict[str, GoogleTask] = {}
        self.archived: List[str] = []
        self._next_id = 0

    def _maybe_fail(self, key: str) -> None:
        if key in self.failing:
            raise httpx.ConnectError(f"boom {key}")

    async def create_task(self, database_id: str, google_task: GoogleTask, props_map: NotionPropsMap) -> NotionTask:
        self._maybe_fail(google_task.id)
        self.created.append(google_task)
        self._next_id += 1
        return notion_task(f"new-n{self._next_id}", by_bot=True)

    async def update_task(self, page_id: str, google_task: GoogleTask, props_map: NotionPropsMap) -> NotionTask:
        self._maybe_fail(page_id)
        self.updated[page_id] = google_task
        return notion_task(page_id, by_bot=True)

    async def archive_task(self, page_id: str) -> Dict:
        self._maybe_fail(page_id)
        self.archived.append(page_id)
        return {"id": page_id, "archived": True}


class NotionToGoogleTests(IsolatedAsyncioTestCase):
    async def test_new_notion_task_is_created_in_google(self) -> None:
        google = FakeGoogle()
        snapshot = NotionSnapshot([notion_task("n1")])

        delta = await sync_google_with_notion(snapshot, [], [], None, google, TODAY)

        self.assertEqual([t.id for t in google.created], ["n1"])
        self.assertEqual(delta.created, [MappingEntry("new-g1", "n1", None)])
        self.assertEqual(delta.errors, [])

    async def test_done_task_gets_completion_date(self) -> None:
        google = FakeGoogle()
        snapshot = NotionSnapshot([notion_task("n1", status="Done")])
        mapping = [MappingEntry("g1", "n1")]

        delta = await sync_google_with_notion(snapshot, [], mapping, WATERMARK, google, TODAY)

        self.assertEqual(google.updated, ["g1"])
        self.assertEqual(delta.updated, [("g1", TODAY)])

    async def test_archived_notion_page_completes_google_task(self) -> None:
        google = FakeGoogle()
        snapshot = NotionSnapshot([notion_task("n2", last_edited="2024-03-01T09:00:00Z")])
        mapping = [MappingEntry("g1", "n1"), MappingEntry("g2", "n2")]

        delta = await sync_google_with_notion(snapshot, [], mapping, WATERMARK, google, TODAY)

        self.assertEqual(google.completed, ["g1"])
        self.assertEqual(delta.deleted, ["g1"])
        self.assertEqual(google.updated, [])

    async def test_truncated_listing_skips_deletion_detection(self) -> None:
        google = FakeGoogle()
        snapshot = NotionSnapshot([], has_more=True)
        mapping = [MappingEntry("g1", "n1")]

        delta = await sync_google_with_notion(snapshot, [], mapping, WATERMARK, google, TODAY)

        self.assertEqual(google.completed, [])
        self.assertEqual(delta.deleted, [])

    async def test_deletes_finish_before_creates_start(self) -> None:
        events: List[str] = []
        google = FakeGoogle(events=events)
        snapshot = NotionSnapshot([notion_task("n-new")])
        mapping = [MappingEntry("g1", "n1"), MappingEntry("g2", "n2")]

        await sync_google_with_notion(snapshot, [], mapping, WATERMARK, google, TODAY)

        self.assertEqual(sorted(events[:2]), ["complete:g1", "complete:g2"])
        self.assertEqual(events[2:], ["create:n-new"])

    async def test_newer_google_edit_blocks_notion_update(self) -> None:
        google = FakeGoogle()
        snapshot = NotionSnapshot([notion_task("n1", last_edited="2024-03-01T10:05:00Z")])
        changed_in_google = [google_task("g1", updated="2024-03-01T10:06:10Z")]
        mapping = [MappingEntry("g1", "n1")]

        delta = await sync_google_with_notion(snapshot, changed_in_google, mapping, WATERMARK, google, TODAY)

        self.assertEqual(google.updated, [])
        self.assertTrue(delta.is_empty)

    async def test_one_failing_task_does_not_stop_the_pass(self) -> None:
        google = FakeGoogle(failing={"n-bad", "g-gone"})
        snapshot = NotionSnapshot([notion_task("n-bad"), notion_task("n-good")])
        mapping = [MappingEntry("g-gone", "n-gone")]

        delta = await sync_google_with_notion(snapshot, [], mapping, WATERMARK, google, TODAY)

        self.assertEqual(delta.created, [MappingEntry("new-g1", "n-good", None)])
        self.assertEqual(delta.deleted, [])
        self.assertEqual(
            sorted((e.task_id, e.operation) for e in delta.errors),
            [("g-gone", DELETE), ("n-bad", CREATE)],
        )
        self.assertIn("ConnectError", delta.errors[0].message)


class GoogleToNotionTests(IsolatedAsyncioTestCase):
    async def test_new_google_task_is_created_in_notion(self) -> None:
        notion = FakeNotion()

        delta = await sync_notion_with_google(
            [google_task("g1")], [], [], WATERMARK, notion, "db", PROPS_MAP, TODAY
        )

        self.assertEqual([t.id for t in notion.created], ["g1"])
        self.assertEqual(delta.created, [MappingEntry("g1", "new-n1", None)])

    async def test_completed_google_task_updates_notion(self) -> None:
        notion = FakeNotion()
        mapping = [MappingEntry("g1", "n1")]

        delta = await sync_notion_with_google(
            [google_task("g1", status=GoogleStatus.COMPLETED)], [], mapping,
            WATERMARK, notion, "db", PROPS_MAP, TODAY
        )

        self.assertIn("n1", notion.updated)
        self.assertEqual(delta.updated, [("g1", TODAY)])

    async def test_deleted_google_task_archives_notion_page(self) -> None:
        notion = FakeNotion()
        mapping = [MappingEntry("g1", "n1")]

        delta = await sync_notion_with_google(
            [google_task("g1", deleted=True), google_task("g-unmapped", deleted=True)], [],
            mapping, WATERMARK, notion, "db", PROPS_MAP, TODAY
        )

        self.assertEqual(notion.archived, ["n1"])
        self.assertEqual(notion.created, [])
        self.assertEqual(delta.deleted, ["g1"])

    async def test_bot_edits_do_not_block_google_changes(self) -> None:
        notion = FakeNotion()
        mapping = [MappingEntry("g1", "n1")]
        bot_edited = [notion_task("n1", last_edited="2024-03-01T10:06:00Z", by_bot=True)]

        delta = await sync_notion_with_google(
            [google_task("g1", updated="2024-03-01T10:05:30Z")], bot_edited, mapping,
            WATERMARK, notion, "db", PROPS_MAP, TODAY
        )

        self.assertEqual(delta.updated, [("g1", None)])

    async def test_google_edit_seconds_later_wins(self) -> None:
        notion = FakeNotion()
        mapping = [MappingEntry("g1", "n1")]
        human_edited = [notion_task("n1", last_edited="2024-03-01T10:05:00Z")]

        delta = await sync_notion_with_google(
            [google_task("g1", updated="2024-03-01T10:05:30Z")], human_edited, mapping,
            WATERMARK, notion, "db", PROPS_MAP, TODAY
        )

        self.assertIn("n1", notion.updated)
        self.assertEqual(delta.updated, [("g1", None)])

    async def test_simultaneous_human_edit_wins(self) -> None:
        notion = FakeNotion()
        mapping = [MappingEntry("g1", "n1")]
        human_edited = [notion_task("n1", last_edited="2024-03-01T10:05:00Z")]

        delta = await sync_notion_with_google(
            [google_task("g1", updated="2024-03-01T10:05:00Z")], human_edited, mapping,
            WATERMARK, notion, "db", PROPS_MAP, TODAY
        )

        self.assertEqual(notion.updated, {})
        self.assertTrue(delta.is_empty)

    async def test_google_deletion_survives_later_notion_edit(self) -> None:
        google = FakeGoogle()
        notion = FakeNotion()
        mapping = [MappingEntry("g1", "n1")]
        edited_after_delete = notion_task("n1", last_edited="2024-03-01T10:07:00Z")
        deleted_in_google = [google_task("g1", updated="2024-03-01T10:06:00Z", deleted=True)]

        google_delta = await sync_google_with_notion(
            NotionSnapshot([edited_after_delete]), deleted_in_google, mapping, WATERMARK, google, TODAY
        )
        mapping = apply_delta(mapping, google_delta)
        notion_delta = await sync_notion_with_google(
            deleted_in_google, [edited_after_delete], mapping, WATERMARK, notion, "db", PROPS_MAP, TODAY
        )
        mapping = apply_delta(mapping, notion_delta)

        self.assertEqual(google.updated, [])
        self.assertEqual(notion.archived, ["n1"])
        self.assertEqual(mapping, [])

    async def test_failed_update_is_reported(self) -> None:
        notion = FakeNotion(failing={"n1"})
        mapping = [MappingEntry("g1", "n1"), MappingEntry("g2", "n2")]

        delta = await sync_notion_with_google(
            [google_task("g1"), google_task("g2")], [], mapping,
            WATERMARK, notion, "db", PROPS_MAP, TODAY
        )

        self.assertEqual(delta.updated, [("g2", None)])
        self.assertEqual([(e.task_id, e.operation) for e in delta.errors], [("g1", UPDATE)])

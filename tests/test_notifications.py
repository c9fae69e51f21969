from typing import Iterable, List
from unittest import IsolatedAsyncioTestCase

from lib.config import SyncConfig
from lib.errors import NotificationError
from lib.models import SyncError, UserSyncRecord, parse_timestamp
from syncs.notifications import FAILED_SYNC_CAMPAIGN, send_failed_sync_notify

NOW = parse_timestamp("2024-03-01T12:00:00Z")


def record(email: str, sync_error=None) -> UserSyncRecord:
    return UserSyncRecord(
        email=email,
        google_refresh_token="refresh",
        notion_access_token="secret",
        tasklist_id="list",
        database_id="db",
        last_synced=NOW,
        sync_error=sync_error,
    )


class FakeStore:
    def __init__(self, records: List[UserSyncRecord], events: List[str]):
        self.records = records
        self.events = events
        self.marked: List[str] = []

    def list_synced_users(self) -> List[UserSyncRecord]:
        return list(self.records)

    def mark_failure_notified(self, emails: Iterable[str]) -> None:
        self.events.append("mark")
        self.marked.extend(emails)


class FakeMailer:
    def __init__(self, events: List[str], fail: bool = False):
        self.events = events
        self.fail = fail
        self.sent = []

    async def send_template(self, emails, template_id, campaign):
        self.events.append("send")
        if self.fail:
            raise NotificationError("Mailjet API error: 500")
        self.sent.append((list(emails), template_id, campaign))
        return {"Messages": [{"Status": "success"} for _ in emails]}


class SendFailedSyncNotifyTests(IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self.events: List[str] = []
        self.config = SyncConfig(mailjet_failed_sync_template_id=4242)
        self.store = FakeStore([
            record("six@example.com", SyncError("err", 6, NOW)),
            record("five@example.com", SyncError("err", 5, NOW)),
            record("told@example.com", SyncError("err", 9, NOW, sent_email=True)),
            record("ok@example.com"),
        ], self.events)

    async def test_marks_then_sends_to_users_over_threshold(self) -> None:
        mailer = FakeMailer(self.events)

        notified = await send_failed_sync_notify(self.store, mailer, self.config)

        self.assertEqual(notified, ["six@example.com"])
        self.assertEqual(self.store.marked, ["six@example.com"])
        self.assertEqual(mailer.sent, [(["six@example.com"], 4242, FAILED_SYNC_CAMPAIGN)])
        self.assertEqual(self.events, ["mark", "send"])

    async def test_mailer_failure_is_raised_after_marking(self) -> None:
        mailer = FakeMailer(self.events, fail=True)

        with self.assertRaises(NotificationError):
            await send_failed_sync_notify(self.store, mailer, self.config)

        self.assertEqual(self.store.marked, ["six@example.com"])

    async def test_nobody_to_notify(self) -> None:
        store = FakeStore([record("ok@example.com")], self.events)
        mailer = FakeMailer(self.events)

        notified = await send_failed_sync_notify(store, mailer, self.config)

        self.assertEqual(notified, [])
        self.assertEqual(self.events, [])

    async def test_missing_template_is_an_error(self) -> None:
        mailer = FakeMailer(self.events)

        with self.assertRaises(NotificationError):
            await send_failed_sync_notify(self.store, mailer, SyncConfig())

        self.assertEqual(self.store.marked, [])

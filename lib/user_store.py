"""
Supabase persistence for per-user sync state.

Table `users`:
    email (pk), g_token (json: refresh_token, user), n_token (json:
    access_token, bot_id, ...), tasklist_id, database_id,
    mapping (json: [[google_id, notion_id, completed_at|null], ...]),
    last_synced (timestamptz), sync_error (json), created, modified
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from supabase import Client, create_client

from lib.config import SyncConfig
from lib.errors import UserNotFoundError
from lib.models import MappingEntry, SyncError, UserSyncRecord, parse_timestamp

logger = logging.getLogger("UserStore")

USERS_TABLE = "users"


def record_from_row(row: Dict[str, Any]) -> UserSyncRecord:
    g_token = row.get("g_token") or {}
    n_token = row.get("n_token") or {}
    return UserSyncRecord(
        email=row["email"],
        google_refresh_token=g_token.get("refresh_token", ""),
        notion_access_token=n_token.get("access_token", ""),
        notion_bot_id=n_token.get("bot_id"),
        tasklist_id=row.get("tasklist_id") or "",
        database_id=row.get("database_id") or "",
        mapping=[MappingEntry.from_json(item) for item in (row.get("mapping") or [])],
        last_synced=parse_timestamp(row.get("last_synced")),
        sync_error=SyncError.from_json(row.get("sync_error")),
    )


class UserStore:
    def __init__(self, client: Client):
        self.client = client

    def _update(self, email: str, values: Dict[str, Any]):
        values["modified"] = datetime.now(timezone.utc).isoformat()
        self.client.table(USERS_TABLE).update(values).eq("email", email).execute()

    def load_user_sync_record(self, email: str) -> UserSyncRecord:
        result = self.client.table(USERS_TABLE).select("*").eq("email", email).limit(1).execute()
        if not result.data:
            raise UserNotFoundError(f"No sync record for {email}", email=email)
        return record_from_row(result.data[0])

    def save_mapping(self, email: str, mapping: List[MappingEntry]):
        self._update(email, {"mapping": [entry.to_json() for entry in mapping]})
        logger.info(f"Mapping saved for {email} ({len(mapping)} entries)")

    def save_watermark(self, email: str, last_synced: datetime, mapping: Optional[List[MappingEntry]] = None):
        values: Dict[str, Any] = {"last_synced": last_synced.isoformat()}
        if mapping is not None:
            values["mapping"] = [entry.to_json() for entry in mapping]
        self._update(email, values)

    def save_sync_error(self, email: str, sync_error: Optional[SyncError]):
        self._update(email, {"sync_error": sync_error.to_json() if sync_error else None})

    def list_synced_users(self) -> List[UserSyncRecord]:
        """Users whose sync has been set up (they have a watermark)."""
        result = (
            self.client.table(USERS_TABLE)
            .select("*")
            .not_.is_("last_synced", "null")
            .execute()
        )
        return [record_from_row(row) for row in result.data]

    def mark_failure_notified(self, emails: Iterable[str]):
        for email in emails:
            record = self.load_user_sync_record(email)
            if record.sync_error is None:
                continue
            notified = SyncError(
                message=record.sync_error.message,
                num=record.sync_error.num,
                next_retry=record.sync_error.next_retry,
                sent_email=True,
            )
            self.save_sync_error(email, notified)


def create_user_store(config: SyncConfig) -> UserStore:
    if not config.supabase_url or not config.supabase_key:
        raise ValueError("SUPABASE_URL and SUPABASE_KEY must be set.")
    return UserStore(create_client(config.supabase_url, config.supabase_key))

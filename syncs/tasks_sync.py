"""
===================================================================================
TASKS SYNC SERVICE - Bidirectional Notion ↔ Google Tasks
===================================================================================

One cycle per user:
1. Load mapping + watermark, refresh the Google token, validate the Notion DB
2. Fetch Google tasks changed since the watermark and the full Notion listing
3. Pass 1: Notion → Google, persist the mapping
4. Pass 2: Google → Notion (minus tasks pass 1 completed), persist the mapping
5. Prune completed entries, advance the watermark, clear the sync error

A failure before the watermark is written aborts the cycle and records a
sync error with backoff. Single task failures only show up in the result.

Usage:
    python -m syncs.tasks_sync --email you@example.com
    python -m syncs.tasks_sync --all
"""

import asyncio
import time
from datetime import datetime, timezone
from typing import Callable, Dict, Optional

import httpx

from lib.config import SyncConfig
from lib.errors import SyncCycleError, UserNotFoundError
from lib.google_auth import fetch_access_token
from lib.google_tasks import GoogleTasksClient
from lib.logging_service import SyncLogger, setup_logger
from lib.models import UserSyncRecord
from lib.notion_client import NotionTasksClient
from lib.notion_schema import build_props_map
from lib.sync_base import SyncResult, SyncStats, create_cli_parser
from lib.user_store import UserStore, create_user_store
from syncs.backoff import next_sync_error
from syncs.mapping import apply_delta, next_watermark, prune
from syncs.reconciler import sync_google_with_notion, sync_notion_with_google


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class TasksSyncService:
    """
    Runs sync cycles for individual users.

    Collaborators are injectable so the cycle can run against fakes:
    `token_fetcher(refresh_token, config, client)` returns an access token,
    the client factories take the same arguments as GoogleTasksClient and
    NotionTasksClient.
    """

    def __init__(
        self,
        config: SyncConfig,
        store: UserStore,
        sync_logger: Optional[SyncLogger] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        token_fetcher: Callable = fetch_access_token,
        google_client_factory: Callable = GoogleTasksClient,
        notion_client_factory: Callable = NotionTasksClient,
        clock: Callable[[], datetime] = utc_now
    ):
        self.config = config
        self.store = store
        self.sync_logger = sync_logger or SyncLogger("tasks")
        self.http_client = http_client
        self.token_fetcher = token_fetcher
        self.google_client_factory = google_client_factory
        self.notion_client_factory = notion_client_factory
        self.clock = clock
        self.logger = setup_logger("TasksSync")

    async def sync_user(self, email: str) -> SyncResult:
        """Run one cycle for `email`. Raises SyncCycleError if the cycle failed."""
        start_time = time.time()
        record: Optional[UserSyncRecord] = None

        try:
            record = self.store.load_user_sync_record(email)
            result = await self._sync(record)
        except Exception as e:
            if record is not None:
                self._record_failure(record, e)
            self.sync_logger.log_error('user_sync', f"Sync failed for {email}: {e}")
            if isinstance(e, SyncCycleError):
                raise
            raise SyncCycleError(f"Sync failed for {email}: {e}", email=email) from e

        if record.sync_error is not None:
            self._clear_failure(email)

        result.elapsed_seconds = time.time() - start_time
        self.sync_logger.log_success(
            'user_sync',
            f"{email}: Google {result.google_stats.created}c/{result.google_stats.updated}u/"
            f"{result.google_stats.deleted}d, Notion {result.notion_stats.created}c/"
            f"{result.notion_stats.updated}u/{result.notion_stats.deleted}d, "
            f"{len(result.task_errors)} task errors",
            result.to_dict() if result.task_errors else None
        )
        return result

    async def _sync(self, record: UserSyncRecord) -> SyncResult:
        email = record.email
        watermark = record.last_synced
        self.logger.info(
            f"Syncing {email}: {len(record.mapping)} mapped tasks, last synced {watermark}"
        )

        access_token = await self.token_fetcher(
            record.google_refresh_token, self.config, client=self.http_client
        )
        google = self.google_client_factory(
            access_token, record.tasklist_id, self.config, client=self.http_client
        )
        notion = self.notion_client_factory(
            record.notion_access_token, self.config, bot_id=record.notion_bot_id, client=self.http_client
        )

        async with google, notion:
            database = await notion.fetch_database(record.database_id)
            try:
                props_map = build_props_map(database)
            except SyncCycleError as e:
                e.email = email
                raise

            google_tasks = await google.fetch_tasks(watermark)
            self.logger.info(f"Google tasks updated since last sync: {len(google_tasks)}")
            notion_snapshot = await notion.fetch_tasks(record.database_id, props_map)
            self.logger.info(f"Notion tasks fetched: {len(notion_snapshot.tasks)}")

            today = self.clock().date()
            mapping = list(record.mapping)

            # Pass 1: Notion → Google
            google_delta = await sync_google_with_notion(
                notion_snapshot, google_tasks, mapping, watermark, google, today
            )
            self.logger.info(
                f"Google updated: {len(google_delta.created)} created, "
                f"{len(google_delta.updated)} updated, {len(google_delta.deleted)} completed, "
                f"{len(google_delta.errors)} errors"
            )
            if not google_delta.is_empty:
                mapping = apply_delta(mapping, google_delta)
                self.store.save_mapping(email, mapping)

            # Pass 2: Google → Notion, minus the tasks pass 1 just completed
            completed_in_pass_1 = set(google_delta.deleted)
            remaining_google_tasks = [t for t in google_tasks if t.id not in completed_in_pass_1]
            notion_delta = await sync_notion_with_google(
                remaining_google_tasks,
                notion_snapshot.tasks,
                mapping,
                watermark,
                notion,
                record.database_id,
                props_map,
                today
            )
            self.logger.info(
                f"Notion updated: {len(notion_delta.created)} created, "
                f"{len(notion_delta.updated)} updated, {len(notion_delta.deleted)} archived, "
                f"{len(notion_delta.errors)} errors"
            )
            if not notion_delta.is_empty:
                mapping = apply_delta(mapping, notion_delta)
                self.store.save_mapping(email, mapping)

        # Housekeeping
        now = self.clock()
        pruned = prune(mapping, now, self.config.retention_days)
        removed = len(mapping) - len(pruned)
        self.logger.info(f"Housekeeping: {removed} completed tasks removed from mapping")
        self.store.save_watermark(
            email,
            next_watermark(watermark, now),
            mapping=pruned if removed else None
        )

        return SyncResult(
            success=True,
            email=email,
            google_stats=SyncStats.from_delta(google_delta),
            notion_stats=SyncStats.from_delta(notion_delta),
            task_errors=google_delta.errors + notion_delta.errors,
            mapping_size=len(pruned),
        )

    def _record_failure(self, record: UserSyncRecord, error: Exception):
        sync_error = next_sync_error(record.sync_error, str(error), self.clock(), self.config)
        self.logger.warning(
            f"Sync failure #{sync_error.num} for {record.email}; next retry {sync_error.next_retry}"
        )
        try:
            self.store.save_sync_error(record.email, sync_error)
        except Exception as e:
            self.logger.error(f"Could not save sync error for {record.email}: {e}")

    def _clear_failure(self, email: str):
        try:
            self.store.save_sync_error(email, None)
        except Exception as e:
            self.logger.error(f"Could not clear sync error for {email}: {e}")


# ============================================================================
# ENTRY POINT
# ============================================================================

async def run_sync(email: str, config: Optional[SyncConfig] = None) -> Dict:
    """Sync one user and return the result as a dict."""
    config = config or SyncConfig.from_env()
    store = create_user_store(config)
    service = TasksSyncService(config, store, sync_logger=SyncLogger("tasks", store.client))
    result = await service.sync_user(email)
    return result.to_dict()


async def _main(args) -> Dict:
    from syncs.scheduler import run_scheduled_sync

    config = SyncConfig.from_env()
    if args.all:
        store = create_user_store(config)
        service = TasksSyncService(config, store, sync_logger=SyncLogger("tasks", store.client))
        return await run_scheduled_sync(service, store, config)
    try:
        return await run_sync(args.email, config)
    except UserNotFoundError as e:
        return {'success': False, 'email': args.email, 'error_message': str(e)}


if __name__ == "__main__":
    parser = create_cli_parser("Tasks")
    args = parser.parse_args()

    result = asyncio.run(_main(args))
    print(f"\nResult: {result}")

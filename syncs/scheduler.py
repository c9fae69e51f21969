"""
Periodic fan-out: pick the users that are due and sync them in batches.

Users in a batch run concurrently; one user's failure never affects the
others. The failing user's sync error (and its backoff) is recorded by
TasksSyncService itself.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence, TypeVar

from lib.config import SyncConfig
from lib.user_store import UserStore
from syncs.backoff import is_due_for_sync
from syncs.tasks_sync import TasksSyncService

logger = logging.getLogger("Scheduler")

T = TypeVar("T")


def split_into_batches(items: Sequence[T], size: int) -> List[List[T]]:
    if size < 1:
        raise ValueError("batch size must be at least 1")
    return [list(items[i:i + size]) for i in range(0, len(items), size)]


def get_users_for_sync(store: UserStore, now: datetime, config: SyncConfig) -> List[str]:
    """Emails of set-up users whose interval has passed and who are not backing off."""
    return [
        record.email
        for record in store.list_synced_users()
        if is_due_for_sync(record, now, config)
    ]


async def run_scheduled_sync(
    service: TasksSyncService,
    store: UserStore,
    config: SyncConfig,
    now: Optional[datetime] = None
) -> Dict:
    """Sync every due user and return a per-user summary."""
    now = now or datetime.now(timezone.utc)
    emails = get_users_for_sync(store, now, config)
    logger.info(f"Scheduled sync: {len(emails)} users due")

    results: Dict[str, Dict] = {}
    for batch in split_into_batches(emails, config.batch_size):
        outcomes = await asyncio.gather(
            *(service.sync_user(email) for email in batch),
            return_exceptions=True
        )
        for email, outcome in zip(batch, outcomes):
            if isinstance(outcome, Exception):
                results[email] = {"status": "error", "error": str(outcome)}
            elif isinstance(outcome, BaseException):
                raise outcome
            else:
                results[email] = {"status": "success", "data": outcome.to_dict()}

    success_count = sum(1 for r in results.values() if r["status"] == "success")
    error_count = len(results) - success_count
    logger.info(f"Scheduled sync complete: {success_count} success, {error_count} errors")

    return {
        "users": len(emails),
        "success_count": success_count,
        "error_count": error_count,
        "results": results,
    }

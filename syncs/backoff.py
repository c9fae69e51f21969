"""
Per-user failure bookkeeping: when a failed user may be synced again.
"""

from datetime import datetime
from typing import Optional

from lib.config import SyncConfig
from lib.models import SyncError, UserSyncRecord


def next_sync_error(
    previous: Optional[SyncError],
    message: str,
    now: datetime,
    config: SyncConfig
) -> SyncError:
    """
    Record one more consecutive failure.

    The retry delay grows with each failure following `config.retry_delays`
    (the last delay repeats). Past `max_consecutive_failures` no retry is
    scheduled at all.
    """
    num = (previous.num if previous else 0) + 1

    if num > config.max_consecutive_failures:
        next_retry = None
    else:
        delays = config.retry_delays
        next_retry = now + delays[min(num - 1, len(delays) - 1)]

    return SyncError(
        message=message[:500],
        num=num,
        next_retry=next_retry,
        sent_email=previous.sent_email if previous else False,
    )


def is_due_for_sync(record: UserSyncRecord, now: datetime, config: SyncConfig) -> bool:
    """Set-up users whose last sync is older than the interval and who are not backing off."""
    if record.last_synced is None:
        return False
    if record.last_synced > now - config.sync_interval:
        return False
    if record.sync_error is None:
        return True
    return record.sync_error.next_retry is not None and record.sync_error.next_retry <= now

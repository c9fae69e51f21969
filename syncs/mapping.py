"""
Mapping bookkeeping: merging a pass's delta and pruning old entries.

Both functions are pure; the caller persists the result.
"""

from datetime import date, datetime, time, timedelta, timezone
from typing import Dict, List, Optional

from lib.models import MappingDelta, MappingEntry


def apply_delta(mapping: List[MappingEntry], delta: MappingDelta) -> List[MappingEntry]:
    """
    Merge a reconciliation delta into the mapping.

    Order matters for idempotency: add created pairs (skipping any whose ids
    are already mapped), then drop deleted ids, then stamp completion dates.
    Applying the same delta a second time changes nothing.
    """
    merged = list(mapping)
    google_ids = {entry.google_id for entry in merged}
    notion_ids = {entry.notion_id for entry in merged}

    for entry in delta.created:
        if entry.google_id in google_ids or entry.notion_id in notion_ids:
            continue
        merged.append(entry)
        google_ids.add(entry.google_id)
        notion_ids.add(entry.notion_id)

    if delta.deleted:
        deleted = set(delta.deleted)
        merged = [
            entry for entry in merged
            if entry.google_id not in deleted and entry.notion_id not in deleted
        ]

    if delta.updated:
        completed: Dict[str, Optional[date]] = dict(delta.updated)
        stamped = []
        for entry in merged:
            if entry.google_id in completed:
                entry = MappingEntry(entry.google_id, entry.notion_id, completed[entry.google_id])
            elif entry.notion_id in completed:
                entry = MappingEntry(entry.google_id, entry.notion_id, completed[entry.notion_id])
            stamped.append(entry)
        merged = stamped

    return merged


def days_since(completed_at: date, now: datetime) -> int:
    """Whole days elapsed since midnight UTC of `completed_at`."""
    start = datetime.combine(completed_at, time.min, tzinfo=timezone.utc)
    return (now - start) // timedelta(days=1)


def prune(mapping: List[MappingEntry], now: datetime, retention_days: int = 7) -> List[MappingEntry]:
    """Drop entries completed `retention_days` or more days ago. Open tasks are always kept."""
    return [
        entry for entry in mapping
        if entry.completed_at is None or days_since(entry.completed_at, now) < retention_days
    ]


def next_watermark(previous: Optional[datetime], now: datetime) -> datetime:
    """The watermark never moves backwards, even if the clock does."""
    if previous is None:
        return now
    return max(previous, now)

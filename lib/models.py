"""
Typed task snapshots and sync state shared by the clients and the engine.

Raw API payloads never reach the sync engine: the Google and Notion clients
convert them into the dataclasses below at the boundary.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp (with 'Z' or offset) into an aware UTC datetime."""
    if not value:
        return None
    if value.endswith('Z'):
        value = value[:-1] + '+00:00'
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def parse_date(value: Optional[str]) -> Optional[date]:
    """Parse the date portion of an ISO date or datetime string."""
    if not value:
        return None
    return date.fromisoformat(value[:10])


def format_timestamp(value: datetime) -> str:
    """RFC 3339 with milliseconds and 'Z', the format both APIs return."""
    value = value.astimezone(timezone.utc)
    return value.strftime('%Y-%m-%dT%H:%M:%S.') + f"{value.microsecond // 1000:03d}Z"


# ============================================================================
# TASKS
# ============================================================================

class NotionStatus(str, Enum):
    TODO = "To Do"
    DONE = "Done"


class GoogleStatus(str, Enum):
    NEEDS_ACTION = "needsAction"
    COMPLETED = "completed"


@dataclass(frozen=True)
class GoogleTask:
    """A task in a Google Tasks list. `due` has no time of day."""
    id: str
    title: str
    status: GoogleStatus
    updated: datetime
    due: Optional[date] = None
    completed: Optional[datetime] = None
    deleted: bool = False
    hidden: bool = False

    @property
    def is_completed(self) -> bool:
        return self.status == GoogleStatus.COMPLETED


@dataclass(frozen=True)
class NotionTask:
    """A page in the user's Notion tasks database."""
    id: str
    title: str
    status: str
    last_edited: datetime
    due: Optional[date] = None
    last_edited_by_bot: bool = False

    @property
    def is_done(self) -> bool:
        return self.status == NotionStatus.DONE.value


@dataclass(frozen=True)
class NotionSnapshot:
    """One page of Notion query results; has_more means the listing is incomplete."""
    tasks: List[NotionTask]
    has_more: bool = False


def google_status_for(notion_task: NotionTask) -> GoogleStatus:
    return GoogleStatus.COMPLETED if notion_task.is_done else GoogleStatus.NEEDS_ACTION


def notion_status_for(google_task: GoogleTask) -> NotionStatus:
    return NotionStatus.DONE if google_task.is_completed else NotionStatus.TODO


# ============================================================================
# NOTION DATABASE SHAPE
# ============================================================================

@dataclass(frozen=True)
class NotionProperty:
    id: str
    name: str
    type: str


@dataclass(frozen=True)
class NotionPropsMap:
    """Which database properties hold each task field."""
    title: NotionProperty
    status: NotionProperty
    due: NotionProperty
    last_edited: NotionProperty
    last_edited_by: NotionProperty

    def ids(self) -> List[str]:
        return [p.id for p in (self.title, self.status, self.due, self.last_edited, self.last_edited_by)]


# ============================================================================
# MAPPING & SYNC STATE
# ============================================================================

@dataclass(frozen=True)
class MappingEntry:
    """Links a Google task to its Notion page. completed_at is only used for pruning."""
    google_id: str
    notion_id: str
    completed_at: Optional[date] = None

    def to_json(self) -> List[Optional[str]]:
        return [
            self.google_id,
            self.notion_id,
            self.completed_at.isoformat() if self.completed_at else None,
        ]

    @classmethod
    def from_json(cls, item: List[Optional[str]]) -> "MappingEntry":
        completed_at = item[2] if len(item) > 2 else None
        return cls(google_id=item[0], notion_id=item[1], completed_at=parse_date(completed_at))


@dataclass(frozen=True)
class TaskError:
    """A single create/update/delete call that failed during a pass."""
    task_id: str
    operation: str
    message: str


@dataclass
class MappingDelta:
    """Mapping changes produced by one reconciliation pass.

    Ids in `deleted` and `updated` may be either a Google or a Notion id.
    """
    created: List[MappingEntry] = field(default_factory=list)
    deleted: List[str] = field(default_factory=list)
    updated: List[Tuple[str, Optional[date]]] = field(default_factory=list)
    errors: List[TaskError] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.created or self.deleted or self.updated)


@dataclass(frozen=True)
class SyncError:
    """Consecutive-failure record for a user. next_retry=None means retries stopped."""
    message: str
    num: int
    next_retry: Optional[datetime]
    sent_email: bool = False

    def to_json(self) -> Dict[str, Any]:
        return {
            'message': self.message,
            'num': self.num,
            'next_retry': format_timestamp(self.next_retry) if self.next_retry else None,
            'sent_email': self.sent_email,
        }

    @classmethod
    def from_json(cls, data: Optional[Dict[str, Any]]) -> Optional["SyncError"]:
        if not data:
            return None
        return cls(
            message=data.get('message', ''),
            num=int(data.get('num', 0)),
            next_retry=parse_timestamp(data.get('next_retry')),
            sent_email=bool(data.get('sent_email', False)),
        )


@dataclass
class UserSyncRecord:
    email: str
    google_refresh_token: str
    notion_access_token: str
    tasklist_id: str
    database_id: str
    mapping: List[MappingEntry] = field(default_factory=list)
    last_synced: Optional[datetime] = None
    sync_error: Optional[SyncError] = None
    notion_bot_id: Optional[str] = None

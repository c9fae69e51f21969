"""
Notion ↔ Google Tasks sync engine.
"""

from .tasks_sync import TasksSyncService, run_sync as run_tasks_sync
from .scheduler import run_scheduled_sync
from .notifications import send_failed_sync_notify

__all__ = [
    'TasksSyncService',
    'run_tasks_sync',
    'run_scheduled_sync',
    'send_failed_sync_notify',
]

"""
Shared result types and CLI helpers for sync runs.
"""

import argparse
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from lib.models import MappingDelta, TaskError


@dataclass
class SyncStats:
    """Changes applied to one side during a cycle."""
    created: int = 0
    updated: int = 0
    deleted: int = 0
    errors: int = 0

    @property
    def total_processed(self) -> int:
        return self.created + self.updated + self.deleted

    @classmethod
    def from_delta(cls, delta: MappingDelta) -> "SyncStats":
        return cls(
            created=len(delta.created),
            updated=len(delta.updated),
            deleted=len(delta.deleted),
            errors=len(delta.errors),
        )

    def to_dict(self) -> Dict:
        return {
            'created': self.created,
            'updated': self.updated,
            'deleted': self.deleted,
            'errors': self.errors,
            'total_processed': self.total_processed
        }


@dataclass
class SyncResult:
    """Result of one user's sync cycle."""
    success: bool
    email: str
    google_stats: SyncStats = field(default_factory=SyncStats)
    notion_stats: SyncStats = field(default_factory=SyncStats)
    task_errors: List[TaskError] = field(default_factory=list)
    mapping_size: int = 0
    elapsed_seconds: float = 0.0
    error_message: Optional[str] = None

    def to_dict(self) -> Dict:
        return {
            'success': self.success,
            'email': self.email,
            'google': self.google_stats.to_dict(),
            'notion': self.notion_stats.to_dict(),
            'task_errors': [
                {'task_id': e.task_id, 'operation': e.operation, 'message': e.message}
                for e in self.task_errors
            ],
            'mapping_size': self.mapping_size,
            'elapsed_seconds': round(self.elapsed_seconds, 2),
            'error_message': self.error_message
        }


def create_cli_parser(service_name: str) -> argparse.ArgumentParser:
    """Standard CLI for running a sync by hand."""
    parser = argparse.ArgumentParser(description=f'{service_name} Sync Service')
    target = parser.add_mutually_exclusive_group(required=True)
    target.add_argument('--email', help='Sync a single user')
    target.add_argument('--all', action='store_true', help='Sync every user that is due')
    return parser

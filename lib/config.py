"""
Runtime configuration for the Notion ↔ Google Tasks sync.

Values come from the environment (optionally a .env file). Build one
SyncConfig at startup and pass it to every component.
"""

import os
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Optional, Tuple

from dotenv import load_dotenv

# Escalating delays (minutes) between retries of a failing user sync.
# The last value repeats once the table is exhausted.
DEFAULT_RETRY_DELAYS_MINUTES = (5, 10, 20, 40, 60, 120, 240, 480, 720)


def _int_env(name: str, default: int) -> int:
    value = os.environ.get(name)
    return int(value) if value else default


@dataclass(frozen=True)
class SyncConfig:
    # Google
    google_client_id: str = ""
    google_client_secret: str = ""
    google_token_uri: str = "https://oauth2.googleapis.com/token"
    google_tasks_api_base: str = "https://tasks.googleapis.com/tasks/v1"
    google_max_tasks: int = 100  # API max per request, default is 20

    # Notion
    notion_api_base: str = "https://api.notion.com/v1"
    notion_version: str = "2022-06-28"
    notion_page_size: int = 100  # API max per request

    # Supabase
    supabase_url: str = ""
    supabase_key: str = ""

    # Mailjet
    mailjet_api_url: str = "https://api.mailjet.com/v3.1/send"
    mailjet_api_key: str = ""
    mailjet_secret_key: str = ""
    mailjet_failed_sync_template_id: Optional[int] = None

    # Sync policy
    retention_days: int = 7
    sync_interval: timedelta = timedelta(minutes=5)
    batch_size: int = 100
    retry_delays: Tuple[timedelta, ...] = field(
        default_factory=lambda: tuple(timedelta(minutes=m) for m in DEFAULT_RETRY_DELAYS_MINUTES)
    )
    max_consecutive_failures: int = 30
    notify_after_failures: int = 6
    http_timeout: float = 30.0

    @classmethod
    def from_env(cls) -> "SyncConfig":
        """Build config from environment variables (loads .env if present)."""
        load_dotenv()

        template_id = os.environ.get("MAILJET_FAILED_SYNC_TEMPLATE_ID")
        delays = os.environ.get("SYNC_RETRY_DELAYS_MINUTES")
        retry_delays = tuple(
            timedelta(minutes=int(m))
            for m in (delays.split(",") if delays else DEFAULT_RETRY_DELAYS_MINUTES)
        )

        return cls(
            google_client_id=os.environ.get("GOOGLE_CLIENT_ID", ""),
            google_client_secret=os.environ.get("GOOGLE_CLIENT_SECRET", ""),
            google_max_tasks=_int_env("GOOGLE_MAX_TASKS", 100),
            notion_version=os.environ.get("NOTION_VERSION", "2022-06-28"),
            supabase_url=os.environ.get("SUPABASE_URL", ""),
            supabase_key=os.environ.get("SUPABASE_KEY", ""),
            mailjet_api_key=os.environ.get("MAILJET_API_KEY", ""),
            mailjet_secret_key=os.environ.get("MAILJET_SECRET_KEY", ""),
            mailjet_failed_sync_template_id=int(template_id) if template_id else None,
            retention_days=_int_env("SYNC_RETENTION_DAYS", 7),
            sync_interval=timedelta(minutes=_int_env("SYNC_INTERVAL_MINUTES", 5)),
            batch_size=_int_env("SYNC_BATCH_SIZE", 100),
            retry_delays=retry_delays,
            max_consecutive_failures=_int_env("SYNC_MAX_CONSECUTIVE_FAILURES", 30),
            notify_after_failures=_int_env("SYNC_NOTIFY_AFTER_FAILURES", 6),
        )

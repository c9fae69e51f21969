import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional


def setup_logger(name: str, level: int = logging.INFO) -> logging.Logger:
    """Create a consistently formatted logger."""
    logger = logging.getLogger(name)
    logger.setLevel(level)

    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(
            '%(asctime)s [%(levelname)s] %(name)s: %(message)s'
        ))
        logger.addHandler(handler)

    return logger


class SyncLogger:
    """
    Logs sync events to the standard logger and, when a Supabase client is
    given, to the 'sync_logs' table.

    Writing the row is best effort: a failed insert is logged, never raised,
    so bookkeeping problems cannot fail a sync.
    """

    def __init__(self, service_name: str, supabase_client: Optional[Any] = None):
        self.service_name = service_name
        self.supabase = supabase_client
        self.logger = setup_logger(f"SyncLogger.{service_name}")

    def log(self, event_type: str, status: str, message: str, details: Optional[Dict] = None):
        log_msg = f"[{event_type.upper()}] {message}"
        if status.lower() in ("error", "fatal"):
            self.logger.error(log_msg)
        elif status.lower() == "warning":
            self.logger.warning(log_msg)
        else:
            self.logger.info(log_msg)

        if self.supabase is None:
            return

        payload = {
            'event_type': f"{self.service_name}_{event_type}",
            'status': status,
            'message': message[:500] if message else '',
            'created_at': datetime.now(timezone.utc).isoformat(),
        }
        if details:
            payload['message'] = f"{payload['message']} | Details: {json.dumps(details, default=str)}"[:2000]

        try:
            self.supabase.table('sync_logs').insert(payload).execute()
        except Exception as e:
            self.logger.error(f"Failed to write to sync_logs: {e}")

    def log_success(self, event_type: str, message: str, details: Optional[Dict] = None):
        self.log(event_type, 'success', message, details)

    def log_error(self, event_type: str, message: str, details: Optional[Dict] = None):
        self.log(event_type, 'error', message, details)

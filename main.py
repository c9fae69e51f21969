import asyncio
from datetime import datetime, timezone
from functools import lru_cache
from fastapi import FastAPI, HTTPException
import logging

from lib.config import SyncConfig
from lib.errors import NotificationError, NotionSchemaError, UserNotFoundError
from lib.logging_service import SyncLogger
from lib.mailjet_client import MailjetClient
from lib.user_store import UserStore, create_user_store
from syncs.notifications import send_failed_sync_notify
from syncs.scheduler import run_scheduled_sync
from syncs.tasks_sync import TasksSyncService

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

app = FastAPI(title="Notion Google Tasks Sync")

# ============================================================================
# SYNC LOCKING - Prevent overlapping scheduled runs
# ============================================================================
_sync_lock = asyncio.Lock()
_last_sync_start: datetime | None = None
_last_sync_end: datetime | None = None


@lru_cache(maxsize=1)
def get_config() -> SyncConfig:
    return SyncConfig.from_env()


@lru_cache(maxsize=1)
def get_store() -> UserStore:
    return create_user_store(get_config())


def get_service() -> TasksSyncService:
    store = get_store()
    return TasksSyncService(get_config(), store, sync_logger=SyncLogger("tasks", store.client))


@app.get("/")
async def root():
    return {"status": "Notion Google Tasks Sync is running"}


@app.get("/health")
async def health_check():
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "sync": {
            "sync_in_progress": _sync_lock.locked(),
            "last_sync_start": _last_sync_start.isoformat() if _last_sync_start else None,
            "last_sync_end": _last_sync_end.isoformat() if _last_sync_end else None,
        }
    }


@app.post("/sync/scheduled")
async def scheduled_sync():
    """
    Sync every user that is due. Meant to be called by a cron job every few
    minutes; a call that arrives while a run is in progress is skipped.
    """
    global _last_sync_start, _last_sync_end

    if _sync_lock.locked():
        logger.warning("Scheduled sync already in progress, skipping this request")
        return {
            "status": "skipped",
            "reason": "sync_already_in_progress",
            "last_sync_start": _last_sync_start.isoformat() if _last_sync_start else None,
        }

    async with _sync_lock:
        _last_sync_start = datetime.now(timezone.utc)
        try:
            summary = await run_scheduled_sync(get_service(), get_store(), get_config())
        except Exception as e:
            logger.error(f"Scheduled sync failed: {e}")
            raise HTTPException(status_code=500, detail=str(e))
        finally:
            _last_sync_end = datetime.now(timezone.utc)

        return {
            "status": "completed",
            "duration_seconds": (_last_sync_end - _last_sync_start).total_seconds(),
            **summary
        }


@app.post("/sync/users/{email}")
async def sync_user(email: str):
    """Run one sync cycle for a single user right away."""
    try:
        logger.info(f"Starting task sync via API for {email}")
        result = await get_service().sync_user(email)
        return result.to_dict()
    except UserNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except NotionSchemaError as e:
        raise HTTPException(status_code=422, detail={"message": str(e), "issues": e.issues})
    except Exception as e:
        logger.error(f"Task sync failed for {email}: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@app.post("/notify/failed-sync")
async def notify_failed_sync():
    """Email users whose syncs keep failing."""
    try:
        config = get_config()
        notified = await send_failed_sync_notify(get_store(), MailjetClient(config), config)
        return {"status": "completed", "notified": notified}
    except NotificationError as e:
        logger.error(f"Failed-sync notification failed: {e}")
        raise HTTPException(status_code=502, detail=str(e))
    except Exception as e:
        logger.error(f"Failed-sync notification failed: {e}")
        raise HTTPException(status_code=500, detail=str(e))


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)

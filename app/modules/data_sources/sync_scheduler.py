import asyncio
import logging
from datetime import datetime, timezone
from typing import List, Optional
from fastapi import HTTPException
from app.config import settings
from app.database.supabase_client import get_service_supabase
from app.modules.data_sources.schemas import DataSourceResponse
from app.modules.data_sources.sync_service import SyncService, is_sync_stuck, as_utc

logger = logging.getLogger(__name__)


def find_due_sources(sources: List[DataSourceResponse], now: datetime) -> List[DataSourceResponse]:
    """Active sources with interval sync enabled whose next run time has passed."""
    due = []
    for source in sources:
        if not source.active or not (source.sync_config or {}).get("enabled"):
            continue
        if source.sync_status == "running":
            continue
        if source.next_sync_at is None or as_utc(source.next_sync_at) <= now:
            due.append(source)
    return due


async def run_due_syncs(now: Optional[datetime] = None, supabase=None):
    """Trigger every due sync once and report stuck ones. Stuck syncs are never reset here."""
    try:
        supabase = supabase or get_service_supabase()
        sync_service = SyncService(supabase)
        now = now or datetime.now(timezone.utc)
        result = supabase.table("data_sources").select("*").eq("active", True).execute()
        sources = [DataSourceResponse(**row) for row in result.data or []]

        for source in sources:
            if is_sync_stuck(source, now):
                logger.warning(f"Data source {source.id} has been syncing since {source.last_sync_at}; reset it manually")

        due = find_due_sources(sources, now)
        if not due:
            logger.debug("No data sources due for sync")
            return
        logger.info(f"Found {len(due)} data source(s) due for sync")
        for source in due:
            try:
                await asyncio.to_thread(sync_service.trigger_manual_sync, source.id)
            except HTTPException as e:
                logger.error(f"Scheduled sync of data source {source.id} failed: {e.detail}")
            except Exception as e:
                logger.error(f"Error in scheduled sync of data source {source.id}: {str(e)}")
    except Exception as e:
        logger.error(f"Error in sync scheduler: {str(e)}")


async def sync_scheduler_loop():
    """Background task that periodically runs due interval syncs"""
    while True:
        try:
            await run_due_syncs()
        except Exception as e:
            logger.error(f"Error in sync scheduler loop: {str(e)}")

        await asyncio.sleep(settings.sync_scheduler_interval_seconds)

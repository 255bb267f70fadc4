from supabase import Client
from app.config import settings
from app.core.edge_functions import invoke_edge_function, EdgeFunctionError
from app.modules.data_sources.service import DataSourceService
from app.modules.data_sources.schemas import (
    DataSourceResponse, DatabaseConfig, DatabaseConnection, SyncConfig, SyncResult, SyncStatusResponse
)
from typing import Any, Callable, Dict, Optional
from datetime import datetime, timedelta, timezone
from fastapi import HTTPException
from pydantic import ValidationError
import logging

logger = logging.getLogger(__name__)

SYNC_FUNCTIONS = {
    "api": "sync-api-integration",
    "file": "sync-file-integration",
    "database": "sync-database-integration",
    "rss": "sync-rss-integration",
}
RESET_MESSAGE = "Manually reset from stuck state"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def compute_next_sync(sync_config: Optional[Dict[str, Any]], now: datetime) -> Optional[datetime]:
    """Next run time for an enabled interval sync, else None."""
    if not sync_config:
        return None
    interval = SyncConfig(**sync_config).interval_timedelta()
    return now + interval if interval else None


def is_sync_stuck(source: DataSourceResponse, now: datetime, threshold_seconds: Optional[int] = None) -> bool:
    """A sync is stuck when it still reads ``running`` after the threshold has passed."""
    if source.sync_status != "running" or not source.last_sync_at:
        return False
    threshold = timedelta(seconds=threshold_seconds or settings.stuck_sync_threshold_seconds)
    return now - as_utc(source.last_sync_at) > threshold


class SyncService:
    def __init__(self, supabase: Client, clock: Callable[[], datetime] = _utc_now):
        self.supabase = supabase
        self.data_sources = DataSourceService(supabase)
        self.clock = clock

    def trigger_manual_sync(self, data_source_id: str, force: bool = False) -> SyncResult:
        """Run the type-specific sync edge function and record the outcome on the row"""
        source = self.data_sources.get_data_source(data_source_id)
        now = self.clock()
        if source.sync_status == "running" and not force and not is_sync_stuck(source, now):
            raise HTTPException(status_code=409, detail="A sync is already running for this data source")

        function_name = SYNC_FUNCTIONS[source.type]
        self.data_sources.update_fields(data_source_id, {
            "sync_status": "running",
            "last_sync_at": now.isoformat(),
            "last_sync_error": None,
        })
        logger.info(f"Starting {source.type} sync for data source {data_source_id} (force={force})")

        try:
            result = invoke_edge_function(
                self.supabase, function_name, {"dataSourceId": data_source_id, "force": force}
            )
            items_processed = int(result.get("itemsProcessed") or 0)
            message = result.get("message") or f"Synced {items_processed} items"

            # The edge function may already have written its own status
            refreshed = self.data_sources.get_data_source(data_source_id)
            completed = self.clock()
            updates: Dict[str, Any] = {"last_sync_count": items_processed}
            if refreshed.sync_status in (None, "running", "pending"):
                updates["sync_status"] = "success"
            next_sync = compute_next_sync(refreshed.sync_config, completed)
            if next_sync:
                updates["next_sync_at"] = next_sync.isoformat()
            self.data_sources.update_fields(data_source_id, updates)
        except EdgeFunctionError as e:
            self._record_failure(data_source_id, e.message)
            raise HTTPException(status_code=502, detail=f"Sync failed: {e.message}")
        except HTTPException as e:
            self._record_failure(data_source_id, str(e.detail))
            raise
        except Exception as e:
            self._record_failure(data_source_id, str(e))
            raise HTTPException(status_code=500, detail=f"Sync failed: {str(e)}")

        logger.info(f"Sync finished for data source {data_source_id}: {items_processed} items")
        return SyncResult(success=True, items_processed=items_processed, message=message)

    def _record_failure(self, data_source_id: str, message: str):
        logger.error(f"Sync failed for data source {data_source_id}: {message}")
        try:
            self.data_sources.update_fields(data_source_id, {
                "sync_status": "error",
                "last_sync_error": message,
            })
        except HTTPException as e:
            logger.error(f"Could not record sync failure for data source {data_source_id}: {e.detail}")

    def reset_stuck_sync(self, data_source_id: str) -> DataSourceResponse:
        """Put a stuck source back to idle"""
        self.data_sources.get_data_source(data_source_id)
        logger.warning(f"Resetting sync state of data source {data_source_id}")
        return self.data_sources.update_fields(data_source_id, {
            "sync_status": "idle",
            "last_sync_error": RESET_MESSAGE,
        })

    def get_sync_status(self, data_source_id: str) -> SyncStatusResponse:
        source = self.data_sources.get_data_source(data_source_id)
        return SyncStatusResponse(
            status=source.sync_status or "idle",
            last_sync=source.last_sync_at,
            next_sync=source.next_sync_at,
            last_error=source.last_sync_error,
            is_stuck=is_sync_stuck(source, self.clock()),
        )

    def test_sync_configuration(self, config: Dict[str, Any]) -> Dict[str, Any]:
        """Dry-run a configuration that has not been saved yet"""
        function_name = "test-sync-configuration"
        if config.get("type") == "database" and config.get("database_config"):
            try:
                database_config = DatabaseConfig.model_validate(config["database_config"])
            except ValidationError as e:
                raise HTTPException(status_code=400, detail=f"Invalid database configuration: {e.errors()[0]['msg']}")
            if database_config.has_parent_child_queries():
                function_name = "test-database-parent-child"
            else:
                function_name = "test-database-simple"
        return self._invoke(function_name, {"config": config})

    def test_database_connection(self, connection: DatabaseConnection, db_type: str = "mysql") -> Dict[str, Any]:
        return self._invoke("test-database-connection", {
            "type": db_type,
            "host": connection.host,
            "port": connection.port,
            "database": connection.database,
            "user": connection.username,
            "password": connection.password,
            "schema": connection.db_schema,
        })

    def test_database_query(self, connection: DatabaseConnection, sql: str, db_type: str = "mysql") -> Dict[str, Any]:
        if not sql.strip():
            raise HTTPException(status_code=400, detail="SQL must not be empty")
        return self._invoke("test-database-query", {
            "mode": "simple",
            "connection": connection.model_dump(by_alias=True, exclude_none=True),
            "sql": sql,
            "type": db_type,
        })

    def _invoke(self, function_name: str, body: Dict[str, Any]) -> Dict[str, Any]:
        try:
            return invoke_edge_function(self.supabase, function_name, body)
        except EdgeFunctionError as e:
            raise HTTPException(status_code=502, detail=f"{function_name} failed: {e.message}")

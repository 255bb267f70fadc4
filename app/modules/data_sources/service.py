from supabase import Client
from app.modules.data_sources.schemas import (
    DataSourceCreate, DataSourceUpdate, DataSourceResponse,
    ApiConfig, RssConfig, DatabaseConfig, FileConfig, SyncConfig, config_field_for
)
from typing import List, Optional, Dict, Any
from datetime import datetime, timezone
from fastapi import HTTPException
import logging

logger = logging.getLogger(__name__)

_CONFIG_FIELDS = ("api_config", "rss_config", "database_config", "file_config", "sync_config", "template_mapping")


def validate_source_config(
    source_type: str,
    api_config: Optional[ApiConfig] = None,
    rss_config: Optional[RssConfig] = None,
    database_config: Optional[DatabaseConfig] = None,
    file_config: Optional[FileConfig] = None,
) -> List[str]:
    """Checks the wizard runs before a save. Returns human-readable problems."""
    errors: List[str] = []
    if source_type == "database" and database_config is not None:
        if not any(c.is_complete() for c in database_config.connections.values()):
            errors.append("At least one connection must have host, database and username")
        for key, query in database_config.queries.items():
            connection_ids = [query.connection_id] if query.mode == "simple" else [
                query.parent_query.connection_id, query.child_query.connection_id
            ]
            for connection_id in connection_ids:
                if connection_id and connection_id not in database_config.connections:
                    errors.append(f"Query '{query.name or key}' references unknown connection '{connection_id}'")
    elif source_type == "file" and file_config is not None:
        if file_config.source == "url" and not file_config.url:
            errors.append("File URL is required")
        if file_config.source == "path" and not file_config.path:
            errors.append("File path is required")
        if file_config.chunk_mode and not file_config.chunk_size:
            errors.append("Chunk size is required when chunk mode is enabled")
    elif source_type == "api" and api_config is not None:
        if not api_config.url:
            errors.append("API URL is required")
    elif source_type == "rss" and rss_config is not None:
        if not rss_config.url:
            errors.append("Feed URL is required")
    return errors


def _dump(model) -> Optional[Dict[str, Any]]:
    if model is None:
        return None
    return model.model_dump(by_alias=True, exclude_none=True)


class DataSourceService:
    def __init__(self, supabase: Client):
        self.supabase = supabase

    def create_data_source(self, data: DataSourceCreate, user_id: str, organization_id: str) -> DataSourceResponse:
        """Validate and persist a new data source"""
        if not data.name.strip():
            raise HTTPException(status_code=400, detail="Name must not be empty")
        errors = validate_source_config(
            data.type, data.api_config, data.rss_config, data.database_config, data.file_config
        )
        if errors:
            raise HTTPException(status_code=400, detail="; ".join(errors))
        self._ensure_bucket_available(data.sync_config)
        try:
            row = {
                "name": data.name.strip(),
                "type": data.type,
                "active": data.active,
                "user_id": user_id,
                "organization_id": organization_id,
                "sync_status": "idle",
            }
            for field_name in _CONFIG_FIELDS:
                row[field_name] = _dump(getattr(data, field_name))
            result = self.supabase.table("data_sources").insert(row).execute()

            if not result.data:
                raise HTTPException(status_code=500, detail="Failed to create data source")

            logger.info(f"Created {data.type} data source {result.data[0]['id']} ({data.name})")
            return DataSourceResponse(**result.data[0])
        except HTTPException:
            raise
        except Exception as e:
            logger.error(f"Error creating data source: {str(e)}")
            raise HTTPException(status_code=500, detail=str(e))

    def find_bucket_user(self, bucket_id: str, exclude_id: Optional[str] = None) -> Optional[str]:
        """Name of another active source whose enabled sync writes into ``bucket_id``."""
        try:
            result = self.supabase.table("data_sources")\
                .select("id, name, sync_config")\
                .eq("active", True)\
                .execute()
        except Exception as e:
            logger.error(f"Error checking bucket usage for {bucket_id}: {str(e)}")
            raise HTTPException(status_code=500, detail=str(e))
        for row in result.data or []:
            if row.get("id") == exclude_id:
                continue
            sync_config = row.get("sync_config") or {}
            if sync_config.get("enabled") and sync_config.get("targetBucketId") == bucket_id:
                return row.get("name")
        return None

    def _ensure_bucket_available(self, sync_config: Optional[SyncConfig], exclude_id: Optional[str] = None):
        if sync_config is None or not sync_config.enabled or not sync_config.target_bucket_id:
            return
        used_by = self.find_bucket_user(sync_config.target_bucket_id, exclude_id)
        if used_by:
            raise HTTPException(
                status_code=409,
                detail=f'The selected bucket is already being used by integration "{used_by}"',
            )

    def get_data_source(self, data_source_id: str) -> DataSourceResponse:
        """Get data source by ID"""
        try:
            result = self.supabase.table("data_sources")\
                .select("*")\
                .eq("id", data_source_id)\
                .maybe_single()\
                .execute()
            if not result or not result.data:
                raise HTTPException(status_code=404, detail="Data source not found")
            return DataSourceResponse(**result.data)
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def list_data_sources(
        self,
        organization_id: Optional[str] = None,
        source_type: Optional[str] = None,
        active: Optional[bool] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[DataSourceResponse]:
        """List data sources, newest first"""
        try:
            query = self.supabase.table("data_sources").select("*")
            if organization_id:
                query = query.eq("organization_id", organization_id)
            if source_type:
                query = query.eq("type", source_type)
            if active is not None:
                query = query.eq("active", active)
            result = query.order("created_at", desc=True).limit(limit).offset(offset).execute()
            return [DataSourceResponse(**row) for row in result.data or []]
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def update_data_source(self, data_source_id: str, data: DataSourceUpdate, user_id: str) -> DataSourceResponse:
        """Update name, active flag or any configuration blob"""
        existing = self.get_data_source(data_source_id)
        if data.name is not None and not data.name.strip():
            raise HTTPException(status_code=400, detail="Name must not be empty")

        type_config = getattr(data, config_field_for(existing.type))
        if type_config is not None:
            errors = validate_source_config(existing.type, **{config_field_for(existing.type): type_config})
            if errors:
                raise HTTPException(status_code=400, detail="; ".join(errors))
        self._ensure_bucket_available(data.sync_config, exclude_id=data_source_id)

        update_data: Dict[str, Any] = {}
        if data.name is not None:
            update_data["name"] = data.name.strip()
        if data.active is not None:
            update_data["active"] = data.active
        for field_name in _CONFIG_FIELDS:
            value = getattr(data, field_name)
            if value is not None:
                update_data[field_name] = _dump(value)

        if not update_data:
            return existing
        update_data["user_id"] = user_id
        return self.update_fields(data_source_id, update_data)

    def update_fields(self, data_source_id: str, fields: Dict[str, Any]) -> DataSourceResponse:
        """Write raw column values (sync bookkeeping included) and return the updated row"""
        try:
            payload = {**fields, "updated_at": datetime.now(timezone.utc).isoformat()}
            result = self.supabase.table("data_sources")\
                .update(payload)\
                .eq("id", data_source_id)\
                .execute()
            if not result.data:
                raise HTTPException(status_code=404, detail="Data source not found")
            return DataSourceResponse(**result.data[0])
        except HTTPException:
            raise
        except Exception as e:
            logger.error(f"Error updating data source {data_source_id}: {str(e)}")
            raise HTTPException(status_code=500, detail=str(e))

    def delete_data_source(self, data_source_id: str) -> bool:
        """Delete data source"""
        try:
            result = self.supabase.table("data_sources")\
                .delete()\
                .eq("id", data_source_id)\
                .execute()
            if not result.data:
                raise HTTPException(status_code=404, detail="Data source not found")
            logger.info(f"Deleted data source {data_source_id}")
            return True
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

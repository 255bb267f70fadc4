from fastapi import APIRouter, Depends, HTTPException
from app.database.supabase_client import get_supabase
from app.modules.data_sources.schemas import (
    DataSourceCreate, DataSourceUpdate, DataSourceResponse, DataSourceType,
    SyncRequest, SyncResult, SyncStatusResponse, TestSyncRequest,
    DatabaseConnectionTestRequest, DatabaseQueryTestRequest,
    ExtractFieldsRequest, ExtractFieldsResponse, ParseFileRequest, ParseFileResponse,
    MappingSuggestRequest, FieldMappingSuggestion, ApplyMappingRequest, ApplyMappingResponse,
    FileBrowserRequest, DirectoryListing, FileReadResponse, ApiTestRequest, ApiTestResult
)
from app.modules.data_sources.service import DataSourceService
from app.modules.data_sources.sync_service import SyncService
from app.modules.data_sources.file_browser import FileBrowserClient
from app.modules.data_sources.api_tester import ApiTester
from app.modules.data_sources.field_extraction import extract_json_fields
from app.modules.data_sources.file_parser import parse_delimited, detect_delimiter, filter_rows, chunk_rows
from app.modules.data_sources.mapping import auto_detect_mappings, apply_template_mapping
from app.core.dependencies import require_permission, check_organization_access, get_organization_id, is_super_user
from supabase import Client
from typing import Any, List, Optional, Dict

router = APIRouter(prefix="/data-sources", tags=["data-sources"])


def get_data_source_service(supabase: Client = Depends(get_supabase)) -> DataSourceService:
    return DataSourceService(supabase)


def get_sync_service(supabase: Client = Depends(get_supabase)) -> SyncService:
    return SyncService(supabase)


def get_file_browser() -> FileBrowserClient:
    return FileBrowserClient()


def get_api_tester() -> ApiTester:
    return ApiTester()


@router.get("", response_model=List[DataSourceResponse])
async def list_data_sources(
    type: Optional[DataSourceType] = None,
    active: Optional[bool] = None,
    limit: int = 50,
    offset: int = 0,
    user_data: Dict = Depends(require_permission("data_sources:read")),
    supabase: Client = Depends(get_supabase),
    service: DataSourceService = Depends(get_data_source_service),
):
    """List the organization's data sources, optionally filtered by type or active flag."""
    organization_id = None if is_super_user(user_data, supabase) else get_organization_id(user_data)
    return service.list_data_sources(
        organization_id=organization_id, source_type=type, active=active, limit=limit, offset=offset
    )


@router.post("", response_model=DataSourceResponse, status_code=201)
async def create_data_source(
    data: DataSourceCreate,
    user_data: Dict = Depends(require_permission("data_sources:create")),
    service: DataSourceService = Depends(get_data_source_service),
):
    """Create a data source from a finished wizard configuration"""
    return service.create_data_source(data, user_data["id"], get_organization_id(user_data))


# Preview helpers used by the wizard before anything is saved

@router.post("/preview/extract-fields", response_model=ExtractFieldsResponse)
async def extract_fields(
    request: ExtractFieldsRequest,
    user_data: Dict = Depends(require_permission("data_sources:read")),
):
    """List every bindable field path of a JSON sample."""
    return ExtractFieldsResponse(fields=extract_json_fields(request.data, request.prefix))


@router.post("/preview/parse-file", response_model=ParseFileResponse)
async def parse_file(
    request: ParseFileRequest,
    user_data: Dict = Depends(require_permission("data_sources:read")),
):
    """
    Parse a delimited sample the way a file sync would: skip lines before the
    header row, apply filters, then group rows into chunks when asked.
    """
    config = request.file_config
    content = request.content or (config.file_content if config else None) or ""
    if config is not None:
        delimiter = request.delimiter or (config.delimiter if "delimiter" in config.model_fields_set else None)
        has_headers, header_row_number = config.has_headers, config.header_row_number
        custom_headers = config.custom_headers
        filters, filter_logic = config.effective_filters(), config.filter_logic
        chunk_size = config.chunk_size if config.chunk_mode else None
    else:
        delimiter = request.delimiter
        has_headers, header_row_number = request.has_headers, request.header_row_number
        custom_headers = request.custom_headers
        filters, filter_logic = request.filters, request.filter_logic
        chunk_size = request.chunk_size
    if not content.strip():
        raise HTTPException(status_code=400, detail="File content is empty")
    try:
        delimiter = delimiter or detect_delimiter(content)
        parsed = parse_delimited(
            content,
            delimiter=delimiter,
            has_headers=has_headers,
            header_row_number=header_row_number,
            custom_headers=custom_headers,
        )
        rows = filter_rows(parsed.rows, filters, filter_logic)
        preview_rows = rows[:request.preview] if request.preview else rows
        chunks = chunk_rows(preview_rows, chunk_size) if chunk_size else None
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return ParseFileResponse(
        headers=parsed.headers,
        rows=preview_rows,
        total_rows=len(rows),
        delimiter=delimiter,
        chunks=chunks,
    )


@router.post("/preview/suggest-mappings", response_model=List[FieldMappingSuggestion])
async def suggest_mappings(
    request: MappingSuggestRequest,
    user_data: Dict = Depends(require_permission("data_sources:read")),
):
    """Suggest a source column for each template field by name similarity."""
    return auto_detect_mappings(request.source_columns, request.template_fields, request.threshold)


@router.post("/preview/apply-mapping", response_model=ApplyMappingResponse)
async def apply_mapping(
    request: ApplyMappingRequest,
    user_data: Dict = Depends(require_permission("data_sources:read")),
):
    return ApplyMappingResponse(payload=apply_template_mapping(request.data, request.mapping))


@router.post("/test-configuration")
async def test_configuration(
    request: TestSyncRequest,
    user_data: Dict = Depends(require_permission("data_sources:test")),
    sync_service: SyncService = Depends(get_sync_service),
) -> Dict[str, Any]:
    """Dry-run an unsaved configuration through the test edge functions"""
    return sync_service.test_sync_configuration(request.config)


@router.post("/test-api", response_model=ApiTestResult)
async def test_api_connection(
    request: ApiTestRequest,
    user_data: Dict = Depends(require_permission("data_sources:test")),
    tester: ApiTester = Depends(get_api_tester),
):
    """
    Call an unsaved API configuration with its auth applied and list the
    fields found under its data path.
    """
    return tester.test(request.config)


@router.post("/test-connection")
async def test_database_connection(
    request: DatabaseConnectionTestRequest,
    user_data: Dict = Depends(require_permission("data_sources:test")),
    sync_service: SyncService = Depends(get_sync_service),
) -> Dict[str, Any]:
    return sync_service.test_database_connection(request.connection, request.db_type)


@router.post("/test-query")
async def test_database_query(
    request: DatabaseQueryTestRequest,
    user_data: Dict = Depends(require_permission("data_sources:test")),
    sync_service: SyncService = Depends(get_sync_service),
) -> Dict[str, Any]:
    return sync_service.test_database_query(request.connection, request.sql, request.db_type)


@router.post("/files/list", response_model=DirectoryListing)
async def list_files(
    request: FileBrowserRequest,
    user_data: Dict = Depends(require_permission("data_sources:read")),
    browser: FileBrowserClient = Depends(get_file_browser),
):
    """Browse the file server for a file source path"""
    return browser.list_directory(request.relative_path)


@router.post("/files/read", response_model=FileReadResponse)
async def read_file(
    request: FileBrowserRequest,
    user_data: Dict = Depends(require_permission("data_sources:read")),
    browser: FileBrowserClient = Depends(get_file_browser),
):
    """Read a file from the file server along with its detected layout"""
    return browser.read_file(request.relative_path)


@router.get("/{data_source_id}", response_model=DataSourceResponse)
async def get_data_source(
    data_source_id: str,
    user_data: Dict = Depends(require_permission("data_sources:read")),
    supabase: Client = Depends(get_supabase),
    service: DataSourceService = Depends(get_data_source_service),
):
    """Get data source by ID"""
    check_organization_access("data_sources", data_source_id, user_data, supabase)
    return service.get_data_source(data_source_id)


@router.put("/{data_source_id}", response_model=DataSourceResponse)
async def update_data_source(
    data_source_id: str,
    data: DataSourceUpdate,
    user_data: Dict = Depends(require_permission("data_sources:update")),
    supabase: Client = Depends(get_supabase),
    service: DataSourceService = Depends(get_data_source_service),
):
    """Update data source"""
    check_organization_access("data_sources", data_source_id, user_data, supabase)
    return service.update_data_source(data_source_id, data, user_data["id"])


@router.delete("/{data_source_id}", status_code=204)
async def delete_data_source(
    data_source_id: str,
    user_data: Dict = Depends(require_permission("data_sources:delete")),
    supabase: Client = Depends(get_supabase),
    service: DataSourceService = Depends(get_data_source_service),
):
    """Delete data source"""
    check_organization_access("data_sources", data_source_id, user_data, supabase)
    service.delete_data_source(data_source_id)
    return None


@router.post("/{data_source_id}/sync", response_model=SyncResult)
async def trigger_sync(
    data_source_id: str,
    request: Optional[SyncRequest] = None,
    user_data: Dict = Depends(require_permission("data_sources:sync")),
    supabase: Client = Depends(get_supabase),
    sync_service: SyncService = Depends(get_sync_service),
):
    """Run a sync now"""
    check_organization_access("data_sources", data_source_id, user_data, supabase)
    force = request.force if request else False
    return sync_service.trigger_manual_sync(data_source_id, force=force)


@router.post("/{data_source_id}/sync/reset", response_model=DataSourceResponse)
async def reset_stuck_sync(
    data_source_id: str,
    user_data: Dict = Depends(require_permission("data_sources:sync")),
    supabase: Client = Depends(get_supabase),
    sync_service: SyncService = Depends(get_sync_service),
):
    """Reset a sync that has been stuck in the running state"""
    check_organization_access("data_sources", data_source_id, user_data, supabase)
    return sync_service.reset_stuck_sync(data_source_id)


@router.get("/{data_source_id}/sync/status", response_model=SyncStatusResponse)
async def get_sync_status(
    data_source_id: str,
    user_data: Dict = Depends(require_permission("data_sources:read")),
    supabase: Client = Depends(get_supabase),
    sync_service: SyncService = Depends(get_sync_service),
):
    check_organization_access("data_sources", data_source_id, user_data, supabase)
    return sync_service.get_sync_status(data_source_id)

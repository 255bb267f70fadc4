from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel
from typing import Optional, Dict, Any, List, Literal, Union, Annotated
from datetime import datetime, timedelta


DataSourceType = Literal["api", "rss", "database", "file"]
SyncStatus = Literal["idle", "pending", "running", "success", "error", "scheduled", "ready"]
AuthType = Literal["none", "basic", "bearer", "api_key_header", "api_key_query", "oauth2", "hmac", "custom"]
FilterOperator = Literal["==", "!=", "contains", "startsWith", "endsWith", "in", "notIn"]

_INTERVAL_UNITS = {
    "seconds": timedelta(seconds=1),
    "minutes": timedelta(minutes=1),
    "hours": timedelta(hours=1),
    "days": timedelta(days=1),
}


class CamelBlob(BaseModel):
    """JSON blob stored with camelCase keys; accepts either spelling on input."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")


class FilterCondition(CamelBlob):
    field: str
    operator: FilterOperator = "=="
    value: str = ""


class FileConfig(CamelBlob):
    source: Literal["upload", "url", "path"] = "upload"
    url: Optional[str] = None
    path: Optional[str] = None
    file_name: Optional[str] = None
    format: Optional[Literal["csv", "tsv", "txt", "json"]] = None
    delimiter: str = ","
    has_headers: bool = True
    header_row_number: int = Field(default=1, ge=1)
    encoding: Optional[str] = None
    headers: Optional[List[str]] = None
    custom_headers: Optional[List[str]] = None
    total_rows: Optional[int] = None

    chunk_mode: bool = False
    chunk_size: Optional[int] = Field(default=None, ge=1)

    filter_enabled: bool = False
    filters: List[FilterCondition] = Field(default_factory=list)
    filter_logic: Literal["AND", "OR"] = "AND"

    # Single-filter shape from older configs
    filter_field: Optional[str] = None
    filter_operator: Optional[FilterOperator] = None
    filter_value: Optional[str] = None

    # Wizard-only preview data, never persisted
    file_content: Optional[str] = Field(default=None, exclude=True)
    sample: Optional[List[Dict[str, Any]]] = Field(default=None, exclude=True)

    def effective_filters(self) -> List[FilterCondition]:
        if not self.filter_enabled:
            return []
        if self.filters:
            return list(self.filters)
        if self.filter_field:
            return [FilterCondition(
                field=self.filter_field,
                operator=self.filter_operator or "==",
                value=self.filter_value or "",
            )]
        return []


class SyncConfig(CamelBlob):
    enabled: bool = False
    interval: Optional[int] = Field(default=None, ge=1)
    interval_unit: Literal["seconds", "minutes", "hours", "days"] = "minutes"
    target_bucket_id: Optional[str] = None
    last_sync: Optional[str] = None
    sync_mode: Literal["update", "replace"] = "update"
    chunk_mode: bool = False
    chunk_size: Optional[int] = Field(default=None, ge=1)

    def interval_timedelta(self) -> Optional[timedelta]:
        if not self.enabled or not self.interval:
            return None
        return _INTERVAL_UNITS[self.interval_unit] * self.interval


class AuthConfig(BaseModel):
    model_config = ConfigDict(extra="allow")

    username: Optional[str] = None
    password: Optional[str] = None
    token: Optional[str] = None
    refresh_token: Optional[str] = None
    token_endpoint: Optional[str] = None
    client_id: Optional[str] = None
    client_secret: Optional[str] = None
    api_key: Optional[str] = None
    key_header_name: Optional[str] = None
    key_param_name: Optional[str] = None
    secret_key: Optional[str] = None
    signature_header: Optional[str] = None
    signature_algorithm: Literal["sha256", "sha512"] = "sha256"
    include_timestamp: bool = False
    include_nonce: bool = False
    custom_headers: Dict[str, str] = Field(default_factory=dict)
    custom_params: Dict[str, str] = Field(default_factory=dict)


class ApiConfig(BaseModel):
    model_config = ConfigDict(extra="allow")

    url: Optional[str] = None
    method: Literal["GET", "POST", "PUT", "DELETE", "PATCH"] = "GET"
    headers: Dict[str, str] = Field(default_factory=dict)
    body: Optional[str] = None
    timeout: Optional[int] = None
    auth_type: AuthType = "none"
    auth_config: AuthConfig = Field(default_factory=AuthConfig)

    data_path: Optional[str] = None
    pagination_enabled: bool = False
    page_param: Optional[str] = None
    limit_param: Optional[str] = None
    page_size: Optional[int] = None

    extracted_fields: Optional[List[str]] = None
    sample_response: Optional[Any] = None
    last_test_at: Optional[str] = None
    last_test_status: Optional[Literal["success", "error"]] = None


class RssConfig(CamelBlob):
    url: Optional[str] = None
    feed_type: Literal["rss", "atom"] = "rss"
    refresh_interval: Optional[int] = None
    max_items: Optional[int] = None
    extracted_fields: Optional[List[str]] = None
    sample_items: Optional[List[Dict[str, Any]]] = Field(default=None, exclude=True)


class DatabaseConnection(CamelBlob):
    id: Optional[str] = None
    name: Optional[str] = None
    host: str = ""
    port: Optional[int] = None
    database: str = ""
    username: str = ""
    password: str = ""
    db_schema: Optional[str] = Field(default=None, alias="schema")
    ssl: bool = False

    def is_complete(self) -> bool:
        return bool(self.host.strip() and self.database.strip() and self.username.strip())


class SimpleQuery(CamelBlob):
    id: Optional[str] = Field(default=None, exclude=True)
    name: str = ""
    mode: Literal["simple"] = "simple"
    connection_id: str = ""
    sql: str = ""
    type: Literal["raw", "builder"] = "raw"


class ParentQuery(CamelBlob):
    connection_id: str = ""
    sql: str = ""
    parameters: Optional[List[Any]] = None


class ChildQuery(CamelBlob):
    connection_id: str = ""
    sql: str = ""
    parent_key_field: str = ""
    limit_field: Optional[str] = None
    max_results: Optional[int] = None


class ParentChildQuery(CamelBlob):
    id: Optional[str] = Field(default=None, exclude=True)
    name: str = ""
    mode: Literal["parent-child"] = "parent-child"
    parent_query: ParentQuery = Field(default_factory=ParentQuery)
    child_query: ChildQuery = Field(default_factory=ChildQuery)
    template_selection: Dict[str, Any] = Field(default_factory=dict)
    field_mappings: Dict[str, Any] = Field(default_factory=dict)


DatabaseQuery = Annotated[Union[SimpleQuery, ParentChildQuery], Field(discriminator="mode")]


class DatabaseConfig(CamelBlob):
    db_type: Optional[str] = None
    connections: Dict[str, DatabaseConnection] = Field(default_factory=dict)
    queries: Dict[str, DatabaseQuery] = Field(default_factory=dict)
    conditional_mappings: Optional[List[Dict[str, Any]]] = None

    def has_parent_child_queries(self) -> bool:
        return any(q.mode == "parent-child" for q in self.queries.values())


class CombinedFields(CamelBlob):
    fields: List[str]
    template: str


class FieldMappingEntry(CamelBlob):
    template_field: str
    source_column: Union[str, int] = ""
    row_index: Optional[int] = Field(default=None, ge=0)
    combined_fields: Optional[CombinedFields] = None


class TemplateMapping(CamelBlob):
    template_id: Optional[str] = None
    field_mappings: List[FieldMappingEntry] = Field(default_factory=list)


_CONFIG_FIELD_BY_TYPE = {
    "api": "api_config",
    "rss": "rss_config",
    "database": "database_config",
    "file": "file_config",
}


def config_field_for(source_type: str) -> str:
    return _CONFIG_FIELD_BY_TYPE[source_type]


class DataSourceCreate(BaseModel):
    name: str
    type: DataSourceType
    active: bool = True
    api_config: Optional[ApiConfig] = None
    rss_config: Optional[RssConfig] = None
    database_config: Optional[DatabaseConfig] = None
    file_config: Optional[FileConfig] = None
    sync_config: Optional[SyncConfig] = None
    template_mapping: Optional[TemplateMapping] = None

    @model_validator(mode="after")
    def require_config_for_type(self):
        if getattr(self, config_field_for(self.type)) is None:
            raise ValueError(f"{config_field_for(self.type)} is required for {self.type} data sources")
        return self


class DataSourceUpdate(BaseModel):
    name: Optional[str] = None
    active: Optional[bool] = None
    api_config: Optional[ApiConfig] = None
    rss_config: Optional[RssConfig] = None
    database_config: Optional[DatabaseConfig] = None
    file_config: Optional[FileConfig] = None
    sync_config: Optional[SyncConfig] = None
    template_mapping: Optional[TemplateMapping] = None


class DataSourceResponse(BaseModel):
    id: str
    name: str
    type: DataSourceType
    active: bool = True
    organization_id: Optional[str] = None
    user_id: Optional[str] = None
    api_config: Optional[Dict[str, Any]] = None
    rss_config: Optional[Dict[str, Any]] = None
    database_config: Optional[Dict[str, Any]] = None
    file_config: Optional[Dict[str, Any]] = None
    sync_config: Optional[Dict[str, Any]] = None
    template_mapping: Optional[Dict[str, Any]] = None
    sync_status: Optional[SyncStatus] = "idle"
    last_sync_at: Optional[datetime] = None
    next_sync_at: Optional[datetime] = None
    last_sync_count: Optional[int] = None
    last_sync_error: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class SyncRequest(BaseModel):
    force: bool = False


class SyncResult(BaseModel):
    success: bool = True
    items_processed: int = 0
    message: str


class SyncStatusResponse(BaseModel):
    status: SyncStatus = "idle"
    last_sync: Optional[datetime] = None
    next_sync: Optional[datetime] = None
    last_error: Optional[str] = None
    is_stuck: bool = False


class TestSyncRequest(BaseModel):
    config: Dict[str, Any]


class DatabaseConnectionTestRequest(BaseModel):
    connection: DatabaseConnection
    db_type: str = "mysql"


class DatabaseQueryTestRequest(BaseModel):
    connection: DatabaseConnection
    sql: str
    db_type: str = "mysql"


class ExtractFieldsRequest(BaseModel):
    data: Any = None
    prefix: str = ""


class ExtractFieldsResponse(BaseModel):
    fields: List[str]


class ParseFileRequest(BaseModel):
    content: str = ""
    # A saved or in-progress file source config; its layout, filters and chunking win over the fields below
    file_config: Optional[FileConfig] = None
    delimiter: Optional[str] = None  # auto-detected when omitted
    has_headers: bool = True
    header_row_number: int = Field(default=1, ge=1)
    preview: Optional[int] = Field(default=10, ge=1)
    custom_headers: Optional[List[str]] = None
    filters: List[FilterCondition] = Field(default_factory=list)
    filter_logic: Literal["AND", "OR"] = "AND"
    chunk_size: Optional[int] = Field(default=None, ge=1)


class ParseFileResponse(BaseModel):
    headers: List[str]
    rows: List[Dict[str, Any]]
    total_rows: int
    delimiter: str
    chunks: Optional[List[List[Dict[str, Any]]]] = None


class MappingSuggestRequest(BaseModel):
    source_columns: List[str]
    template_fields: List[str]
    threshold: float = 50


class FieldMappingSuggestion(BaseModel):
    template_field: str
    source_column: str
    confidence: float


class FileEntry(BaseModel):
    name: str
    path: str
    type: Literal["file", "directory"]
    size: Optional[int] = None
    modified: Optional[str] = None
    extension: Optional[str] = None


class DirectoryListing(BaseModel):
    path: str
    entries: List[FileEntry]


class FileReadResponse(BaseModel):
    path: str
    content: str
    metadata: Dict[str, Any] = Field(default_factory=dict)
    size: Optional[int] = None
    modified: Optional[str] = None


class FileBrowserRequest(BaseModel):
    relative_path: str = ""


class ApplyMappingRequest(BaseModel):
    data: Union[Dict[str, Any], List[Dict[str, Any]]]
    mapping: TemplateMapping


class ApplyMappingResponse(BaseModel):
    payload: Dict[str, Any]


class ApiTestRequest(BaseModel):
    config: Dict[str, Any]


class ApiTestResult(BaseModel):
    success: bool = True
    status: int
    fields: List[str]
    record_count: int
    sample: List[Dict[str, Any]] = Field(default_factory=list)

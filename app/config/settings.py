from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional, List


class Settings(BaseSettings):
    # Supabase
    supabase_url: str = ""
    supabase_key: str = ""
    supabase_service_role_key: Optional[str] = None  # Required for background sync and admin operations

    # AWS S3 for texture storage (falls back to Supabase Storage when unset)
    aws_access_key_id: Optional[str] = None
    aws_secret_access_key: Optional[str] = None
    aws_region: str = "us-east-1"
    s3_bucket_name: Optional[str] = None

    # Generative image provider
    gemini_api_key: Optional[str] = None
    gemini_api_base_url: str = "https://generativelanguage.googleapis.com/v1beta"
    image_model: str = "gemini-2.5-flash-image"
    image_endpoint: str = "generateContent"  # generateContent | generateImages
    image_request_timeout: float = 120.0

    # Local file-listing sidecar
    file_server_url: Optional[str] = None
    file_server_timeout: float = 30.0

    # API source connection tests
    api_test_timeout: float = 15.0

    # Sync
    sync_scheduler_enabled: bool = False
    sync_scheduler_interval_seconds: int = 60
    stuck_sync_threshold_seconds: int = 300

    # App
    app_name: str = "pulsar-backend"
    debug: bool = False
    environment: str = "development"  # development | staging | production
    log_level: str = "INFO"
    cors_origins: str = "http://localhost:3000,http://localhost:5173,http://127.0.0.1:3000,http://127.0.0.1:5173"
    rate_limit: str = "100/minute"  # slowapi format, e.g. "100/minute"

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    def get_cors_origins_list(self) -> List[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        env_prefix="",  # No prefix needed
        extra="ignore"
    )


settings = Settings()

"""Application configuration loaded from environment variables."""

from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Central settings pulled from .env / environment."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Warehouse
    google_cloud_project_id: str | None = None
    google_application_credentials_json: str | None = None
    """Service-account JSON, either raw or base64-encoded."""

    fixture_project_id: str = "hockey-data-analysis"
    """Project named in the query text echoed by fixture responses."""

    bq_location: str = "US"
    query_timeout_seconds: float = 60.0
    count_timeout_seconds: float = 30.0

    # Paging / editing
    default_page_size: int = 100
    max_page_size: int = 10_000
    export_max_rows: int = 10_000
    key_column: str = "id"

    # App
    app_env: str = "development"
    app_version: str = "0.1.0"
    log_level: str = "INFO"

    # HTTP
    api_host: str = "0.0.0.0"
    api_port: int = 3001

    # Security headers / CORS
    enable_security_headers: bool = True
    allowed_origins: str = "*"
    """Comma-separated list of allowed CORS origins. Use '*' only in development."""

    @property
    def has_credentials(self) -> bool:
        return bool(self.google_cloud_project_id and self.google_application_credentials_json)


settings = Settings()

"""Core configuration management using pydantic-settings."""
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Selector settings loaded from environment variables (``SELECTOR_`` prefix)."""

    model_config = SettingsConfigDict(
        env_prefix="SELECTOR_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Environment
    environment: str = "development"

    # Conventional column names
    created_at_column: str = "created_at"
    updated_at_column: str = "updated_at"
    deleted_at_column: str = "deleted_at"

    # Pagination
    max_page_size: int = 1000
    pagination_path: str = "/"
    page_query_param: str = "page"

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"

    # OpenTelemetry
    otel_enabled: bool = False
    otel_exporter_otlp_endpoint: str = "http://localhost:4317"
    otel_service_name: str = "dataselector"

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment.lower() == "production"


# Global settings instance
settings = Settings()

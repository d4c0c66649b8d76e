"""Configuration management using pydantic-settings."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings for the image conversion service."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # API Settings
    api_title: str = "Image Convert Service"
    api_version: str = "1.0.0"
    api_description: str = "Converts uploaded images between formats"
    port: int = 8000
    log_level: str = "INFO"

    # Security
    api_key: str | None = None  # Bearer token required on every route but "/"
    admin_access_token: str | None = None  # Required on admin routes
    cors_origins: list[str] = []

    # Admission and upload limits
    max_memory_mb: int = 512
    max_files: int = 5
    max_file_size_mb: int = 10

    # Conversion
    max_pixels: int = 4000 * 4000
    max_concurrent_conversions: int = 1
    conversion_timeout_seconds: float | None = None  # None disables the deadline
    zip_compression_level: int = 3

    # Resource log
    resource_log_interval_seconds: float = 5.0
    resource_log_duration_seconds: float = 60.0
    resource_log_max_entries: int = 720
    log_dir: str = "log"
    log_dump_delay_seconds: float = 10.0

    @property
    def max_memory_bytes(self) -> int:
        return self.max_memory_mb * 1024 * 1024

    @property
    def max_file_size_bytes(self) -> int:
        return self.max_file_size_mb * 1024 * 1024


# Global settings instance
settings = Settings()

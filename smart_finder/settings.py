"""
Smart Finder settings.

Values come from environment variables or a .env file in the working
directory; everything has a usable default for a local single-user install.
"""
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # Application
    APP_NAME: str = "Smart Finder"
    VERSION: str = "1.0.0"
    ENVIRONMENT: str = "development"

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "%(asctime)s | %(levelname)-8s | %(name)s - %(message)s"

    # Database: sqlite:///path or postgresql://...
    DATABASE_URL: str = "sqlite:///data/md5fs.db"
    FILES_TABLE_NAME: str = "files"

    # Reconciliation
    SCAN_INTERVAL_SECONDS: int = Field(default=3600, gt=0)
    SCAN_BATCH_SIZE: int = Field(default=500, gt=0)
    SCAN_MAX_CONCURRENCY: int = Field(default=2, gt=0)  # workers per batch
    HASH_CHUNK_SIZE: int = Field(default=4 * 1024 * 1024, gt=0)

    # Live watcher
    WATCHER_ENABLED: bool = True

    # API
    API_HOST: str = "127.0.0.1"
    API_PORT: int = 8964


settings = Settings()

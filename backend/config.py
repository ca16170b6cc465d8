import os
from typing import List, Optional

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_ALLOWED_FILE_TYPES = [
    "video/mp4",
    "video/avi",
    "video/quicktime",
    "video/x-msvideo",
    "application/pdf",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "image/jpeg",
    "image/png",
    "image/gif",
    "image/webp",
    "text/plain",
]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=[".env", "../.env"], env_file_encoding="utf-8", extra="ignore"
    )

    # Redis Configuration (change notifications)
    REDIS_URL: str = "redis://localhost:6379/0"
    EVENTS_CHANNEL: str = "taskflow_events"

    # PostgreSQL Database Configuration
    POSTGRES_DB: str = "taskflow"
    POSTGRES_USER: str = "taskflow"
    POSTGRES_PASSWORD: str = "taskflow_dev_password"
    POSTGRES_PORT: int = 5432
    POSTGRES_HOST: Optional[str] = None

    # Constructed from the PostgreSQL variables unless set explicitly
    SQLALCHEMY_DATABASE_URL: Optional[str] = None
    CREATE_TABLES: bool = False

    # Logging Configuration
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = True  # Set to False for human-readable console output during development

    # Submission file policy
    UPLOAD_DIR: str = "uploads"
    MAX_UPLOAD_SIZE_MB: int = 50
    ALLOWED_FILE_TYPES: List[str] = DEFAULT_ALLOWED_FILE_TYPES
    DEFAULT_MAX_FILES: int = 10

    # Optimistic concurrency
    WORKFLOW_CONFLICT_RETRIES: int = 3

    # HTTP
    CORS_ORIGINS: str = "http://localhost:3000,http://localhost:5173"
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    @model_validator(mode="after")
    def compute_urls(self):
        """Compute SQLALCHEMY_DATABASE_URL if not explicitly provided"""
        host = self.POSTGRES_HOST or ("postgres" if self._is_running_in_docker() else "localhost")

        if not self.SQLALCHEMY_DATABASE_URL:
            self.SQLALCHEMY_DATABASE_URL = (
                f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
                f"@{host}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
            )

        return self

    def _is_running_in_docker(self) -> bool:
        """Detect if running inside Docker container."""
        try:
            return os.getcwd().startswith('/app') or os.path.exists('/.dockerenv')
        except OSError:
            return False

    @property
    def max_upload_size_bytes(self) -> int:
        return self.MAX_UPLOAD_SIZE_MB * 1024 * 1024

    @property
    def cors_origins(self) -> List[str]:
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]


settings = Settings()

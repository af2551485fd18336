from pydantic_settings import BaseSettings
from typing import Optional
from functools import lru_cache


class Settings(BaseSettings):
    """Application configuration settings."""

    # Application
    APP_NAME: str = "DataLens - Tabular Dataset Profiler"
    APP_VERSION: str = "0.1.0"
    DEBUG: bool = False
    API_PREFIX: str = "/api/v1"
    LOG_LEVEL: str = "INFO"

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    CORS_ORIGINS: str = "http://localhost:3000,http://localhost:5173"

    # Data Directory (JSON dataset store + local blob store)
    DATA_DIR: str = "/app/data"

    # Uploads
    MAX_FILE_SIZE_MB: int = 50

    # Profiling
    PROFILING_WORKERS: int = 4
    PROFILING_TIMEOUT_SECONDS: Optional[float] = None  # No timeout when unset

    # Blob storage
    BLOB_BACKEND: str = "local"  # "local" or "s3"
    S3_ENDPOINT_URL: Optional[str] = None
    S3_ACCESS_KEY_ID: Optional[str] = None
    S3_SECRET_ACCESS_KEY: Optional[str] = None
    S3_REGION: str = "us-east-1"
    S3_BUCKET: str = "datasets"
    PRESIGNED_URL_TTL_SECONDS: int = 3600

    # Preview
    PREVIEW_DEFAULT_LIMIT: int = 10
    PREVIEW_MAX_LIMIT: int = 1000

    @property
    def max_file_size_bytes(self) -> int:
        return self.MAX_FILE_SIZE_MB * 1024 * 1024

    class Config:
        env_file = ".env"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    return Settings()


settings = get_settings()

from functools import lru_cache
from typing import List, Optional
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Global settings for the subscription tracker.
    Values are read from the environment and from the .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Project
    project_name: str = "SubTrack API"
    api_v1_str: str = "/api/v1"
    debug: bool = False

    # Security / JWT
    secret_key: str = "changeme"
    access_token_expire_minutes: int = 60
    refresh_token_expire_minutes: int = 10080
    algorithm: str = "HS256"

    # Database
    database_url: str = "sqlite:///./subtrack.db"

    # Logging
    log_level: str = "INFO"
    log_file: Optional[str] = None

    # S3 / MinIO storage
    s3_endpoint_url: Optional[str] = None
    s3_access_key: Optional[str] = None
    s3_secret_key: Optional[str] = None
    s3_bucket_files: str = "subtrack-files"

    # Local storage
    subtrack_storage: str = "_storage"

    # CORS
    allowed_origins: List[str] = [
        "http://localhost:5173",
        "http://127.0.0.1:5173",
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

    # Workflow limits
    bulk_max_items: int = 100
    bulk_batch_size: int = 50
    export_batch_size: int = 1000
    renewal_reminder_days: int = 10
    reject_comment_min_length: int = 10
    proof_of_payment_max_bytes: int = 10 * 1024 * 1024
    invoice_max_bytes: int = 50 * 1024 * 1024

    # Pagination
    default_page_size: int = 20
    max_page_size: int = 100


@lru_cache
def get_settings() -> Settings:
    """Return the cached global settings instance."""
    return Settings()


settings = get_settings()

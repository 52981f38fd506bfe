from __future__ import annotations

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="APP_",
        extra="ignore",
        case_sensitive=False,
    )

    # Application
    debug: bool = False
    log_level: str = "INFO"

    # API
    api_prefix: str = "/api/v1"
    cors_origins: list[str] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

    cors_origin_regex: str | None = None
    trusted_hosts: list[str] = ["*"]
    root_path: str = ""

    # Supabase
    supabase_url: str
    supabase_anon_key: str
    supabase_service_role_key: str

    profiles_table: str = "profiles"
    items_table: str = "items"
    item_images_table: str = "item_images"
    image_bucket: str = "item-images"

    # Upstream timeouts (seconds)
    identity_timeout_seconds: float = 10.0
    database_timeout_seconds: float = 10.0
    storage_timeout_seconds: float = 30.0

    # Image ingestion
    image_max_bytes: int = 5 * 1024 * 1024
    image_max_dimension: int = 1920  # 0 disables downscaling
    image_allowed_mime_types: list[str] = [
        "image/jpeg",
        "image/png",
        "image/webp",
        "image/gif",
    ]
    max_images_per_item: int = 5

    # Listing
    items_default_limit: int = 50
    items_max_limit: int = 100


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Build settings once per process; pass the result explicitly downstream."""
    return Settings()

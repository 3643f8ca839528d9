import os
from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    # Raindrop.io
    RAINDROP_TOKEN: Optional[str] = None
    RAINDROP_BASE_URL: str = "https://api.raindrop.io/rest/v1"
    PAGINATION_SIZE: int = 50  # API maximum per page

    # Cache
    CACHE_PATH: str = os.path.join(os.path.expanduser("~"), ".cache", "raindrop-sync", "bookmarks.json")
    CACHE_EXPIRATION_SECONDS: int = 3600  # 1h
    METADATA_CHECK_INTERVAL_SECONDS: int = 60

    # Background updates
    PRELOAD: bool = True
    PRELOAD_DELAY_SECONDS: float = 1.0
    AUTO_UPDATE_INTERVAL_SECONDS: int = 300  # 0 disables

    # System
    LOG_LEVEL: str = "INFO"
    HTTP_SERVER_ENABLED: bool = False
    HTTP_SERVER_HOST: str = "127.0.0.1"
    HTTP_SERVER_PORT: int = 8080
    HTTP_SERVER_TOKEN: Optional[str] = None
    REQUEST_TIMEOUT_SECONDS: int = 30

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore"
    )

settings = Settings()

from typing import Literal

from pydantic_settings import BaseSettings


class Config(BaseSettings):
    """Application configuration loaded from environment variables."""

    api_base_url: str = "http://localhost:5000"  # Remote notes REST service
    api_timeout_seconds: float = 15.0
    auth_token: str | None = None  # Bearer token to start with an authenticated session (optional)
    storage_backend: Literal["memory", "file", "mongo"] = "file"
    storage_path: str = ".draggynotes"  # Directory for the file backend
    database_url: str = "mongodb://localhost:27017/draggynotes"  # Used by the mongo backend only
    storage_prefix: str = "draggy-notes"  # Namespace for every storage key
    sync_interval_seconds: float = 300.0
    retry_delay_seconds: float = 60.0  # Minimum age of a retry item before it is moved back to primary
    max_retry_attempts: int = 3
    max_recent_errors: int = 20
    sync_batch_size: int = 50
    auto_sync: bool = True
    queue_when_unauthenticated: bool = False  # Queue local edits even before the first login
    host: str = "127.0.0.1"
    port: int = 3100
    debug: bool = False
    log_level: str = "INFO"
    log_format: Literal["console", "json"] = "json"  # debug always renders to the console
    cors_origins: list[str] = []

    model_config = {
        "env_file": [".env"],
        "env_prefix": "DRAGGYNOTES_",
        "extra": "ignore",
    }

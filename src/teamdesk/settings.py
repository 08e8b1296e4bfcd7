"""Process configuration via environment variables."""

from typing import Literal

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Storage
    store_backend: Literal["memory", "sqlite"] = "sqlite"
    database_path: str = ".teamdesk/teamdesk.db"

    # Real-time channel (in-process when unset)
    redis_url: str | None = None
    channel_prefix: str = "teamdesk:notifications"

    # Logging
    log_level: str = "INFO"
    log_format: Literal["json", "console"] = "json"

    model_config = {
        "env_prefix": "TEAMDESK_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

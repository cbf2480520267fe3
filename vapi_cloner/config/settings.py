from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    vapi_base_url: str = "https://api.vapi.ai"

    log_level: str = "INFO"
    timeout: int = 30

    # Retry policy for transient platform failures (5xx, 429, network)
    retry_max_attempts: int = Field(default=3, ge=1)
    retry_base_delay: float = Field(default=1.0, ge=0)
    retry_backoff_multiplier: float = Field(default=2.0, ge=1)

    # 32-byte AES key, hex encoded
    master_key: Optional[str] = None
    database_url: str = "sqlite:///vapi_cloner.db"

    templates_dir: str = "data"
    tool_template_file: str = "template-tool.json"
    assistant_template_file: str = "template-assistant.json"

    # Overall deadline for one reconciliation run, in seconds
    clone_timeout: float = Field(default=60.0, gt=0)

    def __init__(self, **kwargs):
        # Prefer a .env file in the current working directory
        cwd_env = Path.cwd() / ".env"

        if cwd_env.exists():
            super().__init__(_env_file=str(cwd_env), **kwargs)
        else:
            super().__init__(**kwargs)


@lru_cache()
def get_settings() -> Settings:
    """Return the process-wide settings, loaded once."""
    return Settings()

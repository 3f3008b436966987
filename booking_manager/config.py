import os
from datetime import timedelta
from typing import Optional

from pydantic import BaseModel

from .store import DEFAULT_RETENTION


class Settings(BaseModel):
    host: str = os.getenv("HOST", "0.0.0.0")
    port: int = int(os.getenv("PORT", "3000"))
    http_password: Optional[str] = os.getenv("HTTP_PASSWORD")
    supabase_url: Optional[str] = os.getenv("SUPABASE_URL")
    supabase_key: Optional[str] = os.getenv("SUPABASE_KEY")
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    # Not configurable through the environment.
    retention: timedelta = DEFAULT_RETENTION
    connect_retry_seconds: float = 1.0

    @property
    def database_configured(self) -> bool:
        return bool(self.supabase_url and self.supabase_key)


"""Settings loader.

Values come from environment variables, optionally seeded from a `.env` file.
Nothing secret is stored in code.
"""

from __future__ import annotations

import os
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError

from .errors import ConfigError

DEFAULT_TIMEOUT_S = 10.0


class Settings(BaseModel):
    supabase_url: str = ""
    supabase_anon_key: str = ""
    supabase_access_token: Optional[str] = Field(default=None, description="User JWT; falls back to the anon key.")
    gateway_timeout_s: float = Field(default=DEFAULT_TIMEOUT_S, gt=0)
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, dotenv_path: Optional[str] = None) -> "Settings":
        """Build settings from the process environment after loading `.env`."""
        load_dotenv(dotenv_path)
        try:
            return cls(
                supabase_url=os.getenv("SUPABASE_URL", ""),
                supabase_anon_key=os.getenv("SUPABASE_ANON_KEY", ""),
                supabase_access_token=os.getenv("SUPABASE_ACCESS_TOKEN") or None,
                gateway_timeout_s=os.getenv("LISTING_GATEWAY_TIMEOUT_S", DEFAULT_TIMEOUT_S),
                log_level=os.getenv("LISTING_LOG_LEVEL", "INFO").upper(),
            )
        except ValidationError as exc:
            raise ConfigError(f"Invalid settings: {exc}") from exc

    def require_backend(self) -> None:
        missing = [
            name
            for name, value in (("SUPABASE_URL", self.supabase_url), ("SUPABASE_ANON_KEY", self.supabase_anon_key))
            if not value
        ]
        if missing:
            raise ConfigError(f"Missing backend settings: {', '.join(missing)}")

from __future__ import annotations

from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="HTTPTOOL_", env_file=".env", extra="ignore")

    # Request defaults (a tool config may override each of these)
    timeout_ms: int = Field(default=10000, ge=1)
    follow_redirects: bool = True
    max_redirects: int = Field(default=21, ge=0)
    user_agent: str = "httptool/0.1"

    # Response optimization
    truncate_max_length: int = Field(default=1000, ge=1)

    # Credentials
    secret_key: Optional[str] = None  # Fernet key for decrypting stored credentials
    credentials_file: Optional[str] = None

    # Observability
    trace_file: Optional[str] = None
    log_level: str = "INFO"

    @field_validator("credentials_file", "trace_file", mode="before")
    @classmethod
    def _expand_path(cls, v):
        if v is None:
            return None
        raw = str(v).strip()
        return str(Path(raw).expanduser()) if raw else None

    @field_validator("secret_key", mode="before")
    @classmethod
    def _empty_str_to_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v

    def print_diagnostics(self) -> None:
        print("timeout_ms:", self.timeout_ms)
        print("follow_redirects:", self.follow_redirects)
        print("max_redirects:", self.max_redirects)
        print("truncate_max_length:", self.truncate_max_length)
        print("credentials_file:", self.credentials_file or "(none)")
        print("trace_file:", self.trace_file or "(none)")
        print("HTTPTOOL_SECRET_KEY set:", bool(self.secret_key))

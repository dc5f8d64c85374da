"""Environment-driven runtime settings."""
from __future__ import annotations

import os
from dataclasses import dataclass, field

from sheetfill.core.errors import ConfigError

DEFAULT_API_BASE = "https://api.parallel.ai"
DEFAULT_RUN_TIMEOUT = 600.0
DEFAULT_CORS_ORIGINS = ["http://localhost:3000", "http://127.0.0.1:3000"]


@dataclass(slots=True)
class Settings:
    api_key: str | None = None
    api_base: str = DEFAULT_API_BASE
    http_timeout: float = 30.0
    run_timeout: float = DEFAULT_RUN_TIMEOUT
    log_level: str = "INFO"
    cors_origins: list[str] = field(default_factory=lambda: list(DEFAULT_CORS_ORIGINS))

    def require_api_key(self) -> str:
        """Return the API key or fail before any remote call is attempted."""

        if not self.api_key:
            raise ConfigError("Missing PARALLEL_API_KEY")
        return self.api_key


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from exc


def load_settings() -> Settings:
    origins_env = os.getenv("API_CORS_ORIGINS", "")
    origins = [origin.strip() for origin in origins_env.split(",") if origin.strip()]
    return Settings(
        api_key=os.getenv("PARALLEL_API_KEY") or None,
        api_base=(os.getenv("PARALLEL_API_BASE") or DEFAULT_API_BASE).rstrip("/"),
        http_timeout=_float_env("PARALLEL_HTTP_TIMEOUT", 30.0),
        run_timeout=_float_env("SHEETFILL_RUN_TIMEOUT", DEFAULT_RUN_TIMEOUT),
        log_level=(os.getenv("SHEETFILL_LOG_LEVEL") or "INFO").upper(),
        cors_origins=origins or list(DEFAULT_CORS_ORIGINS),
    )

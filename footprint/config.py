"""
Single configuration object for the whole project.

* Built on pydantic-settings: values come from environment variables
  (or a .env file when one exists).
* `get_settings()` hands out a *cached* object, so it can be imported
  anywhere without creating duplicates.
* Credentials are optional at this level; the `require_*` helpers turn a
  missing one into :class:`ConfigurationError` at the point a client is built.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from footprint.exceptions import ConfigurationError

# --------------------------------------------------------------------------- #
# Main settings
# --------------------------------------------------------------------------- #


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ── PocketBase ───────────────────────────────────────────────────────────
    pb_url: str = Field("http://127.0.0.1:8090")
    pb_email: Optional[str] = Field(None)
    pb_password: Optional[str] = Field(None)
    pb_collection: str = Field("carbonTransactions")
    pb_timeout: float = Field(10.0)

    # ── Gemini ───────────────────────────────────────────────────────────────
    gemini_api_key: Optional[str] = Field(None)
    gemini_model: str = Field("gemini-2.5-flash")
    gemini_temperature: float = Field(0.3)
    gemini_max_output_tokens: int = Field(2048)

    # ── Spending model ───────────────────────────────────────────────────────
    model_path: Path = Field(Path("models/linear_regression_model.json"))

    # ── Sentry ───────────────────────────────────────────────────────────────
    sentry_dsn: Optional[str] = Field(None)
    env: str = Field("local")

    # ── API ──────────────────────────────────────────────────────────────────
    api_host: str = Field("0.0.0.0")
    api_port: int = Field(4000)
    cors_origins: str = Field("http://localhost:5173,http://127.0.0.1:5173")
    log_dir: Optional[Path] = Field(None)
    log_level: str = Field("INFO")

    # ── Metrics ──────────────────────────────────────────────────────────────
    metrics_port: Optional[int] = Field(None)

    # CORS_ORIGINS="http://a,http://b"
    @property
    def cors_origin_list(self) -> List[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    # ── Credentials ──────────────────────────────────────────────────────────
    def require_gemini_key(self) -> str:
        if not self.gemini_api_key:
            raise ConfigurationError("GEMINI_API_KEY is not set")
        return self.gemini_api_key

    def require_pb_credentials(self) -> tuple[str, str]:
        if not self.pb_email or not self.pb_password:
            raise ConfigurationError("PB_EMAIL / PB_PASSWORD are not set")
        return self.pb_email, self.pb_password


# --------------------------------------------------------------------------- #
# Public helper
# --------------------------------------------------------------------------- #


@lru_cache(maxsize=1)
def get_settings() -> Settings:  # noqa: D401
    """Return the **singleton** Settings object."""
    return Settings()


# --------------------------------------------------------------------------- #
# CLI-debug
# --------------------------------------------------------------------------- #

if __name__ == "__main__":
    import json

    print(json.dumps(get_settings().model_dump(), indent=2, default=str))

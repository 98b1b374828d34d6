"""Client configuration via environment variables.

Uses pydantic-settings to load config from env vars with MANI_ prefix.
No config files — just env vars (12-factor app style). The credentials
file is the only thing on disk, and it holds tokens, not settings.

Learn: The defaults match the Express backend's local dev setup
(port 5000, /api/auth/* routes), so a fresh checkout talks to a
locally running backend without any env vars set.
"""

from pathlib import Path
from urllib.parse import urlparse

from pydantic import field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """All client configuration. Set via MANI_* env vars."""

    # Backend origin — every request path is relative to this
    api_base_url: str = "http://localhost:5000"

    # Auth endpoints on the backend
    login_path: str = "/api/auth/login"
    refresh_path: str = "/api/auth/refresh"

    # Where logout sends the user to re-authenticate
    login_url: str = "/login"

    # Transport
    request_timeout: float = 30.0

    # Tokens
    token_leeway_seconds: int = 30  # treat tokens expiring this soon as expired
    share_refresh: bool = True  # one in-flight refresh shared by concurrent calls
    credentials_file: Path = Path.home() / ".config" / "mani" / "credentials.json"

    # Logging
    log_level: str = "INFO"
    log_json: bool = False

    model_config = {"env_prefix": "MANI_"}

    @field_validator("api_base_url")
    @classmethod
    def normalize_base_url(cls, value: str) -> str:
        """Strip trailing slashes so path joining never doubles them."""
        parsed = urlparse(value)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError(
                f"MANI_API_BASE_URL must be an http(s) origin, got {value!r}"
            )
        return value.rstrip("/")


# Singleton — import this everywhere
settings = Settings()

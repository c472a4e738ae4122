"""Config management for chartpane-auth.

Settings come from the environment, optionally seeded from a local .env file.
"""
import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv


DEFAULT_SERVER_URL = "http://localhost:8787"
DEFAULT_SERVICE_NAME = "ChartPane"
DEFAULT_SERVICE_DESCRIPTION = (
    "ChartPane renders Chart.js charts inline in Claude. "
    "Sign in with Google to track your chart history."
)


class Config:
    """Configuration container."""

    def __init__(self, data: dict = None):
        self.data = data or {}

    def _get(self, key: str, default: str = "") -> str:
        value = self.data.get(key)
        return default if value in (None, "") else str(value)

    @property
    def server_url(self) -> str:
        return self._get("SERVER_URL", DEFAULT_SERVER_URL).rstrip("/")

    @property
    def callback_url(self) -> str:
        return f"{self.server_url}/callback"

    @property
    def google_client_id(self) -> str:
        return self._get("GOOGLE_CLIENT_ID")

    @property
    def google_client_secret(self) -> str:
        return self._get("GOOGLE_CLIENT_SECRET")

    @property
    def cookie_encryption_key(self) -> str:
        return self._get("COOKIE_ENCRYPTION_KEY")

    @property
    def jwt_secret(self) -> str:
        return self._get("JWT_SECRET", self.cookie_encryption_key)

    @property
    def supabase_url(self) -> str:
        return self._get("SUPABASE_URL")

    @property
    def supabase_key(self) -> str:
        return self._get("SUPABASE_KEY")

    @property
    def service_name(self) -> str:
        return self._get("SERVICE_NAME", DEFAULT_SERVICE_NAME)

    @property
    def service_description(self) -> str:
        return self._get("SERVICE_DESCRIPTION", DEFAULT_SERVICE_DESCRIPTION)

    @property
    def log_format(self) -> str:
        return self._get("LOG_FORMAT", "plain").lower()

    @property
    def log_level(self) -> str:
        return self._get("LOG_LEVEL", "INFO").upper()

    @property
    def host(self) -> str:
        return self._get("HOST", "0.0.0.0")

    @property
    def port(self) -> int:
        return int(self._get("PORT", "8787"))

    def auth_enabled(self) -> bool:
        """OAuth routes are only mounted when Google and the cookie key are configured."""
        return bool(self.google_client_id and self.google_client_secret and self.cookie_encryption_key)

    def supabase_enabled(self) -> bool:
        return bool(self.supabase_url and self.supabase_key)


def load_config(env_file: Optional[Path] = None) -> Config:
    """Load config from the environment (and .env, if present)."""
    env_file = env_file or Path(".env")
    if env_file.exists():
        load_dotenv(env_file)
    return Config(dict(os.environ))

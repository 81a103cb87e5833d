"""Application settings for the backup scheduler.

Settings are loaded from environment variables (and an optional `.env` file).
Secrets can alternatively be provided through a `*_FILE` variable pointing at a
mounted secret file, which takes precedence over an empty inline value.
"""

from __future__ import annotations

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


def _read_secret(value: str, file_path: str) -> str:
    """Return an inline secret value or the content of a secret file.

    Args:
        value: Inline value from the environment.
        file_path: Optional path to a file containing the secret.

    Returns:
        str: The resolved secret, or an empty string.
    """

    inline = str(value or "").strip()
    if inline:
        return inline

    path = str(file_path or "").strip()
    if path and Path(path).exists():
        return Path(path).read_text(encoding="utf-8").strip()

    return ""


class Settings(BaseSettings):
    """Runtime configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    DEBUG: bool = False
    APP_VERSION: str = "1.0.0"

    DATABASE_URL: str = "sqlite+aiosqlite:///./backup-scheduler.db"

    LOG_DIR: str = "/app/logs"
    LOG_LEVEL: str = "INFO"
    LOG_FILENAME: str = "backup-scheduler.log"

    # Entity collections are read from the surrounding application's API.
    ENTITY_API_URL: str = "http://localhost:3000/api"
    ENTITY_API_KEY: str = ""
    ENTITY_API_KEY_FILE: str = ""
    ENTITY_API_TIMEOUT_SECONDS: float = 30.0

    SMTP_HOST: str = ""
    SMTP_PORT: int = 587
    SMTP_USER: str = ""
    SMTP_PASSWORD: str = ""
    SMTP_PASSWORD_FILE: str = ""
    SMTP_FROM: str = ""
    SMTP_USE_TLS: bool = True
    SMTP_USE_SSL: bool = False

    FIREBASE_STORAGE_BUCKET: str = ""
    FIREBASE_ACCESS_TOKEN: str = ""
    FIREBASE_ACCESS_TOKEN_FILE: str = ""

    EMAIL_DELIVERY_TIMEOUT_SECONDS: float = 120.0
    STORAGE_UPLOAD_TIMEOUT_SECONDS: float = 300.0

    RUNNER_INTERVAL: int = 60
    RUNNER_MAX_SCHEDULES: int = 10

    STATS_EXECUTION_WINDOW: int = 100

    def get_entity_api_key(self) -> str:
        """Return the API key used to read entity collections."""

        return _read_secret(self.ENTITY_API_KEY, self.ENTITY_API_KEY_FILE)

    def get_smtp_password(self) -> str:
        """Return the SMTP password."""

        return _read_secret(self.SMTP_PASSWORD, self.SMTP_PASSWORD_FILE)

    def get_firebase_access_token(self) -> str:
        """Return the OAuth access token used for Firebase Storage uploads."""

        return _read_secret(self.FIREBASE_ACCESS_TOKEN, self.FIREBASE_ACCESS_TOKEN_FILE)


settings = Settings()

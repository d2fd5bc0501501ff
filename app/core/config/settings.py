"""Application settings loaded from environment with safe fallbacks.

Environment precedence:
- Loads `.env` from the repo root before reading process env vars.
- Most values are pulled straight from env; booleans go through `_env_flag` so `"0"/"false"` work.
- CORS is normalized from `CORS_ORIGINS` (comma-separated) with a conservative default allowlist.

Key expectations (defaults in parentheses):
- `APP_ENV` controls settings class selection (`production` default).
- Store: `STORE_BACKEND` (`memory`) selects the document store; `firestore` needs
  `FIREBASE_PROJECT_ID` and optionally `FIREBASE_CREDENTIALS_PATH` (application default
  credentials otherwise).
- Retries: `STORE_MAX_ATTEMPTS` (3) bounds transaction and transient-error retries,
  `STORE_RETRY_BACKOFF_SECONDS` (0.05) is the first backoff step.
- Workflow: `RETRACTION_MODE` (`status`) keeps withdrawn/cancelled records, `delete` removes
  them; `CASCADE_DELETE` (true) cleans applications/invitations of deleted collaborations.
- Celery: `CELERY_BROKER_URL` / `CELERY_BACKEND_URL` (redis on localhost).
"""

import logging
import os
from pathlib import Path
from typing import ClassVar, Optional

from dotenv import load_dotenv
from pydantic_settings import BaseSettings, SettingsConfigDict

# Base directory of the project; used for resolving relative paths reliably.
# (__file__ is app/core/config/settings.py, so we need to traverse three levels up)
BASE_DIR = Path(__file__).resolve().parents[3]


load_dotenv(BASE_DIR / ".env")

logger = logging.getLogger(__name__)

RETRACTION_MODES = ("status", "delete")
STORE_BACKENDS = ("memory", "firestore")


def _env_flag(name: str, *, default: Optional[bool] = False) -> Optional[bool]:
    """
    Helper to parse boolean-like environment variables.
    """
    value = os.getenv(name)
    if value is None:
        return default
    return value.lower() in {"1", "true", "yes", "on"}


class Settings(BaseSettings):
    """Application configuration loaded from environment variables.

    Behavior highlights:
    - Loads `.env` at repo root, then lets process env override.
    - Feature toggles parsed via `_env_flag` to accept common truthy/falsey strings.
    - Unknown store backends or retraction modes fall back to the defaults with a warning
      instead of failing startup.
    """

    model_config: ClassVar[SettingsConfigDict] = SettingsConfigDict(
        env_file=str(BASE_DIR / ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    environment: str = os.getenv("APP_ENV", "production")
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    log_dir: Optional[str] = os.getenv("LOG_DIR")
    use_json_logs: bool = bool(_env_flag("USE_JSON_LOGS", default=False))
    cors_allowlist: list[str] = []
    SITE_NAME: str = os.getenv("SITE_NAME", "Musician Collaboration Service")

    store_backend: str = os.getenv("STORE_BACKEND", "memory")
    firebase_project_id: Optional[str] = os.getenv("FIREBASE_PROJECT_ID")
    firebase_credentials_path: Optional[str] = os.getenv("FIREBASE_CREDENTIALS_PATH")
    store_max_attempts: int = int(os.getenv("STORE_MAX_ATTEMPTS", 3))
    store_retry_backoff_seconds: float = float(
        os.getenv("STORE_RETRY_BACKOFF_SECONDS", "0.05")
    )
    store_timeout_seconds: float = float(os.getenv("STORE_TIMEOUT_SECONDS", "10"))

    DEFAULT_CURRENCY: str = os.getenv("DEFAULT_CURRENCY", "USD")
    MAX_BATCH_INVITATIONS: int = int(os.getenv("MAX_BATCH_INVITATIONS", 50))
    retraction_mode: str = os.getenv("RETRACTION_MODE", "status")
    cascade_delete: bool = bool(_env_flag("CASCADE_DELETE", default=True))
    auth_disabled: bool = bool(_env_flag("AUTH_DISABLED", default=False))

    CELERY_BROKER_URL: str = os.getenv("CELERY_BROKER_URL", "redis://localhost:6379/0")
    CELERY_BACKEND_URL: str = os.getenv(
        "CELERY_BACKEND_URL", "redis://localhost:6379/0"
    )

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        env_override = os.getenv("APP_ENV")
        if env_override:
            object.__setattr__(self, "environment", env_override)

        cors_env = os.getenv("CORS_ORIGINS")
        if cors_env:
            origins = [
                origin.strip() for origin in cors_env.split(",") if origin.strip()
            ]
        elif self.cors_allowlist:
            origins = self.cors_allowlist
        else:
            origins = [
                "http://localhost:3000",
                "http://127.0.0.1:3000",
            ]
        object.__setattr__(self, "cors_allowlist", origins)

        backend = (self.store_backend or "").lower()
        if backend not in STORE_BACKENDS:
            logger.warning(
                f"Unknown STORE_BACKEND '{self.store_backend}', falling back to memory."
            )
            backend = "memory"
        object.__setattr__(self, "store_backend", backend)

        mode = (self.retraction_mode or "").lower()
        if mode not in RETRACTION_MODES:
            logger.warning(
                f"Unknown RETRACTION_MODE '{self.retraction_mode}', falling back to status."
            )
            mode = "status"
        object.__setattr__(self, "retraction_mode", mode)

        if self.store_max_attempts < 1:
            object.__setattr__(self, "store_max_attempts", 1)

    @property
    def is_test(self) -> bool:
        return self.environment.lower() in {"test", "testing"}

    @property
    def deletes_retracted_records(self) -> bool:
        """True when withdrawals/cancellations remove the record instead of persisting a status."""
        return self.retraction_mode == "delete"

"""Per-environment settings classes selected by ``APP_ENV``."""

from __future__ import annotations

import logging
import os
from functools import lru_cache
from typing import Dict, Type

from .settings import Settings, _env_flag

logger = logging.getLogger(__name__)


class DevelopmentSettings(Settings):
    """Local development: DEBUG logs, in-memory store unless STORE_BACKEND says otherwise."""

    environment: str = "development"
    log_level: str = os.getenv("LOG_LEVEL", "DEBUG")


class ProductionSettings(Settings):
    """Production: JSON logs unless USE_JSON_LOGS=false; warns when running on the memory store."""

    environment: str = "production"

    def model_post_init(self, __context) -> None:
        super().model_post_init(__context)
        if _env_flag("USE_JSON_LOGS", default=None) is None:
            object.__setattr__(self, "use_json_logs", True)
        if self.store_backend == "memory":
            logger.warning(
                "Production settings are using the in-memory store; "
                "set STORE_BACKEND=firestore to persist collaborations."
            )


class TestSettings(Settings):
    """Automated tests: in-memory store, header auth, no retry backoff."""

    environment: str = "test"

    def model_post_init(self, __context) -> None:
        super().model_post_init(__context)
        object.__setattr__(self, "store_backend", "memory")
        object.__setattr__(self, "auth_disabled", True)
        object.__setattr__(self, "store_retry_backoff_seconds", 0.0)


ENVIRONMENTS: Dict[str, Type[Settings]] = {
    "development": DevelopmentSettings,
    "dev": DevelopmentSettings,
    "production": ProductionSettings,
    "prod": ProductionSettings,
    "test": TestSettings,
    "testing": TestSettings,
}


@lru_cache
def get_settings() -> Settings:
    """Cached settings for the current APP_ENV; unknown values get production settings."""
    env = os.getenv("APP_ENV", "production").lower()
    return ENVIRONMENTS.get(env, ProductionSettings)()

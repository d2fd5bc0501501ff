"""App package init."""

from app.core.config import Settings, get_settings, settings

__all__ = ["settings", "Settings", "get_settings"]

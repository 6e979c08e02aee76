"""Runtime configuration for expensebot."""

from expensebot.config.settings import CACHE_BACKENDS, Settings, get_settings, reset_settings

__all__ = ["CACHE_BACKENDS", "Settings", "get_settings", "reset_settings"]

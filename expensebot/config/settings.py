"""
Runtime settings for expensebot.

All tunables come from environment variables so the same code runs in a
single-process development setup (in-memory caches) and in a multi-process
deployment (Redis-backed caches).

Variables:
    EXPENSEBOT_DEV_MODE              "1" for human-readable logs
    LOG_LEVEL                        stdlib level name (INFO)
    EXPENSEBOT_LANGUAGE              language of alert text (es | en)
    EXPENSEBOT_CATEGORY_CACHE_TTL    category directory TTL in seconds (300)
    EXPENSEBOT_SUPPRESSION_WINDOW    alert suppression window in seconds (3600)
    EXPENSEBOT_STORAGE_TIMEOUT       timeout around every storage call (5.0)
    EXPENSEBOT_CACHE_BACKEND         memory | redis
    EXPENSEBOT_SUMMARY_HOUR          local hour the daily summary is due (20)
    REDIS_URL                        redis://localhost:6379/0
    DATABASE_URL                     sqlite:///./expensebot.db
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass

from expensebot.i18n import DEFAULT_LANGUAGE, LANGUAGES, is_valid_language
from expensebot.lib.exceptions import ConfigurationError

CACHE_BACKENDS: tuple[str, ...] = ("memory", "redis")


@dataclass(frozen=True)
class Settings:
    """Immutable runtime settings."""

    dev_mode: bool = False
    log_level: str = "INFO"
    language: str = DEFAULT_LANGUAGE
    category_cache_ttl: int = 300
    suppression_window: int = 3600
    storage_timeout: float = 5.0
    cache_backend: str = "memory"
    summary_hour: int = 20
    redis_url: str = "redis://localhost:6379/0"
    database_url: str = "sqlite:///./expensebot.db"

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> Settings:
        """Build settings from environment variables.

        Args:
            environ: Mapping to read from (defaults to os.environ)

        Returns:
            Populated Settings

        Raises:
            ConfigurationError: If a numeric variable cannot be parsed or a
                choice variable holds an unknown value
        """
        env = os.environ if environ is None else environ

        cache_backend = env.get("EXPENSEBOT_CACHE_BACKEND", "memory").lower()
        if cache_backend not in CACHE_BACKENDS:
            raise ConfigurationError(
                f"EXPENSEBOT_CACHE_BACKEND must be one of {CACHE_BACKENDS}, got {cache_backend!r}"
            )

        language = env.get("EXPENSEBOT_LANGUAGE", DEFAULT_LANGUAGE).lower()
        if not is_valid_language(language):
            raise ConfigurationError(
                f"EXPENSEBOT_LANGUAGE must be one of {LANGUAGES}, got {language!r}"
            )

        summary_hour = _int(env, "EXPENSEBOT_SUMMARY_HOUR", 20, minimum=0)
        if not 0 <= summary_hour <= 23:
            raise ConfigurationError(f"EXPENSEBOT_SUMMARY_HOUR out of range: {summary_hour}")

        return cls(
            dev_mode=env.get("EXPENSEBOT_DEV_MODE") == "1",
            log_level=env.get("LOG_LEVEL", "INFO").upper(),
            language=language,
            category_cache_ttl=_int(env, "EXPENSEBOT_CATEGORY_CACHE_TTL", 300),
            suppression_window=_int(env, "EXPENSEBOT_SUPPRESSION_WINDOW", 3600),
            storage_timeout=_float(env, "EXPENSEBOT_STORAGE_TIMEOUT", 5.0),
            cache_backend=cache_backend,
            summary_hour=summary_hour,
            redis_url=env.get("REDIS_URL", "redis://localhost:6379/0"),
            database_url=env.get("DATABASE_URL", "sqlite:///./expensebot.db"),
        )


def _int(env: Mapping[str, str], name: str, default: int, minimum: int = 1) -> int:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from exc
    if value < minimum:
        raise ConfigurationError(f"{name} must be at least {minimum}, got {value}")
    return value


def _float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    try:
        value = float(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}") from exc
    if value <= 0:
        raise ConfigurationError(f"{name} must be positive, got {value}")
    return value


# Global settings instance
_settings: Settings | None = None


def get_settings() -> Settings:
    """Get the process-wide settings, reading the environment on first use."""
    global _settings
    if _settings is None:
        _settings = Settings.from_env()
    return _settings


def reset_settings() -> None:
    """Forget the cached settings so the next get_settings() re-reads the environment."""
    global _settings
    _settings = None

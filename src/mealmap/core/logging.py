"""Apply the packaged `logging.yaml` through dictConfig."""

from __future__ import annotations

import logging.config

from mealmap.config.settings import Settings, get_logging_config, get_settings


def configure_logging(settings: Settings | None = None, *, level: str | None = None) -> None:
    """Configure logging for an entry point.

    The root logger and every handler that declares a level get `level`, falling
    back to `app.log_level` (`MEALMAP_LOG_LEVEL`). Per-library loggers from the
    YAML file (httpx, httpcore) keep their own levels.
    """
    if level is None:
        level = (settings or get_settings()).app.log_level
    level = level.upper()

    config = get_logging_config()
    config.setdefault("root", {})["level"] = level
    for handler in config.get("handlers", {}).values():
        if "level" in handler:
            handler["level"] = level
    logging.config.dictConfig(config)
